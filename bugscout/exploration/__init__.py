# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Exploration domain: decisions, observations, findings and session state.

Components with collaborators (loop guard, page budget, state machine) are
imported from their own modules.
"""

from bugscout.exploration.events import ExplorationResult, ProgressEvent
from bugscout.exploration.ports import (
    BrowserPort,
    FindingSink,
    SessionStore,
    SuggestionProvider,
    ToolContext,
    ToolInvoker,
)
from bugscout.exploration.session import ExplorationSession, SessionConfig
from bugscout.exploration.types import (
    ActionDecision,
    ActionKind,
    ActionOutcome,
    Finding,
    HistoryEntry,
    InteractiveElement,
    PageObservation,
    SessionStatus,
    Severity,
    StopReason,
    TokenUsage,
    ToolDefinition,
    ToolResult,
)

__all__ = [
    "ActionDecision",
    "ActionKind",
    "ActionOutcome",
    "BrowserPort",
    "ExplorationResult",
    "ExplorationSession",
    "Finding",
    "FindingSink",
    "HistoryEntry",
    "InteractiveElement",
    "PageObservation",
    "ProgressEvent",
    "SessionConfig",
    "SessionStatus",
    "SessionStore",
    "Severity",
    "StopReason",
    "SuggestionProvider",
    "TokenUsage",
    "ToolContext",
    "ToolDefinition",
    "ToolInvoker",
    "ToolResult",
]
