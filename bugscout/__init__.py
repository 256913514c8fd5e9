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
BugScout - LLM-guided exploratory testing of web applications.

An advisor model decides what to do next on each page; a circuit-broken
gateway keeps advisor outages from stalling the run; a loop guard rejects
degenerate decisions; a per-page budget forces the exploration to move on.
"""

__version__ = "26.02.01"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from bugscout.config import ExplorationConfig, LoopGuardConfig, PageBudgetConfig
from bugscout.exceptions import BugScoutError
from bugscout.exploration import (
    ExplorationResult,
    ExplorationSession,
    Finding,
    ProgressEvent,
    StopReason,
)
from bugscout.exploration.state_machine import ExplorationStateMachine, StepState
from bugscout.llm import CircuitBreakerConfig, DecisionGateway, create_gateway
from bugscout.shutdown import ShutdownController

__all__ = [
    "BugScoutError",
    "CircuitBreakerConfig",
    "DecisionGateway",
    "ExplorationConfig",
    "ExplorationResult",
    "ExplorationSession",
    "ExplorationStateMachine",
    "Finding",
    "LoopGuardConfig",
    "PageBudgetConfig",
    "ProgressEvent",
    "ShutdownController",
    "StepState",
    "StopReason",
    "create_gateway",
]
