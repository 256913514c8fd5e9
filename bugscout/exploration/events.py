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

"""Progress events and the final result of an exploration run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bugscout.exploration.types import Finding, HistoryEntry, StopReason, TokenUsage


@dataclass
class ProgressEvent:
    """Emitted every ``progress_interval`` steps."""

    step: int
    max_steps: int
    url: str
    findings_count: int
    recent_actions: List[str] = field(default_factory=list)
    pages_visited: int = 0

    @property
    def percent_complete(self) -> float:
        return round(100.0 * self.step / self.max_steps, 1) if self.max_steps else 0.0


@dataclass
class ExplorationResult:
    """Outcome of a finished exploration run."""

    session_id: str
    total_steps: int
    duration_seconds: float
    stopped_reason: StopReason
    findings: List[Finding] = field(default_factory=list)
    history: List[HistoryEntry] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[str] = None
    pages_visited: List[str] = field(default_factory=list)
    summary: str = ""

    @property
    def success(self) -> bool:
        return self.stopped_reason is not StopReason.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_steps": self.total_steps,
            "duration_seconds": round(self.duration_seconds, 3),
            "stopped_reason": self.stopped_reason.value,
            "findings": [finding.to_dict() for finding in self.findings],
            "history": [entry.to_dict() for entry in self.history],
            "token_usage": self.token_usage.to_dict(),
            "error": self.error,
            "pages_visited": list(self.pages_visited),
            "summary": self.summary,
        }
