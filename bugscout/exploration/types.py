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
Core types for the exploration loop.

Key Components:
- ActionKind / ActionDecision: the advisor's chosen next interaction
- PageObservation / InteractiveElement: a snapshot of the current page
- ToolDefinition / ToolResult: tool descriptions offered to the advisor and their outcomes
- Finding: a suspected defect routed to the finding sink
- HistoryEntry: one executed step in the session history
- TokenUsage: advisor token accounting
- SessionStatus / StopReason: session lifecycle values
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from bugscout.exceptions import InvalidDecisionError

DEFAULT_OBJECTIVE = (
    "Explore the web application thoroughly, looking for bugs, broken images, "
    "console errors, and usability issues."
)


class ActionKind(str, Enum):
    """Kinds of interaction the advisor may choose."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    HOVER = "hover"
    SCROLL = "scroll"
    BACK = "back"
    REFRESH = "refresh"
    INVOKE_TOOL = "invoke_tool"
    DONE = "done"

    @classmethod
    def parse(cls, value: str) -> "ActionKind":
        """
        Parse an advisor-supplied action name.

        Accepts the wire alias ``tool`` for ``invoke_tool`` and ignores case.

        Raises:
            ValueError: If the name is not a known action kind
        """
        normalized = str(value).strip().lower().replace("-", "_")
        if normalized in _KIND_ALIASES:
            return _KIND_ALIASES[normalized]
        return cls(normalized)


_KIND_ALIASES = {
    "tool": ActionKind.INVOKE_TOOL,
    "type": ActionKind.FILL,
    "goto": ActionKind.NAVIGATE,
}

# Kinds that act on a page element and therefore need a selector
SELECTOR_KINDS = frozenset({ActionKind.CLICK, ActionKind.FILL, ActionKind.SELECT, ActionKind.HOVER})


@dataclass
class ActionDecision:
    """
    A single next interaction chosen by the advisor.

    Confidence is clamped to [0, 1]. Invariants are checked on construction:
    ``invoke_tool`` needs a tool name and element actions need a selector.
    """

    kind: ActionKind
    selector: Optional[str] = None
    value: Optional[str] = None
    tool_name: Optional[str] = None
    tool_params: Dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    confidence: float = 0.5
    hypothesis: Optional[str] = None
    expected_outcome: Optional[str] = None
    observed_issues: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ActionKind):
            try:
                self.kind = ActionKind.parse(self.kind)
            except ValueError as e:
                raise InvalidDecisionError(f"Unknown action kind: {self.kind!r}") from e

        self.confidence = max(0.0, min(1.0, float(self.confidence)))

        if self.kind is ActionKind.INVOKE_TOOL and not self.tool_name:
            raise InvalidDecisionError("invoke_tool decision requires a tool_name")
        if self.kind in SELECTOR_KINDS and not self.selector:
            raise InvalidDecisionError(f"{self.kind.value} decision requires a selector")

    @classmethod
    def done(cls, reasoning: str, confidence: float = 0.1) -> "ActionDecision":
        """Create a terminating decision."""
        return cls(kind=ActionKind.DONE, reasoning=reasoning, confidence=confidence)

    def describe(self) -> str:
        """Short human-readable form used in logs and prompt digests."""
        if self.kind is ActionKind.INVOKE_TOOL:
            return f"invoke_tool {self.tool_name}"
        parts = [self.kind.value]
        if self.selector:
            parts.append(self.selector)
        if self.value:
            parts.append(repr(self.value[:50]))
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "selector": self.selector,
            "value": self.value,
            "tool_name": self.tool_name,
            "tool_params": dict(self.tool_params),
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "hypothesis": self.hypothesis,
            "expected_outcome": self.expected_outcome,
            "observed_issues": list(self.observed_issues),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionDecision":
        return cls(
            kind=ActionKind.parse(data["kind"]),
            selector=data.get("selector"),
            value=data.get("value"),
            tool_name=data.get("tool_name"),
            tool_params=dict(data.get("tool_params") or {}),
            reasoning=data.get("reasoning", ""),
            confidence=data.get("confidence", 0.5),
            hypothesis=data.get("hypothesis"),
            expected_outcome=data.get("expected_outcome"),
            observed_issues=list(data.get("observed_issues") or []),
        )


@dataclass
class InteractiveElement:
    """An element the advisor can act on."""

    selector: str
    element_type: str = "element"  # link, button, input, select, ...
    text: str = ""
    href: Optional[str] = None
    is_visible: bool = True


@dataclass
class PageObservation:
    """Snapshot of the current page handed to the advisor."""

    url: str
    title: str = ""
    visible_text: str = ""
    elements: List[InteractiveElement] = field(default_factory=list)
    console_errors: List[str] = field(default_factory=list)
    network_errors: List[str] = field(default_factory=list)

    def truncated(self, max_text: int, max_elements: int) -> "PageObservation":
        """Return a copy bounded to ``max_text`` characters and ``max_elements`` elements."""
        return PageObservation(
            url=self.url,
            title=self.title,
            visible_text=self.visible_text[:max_text],
            elements=list(self.elements[:max_elements]),
            console_errors=list(self.console_errors),
            network_errors=list(self.network_errors),
        )


@dataclass
class ActionOutcome:
    """Result of a browser action. Failures are data, not exceptions."""

    success: bool
    error: Optional[str] = None
    duration_ms: float = 0.0


@dataclass
class ToolDefinition:
    """Description of a tool offered to the advisor."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


class Severity(str, Enum):
    """Finding severity levels."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


@dataclass
class Finding:
    """A suspected defect discovered during exploration."""

    id: str
    title: str
    description: str
    page_url: str
    severity: Severity = Severity.MEDIUM
    finding_type: str = "observed_issue"
    source: str = "advisor"
    step_number: int = 0
    steps_to_reproduce: List[str] = field(default_factory=list)
    evidence: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(cls, title: str, description: str, page_url: str, **kwargs: Any) -> "Finding":
        """Create a finding with a fresh id."""
        return cls(id=str(uuid.uuid4()), title=title, description=description, page_url=page_url, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "page_url": self.page_url,
            "severity": self.severity.value,
            "finding_type": self.finding_type,
            "source": self.source,
            "step_number": self.step_number,
            "steps_to_reproduce": list(self.steps_to_reproduce),
            "evidence": dict(self.evidence),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            page_url=data.get("page_url", ""),
            severity=Severity(data.get("severity", Severity.MEDIUM.value)),
            finding_type=data.get("finding_type", "observed_issue"),
            source=data.get("source", "advisor"),
            step_number=data.get("step_number", 0),
            steps_to_reproduce=list(data.get("steps_to_reproduce") or []),
            evidence=dict(data.get("evidence") or {}),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
        )


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Tools report suspected defects through ``findings``; everything else goes
    in ``data``.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    findings: List[Finding] = field(default_factory=list)
    duration_ms: float = 0.0

    @classmethod
    def success_result(cls, data: Any = None, findings: Optional[List[Finding]] = None) -> "ToolResult":
        return cls(success=True, data=data, findings=list(findings or []))

    @classmethod
    def error_result(cls, error: str, data: Any = None) -> "ToolResult":
        return cls(success=False, error=error, data=data)


@dataclass
class HistoryEntry:
    """One executed step: the decision and what came of it."""

    step: int
    decision: ActionDecision
    success: bool
    resulting_url: str = ""
    duration_ms: float = 0.0
    error: Optional[str] = None
    finding_ids: List[str] = field(default_factory=list)
    executed_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "decision": self.decision.to_dict(),
            "success": self.success,
            "resulting_url": self.resulting_url,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "finding_ids": list(self.finding_ids),
            "executed_at": self.executed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            step=data["step"],
            decision=ActionDecision.from_dict(data["decision"]),
            success=data["success"],
            resulting_url=data.get("resulting_url", ""),
            duration_ms=data.get("duration_ms", 0.0),
            error=data.get("error"),
            finding_ids=list(data.get("finding_ids") or []),
            executed_at=datetime.fromisoformat(data["executed_at"]) if data.get("executed_at") else datetime.now(),
        )


@dataclass
class TokenUsage:
    """Accumulated advisor token usage."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "TokenUsage") -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


class SessionStatus(str, Enum):
    """Lifecycle states of an exploration session."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.STOPPED, SessionStatus.ERROR)


class StopReason(str, Enum):
    """Why an exploration run ended."""

    COMPLETED = "completed"
    MAX_STEPS_REACHED = "max_steps_reached"
    ERROR = "error"
    EXPLICIT_DONE = "explicit_done"
    STOPPED_BY_USER = "stopped_by_user"
