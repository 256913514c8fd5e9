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
Exploration session: the data owner of a run.

The session holds configuration, lifecycle status, the ordered step history
and the ids of accepted findings. Only the step state machine mutates it.
Status changes are one-directional except for pause and resume.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from bugscout.exceptions import SessionStateError
from bugscout.exploration.types import (
    DEFAULT_OBJECTIVE,
    ActionDecision,
    HistoryEntry,
    SessionStatus,
    StopReason,
)

# Allowed status moves; anything else raises SessionStateError
_ALLOWED_TRANSITIONS = {
    SessionStatus.IDLE: {SessionStatus.RUNNING},
    SessionStatus.RUNNING: {
        SessionStatus.PAUSED,
        SessionStatus.COMPLETED,
        SessionStatus.STOPPED,
        SessionStatus.ERROR,
    },
    SessionStatus.PAUSED: {
        SessionStatus.RUNNING,
        SessionStatus.COMPLETED,
        SessionStatus.STOPPED,
        SessionStatus.ERROR,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.STOPPED: set(),
    SessionStatus.ERROR: set(),
}


@dataclass
class SessionConfig:
    """Per-session settings."""

    target_url: str
    objective: str = DEFAULT_OBJECTIVE
    max_steps: int = 100
    max_duration_seconds: float = 0.0
    checkpoint_interval: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_url": self.target_url,
            "objective": self.objective,
            "max_steps": self.max_steps,
            "max_duration_seconds": self.max_duration_seconds,
            "checkpoint_interval": self.checkpoint_interval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        return cls(
            target_url=data["target_url"],
            objective=data.get("objective", DEFAULT_OBJECTIVE),
            max_steps=data.get("max_steps", 100),
            max_duration_seconds=data.get("max_duration_seconds", 0.0),
            checkpoint_interval=data.get("checkpoint_interval", 10),
        )


@dataclass
class ExplorationSession:
    """State of one exploration run."""

    config: SessionConfig
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SessionStatus = SessionStatus.IDLE
    current_step: int = 0
    current_url: str = ""
    history: List[HistoryEntry] = field(default_factory=list)
    finding_ids: List[str] = field(default_factory=list)
    visited_urls: List[str] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @classmethod
    def create(cls, target_url: str, **config_kwargs: Any) -> "ExplorationSession":
        return cls(config=SessionConfig(target_url=target_url, **config_kwargs), current_url=target_url)

    # Lifecycle

    def _transition(self, new_status: SessionStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise SessionStateError(
                f"Session {self.id}: cannot move from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def start(self) -> None:
        self._transition(SessionStatus.RUNNING)
        self.started_at = datetime.now()

    def pause(self) -> None:
        self._transition(SessionStatus.PAUSED)

    def resume(self) -> None:
        if self.status is not SessionStatus.PAUSED:
            raise SessionStateError(f"Session {self.id} is {self.status.value}, not paused")
        self._transition(SessionStatus.RUNNING)
        self.stop_reason = None

    def interrupt(self, reason: StopReason = StopReason.STOPPED_BY_USER) -> None:
        """Pause after a shutdown or cancellation; the checkpoint stays resumable."""
        self._transition(SessionStatus.PAUSED)
        self.stop_reason = reason

    def end(self, reason: StopReason, error: Optional[str] = None) -> None:
        """Move to the terminal status matching ``reason``."""
        if reason is StopReason.ERROR:
            target = SessionStatus.ERROR
        elif reason is StopReason.STOPPED_BY_USER:
            target = SessionStatus.STOPPED
        else:
            target = SessionStatus.COMPLETED
        self._transition(target)
        self.stop_reason = reason
        self.error = error
        self.ended_at = datetime.now()

    @property
    def is_running(self) -> bool:
        return self.status is SessionStatus.RUNNING

    # Step data

    def has_reached_max_steps(self) -> bool:
        return self.current_step >= self.config.max_steps

    def record_step(
        self,
        decision: ActionDecision,
        success: bool,
        resulting_url: str,
        duration_ms: float,
        error: Optional[str] = None,
    ) -> HistoryEntry:
        """Append an executed step; the step number is the new history length."""
        entry = HistoryEntry(
            step=len(self.history) + 1,
            decision=decision,
            success=success,
            resulting_url=resulting_url,
            duration_ms=duration_ms,
            error=error,
        )
        self.history.append(entry)
        self.current_step = max(self.current_step, entry.step)
        if resulting_url:
            self.current_url = resulting_url
        return entry

    def add_finding(self, finding_id: str) -> None:
        if finding_id in self.finding_ids:
            return
        self.finding_ids.append(finding_id)
        if self.history:
            self.history[-1].finding_ids.append(finding_id)

    def mark_visited(self, url: str) -> None:
        if url and url not in self.visited_urls:
            self.visited_urls.append(url)

    @property
    def finding_count(self) -> int:
        return len(self.finding_ids)

    def recent_history(self, limit: int) -> List[HistoryEntry]:
        return self.history[-limit:] if limit > 0 else []

    def summary(self) -> str:
        """Plain summary used when the advisor cannot produce one."""
        failed = sum(1 for entry in self.history if not entry.success)
        unique_pages: Set[str] = set(self.visited_urls)
        return (
            f"Explored {self.config.target_url} in {len(self.history)} steps "
            f"({failed} failed) across {len(unique_pages)} pages; "
            f"{self.finding_count} findings recorded."
        )

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "current_step": self.current_step,
            "current_url": self.current_url,
            "history": [entry.to_dict() for entry in self.history],
            "finding_ids": list(self.finding_ids),
            "visited_urls": list(self.visited_urls),
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExplorationSession":
        def _dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=data["id"],
            config=SessionConfig.from_dict(data["config"]),
            status=SessionStatus(data.get("status", SessionStatus.IDLE.value)),
            current_step=data.get("current_step", 0),
            current_url=data.get("current_url", ""),
            history=[HistoryEntry.from_dict(e) for e in data.get("history", [])],
            finding_ids=list(data.get("finding_ids") or []),
            visited_urls=list(data.get("visited_urls") or []),
            stop_reason=StopReason(data["stop_reason"]) if data.get("stop_reason") else None,
            error=data.get("error"),
            created_at=_dt(data.get("created_at")) or datetime.now(),
            started_at=_dt(data.get("started_at")),
            ended_at=_dt(data.get("ended_at")),
        )
