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
Interfaces of the collaborators the exploration loop drives.

The state machine depends only on these protocols; concrete adapters live in
``bugscout.core``, ``bugscout.tools`` and ``bugscout.persistence``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from bugscout.exploration.types import (
    ActionOutcome,
    Finding,
    PageObservation,
    ToolDefinition,
    ToolResult,
)


@runtime_checkable
class BrowserPort(Protocol):
    """Browser actions. Action failures are reported in ActionOutcome, not raised."""

    async def navigate(self, url: str) -> ActionOutcome:
        ...

    async def click(self, selector: str) -> ActionOutcome:
        ...

    async def fill(self, selector: str, value: str) -> ActionOutcome:
        ...

    async def select(self, selector: str, value: str) -> ActionOutcome:
        ...

    async def hover(self, selector: str) -> ActionOutcome:
        ...

    async def scroll(self, direction: str = "down") -> ActionOutcome:
        ...

    async def go_back(self) -> ActionOutcome:
        ...

    async def refresh(self) -> ActionOutcome:
        ...

    async def extract_observation(self) -> PageObservation:
        ...

    async def current_url(self) -> str:
        ...

    async def evaluate(self, script: str) -> Any:
        """Run a script in the page; used by inspection tools."""
        ...


@dataclass
class ToolContext:
    """What a tool gets to work with. Error lists cover the current page visit."""

    browser: BrowserPort
    page_url: str
    session_id: str
    step: int
    console_errors: List[str] = field(default_factory=list)
    network_errors: List[str] = field(default_factory=list)


@runtime_checkable
class ToolInvoker(Protocol):
    def definitions(self) -> List[ToolDefinition]:
        ...

    async def invoke(self, name: str, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        ...


@runtime_checkable
class FindingSink(Protocol):
    """Receives findings. ``is_duplicate`` returns the id of an existing match."""

    async def is_duplicate(self, title: str, page_url: str) -> Optional[str]:
        ...

    async def register(self, finding: Finding) -> None:
        ...

    async def save(self, finding: Finding) -> None:
        ...


@runtime_checkable
class SessionStore(Protocol):
    async def save(self, session: Any) -> None:
        ...

    async def load(self, session_id: str) -> Optional[Any]:
        ...


@runtime_checkable
class SuggestionProvider(Protocol):
    """Supplies testing ideas for the current page."""

    def suggest(self, observation: PageObservation) -> Sequence[str]:
        ...
