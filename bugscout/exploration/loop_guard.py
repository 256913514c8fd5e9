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
Loop guard: catches degenerate decision patterns before they execute.

Two bounded windows hold recent signatures:

- tool signatures, e.g. ``broken_image_detector`` or
  ``form_checker:depth=2,selector="#login"``
- action signatures, e.g. ``click:#add-to-cart`` or ``fill:#q:hello``

A candidate is a loop when its signature already appears
``threshold - 1`` times in the matching window. Each check that fires asks
the advisor for a replacement exactly once; the replacement is not re-checked
by the same check. A separate per-URL map remembers which tools already ran on
which page and decides whether a tool-loop correction withholds tools.
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Set

from bugscout.config import LoopGuardConfig
from bugscout.exploration.types import ActionDecision, ActionKind
from bugscout.utils.logger import logger
from bugscout.utils.page_utils import normalize_url

# requery(directive, offer_tools) -> replacement decision
Requery = Callable[[str, bool], Awaitable[ActionDecision]]

MAX_SIGNATURE_VALUE_LENGTH = 50

EMPTY_NAVIGATION_DIRECTIVE = (
    "Your previous choice was a navigate action without a URL. "
    "Choose a different action, or navigate to a concrete URL."
)
ACTION_LOOP_DIRECTIVE = (
    "You have tried the same action multiple times without progress. "
    "Choose a DIFFERENT action on a different element."
)


def tool_signature(name: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """``name`` or ``name:k1=<json>,k2=<json>`` with keys sorted."""
    if not params:
        return name
    parts = [f"{key}={json.dumps(params[key], sort_keys=True, default=str)}" for key in sorted(params)]
    return f"{name}:{','.join(parts)}"


def action_signature(decision: ActionDecision) -> str:
    """``kind[:selector][:value][:tool]`` with the value normalized and truncated."""
    parts = [decision.kind.value]
    if decision.selector:
        parts.append(decision.selector)
    if decision.value:
        normalized = decision.value.lower().replace('"', "").replace("'", "")
        parts.append(normalized[:MAX_SIGNATURE_VALUE_LENGTH])
    if decision.tool_name:
        parts.append(decision.tool_name)
    return ":".join(parts)


@dataclass
class LoopDetection:
    """Result of a single loop check."""

    is_loop: bool
    signature: str = ""
    occurrences: int = 0


@dataclass
class LoopCorrection:
    """A correction applied during validation."""

    check: str  # empty_navigation, tool_loop, action_loop
    rejected: str
    directive: str
    offered_tools: bool = True


@dataclass
class GuardVerdict:
    """The decision to execute plus any corrections made to reach it."""

    decision: ActionDecision
    corrections: List[LoopCorrection] = field(default_factory=list)

    @property
    def corrected(self) -> bool:
        return bool(self.corrections)


class LoopGuard:
    """
    Detects and corrects repeated tool calls and actions.

    Example:
        >>> guard = LoopGuard(LoopGuardConfig(tool_loop_threshold=3))
        >>> verdict = await guard.validate(candidate, requery, url=page_url)
        >>> guard.record(verdict.decision, page_url)
    """

    def __init__(self, config: Optional[LoopGuardConfig] = None) -> None:
        self.config = config or LoopGuardConfig()
        self._tool_window: Deque[str] = deque(maxlen=self.config.tool_history_size)
        self._action_window: Deque[str] = deque(maxlen=self.config.action_history_size)
        self._tools_by_url: Dict[str, Set[str]] = {}
        self._corrections = {"empty_navigation": 0, "tool_loop": 0, "action_loop": 0}

    # Detection

    def detect_tool_loop(self, name: str, params: Optional[Mapping[str, Any]] = None) -> LoopDetection:
        signature = tool_signature(name, params)
        occurrences = self._tool_window.count(signature)
        return LoopDetection(
            is_loop=occurrences >= self.config.tool_loop_threshold - 1,
            signature=signature,
            occurrences=occurrences,
        )

    def detect_action_loop(self, decision: ActionDecision) -> LoopDetection:
        signature = action_signature(decision)
        occurrences = self._action_window.count(signature)
        return LoopDetection(
            is_loop=occurrences >= self.config.action_loop_threshold - 1,
            signature=signature,
            occurrences=occurrences,
        )

    def tool_ran_on(self, url: str, tool_name: str) -> bool:
        return tool_name in self._tools_by_url.get(normalize_url(url), set())

    # Validation

    async def validate(
        self,
        decision: ActionDecision,
        requery: Requery,
        *,
        url: str,
        navigation_hints: Sequence[str] = (),
    ) -> GuardVerdict:
        """
        Check ``decision`` and replace it through ``requery`` when a check fires.

        Checks run in order: empty navigation, tool loop, action loop. At most
        one re-query per check, so at most three per call.
        """
        corrections: List[LoopCorrection] = []

        if decision.kind is ActionKind.NAVIGATE and not (decision.value or "").strip():
            logger.warning("[LoopGuard] Rejected navigate without URL")
            corrections.append(LoopCorrection("empty_navigation", action_signature(decision), EMPTY_NAVIGATION_DIRECTIVE))
            decision = await requery(EMPTY_NAVIGATION_DIRECTIVE, True)

        if decision.kind is ActionKind.INVOKE_TOOL and decision.tool_name:
            detection = self.detect_tool_loop(decision.tool_name, decision.tool_params)
            if detection.is_loop:
                saturated = self.tool_ran_on(url, decision.tool_name)
                directive = self._tool_loop_directive(decision.tool_name, saturated, navigation_hints)
                logger.warning(
                    f"[LoopGuard] Tool loop: '{detection.signature}' seen {detection.occurrences} times"
                    f"{' on this page' if saturated else ''}"
                )
                corrections.append(LoopCorrection("tool_loop", detection.signature, directive, offered_tools=not saturated))
                decision = await requery(directive, not saturated)

        detection = self.detect_action_loop(decision)
        if detection.is_loop:
            logger.warning(f"[LoopGuard] Action loop: '{detection.signature}' seen {detection.occurrences} times")
            corrections.append(LoopCorrection("action_loop", detection.signature, ACTION_LOOP_DIRECTIVE))
            decision = await requery(ACTION_LOOP_DIRECTIVE, True)
            self.reset_action_window()

        for correction in corrections:
            self._corrections[correction.check] += 1

        return GuardVerdict(decision=decision, corrections=corrections)

    def _tool_loop_directive(self, tool_name: str, saturated: bool, navigation_hints: Sequence[str]) -> str:
        if not saturated:
            return (
                f"You have already run the '{tool_name}' tool repeatedly. "
                "Do not run it again now; choose a different action."
            )
        directive = (
            f"The '{tool_name}' tool already ran on this page and no tools are available here any more. "
            "Interact with an untested element or navigate to a new page."
        )
        if navigation_hints:
            directive += " Unvisited pages, best first: " + "; ".join(navigation_hints)
        return directive

    # Recording

    def record(self, decision: ActionDecision, url: str) -> None:
        """Append an accepted decision to the windows and the per-URL tool map."""
        self._action_window.append(action_signature(decision))
        if decision.kind is ActionKind.INVOKE_TOOL and decision.tool_name:
            self._tool_window.append(tool_signature(decision.tool_name, decision.tool_params))
            self._tools_by_url.setdefault(normalize_url(url), set()).add(decision.tool_name)

    def reset_action_window(self) -> None:
        self._action_window.clear()

    def start_page(self) -> None:
        """Clear both windows on a page transition; the per-URL map is kept."""
        self._tool_window.clear()
        self._action_window.clear()

    def reset(self) -> None:
        self.start_page()
        self._tools_by_url.clear()
        for key in self._corrections:
            self._corrections[key] = 0

    def stats(self) -> Dict[str, Any]:
        return {
            "tool_window": list(self._tool_window),
            "action_window_size": len(self._action_window),
            "pages_with_tools": len(self._tools_by_url),
            "corrections": dict(self._corrections),
        }
