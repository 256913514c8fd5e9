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
Per-page exploration context and the page budget evaluator.

``PageExplorationContext`` tracks what happened on the page currently being
explored; it is reset whenever exploration moves to a new page.
``PageBudgetEvaluator`` decides from that context whether to stay or move on.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from bugscout.config import PageBudgetConfig
from bugscout.exploration.types import ActionDecision, ActionKind, PageObservation

Clock = Callable[[], float]

MAX_PAGE_ERRORS = 100

# Element kinds whose selectors count as element interactions
_INTERACTION_KINDS = frozenset({
    ActionKind.CLICK,
    ActionKind.FILL,
    ActionKind.SELECT,
    ActionKind.HOVER,
})


@dataclass
class TrackedAction:
    """An action taken on the current page."""

    decision: ActionDecision
    success: bool
    timestamp: float
    result: str = ""


class PageExplorationContext:
    """
    What has been done on the current page.

    Timestamps come from an injectable monotonic clock so budget checks are
    deterministic under test.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self.url = ""
        self.title = ""
        self.actions: List[TrackedAction] = []
        self.elements_interacted: Set[str] = set()
        self.tools_run: Set[str] = set()
        self.forms_submitted = 0
        self.bugs_found = 0
        self.console_errors: List[str] = []
        self.network_errors: List[str] = []
        self.started_at = clock()

    def start_new_page(self, url: str, title: str = "") -> None:
        """Reset all tracking for a new page visit."""
        self.url = url
        self.title = title
        self.actions = []
        self.elements_interacted = set()
        self.tools_run = set()
        self.forms_submitted = 0
        self.bugs_found = 0
        self.console_errors = []
        self.network_errors = []
        self.started_at = self._clock()

    def record_action(self, decision: ActionDecision, success: bool, result: str = "") -> None:
        self.actions.append(TrackedAction(decision=decision, success=success, timestamp=self._clock(), result=result))

        if decision.kind in _INTERACTION_KINDS and decision.selector:
            self.elements_interacted.add(decision.selector)
        if decision.kind is ActionKind.INVOKE_TOOL and decision.tool_name:
            self.tools_run.add(decision.tool_name)
        if decision.kind is ActionKind.CLICK and _looks_like_submit(decision):
            self.forms_submitted += 1

    def record_bug_found(self) -> None:
        self.bugs_found += 1

    def record_errors(self, observation: PageObservation) -> None:
        """Collect console and network errors seen during this visit, without repeats."""
        for source, target in (
            (observation.console_errors, self.console_errors),
            (observation.network_errors, self.network_errors),
        ):
            for message in source:
                if message not in target and len(target) < MAX_PAGE_ERRORS:
                    target.append(message)

    @property
    def action_count(self) -> int:
        return len(self.actions)

    def elapsed_seconds(self) -> float:
        return self._clock() - self.started_at

    def has_run_tool(self, tool_name: str) -> bool:
        return tool_name in self.tools_run

    def steps_to_reproduce(self) -> List[str]:
        """Numbered reproduction steps for the current page, starting with the visit."""
        steps = [f"1. Navigate to {self.url}"] if self.url else []
        for action in self.actions:
            steps.append(f"{len(steps) + 1}. {_action_as_step(action.decision)}")
        return steps

    def recent_actions_digest(self, limit: int = 5) -> str:
        """Compact summary of the last ``limit`` actions for the advisor prompt."""
        lines = []
        for action in self.actions[-limit:]:
            status = "ok" if action.success else "failed"
            lines.append(f"- {action.decision.describe()} ({status})")
        return "\n".join(lines)

    def stats(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "actions": self.action_count,
            "elements_interacted": len(self.elements_interacted),
            "tools_run": sorted(self.tools_run),
            "forms_submitted": self.forms_submitted,
            "bugs_found": self.bugs_found,
            "elapsed_seconds": round(self.elapsed_seconds(), 3),
        }


@dataclass
class ExitCriteriaResult:
    """Outcome of a page budget evaluation."""

    should_exit: bool
    reason: str
    confidence: float
    completed: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)


class PageBudgetEvaluator:
    """
    Decides when to leave the current page.

    Rules are checked in order and the first match wins:

    1. time on page >= max time            -> exit, "time limit", 1.0
    2. actions on page >= max actions      -> exit, "max actions", 1.0
    3. bugs on page >= exit threshold      -> exit, "sufficient findings", 0.9
    4. required tools run and enough
       distinct elements touched           -> exit, "exit criteria met", 0.8
    5. otherwise                           -> stay, "continue exploring", 0.4
    """

    REASON_TIME_LIMIT = "time limit"
    REASON_MAX_ACTIONS = "max actions"
    REASON_SUFFICIENT_FINDINGS = "sufficient findings"
    REASON_CRITERIA_MET = "exit criteria met"
    REASON_CONTINUE = "continue exploring"

    def __init__(self, config: Optional[PageBudgetConfig] = None) -> None:
        self.config = config or PageBudgetConfig()

    def evaluate(self, context: PageExplorationContext) -> ExitCriteriaResult:
        config = self.config

        if context.elapsed_seconds() >= config.max_time_per_page_seconds:
            return ExitCriteriaResult(True, self.REASON_TIME_LIMIT, 1.0)

        if context.action_count >= config.max_actions_per_page:
            return ExitCriteriaResult(True, self.REASON_MAX_ACTIONS, 1.0)

        if context.bugs_found >= config.exit_after_bugs_found:
            return ExitCriteriaResult(True, self.REASON_SUFFICIENT_FINDINGS, 0.9)

        completed: List[str] = []
        pending: List[str] = []

        missing_tools = [tool for tool in config.required_tools if not context.has_run_tool(tool)]
        if missing_tools:
            pending.append(f"missing tools: {', '.join(missing_tools)}")
        elif config.required_tools:
            completed.append(f"tools: {', '.join(config.required_tools)}")

        elements = len(context.elements_interacted)
        if elements >= config.min_element_interactions:
            completed.append(f"elements: {elements}/{config.min_element_interactions}")
        else:
            pending.append(f"elements: {elements}/{config.min_element_interactions}")

        if not pending:
            return ExitCriteriaResult(True, self.REASON_CRITERIA_MET, 0.8, completed=completed)
        return ExitCriteriaResult(False, self.REASON_CONTINUE, 0.4, completed=completed, pending=pending)

    def suggestions(self, context: PageExplorationContext, observation: Optional[PageObservation] = None) -> List[str]:
        """Turn unmet completeness criteria into hints for the advisor."""
        hints: List[str] = []

        for tool in self.config.required_tools:
            if not context.has_run_tool(tool):
                hints.append(f"Run the '{tool}' tool on this page.")

        remaining = self.config.min_element_interactions - len(context.elements_interacted)
        if remaining > 0:
            untouched = []
            if observation is not None:
                untouched = [
                    el.selector for el in observation.elements
                    if el.selector not in context.elements_interacted and el.is_visible
                ][:3]
            hint = f"Interact with {remaining} more element(s) on this page."
            if untouched:
                hint += f" Candidates: {', '.join(untouched)}"
            hints.append(hint)

        actions_left = self.config.max_actions_per_page - context.action_count
        if 0 < actions_left <= 2:
            hints.append(f"Only {actions_left} action(s) left on this page; prioritize untested areas.")

        return hints


def _looks_like_submit(decision: ActionDecision) -> bool:
    text = f"{decision.selector or ''} {decision.reasoning}".lower()
    return "submit" in text


def _action_as_step(decision: ActionDecision) -> str:
    kind = decision.kind
    if kind is ActionKind.NAVIGATE:
        return f"Navigate to {decision.value}"
    if kind is ActionKind.CLICK:
        return f"Click on {decision.selector}"
    if kind is ActionKind.FILL:
        return f"Enter '{decision.value or ''}' into {decision.selector}"
    if kind is ActionKind.SELECT:
        return f"Select '{decision.value or ''}' in {decision.selector}"
    if kind is ActionKind.HOVER:
        return f"Hover over {decision.selector}"
    if kind is ActionKind.INVOKE_TOOL:
        return f"Run the {decision.tool_name} check"
    if kind is ActionKind.BACK:
        return "Go back"
    if kind is ActionKind.REFRESH:
        return "Refresh the page"
    return f"Scroll {decision.value or 'down'}"
