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
Step state machine: drives one exploration session step by step.

Each step moves through a fixed sequence of phases:

    OBSERVE -> DECIDE -> VALIDATE -> EXECUTE -> INTAKE_FINDINGS -> CHECK_EXIT
        -> CONTINUE_PAGE | ADVANCE_PAGE -> OBSERVE ...

and ends in DONE or ERROR. Every move is checked against ``TRANSITIONS``.
Phases run strictly one after another; the only concurrency is awaiting the
browser, the advisor gateway and the finding sink. Shutdown requests are
honored at the start of a step, never in the middle of one.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, FrozenSet, List, Optional

from bugscout.config import ExplorationConfig
from bugscout.exceptions import (
    BrowserError,
    InvalidTransitionError,
    LLMProviderError,
    NoAdvisorAvailableError,
    SessionStateError,
)
from bugscout.exploration.events import ExplorationResult, ProgressEvent
from bugscout.exploration.loop_guard import LoopGuard
from bugscout.exploration.page_context import (
    ExitCriteriaResult,
    PageBudgetEvaluator,
    PageExplorationContext,
)
from bugscout.exploration.ports import (
    BrowserPort,
    FindingSink,
    SessionStore,
    SuggestionProvider,
    ToolContext,
    ToolInvoker,
)
from bugscout.exploration.session import ExplorationSession
from bugscout.exploration.types import (
    ActionDecision,
    ActionKind,
    ActionOutcome,
    Finding,
    PageObservation,
    SessionStatus,
    StopReason,
    TokenUsage,
    ToolResult,
)
from bugscout.exploration.url_discovery import URLDiscovery
from bugscout.llm.base import AdvisorResponse, DecisionRequest
from bugscout.llm.gateway import DecisionGateway
from bugscout.shutdown import ShutdownController
from bugscout.utils.logger import logger
from bugscout.utils.page_utils import resolve_href, urls_equivalent

ProgressCallback = Callable[[ProgressEvent], Any]

MAX_FINDING_TITLE_LENGTH = 100


class StepState(str, Enum):
    """Phases of an exploration step."""

    OBSERVE = "observe"
    DECIDE = "decide"
    VALIDATE = "validate"
    EXECUTE = "execute"
    INTAKE_FINDINGS = "intake_findings"
    CHECK_EXIT = "check_exit"
    CONTINUE_PAGE = "continue_page"
    ADVANCE_PAGE = "advance_page"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StepState.DONE, StepState.ERROR)


TRANSITIONS: Dict[StepState, FrozenSet[StepState]] = {
    StepState.OBSERVE: frozenset({StepState.DECIDE, StepState.DONE, StepState.ERROR}),
    StepState.DECIDE: frozenset({StepState.VALIDATE, StepState.DONE, StepState.ERROR}),
    StepState.VALIDATE: frozenset({StepState.EXECUTE, StepState.DONE, StepState.ERROR}),
    StepState.EXECUTE: frozenset({StepState.INTAKE_FINDINGS, StepState.ERROR}),
    StepState.INTAKE_FINDINGS: frozenset({StepState.CHECK_EXIT, StepState.ERROR}),
    StepState.CHECK_EXIT: frozenset({
        StepState.CONTINUE_PAGE,
        StepState.ADVANCE_PAGE,
        StepState.DONE,
        StepState.ERROR,
    }),
    StepState.CONTINUE_PAGE: frozenset({StepState.OBSERVE, StepState.ERROR}),
    StepState.ADVANCE_PAGE: frozenset({StepState.OBSERVE, StepState.ERROR}),
    StepState.DONE: frozenset(),
    StepState.ERROR: frozenset(),
}


@dataclass
class _RunState:
    """Working state of a single ``run()`` call."""

    session: ExplorationSession
    started_at: float
    recent_actions: Deque[str]
    observation: Optional[PageObservation] = None
    candidate: Optional[ActionDecision] = None
    decision: Optional[ActionDecision] = None
    tool_findings: List[Finding] = field(default_factory=list)
    exit_result: Optional[ExitCriteriaResult] = None
    stop_reason: Optional[StopReason] = None
    error: Optional[BaseException] = None
    findings: List[Finding] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)


class ExplorationStateMachine:
    """
    Sequences observation, decision, validation, execution, finding intake and
    exit evaluation for one session at a time.

    All collaborators are injected. Optional ones (session store, suggestion
    provider, URL discovery, shutdown controller, progress callback) are simply
    skipped when absent.

    Example:
        >>> machine = ExplorationStateMachine(
        ...     browser=browser,
        ...     gateway=gateway,
        ...     loop_guard=LoopGuard(config.loop_guard),
        ...     budget=PageBudgetEvaluator(config.page_budget),
        ...     tools=registry,
        ...     finding_sink=sink,
        ...     config=config,
        ... )
        >>> result = await machine.run(ExplorationSession.create("https://shop.example"))
    """

    def __init__(
        self,
        browser: BrowserPort,
        gateway: DecisionGateway,
        loop_guard: LoopGuard,
        budget: PageBudgetEvaluator,
        tools: ToolInvoker,
        finding_sink: FindingSink,
        session_store: Optional[SessionStore] = None,
        suggestions: Optional[SuggestionProvider] = None,
        url_discovery: Optional[URLDiscovery] = None,
        config: Optional[ExplorationConfig] = None,
        shutdown: Optional[ShutdownController] = None,
        progress_callback: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._browser = browser
        self._gateway = gateway
        self._loop_guard = loop_guard
        self._budget = budget
        self._tools = tools
        self._sink = finding_sink
        self._store = session_store
        self._suggestions = suggestions
        self._url_discovery = url_discovery
        self.config = config or ExplorationConfig()
        self._shutdown = shutdown
        self._progress_callback = progress_callback
        self._clock = clock
        self._sleep = sleep

        self._page = PageExplorationContext(clock)
        self._state = StepState.OBSERVE
        self._trace: List[StepState] = []
        self._handlers = {
            StepState.OBSERVE: self._observe,
            StepState.DECIDE: self._decide,
            StepState.VALIDATE: self._validate,
            StepState.EXECUTE: self._execute,
            StepState.INTAKE_FINDINGS: self._intake_findings,
            StepState.CHECK_EXIT: self._check_exit,
            StepState.CONTINUE_PAGE: self._continue_page,
            StepState.ADVANCE_PAGE: self._advance_page,
        }

    @property
    def state(self) -> StepState:
        return self._state

    @property
    def trace(self) -> List[StepState]:
        """States entered during the last run, in order."""
        return list(self._trace)

    @property
    def page_context(self) -> PageExplorationContext:
        return self._page

    # Driver

    async def run(self, session: ExplorationSession) -> ExplorationResult:
        """
        Drive ``session`` until DONE or ERROR.

        Raises:
            SessionStateError: If the session has already ended
        """
        self._prepare_session(session)

        run = _RunState(
            session=session,
            started_at=self._clock(),
            recent_actions=deque(maxlen=self.config.max_recent_actions),
        )
        self._page = PageExplorationContext(self._clock)
        self._loop_guard.reset()
        if self._url_discovery is not None:
            self._url_discovery.set_origin(session.config.target_url)

        self._state = StepState.OBSERVE
        self._trace = [StepState.OBSERVE]
        logger.info(
            f"[StateMachine] Session {session.id} exploring {session.config.target_url} "
            f"(max {session.config.max_steps} steps)"
        )

        try:
            try:
                await self._open_start_page(session)
            except Exception as e:
                self._enter(self._fail(run, e))

            while not self._state.is_terminal:
                handler = self._handlers[self._state]
                try:
                    next_state = await handler(run)
                except (asyncio.CancelledError, InvalidTransitionError):
                    raise
                except Exception as e:
                    next_state = self._fail(run, e)
                self._enter(next_state)
        except asyncio.CancelledError:
            logger.warning(f"[StateMachine] Session {session.id} cancelled; saving checkpoint")
            run.stop_reason = StopReason.STOPPED_BY_USER
            await self._finish(run)
            raise

        return await self._finish(run)

    def _prepare_session(self, session: ExplorationSession) -> None:
        if session.status is SessionStatus.IDLE:
            session.start()
        elif session.status is SessionStatus.PAUSED:
            session.resume()
        elif session.status is not SessionStatus.RUNNING:
            raise SessionStateError(f"Session {session.id} has already ended ({session.status.value})")

    async def _open_start_page(self, session: ExplorationSession) -> None:
        start_url = session.current_url or session.config.target_url
        outcome = await self._perform(ActionDecision(kind=ActionKind.NAVIGATE, value=start_url), base_url=start_url)
        if not outcome.success:
            logger.warning(f"[StateMachine] Could not open {start_url}: {outcome.error}")

    def _enter(self, next_state: StepState) -> None:
        if next_state not in TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"Illegal transition {self._state.value} -> {next_state.value}")
        logger.debug(f"[StateMachine] {self._state.value} -> {next_state.value}")
        self._state = next_state
        self._trace.append(next_state)

    def _fail(self, run: _RunState, error: Exception) -> StepState:
        if isinstance(error, NoAdvisorAvailableError):
            logger.error(f"[StateMachine] {self._state.value} failed: {error}")
        else:
            logger.error(f"[StateMachine] {self._state.value} failed: {error}", exc_info=True)
        run.error = error
        run.stop_reason = StopReason.ERROR
        return StepState.ERROR

    # Phases

    async def _observe(self, run: _RunState) -> StepState:
        if self._shutdown is not None and self._shutdown.requested:
            logger.info(f"[StateMachine] Stopping between steps: {self._shutdown.reason}")
            run.stop_reason = StopReason.STOPPED_BY_USER
            return StepState.DONE

        raw = await asyncio.wait_for(
            self._browser.extract_observation(),
            timeout=self.config.observation_timeout_seconds,
        )
        if self._url_discovery is not None:
            self._url_discovery.add_from_observation(raw)
            self._url_discovery.mark_visited(raw.url)

        observation = raw.truncated(self.config.max_visible_text, self.config.max_interactive_elements)
        run.observation = observation
        run.session.mark_visited(observation.url)

        if not urls_equivalent(observation.url, self._page.url):
            if self._page.url:
                logger.info(
                    f"[StateMachine] Moved from {self._page.url} to {observation.url} "
                    f"after {self._page.action_count} actions"
                )
            self._page.start_new_page(observation.url, observation.title)
            self._loop_guard.start_page()

        self._page.record_errors(raw)
        return StepState.DECIDE

    async def _decide(self, run: _RunState) -> StepState:
        if run.session.has_reached_max_steps():
            run.stop_reason = StopReason.MAX_STEPS_REACHED
            return StepState.DONE

        response = await self._request_decision(run, self._build_request(run))
        run.candidate = response.decision

        if response.decision.kind is ActionKind.DONE:
            logger.info(f"[StateMachine] Advisor ended exploration: {response.decision.reasoning}")
            run.stop_reason = StopReason.EXPLICIT_DONE
            return StepState.DONE
        return StepState.VALIDATE

    async def _validate(self, run: _RunState) -> StepState:
        async def requery(directive: str, offer_tools: bool) -> ActionDecision:
            request = self._build_request(run, directive=directive, offer_tools=offer_tools)
            response = await self._gateway.request_decision(request)
            run.token_usage.add(response.usage)
            return response.decision

        url = run.observation.url
        verdict = await self._loop_guard.validate(
            run.candidate,
            requery,
            url=url,
            navigation_hints=self._navigation_hints(),
        )
        decision = verdict.decision

        if decision.kind is ActionKind.DONE:
            logger.info(f"[StateMachine] Corrected decision ended exploration: {decision.reasoning}")
            run.stop_reason = StopReason.EXPLICIT_DONE
            return StepState.DONE

        self._loop_guard.record(decision, url)
        run.decision = decision
        return StepState.EXECUTE

    async def _execute(self, run: _RunState) -> StepState:
        session = run.session
        decision = run.decision
        started = self._clock()

        run.tool_findings = []
        if decision.kind is ActionKind.INVOKE_TOOL:
            result = await self._invoke_tool(run, decision)
            success, error = result.success, result.error
            run.tool_findings = list(result.findings)
        else:
            outcome = await self._perform(decision, base_url=run.observation.url)
            success, error = outcome.success, outcome.error

        resulting_url = await self._browser.current_url()
        duration_ms = (self._clock() - started) * 1000

        entry = session.record_step(decision, success, resulting_url, duration_ms, error)
        self._page.record_action(decision, success, error or "")
        run.recent_actions.append(decision.describe())

        status = "ok" if success else f"failed: {error}"
        logger.info(f"[StateMachine] Step {entry.step}: {decision.describe()} -> {status}")
        return StepState.INTAKE_FINDINGS

    async def _intake_findings(self, run: _RunState) -> StepState:
        session = run.session
        observation = run.observation
        candidates = list(run.tool_findings)

        for issue in run.decision.observed_issues:
            candidates.append(Finding.create(
                title=issue.strip()[:MAX_FINDING_TITLE_LENGTH],
                description=issue,
                page_url=observation.url,
                finding_type="observed_issue",
                source="advisor",
            ))

        for finding in candidates:
            finding.step_number = session.current_step
            if not finding.steps_to_reproduce:
                finding.steps_to_reproduce = self._page.steps_to_reproduce()
            if await self._route_finding(finding):
                session.add_finding(finding.id)
                self._page.record_bug_found()
                run.findings.append(finding)

        await self._after_step(run)
        return StepState.CHECK_EXIT

    async def _check_exit(self, run: _RunState) -> StepState:
        session = run.session

        if session.has_reached_max_steps():
            logger.info(f"[StateMachine] Step ceiling reached ({session.config.max_steps})")
            run.stop_reason = StopReason.MAX_STEPS_REACHED
            return StepState.DONE

        max_duration = session.config.max_duration_seconds
        if max_duration and self._clock() - run.started_at >= max_duration:
            logger.info(f"[StateMachine] Duration ceiling reached ({max_duration}s)")
            run.stop_reason = StopReason.MAX_STEPS_REACHED
            return StepState.DONE

        result = self._budget.evaluate(self._page)
        run.exit_result = result
        if result.should_exit:
            return StepState.ADVANCE_PAGE
        return StepState.CONTINUE_PAGE

    async def _continue_page(self, run: _RunState) -> StepState:
        return StepState.OBSERVE

    async def _advance_page(self, run: _RunState) -> StepState:
        result = run.exit_result
        logger.info(
            f"[StateMachine] Leaving {self._page.url}: {result.reason} "
            f"(confidence {result.confidence:.1f}, {self._page.stats()})"
        )

        self._page.start_new_page(self._page.url, self._page.title)
        self._loop_guard.start_page()

        if not self.config.advance_to_unvisited or self._url_discovery is None:
            return StepState.OBSERVE

        target = self._url_discovery.next_target()
        if target is None:
            logger.info("[StateMachine] No unvisited pages left; staying on the current page")
            return StepState.OBSERVE

        # Marked first so a page that fails to load is not chosen again
        self._url_discovery.mark_visited(target.url)
        outcome = await self._perform(ActionDecision(kind=ActionKind.NAVIGATE, value=target.url), base_url=target.url)
        if outcome.success:
            logger.info(f"[StateMachine] Advanced to {target.url} [{target.category.value}]")
        else:
            logger.warning(f"[StateMachine] Could not advance to {target.url}: {outcome.error}")
        return StepState.OBSERVE

    # Helpers

    def _build_request(
        self,
        run: _RunState,
        directive: Optional[str] = None,
        offer_tools: bool = True,
    ) -> DecisionRequest:
        observation = run.observation
        suggestions: List[str] = []
        if self._suggestions is not None:
            suggestions = list(self._suggestions.suggest(observation))[: self.config.max_suggestions]

        return DecisionRequest(
            observation=observation,
            objective=run.session.config.objective,
            history=run.session.recent_history(self.config.max_recent_actions),
            tools=self._tools.definitions() if offer_tools else [],
            directive=directive,
            suggestions=suggestions,
            page_hints=self._budget.suggestions(self._page, observation),
            navigation_hints=self._navigation_hints(),
            recent_page_actions=self._page.recent_actions_digest(),
        )

    def _navigation_hints(self) -> List[str]:
        if self._url_discovery is None:
            return []
        return self._url_discovery.navigation_hints(limit=self.config.max_navigation_hints)

    async def _request_decision(self, run: _RunState, request: DecisionRequest) -> AdvisorResponse:
        """Ask the gateway, retrying transient failures with exponential backoff."""
        delay = self.config.decision_retry_delay_seconds
        attempt = 0
        while True:
            try:
                response = await self._gateway.request_decision(request)
            except NoAdvisorAvailableError:
                raise
            except LLMProviderError as e:
                if attempt >= self.config.decision_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"[StateMachine] Advisor call failed ({e}); retry {attempt}/{self.config.decision_retries} "
                    f"in {delay:.1f}s"
                )
                await self._sleep(delay)
                delay *= 2
                continue
            run.token_usage.add(response.usage)
            return response

    async def _perform(self, decision: ActionDecision, base_url: str) -> ActionOutcome:
        """Run a browser action; timeouts and browser errors become failed outcomes."""
        kind = decision.kind
        browser = self._browser

        if kind is ActionKind.NAVIGATE:
            action = browser.navigate(resolve_href(base_url, decision.value or ""))
        elif kind is ActionKind.CLICK:
            action = browser.click(decision.selector)
        elif kind is ActionKind.FILL:
            action = browser.fill(decision.selector, decision.value or "")
        elif kind is ActionKind.SELECT:
            action = browser.select(decision.selector, decision.value or "")
        elif kind is ActionKind.HOVER:
            action = browser.hover(decision.selector)
        elif kind is ActionKind.SCROLL:
            action = browser.scroll(decision.value or "down")
        elif kind is ActionKind.BACK:
            action = browser.go_back()
        elif kind is ActionKind.REFRESH:
            action = browser.refresh()
        else:
            return ActionOutcome(success=False, error=f"{kind.value} is not a browser action")

        try:
            return await asyncio.wait_for(action, timeout=self.config.action_timeout_seconds)
        except asyncio.TimeoutError:
            return ActionOutcome(success=False, error=f"{kind.value} timed out after {self.config.action_timeout_seconds}s")
        except BrowserError as e:
            return ActionOutcome(success=False, error=str(e))

    async def _invoke_tool(self, run: _RunState, decision: ActionDecision) -> ToolResult:
        context = ToolContext(
            browser=self._browser,
            page_url=run.observation.url,
            session_id=run.session.id,
            step=len(run.session.history) + 1,
            console_errors=list(self._page.console_errors),
            network_errors=list(self._page.network_errors),
        )
        try:
            return await asyncio.wait_for(
                self._tools.invoke(decision.tool_name, dict(decision.tool_params), context),
                timeout=self.config.action_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return ToolResult.error_result(f"Tool '{decision.tool_name}' timed out")

    async def _route_finding(self, finding: Finding) -> bool:
        """Send a finding to the sink; returns True if it was accepted."""
        try:
            existing = await self._sink.is_duplicate(finding.title, finding.page_url)
            if existing:
                logger.debug(f"[StateMachine] Duplicate finding '{finding.title}' (matches {existing})")
                return False
            # Registered only after a successful save
            await self._sink.save(finding)
            await self._sink.register(finding)
        except Exception as e:
            logger.warning(f"[StateMachine] Finding sink failed for '{finding.title}': {e}", exc_info=True)
            return False

        logger.info(f"[StateMachine] Finding [{finding.severity.value}] {finding.title}")
        return True

    async def _after_step(self, run: _RunState) -> None:
        session = run.session
        step = session.current_step
        if step and step % self.config.progress_interval == 0:
            await self._emit_progress(run)
        if step and step % session.config.checkpoint_interval == 0:
            await self._checkpoint(session)

    async def _emit_progress(self, run: _RunState) -> None:
        session = run.session
        event = ProgressEvent(
            step=session.current_step,
            max_steps=session.config.max_steps,
            url=run.observation.url if run.observation else session.current_url,
            findings_count=session.finding_count,
            recent_actions=list(run.recent_actions),
            pages_visited=len(session.visited_urls),
        )
        logger.info(
            f"[StateMachine] Progress: step {event.step}/{event.max_steps}, "
            f"{event.findings_count} findings, {event.pages_visited} pages"
        )
        if self._progress_callback is None:
            return
        try:
            outcome = self._progress_callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"[StateMachine] Progress callback failed: {e}")

    async def _checkpoint(self, session: ExplorationSession) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(session)
            logger.debug(f"[StateMachine] Checkpoint saved at step {session.current_step}")
        except Exception as e:
            logger.warning(f"[StateMachine] Checkpoint failed for session {session.id}: {e}")

    async def _summarize(self, run: _RunState) -> str:
        session = run.session
        # No new advisor calls once the run failed or is shutting down
        if run.stop_reason in (StopReason.ERROR, StopReason.STOPPED_BY_USER):
            return session.summary()
        if not self.config.generate_summary or not session.history:
            return session.summary()
        try:
            return await self._gateway.summarize(session.history, run.findings) or session.summary()
        except (LLMProviderError, asyncio.TimeoutError) as e:
            logger.warning(f"[StateMachine] Summary generation failed: {e}")
            return session.summary()

    async def _finish(self, run: _RunState) -> ExplorationResult:
        session = run.session
        reason = run.stop_reason or StopReason.COMPLETED
        error_text = (str(run.error) or run.error.__class__.__name__) if run.error else None

        if reason is StopReason.STOPPED_BY_USER and session.is_running:
            session.interrupt(reason)
        elif not session.status.is_terminal:
            session.end(reason, error=error_text)

        summary = await self._summarize(run)
        await self._checkpoint(session)

        duration = self._clock() - run.started_at
        logger.info(
            f"[StateMachine] Session {session.id} finished: {reason.value} after "
            f"{len(session.history)} steps, {len(run.findings)} findings, {duration:.1f}s"
        )
        return ExplorationResult(
            session_id=session.id,
            total_steps=len(session.history),
            duration_seconds=duration,
            stopped_reason=reason,
            findings=list(run.findings),
            history=list(session.history),
            token_usage=run.token_usage,
            error=error_text,
            pages_visited=list(session.visited_urls),
            summary=summary,
        )
