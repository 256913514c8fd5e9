# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for ExplorationStateMachine driving whole sessions against fakes."""

import asyncio
from dataclasses import replace

import pytest

from bugscout.config import PageBudgetConfig
from bugscout.exceptions import LLMProviderError, PageExtractError, SessionStateError
from bugscout.exploration.state_machine import TRANSITIONS, StepState
from bugscout.exploration.types import ActionKind, SessionStatus, StopReason
from bugscout.llm.config import CircuitBreakerConfig
from bugscout.shutdown import ShutdownController
from bugscout.utils.page_utils import normalize_url

HOME = "https://shop.example.com/"
LOGIN = "https://shop.example.com/login"
PRODUCTS = "https://shop.example.com/products"


def assert_legal(trace):
    for current, following in zip(trace, trace[1:]):
        assert following in TRANSITIONS[current], f"{current} -> {following}"


class TestTransitionTable:
    """Tests for the static transition table."""

    def test_every_live_state_can_fail(self):
        """Test every non-terminal state may move to ERROR."""
        for state, targets in TRANSITIONS.items():
            if not state.is_terminal:
                assert StepState.ERROR in targets

    def test_terminal_states_have_no_exits(self):
        """Test DONE and ERROR have no outgoing transitions."""
        assert TRANSITIONS[StepState.DONE] == frozenset()
        assert TRANSITIONS[StepState.ERROR] == frozenset()

    def test_execute_always_reaches_intake(self):
        """Test EXECUTE only leads to finding intake or ERROR."""
        assert TRANSITIONS[StepState.EXECUTE] == frozenset({StepState.INTAKE_FINDINGS, StepState.ERROR})


@pytest.mark.asyncio
class TestRunToCompletion:
    """Tests for sessions that end normally."""

    async def test_runs_exactly_max_steps(self, make_machine, backend_factory, new_session, session_store):
        """Test a run stops at the step ceiling and checkpoints completion."""
        machine = make_machine([backend_factory("a")])
        session = new_session(max_steps=5)

        result = await machine.run(session)

        assert result.stopped_reason is StopReason.MAX_STEPS_REACHED
        assert result.total_steps == 5
        assert [entry.step for entry in result.history] == [1, 2, 3, 4, 5]
        assert result.success
        assert session.status is SessionStatus.COMPLETED
        assert session_store.checkpoints[-1]["status"] == "completed"
        assert result.summary == session.summary()

    async def test_trace_follows_transition_table(self, make_machine, backend_factory, new_session):
        """Test the recorded trace only uses legal transitions."""
        machine = make_machine([backend_factory("a")])

        await machine.run(new_session(max_steps=2))

        trace = machine.trace
        assert trace[:8] == [
            StepState.OBSERVE,
            StepState.DECIDE,
            StepState.VALIDATE,
            StepState.EXECUTE,
            StepState.INTAKE_FINDINGS,
            StepState.CHECK_EXIT,
            StepState.CONTINUE_PAGE,
            StepState.OBSERVE,
        ]
        assert trace[-2:] == [StepState.CHECK_EXIT, StepState.DONE]
        assert trace.count(StepState.EXECUTE) == 2
        assert machine.state is StepState.DONE
        assert_legal(trace)

    async def test_explicit_done(self, make_machine, backend_factory, decision, new_session):
        """Test an advisor done ends the run before any step."""
        backend = backend_factory("a", [decision("done", reasoning="Everything covered")])
        machine = make_machine([backend])
        session = new_session()

        result = await machine.run(session)

        assert result.stopped_reason is StopReason.EXPLICIT_DONE
        assert result.total_steps == 0
        assert machine.trace == [StepState.OBSERVE, StepState.DECIDE, StepState.DONE]
        assert session.status is SessionStatus.COMPLETED
        assert result.token_usage.total_tokens == 15

    async def test_unparsable_advice_ends_session(self, make_machine, backend_factory, new_session):
        """Test unparsable advice ends the run as done."""
        machine = make_machine([backend_factory("a", ["Let me think about it..."])])

        result = await machine.run(new_session())

        assert result.stopped_reason is StopReason.EXPLICIT_DONE
        assert result.total_steps == 0

    async def test_duration_ceiling(self, make_machine, backend_factory, new_session, exploration_config, clock):
        """Test the run stops once the duration ceiling passes."""
        config = replace(exploration_config, progress_interval=1)
        machine = make_machine(
            [backend_factory("a")],
            config=config,
            progress_callback=lambda event: clock.advance(10),
        )

        result = await machine.run(new_session(max_duration_seconds=5))

        assert result.total_steps == 1
        assert result.stopped_reason is StopReason.MAX_STEPS_REACHED

    async def test_generated_summary(self, make_machine, backend_factory, new_session, exploration_config):
        """Test the advisor writes the summary when enabled."""
        backend = backend_factory("a")
        machine = make_machine([backend], config=replace(exploration_config, generate_summary=True))

        result = await machine.run(new_session(max_steps=1))

        assert result.summary == "Explored the shop and found issues."
        assert backend.summary_calls == 1

    async def test_refuses_ended_session(self, make_machine, backend_factory, new_session):
        """Test an ended session cannot be run again."""
        session = new_session()
        session.start()
        session.end(StopReason.COMPLETED)

        with pytest.raises(SessionStateError):
            await make_machine([backend_factory("a")]).run(session)

    async def test_resumes_paused_session_at_current_url(self, make_machine, backend_factory, new_session, browser):
        """Test a paused session resumes by navigating to its current URL."""
        session = new_session(max_steps=1)
        session.start()
        session.pause()
        session.current_url = PRODUCTS

        result = await make_machine([backend_factory("a")]).run(session)

        assert browser.actions[0] == ("navigate", PRODUCTS)
        assert result.history[0].resulting_url == PRODUCTS
        assert session.status is SessionStatus.COMPLETED


@pytest.mark.asyncio
class TestFindings:
    """Tests for finding intake."""

    async def test_observed_issue_becomes_finding(self, make_machine, backend_factory, decision, new_session, sink):
        """Test observed issues become findings and repeats are dropped."""
        backend = backend_factory("a", [
            decision("scroll", value="down", observedIssues=["Price shows NaN"]),
            decision("scroll", value="up", observedIssues=["Price shows NaN"]),
        ])
        session = new_session(max_steps=2)

        result = await make_machine([backend]).run(session)

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.title == "Price shows NaN"
        assert finding.source == "advisor"
        assert finding.step_number == 1
        assert finding.page_url == HOME
        assert finding.steps_to_reproduce == [f"1. Navigate to {HOME}", "2. Scroll down"]
        assert session.finding_ids == [finding.id]
        assert session.history[0].finding_ids == [finding.id]
        assert sink.saved == [finding]

    async def test_long_issue_title_is_truncated(self, make_machine, backend_factory, decision, new_session):
        """Test long issue titles are cut while the description keeps the full text."""
        issue = "Layout broken " + "x" * 200
        backend = backend_factory("a", [decision("scroll", observedIssues=[issue])])

        result = await make_machine([backend]).run(new_session(max_steps=1))

        assert len(result.findings[0].title) == 100
        assert result.findings[0].description == issue

    async def test_tool_findings(self, make_machine, backend_factory, decision, new_session, browser):
        """Test tool findings are stamped with the step and counted on the page."""
        browser.images = [{"src": "/img/logo.png", "alt": "Logo", "selector": "#logo",
                           "complete": True, "naturalWidth": 0, "naturalHeight": 0, "visible": True}]
        backend = backend_factory("a", [decision("tool", toolName="broken_image_detector")])
        machine = make_machine([backend])

        result = await machine.run(new_session(max_steps=1))

        assert result.history[0].success
        assert result.history[0].decision.kind is ActionKind.INVOKE_TOOL
        assert [f.title for f in result.findings] == ["Broken image: Logo"]
        assert result.findings[0].source == "broken_image_detector"
        assert result.findings[0].step_number == 1
        assert machine.page_context.has_run_tool("broken_image_detector")
        assert machine.page_context.bugs_found == 1

    async def test_page_errors_reach_analyzer_tools(
        self, make_machine, backend_factory, decision, new_session, browser, page_factory
    ):
        """Test errors collected on the page are handed to the analyzer tools."""
        browser.pages[normalize_url(HOME)] = page_factory(
            HOME,
            title="Shop",
            console_errors=["Uncaught: TypeError: cart is undefined"],
            network_errors=["500 POST https://shop.example.com/api/cart"],
        )
        backend = backend_factory("a", [
            decision("scroll"),
            decision("tool", toolName="console_error_analyzer"),
            decision("tool", toolName="network_error_analyzer"),
        ])
        machine = make_machine([backend])

        result = await machine.run(new_session(max_steps=3))

        assert machine.page_context.console_errors == ["Uncaught: TypeError: cart is undefined"]
        assert [(f.title, f.source, f.step_number) for f in result.findings] == [
            ("JavaScript Error: TypeError: cart is undefined", "console_error_analyzer", 2),
            ("HTTP 500 from https://shop.example.com/api/cart", "network_error_analyzer", 3),
        ]
        assert all(f.severity.value == "critical" for f in result.findings)

    async def test_unknown_tool_is_a_failed_step(self, make_machine, backend_factory, decision, new_session):
        """Test an unknown tool fails the step without ending the run."""
        backend = backend_factory("a", [decision("tool", toolName="form_checker")])

        result = await make_machine([backend]).run(new_session(max_steps=1))

        assert not result.history[0].success
        assert "Unknown tool 'form_checker'" in result.history[0].error

    async def test_sink_failure_is_not_fatal(
        self, make_machine, backend_factory, decision, new_session, sink_factory
    ):
        """Test a failing sink drops the finding but keeps the run going."""
        failing_sink = sink_factory(fail_on_save=True)
        backend = backend_factory("a", [decision("scroll", observedIssues=["Footer overlaps content"])])
        session = new_session(max_steps=2)

        result = await make_machine([backend], finding_sink=failing_sink).run(session)

        assert result.stopped_reason is StopReason.MAX_STEPS_REACHED
        assert result.total_steps == 2
        assert result.findings == []
        assert session.finding_ids == []
        assert failing_sink.save_attempts == 1

    async def test_finding_is_accepted_after_failed_save(
        self, make_machine, backend_factory, decision, new_session, sink_factory, exploration_config
    ):
        """Test a finding whose save failed is not registered and can be saved later."""
        flaky_sink = sink_factory(fail_on_save=True)
        backend = backend_factory("a", [
            decision("scroll", value="down", observedIssues=["Footer overlaps content"]),
            decision("scroll", value="up", observedIssues=["Footer overlaps content"]),
        ])

        def on_progress(event):
            flaky_sink.fail_on_save = False

        config = replace(exploration_config, progress_interval=1)
        machine = make_machine([backend], config=config, finding_sink=flaky_sink, progress_callback=on_progress)

        result = await machine.run(new_session(max_steps=2))

        assert flaky_sink.save_attempts == 2
        assert [f.title for f in result.findings] == ["Footer overlaps content"]
        assert result.findings[0].step_number == 2
        assert len(flaky_sink) == 1


class FixedSuggestions:
    """Suggestion provider returning a fixed list and remembering what it saw."""

    def __init__(self, ideas):
        self.ideas = ideas
        self.seen = []

    def suggest(self, observation):
        self.seen.append(observation.url)
        return self.ideas


@pytest.mark.asyncio
class TestSuggestions:
    """Tests for external suggestions feeding the decision request."""

    async def test_suggestions_reach_request_and_are_capped(
        self, make_machine, backend_factory, new_session, exploration_config
    ):
        """Test suggestions are passed to the advisor, capped at max_suggestions."""
        ideas = [f"Try idea {i}" for i in range(8)]
        provider = FixedSuggestions(ideas)
        backend = backend_factory("a")
        config = replace(exploration_config, max_suggestions=3)

        await make_machine([backend], config=config, suggestions=provider).run(new_session(max_steps=2))

        assert backend.requests[0].suggestions == ideas[:3]
        assert all(request.suggestions == ideas[:3] for request in backend.requests)
        assert provider.seen[0] == HOME

    async def test_no_provider_means_no_suggestions(self, make_machine, backend_factory, new_session):
        """Test requests carry an empty suggestion list without a provider."""
        backend = backend_factory("a")

        await make_machine([backend]).run(new_session(max_steps=1))

        assert backend.requests[0].suggestions == []


@pytest.mark.asyncio
class TestFailures:
    """Tests for advisor and browser failures."""

    async def test_no_advisor_available_ends_in_error(
        self, make_machine, backend_factory, new_session, exploration_config, session_store
    ):
        """Test open circuits end the run in error with a final checkpoint."""
        config = replace(exploration_config, breaker=CircuitBreakerConfig(failure_threshold=1))
        backend = backend_factory("a", default=LLMProviderError("service unavailable"))
        session = new_session()

        result = await make_machine([backend], config=config).run(session)

        assert result.stopped_reason is StopReason.ERROR
        assert not result.success
        assert "all circuits are open" in result.error
        assert backend.calls == 1
        assert session.status is SessionStatus.ERROR
        assert session_store.checkpoints[-1]["status"] == "error"
        assert session_store.checkpoints[-1]["error"] == result.error
        assert result.total_steps == 0

    async def test_transient_failures_are_retried_with_backoff(
        self, make_machine, backend_factory, decision, new_session, exploration_config
    ):
        """Test advisor failures are retried with doubling delays."""
        delays = []

        async def record_sleep(seconds):
            delays.append(seconds)

        config = replace(exploration_config, decision_retry_delay_seconds=1.0, decision_retries=3)
        backend = backend_factory("a", [
            LLMProviderError("blip"),
            LLMProviderError("blip"),
            LLMProviderError("blip"),
            decision("done"),
        ])

        result = await make_machine([backend], config=config, sleep=record_sleep).run(new_session())

        assert result.stopped_reason is StopReason.EXPLICIT_DONE
        assert delays == [1.0, 2.0, 4.0]
        assert backend.calls == 4

    async def test_retries_exhausted(self, make_machine, backend_factory, new_session):
        """Test the run ends in error once retries are exhausted."""
        backend = backend_factory("a", default=LLMProviderError("rate limited"))

        result = await make_machine([backend]).run(new_session())

        assert result.stopped_reason is StopReason.ERROR
        assert "Advisor 'a' failed" in result.error
        assert backend.calls == 3

    async def test_fallback_backend_keeps_session_running(self, make_machine, backend_factory, new_session):
        """Test a failing primary falls back without ending the run."""
        primary = backend_factory("a", default=LLMProviderError("down"))
        backup = backend_factory("b")

        result = await make_machine([primary, backup]).run(new_session(max_steps=3))

        assert result.stopped_reason is StopReason.MAX_STEPS_REACHED
        assert result.total_steps == 3
        assert backup.calls >= 3

    async def test_browser_action_failure_is_recorded(
        self, make_machine, backend_factory, decision, new_session, browser
    ):
        """Test a failed browser action is recorded as a failed step."""
        browser.failing_selectors.add("#newsletter")
        backend = backend_factory("a", [decision("click", selector="#newsletter")])

        result = await make_machine([backend]).run(new_session(max_steps=2))

        assert result.total_steps == 2
        assert not result.history[0].success
        assert "element not found" in result.history[0].error
        assert result.history[1].success

    async def test_observation_failure_ends_in_error(self, make_machine, backend_factory, new_session, browser):
        """Test a page extraction failure ends the run in error."""
        browser.observe_error = PageExtractError("page crashed")
        machine = make_machine([backend_factory("a")])

        result = await machine.run(new_session())

        assert result.stopped_reason is StopReason.ERROR
        assert result.error == "page crashed"
        assert machine.trace == [StepState.OBSERVE, StepState.ERROR]

    async def test_cancellation_checkpoints_and_propagates(
        self, make_machine, backend_factory, decision, new_session, session_store, exploration_config
    ):
        """Test cancellation pauses, checkpoints and re-raises without a summary call."""
        backend = backend_factory("a", [decision("scroll"), asyncio.CancelledError()])
        config = replace(exploration_config, generate_summary=True)
        session = new_session()

        with pytest.raises(asyncio.CancelledError):
            await make_machine([backend], config=config).run(session)

        assert session.status is SessionStatus.PAUSED
        assert session_store.checkpoints[-1]["status"] == "paused"
        assert session_store.checkpoints[-1]["stop_reason"] == "stopped_by_user"
        assert backend.summary_calls == 0


@pytest.mark.asyncio
class TestLoopGuardIntegration:
    """Tests for loop corrections inside a run."""

    async def test_repeated_tool_is_replaced_without_tools(
        self, make_machine, backend_factory, decision, new_session, browser
    ):
        """Test a repeated tool is replaced by a re-query without tools."""
        backend = backend_factory("a", [
            decision("tool", toolName="broken_image_detector"),
            decision("tool", toolName="broken_image_detector"),
            decision("tool", toolName="broken_image_detector"),
            decision("click", selector="#login"),
        ])

        result = await make_machine([backend]).run(new_session(max_steps=3))

        assert backend.calls == 4
        requery = backend.requests[3]
        assert requery.tools == []
        assert "already ran on this page" in requery.directive
        assert backend.requests[2].tools
        assert result.history[2].decision.selector == "#login"
        assert browser.url == LOGIN


@pytest.mark.asyncio
class TestPageAdvance:
    """Tests for page budget exits."""

    async def test_exhausted_page_advances_to_best_unvisited(
        self, make_machine, backend_factory, new_session, exploration_config, browser
    ):
        """Test an exhausted page advances to the top unvisited URL."""
        config = replace(exploration_config, page_budget=PageBudgetConfig(max_actions_per_page=2))
        machine = make_machine([backend_factory("a")], config=config)
        session = new_session(max_steps=3)

        result = await machine.run(session)

        assert StepState.ADVANCE_PAGE in machine.trace
        assert ("navigate", LOGIN) in browser.actions
        assert result.history[2].resulting_url == LOGIN
        assert result.pages_visited == [HOME, LOGIN]
        assert machine.page_context.url == LOGIN
        assert_legal(machine.trace)

    async def test_stays_when_advancing_disabled(
        self, make_machine, backend_factory, new_session, exploration_config, browser
    ):
        """Test the run stays on the page when advancing is disabled."""
        config = replace(
            exploration_config,
            page_budget=PageBudgetConfig(max_actions_per_page=2),
            advance_to_unvisited=False,
        )

        result = await make_machine([backend_factory("a")], config=config).run(new_session(max_steps=3))

        assert result.pages_visited == [HOME]
        assert browser.actions.count(("navigate", HOME)) == 1


@pytest.mark.asyncio
class TestProgressAndCheckpoints:
    """Tests for progress events, checkpoints and shutdown."""

    async def test_progress_events(self, make_machine, backend_factory, new_session, exploration_config):
        """Test progress events are emitted at the configured interval."""
        events = []

        async def on_progress(event):
            events.append(event)

        config = replace(exploration_config, progress_interval=2)
        await make_machine([backend_factory("a")], config=config, progress_callback=on_progress).run(
            new_session(max_steps=5)
        )

        assert [event.step for event in events] == [2, 4]
        assert events[0].max_steps == 5
        assert events[0].url == HOME
        assert events[1].recent_actions == ["scroll 'down'"] * 4
        assert events[1].percent_complete == 80.0

    async def test_failing_progress_callback_is_ignored(
        self, make_machine, backend_factory, new_session, exploration_config
    ):
        """Test a raising progress callback does not stop the run."""
        def on_progress(event):
            raise RuntimeError("terminal closed")

        config = replace(exploration_config, progress_interval=1)
        result = await make_machine([backend_factory("a")], config=config, progress_callback=on_progress).run(
            new_session(max_steps=2)
        )

        assert result.total_steps == 2

    async def test_periodic_checkpoints(self, make_machine, backend_factory, new_session, session_store):
        """Test checkpoints are written at the interval and at the end."""
        await make_machine([backend_factory("a")]).run(new_session(max_steps=4, checkpoint_interval=2))

        assert [c["current_step"] for c in session_store.checkpoints] == [2, 4, 4]
        assert session_store.checkpoints[0]["status"] == "running"
        assert session_store.checkpoints[-1]["status"] == "completed"

    async def test_checkpoint_failure_is_not_fatal(self, make_machine, backend_factory, new_session, session_store):
        """Test checkpoint failures do not stop the run."""
        session_store.fail = True

        result = await make_machine([backend_factory("a")]).run(new_session(max_steps=2, checkpoint_interval=1))

        assert result.total_steps == 2
        assert session_store.checkpoints == []

    async def test_shutdown_stops_between_steps(
        self, make_machine, backend_factory, new_session, exploration_config, session_store
    ):
        """Test a shutdown request pauses the run between steps without a summary call."""
        shutdown = ShutdownController()

        def on_progress(event):
            if event.step == 2:
                shutdown.request("test stop")

        config = replace(exploration_config, progress_interval=1, generate_summary=True)
        backend = backend_factory("a")
        session = new_session()
        result = await make_machine(
            [backend], config=config, shutdown=shutdown, progress_callback=on_progress
        ).run(session)

        assert result.stopped_reason is StopReason.STOPPED_BY_USER
        assert result.total_steps == 2
        assert result.summary == session.summary()
        assert backend.summary_calls == 0
        assert session.status is SessionStatus.PAUSED
        assert session_store.checkpoints[-1]["status"] == "paused"

    async def test_stopped_session_resumes_from_checkpoint(
        self, make_machine, backend_factory, new_session, exploration_config, session_store
    ):
        """Test a session stopped by shutdown resumes from its checkpoint to completion."""
        shutdown = ShutdownController()

        def on_progress(event):
            if event.step == 2:
                shutdown.request("test stop")

        config = replace(exploration_config, progress_interval=1)
        session = new_session(max_steps=4)
        await make_machine(
            [backend_factory("a")], config=config, shutdown=shutdown, progress_callback=on_progress
        ).run(session)

        restored = await session_store.load(session.id)
        assert restored.status is SessionStatus.PAUSED

        result = await make_machine([backend_factory("b")]).run(restored)

        assert result.stopped_reason is StopReason.MAX_STEPS_REACHED
        assert [entry.step for entry in result.history] == [1, 2, 3, 4]
        assert restored.status is SessionStatus.COMPLETED
        assert restored.stop_reason is StopReason.MAX_STEPS_REACHED
