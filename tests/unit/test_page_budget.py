# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for PageExplorationContext and PageBudgetEvaluator."""

import pytest

from bugscout.config import PageBudgetConfig
from bugscout.exploration.page_context import PageBudgetEvaluator, PageExplorationContext
from bugscout.exploration.types import ActionDecision, ActionKind, InteractiveElement, PageObservation

PAGE = "https://shop.example.com/products"


def click(selector):
    return ActionDecision(kind=ActionKind.CLICK, selector=selector)


def run_tool(context, name="broken_image_detector"):
    context.record_action(ActionDecision(kind=ActionKind.INVOKE_TOOL, tool_name=name), True)


@pytest.fixture
def context(clock):
    context = PageExplorationContext(clock)
    context.start_new_page(PAGE, "Products")
    return context


@pytest.fixture
def evaluator():
    return PageBudgetEvaluator(PageBudgetConfig(max_actions_per_page=8, exit_after_bugs_found=3))


class TestPageExplorationContext:
    """Tests for per-page tracking."""

    def test_record_action_tracks_elements_and_tools(self, context):
        """Test actions update element and tool tracking, failed ones included."""
        context.record_action(click("#a"), True)
        context.record_action(click("#a"), False)
        context.record_action(ActionDecision(kind=ActionKind.SCROLL), True)
        run_tool(context)

        assert context.action_count == 4
        assert context.elements_interacted == {"#a"}
        assert context.has_run_tool("broken_image_detector")

    def test_submit_clicks_count_as_forms(self, context):
        """Test clicks that look like submits count as form submissions."""
        context.record_action(click("#login-submit"), True)
        context.record_action(ActionDecision(kind=ActionKind.CLICK, selector="#go", reasoning="Submit the form"), True)

        assert context.forms_submitted == 2

    def test_start_new_page_resets(self, context, clock):
        """Test a new page resets actions, findings and the page timer."""
        context.record_action(click("#a"), True)
        context.record_bug_found()
        clock.advance(30)

        context.start_new_page("https://shop.example.com/cart")

        assert context.action_count == 0
        assert context.bugs_found == 0
        assert context.elapsed_seconds() == 0
        assert context.url == "https://shop.example.com/cart"

    def test_record_errors_collects_each_message_once(self, context):
        """Test repeated observations do not duplicate errors, and a new page clears them."""
        observation = PageObservation(
            url=PAGE,
            title="Products",
            visible_text="",
            console_errors=["Uncaught: boom", "Uncaught: boom"],
            network_errors=["404 GET https://shop.example.com/logo.png"],
        )

        context.record_errors(observation)
        context.record_errors(observation)

        assert context.console_errors == ["Uncaught: boom"]
        assert context.network_errors == ["404 GET https://shop.example.com/logo.png"]

        context.start_new_page("https://shop.example.com/cart")

        assert context.console_errors == []
        assert context.network_errors == []

    def test_steps_to_reproduce(self, context):
        """Test reproduction steps start with the visit and number each action."""
        context.record_action(ActionDecision(kind=ActionKind.FILL, selector="#q", value="shoes"), True)
        context.record_action(click("#search"), True)

        assert context.steps_to_reproduce() == [
            f"1. Navigate to {PAGE}",
            "2. Enter 'shoes' into #q",
            "3. Click on #search",
        ]

    def test_recent_actions_digest(self, context):
        """Test the digest lists only the latest actions with their outcome."""
        for i in range(7):
            context.record_action(click(f"#b{i}"), i != 6)

        digest = context.recent_actions_digest(limit=2).splitlines()

        assert digest == ["- click #b5 (ok)", "- click #b6 (failed)"]


class TestPageBudgetEvaluator:
    """Tests for exit rules and their ordering."""

    def test_sufficient_findings(self, context, evaluator):
        """Test enough findings end the page visit."""
        for i in range(4):
            context.record_action(click(f"#e{i}"), True)
        for _ in range(3):
            context.record_bug_found()

        result = evaluator.evaluate(context)

        assert result.should_exit
        assert result.reason == "sufficient findings"
        assert result.confidence == pytest.approx(0.9)

    def test_time_limit_wins_over_everything(self, context, evaluator, clock):
        """Test the time limit is checked before any other rule."""
        for i in range(8):
            context.record_action(click(f"#e{i}"), True)
        clock.advance(60)

        result = evaluator.evaluate(context)

        assert result.reason == "time limit"
        assert result.confidence == 1.0

    def test_max_actions_before_findings(self, context, evaluator):
        """Test the action ceiling is checked before the findings rule."""
        for i in range(8):
            context.record_action(click(f"#e{i}"), True)
        for _ in range(3):
            context.record_bug_found()

        assert evaluator.evaluate(context).reason == "max actions"

    def test_exit_criteria_met(self, context, evaluator):
        """Test required tools plus enough interactions end the visit."""
        run_tool(context)
        for i in range(3):
            context.record_action(click(f"#e{i}"), True)

        result = evaluator.evaluate(context)

        assert result.should_exit
        assert result.reason == "exit criteria met"
        assert result.confidence == pytest.approx(0.8)
        assert result.pending == []

    def test_continue_lists_pending(self, context, evaluator):
        """Test a fresh page continues and lists what is still missing."""
        result = evaluator.evaluate(context)

        assert not result.should_exit
        assert result.reason == "continue exploring"
        assert result.confidence == pytest.approx(0.4)
        assert result.pending == ["missing tools: broken_image_detector", "elements: 0/3"]

    def test_evaluation_is_deterministic(self, context, evaluator):
        """Test evaluating twice gives the same result."""
        context.record_action(click("#a"), True)

        first = evaluator.evaluate(context)
        second = evaluator.evaluate(context)

        assert first == second

    def test_no_required_tools(self, context):
        """Test interactions alone satisfy a budget without required tools."""
        evaluator = PageBudgetEvaluator(PageBudgetConfig(required_tools=[], min_element_interactions=1))
        context.record_action(click("#a"), True)

        assert evaluator.evaluate(context).reason == "exit criteria met"

    def test_suggestions(self, context, evaluator):
        """Test hints name missing tools, untouched elements and remaining actions."""
        observation = PageObservation(
            url=PAGE,
            elements=[
                InteractiveElement(selector="#a"),
                InteractiveElement(selector="#hidden", is_visible=False),
                InteractiveElement(selector="#b"),
            ],
        )
        for _ in range(6):
            context.record_action(click("#a"), True)

        hints = evaluator.suggestions(context, observation)

        assert hints[0] == "Run the 'broken_image_detector' tool on this page."
        assert hints[1] == "Interact with 2 more element(s) on this page. Candidates: #b"
        assert hints[2] == "Only 2 action(s) left on this page; prioritize untested areas."
