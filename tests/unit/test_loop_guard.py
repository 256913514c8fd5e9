# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for LoopGuard detection and correction."""

import pytest

from bugscout.config import LoopGuardConfig
from bugscout.exploration.loop_guard import (
    ACTION_LOOP_DIRECTIVE,
    EMPTY_NAVIGATION_DIRECTIVE,
    LoopGuard,
    action_signature,
    tool_signature,
)
from bugscout.exploration.types import ActionDecision, ActionKind

PAGE = "https://shop.example.com/products"


class Requery:
    """Records re-query calls and answers with queued decisions."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    async def __call__(self, directive, offer_tools):
        self.calls.append((directive, offer_tools))
        return self.answers.pop(0)


def tool(name="broken_image_detector", **params):
    return ActionDecision(kind=ActionKind.INVOKE_TOOL, tool_name=name, tool_params=params)


def click(selector="#add-to-cart"):
    return ActionDecision(kind=ActionKind.CLICK, selector=selector)


@pytest.fixture
def guard():
    return LoopGuard(LoopGuardConfig(tool_loop_threshold=3, action_loop_threshold=4))


class TestSignatures:
    """Tests for signature formats."""

    def test_tool_signature_sorts_params(self):
        """Test tool signatures list parameters in sorted key order."""
        assert tool_signature("form_checker") == "form_checker"
        assert tool_signature("form_checker", {"selector": "#login", "depth": 2}) == 'form_checker:depth=2,selector="#login"'

    def test_action_signature_normalizes_value(self):
        """Test values are lowercased, unquoted and capped in action signatures."""
        decision = ActionDecision(kind=ActionKind.FILL, selector="#q", value='"Hello" World' + "x" * 80)
        signature = action_signature(decision)

        assert signature.startswith("fill:#q:hello world")
        assert len(signature.split(":", 2)[2]) == 50

    def test_action_signature_includes_tool(self):
        """Test tool invocations use the tool name as their target."""
        assert action_signature(tool()) == "invoke_tool:broken_image_detector"


@pytest.mark.asyncio
class TestToolLoop:
    """Tests for tool loop correction."""

    async def test_saturated_tool_withholds_tools(self, guard):
        """Test a tool loop on a page that ran tools re-queries without tools."""
        guard.record(tool(), PAGE)
        guard.record(tool(), PAGE)
        requery = Requery(click("#login-link"))

        verdict = await guard.validate(tool(), requery, url=PAGE, navigation_hints=["https://shop.example.com/login"])

        assert verdict.decision == click("#login-link")
        assert len(requery.calls) == 1
        directive, offer_tools = requery.calls[0]
        assert offer_tools is False
        assert "https://shop.example.com/login" in directive
        assert verdict.corrections[0].check == "tool_loop"
        assert verdict.corrections[0].offered_tools is False

    async def test_unsaturated_tool_still_offers_tools(self, guard):
        """Test a tool loop on a fresh page still offers tools."""
        guard.record(tool(), PAGE)
        guard.record(tool(), PAGE)
        requery = Requery(click())

        other_page = "https://shop.example.com/cart"
        verdict = await guard.validate(tool(), requery, url=other_page)

        assert requery.calls[0][1] is True
        assert verdict.corrections[0].offered_tools is True

    async def test_below_threshold_passes(self, guard):
        """Test repeats below the threshold pass unchanged."""
        guard.record(tool(), PAGE)
        requery = Requery()

        verdict = await guard.validate(tool(), requery, url=PAGE)

        assert not verdict.corrected
        assert requery.calls == []

    async def test_different_params_are_different_signatures(self, guard):
        """Test the same tool with other parameters is not a repeat."""
        guard.record(tool(include_hidden=True), PAGE)
        guard.record(tool(include_hidden=True), PAGE)

        verdict = await guard.validate(tool(), Requery(), url=PAGE)

        assert not verdict.corrected

    async def test_replacement_is_not_rechecked_by_tool_check(self, guard):
        """Test the tool check re-queries at most once."""
        guard.record(tool(), PAGE)
        guard.record(tool(), PAGE)
        requery = Requery(tool())

        verdict = await guard.validate(tool(), requery, url=PAGE)

        assert verdict.decision.kind is ActionKind.INVOKE_TOOL
        assert len(requery.calls) == 1


@pytest.mark.asyncio
class TestOtherChecks:
    """Tests for empty navigation and action loop checks."""

    async def test_empty_navigation_requeried(self, guard):
        """Test navigation without a target is replaced."""
        requery = Requery(click())

        verdict = await guard.validate(ActionDecision(kind=ActionKind.NAVIGATE, value="  "), requery, url=PAGE)

        assert requery.calls == [(EMPTY_NAVIGATION_DIRECTIVE, True)]
        assert verdict.decision == click()
        assert [c.check for c in verdict.corrections] == ["empty_navigation"]

    async def test_action_loop_resets_window(self, guard):
        """Test an action loop is corrected and clears the action window."""
        for _ in range(3):
            guard.record(click(), PAGE)
        requery = Requery(click("#wishlist"))

        verdict = await guard.validate(click(), requery, url=PAGE)

        assert requery.calls == [(ACTION_LOOP_DIRECTIVE, True)]
        assert verdict.decision.selector == "#wishlist"
        assert guard.stats()["action_window_size"] == 0

    async def test_all_checks_can_fire_once(self, guard):
        """Test each check corrects at most once in order."""
        guard.record(tool(), PAGE)
        guard.record(tool(), PAGE)
        for _ in range(3):
            guard.record(click(), PAGE)
        requery = Requery(tool(), click(), click("#other"))

        verdict = await guard.validate(ActionDecision(kind=ActionKind.NAVIGATE), requery, url=PAGE)

        assert [c.check for c in verdict.corrections] == ["empty_navigation", "tool_loop", "action_loop"]
        assert len(requery.calls) == 3
        assert verdict.decision.selector == "#other"
        assert guard.stats()["corrections"] == {"empty_navigation": 1, "tool_loop": 1, "action_loop": 1}


class TestWindows:
    """Tests for window bookkeeping."""

    def test_windows_are_bounded(self):
        """Test the tool window keeps only the most recent signatures."""
        guard = LoopGuard(LoopGuardConfig(tool_history_size=2))
        for name in ("a", "b", "c"):
            guard.record(tool(name), PAGE)

        assert guard.stats()["tool_window"] == ["b", "c"]

    def test_start_page_keeps_per_url_map(self, guard):
        """Test a new page clears windows but remembers tools per URL."""
        guard.record(tool(), PAGE)
        guard.start_page()

        assert guard.stats()["tool_window"] == []
        assert guard.stats()["action_window_size"] == 0
        assert guard.tool_ran_on(PAGE + "/", "broken_image_detector")

    def test_reset_clears_everything(self, guard):
        """Test reset forgets windows and per-URL tool history."""
        guard.record(tool(), PAGE)
        guard.reset()

        assert not guard.tool_ran_on(PAGE, "broken_image_detector")
        assert guard.stats()["pages_with_tools"] == 0

    def test_detect_action_loop_counts(self, guard):
        """Test occurrences are counted without flagging below the threshold."""
        for _ in range(2):
            guard.record(click(), PAGE)

        detection = guard.detect_action_loop(click())

        assert detection.occurrences == 2
        assert not detection.is_loop
