# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for progress events and run results."""

from bugscout.exploration.events import ExplorationResult, ProgressEvent
from bugscout.exploration.types import StopReason, TokenUsage


class TestProgressEvent:
    """Tests for ProgressEvent."""

    def test_percent_complete(self):
        """Test progress percentage, with a zero step ceiling reported as 0."""
        assert ProgressEvent(step=5, max_steps=20, url="u", findings_count=0).percent_complete == 25.0
        assert ProgressEvent(step=5, max_steps=0, url="u", findings_count=0).percent_complete == 0.0


class TestExplorationResult:
    """Tests for ExplorationResult."""

    def test_result_success(self):
        """Test only runs that did not end in error count as successful."""
        done = ExplorationResult("s1", 3, 1.0, StopReason.EXPLICIT_DONE)
        failed = ExplorationResult("s1", 3, 1.0, StopReason.ERROR, error="boom")

        assert done.success
        assert not failed.success

    def test_stopped_by_user_is_not_a_failure(self):
        """Test a run stopped by shutdown still reports success."""
        stopped = ExplorationResult("s1", 2, 1.0, StopReason.STOPPED_BY_USER)

        assert stopped.success
        assert stopped.to_dict()["stopped_reason"] == "stopped_by_user"

    def test_result_to_dict(self):
        """Test serialization rounds the duration and flattens nested values."""
        result = ExplorationResult(
            "s1",
            total_steps=4,
            duration_seconds=1.23456,
            stopped_reason=StopReason.MAX_STEPS_REACHED,
            token_usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            pages_visited=["https://shop.example.com/"],
        )

        data = result.to_dict()

        assert data["stopped_reason"] == "max_steps_reached"
        assert data["duration_seconds"] == 1.235
        assert data["token_usage"]["total_tokens"] == 15
        assert data["findings"] == []
        assert data["pages_visited"] == ["https://shop.example.com/"]
