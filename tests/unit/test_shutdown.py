# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for cooperative shutdown."""

import signal

import pytest

from bugscout.shutdown import ShutdownController


class TestShutdownController:
    """Tests for ShutdownController requests and signal handling."""

    def test_request_keeps_first_reason(self):
        """Test later requests do not overwrite the first reason."""
        controller = ShutdownController()
        assert not controller.requested

        controller.request("first")
        controller.request("second")

        assert controller.requested
        assert controller.reason == "first"

    def test_first_signal_sets_flag(self):
        """Test the first signal only requests a graceful stop."""
        controller = ShutdownController()

        controller._signal_handler(signal.SIGTERM, None)

        assert controller.requested
        assert controller.reason == "Received SIGTERM"

    def test_second_signal_interrupts(self):
        """Test a second signal raises KeyboardInterrupt."""
        controller = ShutdownController()
        controller._signal_handler(signal.SIGINT, None)

        with pytest.raises(KeyboardInterrupt):
            controller._signal_handler(signal.SIGINT, None)

    def test_context_manager_restores_handlers(self):
        """Test leaving the context puts the previous handlers back."""
        before = signal.getsignal(signal.SIGTERM)

        with ShutdownController() as controller:
            assert signal.getsignal(signal.SIGTERM) == controller._signal_handler

        assert signal.getsignal(signal.SIGTERM) == before
