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
Exception hierarchy for BugScout.

Every error raised by the package derives from BugScoutError so callers can
catch the whole family at once. Advisor failures derive from LLMProviderError;
only NoAdvisorAvailableError is meant to end an exploration session.
"""

from __future__ import annotations

from typing import Optional


class BugScoutError(Exception):
    """Base exception for all BugScout errors."""
    pass


class ConfigurationError(BugScoutError):
    """Raised when configuration is missing or invalid."""
    pass


class LLMProviderError(BugScoutError):
    """Raised when an advisor backend call fails."""
    pass


class AdvisorCallError(LLMProviderError):
    """Raised when a backend fails and no fallback backend is eligible."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"Advisor '{provider}' failed: {message}")


class AdvisorFallbackError(LLMProviderError):
    """Raised when both the selected backend and its fallback fail."""

    def __init__(self, primary: str, fallback: str, primary_error: str, fallback_error: str) -> None:
        self.primary = primary
        self.fallback = fallback
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Advisor '{primary}' failed ({primary_error}) and fallback "
            f"'{fallback}' failed ({fallback_error})"
        )


class NoAdvisorAvailableError(LLMProviderError):
    """Raised when every configured backend has an open circuit."""
    pass


class InvalidDecisionError(BugScoutError):
    """Raised when an action decision violates its invariants."""
    pass


class BrowserError(BugScoutError):
    """Raised when a browser operation fails."""
    pass


class PageExtractError(BrowserError):
    """Raised when the current page cannot be observed."""
    pass


class ActionExecutionError(BrowserError):
    """Raised when a browser action cannot be performed."""

    def __init__(self, action: str, message: str, selector: Optional[str] = None) -> None:
        self.action = action
        self.selector = selector
        target = f" on {selector}" if selector else ""
        super().__init__(f"{action}{target} failed: {message}")


class SessionStateError(BugScoutError):
    """Raised on an invalid exploration session status change."""
    pass


class InvalidTransitionError(BugScoutError):
    """Raised when the step state machine attempts an illegal move."""
    pass


class FindingSinkError(BugScoutError):
    """Raised when a finding cannot be registered or persisted."""
    pass
