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
Cooperative shutdown for exploration runs.

Signals only set a flag; the state machine checks it between steps, so an
in-flight step always finishes and the session is checkpointed before exit.
"""

from __future__ import annotations

import signal
from typing import Any, Optional

from bugscout.utils.logger import logger


class ShutdownController:
    """Flag raised by SIGINT/SIGTERM or by calling ``request()``."""

    def __init__(self) -> None:
        self._requested = False
        self.reason: Optional[str] = None
        self._previous_handlers: dict = {}

    @property
    def requested(self) -> bool:
        return self._requested

    def request(self, reason: str = "shutdown requested") -> None:
        if not self._requested:
            logger.info(f"[Shutdown] {reason}; stopping after the current step")
        self._requested = True
        self.reason = self.reason or reason

    def _signal_handler(self, signum: int, frame: Any) -> None:
        signal_name = signal.Signals(signum).name
        if self._requested:
            # Second signal: fall back to the default behaviour
            self.uninstall()
            raise KeyboardInterrupt
        self.request(f"Received {signal_name}")

    def install(self) -> None:
        """Route SIGINT and SIGTERM to this controller."""
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, self._signal_handler)

    def uninstall(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def __enter__(self) -> "ShutdownController":
        self.install()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.uninstall()
