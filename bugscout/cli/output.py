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

"""Terminal output for CLI commands."""

import sys
from typing import Any, Dict, List


class CLIOutput:
    """Consistent formatting for summaries, sections and status lines."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors and sys.stdout.isatty()

    def _color(self, text: str, color: str) -> str:
        return f"{color}{text}{self.RESET}" if self.use_colors else text

    def _bold(self, text: str) -> str:
        return self._color(text, self.BOLD)

    def _dim(self, text: str) -> str:
        return self._color(text, self.DIM)

    def print_summary(self, title: str, items: Dict[str, Any], show_divider: bool = True) -> None:
        """Print aligned key/value pairs under a title."""
        print(self._bold(f"> {title}"))
        print()
        width = max((len(str(key)) for key in items), default=0)
        for key, value in items.items():
            print(f"  {self._dim(str(key).ljust(width))}  {'-' if value is None else value}")
        print()
        if show_divider:
            self.print_divider()

    def print_section(self, title: str) -> None:
        print()
        print(self._bold(f"--- {title} ---"))
        print()

    def print_divider(self, char: str = "-", width: int = 50) -> None:
        print(self._dim(char * width))

    def print_status_line(self, status: str, message: str, ok: bool = True, warn: bool = False) -> None:
        if ok:
            icon = self._color(f"[{status}]", self.GREEN)
        elif warn:
            icon = self._color(f"[{status}]", self.YELLOW)
        else:
            icon = self._color(f"[{status}]", self.RED)
        print(f"{icon} {message}")

    def print_list(self, title: str, items: List[str], bullet: str = "*") -> None:
        if title:
            print(self._bold(title))
        for item in items:
            print(f"  {bullet} {item}")


output = CLIOutput()
