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

"""Page inspection tools offered to the advisor."""

from bugscout.tools.base import BaseTool, ToolMetadata, ToolParameter
from bugscout.tools.broken_images import BrokenImageDetector
from bugscout.tools.console_errors import ConsoleErrorAnalyzer
from bugscout.tools.network_errors import NetworkErrorAnalyzer
from bugscout.tools.registry import ToolRegistry


def create_default_registry() -> ToolRegistry:
    """Registry with the built-in tools."""
    registry = ToolRegistry()
    registry.register(BrokenImageDetector())
    registry.register(ConsoleErrorAnalyzer())
    registry.register(NetworkErrorAnalyzer())
    return registry


__all__ = [
    "BaseTool",
    "BrokenImageDetector",
    "ConsoleErrorAnalyzer",
    "NetworkErrorAnalyzer",
    "ToolMetadata",
    "ToolParameter",
    "ToolRegistry",
    "create_default_registry",
]
