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
Tool registry: the ``ToolInvoker`` the exploration loop talks to.

Tool failures never escape ``invoke``. An unknown tool, invalid parameters
or an exception inside a tool all come back as an error ``ToolResult``,
which the loop records as a failed step.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional

from bugscout.exploration.ports import ToolContext
from bugscout.exploration.types import ToolDefinition, ToolResult
from bugscout.tools.base import BaseTool
from bugscout.utils.logger import logger


class ToolRegistry:
    """
    Thread-safe catalog of tool instances.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register(BrokenImageDetector())
        >>> [d.name for d in registry.definitions()]
        ['broken_image_detector']
    """

    def __init__(self) -> None:
        self._tools: Dict[str, BaseTool] = {}
        self._lock = threading.RLock()

    def register(self, tool: BaseTool) -> None:
        """
        Register a tool instance.

        Raises:
            ValueError: If the tool has no metadata or the name is taken
        """
        metadata = getattr(tool, "metadata", None)
        if metadata is None:
            raise ValueError(f"Tool {tool.__class__.__name__} has no metadata attribute.")

        with self._lock:
            if metadata.name in self._tools:
                raise ValueError(f"Tool '{metadata.name}' is already registered.")
            self._tools[metadata.name] = tool
        logger.debug(f"[ToolRegistry] Registered tool '{metadata.name}'")

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._tools.pop(name, None) is not None

    def get_tool(self, name: str) -> Optional[BaseTool]:
        with self._lock:
            return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list_tools(self) -> List[str]:
        with self._lock:
            return list(self._tools)

    def definitions(self) -> List[ToolDefinition]:
        """Tool definitions in registration order, for the decision prompt."""
        with self._lock:
            return [tool.definition() for tool in self._tools.values()]

    async def invoke(self, name: str, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        """Run a tool by name; every failure is returned as an error result."""
        tool = self.get_tool(name)
        if tool is None:
            available = ", ".join(self.list_tools()) or "none"
            logger.warning(f"[ToolRegistry] Unknown tool '{name}' (available: {available})")
            return ToolResult.error_result(f"Unknown tool '{name}'. Available tools: {available}")

        is_valid, error = tool.validate_parameters(params)
        if not is_valid:
            return ToolResult.error_result(f"Invalid parameters for '{name}': {error}")

        started = time.monotonic()
        try:
            result = await tool.execute(params, context)
        except Exception as e:
            logger.warning(f"[ToolRegistry] Tool '{name}' failed: {e}", exc_info=True)
            result = ToolResult.error_result(f"Tool execution failed: {e}")

        result.duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"[ToolRegistry] {name} -> {'ok' if result.success else result.error} "
            f"({len(result.findings)} findings, {result.duration_ms:.0f}ms)"
        )
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return self.has_tool(name)
