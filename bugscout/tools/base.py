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
Base tool class for page inspection tools.

Tools are checks the advisor can ask for by name (``invoke_tool``). Each tool
declares its metadata, which is turned into a ``ToolDefinition`` for the
decision prompt, and implements ``execute`` returning a ``ToolResult`` whose
``findings`` are routed to the finding sink.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bugscout.exploration.ports import ToolContext
from bugscout.exploration.types import ToolDefinition, ToolResult


@dataclass
class ToolParameter:
    """Definition of a tool parameter for schema validation."""

    name: str
    type: str  # "string", "number", "integer", "boolean", "array", "object"
    description: str = ""
    required: bool = False
    default: Any = None
    enum: Optional[List[Any]] = None


@dataclass
class ToolMetadata:
    """Metadata describing a tool."""

    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)
    timeout_seconds: float = 30.0

    def to_json_schema(self) -> Dict[str, Any]:
        """Generate JSON schema for tool parameters."""
        properties: Dict[str, Any] = {}
        required = []

        for param in self.parameters:
            prop: Dict[str, Any] = {"type": param.type}
            if param.description:
                prop["description"] = param.description
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default
            properties[param.name] = prop
            if param.required:
                required.append(param.name)

        return {"type": "object", "properties": properties, "required": required}

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=self.to_json_schema())


_JSON_TYPES = {
    "string": str,
    "number": (int, float),
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}


class BaseTool(ABC):
    """
    Abstract base class for inspection tools.

    Example:
        >>> class TitleCheck(BaseTool):
        ...     metadata = ToolMetadata(name="title_check", description="Flags pages without a title")
        ...
        ...     async def execute(self, params, context):
        ...         title = await context.browser.evaluate("document.title")
        ...         return ToolResult.success_result({"title": title})
    """

    metadata: ToolMetadata  # Must be defined by subclass

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def description(self) -> str:
        return self.metadata.description

    def definition(self) -> ToolDefinition:
        return self.metadata.to_definition()

    @abstractmethod
    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        """
        Run the tool against the page in ``context``.

        Returns:
            ToolResult with any suspected defects in ``findings``
        """
        raise NotImplementedError("Subclasses must implement execute()")

    def validate_parameters(self, params: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        """
        Validate parameters against the tool's schema.

        Returns:
            Tuple of (is_valid, error_message). error_message is None if valid.
        """
        schema = self.metadata.to_json_schema()
        properties = schema["properties"]

        for param_name in schema["required"]:
            if param_name not in params:
                return False, f"Missing required parameter: {param_name}"

        for param_name, value in params.items():
            prop_schema = properties.get(param_name)
            if prop_schema is None:
                continue  # Extra parameters are ignored

            expected = _JSON_TYPES.get(prop_schema["type"])
            # bool is an int subclass; keep it out of numeric parameters
            if expected is not None and (
                not isinstance(value, expected) or (isinstance(value, bool) and prop_schema["type"] != "boolean")
            ):
                return False, f"Parameter '{param_name}' has invalid type. Expected {prop_schema['type']}"

            if "enum" in prop_schema and value not in prop_schema["enum"]:
                return False, f"Parameter '{param_name}' must be one of: {prop_schema['enum']}"

        return True, None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
