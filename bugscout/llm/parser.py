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
Advisor response parser.

Turns raw advisor text into an ActionDecision. Parsing is strict: anything
that is not a JSON object describing a valid decision is a parse failure, and
callers substitute ``default_decision()`` for it.

Example response:
    {
        "action": "click",
        "selector": "#add-to-cart",
        "reasoning": "Check whether the cart counter updates",
        "confidence": 0.8,
        "observedIssues": ["Price shows NaN on the product tile"]
    }

Both camelCase and snake_case field names are accepted.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bugscout.exceptions import InvalidDecisionError
from bugscout.exploration.types import ActionDecision, ActionKind, Severity
from bugscout.llm.base import FindingAnalysis
from bugscout.utils.logger import logger

DEFAULT_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.1

# Wire name -> ActionDecision field
_FIELD_ALIASES = {
    "toolName": "tool_name",
    "toolParams": "tool_params",
    "expectedOutcome": "expected_outcome",
    "observedIssues": "observed_issues",
}

_CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


@dataclass
class ParseResult:
    """Outcome of parsing one advisor response."""

    success: bool
    decision: Optional[ActionDecision] = None
    error: Optional[str] = None
    raw_content: str = ""

    @classmethod
    def failure(cls, error: str, raw_content: str = "") -> "ParseResult":
        return cls(success=False, error=error, raw_content=raw_content)


def default_decision(error: str) -> ActionDecision:
    """The safe decision substituted for an unparsable response."""
    return ActionDecision.done(
        reasoning=f"Advisor response could not be parsed: {error}",
        confidence=FALLBACK_CONFIDENCE,
    )


class DecisionParser:
    """Parser for advisor decision responses."""

    def parse(self, content: str) -> ParseResult:
        """
        Parse advisor text into a decision.

        Args:
            content: Raw advisor response

        Returns:
            ParseResult carrying the decision or the reason parsing failed
        """
        if not content or not content.strip():
            return ParseResult.failure("Empty response content", content or "")

        json_content = self._find_json_object(self._extract_from_markdown(content))
        if json_content is None:
            return ParseResult.failure("No JSON object found", content)

        try:
            data = json.loads(json_content)
        except json.JSONDecodeError as e:
            return ParseResult.failure(f"Invalid JSON: {e}", content)

        if not isinstance(data, dict):
            return ParseResult.failure("JSON is not an object", content)

        try:
            decision = self._build_decision(data)
        except (InvalidDecisionError, ValueError, TypeError) as e:
            return ParseResult.failure(str(e), content)

        return ParseResult(success=True, decision=decision, raw_content=content)

    def parse_or_default(self, content: str) -> ParseResult:
        """Parse, substituting the default decision on failure."""
        result = self.parse(content)
        if not result.success:
            logger.warning(f"[Parser] Unparsable advisor response ({result.error}): {content[:200]!r}")
            result.decision = default_decision(result.error or "unknown error")
        return result

    def _extract_from_markdown(self, content: str) -> str:
        """Return the body of a fenced code block, or the content unchanged."""
        match = _CODE_BLOCK_PATTERN.search(content)
        if match:
            return match.group(1).strip()
        return content.strip()

    def _find_json_object(self, content: str) -> Optional[str]:
        """Return the span between the first ``{`` and the last ``}``."""
        start = content.find("{")
        end = content.rfind("}")
        if start == -1 or end <= start:
            return None
        return content[start:end + 1]

    def _build_decision(self, data: Dict[str, Any]) -> ActionDecision:
        fields = {_FIELD_ALIASES.get(key, key): value for key, value in data.items()}

        kind_value = fields.get("action", fields.get("kind"))
        if not kind_value or not isinstance(kind_value, str):
            raise InvalidDecisionError("Missing 'action' field")
        kind = ActionKind.parse(kind_value)

        tool_params = fields.get("tool_params") or {}
        if not isinstance(tool_params, dict):
            raise InvalidDecisionError("'toolParams' must be an object")

        confidence = fields.get("confidence", DEFAULT_CONFIDENCE)
        if confidence is None:
            confidence = DEFAULT_CONFIDENCE

        return ActionDecision(
            kind=kind,
            selector=_optional_str(fields.get("selector")),
            value=_optional_str(fields.get("value")),
            tool_name=_optional_str(fields.get("tool_name")),
            tool_params=tool_params,
            reasoning=str(fields.get("reasoning") or ""),
            confidence=float(confidence),
            hypothesis=_optional_str(fields.get("hypothesis")),
            expected_outcome=_optional_str(fields.get("expected_outcome")),
            observed_issues=_string_list(fields.get("observed_issues")),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if str(item).strip()]


_default_parser = DecisionParser()


def parse_decision(content: str) -> ParseResult:
    """Parse advisor text with the module-level parser, defaulting on failure."""
    return _default_parser.parse_or_default(content)


def parse_finding_analysis(content: str) -> FindingAnalysis:
    """Parse a finding assessment, falling back to a medium-severity default."""
    json_content = _default_parser._find_json_object(_default_parser._extract_from_markdown(content or ""))
    if json_content is None:
        return FindingAnalysis(description=(content or "").strip())

    try:
        data = json.loads(json_content)
        severity = Severity(str(data.get("severity", Severity.MEDIUM.value)).lower())
        return FindingAnalysis(
            severity=severity,
            description=str(data.get("description") or ""),
            recommendation=str(data.get("recommendation") or ""),
            confidence=max(0.0, min(1.0, float(data.get("confidence", 0.5)))),
        )
    except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
        logger.debug(f"[Parser] Finding analysis fell back to defaults: {e}")
        return FindingAnalysis(description=(content or "").strip())
