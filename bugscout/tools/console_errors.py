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
Console error analysis.

Groups the console errors captured during the current page visit by severity
and category, and reports each group at or above ``min_severity`` as a finding.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

from bugscout.exploration.ports import ToolContext
from bugscout.exploration.types import Finding, Severity, ToolResult
from bugscout.tools.base import BaseTool, ToolMetadata, ToolParameter

# Checked in order; the first matching level wins
_SEVERITY_PATTERNS: List[Tuple[Severity, List[str]]] = [
    (Severity.CRITICAL, [
        r"uncaught", r"unhandled.*exception", r"fatal", r"crash", r"security",
        r"unauthorized", r"access.*denied", r"cors.*error",
    ]),
    (Severity.HIGH, [
        r"error", r"failed", r"exception", r"\b500\b", r"\b503\b", r"timeout",
        r"cannot.*read", r"undefined.*is.*not", r"null.*is.*not",
    ]),
    (Severity.MEDIUM, [r"warning", r"deprecated", r"\b404\b", r"not.*found", r"missing"]),
]

_CATEGORY_PATTERNS: List[Tuple[str, List[str]]] = [
    ("Network Error", [r"fetch", r"xhr", r"network", r"http", r"ajax", r"request"]),
    ("CORS Error", [r"cors", r"cross-origin", r"access-control"]),
    ("Security Error", [r"security", r"unauthorized", r"forbidden", r"csrf"]),
    ("JavaScript Error", [r"undefined", r"null", r"is not a function", r"cannot read", r"syntax"]),
    ("Resource Loading", [r"\b404\b", r"not found", r"failed to load", r"missing"]),
    ("Deprecation Warning", [r"deprecated", r"legacy"]),
    ("Performance", [r"slow", r"performance", r"timeout", r"memory"]),
]

SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]

MAX_EXAMPLES = 3
MAX_MESSAGE_LENGTH = 150

_PREFIX = re.compile(r"^(Uncaught:|Error:|Warning:|Info:|Debug:)\s*", re.IGNORECASE)
_CONSOLE_PREFIX = re.compile(r"^console\.\w+:\s*", re.IGNORECASE)


def classify_severity(message: str) -> Severity:
    lowered = message.lower()
    for severity, patterns in _SEVERITY_PATTERNS:
        if any(re.search(pattern, lowered) for pattern in patterns):
            return severity
    return Severity.LOW


def classify_category(message: str) -> str:
    lowered = message.lower()
    for category, patterns in _CATEGORY_PATTERNS:
        if any(re.search(pattern, lowered) for pattern in patterns):
            return category
    return "Other"


def clean_message(message: str) -> str:
    """First line of a console message without its level prefix, capped in length."""
    cleaned = _CONSOLE_PREFIX.sub("", _PREFIX.sub("", message.strip()))
    cleaned = cleaned.split("\n", 1)[0].strip()
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        cleaned = cleaned[: MAX_MESSAGE_LENGTH - 3] + "..."
    return cleaned


def categorize_errors(messages: List[str]) -> List[Dict[str, Any]]:
    """Group messages by (severity, category), most severe and most frequent first."""
    groups: Dict[Tuple[Severity, str], Dict[str, Any]] = {}
    for message in messages:
        severity = classify_severity(message)
        category = classify_category(message)
        group = groups.setdefault(
            (severity, category),
            {"severity": severity, "category": category, "count": 0, "examples": []},
        )
        group["count"] += 1
        example = clean_message(message)
        if len(group["examples"]) < MAX_EXAMPLES and example not in group["examples"]:
            group["examples"].append(example)

    return sorted(groups.values(), key=lambda g: (SEVERITY_ORDER.index(g["severity"]), -g["count"]))


def _at_least(severity: Severity, minimum: Severity) -> bool:
    return SEVERITY_ORDER.index(severity) <= SEVERITY_ORDER.index(minimum)


class ConsoleErrorAnalyzer(BaseTool):
    """Reports console errors from the current page visit as findings."""

    metadata = ToolMetadata(
        name="console_error_analyzer",
        description=(
            "Analyzes JavaScript console errors seen on the current page, grouping them "
            "by severity and category. Use when the page reports console errors."
        ),
        parameters=[
            ToolParameter(
                "min_severity",
                "string",
                description="Lowest severity to report as a finding",
                default="medium",
                enum=["critical", "high", "medium", "low"],
            ),
        ],
    )

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        minimum = Severity(params.get("min_severity", "medium"))
        messages = list(context.console_errors)

        if not messages:
            return ToolResult.success_result(
                data={"total_errors": 0, "errors_by_severity": {}, "categorized": [],
                      "summary": "No console errors detected on this page."},
            )

        groups = categorize_errors(messages)
        by_severity: Dict[str, int] = {}
        for group in groups:
            key = group["severity"].value
            by_severity[key] = by_severity.get(key, 0) + group["count"]

        reported = [group for group in groups if _at_least(group["severity"], minimum)]
        findings = [self._finding(group, context) for group in reported]

        summary = f"{len(messages)} console errors in {len(groups)} groups"
        if reported:
            summary += f"; {len(reported)} at {minimum.value} or above"
        return ToolResult.success_result(
            data={
                "total_errors": len(messages),
                "errors_by_severity": by_severity,
                "categorized": [{**group, "severity": group["severity"].value} for group in groups],
                "summary": summary,
            },
            findings=findings,
        )

    def _finding(self, group: Dict[str, Any], context: ToolContext) -> Finding:
        examples = group["examples"]
        count = group["count"]
        title = f"{group['category']}: {examples[0]}"
        if count > 1:
            title += f" (x{count})"
        return Finding.create(
            title=title,
            description=(
                f"{count} {group['severity'].value} console "
                f"{'error' if count == 1 else 'errors'} in category {group['category']}. "
                "Examples: " + "; ".join(examples)
            ),
            page_url=context.page_url,
            severity=group["severity"],
            finding_type="console_error",
            source=self.name,
            evidence={"category": group["category"], "count": count, "examples": list(examples)},
        )
