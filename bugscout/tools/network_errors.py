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

"""Network error analysis for failed requests captured during a page visit."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from bugscout.exploration.ports import ToolContext
from bugscout.exploration.types import Finding, Severity, ToolResult
from bugscout.tools.base import BaseTool, ToolMetadata, ToolParameter
from bugscout.tools.console_errors import SEVERITY_ORDER

SERVER_ERROR = "server_error"
CLIENT_ERROR = "client_error"
CORS_ERROR = "cors_error"
TIMEOUT = "timeout"
OTHER = "other"

# "404 GET https://..." for HTTP error responses
_STATUS_LINE = re.compile(r"^([45]\d{2})\s+([A-Z]+)\s+(\S+)")
# "GET https://...: net::ERR_FAILED" for requests that never completed
_FAILURE_LINE = re.compile(r"^([A-Z]+)\s+(\S+?):\s+(.*)$")
_ANY_STATUS = re.compile(r"\b([45]\d{2})\b")
_URL = re.compile(r"https?://\S+")
_TIMEOUT = re.compile(r"time(d[ _])?out")


@dataclass
class NetworkError:
    """One failed request."""

    raw: str
    url: str
    method: str = ""
    status: Optional[int] = None
    failure: str = ""

    @property
    def error_type(self) -> str:
        text = self.failure.lower() or self.raw.lower()
        if self.status is not None and self.status >= 500:
            return SERVER_ERROR
        if self.status is not None and self.status >= 400:
            return CLIENT_ERROR
        if "cors" in text or "cross-origin" in text:
            return CORS_ERROR
        if _TIMEOUT.search(text):
            return TIMEOUT
        return OTHER

    @property
    def severity(self) -> Severity:
        kind = self.error_type
        if kind == SERVER_ERROR:
            return Severity.CRITICAL if self.status == 500 else Severity.HIGH
        if kind in (CORS_ERROR, TIMEOUT):
            return Severity.HIGH
        if kind == CLIENT_ERROR:
            return Severity.HIGH if self.status in (401, 403) else Severity.MEDIUM
        return Severity.LOW


def parse_network_error(message: str) -> NetworkError:
    """Parse a captured request failure; unknown shapes keep the raw text."""
    text = message.strip()
    match = _STATUS_LINE.match(text)
    if match:
        return NetworkError(raw=text, status=int(match.group(1)), method=match.group(2), url=match.group(3))

    match = _FAILURE_LINE.match(text)
    if match:
        return NetworkError(raw=text, method=match.group(1), url=match.group(2), failure=match.group(3))

    status = _ANY_STATUS.search(text)
    url = _URL.search(text)
    return NetworkError(
        raw=text,
        url=url.group(0) if url else "",
        status=int(status.group(1)) if status else None,
        failure=text,
    )


def group_errors(errors: List[NetworkError]) -> List[Tuple[NetworkError, int]]:
    """Collapse errors with the same type and URL, keeping the first of each."""
    groups: Dict[Tuple[str, str], List[Any]] = {}
    for error in errors:
        key = (error.error_type, error.url or error.raw)
        if key in groups:
            groups[key][1] += 1
        else:
            groups[key] = [error, 1]
    return [(error, count) for error, count in groups.values()]


def _title(error: NetworkError) -> str:
    target = error.url or error.raw[:80]
    kind = error.error_type
    if kind in (SERVER_ERROR, CLIENT_ERROR):
        return f"HTTP {error.status} from {target}"
    if kind == CORS_ERROR:
        return f"CORS failure for {target}"
    if kind == TIMEOUT:
        return f"Request timeout for {target}"
    return f"Request failed for {target}"


class NetworkErrorAnalyzer(BaseTool):
    """Reports failed requests from the current page visit as findings."""

    metadata = ToolMetadata(
        name="network_error_analyzer",
        description=(
            "Analyzes failed network requests seen on the current page: HTTP 4xx/5xx "
            "responses, CORS failures and timeouts."
        ),
        parameters=[
            ToolParameter(
                "min_severity",
                "string",
                description="Lowest severity to report as a finding",
                default="medium",
                enum=["critical", "high", "medium", "low"],
            ),
            ToolParameter(
                "group_similar",
                "boolean",
                description="Report repeated failures of the same URL once",
                default=True,
            ),
        ],
    )

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        minimum = Severity(params.get("min_severity", "medium"))
        group_similar = bool(params.get("group_similar", True))

        errors = [parse_network_error(message) for message in context.network_errors]
        if group_similar:
            entries = group_errors(errors)
        else:
            entries = [(error, 1) for error in errors]

        by_type: Dict[str, int] = {}
        for error in errors:
            by_type[error.error_type] = by_type.get(error.error_type, 0) + 1

        cutoff = SEVERITY_ORDER.index(minimum)
        reported = [(e, n) for e, n in entries if SEVERITY_ORDER.index(e.severity) <= cutoff]
        reported.sort(key=lambda entry: SEVERITY_ORDER.index(entry[0].severity))

        return ToolResult.success_result(
            data={
                "total_errors": len(errors),
                "errors_by_type": by_type,
                "reported": len(reported),
                "errors": [
                    {"url": e.url, "method": e.method, "status": e.status, "type": e.error_type,
                     "severity": e.severity.value, "count": n}
                    for e, n in entries
                ],
            },
            findings=[self._finding(error, count, context) for error, count in reported],
        )

    def _finding(self, error: NetworkError, count: int, context: ToolContext) -> Finding:
        description = f"{error.method or 'Request'} {error.url or error.raw} failed"
        if error.status is not None:
            description += f" with HTTP {error.status}"
        elif error.failure:
            description += f": {error.failure}"
        if count > 1:
            description += f" ({count} times)"
        return Finding.create(
            title=_title(error),
            description=description + ".",
            page_url=context.page_url,
            severity=error.severity,
            finding_type="network_error",
            source=self.name,
            evidence={
                "url": error.url,
                "method": error.method,
                "status": error.status,
                "error_type": error.error_type,
                "count": count,
            },
        )
