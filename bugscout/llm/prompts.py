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
Prompt templates for advisor requests.

Templates are rendered with Jinja2. Each builder returns a
``(system_prompt, user_prompt)`` pair.
"""

from __future__ import annotations

import json
from typing import Optional, Sequence, Tuple, TYPE_CHECKING

from jinja2 import Environment, StrictUndefined

from bugscout.exploration.types import Finding, HistoryEntry, PageObservation

if TYPE_CHECKING:
    from bugscout.llm.base import DecisionRequest

_env = Environment(undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True, autoescape=False)
_env.filters["tojson_compact"] = lambda value: json.dumps(value, sort_keys=True, default=str)

DECISION_SYSTEM_PROMPT = """You are an autonomous QA engineer exploring a web application to find bugs.
Choose exactly ONE next action and answer with a single JSON object:
{
  "action": "navigate|click|fill|select|hover|scroll|back|refresh|tool|done",
  "selector": "CSS selector (click, fill, select, hover)",
  "value": "URL for navigate, text for fill, option for select",
  "toolName": "tool name when action is tool",
  "toolParams": {},
  "reasoning": "why this action",
  "confidence": 0.0,
  "hypothesis": "what bug this might reveal",
  "expectedOutcome": "what should happen",
  "observedIssues": ["concrete problems visible on the current page"]
}
Only report issues you can actually see. Use "done" only when exploration is complete."""

_DECISION_USER_TEMPLATE = _env.from_string("""OBJECTIVE: {{ objective }}

CURRENT PAGE
URL: {{ observation.url }}
Title: {{ observation.title }}
{% if observation.console_errors %}
Console errors:
{% for error in observation.console_errors %}
- {{ error }}
{% endfor %}
{% endif %}
{% if observation.network_errors %}
Network errors:
{% for error in observation.network_errors %}
- {{ error }}
{% endfor %}
{% endif %}

Interactive elements:
{% for element in observation.elements %}
- [{{ element.element_type }}] {{ element.selector }}{% if element.text %} "{{ element.text[:80] }}"{% endif %}{% if element.href %} -> {{ element.href }}{% endif %}

{% else %}
(none)
{% endfor %}

Visible text:
{{ observation.visible_text }}

{% if history %}
Recent steps:
{% for entry in history %}
{{ entry.step }}. {{ entry.decision.kind.value }}{% if entry.decision.selector %} {{ entry.decision.selector }}{% endif %}{% if entry.decision.tool_name %} {{ entry.decision.tool_name }}{% endif %} -> {{ "ok" if entry.success else "failed: " ~ (entry.error or "unknown") }}
{% endfor %}
{% endif %}
{% if recent_page_actions %}
Actions on this page:
{{ recent_page_actions }}
{% endif %}
{% if tools %}
Available tools:
{% for tool in tools %}
- {{ tool.name }}: {{ tool.description }} params={{ tool.parameters | tojson_compact }}
{% endfor %}
{% else %}
No tools are available for this decision.
{% endif %}
{% if page_hints %}
Page coverage hints:
{% for hint in page_hints %}
- {{ hint }}
{% endfor %}
{% endif %}
{% if suggestions %}
Testing ideas:
{% for suggestion in suggestions %}
- {{ suggestion }}
{% endfor %}
{% endif %}
{% if navigation_hints %}
Unvisited pages worth exploring:
{% for hint in navigation_hints %}
- {{ hint }}
{% endfor %}
{% endif %}
{% if directive %}

IMPORTANT: {{ directive }}
{% endif %}

Respond with the JSON object only.""")

FINDING_SYSTEM_PROMPT = """You are a QA analyst. Assess the reported issue and answer with JSON:
{"severity": "critical|high|medium|low|info", "description": "...", "recommendation": "...", "confidence": 0.0}"""

_FINDING_USER_TEMPLATE = _env.from_string("""Reported issue:
{{ text }}
{% if observation %}

Page: {{ observation.url }} ({{ observation.title }})
{% if observation.console_errors %}
Console errors: {{ observation.console_errors | join("; ") }}
{% endif %}
{% endif %}""")

SUMMARY_SYSTEM_PROMPT = "You are a QA lead. Summarize an exploratory testing session in a short paragraph."

_SUMMARY_USER_TEMPLATE = _env.from_string("""Steps executed: {{ history | length }}
Failed steps: {{ history | rejectattr("success") | list | length }}

Findings:
{% for finding in findings %}
- [{{ finding.severity.value }}] {{ finding.title }} ({{ finding.page_url }})
{% else %}
(none)
{% endfor %}

Last steps:
{% for entry in history[-10:] %}
{{ entry.step }}. {{ entry.decision.describe() }} -> {{ "ok" if entry.success else "failed" }}
{% endfor %}""")


def build_decision_prompt(request: "DecisionRequest", history_limit: int = 10) -> Tuple[str, str]:
    """Render the decision prompt for ``request``."""
    user_prompt = _DECISION_USER_TEMPLATE.render(
        objective=request.objective,
        observation=request.observation,
        history=list(request.history)[-history_limit:],
        recent_page_actions=request.recent_page_actions,
        tools=request.tools,
        page_hints=request.page_hints,
        suggestions=request.suggestions,
        navigation_hints=request.navigation_hints,
        directive=request.directive,
    )
    return DECISION_SYSTEM_PROMPT, user_prompt


def build_finding_prompt(text: str, observation: Optional[PageObservation]) -> Tuple[str, str]:
    return FINDING_SYSTEM_PROMPT, _FINDING_USER_TEMPLATE.render(text=text, observation=observation)


def build_summary_prompt(history: Sequence[HistoryEntry], findings: Sequence[Finding]) -> Tuple[str, str]:
    return SUMMARY_SYSTEM_PROMPT, _SUMMARY_USER_TEMPLATE.render(history=list(history), findings=list(findings))
