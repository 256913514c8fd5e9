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
Base interfaces for advisor backends.

An advisor backend is any object satisfying ``AdvisorBackend``: it answers
decision, finding-analysis and summary requests with raw text wrapped in an
``LLMResponse``. Interpreting that text is the gateway's job, so a backend
never fails because the model produced malformed output.

``BaseLLMProvider`` implements the protocol on top of a single abstract
``generate()`` call; concrete SDK providers only implement ``generate()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from bugscout.exploration.types import (
    ActionDecision,
    Finding,
    HistoryEntry,
    PageObservation,
    Severity,
    TokenUsage,
    ToolDefinition,
)
from bugscout.llm import prompts
from bugscout.utils.logger import logger


@dataclass
class LLMResponse:
    """
    Standardized raw response from an advisor backend.

    Attributes:
        content: Generated text
        model: Model that produced it
        usage: prompt_tokens / completion_tokens / total_tokens
        finish_reason: Provider finish reason, if reported
    """

    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def token_usage(self) -> TokenUsage:
        usage = self.usage or {}
        prompt_tokens = int(usage.get("prompt_tokens", 0))
        completion_tokens = int(usage.get("completion_tokens", 0))
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=int(usage.get("total_tokens", prompt_tokens + completion_tokens)),
        )


@dataclass
class DecisionRequest:
    """
    Everything the advisor sees when choosing the next action.

    An empty ``tools`` list means tools are deliberately withheld, which the
    loop guard uses to push the advisor off a saturated page.
    """

    observation: PageObservation
    objective: str
    history: Sequence[HistoryEntry] = field(default_factory=list)
    tools: List[ToolDefinition] = field(default_factory=list)
    directive: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    page_hints: List[str] = field(default_factory=list)
    navigation_hints: List[str] = field(default_factory=list)
    recent_page_actions: str = ""

    @property
    def offers_tools(self) -> bool:
        return bool(self.tools)


@dataclass
class AdvisorResponse:
    """A decision as returned by the gateway."""

    decision: ActionDecision
    provider: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw_content: str = ""
    parse_error: Optional[str] = None
    latency_ms: float = 0.0

    @property
    def parsed(self) -> bool:
        return self.parse_error is None


@dataclass
class FindingAnalysis:
    """Advisor assessment of a suspected defect."""

    severity: Severity = Severity.MEDIUM
    description: str = ""
    recommendation: str = ""
    confidence: float = 0.5


@runtime_checkable
class AdvisorBackend(Protocol):
    """Interface every advisor backend satisfies."""

    name: str

    async def request_decision(self, request: DecisionRequest) -> LLMResponse:
        ...

    async def analyze_finding(self, text: str, observation: Optional[PageObservation]) -> LLMResponse:
        ...

    async def summarize(self, history: Sequence[HistoryEntry], findings: Sequence[Finding]) -> LLMResponse:
        ...

    async def health_check(self) -> bool:
        ...


class BaseLLMProvider(ABC):
    """
    Abstract base class for SDK-backed advisor backends.

    Subclasses must implement ``generate()``. Provider errors are raised as
    ``LLMProviderError``; the gateway counts them as breaker failures.

    Attributes:
        model: Model name
        api_key: Provider API key
        name: Slot name used in logs
        temperature: Sampling temperature for decisions
        max_tokens: Completion budget per call
        usage: Tokens consumed by this backend so far
    """

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        name: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        **kwargs: Any,
    ) -> None:
        self.model = model
        self.api_key = api_key
        self.name = name or f"{self.__class__.__name__.replace('Provider', '').lower()}:{model}"
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.extra_config = kwargs
        self.usage = TokenUsage()
        self._calls = 0

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a text completion.

        Raises:
            LLMProviderError: If the API call fails
        """
        pass

    async def request_decision(self, request: DecisionRequest) -> LLMResponse:
        system_prompt, user_prompt = prompts.build_decision_prompt(request)
        return await self.generate(
            user_prompt,
            system_prompt=system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def analyze_finding(self, text: str, observation: Optional[PageObservation]) -> LLMResponse:
        system_prompt, user_prompt = prompts.build_finding_prompt(text, observation)
        return await self.generate(user_prompt, system_prompt=system_prompt, temperature=0.1, max_tokens=512)

    async def summarize(self, history: Sequence[HistoryEntry], findings: Sequence[Finding]) -> LLMResponse:
        system_prompt, user_prompt = prompts.build_summary_prompt(history, findings)
        return await self.generate(user_prompt, system_prompt=system_prompt, temperature=0.3, max_tokens=1024)

    async def health_check(self) -> bool:
        """Send a tiny prompt; any provider error means unhealthy."""
        try:
            response = await self.generate("Reply with the single word OK.", temperature=0.0, max_tokens=5)
        except Exception as e:
            logger.warning(f"[{self.name}] Health check failed: {e}")
            return False
        return bool(response.content.strip())

    def _track_usage(self, response: LLMResponse) -> None:
        self._calls += 1
        self.usage.add(response.token_usage())

    def get_session_usage(self) -> Dict[str, Any]:
        """Usage accumulated by this backend."""
        return {"calls": self._calls, **self.usage.to_dict()}
