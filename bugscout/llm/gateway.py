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
Decision gateway with per-backend circuit breaking and fallback.

The gateway fronts an ordered list of advisor backends. Each call selects the
first backend whose circuit allows traffic; on failure it tries at most one
other eligible backend. Advisor text is parsed here, and a response that
cannot be parsed becomes the default ``done`` decision without counting
against the backend.

Breaker rules per backend:
- closed -> open after ``failure_threshold`` consecutive failures
- open -> half_open once ``reset_timeout_seconds`` have elapsed (counters reset)
- half_open -> closed after ``success_threshold`` consecutive successes
- failures while half_open only increase the failure counter
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from bugscout.exceptions import (
    AdvisorCallError,
    AdvisorFallbackError,
    ConfigurationError,
    NoAdvisorAvailableError,
)
from bugscout.exploration.types import Finding, HistoryEntry, PageObservation
from bugscout.llm.base import (
    AdvisorBackend,
    AdvisorResponse,
    DecisionRequest,
    FindingAnalysis,
    LLMResponse,
)
from bugscout.llm.config import CircuitBreakerConfig
from bugscout.llm.parser import DecisionParser, parse_finding_analysis
from bugscout.utils.logger import logger

BackendCall = Callable[[AdvisorBackend], Awaitable[LLMResponse]]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class ProviderHealth:
    """Breaker bookkeeping for one backend."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    opened_at: Optional[float] = None
    last_failure_at: Optional[float] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "opened_at": self.opened_at,
            "last_failure_at": self.last_failure_at,
            "last_error": self.last_error,
        }


@dataclass
class ProviderSlot:
    """A backend at a fixed priority position."""

    name: str
    backend: AdvisorBackend
    health: ProviderHealth = field(default_factory=ProviderHealth)


class DecisionGateway:
    """
    Resilient front for interchangeable advisor backends.

    Health bookkeeping is guarded by an ``asyncio.Lock`` so one gateway can be
    shared between sessions; backend calls themselves run outside the lock.

    Example:
        >>> gateway = DecisionGateway(
        ...     [ProviderSlot("primary", openai_backend), ProviderSlot("backup", anthropic_backend)],
        ...     CircuitBreakerConfig(failure_threshold=5),
        ... )
        >>> response = await gateway.request_decision(request)
        >>> response.decision.kind
    """

    def __init__(
        self,
        slots: Sequence[ProviderSlot],
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not slots:
            raise ConfigurationError("DecisionGateway needs at least one advisor backend")
        self._slots: List[ProviderSlot] = list(slots)
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._parser = DecisionParser()

    @classmethod
    def from_backends(
        cls,
        backends: Sequence[AdvisorBackend],
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "DecisionGateway":
        """Build slots from backends, naming each after ``backend.name``."""
        slots = [ProviderSlot(name=getattr(b, "name", f"backend-{i}"), backend=b) for i, b in enumerate(backends)]
        return cls(slots, config=config, clock=clock)

    @property
    def slots(self) -> List[ProviderSlot]:
        return list(self._slots)

    # Public operations

    async def request_decision(self, request: DecisionRequest) -> AdvisorResponse:
        """
        Ask the advisor pool for the next action.

        Returns:
            AdvisorResponse whose decision is the default ``done`` decision if
            the advisor text could not be parsed

        Raises:
            NoAdvisorAvailableError: Every circuit is open
            AdvisorCallError: The selected backend failed and none other is eligible
            AdvisorFallbackError: The selected backend and its fallback both failed
        """
        started = self._clock()
        response, provider = await self._invoke(lambda backend: backend.request_decision(request))
        latency_ms = (self._clock() - started) * 1000

        result = self._parser.parse_or_default(response.content)
        if not result.success:
            logger.warning(f"[Gateway] Substituted default decision for unparsable output from {provider}")

        return AdvisorResponse(
            decision=result.decision,
            provider=provider,
            usage=response.token_usage(),
            raw_content=response.content,
            parse_error=result.error,
            latency_ms=latency_ms,
        )

    async def analyze_finding(self, text: str, observation: Optional[PageObservation] = None) -> FindingAnalysis:
        response, _ = await self._invoke(lambda backend: backend.analyze_finding(text, observation))
        return parse_finding_analysis(response.content)

    async def summarize(self, history: Sequence[HistoryEntry], findings: Sequence[Finding]) -> str:
        response, _ = await self._invoke(lambda backend: backend.summarize(history, findings))
        return response.content.strip()

    async def health_check(self) -> bool:
        """Return True if at least one backend reports healthy; a failing check counts as unhealthy."""
        for slot in self._slots:
            try:
                healthy = await asyncio.wait_for(slot.backend.health_check(), timeout=self.config.call_timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"[Gateway] Health check timed out for {slot.name}")
                continue
            except Exception as e:
                logger.warning(f"[Gateway] Health check failed for {slot.name}: {_describe(e)}")
                continue
            if healthy:
                return True
        return False

    def status(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every slot's breaker state, keyed by slot name."""
        return {slot.name: slot.health.to_dict() for slot in self._slots}

    # Selection and breaker bookkeeping

    def _select(self, exclude: Optional[ProviderSlot] = None) -> Optional[ProviderSlot]:
        """Return the first slot that may take traffic. Call with the lock held."""
        if not self.config.enabled:
            first = self._slots[0]
            return None if first is exclude else first

        now = self._clock()
        for slot in self._slots:
            if slot is exclude:
                continue
            health = slot.health
            if health.state is CircuitState.OPEN:
                if health.opened_at is not None and now - health.opened_at >= self.config.reset_timeout_seconds:
                    health.state = CircuitState.HALF_OPEN
                    health.failure_count = 0
                    health.success_count = 0
                    logger.info(f"[Gateway] {slot.name}: open -> half_open")
                else:
                    continue
            return slot
        return None

    async def _record_success(self, slot: ProviderSlot) -> None:
        if not self.config.enabled:
            return
        async with self._lock:
            health = slot.health
            health.failure_count = 0
            health.success_count += 1
            if health.state is CircuitState.HALF_OPEN and health.success_count >= self.config.success_threshold:
                health.state = CircuitState.CLOSED
                health.success_count = 0
                health.opened_at = None
                logger.info(f"[Gateway] {slot.name}: half_open -> closed")

    async def _record_failure(self, slot: ProviderSlot, error: BaseException) -> None:
        if not self.config.enabled:
            return
        async with self._lock:
            health = slot.health
            health.failure_count += 1
            health.success_count = 0
            health.last_failure_at = self._clock()
            health.last_error = str(error) or error.__class__.__name__
            if health.state is CircuitState.CLOSED and health.failure_count >= self.config.failure_threshold:
                health.state = CircuitState.OPEN
                health.opened_at = health.last_failure_at
                logger.warning(
                    f"[Gateway] {slot.name}: closed -> open after {health.failure_count} consecutive failures"
                )

    async def _call(self, slot: ProviderSlot, call: BackendCall) -> LLMResponse:
        return await asyncio.wait_for(call(slot.backend), timeout=self.config.call_timeout_seconds)

    async def _invoke(self, call: BackendCall) -> Tuple[LLMResponse, str]:
        """Run ``call`` against the selected backend with a single fallback."""
        async with self._lock:
            primary = self._select()
        if primary is None:
            raise NoAdvisorAvailableError("No advisor backend available: all circuits are open")

        try:
            response = await self._call(primary, call)
        except Exception as primary_error:
            await self._record_failure(primary, primary_error)
            logger.warning(f"[Gateway] {primary.name} failed: {_describe(primary_error)}")

            async with self._lock:
                fallback = self._select(exclude=primary)
            if fallback is None:
                raise AdvisorCallError(primary.name, _describe(primary_error)) from primary_error

            logger.info(f"[Gateway] Falling back from {primary.name} to {fallback.name}")
            try:
                response = await self._call(fallback, call)
            except Exception as fallback_error:
                await self._record_failure(fallback, fallback_error)
                raise AdvisorFallbackError(
                    primary.name,
                    fallback.name,
                    _describe(primary_error),
                    _describe(fallback_error),
                ) from fallback_error

            await self._record_success(fallback)
            return response, fallback.name

        await self._record_success(primary)
        return response, primary.name


def _describe(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or error.__class__.__name__
