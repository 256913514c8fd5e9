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

"""Advisor backends and the decision gateway."""

from bugscout.llm.base import (
    AdvisorBackend,
    AdvisorResponse,
    BaseLLMProvider,
    DecisionRequest,
    FindingAnalysis,
    LLMResponse,
)
from bugscout.llm.config import (
    DEFAULT_MODELS,
    AdvisorProviderConfig,
    AdvisorProviderType,
    CircuitBreakerConfig,
)
from bugscout.llm.factory import LLMProviderFactory, create_gateway
from bugscout.llm.gateway import CircuitState, DecisionGateway, ProviderHealth, ProviderSlot
from bugscout.llm.parser import DecisionParser, ParseResult, default_decision, parse_decision

__all__ = [
    "AdvisorBackend",
    "AdvisorResponse",
    "BaseLLMProvider",
    "DecisionRequest",
    "FindingAnalysis",
    "LLMResponse",
    "DEFAULT_MODELS",
    "AdvisorProviderConfig",
    "AdvisorProviderType",
    "CircuitBreakerConfig",
    "LLMProviderFactory",
    "create_gateway",
    "CircuitState",
    "DecisionGateway",
    "ProviderHealth",
    "ProviderSlot",
    "DecisionParser",
    "ParseResult",
    "default_decision",
    "parse_decision",
]
