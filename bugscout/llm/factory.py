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

"""Factory for creating advisor backends and gateways."""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from bugscout.exceptions import ConfigurationError
from bugscout.llm.anthropic_provider import AnthropicProvider
from bugscout.llm.base import BaseLLMProvider
from bugscout.llm.config import (
    DEFAULT_MODELS,
    AdvisorProviderConfig,
    AdvisorProviderType,
    CircuitBreakerConfig,
)
from bugscout.llm.gateway import DecisionGateway, ProviderSlot
from bugscout.llm.openai_provider import OpenAIProvider
from bugscout.utils.logger import logger


class LLMProviderFactory:
    """Factory for advisor backends, with a registry for custom providers."""

    _providers: Dict[str, type] = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
    }

    @classmethod
    def create(
        cls,
        provider: str,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        **kwargs: Any,
    ) -> BaseLLMProvider:
        """
        Create an advisor backend.

        Args:
            provider: Provider name (openai, anthropic, or a registered name)
            model: Model name, defaults to the provider's default model
            api_key: API key for the provider
            **kwargs: Provider-specific options

        Raises:
            ConfigurationError: If the provider is not registered
        """
        provider_lower = provider.lower()
        if provider_lower not in cls._providers:
            raise ConfigurationError(
                f"Unsupported advisor provider: {provider}. "
                f"Supported providers: {', '.join(cls._providers.keys())}"
            )

        if not model:
            try:
                model = DEFAULT_MODELS[AdvisorProviderType(provider_lower)]
            except (ValueError, KeyError):
                raise ConfigurationError(f"No default model for provider '{provider}'; set one explicitly")

        return cls._providers[provider_lower](model=model, api_key=api_key, **kwargs)

    @classmethod
    def create_from_config(cls, config: AdvisorProviderConfig) -> BaseLLMProvider:
        return cls.create(
            provider=config.provider_type.value,
            model=config.model,
            api_key=config.resolve_api_key(),
            name=config.slot_name,
            base_url=config.base_url,
            timeout=config.timeout,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            **config.extra_options,
        )

    @classmethod
    def register_provider(cls, name: str, provider_class: type) -> None:
        """Register a custom provider class (must inherit from BaseLLMProvider)."""
        if not issubclass(provider_class, BaseLLMProvider):
            raise ConfigurationError(
                f"Provider class must inherit from BaseLLMProvider, got {provider_class}"
            )
        cls._providers[name.lower()] = provider_class

    @classmethod
    def list_providers(cls) -> List[str]:
        return list(cls._providers.keys())


def create_gateway(
    providers: Sequence[AdvisorProviderConfig],
    breaker: Optional[CircuitBreakerConfig] = None,
    clock: Callable[[], float] = time.monotonic,
) -> DecisionGateway:
    """
    Build a DecisionGateway with one slot per provider config, in order.

    Raises:
        ConfigurationError: If no providers are configured or names collide
    """
    if not providers:
        raise ConfigurationError("At least one advisor provider must be configured")

    slots = []
    for provider_config in providers:
        backend = LLMProviderFactory.create_from_config(provider_config)
        slots.append(ProviderSlot(name=provider_config.slot_name, backend=backend))

    names = [slot.name for slot in slots]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Advisor slot names must be unique, got {names}")

    logger.info(f"[Gateway] Configured advisor slots: {', '.join(names)}")
    return DecisionGateway(slots, config=breaker, clock=clock)
