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

"""Advisor backend and circuit breaker configuration."""

import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class AdvisorProviderType(str, Enum):
    """Supported advisor backend types."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Environment variables consulted when no api_key is configured
API_KEY_ENV_VARS = {
    AdvisorProviderType.OPENAI: "OPENAI_API_KEY",
    AdvisorProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
}


class AdvisorProviderConfig(BaseModel):
    """Configuration for a single advisor backend slot."""

    provider_type: AdvisorProviderType
    model: str
    name: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = Field(default=60.0, ge=1.0, le=300.0)
    max_tokens: int = Field(default=2048, ge=1)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    # Provider-specific options passed straight to the SDK client
    extra_options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Reject blank model names."""
        if not v or not v.strip():
            raise ValueError("model must not be empty")
        return v.strip()

    @property
    def slot_name(self) -> str:
        """Name used for this backend in logs and health reports."""
        return self.name or f"{self.provider_type.value}:{self.model}"

    def resolve_api_key(self) -> Optional[str]:
        """Return the configured key or fall back to the provider's env var."""
        if self.api_key:
            return self.api_key
        return os.environ.get(API_KEY_ENV_VARS[self.provider_type])


class CircuitBreakerConfig(BaseModel):
    """
    Circuit breaker settings shared by every backend slot of a gateway.

    Attributes:
        enabled: When False the gateway always uses the first backend
        failure_threshold: Consecutive failures that open a closed circuit
        reset_timeout_seconds: Time an open circuit waits before half-open
        success_threshold: Consecutive half-open successes that close it
        call_timeout_seconds: Per-call timeout; a timeout counts as a failure
    """

    enabled: bool = Field(default=True)
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout_seconds: float = Field(default=60.0, ge=0.0)
    success_threshold: int = Field(default=2, ge=1)
    call_timeout_seconds: float = Field(default=60.0, gt=0.0)

    @model_validator(mode="after")
    def validate_timeouts(self) -> "CircuitBreakerConfig":
        """Keep the call timeout within a sane upper bound."""
        if self.call_timeout_seconds > 600:
            raise ValueError("call_timeout_seconds must not exceed 600")
        return self


# Default models per backend type
DEFAULT_MODELS = {
    AdvisorProviderType.OPENAI: "gpt-4o",
    AdvisorProviderType.ANTHROPIC: "claude-sonnet-4-5-20250929",
}
