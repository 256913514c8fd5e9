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

"""Anthropic advisor backend built on the Messages API."""

from __future__ import annotations

from typing import Any, Optional

from anthropic import AsyncAnthropic

from bugscout.exceptions import LLMProviderError
from bugscout.llm.base import BaseLLMProvider, LLMResponse
from bugscout.utils.logger import logger


class AnthropicProvider(BaseLLMProvider):
    """
    Anthropic advisor backend.

    Example:
        >>> provider = AnthropicProvider(model="claude-sonnet-4-5-20250929", api_key="sk-ant-...")
        >>> response = await provider.generate("Hello")
    """

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20250929",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, api_key, **kwargs)
        self.client = AsyncAnthropic(api_key=api_key, base_url=base_url, timeout=timeout)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a response with the Messages API.

        Raises:
            LLMProviderError: If the API call fails
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                temperature=min(temperature, 1.0),
                system=system_prompt or "",
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            logger.error(f"[Anthropic] Generation error: {e}")
            raise LLMProviderError(f"Anthropic generation failed: {e}") from e

        content = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        llm_response = LLMResponse(
            content=content,
            model=response.model,
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            },
            finish_reason=response.stop_reason,
        )
        self._track_usage(llm_response)
        return llm_response
