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
OpenAI advisor backend.

Implements ``BaseLLMProvider.generate()`` on the Chat Completions API and asks
for JSON output so decisions parse cleanly.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from bugscout.exceptions import LLMProviderError
from bugscout.llm.base import BaseLLMProvider, LLMResponse
from bugscout.utils.logger import logger


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI advisor backend using the Chat Completions API.

    Example:
        >>> provider = OpenAIProvider(model="gpt-4o", api_key="sk-...")
        >>> response = await provider.generate("Hello")
        >>> print(response.content)
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, api_key, **kwargs)
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self._is_reasoning_model = model.lower().startswith(("o1", "o3", "o4"))

    def _build_api_kwargs(
        self,
        messages: List[Dict[str, Any]],
        temperature: float,
        max_tokens: Optional[int],
        json_mode: bool,
    ) -> Dict[str, Any]:
        api_kwargs: Dict[str, Any] = {"model": self.model, "messages": messages}

        # Reasoning models reject custom temperature and use max_completion_tokens
        if self._is_reasoning_model:
            if max_tokens:
                api_kwargs["max_completion_tokens"] = max_tokens
        else:
            api_kwargs["temperature"] = temperature
            if max_tokens:
                api_kwargs["max_tokens"] = max_tokens

        if json_mode:
            api_kwargs["response_format"] = {"type": "json_object"}

        return api_kwargs

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a response with the Chat Completions API.

        JSON mode is enabled whenever the system prompt asks for JSON.

        Raises:
            LLMProviderError: If the API call fails
        """
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        json_mode = bool(system_prompt and "JSON" in system_prompt)
        api_kwargs = self._build_api_kwargs(messages, temperature, max_tokens, json_mode)

        try:
            response = await self.client.chat.completions.create(**api_kwargs)
        except Exception as e:
            logger.error(f"[OpenAI] Generation error: {e}")
            raise LLMProviderError(f"OpenAI generation failed: {e}") from e

        choice = response.choices[0]
        llm_response = LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
                "completion_tokens": response.usage.completion_tokens if response.usage else 0,
                "total_tokens": response.usage.total_tokens if response.usage else 0,
            },
            finish_reason=choice.finish_reason,
        )
        self._track_usage(llm_response)
        return llm_response
