"""Chat Completions adapter for OpenAI and OpenAI-compatible hosts (OpenRouter, xAI, ...)."""

from openai import AsyncOpenAI

from pigeon.providers.base import SDKProvider


class OpenAIProvider(SDKProvider):
    """base_url in the model config selects a compatible host; omitted means api.openai.com."""

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        if self._config.base_url:
            return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
        return AsyncOpenAI(api_key=api_key)

    async def _complete(self, prompt: str, system_prompt: str | None) -> tuple[str, int | None]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self._config.model,
            messages=messages,
            max_tokens=self._config.max_tokens,
        )
        if not response.choices:
            return "", None
        token_count = response.usage.total_tokens if response.usage else None
        return response.choices[0].message.content or "", token_count
