"""Anthropic Messages API adapter."""

import anthropic as anthropic_sdk

from pigeon.providers.base import SDKProvider


class AnthropicProvider(SDKProvider):
    def _make_client(self, api_key: str) -> anthropic_sdk.AsyncAnthropic:
        return anthropic_sdk.AsyncAnthropic(api_key=api_key)

    async def _complete(self, prompt: str, system_prompt: str | None) -> tuple[str, int | None]:
        kwargs = {"system": system_prompt} if system_prompt else {}
        response = await self._client.messages.create(
            model=self._config.model,
            max_tokens=self._config.max_tokens,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        # Only text blocks carry the answer; tool_use or thinking blocks are ignored.
        text = "\n".join(b.text for b in response.content or [] if b.type == "text")
        usage = response.usage
        token_count = usage.input_tokens + usage.output_tokens if usage else None
        return text, token_count
