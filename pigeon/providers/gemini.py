"""Gemini adapter using google-genai's async client."""

from google import genai
from google.genai import types as genai_types

from pigeon.providers.base import SDKProvider


class GeminiProvider(SDKProvider):
    def _make_client(self, api_key: str) -> genai.Client:
        return genai.Client(api_key=api_key)

    async def _complete(self, prompt: str, system_prompt: str | None) -> tuple[str, int | None]:
        response = await self._client.aio.models.generate_content(
            model=self._config.model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                max_output_tokens=self._config.max_tokens,
                system_instruction=system_prompt,
            ),
        )
        usage = response.usage_metadata
        return response.text or "", usage.total_token_count if usage else None
