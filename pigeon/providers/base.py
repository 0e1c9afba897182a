"""Model backends. Each SDK adapter only knows how to send one prompt and read the text back."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod

from config.config_loader import ModelConfig
from pigeon.models import ModelResponse

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Anything that can answer a prompt: a real SDK client or a test double."""

    @abstractmethod
    def name(self) -> str:
        """Return the configured model name (e.g. 'llama', 'gpt_mini')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(self, prompt: str, system_prompt: str | None = None) -> ModelResponse:
        """Send one prompt and return the reply.

        Raises:
            ProviderError: On API failure, timeout, or empty reply.
        """
        ...


class SDKProvider(AIProvider):
    """Provider backed by a ModelConfig entry from settings.yaml.

    Subclasses build their client in _make_client() and implement _complete();
    timing, the per-request timeout and error wrapping live here.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    @abstractmethod
    def _make_client(self, api_key: str):
        ...

    @abstractmethod
    async def _complete(self, prompt: str, system_prompt: str | None) -> tuple[str, int | None]:
        """Return (reply text, total token count or None). Empty text is allowed here."""
        ...

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, prompt: str, system_prompt: str | None = None) -> ModelResponse:
        start = time.monotonic()
        try:
            content, token_count = await asyncio.wait_for(
                self._complete(prompt, system_prompt),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        latency = time.monotonic() - start

        if not content:
            raise ProviderError(self._config.name, "Empty response content")

        logger.debug("%s: %.2fs, %s tokens", self._config.name, latency, token_count)
        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            content=content,
            latency_sec=latency,
            token_count=token_count,
        )
