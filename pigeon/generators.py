"""Prompt generators: turn collected items into candidate test prompts."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from config.config_loader import PromptsConfig
from pigeon import hashing
from pigeon.llm_utils import extract_first_json
from pigeon.models import MULTIPLE_CHOICE, CandidatePrompt, CollectedBatch
from pigeon.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class GeneratorError(Exception):
    """Raised when prompt generation cannot proceed for a batch."""


def render_full_prompt(question: str, options: dict[str, str]) -> str:
    if not options:
        return question
    lines = [f"{key}: {value}" for key, value in sorted(options.items())]
    return question + "\n\n" + "\n".join(lines)


def build_prompt(
    question: str,
    type: str,
    options: dict[str, str] | None = None,
    answer_key: str | None = None,
    answer: str | None = None,
    metadata: dict[str, Any] | None = None,
    prompt_id: str | None = None,
) -> CandidatePrompt:
    """Build a CandidatePrompt with rendered full prompt and content hashes.

    For multiple choice, answer defaults to the text of the answer_key option.

    Raises:
        ValueError: If a multiple choice prompt has no options, an empty
            option, or an answer key that is not one of the options.
    """
    options = dict(options or {})
    if type == MULTIPLE_CHOICE:
        if not options:
            raise ValueError("No options provided for multiple choice question")
        if any(not str(v).strip() for v in options.values()):
            raise ValueError("Multiple choice options cannot be empty")
        if not answer_key or answer_key not in options:
            raise ValueError(f"Answer key {answer_key!r} is not one of the options")
        if answer is None:
            answer = options[answer_key]

    full_prompt = render_full_prompt(question, options)
    return CandidatePrompt(
        id=prompt_id or str(uuid.uuid4()),
        type=type,
        question=question,
        full_prompt=full_prompt,
        question_sha256=hashing.sha256(question),
        question_cid=hashing.cid(question),
        full_prompt_sha256=hashing.sha256(full_prompt),
        full_prompt_cid=hashing.cid(full_prompt),
        options=options,
        answer=answer,
        answer_key=answer_key,
        metadata=dict(metadata or {}),
    )


class Generator(ABC):
    @abstractmethod
    async def generate(self, batch: CollectedBatch, options: dict[str, Any]) -> list[CandidatePrompt]:
        """Return candidate prompts for the batch. An empty list is not an error."""
        ...


class MultipleChoiceGenerator(Generator):
    """Asks an LLM for one five-option multiple choice question per collected item.

    Options:
        model: name of the configured model used for generation (required).
        question_gen_prompt_extra_prefix: extra instructions prepended to the template.
        max_items: only use the first N items.
    """

    identifier = "generic-mcq"

    def __init__(self, providers: dict[str, AIProvider], prompts: PromptsConfig) -> None:
        self._providers = providers
        self._prompts = prompts

    def _provider_for(self, options: dict[str, Any]) -> AIProvider:
        name = options.get("model")
        if not name:
            raise GeneratorError("generator_options.model is required")
        if name not in self._providers:
            raise GeneratorError(f"Generator model '{name}' is not available")
        return self._providers[name]

    def _item_text(self, item: Any) -> tuple[str, str, str | None]:
        if isinstance(item, dict):
            title = str(item.get("title", ""))
            text = str(item.get("description") or item.get("content") or item.get("text") or "")
            return title, text, item.get("link")
        return "", str(item), None

    async def _generate_one(
        self,
        provider: AIProvider,
        item: Any,
        extra_prefix: str,
    ) -> CandidatePrompt | None:
        title, text, link = self._item_text(item)
        if not text.strip() and not title.strip():
            return None

        request = self._prompts.question_generation.format(
            extra_prefix=extra_prefix,
            title=title,
            text=text,
        )
        try:
            reply = await provider.generate(request)
        except ProviderError as exc:
            raise GeneratorError(f"Generation model failed: {exc}") from exc

        try:
            parsed = extract_first_json(reply.content)
            return build_prompt(
                question=str(parsed["question"]).strip(),
                type=MULTIPLE_CHOICE,
                options={str(k): str(v) for k, v in parsed["options"].items()},
                answer_key=str(parsed["answer_key"]).strip(),
                metadata={
                    "source_link": link,
                    "source_title": title,
                    "generator": self.identifier,
                    "generator_model": provider.model_string(),
                    "tags": [],
                },
            )
        except (ValueError, KeyError, AttributeError) as exc:
            logger.warning("Skipping item %r: unusable generator output (%s)", title[:60], exc)
            return None

    async def generate(self, batch: CollectedBatch, options: dict[str, Any]) -> list[CandidatePrompt]:
        provider = self._provider_for(options)
        extra_prefix = str(options.get("question_gen_prompt_extra_prefix", "")).strip()
        items = batch
        if options.get("max_items") is not None:
            items = batch[: int(options["max_items"])]

        logger.info("Generating prompts via %s from %d items", self.identifier, len(items))
        prompts: list[CandidatePrompt] = []
        for item in items:
            prompt = await self._generate_one(provider, item, extra_prefix)
            if prompt is not None:
                prompts.append(prompt)
        return prompts


GENERATORS: dict[str, type[MultipleChoiceGenerator]] = {
    "generic-mcq": MultipleChoiceGenerator,
}
