"""Multi-model evaluation: bounded fan-out across prompts, sequential model calls per prompt."""

import asyncio
import logging
import time

from config.config_loader import PromptsConfig
from pigeon.models import MULTIPLE_CHOICE, CandidatePrompt, ModelEvaluation
from pigeon.providers.base import AIProvider, ProviderError
from pigeon.scorers import EvaluationInput, Scorer, ScorerError

logger = logging.getLogger(__name__)

DEFAULT_CORRECT_THRESHOLD = 0.8


class MultiModelEvaluator:
    """Asks every test model each prompt and scores the answers.

    Prompts are evaluated concurrently, at most max_concurrency at a time.
    Within one prompt the models are called one after another in configured
    order. A model whose call or scoring fails is left out of that prompt's
    results rather than being counted as wrong.
    """

    def __init__(
        self,
        providers: list[AIProvider],
        scorers: dict[str, Scorer],
        prompts: PromptsConfig,
        max_concurrency: int = 4,
        call_timeout_sec: float = 120.0,
        correct_threshold: float = DEFAULT_CORRECT_THRESHOLD,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._providers = providers
        self._scorers = scorers
        self._prompts = prompts
        self._max_concurrency = max_concurrency
        self._call_timeout_sec = call_timeout_sec
        self._correct_threshold = correct_threshold

    @property
    def model_names(self) -> list[str]:
        return [p.name() for p in self._providers]

    def _system_prompt(self, prompt: CandidatePrompt) -> str:
        if prompt.type == MULTIPLE_CHOICE:
            return self._prompts.multiple_choice_system
        return self._prompts.open_ended_system

    async def _evaluate_one(
        self,
        prompt: CandidatePrompt,
        provider: AIProvider,
        scorer: Scorer | None,
    ) -> ModelEvaluation | None:
        """Run one (prompt, model) pair. Never raises; returns None when the pair must be omitted."""
        started_at = time.time()
        try:
            response = await asyncio.wait_for(
                provider.generate(prompt.full_prompt, system_prompt=self._system_prompt(prompt)),
                timeout=self._call_timeout_sec,
            )
        except TimeoutError:
            logger.warning(
                "Model %s timed out after %.0fs on prompt %s",
                provider.name(), self._call_timeout_sec, prompt.id,
            )
            return None
        except ProviderError as exc:
            logger.warning("Model %s failed on prompt %s: %s", provider.name(), prompt.id, exc)
            return None
        except Exception as exc:
            logger.warning("Model %s unexpected failure on prompt %s: %s", provider.name(), prompt.id, exc)
            return None
        finished_at = time.time()

        if scorer is None:
            logger.warning("No scorer for prompt type %s, skipping %s", prompt.type, provider.name())
            return None

        try:
            score = await scorer.score_one(
                EvaluationInput(prompt=prompt, response=response.content, model=provider.name())
            )
        except (ScorerError, ProviderError) as exc:
            logger.warning("Scoring %s answer to %s failed: %s", provider.name(), prompt.id, exc)
            return None
        except Exception as exc:
            logger.warning("Scorer %s unexpected failure on %s: %s", scorer.identifier, prompt.id, exc)
            return None

        if score is None:
            logger.warning("Response of %s to prompt %s could not be scored", provider.name(), prompt.id)
            return None

        return ModelEvaluation(
            prompt_id=prompt.id,
            model=provider.name(),
            response=response.content,
            score=score.value,
            correct=score.value >= self._correct_threshold,
            scorer=score.scorer,
            extracted_answer=score.extracted_answer,
            started_at=started_at,
            finished_at=finished_at,
        )

    async def _evaluate_prompt(
        self,
        prompt: CandidatePrompt,
        semaphore: asyncio.Semaphore,
    ) -> list[ModelEvaluation]:
        scorer = self._scorers.get(prompt.type)
        evaluations: list[ModelEvaluation] = []
        async with semaphore:
            for provider in self._providers:
                result = await self._evaluate_one(prompt, provider, scorer)
                if result is not None:
                    evaluations.append(result)

        correct = sum(1 for e in evaluations if e.correct)
        logger.info(
            "Prompt %s: %d/%d models answered, %d correct",
            prompt.id, len(evaluations), len(self._providers), correct,
        )
        return evaluations

    async def evaluate(self, prompts: list[CandidatePrompt]) -> dict[str, list[ModelEvaluation]]:
        """Evaluate every prompt against every model.

        Returns:
            Dict mapping prompt id -> evaluations of the models that succeeded,
            in configured model order.
        """
        logger.info(
            "Evaluating %d prompts against %d models (concurrency %d)",
            len(prompts), len(self._providers), self._max_concurrency,
        )
        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await asyncio.gather(*(self._evaluate_prompt(p, semaphore) for p in prompts))
        return {prompt.id: evals for prompt, evals in zip(prompts, results)}
