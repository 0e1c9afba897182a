"""Response scorers: letter matching for multiple choice, an LLM judge for open-ended prompts."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from pigeon.llm_utils import extract_first_json
from pigeon.models import CandidatePrompt, Score
from pigeon.providers.base import AIProvider

logger = logging.getLogger(__name__)

_NO_ANSWER = "<!NO ANSWER!>"


class ScorerError(Exception):
    """Raised when a response could not be scored because the scorer itself failed."""


@dataclass
class EvaluationInput:
    prompt: CandidatePrompt
    response: str
    model: str


class Scorer(ABC):
    identifier: str

    @abstractmethod
    async def score_one(self, item: EvaluationInput) -> Score | None:
        """Score one response. None means "could not be scored", not a low score."""
        ...


class MultipleChoiceScorer(Scorer):
    """Extracts the chosen option from a response and compares it with the answer key.

    Patterns are tried from most to least specific; within a pattern the last
    match in the response wins. Answers given as option text are mapped back
    to their letter.
    """

    identifier = "multiple-choice"

    def can_score(self, prompt: CandidatePrompt) -> bool:
        return bool(prompt.options) and bool(prompt.answer_key) and bool(prompt.answer)

    def _patterns(self, option_texts: list[str]) -> list[re.Pattern[str]]:
        patterns = []
        texts = [t.strip() for t in option_texts if t.strip()]
        if texts:
            # Longest first so an option that prefixes another cannot shadow it.
            text = "|".join(re.escape(t) for t in sorted(texts, key=len, reverse=True))
            # The option must end where the answer ends: "4" must not match "45" or "4.5".
            end = r"(?!\w|\.\w)"
            patterns += [
                re.compile(rf"[Aa]nswer is \$\\boxed\{{({text})\}}\$"),
                re.compile(rf"[Aa]nswer is\s+({text}){end}"),
                re.compile(rf"[Aa]nswer is\s+\**({text}){end}\**"),
            ]
        patterns += [
            re.compile(r"[Aa]nswer is \$\\boxed\{([A-Z])\}\$\.?"),
            re.compile(r"[Aa]nswer is\s+([A-Z])(?!\w)"),
            re.compile(r"[Aa]nswer is\s+\**([A-Z])(?!\w)\**"),
            re.compile(r"\b([A-Z]):.+"),
            re.compile(r"\b([A-Z])\)\s*.+"),
            re.compile(r"\b([A-Z])\)"),
        ]
        return patterns

    def extract_answer(self, response: str, option_texts: list[str]) -> str | None:
        if _NO_ANSWER in response:
            return None
        for pattern in self._patterns(option_texts):
            matches = pattern.findall(response)
            if matches:
                return matches[-1]
        return None

    async def score_one(self, item: EvaluationInput) -> Score | None:
        prompt = item.prompt
        if not self.can_score(prompt):
            return None

        data = item.response
        score = 0.0
        if data.strip() == prompt.answer_key.strip():
            score = 1.0

        extracted = self.extract_answer(data, [prompt.answer, *prompt.options.values()])
        if extracted is not None and extracted not in prompt.options:
            letter = next(
                (key for key, value in prompt.options.items() if value.strip() == extracted.strip()),
                None,
            )
            if letter is not None:
                extracted = letter
        if extracted == prompt.answer_key:
            score = 1.0

        return Score(value=score, scorer=self.identifier, extracted_answer=extracted)


class LLMJudgeScorer(Scorer):
    """Asks a judge model whether a response is equivalent to the expected answer."""

    identifier = "llm-judge"

    def __init__(self, judge: AIProvider, prompts: PromptsConfig) -> None:
        self._judge = judge
        self._prompts = prompts

    async def score_one(self, item: EvaluationInput) -> Score | None:
        prompt = item.prompt
        if not prompt.answer or not item.response.strip():
            return None

        judge_prompt = self._prompts.judge.format(
            task=prompt.full_prompt,
            expected=prompt.answer,
            candidate=item.response,
        )
        reply = await self._judge.generate(judge_prompt, system_prompt=self._prompts.judge_system)
        try:
            result = extract_first_json(reply.content)
        except ValueError as exc:
            raise ScorerError(f"Judge {self._judge.name()} reply unreadable: {exc}") from exc

        try:
            overall = float(result["score"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ScorerError(f"Judge {self._judge.name()} returned no numeric score") from exc

        value = min(1.0, max(0.0, overall / 100))
        logger.debug("Judge scored %s response for %s: %.2f", item.model, prompt.id, value)
        return Score(
            value=value,
            scorer=self.identifier,
            explanation=result.get("justification"),
        )
