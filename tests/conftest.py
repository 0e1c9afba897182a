"""Shared pytest fixtures."""

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from config.config_loader import ModelConfig, PromptsConfig, SourceConfig
from pigeon.collectors import Collector
from pigeon.generators import Generator, build_prompt
from pigeon.models import MULTIPLE_CHOICE, CandidatePrompt, ModelEvaluation, ModelResponse
from pigeon.providers.base import AIProvider
from pigeon.registry import RegistryUploader


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        question_generation="{extra_prefix}\nTitle: {title}\nText: {text}",
        multiple_choice_system="Answer as `The answer is X`.",
        open_ended_system="Answer concisely.",
        judge_system="You are a judge.",
        judge="TASK: {task}\nEXPECTED: {expected}\nCANDIDATE: {candidate}",
    )


@pytest.fixture
def sample_source() -> SourceConfig:
    return SourceConfig(
        collector="fake",
        generator="fake",
        prompt_set_id=62,
        source="https://example.org/feed.xml",
    )


def make_mc_prompt(question: str = "Which organ filters blood?", answer_key: str = "B") -> CandidatePrompt:
    return build_prompt(
        question=question,
        type=MULTIPLE_CHOICE,
        options={"A": "Heart", "B": "Kidney", "C": "Lung"},
        answer_key=answer_key,
        metadata={"source_link": "https://example.org/a", "tags": []},
    )


def make_evaluation(
    model: str,
    score: float,
    extracted: str | None,
    prompt_id: str = "p1",
) -> ModelEvaluation:
    return ModelEvaluation(
        prompt_id=prompt_id,
        model=model,
        response=f"The answer is {extracted}",
        score=score,
        correct=score >= 0.8,
        scorer="multiple-choice",
        extracted_answer=extracted,
        started_at=0.0,
        finished_at=0.5,
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=ModelResponse(
                provider=provider_name,
                model="mock-model",
                content=response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, system_prompt: str | None = None) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return ModelResponse(self._name, "mock-model", self._response_content, 0.1, 10)


def answering_provider(name: str, answers: dict[str, str]) -> MockProvider:
    """MockProvider whose reply depends on which question appears in the prompt."""
    provider = MockProvider(name)

    async def reply(prompt: str, system_prompt: str | None = None) -> ModelResponse:
        for question, answer in answers.items():
            if question in prompt:
                return ModelResponse(name, "mock-model", f"The answer is {answer}", 0.1, 5)
        return ModelResponse(name, "mock-model", "I do not know", 0.1, 5)

    provider.generate = AsyncMock(side_effect=reply)
    return provider


class FakeCollector(Collector):
    def __init__(self, items: list[Any] | None = None, error: Exception | None = None) -> None:
        self.items = items if items is not None else [{"title": "Case 1", "link": "https://example.org/1"}]
        self.error = error
        self.calls = 0

    async def collect(self, source: str, options: dict[str, Any]) -> list[Any]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [dict(i) if isinstance(i, dict) else i for i in self.items]


class FakeGenerator(Generator):
    def __init__(self, prompts: list[CandidatePrompt] | None = None, error: Exception | None = None) -> None:
        self.prompts = prompts if prompts is not None else [make_mc_prompt()]
        self.error = error
        self.calls = 0

    async def generate(self, batch: list[Any], options: dict[str, Any]) -> list[CandidatePrompt]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.prompts)


class RecordingUploader(RegistryUploader):
    def __init__(self, prompt_error: Exception | None = None, score_error: Exception | None = None) -> None:
        self.prompt_uploads: list[tuple[list[CandidatePrompt], int]] = []
        self.score_uploads: list[tuple[list[ModelEvaluation], int]] = []
        self.prompt_error = prompt_error
        self.score_error = score_error

    async def upload_prompts(self, prompts: list[CandidatePrompt], prompt_set_id: int) -> int:
        if self.prompt_error is not None:
            raise self.prompt_error
        self.prompt_uploads.append((list(prompts), prompt_set_id))
        return len(prompts)

    async def upload_scores(self, scores: list[ModelEvaluation], prompt_set_id: int) -> int:
        if self.score_error is not None:
            raise self.score_error
        self.score_uploads.append((list(scores), prompt_set_id))
        return len(scores)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path
