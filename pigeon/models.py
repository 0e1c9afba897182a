"""Pure dataclasses for the prompt harvesting pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from typing import Any

MULTIPLE_CHOICE = "multiple-choice"
OPEN_ENDED = "open-ended"

# Opaque collector-defined items, JSON-compatible.
CollectedBatch = list[Any]


@dataclass
class CandidatePrompt:
    id: str
    type: str              # MULTIPLE_CHOICE or OPEN_ENDED
    question: str
    full_prompt: str
    question_sha256: str
    question_cid: str
    full_prompt_sha256: str
    full_prompt_cid: str
    options: dict[str, str] = field(default_factory=dict)
    answer: str | None = None
    answer_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelResponse:
    provider: str          # configured model name, e.g. "llama"
    model: str             # actual model string used
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class Score:
    value: float           # in [0, 1]
    scorer: str
    extracted_answer: str | None = None
    explanation: str | None = None


@dataclass
class ModelEvaluation:
    prompt_id: str
    model: str
    response: str
    score: float
    correct: bool
    scorer: str
    extracted_answer: str | None
    started_at: float
    finished_at: float

    @property
    def latency_sec(self) -> float:
        return self.finished_at - self.started_at


@dataclass
class ConsensusDecision:
    keep: bool
    tags: list[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class CycleReport:
    source: str
    prompt_set_id: int
    status: str = "pending"  # ok, duplicate, no-prompts, nothing-to-upload, failed
    fingerprint: str | None = None
    collected: int = 0
    generated: int = 0
    kept: int = 0
    rejected: int = 0
    uploaded_prompts: int = 0
    uploaded_scores: int = 0
    error: str | None = None
