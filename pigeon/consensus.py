"""Quality gate: drop prompts every model got right, tag the rest by answer agreement."""

import logging

from pigeon.models import MULTIPLE_CHOICE, CandidatePrompt, ConsensusDecision, ModelEvaluation

logger = logging.getLogger(__name__)

CONSENSUS_TAG = "consensus-answer"
DIVERSE_TAG = "diverse-answer"
MAJORITY_TAGS = ("majority-answer", "auto-generated", "auto-qa-llm-answer-similar")
PROVENANCE_TAG = "pigeon-generated"


def answer_tags(evaluations: list[ModelEvaluation]) -> list[str]:
    """Classify the spread of extracted answers.

    Only evaluations with an extracted answer contribute answers; the
    evaluation count is the denominator. Checks run in order and the first
    matching rule wins.
    """
    total = len(evaluations)
    answers = [e.extracted_answer for e in evaluations if e.extracted_answer is not None]
    distinct = len(set(answers))

    if answers and distinct == 1:
        return [CONSENSUS_TAG]
    if total > 0 and distinct == total:
        return [DIVERSE_TAG]
    if total > 0 and distinct >= total / 2:
        return list(MAJORITY_TAGS)
    return []


def decide(prompt: CandidatePrompt, evaluations: list[ModelEvaluation]) -> ConsensusDecision:
    if prompt.type != MULTIPLE_CHOICE:
        return ConsensusDecision(keep=True, reason="not-multiple-choice")

    if evaluations and all(e.score == 1 for e in evaluations):
        logger.info(
            "Discarding prompt %s: all %d models answered correctly",
            prompt.id, len(evaluations),
        )
        return ConsensusDecision(keep=False, reason="too-easy")

    tags = answer_tags(evaluations)
    tags.append(PROVENANCE_TAG)
    return ConsensusDecision(keep=True, tags=tags, reason="kept")


def apply_tags(prompt: CandidatePrompt, tags: list[str]) -> None:
    """Merge tags into prompt.metadata['tags'], preserving order and skipping duplicates."""
    existing = list(prompt.metadata.get("tags", []))
    for tag in tags:
        if tag not in existing:
            existing.append(tag)
    prompt.metadata["tags"] = existing
