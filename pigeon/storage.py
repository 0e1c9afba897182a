"""Local JSON artifacts for collected batches, generated prompts and rejections."""

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from pigeon.models import CandidatePrompt, CollectedBatch, ModelEvaluation

logger = logging.getLogger(__name__)


def artifact_name(fingerprint: str, collector_id: str, generator_id: str, suffix: str) -> str:
    return f"{fingerprint}.{collector_id}.{generator_id}.{suffix}"


def write_atomic(path: Path, text: str) -> None:
    """Write text to path via a temporary sibling and rename, so readers never see partial files."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, indent=2, ensure_ascii=False)


class ArtifactStore:
    """Writes per-batch artifacts into a single data directory."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    def ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, fingerprint: str, collector_id: str, generator_id: str, suffix: str) -> Path:
        return self.data_dir / artifact_name(fingerprint, collector_id, generator_id, suffix)

    def save_collected(
        self,
        fingerprint: str,
        collector_id: str,
        generator_id: str,
        batch: CollectedBatch,
    ) -> Path:
        path = self.path_for(fingerprint, collector_id, generator_id, "collected.json")
        write_atomic(path, _dump(batch))
        logger.info("Saved %d collected items to %s", len(batch), path.name)
        return path

    def save_prompts(
        self,
        fingerprint: str,
        collector_id: str,
        generator_id: str,
        prompts: list[CandidatePrompt],
    ) -> Path:
        path = self.path_for(fingerprint, collector_id, generator_id, "prompts.json")
        write_atomic(path, _dump([asdict(p) for p in prompts]))
        logger.info("Saved %d prompts to %s", len(prompts), path.name)
        return path

    def save_rejected(
        self,
        fingerprint: str,
        collector_id: str,
        generator_id: str,
        rejected: list[tuple[CandidatePrompt, str, list[ModelEvaluation]]],
    ) -> Path:
        """Record prompts withheld from upload along with why and how each model did."""
        path = self.path_for(fingerprint, collector_id, generator_id, "rejected.json")
        entries = [
            {
                "prompt_id": prompt.id,
                "question": prompt.question,
                "reason": reason,
                "evaluations": [asdict(e) for e in evaluations],
            }
            for prompt, reason, evaluations in rejected
        ]
        write_atomic(path, _dump(entries))
        logger.info("Recorded %d rejected prompts in %s", len(entries), path.name)
        return path
