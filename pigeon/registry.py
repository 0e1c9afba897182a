"""Benchmark registry clients. Uploads are best-effort and idempotent by content hash."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Any

from pigeon import hashing
from pigeon.models import CandidatePrompt, ModelEvaluation

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when an upload to the registry fails."""


class RegistryUploader(ABC):
    @abstractmethod
    async def upload_prompts(self, prompts: list[CandidatePrompt], prompt_set_id: int) -> int:
        """Upload prompts; returns how many were newly stored."""
        ...

    @abstractmethod
    async def upload_scores(self, scores: list[ModelEvaluation], prompt_set_id: int) -> int:
        """Upload scores; returns how many were newly stored."""
        ...


def prompt_content_hash(prompt: CandidatePrompt) -> str:
    """Hash everything but the generated id, so re-generated identical prompts collide."""
    record = asdict(prompt)
    record.pop("id")
    return hashing.fingerprint(record)


class FileRegistry(RegistryUploader):
    """Stores each prompt set as JSON Lines files in a directory.

    Layout: prompt-set-{id}.prompts.jsonl and prompt-set-{id}.scores.jsonl,
    one {"sha256": ..., "record": {...}} object per line.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._lock = asyncio.Lock()

    def _path(self, prompt_set_id: int, kind: str) -> Path:
        return self._directory / f"prompt-set-{prompt_set_id}.{kind}.jsonl"

    def _existing_hashes(self, path: Path) -> set[str]:
        if not path.exists():
            return set()
        hashes: set[str] = set()
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    hashes.add(json.loads(line)["sha256"])
        return hashes

    def _append(self, path: Path, entries: list[tuple[str, dict[str, Any]]]) -> int:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            seen = self._existing_hashes(path)
            written = 0
            with path.open("a", encoding="utf-8") as f:
                for digest, record in entries:
                    if digest in seen:
                        continue
                    f.write(json.dumps({"sha256": digest, "record": record}, ensure_ascii=False) + "\n")
                    seen.add(digest)
                    written += 1
        except (OSError, json.JSONDecodeError, KeyError) as exc:
            raise RegistryError(f"Failed to write {path.name}: {exc}") from exc
        return written

    async def upload_prompts(self, prompts: list[CandidatePrompt], prompt_set_id: int) -> int:
        entries = [(prompt_content_hash(p), asdict(p)) for p in prompts]
        async with self._lock:
            written = self._append(self._path(prompt_set_id, "prompts"), entries)
        logger.info("Stored %d/%d prompts in prompt set %d", written, len(prompts), prompt_set_id)
        return written

    async def upload_scores(self, scores: list[ModelEvaluation], prompt_set_id: int) -> int:
        entries = []
        for score in scores:
            record = asdict(score)
            entries.append((hashing.fingerprint(record), record))
        async with self._lock:
            written = self._append(self._path(prompt_set_id, "scores"), entries)
        logger.info("Stored %d/%d scores in prompt set %d", written, len(scores), prompt_set_id)
        return written
