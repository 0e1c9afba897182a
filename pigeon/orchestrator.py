"""One processing cycle for one source: collect, dedup, generate, evaluate, gate, persist, upload."""

import logging

from config.config_loader import SourceConfig
from pigeon.collectors import TRANSFORMS, Collector, CollectorError, Transform
from pigeon.consensus import apply_tags, decide
from pigeon.dedup import DedupGate
from pigeon.evaluation import MultiModelEvaluator
from pigeon.generators import Generator
from pigeon.models import CandidatePrompt, CycleReport, ModelEvaluation
from pigeon.registry import RegistryUploader
from pigeon.storage import ArtifactStore

logger = logging.getLogger(__name__)


class CycleOrchestrator:
    """Runs the pipeline for one source at a time.

    evaluator=None disables testing: every generated prompt is kept, untagged
    and uploaded without scores.
    """

    def __init__(
        self,
        collectors: dict[str, Collector],
        generators: dict[str, Generator],
        gate: DedupGate,
        store: ArtifactStore,
        uploader: RegistryUploader,
        evaluator: MultiModelEvaluator | None = None,
        transforms: dict[str, Transform] | None = None,
    ) -> None:
        self._collectors = collectors
        self._generators = generators
        self._gate = gate
        self._store = store
        self._uploader = uploader
        self._evaluator = evaluator
        self._transforms = transforms if transforms is not None else TRANSFORMS

    @property
    def testing_enabled(self) -> bool:
        return self._evaluator is not None

    async def run_cycle(self, source: SourceConfig) -> CycleReport:
        """Process one source. Never raises; failures are logged and reported."""
        report = CycleReport(source=source.source, prompt_set_id=source.prompt_set_id)
        logger.info("Processing source %s (%s/%s)", source.source, source.collector, source.generator)
        try:
            await self._run(source, report)
        except Exception as exc:
            report.status = "failed"
            report.error = str(exc)
            logger.error("Processing cycle for %s failed: %s", source.source, exc)
        return report

    async def _collect(self, source: SourceConfig) -> list:
        collector = self._collectors.get(source.collector)
        if collector is None:
            raise CollectorError(f"Unknown collector '{source.collector}'")
        try:
            batch = await collector.collect(source.source, source.collector_options)
        except Exception as exc:
            logger.error("Failed to collect from source %s: %s", source.source, exc)
            raise
        if not isinstance(batch, list):
            raise CollectorError(f"Collector '{source.collector}' returned {type(batch).__name__}, expected list")

        transform = self._transforms.get(source.transform or "identity")
        if transform is None:
            raise CollectorError(f"Unknown transform '{source.transform}'")
        return transform(batch)

    def _gate_prompts(
        self,
        prompts: list[CandidatePrompt],
        results: dict[str, list[ModelEvaluation]],
    ) -> tuple[list[CandidatePrompt], list[ModelEvaluation], list[tuple[CandidatePrompt, str, list[ModelEvaluation]]]]:
        kept: list[CandidatePrompt] = []
        scores: list[ModelEvaluation] = []
        rejected: list[tuple[CandidatePrompt, str, list[ModelEvaluation]]] = []

        for prompt in prompts:
            evaluations = results.get(prompt.id, [])
            if not evaluations:
                # Every model failed: nothing to gate on, so the prompt is held back.
                logger.warning("Prompt %s has no evaluations, withholding it", prompt.id)
                rejected.append((prompt, "untested", []))
                continue

            decision = decide(prompt, evaluations)
            if decision.keep:
                apply_tags(prompt, decision.tags)
                kept.append(prompt)
                scores.extend(evaluations)
            else:
                rejected.append((prompt, decision.reason, evaluations))

        return kept, scores, rejected

    async def _run(self, source: SourceConfig, report: CycleReport) -> None:
        batch = await self._collect(source)
        report.collected = len(batch)
        logger.info("Collected %d items", len(batch))

        reservation = self._gate.check_and_reserve(source.collector, source.generator, batch)
        report.fingerprint = reservation.fingerprint
        if not reservation.is_new:
            report.status = "duplicate"
            return
        logger.info("Found new data to process (%s)", reservation.fingerprint[:12])

        generator = self._generators.get(source.generator)
        try:
            if generator is None:
                raise ValueError(f"Unknown generator '{source.generator}'")
            try:
                prompts = await generator.generate(batch, source.generator_options)
            except Exception as exc:
                logger.error("Failed to generate prompts: %s", exc)
                raise
            collected_path = self._store.save_collected(
                reservation.fingerprint, source.collector, source.generator, batch
            )
            self._gate.commit(reservation, collected_path)
        except BaseException:
            self._gate.release(reservation)
            raise

        report.generated = len(prompts)
        if not prompts:
            logger.warning("No prompts generated")
            report.status = "no-prompts"
            return
        logger.info("Generated %d prompts via %s", len(prompts), source.generator)

        # Saved before gating: apply_tags mutates the prompts in place.
        try:
            self._store.save_prompts(reservation.fingerprint, source.collector, source.generator, prompts)
        except OSError as exc:
            logger.error("Failed to save generated prompts for %s: %s", reservation.fingerprint[:12], exc)

        if self._evaluator is not None:
            results = await self._evaluator.evaluate(prompts)
            kept, scores, rejected = self._gate_prompts(prompts, results)
        else:
            kept, scores, rejected = list(prompts), [], []

        report.kept = len(kept)
        report.rejected = len(rejected)

        if rejected:
            try:
                self._store.save_rejected(reservation.fingerprint, source.collector, source.generator, rejected)
            except OSError as exc:
                logger.error("Failed to save rejected prompts for %s: %s", reservation.fingerprint[:12], exc)

        if not kept:
            logger.info("No prompts survived the quality gate")
            report.status = "nothing-to-upload"
            return
        logger.info("%d/%d prompts passed the quality gate", len(kept), len(prompts))

        try:
            report.uploaded_prompts = await self._uploader.upload_prompts(kept, source.prompt_set_id)
        except Exception as exc:
            logger.error("Failed to upload %d prompts: %s", len(kept), exc)
            raise
        logger.info("Uploaded %d prompts to prompt set %d", report.uploaded_prompts, source.prompt_set_id)

        if self.testing_enabled and scores:
            try:
                report.uploaded_scores = await self._uploader.upload_scores(scores, source.prompt_set_id)
                logger.info("Uploaded %d scores", report.uploaded_scores)
            except Exception as exc:
                report.error = f"Score upload failed: {exc}"
                logger.error("Failed to upload %d scores: %s", len(scores), exc)

        report.status = "ok"
        logger.info("Processing cycle completed successfully")
