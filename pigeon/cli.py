"""Click CLI: loads config, builds the pipeline and runs the scheduler."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, ConfigError, load_config
from pigeon.collectors import COLLECTORS, TRANSFORMS
from pigeon.dedup import DedupGate
from pigeon.evaluation import MultiModelEvaluator
from pigeon.generators import GENERATORS
from pigeon.healthcheck import run_health_checks
from pigeon.models import MULTIPLE_CHOICE, OPEN_ENDED
from pigeon.orchestrator import CycleOrchestrator
from pigeon.output import print_pass_summary
from pigeon.providers.anthropic import AnthropicProvider
from pigeon.providers.base import AIProvider, SDKProvider
from pigeon.providers.gemini import GeminiProvider
from pigeon.providers.openai_provider import OpenAIProvider
from pigeon.registry import FileRegistry
from pigeon.scheduler import Scheduler
from pigeon.scorers import LLMJudgeScorer, MultipleChoiceScorer, Scorer
from pigeon.storage import ArtifactStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[SDKProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by configured model name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        try:
            providers[name] = PROVIDER_CLASSES[model_cfg.sdk](model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _validate_sources(config: AppConfig) -> None:
    for source in config.sources:
        if source.collector not in COLLECTORS:
            raise ConfigError(f"Unknown collector '{source.collector}' for {source.source}")
        if source.generator not in GENERATORS:
            raise ConfigError(f"Unknown generator '{source.generator}' for {source.source}")
        if source.transform is not None and source.transform not in TRANSFORMS:
            raise ConfigError(f"Unknown transform '{source.transform}' for {source.source}")


def _health_check_names(config: AppConfig, testing_enabled: bool) -> list[str]:
    """Models the pipeline will call: source generator models, plus test and judge models when testing."""
    names: list[str] = []
    for source in config.sources:
        model = source.generator_options.get("model")
        if model:
            names.append(str(model))
    if testing_enabled:
        names.extend(config.defaults.test_models)
        if config.defaults.judge_model:
            names.append(config.defaults.judge_model)
    return list(dict.fromkeys(names))


def _filter_healthy(providers: dict[str, AIProvider], names: list[str]) -> dict[str, AIProvider]:
    """Ping the named providers; drop the ones that fail, logging why."""
    to_check = {n: providers[n] for n in names if n in providers}
    results = asyncio.run(run_health_checks(to_check))
    healthy = dict(providers)
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            logger.info("Health check OK: %s", name)
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            logger.warning("Health check FAIL: %s: %s", name, short_err)
            healthy.pop(name, None)
    return healthy


def build_orchestrator(
    config: AppConfig,
    providers: dict[str, AIProvider],
    testing_enabled: bool,
) -> CycleOrchestrator:
    """Wire collectors, generators, evaluator, dedup gate, store and registry.

    Raises:
        ConfigError: If sources reference unknown components or testing is
            enabled with no usable test model.
    """
    _validate_sources(config)
    defaults = config.defaults

    evaluator: MultiModelEvaluator | None = None
    if testing_enabled:
        test_providers = [providers[n] for n in defaults.test_models if n in providers]
        missing = [n for n in defaults.test_models if n not in providers]
        if missing:
            logger.warning("Test models unavailable, evaluating without them: %s", ", ".join(missing))
        if not test_providers:
            raise ConfigError("Testing is enabled but none of the test models are available")

        scorers: dict[str, Scorer] = {MULTIPLE_CHOICE: MultipleChoiceScorer()}
        judge = providers.get(defaults.judge_model) if defaults.judge_model else None
        if judge is not None:
            scorers[OPEN_ENDED] = LLMJudgeScorer(judge, config.prompts)
        else:
            logger.warning("No judge model available, open-ended prompts cannot be scored")

        evaluator = MultiModelEvaluator(
            providers=test_providers,
            scorers=scorers,
            prompts=config.prompts,
            max_concurrency=defaults.max_concurrency,
            call_timeout_sec=defaults.call_timeout_sec,
            correct_threshold=defaults.correct_threshold,
        )

    store = ArtifactStore(defaults.data_dir)
    store.ensure_dir()

    return CycleOrchestrator(
        collectors={name: cls() for name, cls in COLLECTORS.items()},
        generators={name: cls(providers, config.prompts) for name, cls in GENERATORS.items()},
        gate=DedupGate(defaults.data_dir),
        store=store,
        uploader=FileRegistry(defaults.registry_dir),
        evaluator=evaluator,
    )


async def _serve(scheduler: Scheduler, once: bool) -> None:
    # SIGINT/SIGTERM only request shutdown; an in-flight pass always finishes.
    scheduler.install_signal_handlers()
    if once:
        await scheduler.run_once()
        return
    await scheduler.start()


@click.command()
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Path to settings.yaml (default: bundled config/settings.yaml)")
@click.option("--once", is_flag=True, help="Run a single pass over all sources and exit")
@click.option("--interval-hours", type=float, default=None, help="Hours between passes (default: from config)")
@click.option("--data-dir", default=None, help="Directory for collected data and markers (default: from config)")
@click.option("--no-testing", is_flag=True, help="Upload generated prompts without multi-model evaluation")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    settings_path: str | None,
    once: bool,
    interval_hours: float | None,
    data_dir: str | None,
    no_testing: bool,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """Pigeon -- harvest feeds into benchmark prompts, keep the ones models disagree on.

    \b
    Examples:
      python -m pigeon.cli --once
      python -m pigeon.cli --interval-hours 12
      python -m pigeon.cli --once --no-testing --data-dir ./scratch
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(settings_path)) if settings_path else load_config()
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if data_dir:
        config.defaults.data_dir = Path(data_dir)
    testing_enabled = config.defaults.testing_enabled and not no_testing
    interval_sec = (interval_hours if interval_hours is not None else config.defaults.interval_hours) * 3600

    if not config.sources:
        console.print("[bold red]Error:[/bold red] No sources configured.")
        sys.exit(1)

    providers = _build_all_providers(config)
    if not skip_health_check:
        providers = _filter_healthy(providers, _health_check_names(config, testing_enabled))

    try:
        orchestrator = build_orchestrator(config, providers, testing_enabled)
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    scheduler = Scheduler(
        sources=config.sources,
        run_cycle=orchestrator.run_cycle,
        interval_sec=interval_sec,
        poll_interval_sec=config.defaults.poll_interval_sec,
        on_pass_complete=print_pass_summary,
    )
    asyncio.run(_serve(scheduler, once))


if __name__ == "__main__":
    main()
