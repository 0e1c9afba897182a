"""Load settings.yaml into typed dataclasses. Validates source wiring at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

KNOWN_SDKS = {"openai", "anthropic", "gemini"}


class ConfigError(ValueError):
    """Raised when settings.yaml is structurally invalid."""


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    question_generation: str
    multiple_choice_system: str
    open_ended_system: str
    judge_system: str
    judge: str


@dataclass(frozen=True)
class SourceConfig:
    collector: str
    generator: str
    prompt_set_id: int
    source: str
    collector_options: dict[str, Any] = field(default_factory=dict)
    generator_options: dict[str, Any] = field(default_factory=dict)
    transform: str | None = None


@dataclass
class DefaultsConfig:
    interval_hours: float
    data_dir: Path
    registry_dir: Path
    poll_interval_sec: float = 1.0
    testing_enabled: bool = True
    test_models: list[str] = field(default_factory=list)
    judge_model: str | None = None
    max_concurrency: int = 4
    call_timeout_sec: float = 120.0
    correct_threshold: float = 0.8


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    sources: list[SourceConfig] = field(default_factory=list)
    available_providers: set[str] = field(default_factory=set)


def _parse_source(index: int, raw: dict[str, Any]) -> SourceConfig:
    for key in ("collector", "generator", "prompt_set_id", "source"):
        if key not in raw:
            raise ConfigError(f"sources[{index}] is missing '{key}'")
    return SourceConfig(
        collector=str(raw["collector"]),
        generator=str(raw["generator"]),
        prompt_set_id=int(raw["prompt_set_id"]),
        source=str(raw["source"]),
        collector_options=dict(raw.get("collector_options") or {}),
        generator_options=dict(raw.get("generator_options") or {}),
        transform=raw.get("transform"),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing and ConfigError when a
    required section is absent or a model has an unknown sdk. Missing API keys
    are logged but do not raise; callers check available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    for section in ("defaults", "models", "prompts"):
        if section not in raw:
            raise ConfigError(f"Missing '{section}' section in {settings_path}")

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        interval_hours=float(defaults_raw.get("interval_hours", 24)),
        data_dir=Path(defaults_raw.get("data_dir", "./data")),
        registry_dir=Path(defaults_raw.get("registry_dir", "./registry")),
        poll_interval_sec=float(defaults_raw.get("poll_interval_sec", 1.0)),
        testing_enabled=bool(defaults_raw.get("testing_enabled", True)),
        test_models=list(defaults_raw.get("test_models", [])),
        judge_model=defaults_raw.get("judge_model"),
        max_concurrency=int(defaults_raw.get("max_concurrency", 4)),
        call_timeout_sec=float(defaults_raw.get("call_timeout_sec", 120)),
        correct_threshold=float(defaults_raw.get("correct_threshold", 0.8)),
    )
    if defaults.max_concurrency < 1:
        raise ConfigError("defaults.max_concurrency must be at least 1")

    prompts_raw = raw["prompts"]
    try:
        prompts = PromptsConfig(
            question_generation=prompts_raw["question_generation"],
            multiple_choice_system=prompts_raw["multiple_choice_system"],
            open_ended_system=prompts_raw["open_ended_system"],
            judge_system=prompts_raw["judge_system"],
            judge=prompts_raw["judge"],
        )
    except KeyError as exc:
        raise ConfigError(f"Missing prompt template: {exc.args[0]}") from exc

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        sdk = model_raw["sdk"]
        if sdk not in KNOWN_SDKS:
            raise ConfigError(f"Model '{provider_name}' uses unknown sdk '{sdk}'")
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=sdk,
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    for name in defaults.test_models:
        if name not in models:
            raise ConfigError(f"Test model '{name}' is not defined under 'models'")
    if defaults.judge_model is not None and defaults.judge_model not in models:
        raise ConfigError(f"Judge model '{defaults.judge_model}' is not defined under 'models'")

    sources = [_parse_source(i, s) for i, s in enumerate(raw.get("sources") or [])]

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        sources=sources,
        available_providers=available_providers,
    )
