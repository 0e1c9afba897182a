"""Tests for wiring and startup logic in pigeon/cli.py."""

import asyncio
import os
import signal
import sys
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import yaml
from click.testing import CliRunner

from config.config_loader import AppConfig, ConfigError, DefaultsConfig, ModelConfig, SourceConfig
from pigeon import cli
from pigeon.cli import _filter_healthy, _health_check_names, _serve, _validate_sources, build_orchestrator
from pigeon.models import MULTIPLE_CHOICE, OPEN_ENDED, CycleReport
from pigeon.scheduler import Scheduler
from pigeon.scorers import LLMJudgeScorer
from tests.conftest import MockProvider


@pytest.fixture
def app_config(tmp_path: Path, sample_prompts_config, sample_model_config) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            interval_hours=24,
            data_dir=tmp_path / "data",
            registry_dir=tmp_path / "registry",
            test_models=["llama", "gpt_mini"],
            judge_model="gpt_mini",
        ),
        models={
            name: replace(sample_model_config, name=name)
            for name in ("generator", "llama", "gpt_mini")
        },
        prompts=sample_prompts_config,
        sources=[
            SourceConfig(
                collector="simple-rss",
                generator="generic-mcq",
                prompt_set_id=62,
                source="https://example.org/feed.xml",
                generator_options={"model": "generator"},
                transform="strip-query-strings",
            )
        ],
    )


@pytest.fixture
def all_providers():
    return {n: MockProvider(n) for n in ("generator", "llama", "gpt_mini")}


def test_validate_sources_accepts_known_components(app_config):
    _validate_sources(app_config)


@pytest.mark.parametrize("field,value", [
    ("collector", "carrier-pigeon"),
    ("generator", "oracle"),
    ("transform", "shuffle"),
])
def test_validate_sources_rejects_unknown(app_config, field, value):
    app_config.sources = [replace(app_config.sources[0], **{field: value})]
    with pytest.raises(ConfigError, match=value):
        _validate_sources(app_config)


def test_build_orchestrator_with_testing(app_config, all_providers):
    orch = build_orchestrator(app_config, all_providers, testing_enabled=True)
    assert orch.testing_enabled
    assert orch._evaluator.model_names == ["llama", "gpt_mini"]
    assert isinstance(orch._evaluator._scorers[OPEN_ENDED], LLMJudgeScorer)
    assert MULTIPLE_CHOICE in orch._evaluator._scorers
    assert app_config.defaults.data_dir.exists()


def test_build_orchestrator_without_testing(app_config, all_providers):
    orch = build_orchestrator(app_config, all_providers, testing_enabled=False)
    assert not orch.testing_enabled


def test_build_orchestrator_skips_missing_test_models(app_config, all_providers, caplog):
    del all_providers["llama"]
    orch = build_orchestrator(app_config, all_providers, testing_enabled=True)
    assert orch._evaluator.model_names == ["gpt_mini"]
    assert any("llama" in m for m in caplog.messages)


def test_build_orchestrator_requires_a_test_model(app_config):
    with pytest.raises(ConfigError, match="none of the test models"):
        build_orchestrator(app_config, {"generator": MockProvider("generator")}, testing_enabled=True)


def test_build_orchestrator_without_judge(app_config, all_providers):
    app_config.defaults.judge_model = None
    orch = build_orchestrator(app_config, all_providers, testing_enabled=True)
    assert OPEN_ENDED not in orch._evaluator._scorers


def test_filter_healthy_drops_failing_models(all_providers):
    all_providers["llama"].generate = AsyncMock(side_effect=Exception("401 Unauthorized"))
    healthy = _filter_healthy(all_providers, ["llama", "gpt_mini"])
    assert set(healthy) == {"generator", "gpt_mini"}


def test_filter_healthy_ignores_unbuilt_names(all_providers):
    healthy = _filter_healthy(all_providers, ["claude"])
    assert healthy == all_providers


def test_main_exits_on_config_error(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump({"defaults": {}}), encoding="utf-8")
    result = CliRunner().invoke(cli.main, ["--settings", str(path), "--once"])
    assert result.exit_code == 1
    assert "Config error" in result.output


def test_main_exits_without_sources(tmp_path, app_config):
    settings = {
        "defaults": {"test_models": []},
        "models": {},
        "prompts": {
            "question_generation": "q",
            "multiple_choice_system": "m",
            "open_ended_system": "o",
            "judge_system": "j",
            "judge": "{task}",
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    result = CliRunner().invoke(cli.main, ["--settings", str(path), "--once"])
    assert result.exit_code == 1
    assert "No sources configured" in result.output


def test_health_check_names_include_generator_models(app_config):
    assert _health_check_names(app_config, testing_enabled=True) == ["generator", "llama", "gpt_mini"]


def test_health_check_names_without_testing(app_config):
    assert _health_check_names(app_config, testing_enabled=False) == ["generator"]


def test_filter_healthy_drops_dead_generator(app_config, all_providers):
    all_providers["generator"].generate = AsyncMock(side_effect=Exception("404 model not found"))
    healthy = _filter_healthy(all_providers, _health_check_names(app_config, testing_enabled=False))
    assert "generator" not in healthy


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
async def test_once_mode_finishes_pass_on_sigint(sample_source):
    finished: list[str] = []

    async def run_cycle(source):
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.sleep(0.05)
        finished.append(source.source)
        return CycleReport(source=source.source, prompt_set_id=source.prompt_set_id, status="ok")

    scheduler = Scheduler([sample_source], run_cycle)
    await _serve(scheduler, once=True)

    assert finished == [sample_source.source]
    assert scheduler._shutdown_requested
