"""
Tests for the smartroute CLI.
"""

import sys
from unittest.mock import patch

import pytest
from loguru import logger
from typer.testing import CliRunner

from conftest import FakeInvoker
from smartroute import __version__
from smartroute.cli.commands import app
from smartroute.config.loader import save_config
from smartroute.config.schema import Config, TrackingConfig
from smartroute.routing.catalog import ProviderCatalog
from smartroute.routing.router import RoutingOrchestrator
from smartroute.routing.types import ProviderId, ScoreRecord
from smartroute.tracking.scores import ScoreStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """The route command swaps loguru's sink for the runner's stderr."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def config_path(tmp_path):
    """Point the CLI at a config file inside tmp_path."""
    path = tmp_path / "config.json"
    save_config(Config(tracking=TrackingConfig(path=str(tmp_path / "scores.jsonl"))), path)
    with patch("smartroute.config.loader.get_config_path", return_value=path):
        yield path


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"v{__version__}" in result.stdout


def test_classify():
    result = runner.invoke(app, ["classify", "Return the user record as JSON matching this schema"])

    assert result.exit_code == 0
    assert "structured-output" in result.stdout


def test_temperature():
    result = runner.invoke(app, ["temperature", "structured-output", "--retry"])

    assert result.exit_code == 0
    assert "0.13" in result.stdout


def test_temperature_rejects_unknown_category():
    result = runner.invoke(app, ["temperature", "poetry"])

    assert result.exit_code == 1
    assert "invalid category" in result.stdout


def test_providers(config_path):
    result = runner.invoke(app, ["providers"])

    assert result.exit_code == 0
    assert "self-hosted" in result.stdout
    assert "deepseek" in result.stdout


def test_route(config_path):
    catalog = ProviderCatalog.with_enabled(list(ProviderId))
    orchestrator = RoutingOrchestrator(catalog, FakeInvoker(default='{"name": "John"}'))

    with patch("smartroute.routing.create_orchestrator_from_config", return_value=orchestrator):
        result = runner.invoke(app, ["route", "Give me the user", "--category", "structured-output"])

    assert result.exit_code == 0
    assert "SELF_HOSTED" in result.stdout
    assert "Path: self-hosted" in result.stdout
    assert '{"name": "John"}' in result.stdout


def test_route_rejects_unknown_tier(config_path):
    result = runner.invoke(app, ["route", "hello", "--tier", "platinum"])

    assert result.exit_code == 1
    assert "invalid tier" in result.stdout


def test_stats(config_path, tmp_path):
    store = ScoreStore(tmp_path / "scores.jsonl")
    store.record_score(ScoreRecord(
        provider="openai",
        model_name="gpt-4",
        category="code-generation",
        confidence=88,
        decision="ACCEPT",
        latency_ms=950.0,
        temperature=0.1,
    ))

    result = runner.invoke(app, ["stats", "--days", "3"])

    assert result.exit_code == 0
    assert "openai" in result.stdout
    assert "88.0" in result.stdout


def test_stats_empty(config_path):
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0
    assert "No scores recorded" in result.stdout
