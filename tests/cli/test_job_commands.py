from __future__ import annotations

import json

import pytest
from conftest import StubClient
from typer.testing import CliRunner

from marketfeed.cli import jobs as jobs_module
from marketfeed.cli.main import create_app
from marketfeed.core.config import MarketFeedConfig
from marketfeed.core.data.storage import InMemoryMarketStore
from marketfeed.core.monitoring import MetricsCollector
from marketfeed.core.service import MarketDataService


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _last_json(output: str) -> dict[str, object]:
    return json.loads(output.strip().splitlines()[-1])


def _use_service(monkeypatch: pytest.MonkeyPatch, service: MarketDataService) -> None:
    monkeypatch.setattr(jobs_module, "get_service", lambda config, client_factory=None: service)


def test_run_market_data_prints_outcomes(
    runner: CliRunner,
    monkeypatch: pytest.MonkeyPatch,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    _use_service(monkeypatch, MarketDataService(StubClient(), config=config, metrics=metrics))

    result = runner.invoke(create_app(), ["run-market-data"])

    assert result.exit_code == 0, result.output
    payload = _last_json(result.stdout)
    assert payload["status"] == "success"
    assert [feed["record_count"] for feed in payload["feeds"]] == [2, 2]


def test_run_market_data_reports_partial_success(
    runner: CliRunner,
    monkeypatch: pytest.MonkeyPatch,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    client = StubClient(etfs=[ConnectionError("down")])
    _use_service(monkeypatch, MarketDataService(client, config=config, metrics=metrics))

    result = runner.invoke(create_app(), ["run-market-data"])

    assert result.exit_code == 0, result.output
    payload = _last_json(result.stdout)
    assert payload["status"] == "partial"
    assert payload["feeds"][1]["failure_kind"] == "fetch"


def test_run_market_data_exits_when_both_feeds_fail(
    runner: CliRunner,
    monkeypatch: pytest.MonkeyPatch,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    client = StubClient(indices=[ConnectionError("down")], etfs=[ConnectionError("down")])
    _use_service(monkeypatch, MarketDataService(client, config=config, metrics=metrics))

    result = runner.invoke(create_app(), ["run-market-data"])

    assert result.exit_code == 1
    assert "ALL_FEEDS_FAILED" in result.output


def test_run_equity_prices_prints_summary(
    runner: CliRunner,
    monkeypatch: pytest.MonkeyPatch,
    config: MarketFeedConfig,
    metrics: MetricsCollector,
) -> None:
    store = InMemoryMarketStore([f"INE{n}" for n in range(75)])
    _use_service(monkeypatch, MarketDataService(StubClient(), repository=store, config=config, metrics=metrics))

    result = runner.invoke(create_app(), ["run-equity-prices"])

    assert result.exit_code == 0, result.output
    payload = _last_json(result.stdout)
    assert payload["batches"] == 2
    assert payload["records_persisted"] == 75
    assert payload["published"] is True


def test_client_factory_option_loads_client(runner: CliRunner, metrics: MetricsCollector) -> None:
    result = runner.invoke(create_app(), ["run-equity-prices", "--client", "conftest:StubClient"])

    assert result.exit_code == 0, result.output
    assert _last_json(result.stdout)["identifiers"] == 0


def test_missing_client_is_a_configuration_error(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MARKETFEED_UPSTREAM__CLIENT_FACTORY", raising=False)

    result = runner.invoke(create_app(), ["run-market-data"])

    assert result.exit_code == 2
    assert "CONFIGURATION_ERROR" in result.output


def test_config_command_shows_effective_settings(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MARKETFEED_RETRY__MAX_ATTEMPTS", "4")

    result = runner.invoke(create_app(), ["config"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["retry"]["max_attempts"] == 4
    assert payload["batch"]["identifier_prefix"] == "NSE_EQ|"


def test_missing_config_file_exits(runner: CliRunner, tmp_path) -> None:
    result = runner.invoke(create_app(), ["--config", str(tmp_path / "absent.toml"), "config"])

    assert result.exit_code == 2
    assert "not found" in result.output
