"""CLI smoke tests through typer's CliRunner against the fake upstreams."""

from __future__ import annotations

import json
import logging

import pytest
from typer.testing import CliRunner

import stockswap.pipeline.orchestrator as orchestrator_module
from stockswap.cli import app
from stockswap.db.repositories.credential_repo import CredentialStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("COHERE_API_KEY", "test-key")
    monkeypatch.delenv("STOCKSWAP_DB_PATH", raising=False)
    path = tmp_path / "cli.toml"
    path.write_text(f"""
[database]
db_path = "{(tmp_path / 'cli.db').as_posix()}"
wal_mode = false

[finance]
base_url = "https://finance.test"
delete_delay_s = 0.0

[textgen]
base_url = "https://textgen.test"
retry_backoff_s = 0.0

[logging]
level = "ERROR"
log_file = ""
""", encoding="utf-8")
    return path


@pytest.fixture
def fake_upstreams(monkeypatch, transport):
    real = orchestrator_module.RecommendationOrchestrator
    monkeypatch.setattr(
        orchestrator_module,
        "RecommendationOrchestrator",
        lambda config: real(config, transport=transport),
    )


class TestConfigCommands:
    def test_init_db(self, config_file, tmp_path):
        result = runner.invoke(app, ["init-db", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "[OK] Database ready." in result.output
        assert (tmp_path / "cli.db").exists()

    def test_validate_config_masks_key(self, config_file):
        result = runner.invoke(app, ["validate-config", "--config", str(config_file), "--full"])
        assert result.exit_code == 0
        assert '"api_key": "***"' in result.output
        assert "test-key" not in result.output

    def test_missing_config_exits_1(self, tmp_path):
        result = runner.invoke(app, ["validate-config", "--config", str(tmp_path / "nope.toml")])
        assert result.exit_code == 1


class TestRecommend:
    def test_json_output(self, config_file, fake_upstreams):
        result = runner.invoke(app, [
            "recommend", "--name", "Sony WH-1000XM5", "--category", "electronics",
            "--price", "399.99", "--json", "--trace", "--config", str(config_file),
        ])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["overall_source"] == "live"
        assert payload["tickers"] == ["AAPL", "MSFT", "GOOGL"]
        assert payload["trace"]["states"][0] == "init"
        assert payload["trace"]["states"][-1] == "merged"

    def test_price_from_selected_text(self, config_file, fake_upstreams):
        result = runner.invoke(app, [
            "recommend", "--name", "Mug", "--category", "home",
            "--selected-text", "Deal of the day: $19.99", "--json", "--config", str(config_file),
        ])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["product"]["price"] == 19.99

    def test_table_output(self, config_file, fake_upstreams):
        result = runner.invoke(app, [
            "recommend", "--name", "Mug", "--category", "home", "--price", "12",
            "--config", str(config_file),
        ])
        assert result.exit_code == 0
        assert "=== StockSwap: Mug ===" in result.output
        assert result.output.count("[LIVE]") == 3


class TestSavingsCommands:
    def test_track_then_show(self, config_file):
        first = runner.invoke(app, [
            "track-purchase", "--name", "Lamp", "--category", "home", "--price", "40",
            "--config", str(config_file),
        ])
        shown = runner.invoke(app, ["savings", "--config", str(config_file)])

        assert first.exit_code == 0
        assert "Total saved: $40.00" in first.output
        assert shown.exit_code == 0
        assert "Lamp" in shown.output

    def test_zero_price_is_refused(self, config_file):
        result = runner.invoke(app, [
            "track-purchase", "--name", "Lamp", "--category", "home", "--price", "0",
            "--config", str(config_file),
        ])
        assert result.exit_code == 1


class TestSessionAndSites:
    def test_reset_session(self, config_file, tmp_path):
        store = CredentialStore(str(tmp_path / "cli.db"), wal_mode=False)
        store.save_token("tok-old")

        result = runner.invoke(app, ["reset-session", "--config", str(config_file)])

        assert result.exit_code == 0
        assert store.load().token is None

    @pytest.mark.parametrize(
        "url, code",
        [("https://www.walmart.com/ip/123", 0), ("https://example.org", 1)],
    )
    def test_is_shopping_site(self, url, code):
        assert runner.invoke(app, ["is-shopping-site", url]).exit_code == code
