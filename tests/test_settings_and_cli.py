import json
from datetime import date
from pathlib import Path

import pytest
from pydantic import ValidationError

from transfer_indexer import main as cli
from transfer_indexer.config import IndexerSettings, get_settings
from transfer_indexer.core.telemetry import setup_telemetry

DEC_1_2021_MS = 1638316800000


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_follow_moonbeam_deployment():
    settings = IndexerSettings(_env_file=None)

    assert settings.blockchain == "moonbeam"
    assert settings.batch_size == 100
    assert settings.price_strategy == "point"
    assert settings.quotes_begin == date(2022, 1, 12)


def test_environment_prefix_is_honoured(monkeypatch):
    monkeypatch.setenv("INDEXER_PRICE_STRATEGY", "bulk")
    monkeypatch.setenv("INDEXER_QUOTES_BEGIN", "2023-05-01")

    settings = get_settings()

    assert settings.price_strategy == "bulk"
    assert settings.quotes_begin == date(2023, 5, 1)


def test_invalid_strategy_is_rejected():
    with pytest.raises(ValidationError):
        IndexerSettings(price_strategy="hourly")


def test_logging_dict_hides_database_url():
    settings = IndexerSettings(database_url="postgresql+asyncpg://u:secret@db/indexer")

    assert settings.dict_for_logging()["database_url"] == "***"


def test_cli_indexes_pre_cutoff_events_into_sqlite(tmp_path: Path, monkeypatch, capsys):
    events = tmp_path / "events.jsonl"
    events.write_text(
        "\n".join(
            json.dumps({"id": f"e{i}", "from": "A", "to": "B", "amount": "10", "timestamp": DEC_1_2021_MS})
            for i in range(3)
        )
    )
    monkeypatch.setenv("INDEXER_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    monkeypatch.setattr(cli, "setup_logging", lambda level: None)

    cli.main([str(events), "--init-db", "--batch-size", "2"])

    assert "Indexed 3 transfers in 2 batches (0 priced)" in capsys.readouterr().out


def test_disabled_telemetry_returns_inert_handle():
    telemetry = setup_telemetry(IndexerSettings(telemetry_enabled=False))

    assert not telemetry.enabled
    telemetry.shutdown()
