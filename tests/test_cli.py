import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from click.testing import CliRunner

import sagesync_settings
from sagesync import cli
from sagesync_db import TokenStore
from sagesync_models import AccessToken

SHIPPED_CONFIG = Path(__file__).parent.parent / "sagesync.config.json"


@pytest.fixture
def env(tmp_path, monkeypatch):
    db = tmp_path / "tokens.sqlite3"
    monkeypatch.setenv("SAGESYNC_CONFIG", str(SHIPPED_CONFIG))
    monkeypatch.setenv("SAGESYNC_DB", str(db))
    monkeypatch.setattr(sagesync_settings, "_cache", None)
    return db


def test_map_uses_special_rule(env):
    result = CliRunner().invoke(cli, ["map", "GRAL", "--description", "FULMINANTE No. 8"])
    assert result.exit_code == 0
    assert "GRAL -> ALM-POLV" in result.output


def test_map_default_warehouse(env):
    result = CliRunner().invoke(cli, ["map", "TALLER", "--item", "X1"])
    assert result.exit_code == 0
    assert "TALLER -> ALM-TALLER" in result.output


def test_map_unknown_location_exits_nonzero(env):
    result = CliRunner().invoke(cli, ["map", "NOWHERE"])
    assert result.exit_code == 1
    assert "not mapped" in result.output


def test_token_show_and_clear(env):
    now = datetime.now(timezone.utc)
    TokenStore(str(env)).save(
        AccessToken(value="abc", refresh_value="r1", expires_at=now + timedelta(hours=1), obtained_at=now)
    )

    shown = CliRunner().invoke(cli, ["token"])
    assert shown.exit_code == 0
    assert json.loads(shown.output)["has_refresh_token"] is True

    cleared = CliRunner().invoke(cli, ["token", "--clear"])
    assert cleared.exit_code == 0
    assert TokenStore(str(env)).load() is None


def test_sync_reports_missing_env(env, monkeypatch):
    for key in ("FRACTTAL_CLIENT_ID", "FRACTTAL_CLIENT_SECRET", "SAGE_DB_URL"):
        monkeypatch.delenv(key, raising=False)
    result = CliRunner().invoke(cli, ["sync"])
    assert result.exit_code != 0
    assert "Missing environment variables" in result.output
