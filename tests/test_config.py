"""Tests de configuración por entorno."""

import pytest

from common.config import get_settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LEDGER_ENV_FILE", str(tmp_path / "missing.env"))
    for name in (
        "LEDGER_DATABASE_URL",
        "LEDGER_ROUND_DIGITS",
        "LEDGER_ABSENT_METRIC_POLICY",
        "LEDGER_API_KEY",
        "ENVIRONMENT",
    ):
        # setenv primero: así monkeypatch restaura el estado original
        # aunque load_dotenv escriba la variable durante el test.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_defaults():
    settings = get_settings()

    assert settings.database_url == "sqlite:///./ledger.db"
    assert settings.round_digits is None
    assert settings.absent_metric_policy == "skip"
    assert settings.local_utc_offset_minutes == 330
    assert settings.api_key is None
    assert not settings.is_production


def test_env_file_loaded(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("LEDGER_DATABASE_URL=sqlite://\nLEDGER_ROUND_DIGITS=4\n")
    monkeypatch.setenv("LEDGER_ENV_FILE", str(env_file))

    settings = get_settings()

    assert settings.database_url == "sqlite://"
    assert settings.round_digits == 4


def test_real_environment_wins(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("ENVIRONMENT=staging\n")
    monkeypatch.setenv("LEDGER_ENV_FILE", str(env_file))
    monkeypatch.setenv("ENVIRONMENT", "production")

    assert get_settings().is_production
