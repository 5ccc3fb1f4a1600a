from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env next to the repo root, so local runs and the CLI share credentials.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _parse_round_digits(raw: str) -> Optional[int]:
    raw = raw.strip().lower()
    if raw in ("", "none", "off"):
        return None
    return int(raw)


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_echo: bool

    absent_metric_policy: str
    round_digits: Optional[int]
    local_utc_offset_minutes: int

    retry_max_attempts: int
    retry_base_delay: float

    api_key: Optional[str]
    environment: str

    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic: str

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("LEDGER_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    database_url = os.getenv("LEDGER_DATABASE_URL", "sqlite:///./ledger.db")
    db_echo = os.getenv("LEDGER_DB_ECHO", "0").strip() in ("1", "true", "yes")

    # "skip" leaves a metric uncomputed when the entry omits it;
    # "carry_forward" copies the predecessor's aggregate unchanged.
    absent_metric_policy = os.getenv("LEDGER_ABSENT_METRIC_POLICY", "skip").strip().lower()
    # Empty keeps per-ledger rounding (round6 only on net_reduction);
    # a number forces that rounding on every ledger.
    round_digits = _parse_round_digits(os.getenv("LEDGER_ROUND_DIGITS", ""))

    # Manual date/time fields are entered in local time (IST, +05:30).
    local_utc_offset_minutes = int(os.getenv("LEDGER_LOCAL_UTC_OFFSET_MINUTES", "330"))

    retry_max_attempts = int(os.getenv("LEDGER_RETRY_MAX_ATTEMPTS", "3"))
    retry_base_delay = float(os.getenv("LEDGER_RETRY_BASE_DELAY", "0.2"))

    environment = os.getenv("ENVIRONMENT", "development").strip().lower()

    return Settings(
        database_url=database_url,
        db_echo=db_echo,
        absent_metric_policy=absent_metric_policy,
        round_digits=round_digits,
        local_utc_offset_minutes=local_utc_offset_minutes,
        retry_max_attempts=retry_max_attempts,
        retry_base_delay=retry_base_delay,
        api_key=os.getenv("LEDGER_API_KEY") or None,
        environment=environment,
        mqtt_host=os.getenv("MQTT_HOST", "localhost"),
        mqtt_port=int(os.getenv("MQTT_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_topic=os.getenv("MQTT_TOPIC", "ledger/activity/+/data"),
    )
