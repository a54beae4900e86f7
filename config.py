import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        base_currency: str,
        default_exchange_rate: Decimal,
        default_user_id: str,
        enforce_finalized_ledgers: bool,
        scheduler_enabled: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.base_currency = base_currency
        self.default_exchange_rate = default_exchange_rate
        self.default_user_id = default_user_id
        self.enforce_finalized_ledgers = enforce_finalized_ledgers
        self.scheduler_enabled = scheduler_enabled
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("MONEY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("MONEY_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "money.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("MONEY_TIMEZONE", "Asia/Kolkata")
    base_currency = os.getenv("MONEY_BASE_CURRENCY", "INR").strip().upper()
    default_exchange_rate = Decimal(os.getenv("MONEY_DEFAULT_EXCHANGE_RATE", "89"))
    default_user_id = os.getenv("MONEY_DEFAULT_USER_ID", "local")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        base_currency=base_currency,
        default_exchange_rate=default_exchange_rate,
        default_user_id=default_user_id,
        enforce_finalized_ledgers=_env_flag("MONEY_ENFORCE_FINALIZED", "false"),
        scheduler_enabled=_env_flag("MONEY_SCHEDULER_ENABLED", "true"),
        log_level=os.getenv("MONEY_LOG_LEVEL", "INFO").upper(),
    )
