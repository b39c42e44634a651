import os
from dataclasses import dataclass

from app.mlsync import constants


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    ml_api_base_url: str
    ml_api_timeout_seconds: float

    google_sheet_id: str
    google_service_account_email: str
    google_private_key: str

    ledger_sheet: str
    tokens_range: str
    history_sheet: str

    item_pacing_seconds: float
    row_pacing_seconds: float

    admin_api_key: str
    enable_scheduler: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///mlsync.db"),
        ml_api_base_url=_getenv("ML_API_BASE_URL", constants.ML_API_BASE_URL),
        ml_api_timeout_seconds=_getenv_float("ML_API_TIMEOUT_SECONDS", 30.0),
        google_sheet_id=_getenv("GOOGLE_SHEET_ID", ""),
        google_service_account_email=_getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", ""),
        # Env files usually carry the PEM with literal "\n" sequences.
        google_private_key=_getenv("GOOGLE_PRIVATE_KEY", "").replace("\\n", "\n"),
        ledger_sheet=_getenv("LEDGER_SHEET", constants.LEDGER_SHEET),
        tokens_range=_getenv("TOKENS_RANGE", constants.TOKENS_RANGE),
        history_sheet=_getenv("HISTORY_SHEET", constants.HISTORY_SHEET),
        item_pacing_seconds=_getenv_float("ITEM_PACING_SECONDS", constants.ITEM_PACING_SECONDS),
        row_pacing_seconds=_getenv_float("ROW_PACING_SECONDS", constants.ROW_PACING_SECONDS),
        admin_api_key=_getenv("ADMIN_API_KEY", ""),
        enable_scheduler=_getenv("ENABLE_SCHEDULER", "1") not in ("0", "false", "no"),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "ADMIN_API_KEY": s.admin_api_key,
        "ENABLE_SCHEDULER": s.enable_scheduler,
        # full settings object for the reconciliation jobs
        "MLSYNC_SETTINGS": s,
        "JSON_SORT_KEYS": False,
    }
