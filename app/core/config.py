from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    port: int
    database_url: str | None
    redis_url: str | None
    log_json: bool = False
    trial_days: int = 7
    payment_api_url: str = "https://api.moyasar.com/v1"
    payment_secret_key: str | None = None
    payment_webhook_secret: str | None = None
    frontend_url: str = "http://localhost:5173"
    api_url: str = "http://localhost:8000"
    super_admin_email: str | None = None
    super_admin_password: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def payments_enabled(self) -> bool:
        return self.payment_secret_key is not None


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    trial_days_raw = _getenv("TRIAL_DAYS", "7")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        trial_days = int(trial_days_raw)
    except ValueError:
        raise ValueError(
            f"TRIAL_DAYS must be an integer (got {trial_days_raw!r})"
        ) from None
    if trial_days <= 0:
        raise ValueError(f"TRIAL_DAYS must be positive (got {trial_days})")

    log_json = _getenv_bool("LOG_JSON", False)

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None
    payment_secret_key = _getenv("PAYMENT_SECRET_KEY", "") or None
    payment_webhook_secret = _getenv("PAYMENT_WEBHOOK_SECRET", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        log_json=log_json,
        trial_days=trial_days,
        payment_api_url=_getenv("PAYMENT_API_URL", "https://api.moyasar.com/v1"),
        payment_secret_key=payment_secret_key,
        payment_webhook_secret=payment_webhook_secret,
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/"),
        api_url=_getenv("API_URL", "http://localhost:8000").rstrip("/"),
        super_admin_email=_getenv("SUPER_ADMIN_EMAIL", "").lower() or None,
        super_admin_password=_getenv("SUPER_ADMIN_PASSWORD", "") or None,
    )


SETTINGS = load_settings()
