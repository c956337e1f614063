import os
from pathlib import Path
from typing import Literal
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"


class Settings(BaseModel):
    """Everything the relay reads from its environment, resolved once at start-up."""

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    webhook_tolerance: int = 300

    # direct: charge in the source currency; converted: look up a rate first
    currency_mode: Literal["direct", "converted"] = "direct"
    source_currency: str = "php"
    settlement_currency: str = "php"
    rate_api_url: str = "https://open.er-api.com/v6/latest"

    delivery_mode: Literal["http", "database"] = "http"
    downstream_url: str = ""
    downstream_api_key: str = ""
    downstream_timeout: float = 10.0

    database_url: str = "sqlite:///./relay.db"
    fallback_path: str = "pending_orders.json"

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    admin_email: str = ""

    cors_origins: list[str] = ["*"]
    port: int = 10000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Path | None = ENV_PATH) -> "Settings":
        if env_file is not None:
            load_dotenv(dotenv_path=env_file)

        env = os.environ
        currency_mode = env.get("CURRENCY_MODE", "direct").strip().lower()
        source_currency = env.get("SOURCE_CURRENCY", "php").strip().lower()
        default_settlement = "usd" if currency_mode == "converted" else source_currency

        values = {
            "stripe_secret_key": env.get("STRIPE_SECRET_KEY") or env.get("STRIPE_SECRET", ""),
            "stripe_webhook_secret": env.get("STRIPE_WEBHOOK_SECRET", ""),
            "currency_mode": currency_mode,
            "source_currency": source_currency,
            "settlement_currency": env.get("SETTLEMENT_CURRENCY", default_settlement).strip().lower(),
            "delivery_mode": env.get("DELIVERY_MODE", "http").strip().lower(),
            "downstream_url": env.get("DOWNSTREAM_URL", "").strip(),
            "downstream_api_key": (
                env.get("DOWNSTREAM_API_KEY") or env.get("INF_API_KEY", "")
            ).strip(),
            "database_url": _database_url(env),
            "smtp_host": env.get("SMTP_HOST", ""),
            "smtp_user": env.get("SMTP_USER", ""),
            "smtp_password": env.get("SMTP_PASSWORD", ""),
            "smtp_from": env.get("SMTP_FROM", ""),
            "admin_email": env.get("ADMIN_EMAIL", ""),
            "log_level": env.get("LOG_LEVEL", "INFO").upper(),
        }

        # numeric and list options only override the defaults when present
        for name, field in (
            ("WEBHOOK_TOLERANCE", "webhook_tolerance"),
            ("RATE_API_URL", "rate_api_url"),
            ("DOWNSTREAM_TIMEOUT", "downstream_timeout"),
            ("FALLBACK_PATH", "fallback_path"),
            ("SMTP_PORT", "smtp_port"),
            ("PORT", "port"),
        ):
            if env.get(name):
                values[field] = env[name]

        if env.get("CORS_ORIGINS"):
            values["cors_origins"] = [
                origin.strip() for origin in env["CORS_ORIGINS"].split(",") if origin.strip()
            ]

        return cls(**values)


def _database_url(env) -> str:
    if env.get("DATABASE_URL"):
        return env["DATABASE_URL"]

    host = env.get("DB_HOST")
    if not host:
        return "sqlite:///./relay.db"

    user = quote_plus(env.get("DB_USER", ""))
    password = quote_plus(env.get("DB_PASSWORD", ""))
    port = env.get("DB_PORT", "3306")
    name = env.get("DB_NAME", "")
    return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}"
