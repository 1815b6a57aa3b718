# backend/memimo_crm/config.py
from __future__ import annotations
import os


def _float_env(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/memimo.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///memimo.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sessions
    SESSION_DURATION_HOURS = int(os.environ.get("SESSION_DURATION_HOURS", "24"))

    # Email channel (Resend)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "onboarding@resend.dev")
    EMAIL_SENDER_NAME = os.environ.get("EMAIL_SENDER_NAME", "Heladería Memimo")

    # Chat channel (Telegram bot)
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
    TELEGRAM_API_URL = os.environ.get("TELEGRAM_API_URL", "https://api.telegram.org")

    # Campaign fan-out throttling
    CAMPAIGN_SEND_INTERVAL_SECONDS = _float_env("CAMPAIGN_SEND_INTERVAL_SECONDS", 1.0)
    SIMULATED_CHANNEL_PAUSE_SECONDS = _float_env("SIMULATED_CHANNEL_PAUSE_SECONDS", 3.0)
    # None means outbound channel calls never time out
    CHANNEL_HTTP_TIMEOUT_SECONDS = _float_env("CHANNEL_HTTP_TIMEOUT_SECONDS", None)

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    }


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RESEND_API_KEY = None
    TELEGRAM_BOT_TOKEN = None
    TELEGRAM_CHAT_ID = None
    CAMPAIGN_SEND_INTERVAL_SECONDS = 0.0
    SIMULATED_CHANNEL_PAUSE_SECONDS = 0.0
