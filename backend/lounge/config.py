# backend/lounge/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lounge.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///lounge.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fallback rates (cents) when a station or game has none configured.
    # KSh 200/hour and KSh 40/game.
    DEFAULT_RATE_PER_HOUR_CENTS = _env_int("DEFAULT_RATE_PER_HOUR_CENTS", 20_000)
    DEFAULT_RATE_PER_GAME_CENTS = _env_int("DEFAULT_RATE_PER_GAME_CENTS", 4_000)

    # 1 loyalty point per KSh 100 of completed payments
    LOYALTY_CENTS_PER_POINT = _env_int("LOYALTY_CENTS_PER_POINT", 10_000)

    MAX_SPLIT_PARTS = _env_int("MAX_SPLIT_PARTS", 5)

    # Mobile-money confirmation polling (5 checks, 5 seconds apart)
    MPESA_PROVIDER = os.environ.get("MPESA_PROVIDER", "simulated")  # simulated | http
    MPESA_BASE_URL = os.environ.get("MPESA_BASE_URL", "")
    MPESA_API_KEY = os.environ.get("MPESA_API_KEY", "")
    MPESA_TIMEOUT_SECONDS = _env_float("MPESA_TIMEOUT_SECONDS", 10.0)
    MPESA_POLL_INTERVAL_SECONDS = _env_float("MPESA_POLL_INTERVAL_SECONDS", 5.0)
    MPESA_POLL_MAX_ATTEMPTS = _env_int("MPESA_POLL_MAX_ATTEMPTS", 5)

    # In-memory error/event log retained for /api/system/logs
    EVENT_LOG_CAPACITY = _env_int("EVENT_LOG_CAPACITY", 1000)

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
