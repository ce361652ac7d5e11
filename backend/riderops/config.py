# backend/riderops/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance folder by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///riderops.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shift dates and sales windows follow the riders' local calendar day
    RIDER_TIMEZONE = os.environ.get("RIDER_TIMEZONE", "Asia/Jakarta")

    # When true, stock sent on an earlier local day cannot be confirmed into today's shift
    RECEIVE_SAME_DAY_ONLY = _env_bool("RECEIVE_SAME_DAY_ONLY", False)

    INVENTORY_RETRY_ATTEMPTS = int(os.environ.get("INVENTORY_RETRY_ATTEMPTS", "3"))
    SUBMISSION_CLAIM_TTL_SECONDS = int(os.environ.get("SUBMISSION_CLAIM_TTL_SECONDS", "120"))

    PHOTO_STORAGE_DIR = os.environ.get("PHOTO_STORAGE_DIR", os.path.join("instance", "photos"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RIDER_TIMEZONE = "Asia/Jakarta"
    RECEIVE_SAME_DAY_ONLY = False
    INVENTORY_RETRY_ATTEMPTS = 3
    LOG_LEVEL = "DEBUG"
