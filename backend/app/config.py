# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/region_access.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///region_access.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Access requests must explain themselves
    REGION_REQUEST_MIN_REASON_LENGTH = int(os.environ.get("REGION_REQUEST_MIN_REASON_LENGTH", "10"))

    # Session reconciler defaults (client side reads the same names)
    RECONCILER_INTERVAL_SECONDS = float(os.environ.get("RECONCILER_INTERVAL_SECONDS", "60"))
    RECONCILER_INITIAL_DELAY_SECONDS = float(os.environ.get("RECONCILER_INITIAL_DELAY_SECONDS", "5"))
    RECONCILER_TIMEOUT_SECONDS = float(os.environ.get("RECONCILER_TIMEOUT_SECONDS", "5"))

    # Bearer sessions
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_MINUTES = int(os.environ.get("SESSION_IDLE_TIMEOUT_MINUTES", "120"))

    AUDIT_RETENTION_DAYS = int(os.environ.get("AUDIT_RETENTION_DAYS", "365"))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
