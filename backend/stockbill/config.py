# backend/stockbill/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockbill.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockbill.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Signed identity tokens (HS256 shared secret)
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-jwt-secret-change-me")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_MINUTES = int(os.environ.get("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))
    AUTH_COOKIE_NAME = "auth-token"

    # Upper bound on a single store call (sqlite busy timeout / pool wait)
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100
