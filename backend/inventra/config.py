# backend/inventra/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the backend by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///inventra.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger amounts are stored in this currency; others are display-only
    BASE_CURRENCY = os.environ.get("BASE_CURRENCY", "EGP")
    EXCHANGE_RATE_URL = os.environ.get(
        "EXCHANGE_RATE_URL",
        f"https://open.exchangerate-api.com/v6/latest/{BASE_CURRENCY}",
    )
    EXCHANGE_RATE_TTL_SECONDS = int(os.environ.get("EXCHANGE_RATE_TTL_SECONDS", "3600"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma-separated browser origins allowed to call the API
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
