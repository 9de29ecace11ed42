# backend/consigna/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/consigna.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///consigna.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Receivables generated from sales fall due this many days after the sale date
    RECEIVABLE_DUE_DAYS = int(os.environ.get("RECEIVABLE_DUE_DAYS", "30"))

    # Attempts for a unit of work that hits a lock/deadlock
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
