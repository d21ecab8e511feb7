# backend/caisse/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/caisse.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///caisse.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Absolute variance (minor units) above which a closing is flagged for review
    CAISSE_VARIANCE_TOLERANCE_CENTS = int(os.environ.get("CAISSE_VARIANCE_TOLERANCE_CENTS", "1000"))

    # Batch size for streaming ledger reads
    CAISSE_MOVEMENTS_PAGE_SIZE = int(os.environ.get("CAISSE_MOVEMENTS_PAGE_SIZE", "500"))
