# backend/kiosk_pnl/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kiosk_pnl.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kiosk_pnl.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Provider extracts can be large
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_UPLOAD_BYTES", 50 * 1024 * 1024))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rows returned by the header-detection preview
    IMPORT_PREVIEW_ROWS = int(os.environ.get("IMPORT_PREVIEW_ROWS", 5))
