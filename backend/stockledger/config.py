# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Unit recorded on user inventory rows when a material has none
    DEFAULT_UNIT = os.environ.get("DEFAULT_UNIT", "pcs")

    # Width of the numeric part of document numbers (BILL-2024-2025-0007)
    SEQUENCE_PAD = int(os.environ.get("SEQUENCE_PAD", "4"))
