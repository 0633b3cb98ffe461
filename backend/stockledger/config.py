from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file in the working directory unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # How many times a ledger operation is re-run after an optimistic-lock conflict
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))

    # Allowed drift between client-submitted and server-computed sale totals
    LEDGER_MONEY_TOLERANCE = float(os.environ.get("LEDGER_MONEY_TOLERANCE", "0.01"))

    LEDGER_PAGE_SIZE = int(os.environ.get("LEDGER_PAGE_SIZE", "20"))
    LEDGER_MAX_PAGE_SIZE = int(os.environ.get("LEDGER_MAX_PAGE_SIZE", "100"))

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if o.strip()
    )
