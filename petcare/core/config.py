# petcare/core/config.py
import os
from decimal import Decimal
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Petcare POS & Clinic")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./petcare.db")
    SQL_ECHO: bool = _flag("SQL_ECHO")
    SEED_CHART_OF_ACCOUNTS: bool = _flag("SEED_CHART_OF_ACCOUNTS", "true")

    # ---------- Business calendar ----------
    # Document numbers (INV-YYYYMMDD-NNN) and journal dates use this zone.
    BUSINESS_TIMEZONE: str = os.getenv("BUSINESS_TIMEZONE", "Asia/Jakarta")

    # ---------- Accounting ----------
    JOURNAL_BALANCE_TOLERANCE: Decimal = Decimal(
        os.getenv("JOURNAL_BALANCE_TOLERANCE", "0.01"))

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
