"""
HIV Resistance Report Service - Configuration Settings
========================================================
Pydantic BaseSettings for the HIV resistance report service.
All values can be overridden via environment variables with the HIVR_ prefix.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class HIVSettings(BaseSettings):
    """Central configuration for the HIV resistance report service."""

    class Config:
        env_prefix = "HIVR_"
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    # ── Paths ────────────────────────────────────────────────────────────
    PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
    DATA_DIR: Path = PROJECT_ROOT / "data"
    PATIENT_DIR: Path = DATA_DIR / "patients"
    PATIENT_SUMMARY_FILE: str = "patient-summary.json"

    # ── Stanford HIVdb Sierra ────────────────────────────────────────────
    SIERRA_URL: str = "https://hivdb.stanford.edu/graphql"
    SIERRA_OPERATION_NAME: str = "MutationsAnalysis"
    SIERRA_TIMEOUT: float = 30.0

    # ── Report ───────────────────────────────────────────────────────────
    # Caller-side bound on the single scoring request; None leaves the
    # client default in place.
    REPORT_TIMEOUT: Optional[float] = None

    # ── API ──────────────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3003
    CORS_ORIGINS: str = "*"

    # ── Metrics ──────────────────────────────────────────────────────────
    METRICS_ENABLED: bool = True

    # ── Logging ──────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"


# ── Singleton ────────────────────────────────────────────────────────────
settings = HIVSettings()
