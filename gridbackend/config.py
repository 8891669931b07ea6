"""
Grid backend configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Dataverse Web API
    DATAVERSE_URL: str = os.environ.get("DATAVERSE_URL", "")
    DATAVERSE_TOKEN: str = os.environ.get("DATAVERSE_TOKEN", "")
    DATAVERSE_API_VERSION: str = os.environ.get("DATAVERSE_API_VERSION", "v9.0")

    # HTTP
    HTTP_TIMEOUT_SECONDS: float = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))


# Singleton instance
settings = Settings()
