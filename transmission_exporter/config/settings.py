"""Environment settings."""

import os
from typing import Optional


class Settings:
    """Application settings from environment variables."""

    @staticmethod
    def optional(key: str) -> Optional[str]:
        """Return the variable value, or None when unset or empty."""
        return os.getenv(key) or None

    # Convenience accessors
    CONFIG_PATH = property(lambda self: Settings.optional("TRANSMISSION_EXPORTER_CONFIG"))
    TRANSMISSION_URL = property(lambda self: Settings.optional("TRANSMISSION_URL"))
    LOG_LEVEL = property(lambda self: Settings.optional("LOG_LEVEL"))
