"""
Server configuration from environment variables.

Usage:
    from asyncreq.server.config import get_settings

    settings = get_settings()
    print(settings.host, settings.port, settings.timeout_seconds)
"""

from functools import lru_cache
from typing import Optional
import os

from asyncreq.models import DisconnectPolicy


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return int(value)


class Settings:
    """Server configuration loaded from environment variables."""

    def __init__(self) -> None:
        # Server
        self.host: str = os.getenv("ASYNCREQ_HOST", "0.0.0.0")
        self.port: int = int(os.getenv("ASYNCREQ_PORT", "8000"))
        self.log_level: str = os.getenv("ASYNCREQ_LOG_LEVEL", "INFO")

        # Deadlines, per surface
        self.timeout_seconds: float = float(os.getenv("ASYNCREQ_TIMEOUT_SECONDS", "8"))
        self.future_timeout_seconds: float = float(
            os.getenv("ASYNCREQ_FUTURE_TIMEOUT_SECONDS", "8")
        )

        # Worker pool
        self.max_workers: int = int(os.getenv("ASYNCREQ_MAX_WORKERS", "200"))
        self.max_pending: Optional[int] = _optional_int("ASYNCREQ_MAX_PENDING")

        # Disconnect handling
        self.disconnect_policy: DisconnectPolicy = DisconnectPolicy(
            os.getenv("ASYNCREQ_DISCONNECT_POLICY", "cancel").lower()
        )
        self.disconnect_poll_seconds: float = float(
            os.getenv("ASYNCREQ_DISCONNECT_POLL_SECONDS", "0.5")
        )

        # Simulated task
        self.fault_probability: float = float(os.getenv("ASYNCREQ_FAULT_PROBABILITY", "0.5"))
        self.min_duration_seconds: int = int(os.getenv("ASYNCREQ_MIN_DURATION_SECONDS", "5"))
        self.max_duration_seconds: int = int(os.getenv("ASYNCREQ_MAX_DURATION_SECONDS", "11"))
        self.checkpoint_seconds: float = float(os.getenv("ASYNCREQ_CHECKPOINT_SECONDS", "1.0"))

    @property
    def bounded(self) -> bool:
        """Pool admission is bounded if ASYNCREQ_MAX_PENDING is set."""
        return self.max_pending is not None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
