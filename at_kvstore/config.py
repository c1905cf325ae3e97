"""
Service configuration read from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class Settings:
    """Configuration for the at-kvstore service."""
    service_name: str = "at-kvstore"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    max_payload_size: int = 1024 * 1024  # 1MB
    sweep_interval_sec: float = 0.0  # 0 disables the background sweeper

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        Raises:
            ValueError: if a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        settings = cls(
            service_name=env.get("SERVICE_NAME", cls.service_name),
            host=env.get("HOST", cls.host),
            port=int(env.get("PORT", cls.port)),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
            max_payload_size=int(env.get("MAX_PAYLOAD_SIZE", cls.max_payload_size)),
            sweep_interval_sec=float(env.get("SWEEP_INTERVAL_SEC", cls.sweep_interval_sec)),
        )
        if settings.sweep_interval_sec < 0:
            raise ValueError("SWEEP_INTERVAL_SEC must not be negative")
        return settings
