"""
Configuration for the pricing subsystem, loaded from environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PricingConfig:
    """Runtime settings for the offer lifecycle and expiration scheduler."""

    # Scheduler
    scheduler_enabled: bool = True
    sweep_interval_seconds: float = 3600.0  # hourly
    sweep_on_start: bool = True

    # Storage
    data_dir: Path = field(default_factory=lambda: Path(__file__).parent.parent / "data")

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PricingConfig":
        """Create config from environment variables."""
        defaults = cls()
        return cls(
            scheduler_enabled=_env_bool("OFFER_SCHEDULER_ENABLED", "true"),
            sweep_interval_seconds=float(os.getenv("OFFER_SWEEP_INTERVAL_SECONDS", "3600")),
            sweep_on_start=_env_bool("OFFER_SWEEP_ON_START", "true"),
            data_dir=Path(os.getenv("CATALOG_DATA_DIR", str(defaults.data_dir))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def __post_init__(self):
        if self.sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be positive")
