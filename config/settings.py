"""Proposal audit configuration settings.

Loads runtime configuration from environment variables with sensible defaults.
Pricing rates live in config.pricing; this module only holds knobs that
change how the engine behaves in a given deployment.
"""

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file for local overrides (log level, import strictness, thresholds)
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    """Read a boolean flag from the environment."""
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Spreadsheet import
    # Strict mode disables the header-text column resolver entirely.
    import_strict_schema: bool = field(default_factory=lambda: _env_flag("IMPORT_STRICT_SCHEMA"))
    ledger_min_match_length: int = field(
        default_factory=lambda: int(os.getenv("LEDGER_MIN_MATCH_LENGTH", "4"))
    )

    # Verification thresholds
    variance_threshold: float = field(
        default_factory=lambda: float(os.getenv("VARIANCE_THRESHOLD", "0.01"))
    )
    variance_percent_threshold: float = field(
        default_factory=lambda: float(os.getenv("VARIANCE_PERCENT_THRESHOLD", "0.001"))
    )
    screen_variance_alert: float = field(
        default_factory=lambda: float(os.getenv("SCREEN_VARIANCE_ALERT", "1.00"))
    )

    def validate(self) -> None:
        """Validate settings values.

        Raises:
            ValueError: If a setting is out of range.
        """
        if self.ledger_min_match_length < 1:
            raise ValueError("LEDGER_MIN_MATCH_LENGTH must be at least 1")
        if self.variance_threshold < 0 or self.variance_percent_threshold < 0:
            raise ValueError("Variance thresholds must be non-negative")


# Singleton settings instance
settings = Settings()
