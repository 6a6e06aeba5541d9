"""Pytest configuration and shared fixtures for proposal audit tests."""

import os
import sys
from dataclasses import replace

import pytest


# ============================================================================
# Ensure local imports work (config/, models/, services/, utils/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from services...`,
# so the repository root must be importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config.pricing import DEFAULT_PRICING  # noqa: E402
from config.settings import Settings  # noqa: E402


# ============================================================================
# Config Fixtures
# ============================================================================

@pytest.fixture
def cheap_steel_pricing():
    """Steel at $1,000/ton so allocation remainders are visible."""
    return replace(DEFAULT_PRICING, steel_price_per_ton=1000.0)


@pytest.fixture
def test_settings():
    """Settings with default thresholds, independent of the environment."""
    return Settings(
        log_level="INFO",
        import_strict_schema=False,
        ledger_min_match_length=4,
        variance_threshold=0.01,
        variance_percent_threshold=0.001,
        screen_variance_alert=1.00,
    )
