"""Shared leadflow configuration utilities.

Centralises reading of ~/.leadflow/configuration.json so the CLI, the HTTP
job-service client and the test runner share one implementation.

Example file:
    {
        "api": {"base_url": "https://app.example.com", "api_key_env_var": "LEADFLOW_TOKEN"},
        "test_runner": {"poll_interval": 1.0, "lead_limit": 50}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

LEADFLOW_CONFIG_FILE = Path.home() / ".leadflow" / "configuration.json"

DEFAULT_API_URL = "http://localhost:3001"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_LEAD_LIMIT = 50


def get_leadflow_config() -> dict[str, Any]:
    """Load configuration from ~/.leadflow/configuration.json."""
    if not LEADFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(LEADFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_api_base_url() -> str:
    """Return the job-service API root. LEADFLOW_API_URL wins over the file."""
    env_url = os.environ.get("LEADFLOW_API_URL")
    if env_url:
        return env_url
    return get_leadflow_config().get("api", {}).get("base_url", DEFAULT_API_URL)


def get_api_key() -> str | None:
    """Return the API key from the environment variable specified in configuration."""
    api = get_leadflow_config().get("api", {})
    api_key_env_var = api.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_poll_interval() -> float:
    """Return the test-run poll interval in seconds. LEADFLOW_POLL_INTERVAL wins over the file."""
    env_interval = os.environ.get("LEADFLOW_POLL_INTERVAL")
    if env_interval:
        try:
            return float(env_interval)
        except ValueError:
            return DEFAULT_POLL_INTERVAL
    return float(
        get_leadflow_config().get("test_runner", {}).get("poll_interval", DEFAULT_POLL_INTERVAL)
    )


def get_lead_limit() -> int:
    """Return how many leads the "simulate as this lead" selector loads."""
    return int(get_leadflow_config().get("test_runner", {}).get("lead_limit", DEFAULT_LEAD_LIMIT))


# ---------------------------------------------------------------------------
# RunnerConfig
# ---------------------------------------------------------------------------


@dataclass
class RunnerConfig:
    """Test runner configuration loaded from ~/.leadflow/configuration.json."""

    api_base_url: str = field(default_factory=get_api_base_url)
    api_key: str | None = field(default_factory=get_api_key)
    poll_interval: float = field(default_factory=get_poll_interval)
    lead_limit: int = field(default_factory=get_lead_limit)
    request_timeout: float = 30.0
