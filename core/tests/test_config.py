"""Tests for ~/.leadflow/configuration.json handling."""

import json

import pytest

from leadflow import config
from leadflow.config import (
    DEFAULT_API_URL,
    DEFAULT_LEAD_LIMIT,
    DEFAULT_POLL_INTERVAL,
    RunnerConfig,
    get_api_base_url,
    get_api_key,
    get_lead_limit,
    get_leadflow_config,
    get_poll_interval,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "configuration.json"
    monkeypatch.setattr(config, "LEADFLOW_CONFIG_FILE", path)
    monkeypatch.delenv("LEADFLOW_API_URL", raising=False)
    monkeypatch.delenv("LEADFLOW_POLL_INTERVAL", raising=False)
    return path


def test_defaults_without_file(config_file):
    assert get_leadflow_config() == {}
    assert get_api_base_url() == DEFAULT_API_URL
    assert get_api_key() is None
    assert get_poll_interval() == DEFAULT_POLL_INTERVAL
    assert get_lead_limit() == DEFAULT_LEAD_LIMIT


def test_malformed_file_is_ignored(config_file):
    config_file.write_text("{not json")
    assert get_leadflow_config() == {}


def test_values_from_file(config_file, monkeypatch):
    config_file.write_text(
        json.dumps(
            {
                "api": {"base_url": "https://crm.example.com", "api_key_env_var": "CRM_TOKEN"},
                "test_runner": {"poll_interval": 2.5, "lead_limit": 10},
            }
        )
    )
    monkeypatch.setenv("CRM_TOKEN", "secret")

    runner_config = RunnerConfig()

    assert runner_config.api_base_url == "https://crm.example.com"
    assert runner_config.api_key == "secret"
    assert runner_config.poll_interval == 2.5
    assert runner_config.lead_limit == 10
    assert runner_config.request_timeout == 30.0


def test_environment_wins(config_file, monkeypatch):
    config_file.write_text(
        json.dumps({"api": {"base_url": "https://file"}, "test_runner": {"poll_interval": 5}})
    )
    monkeypatch.setenv("LEADFLOW_API_URL", "https://env")
    monkeypatch.setenv("LEADFLOW_POLL_INTERVAL", "0.5")

    assert get_api_base_url() == "https://env"
    assert get_poll_interval() == 0.5


def test_invalid_poll_interval_env(config_file, monkeypatch):
    monkeypatch.setenv("LEADFLOW_POLL_INTERVAL", "fast")
    assert get_poll_interval() == DEFAULT_POLL_INTERVAL
