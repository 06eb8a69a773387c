"""Unit tests for configuration loading."""

import os

import pytest
from pydantic import ValidationError

from tickerdesk.config import DashboardConfig, load_dashboard_config
from tickerdesk.config.loader import expand_env_vars, load_config
from tickerdesk.config.schema import ApiConfig, PersistenceConfig
from tickerdesk.constants import PERSISTED_BRANCHES


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("TICKERDESK_API_URL", raising=False)
    monkeypatch.delenv("TICKERDESK_CONFIG", raising=False)


def test_missing_file_yields_defaults(tmp_path):
    config = load_config(tmp_path / "missing.yml")

    assert config == DashboardConfig()
    assert config.api.base_url == "http://localhost:8000"
    assert config.api.timeout == 30.0
    assert config.persistence.whitelist == list(PERSISTED_BRANCHES)


def test_yaml_values_and_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("DESK_HOST", "research.example.com")
    path = tmp_path / "tickerdesk.yml"
    path.write_text(
        "api:\n"
        "  base_url: https://${DESK_HOST}/\n"
        "  timeout: 5\n"
        "persistence:\n"
        "  whitelist: [sessions, widgets]\n"
    )

    config = load_config(path)

    assert config.api.base_url == "https://research.example.com"
    assert config.api.timeout == 5
    assert config.persistence.whitelist == ["sessions", "widgets"]


def test_env_api_url_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "tickerdesk.yml"
    path.write_text("api:\n  base_url: http://file.example.com\n")
    monkeypatch.setenv("TICKERDESK_API_URL", "http://env.example.com")

    assert load_config(path).api.base_url == "http://env.example.com"


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "tickerdesk.yml"
    path.write_text("api: [unclosed\n")
    assert load_config(path) == DashboardConfig()


def test_unknown_keys_are_kept(tmp_path):
    path = tmp_path / "tickerdesk.yml"
    path.write_text("api:\n  retries: 3\ntheme: dark\n")

    config = load_config(path)

    assert config.model_extra == {"theme": "dark"}
    assert config.api.model_extra == {"retries": 3}


def test_rejects_non_http_base_url():
    with pytest.raises(ValidationError):
        ApiConfig(base_url="ftp://example.com")


def test_rejects_non_positive_timeout():
    with pytest.raises(ValidationError):
        ApiConfig(timeout=0)


def test_rejects_unknown_persisted_branch():
    with pytest.raises(ValidationError):
        PersistenceConfig(whitelist=["sessions", "ui"])


def test_expand_env_vars_leaves_unknown_placeholders(monkeypatch):
    monkeypatch.delenv("NOPE_NOT_SET", raising=False)
    assert expand_env_vars({"a": ["${NOPE_NOT_SET}", 1]}) == {"a": ["${NOPE_NOT_SET}", 1]}


def test_load_dashboard_config_uses_env_path(tmp_path, monkeypatch):
    path = tmp_path / "custom.yml"
    path.write_text("persistence:\n  enabled: false\n")
    monkeypatch.setenv("TICKERDESK_CONFIG", str(path))

    assert load_dashboard_config().persistence.enabled is False


def test_setup_logging_sets_level(monkeypatch):
    from tickerdesk import logging_config

    calls: list[str] = []
    monkeypatch.setattr(logging_config, "configure_logging", lambda name: calls.append(name))
    monkeypatch.setenv("TICKERDESK_LOG_LEVEL", "INFO")

    logging_config.setup_logging("DEBUG")

    assert calls == ["tickerdesk"]
    assert os.environ["TICKERDESK_LOG_LEVEL"] == "DEBUG"
