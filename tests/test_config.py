"""
Tests for connectu.core.config
"""

import json
import logging

import pytest

from connectu.api.routes.dependencies import AppContext
from connectu.core.config import _ENV_OVERRIDES, AppConfig, load_config, save_config
from connectu.core.logger import get_logger, set_level
from connectu.core.otp import DryRunOtpProvider


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


def test_defaults_without_file(temp_dir, monkeypatch):
    monkeypatch.setenv("CONNECTU_CONFIG_FILE", str(temp_dir / "missing.json"))

    cfg = load_config()

    assert cfg.chat_page_size == 20
    assert cfg.jwt_expire_days == 30
    assert cfg.twofactor_api_key is None


def test_file_values_loaded(temp_dir, monkeypatch):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({"chat_page_size": 5, "unknown": 1}), encoding="utf-8")
    monkeypatch.setenv("CONNECTU_CONFIG_FILE", str(path))

    assert load_config().chat_page_size == 5


def test_env_overrides_file(temp_dir, monkeypatch):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({"chat_page_size": 5}), encoding="utf-8")
    monkeypatch.setenv("CONNECTU_CONFIG_FILE", str(path))
    monkeypatch.setenv("CHAT_PAGE_SIZE", "50")
    monkeypatch.setenv("SMS_TIMEOUT_SECONDS", "2.5")

    cfg = load_config()

    assert cfg.chat_page_size == 50
    assert cfg.sms_timeout_seconds == 2.5


def test_corrupt_file_falls_back(temp_dir, monkeypatch):
    path = temp_dir / "config.json"
    path.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("CONNECTU_CONFIG_FILE", str(path))

    assert load_config() == AppConfig()


def test_save_strips_secrets(temp_dir, monkeypatch):
    """Test that secrets never reach the config file"""
    path = temp_dir / "config.json"
    monkeypatch.setenv("CONNECTU_CONFIG_FILE", str(path))

    save_config(AppConfig(jwt_secret="s3cret", twofactor_api_key="KEY", chat_page_size=7))

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert "jwt_secret" not in stored
    assert "twofactor_api_key" not in stored
    assert load_config().chat_page_size == 7


def test_log_level_from_config(temp_dir):
    """Test that the configured level reaches existing and new loggers"""
    existing = get_logger("connectu.test.existing")
    try:
        AppContext.from_config(
            AppConfig(database_path=str(temp_dir / "c.db"), jwt_secret="s", log_level="DEBUG"),
            otp_provider=DryRunOtpProvider(),
        )

        assert existing.level == logging.DEBUG
        assert get_logger("connectu.test.created_later").level == logging.DEBUG
    finally:
        set_level("INFO")

    assert existing.level == logging.INFO
