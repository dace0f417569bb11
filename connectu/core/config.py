"""Configuration for the ConnectU backend.

Settings live in a JSON file so a deployment can survive restarts without
re-exporting everything, and environment variables override the file.

Stored fields mirror ``AppConfig``. Secrets (JWT secret, SMS API key) are
usually passed through the environment rather than written to disk.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional


_LOCK = threading.Lock()

DEFAULT_HOME = Path.home() / ".connectu"


def _config_file_path() -> Path:
    """Resolve config file path.

    Test harnesses can override via:
    - CONNECTU_CONFIG_FILE: full path to config.json
    - CONNECTU_CONFIG_DIR: directory containing config.json
    """

    file_env = os.environ.get("CONNECTU_CONFIG_FILE")
    if file_env:
        return Path(file_env)

    dir_env = os.environ.get("CONNECTU_CONFIG_DIR")
    if dir_env:
        return Path(dir_env) / "config.json"

    return DEFAULT_HOME / "config.json"


@dataclass
class AppConfig:
    database_path: str = str(DEFAULT_HOME / "connectu.db")
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 30
    twofactor_api_key: Optional[str] = None
    twofactor_base_url: str = "https://2factor.in/API/V1"
    sms_timeout_seconds: float = 10.0
    default_country_code: str = "+91"
    chat_page_size: int = 20
    log_level: str = "INFO"


# env var -> (field, converter)
_ENV_OVERRIDES = {
    "CONNECTU_DATABASE_PATH": ("database_path", str),
    "JWT_SECRET": ("jwt_secret", str),
    "JWT_EXPIRE_DAYS": ("jwt_expire_days", int),
    "TWOFACTOR_API_KEY": ("twofactor_api_key", str),
    "SMS_TIMEOUT_SECONDS": ("sms_timeout_seconds", float),
    "CHAT_PAGE_SIZE": ("chat_page_size", int),
    "LOG_LEVEL": ("log_level", str),
}


def _apply_env(cfg: AppConfig) -> AppConfig:
    for var, (name, convert) in _ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw:
            setattr(cfg, name, convert(raw))
    return cfg


def _read_file() -> AppConfig:
    cfg_file = _config_file_path()
    if not cfg_file.exists():
        return AppConfig()
    try:
        data = json.loads(cfg_file.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return AppConfig()
    known = {f.name for f in fields(AppConfig)}
    return AppConfig(**{k: v for k, v in data.items() if k in known})


def load_config() -> AppConfig:
    with _LOCK:
        return _apply_env(_read_file())


def save_config(cfg: AppConfig) -> None:
    with _LOCK:
        cfg_file = _config_file_path()
        cfg_file.parent.mkdir(parents=True, exist_ok=True)
        payload = asdict(cfg)
        # keep secrets out of the file
        payload.pop("jwt_secret", None)
        payload.pop("twofactor_api_key", None)
        cfg_file.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
