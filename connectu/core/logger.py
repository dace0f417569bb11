import json
import logging
import os
import sys

_configured_level = None


class JsonFormatter(logging.Formatter):
    def format(self, record):
        d = {
            "lvl": record.levelname,
            "msg": record.getMessage(),
            "name": record.name,
        }
        extra = getattr(record, "ctx", None)
        if isinstance(extra, dict):
            d.update(extra)
        if record.exc_info:
            d["exc"] = self.formatException(record.exc_info)
        return json.dumps(d, ensure_ascii=False, default=str)


def _to_level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def get_logger(name: str = "connectu", level: str = None) -> logging.Logger:
    log = logging.getLogger(name)
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        log.addHandler(h)
    lvl = level or _configured_level or os.getenv("LOG_LEVEL", "INFO")
    log.setLevel(_to_level(lvl))
    return log


def set_level(level: str) -> None:
    """Apply the configured level to every connectu logger, present and future"""
    global _configured_level
    _configured_level = level
    for name, log in logging.root.manager.loggerDict.items():
        if name.split(".")[0] == "connectu" and isinstance(log, logging.Logger):
            log.setLevel(_to_level(level))
