from __future__ import annotations

import copy
import logging.config
from typing import Any

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
}


def merge_dicts(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            merge_dicts(base[key], value)
        else:
            base[key] = value
    return base


def build_logging_config(level: str | None = None, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    config = copy.deepcopy(DEFAULT_LOGGING_CONFIG)
    if level:
        config["root"]["level"] = level.upper()
    if overrides:
        merge_dicts(config, overrides)
    return config


def setup_logging(level: str | None = None, overrides: dict[str, Any] | None = None) -> None:
    logging.config.dictConfig(build_logging_config(level, overrides))
