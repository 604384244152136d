"""Logging utilities for the capture service.

This module provides ``get_logger`` for unified log configuration. It
supports YAML configuration and a SQLite-backed handler for persistent
records, so failures in a headless capture (nobody watching a terminal) can
be inspected afterwards.

Tests: tests/test_logger.py
Operational: logging_config.yaml
"""

import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import yaml

# Paths configurable for tests
CONFIG_PATH = Path(os.getenv("THOUGHTY_LOG_CONFIG", "logging_config.yaml"))
LOG_DIR = Path(os.getenv("THOUGHTY_LOG_DIR", "logs"))
DB_PATH = Path(os.getenv("DATA_DIR", "data")) / "logs.db"

_LOG_CONFIG: Optional[dict] = None
_WARNING_COUNT: Dict[tuple[str, str], int] = {}


def _load_config() -> dict:
    global _LOG_CONFIG
    if _LOG_CONFIG is not None:
        return _LOG_CONFIG
    if CONFIG_PATH.exists():
        try:
            _LOG_CONFIG = yaml.safe_load(CONFIG_PATH.read_text()) or {}
        except (OSError, yaml.YAMLError):
            _LOG_CONFIG = {}
    else:
        _LOG_CONFIG = {}
    return _LOG_CONFIG


def reset_config() -> None:
    """Forget the cached YAML config (used by tests)."""
    global _LOG_CONFIG
    _LOG_CONFIG = None
    _WARNING_COUNT.clear()


class SQLiteHandler(logging.Handler):
    """Logging handler that stores events in SQLite.

    Warnings and errors are additionally tallied in ``log_incidents`` so a
    failure that repeats on every capture shows up as one row with a count.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        super().__init__()
        self.db_path = Path(db_path or DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS log_events (timestamp TEXT, level TEXT, source TEXT, message TEXT)"
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS log_incidents (source TEXT, message TEXT, level TEXT, count INTEGER, last_seen TEXT, PRIMARY KEY (source, message))"
            )
            conn.commit()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
            message = record.getMessage()
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO log_events (timestamp, level, source, message) VALUES (?,?,?,?)",
                    (ts, record.levelname, record.name, message),
                )
                if record.levelno >= logging.WARNING:
                    count = _increment_warning(record)
                    conn.execute(
                        "INSERT OR REPLACE INTO log_incidents (source, message, level, count, last_seen) VALUES (?,?,?,?,?)",
                        (record.name, message, record.levelname, count, ts),
                    )
                conn.commit()
        except Exception:
            self.handleError(record)


def _increment_warning(record: logging.LogRecord) -> int:
    key = (record.name, record.getMessage())
    _WARNING_COUNT[key] = _WARNING_COUNT.get(key, 0) + 1
    return _WARNING_COUNT[key]


def get_logger(name: str) -> logging.Logger:
    cfg = _load_config()
    logger = logging.getLogger(name)
    if not logger.handlers:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(LOG_DIR / f"{name}.log")
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
        logger.addHandler(SQLiteHandler())
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        logger.addHandler(sh)
    level = (cfg.get("modules") or {}).get(name, cfg.get("default_level", "INFO"))
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    if cfg.get("suppress_debug") and lvl < logging.INFO:
        lvl = logging.INFO
    logger.setLevel(lvl)
    return logger
