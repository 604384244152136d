"""Configuration for the capture service.

Values are layered: built-in defaults, then the ``[capture]`` table of
``~/.thoughty/config.toml``, then ``THOUGHTY_*`` environment variables (a
``.env`` file in the working directory is loaded first). ``DATA_DIR``
selects where the queue and log databases live.
"""
from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

CONFIG_HOME = Path(os.getenv("THOUGHTY_HOME", Path.home() / ".thoughty"))
CONFIG_FILE = CONFIG_HOME / "config.toml"
ENV_PREFIX = "THOUGHTY_"

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    data_dir: Path = Path("data")
    backend: str = "FasterWhisper"
    model: str = "small"
    max_duration_s: float = 120.0
    silence_timeout_s: float = 8.0
    language: Optional[str] = None
    hold_seconds: float = 1.0
    destination_hint: str = "inbox"
    host_url: Optional[str] = None
    api_host: str = "127.0.0.1"
    api_port: int = 8888

    @property
    def api_url(self) -> str:
        return f"http://{self.api_host}:{self.api_port}"


def _coerce(name: str, raw: Any) -> Any:
    default = Settings.__dataclass_fields__[name].default
    if raw is None or raw == "":
        return None if default is None else default
    if isinstance(default, bool):
        return str(raw).lower() in {"1", "true", "yes", "on"}
    if isinstance(default, int) and not isinstance(default, bool):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, Path):
        return Path(raw).expanduser()
    return str(raw)


def load_settings(config_file: Optional[Path] = None) -> Settings:
    """Load settings from file and environment."""
    load_dotenv()
    path = config_file or CONFIG_FILE
    values: dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("rb") as fh:
                values.update(tomllib.load(fh).get("capture", {}))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Failed to read %s: %s", path, exc)
    if os.getenv("DATA_DIR"):
        values["data_dir"] = os.getenv("DATA_DIR")
    # environment overrides
    for f in fields(Settings):
        env = os.getenv(ENV_PREFIX + f.name.upper())
        if env is not None:
            values[f.name] = env

    kwargs = {}
    for name, raw in values.items():
        if name not in Settings.__dataclass_fields__:
            logger.warning("Ignoring unknown setting %r", name)
            continue
        try:
            kwargs[name] = _coerce(name, raw)
        except ValueError:
            logger.warning("Invalid value for %s: %r, using default", name, raw)
    return Settings(**kwargs)
