"""Configuration loading for the relay service."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import StartupFailure

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "application.properties"
DEFAULT_APP_PORT = 9999
DEFAULT_SFTP_PORT = 22
DEFAULT_STRICT_HOST_CHECKING = "no"

_SEPARATOR = re.compile(r"\s*[=:]\s*|\s+")


class Properties:
    """Reads ``key=value`` data from a ``.properties`` file plus env overrides."""

    def __init__(self, path: Path):
        self.path = path
        self.data: Dict[str, str] = self._load(path)

    @staticmethod
    def _load(path: Path) -> Dict[str, str]:
        data: Dict[str, str] = {}
        for raw in path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or line.startswith("!"):
                continue
            parts = _SEPARATOR.split(line, maxsplit=1)
            key = parts[0]
            value = parts[1].strip() if len(parts) > 1 else ""
            data[key] = value
        return data

    @staticmethod
    def env_name(key: str) -> str:
        return key.upper().replace(".", "_")

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return os.getenv(self.env_name(key), self.data.get(key, default))

    def get_int(self, key: str, default: Optional[int]) -> Optional[int]:
        val = self.get(key)
        if val is None or val.strip() == "":
            return default
        try:
            return int(val.strip())
        except ValueError:
            logger.warning("[CONFIG] %s=%r is not an integer; using %s", key, val, default)
            return default

    def get_float(self, key: str, default: Optional[float]) -> Optional[float]:
        val = self.get(key)
        if val is None or val.strip() == "":
            return default
        try:
            return float(val.strip())
        except ValueError:
            logger.warning("[CONFIG] %s=%r is not a number; using %s", key, val, default)
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        val = self.get(key)
        if val is None or val.strip() == "":
            return default
        return val.strip().lower() not in {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    app_port: int = DEFAULT_APP_PORT
    sftp_host: Optional[str] = None
    sftp_port: int = DEFAULT_SFTP_PORT
    sftp_user: Optional[str] = None
    sftp_pass: Optional[str] = None
    strict_host_checking: str = DEFAULT_STRICT_HOST_CHECKING

    bind_host: str = ""
    concurrent: bool = False
    timeout: Optional[float] = None
    log_file: Optional[str] = None
    config_path: str = ""

    def masked(self) -> Dict[str, Any]:
        printable = {f.name: getattr(self, f.name) for f in fields(self)}
        if printable.get("sftp_pass"):
            printable["sftp_pass"] = "***"
        return printable


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return value


def load_config(path: Path | str = DEFAULT_CONFIG_FILE) -> Config:
    path = Path(path)
    try:
        props = Properties(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise StartupFailure(f"Could not read configuration '{path}': {exc}") from exc

    cfg = Config(
        app_port=props.get_int("app.port", DEFAULT_APP_PORT),
        sftp_host=_optional(props.get("sftp.host")),
        sftp_port=props.get_int("sftp.port", DEFAULT_SFTP_PORT),
        sftp_user=_optional(props.get("sftp.user")),
        sftp_pass=_optional(props.get("sftp.pass")),
        strict_host_checking=props.get("feature.strict_host_checking", DEFAULT_STRICT_HOST_CHECKING),
        bind_host=str(props.get("app.host", "") or ""),
        concurrent=props.get_bool("app.concurrent", False),
        timeout=props.get_float("sftp.timeout", None),
        log_file=_optional(props.get("app.log_file")),
        config_path=str(path),
    )
    logger.debug("[CONFIG] loaded %d keys from %s", len(props.data), path)
    return cfg


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "Properties",
    "Config",
    "load_config",
]
