"""Parsing and dispatch of control-channel command lines."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import UnknownCommand
from .transfer import TransferEngine, TransferResult

COMMAND_PREFIX = "PROCESS_FILE:"


@dataclass(frozen=True)
class TransferRequest:
    local_path: str


def parse_command(line: Optional[str]) -> TransferRequest:
    """Turn ``PROCESS_FILE:<path>`` into a request; anything else is unknown.

    The path is everything after the first ``:``, trimmed. It is not
    validated here.
    """
    if not line or not line.startswith(COMMAND_PREFIX):
        raise UnknownCommand(f"Unknown or empty command: {line!r}")
    _, _, path = line.partition(":")
    return TransferRequest(local_path=path.strip())


def dispatch(line: Optional[str], engine: TransferEngine, logger: logging.Logger) -> Optional[TransferResult]:
    try:
        request = parse_command(line)
    except UnknownCommand:
        logger.warning("[COMMAND] Unknown or empty command received.")
        return None
    return engine.transfer(request.local_path)


__all__ = ["COMMAND_PREFIX", "TransferRequest", "parse_command", "dispatch"]
