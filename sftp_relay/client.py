"""Sender side of the control channel, as used by an upstream orchestrator."""

from __future__ import annotations

import socket
from typing import Optional

from .commands import COMMAND_PREFIX


def send_line(host: str, port: int, line: str, timeout: Optional[float] = None) -> None:
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall((line + "\n").encode("utf-8"))


def send_process_file(host: str, port: int, path: str, timeout: Optional[float] = None) -> None:
    """Fire-and-forget: the service sends no reply."""
    send_line(host, port, COMMAND_PREFIX + path, timeout=timeout)


__all__ = ["send_line", "send_process_file"]
