"""Error taxonomy for the relay service."""

from __future__ import annotations


class RelayError(Exception):
    """Base class; ``kind`` is the stable tag callers branch on."""

    kind = "RelayError"


class StartupFailure(RelayError):
    kind = "StartupFailure"


class UnknownCommand(RelayError):
    kind = "UnknownCommand"


class HostResolutionFailure(RelayError):
    kind = "HostResolutionFailure"


class SftpFailure(RelayError):
    kind = "SftpFailure"


class LocalFileFailure(RelayError):
    kind = "LocalFileFailure"


__all__ = [
    "RelayError",
    "StartupFailure",
    "UnknownCommand",
    "HostResolutionFailure",
    "SftpFailure",
    "LocalFileFailure",
]
