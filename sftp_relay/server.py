"""TCP command listener."""

from __future__ import annotations

import logging
import socketserver
from typing import Tuple, Type

from .commands import dispatch
from .config import Config
from .errors import StartupFailure
from .transfer import TransferEngine

MAX_COMMAND_BYTES = 64 * 1024


class CommandHandler(socketserver.StreamRequestHandler):
    """Reads one line, dispatches it, writes nothing back."""

    def handle(self) -> None:
        server: CommandServer = self.server  # type: ignore[assignment]
        peer = "%s:%s" % self.client_address[:2]
        try:
            raw = self.rfile.readline(MAX_COMMAND_BYTES)
        except OSError as exc:
            server.logger.error(f"[LISTEN] socket read error from {peer}: {exc}")
            return

        if len(raw) >= MAX_COMMAND_BYTES and not raw.endswith(b"\n"):
            server.logger.warning(f"[COMMAND] line from {peer} exceeds {MAX_COMMAND_BYTES} bytes; discarded")
            dispatch(None, server.engine, server.logger)
            return

        line = raw.decode("utf-8", errors="replace").rstrip("\r\n") if raw else None
        server.logger.info(f"[COMMAND] received from {peer}: {line!r}")
        dispatch(line, server.engine, server.logger)


class CommandServer(socketserver.TCPServer):
    """Handles connections one at a time, in accept order."""

    allow_reuse_address = True

    def __init__(
        self,
        address: Tuple[str, int],
        engine: TransferEngine,
        logger: logging.Logger,
        bind_and_activate: bool = True,
    ):
        self.engine = engine
        self.logger = logger
        super().__init__(address, CommandHandler, bind_and_activate)

    def handle_error(self, request, client_address) -> None:
        self.logger.exception(f"[LISTEN] unhandled error while serving {client_address}")


class ThreadedCommandServer(socketserver.ThreadingMixIn, CommandServer):
    daemon_threads = True


def create_server(cfg: Config, engine: TransferEngine, logger: logging.Logger) -> CommandServer:
    server_cls: Type[CommandServer] = ThreadedCommandServer if cfg.concurrent else CommandServer
    try:
        server = server_cls((cfg.bind_host, cfg.app_port), engine, logger)
    except OSError as exc:
        raise StartupFailure(f"Could not listen on port {cfg.app_port}: {exc}") from exc
    host, port = server.server_address[:2]
    logger.info(f"[LISTEN] TCP listener active on {host or '*'}:{port}")
    return server


__all__ = [
    "MAX_COMMAND_BYTES",
    "CommandHandler",
    "CommandServer",
    "ThreadedCommandServer",
    "create_server",
]
