"""Transfer engine: resolve, connect, upload one file over SFTP, tear down."""

from __future__ import annotations

import enum
import logging
import os
import socket
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import paramiko

from .config import Config
from .errors import HostResolutionFailure, LocalFileFailure, RelayError, SftpFailure

REMOTE_UPLOAD_DIR = "upload/"

# paramiko re-raises a bare EOFError when the peer drops the connection mid-handshake
_SSH_ERRORS = (paramiko.SSHException, EOFError, OSError)

LOGGER_NAME = "sftp_relay"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class _BelowLevel(logging.Filter):
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def setup_logger(log_file: Optional[str] = None) -> logging.Logger:
    """Normal events go to stdout, warnings and failures to stderr."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    fmt = logging.Formatter(LOG_FORMAT)

    out = logging.StreamHandler(sys.stdout)
    out.setFormatter(fmt)
    out.addFilter(_BelowLevel(logging.WARNING))
    logger.addHandler(out)

    err = logging.StreamHandler(sys.stderr)
    err.setFormatter(fmt)
    err.setLevel(logging.WARNING)
    logger.addHandler(err)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger


# ====================== paths ======================
def basename(path: str) -> str:
    seps = {"/", os.sep}
    if os.altsep:
        seps.add(os.altsep)
    cut = max(path.rfind(sep) for sep in seps)
    return path[cut + 1:]


def remote_path_for(local_path: str) -> str:
    return REMOTE_UPLOAD_DIR + basename(local_path)


def check_local_file(path: str) -> None:
    if not os.path.exists(path):
        raise LocalFileFailure(f"Could not find '{path}'")
    if not os.path.isfile(path):
        raise LocalFileFailure(f"'{path}' is not a regular file")
    if not os.access(path, os.R_OK):
        raise LocalFileFailure(f"'{path}' is not readable")


def resolve_host(host: str, port: int) -> List[str]:
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise HostResolutionFailure(f"Could not resolve '{host}': {exc}") from exc
    addresses: List[str] = []
    for info in infos:
        addr = info[4][0]
        if addr not in addresses:
            addresses.append(addr)
    if not addresses:
        raise HostResolutionFailure(f"No addresses for '{host}'")
    return addresses


def strict_host_checking_enabled(strict_value: Optional[str]) -> bool:
    """Only ``no`` (any case, surrounding blanks ignored) turns checking off."""
    return (strict_value or "").strip().lower() != "no"


def host_key_policy(strict_value: Optional[str]) -> paramiko.MissingHostKeyPolicy:
    if strict_host_checking_enabled(strict_value):
        return paramiko.RejectPolicy()
    return paramiko.AutoAddPolicy()


# ====================== session ======================
class SessionState(enum.Enum):
    UNINITIALIZED = "UNINITIALIZED"
    TRANSPORT_CONNECTED = "TRANSPORT_CONNECTED"
    AUTHENTICATED = "AUTHENTICATED"
    CHANNEL_OPEN = "CHANNEL_OPEN"
    CHANNEL_CLOSED = "CHANNEL_CLOSED"
    TRANSPORT_CLOSED = "TRANSPORT_CLOSED"


class SftpSession:
    """An SSH transport plus one SFTP channel, released in reverse order.

    Use as a context manager; a failure inside ``open`` closes whatever was
    already acquired before the error propagates.
    """

    def __init__(self, cfg: Config, logger: logging.Logger):
        self.cfg = cfg
        self.logger = logger
        self.client: Optional[paramiko.SSHClient] = None
        self.sftp: Optional[paramiko.SFTPClient] = None
        self.state = SessionState.UNINITIALIZED
        self.history: List[SessionState] = [self.state]

    def _move(self, state: SessionState) -> None:
        self.state = state
        self.history.append(state)

    def open(self) -> "SftpSession":
        try:
            self._connect()
            self._open_channel()
        except BaseException:
            self.close()
            raise
        return self

    def _connect(self) -> None:
        cfg = self.cfg
        self.client = paramiko.SSHClient()
        if strict_host_checking_enabled(cfg.strict_host_checking):
            self.client.load_system_host_keys()
        self.client.set_missing_host_key_policy(host_key_policy(cfg.strict_host_checking))

        self.logger.info(f"[SFTP] connecting to {cfg.sftp_host}:{cfg.sftp_port} as {cfg.sftp_user}")
        try:
            self.client.connect(
                hostname=cfg.sftp_host,
                port=cfg.sftp_port,
                username=cfg.sftp_user,
                password=cfg.sftp_pass,
                timeout=cfg.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except _SSH_ERRORS as exc:
            if self.client.get_transport() is not None:
                self._move(SessionState.TRANSPORT_CONNECTED)
            raise SftpFailure(f"SSH connect to {cfg.sftp_host}:{cfg.sftp_port} failed: {exc}") from exc
        self._move(SessionState.TRANSPORT_CONNECTED)
        self._move(SessionState.AUTHENTICATED)
        self.logger.info("[SFTP] SSH handshake complete")

    def _open_channel(self) -> None:
        try:
            self.sftp = self.client.open_sftp()
        except _SSH_ERRORS as exc:
            raise SftpFailure(f"Could not open SFTP channel: {exc}") from exc
        self._move(SessionState.CHANNEL_OPEN)

    def upload(self, local_path: str, remote_path: str) -> int:
        if self.sftp is None:
            raise SftpFailure("SFTP channel is not open")
        try:
            lfd = open(local_path, "rb")
        except OSError as exc:
            raise LocalFileFailure(f"Could not read '{local_path}': {exc}") from exc
        with lfd:
            size = os.fstat(lfd.fileno()).st_size
            try:
                attrs = self.sftp.putfo(lfd, remote_path, file_size=size, confirm=True)
            except _SSH_ERRORS as exc:
                raise SftpFailure(f"Upload {local_path} -> {remote_path} failed: {exc}") from exc
        return int(getattr(attrs, "st_size", size) or 0)

    def close(self) -> None:
        if self.sftp is not None:
            try:
                self.sftp.close()
            except Exception as exc:
                self.logger.warning(f"[SFTP] channel close failed: {exc}")
            self.sftp = None
            self._move(SessionState.CHANNEL_CLOSED)
        if self.client is not None:
            try:
                self.client.close()
            except Exception as exc:
                self.logger.warning(f"[SFTP] transport close failed: {exc}")
            self.client = None
            if self.state is not SessionState.UNINITIALIZED:
                self._move(SessionState.TRANSPORT_CLOSED)

    def __enter__(self) -> "SftpSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ====================== engine ======================
@dataclass
class TransferResult:
    local: str
    remote: Optional[str]
    ok: bool
    size: int = 0
    duration_sec: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None


SessionFactory = Callable[[Config, logging.Logger], SftpSession]


class TransferEngine:
    def __init__(self, cfg: Config, logger: logging.Logger, session_factory: SessionFactory = SftpSession):
        self.cfg = cfg
        self.logger = logger
        self.session_factory = session_factory

    def _target(self) -> Tuple[str, int]:
        cfg = self.cfg
        missing = [
            key
            for key, value in (("sftp.host", cfg.sftp_host), ("sftp.user", cfg.sftp_user), ("sftp.pass", cfg.sftp_pass))
            if not value
        ]
        if missing:
            raise SftpFailure("Missing configuration: " + ", ".join(missing))
        return cfg.sftp_host, cfg.sftp_port

    def transfer(self, local_path: str) -> TransferResult:
        self.logger.info(f"[UPLOAD] initiating transfer for: {local_path}")
        t0 = time.time()
        remote: Optional[str] = None
        try:
            host, port = self._target()
            addresses = resolve_host(host, port)
            self.logger.info(f"[DNS] resolved {host} -> {addresses[0]}")
            with self.session_factory(self.cfg, self.logger) as session:
                check_local_file(local_path)
                remote = remote_path_for(local_path)
                size = session.upload(local_path, remote)
        except RelayError as exc:
            self.logger.error(f"[ERROR] {exc.kind}: {exc}")
            return TransferResult(
                local=local_path, remote=remote, ok=False,
                duration_sec=time.time() - t0, error=str(exc), error_kind=exc.kind,
            )

        dur = time.time() - t0
        self.logger.info(f"[UPLOAD] SUCCESS: {local_path} -> {self.cfg.sftp_host}:{remote} ({size} bytes, {dur:.2f}s)")
        return TransferResult(local=local_path, remote=remote, ok=True, size=size, duration_sec=dur)


__all__ = [
    "REMOTE_UPLOAD_DIR",
    "setup_logger",
    "basename",
    "remote_path_for",
    "check_local_file",
    "resolve_host",
    "host_key_policy",
    "SessionState",
    "SftpSession",
    "TransferResult",
    "TransferEngine",
]
