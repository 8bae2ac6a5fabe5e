"""Shared fixtures: fake SSH layer, fake DNS, and a live command server."""

import logging
import socket
import threading
from types import SimpleNamespace

import paramiko
import pytest

from sftp_relay.config import Config
from sftp_relay.server import CommandServer
from sftp_relay.transfer import TransferEngine

_real_getaddrinfo = socket.getaddrinfo

KNOWN_HOSTS = {"sftp.test": "10.0.0.5"}


class FakeSFTP:
    def __init__(self, owner):
        self.owner = owner
        self.closed = False

    def putfo(self, fl, remotepath, file_size=0, callback=None, confirm=True):
        if self.owner.put_error is not None:
            raise self.owner.put_error
        data = fl.read()
        if confirm and len(data) != file_size:
            raise IOError(f"size mismatch in put!  {len(data)} != {file_size}")
        self.owner.uploads[remotepath] = data
        self.owner.events.append(("put", remotepath))
        return SimpleNamespace(st_size=len(data))

    def close(self):
        self.closed = True
        self.owner.events.append(("sftp_close",))


class FakeSSHLayer:
    """Stands in for ``paramiko.SSHClient`` and records every call."""

    def __init__(self):
        self.uploads = {}
        self.events = []
        self.connect_kwargs = []
        self.policies = []
        self.connect_error = None
        self.open_sftp_error = None
        self.put_error = None
        self.before_connect = None

    def client_class(self):
        layer = self

        class FakeSSHClient:
            def __init__(self):
                self._transport = None

            def load_system_host_keys(self, filename=None):
                layer.events.append(("load_system_host_keys",))

            def set_missing_host_key_policy(self, policy):
                layer.policies.append(policy)

            def connect(self, **kwargs):
                if layer.before_connect is not None:
                    layer.before_connect()
                layer.connect_kwargs.append(kwargs)
                layer.events.append(("connect", kwargs["hostname"], kwargs["port"]))
                self._transport = object()
                if layer.connect_error is not None:
                    raise layer.connect_error

            def get_transport(self):
                return self._transport

            def open_sftp(self):
                if layer.open_sftp_error is not None:
                    raise layer.open_sftp_error
                layer.events.append(("open_sftp",))
                return FakeSFTP(layer)

            def close(self):
                self._transport = None
                layer.events.append(("ssh_close",))

        return FakeSSHClient


@pytest.fixture
def ssh_layer(monkeypatch):
    layer = FakeSSHLayer()
    monkeypatch.setattr(paramiko, "SSHClient", layer.client_class())
    return layer


@pytest.fixture
def fake_dns(monkeypatch):
    lookups = []

    def getaddrinfo(host, port, *args, **kwargs):
        if host in KNOWN_HOSTS:
            lookups.append(host)
            return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (KNOWN_HOSTS[host], port))]
        if str(host).endswith(".invalid"):
            lookups.append(host)
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return _real_getaddrinfo(host, port, *args, **kwargs)

    monkeypatch.setattr(socket, "getaddrinfo", getaddrinfo)
    return lookups


@pytest.fixture
def logger():
    log = logging.getLogger("relay_tests")
    log.setLevel(logging.INFO)
    return log


@pytest.fixture
def config():
    return Config(
        app_port=0,
        bind_host="127.0.0.1",
        sftp_host="sftp.test",
        sftp_port=22,
        sftp_user="u",
        sftp_pass="p",
    )


@pytest.fixture
def engine(config, logger, ssh_layer, fake_dns):
    return TransferEngine(config, logger)


@pytest.fixture
def write_properties(tmp_path, monkeypatch):
    for name in ("APP_PORT", "APP_HOST", "APP_CONCURRENT", "APP_LOG_FILE", "SFTP_HOST", "SFTP_PORT",
                 "SFTP_USER", "SFTP_PASS", "SFTP_TIMEOUT", "FEATURE_STRICT_HOST_CHECKING"):
        monkeypatch.delenv(name, raising=False)

    def _write(text, name="application.properties"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


class RecordingEngine:
    """Engine double that records calls and lets a test hold a transfer open."""

    def __init__(self):
        self.calls = []
        self.done = threading.Event()
        self.expected = 1
        self.gate = None

    def transfer(self, local_path):
        self.calls.append(("start", local_path))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        self.calls.append(("end", local_path))
        if sum(1 for c in self.calls if c[0] == "end") >= self.expected:
            self.done.set()
        return None


@pytest.fixture
def live_server(logger):
    """Starts a sequential CommandServer on an ephemeral port."""
    servers = []

    def _start(engine):
        server = CommandServer(("127.0.0.1", 0), engine, logger)
        thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
        thread.start()
        servers.append((server, thread))
        return server

    yield _start

    for server, thread in servers:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def reset_relay_logger():
    yield
    relay = logging.getLogger("sftp_relay")
    for handler in relay.handlers[:]:
        handler.close()
        relay.removeHandler(handler)


@pytest.fixture
def recording_engine():
    return RecordingEngine()
