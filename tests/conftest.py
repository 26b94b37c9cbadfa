from __future__ import annotations

import socket
import sys
import threading
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

import pytest

# Ensure local "src/" takes precedence over any globally-installed "linewire" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


# ---------------------------------------------------------------------
# Scripted socket for unit tests
# ---------------------------------------------------------------------

RecvStep = Union[bytes, BaseException]


class FakeSocket:
    def __init__(self, recv_script: Optional[List[RecvStep]] = None, *, send_limit: Optional[int] = None) -> None:
        self.recv_script: List[RecvStep] = list(recv_script or [])
        self.send_limit = send_limit
        self.send_error: Optional[BaseException] = None
        self.so_error = 0
        self.sent: List[bytes] = []
        self.recv_sizes: List[int] = []
        self.timeouts: List[Optional[float]] = []
        self.close_calls = 0

    def settimeout(self, value: Optional[float]) -> None:
        self.timeouts.append(value)

    def recv(self, bufsize: int) -> bytes:
        self.recv_sizes.append(bufsize)
        if not self.recv_script:
            raise socket.timeout("timed out")
        step = self.recv_script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step[:bufsize]

    def send(self, data: bytes) -> int:
        if self.send_error is not None:
            raise self.send_error
        n = len(data) if self.send_limit is None else min(self.send_limit, len(data))
        self.sent.append(bytes(data[:n]))
        return n

    def getsockopt(self, level: int, optname: int) -> int:
        return self.so_error

    def close(self) -> None:
        self.close_calls += 1


class FakeFactory:
    def __init__(self, sock: Optional[FakeSocket] = None, error: Optional[OSError] = None) -> None:
        self.sock = sock or FakeSocket()
        self.error = error
        self.calls: List[Tuple[Tuple[str, int], float]] = []

    def __call__(self, addr: Tuple[str, int], timeout: float) -> FakeSocket:
        self.calls.append((addr, timeout))
        if self.error is not None:
            raise self.error
        return self.sock


@pytest.fixture
def fake_sock() -> FakeSocket:
    return FakeSocket()


@pytest.fixture
def fake_factory(fake_sock: FakeSocket) -> FakeFactory:
    return FakeFactory(fake_sock)


# ---------------------------------------------------------------------
# Local TCP peers for scenario tests
# ---------------------------------------------------------------------

Handler = Callable[[socket.socket, threading.Event], None]


class LocalServer:
    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(16)
        self.listener.settimeout(0.2)
        self.host, self.port = self.listener.getsockname()[:2]
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._clients: List[socket.socket] = []
        self._accept_thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._accept_thread.start()

    def _accept_loop(self) -> None:
        while not self._stop.is_set():
            try:
                client, _ = self.listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self._clients.append(client)
            t = threading.Thread(target=self._serve, args=(client,), daemon=True)
            t.start()
            self._threads.append(t)

    def _serve(self, client: socket.socket) -> None:
        try:
            self.handler(client, self._stop)
        except OSError:
            pass

    def stop(self) -> None:
        self._stop.set()
        self._accept_thread.join(timeout=2)
        self.listener.close()
        for c in self._clients:
            try:
                c.close()
            except OSError:
                pass
        for t in self._threads:
            t.join(timeout=2)


def _echo(client: socket.socket, stop: threading.Event) -> None:
    with client:
        while True:
            data = client.recv(4096)
            if not data:
                return
            client.sendall(data)


def _silent(client: socket.socket, stop: threading.Event) -> None:
    # Hold the connection open without ever answering.
    stop.wait(timeout=10)


def _smtpish(client: socket.socket, stop: threading.Event) -> None:
    with client:
        client.sendall(b"220 probe.local ready\r\n")
        buf = b""
        while True:
            data = client.recv(4096)
            if not data:
                return
            buf += data
            while b"\r\n" in buf:
                line, buf = buf.split(b"\r\n", 1)
                client.sendall(b"250-hello " + line + b"\r\n250 OK\r\n")


@pytest.fixture
def echo_server() -> Iterator[LocalServer]:
    srv = LocalServer(_echo)
    yield srv
    srv.stop()


@pytest.fixture
def silent_server() -> Iterator[LocalServer]:
    srv = LocalServer(_silent)
    yield srv
    srv.stop()


@pytest.fixture
def smtp_server() -> Iterator[LocalServer]:
    srv = LocalServer(_smtpish)
    yield srv
    srv.stop()


@pytest.fixture
def closed_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
