# src/linewire/connection.py
"""
linewire: blocking line-oriented TCP connection

One Connection owns one outbound TCP socket:
  - connect() opens it (connect-phase timeout = write timeout)
  - read() does a single bounded recv and trims the text
  - read_to_end() drains reads until the peer goes quiet
  - write()/writeln() do a single send (no internal loop)

Timeouts are applied per socket call, so they bound each recv/send and never
a whole read_to_end() drain. A peer that keeps trickling data inside the read
timeout keeps read_to_end() running.

A read that times out with no bytes, a zero-byte read (peer closed) and a
whitespace-only chunk all produce NOTHING_TO_READ. Only a hard OS failure
raises TransportError.
"""

from __future__ import annotations

import enum
import logging
import os
import socket
from typing import Callable, List, Optional, Tuple, Union

from linewire.config import (
    DEFAULT_BUFFER_BYTES,
    DEFAULT_ENCODING,
    DEFAULT_PORT,
    DEFAULT_READ_TIMEOUT_S,
    DEFAULT_WRITE_TIMEOUT_S,
    ConnectionConfig,
    require_positive_int,
    validate_connection_config,
)
from linewire.errors import ConnectError, TransportError, ValidationError, os_reason
from linewire.net_logging import log_event

log = logging.getLogger("linewire.connection")

EOL = "\r\n"

SocketFactory = Callable[[Tuple[str, int], float], socket.socket]


class _NothingToRead:
    """Marker returned by Connection.read() when no data is available."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "NOTHING_TO_READ"

    def __bool__(self) -> bool:
        return False


NOTHING_TO_READ = _NothingToRead()

ReadResult = Union[str, _NothingToRead]


class ConnState(str, enum.Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


def _default_socket_factory(addr: Tuple[str, int], timeout: float) -> socket.socket:
    return socket.create_connection(addr, timeout=timeout)


class Connection:
    def __init__(
        self,
        *,
        read_timeout: int = DEFAULT_READ_TIMEOUT_S,
        write_timeout: int = DEFAULT_WRITE_TIMEOUT_S,
        buffer_size: int = DEFAULT_BUFFER_BYTES,
        encoding: str = DEFAULT_ENCODING,
        default_port: int = DEFAULT_PORT,
        socket_factory: Optional[SocketFactory] = None,
    ) -> None:
        self._sock: Optional[socket.socket] = None
        self._state = ConnState.UNCONNECTED
        self._last_error: Optional[BaseException] = None
        self._peer: Optional[Tuple[str, int]] = None

        validate_connection_config(
            ConnectionConfig(
                read_timeout_s=read_timeout,
                write_timeout_s=write_timeout,
                buffer_bytes=buffer_size,
                encoding=encoding,
                default_port=default_port,
            )
        )
        self._read_timeout = int(read_timeout)
        self._write_timeout = int(write_timeout)
        self._buffer_size = int(buffer_size)
        self._encoding = encoding
        self._default_port = int(default_port)
        self._socket_factory: SocketFactory = socket_factory or _default_socket_factory

    @classmethod
    def from_config(cls, cfg: ConnectionConfig, *, socket_factory: Optional[SocketFactory] = None) -> "Connection":
        return cls(
            read_timeout=cfg.read_timeout_s,
            write_timeout=cfg.write_timeout_s,
            buffer_size=cfg.buffer_bytes,
            encoding=cfg.encoding,
            default_port=cfg.default_port,
            socket_factory=socket_factory,
        )

    # -------------------------
    # lifecycle
    # -------------------------

    def connect(self, host: str, port: Optional[int] = None) -> "Connection":
        """Open the TCP session to host:port (port defaults to 23).

        Raises ConnectError on resolution failure, refusal or connect timeout;
        the connection then stays unconnected.
        """
        if self._state is ConnState.CONNECTED:
            raise ConnectError("already_connected", "connection is already open", {"peer": self._peer_str()})
        if self._state is ConnState.CLOSED:
            raise ConnectError("closed", "connection was closed and cannot be reopened")

        port = self._default_port if port is None else port
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port <= 65535:
            raise ConnectError("invalid_address", f"port must be 1..65535; got: {port!r}", {"host": host})

        try:
            sock = self._socket_factory((host, port), float(self._write_timeout))
        except OSError as exc:
            self._last_error = exc
            raise ConnectError(
                "connect_failed",
                os_reason(exc),
                {"host": host, "port": port, "errno": exc.errno},
            ) from exc
        except ValueError as exc:
            # hostnames the resolver refuses to encode (IDNA label limits, embedded NUL)
            self._last_error = exc
            raise ConnectError(
                "connect_failed",
                os_reason(exc),
                {"host": host, "port": port, "errno": None},
            ) from exc

        self._sock = sock
        self._peer = (host, port)
        self._state = ConnState.CONNECTED
        log_event(log, "conn_open", level=logging.DEBUG, host=host, port=port)
        return self

    def close(self) -> None:
        """Release the socket if one is held. Safe to call repeatedly."""
        if self._release():
            log_event(log, "conn_close", level=logging.DEBUG, peer=self._peer_str())

    def _release(self) -> bool:
        sock, self._sock = self._sock, None
        if sock is None:
            return False
        self._state = ConnState.CLOSED
        try:
            sock.close()
        except OSError as exc:
            self._last_error = exc
        return True

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_sock", None) is not None:
            self._release()

    # -------------------------
    # reading
    # -------------------------

    def read(self) -> ReadResult:
        """Receive up to buffer_size bytes and return them decoded and trimmed.

        Returns NOTHING_TO_READ when the receive timed out, the peer closed, or
        the chunk was only whitespace.
        """
        sock = self._require_socket("read")
        try:
            sock.settimeout(float(self._read_timeout))
            chunk = sock.recv(self._buffer_size)
        except BlockingIOError:
            return NOTHING_TO_READ
        except socket.timeout as exc:
            # socket-level timeouts carry no errno; a kernel ETIMEDOUT does
            if exc.errno is None:
                return NOTHING_TO_READ
            self._last_error = exc
            raise TransportError("read_failed", os_reason(exc), {"errno": exc.errno}) from exc
        except OSError as exc:
            self._last_error = exc
            raise TransportError("read_failed", os_reason(exc), {"errno": exc.errno}) from exc

        text = chunk.decode(self._encoding, errors="replace").strip()
        if not text:
            return NOTHING_TO_READ
        return text

    def read_to_end(self, flatten: bool = False) -> Union[List[str], str]:
        """Read until NOTHING_TO_READ.

        Returns the lines in arrival order, or one newline-joined string when
        flatten is true. TransportError from read() propagates and the partial
        result is dropped.
        """
        lines: List[str] = []
        while True:
            line = self.read()
            if line is NOTHING_TO_READ:
                break
            lines.append(line)  # type: ignore[arg-type]
        if flatten:
            return "\n".join(lines)
        return lines

    # -------------------------
    # writing
    # -------------------------

    def write(self, message: Union[str, bytes]) -> int:
        """Send message with a single send() call; returns the bytes the OS accepted."""
        data = self._encode(message)
        sock = self._require_socket("write")
        try:
            sock.settimeout(float(self._write_timeout))
            return int(sock.send(data))
        except OSError as exc:
            self._last_error = exc
            raise TransportError("write_failed", os_reason(exc), {"errno": exc.errno}) from exc

    def writeln(self, message: Union[str, bytes]) -> int:
        if isinstance(message, (bytes, bytearray)):
            return self.write(bytes(message) + EOL.encode("ascii"))
        return self.write(message + EOL)

    def _encode(self, message: Union[str, bytes]) -> bytes:
        if isinstance(message, (bytes, bytearray)):
            return bytes(message)
        if not isinstance(message, str):
            raise TypeError("message must be str or bytes")
        try:
            return message.encode(self._encoding)
        except UnicodeEncodeError as exc:
            raise ValidationError(
                "unencodable",
                f"message cannot be encoded as {self._encoding}",
                {"position": exc.start},
            ) from exc

    # -------------------------
    # configuration
    # -------------------------

    def set_read_timeout(self, seconds: int) -> "Connection":
        self._read_timeout = require_positive_int("read timeout", seconds)
        return self

    def get_read_timeout(self) -> int:
        return self._read_timeout

    def set_write_timeout(self, seconds: int) -> "Connection":
        self._write_timeout = require_positive_int("write timeout", seconds)
        return self

    def get_write_timeout(self) -> int:
        return self._write_timeout

    def set_buffer_size(self, nbytes: int) -> "Connection":
        self._buffer_size = require_positive_int("buffer size", nbytes)
        return self

    def get_buffer_size(self) -> int:
        return self._buffer_size

    @property
    def read_timeout(self) -> int:
        return self._read_timeout

    @property
    def write_timeout(self) -> int:
        return self._write_timeout

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def encoding(self) -> str:
        return self._encoding

    # -------------------------
    # introspection
    # -------------------------

    @property
    def sock(self) -> Optional[socket.socket]:
        return self._sock

    @property
    def state(self) -> ConnState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnState.CONNECTED

    def last_error_description(self) -> Optional[str]:
        """Describe the pending socket error, else the last OS error seen, else None."""
        if self._sock is not None:
            try:
                code = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            except OSError:
                code = 0
            if code:
                return os.strerror(code)
        if self._last_error is not None:
            return os_reason(self._last_error)
        return None

    def _require_socket(self, op: str) -> socket.socket:
        if self._sock is None:
            raise TransportError("not_connected", f"cannot {op}: connection is {self._state.value}")
        return self._sock

    def _peer_str(self) -> Optional[str]:
        if self._peer is None:
            return None
        return f"tcp://{self._peer[0]}:{self._peer[1]}"

    def __repr__(self) -> str:
        return f"Connection(state={self._state.value}, peer={self._peer_str()!r})"
