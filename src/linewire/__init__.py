# src/linewire/__init__.py
"""
linewire: client-side transport for line-oriented TCP text protocols

  - connection: Connection (connect / read / read_to_end / write / writeln)
  - errors: ConnectError, TransportError, ValidationError
  - config: ConnectionConfig + file/env loading
  - net_logging: JSONL logging helpers
  - cli: linewire-probe command

No telnet option negotiation, no TLS, no pooling: a raw CRLF line client.
"""

from __future__ import annotations

from linewire.config import ConnectionConfig, load_connection_config
from linewire.connection import EOL, NOTHING_TO_READ, Connection, ConnState
from linewire.errors import ConnectError, LinewireError, TransportError, ValidationError

__version__ = "0.1.0"

__all__ = [
    "Connection",
    "ConnState",
    "ConnectionConfig",
    "load_connection_config",
    "EOL",
    "NOTHING_TO_READ",
    "LinewireError",
    "ConnectError",
    "TransportError",
    "ValidationError",
]
