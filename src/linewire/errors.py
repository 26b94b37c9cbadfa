# src/linewire/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class LinewireError(Exception):
    """Canonical error type for connection, transport and validation failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ConnectError(LinewireError):
    """The TCP session could not be established (resolution, refusal, timeout)."""


class TransportError(LinewireError):
    """A read or write on an established session failed."""


class ValidationError(LinewireError, ValueError):
    """A configuration value was rejected before touching the socket."""


def os_reason(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return str(exc.strerror)
    text = str(exc)
    return text if text else exc.__class__.__name__
