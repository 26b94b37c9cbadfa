# src/linewire/cli.py
"""
linewire-probe: connect, print the banner, send lines, print each reply.

Usage:
  linewire-probe mail.example.com --port 25 --send "HELO example.org" --send QUIT

Exit codes:
  0 ok
  2 invalid option/config value
  3 connect failed
  4 read/write failed
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence, TextIO

from linewire.config import load_connection_config, validate_connection_config
from linewire.connection import Connection
from linewire.env import load_dotenv_if_present
from linewire.errors import ConnectError, TransportError, ValidationError
from linewire.net_logging import configure_logging, log_event

log = logging.getLogger("linewire.cli")

EXIT_OK = 0
EXIT_INVALID = 2
EXIT_CONNECT = 3
EXIT_TRANSPORT = 4


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="linewire-probe",
        description="Talk to a line-oriented TCP service (SMTP, POP3, ...) one line at a time.",
    )
    p.add_argument("host")
    p.add_argument("--port", type=int, default=None, help="TCP port (default from config, 23)")
    p.add_argument("--send", action="append", default=[], metavar="LINE", help="line to send; repeatable")
    p.add_argument("--read-timeout", type=int, default=None, metavar="S")
    p.add_argument("--write-timeout", type=int, default=None, metavar="S")
    p.add_argument("--buffer-size", type=int, default=None, metavar="B")
    p.add_argument("--config", default=None, help="JSON connection config (else LINEWIRE_CONFIG_PATH)")
    p.add_argument("--no-banner", action="store_true", help="do not wait for a greeting before sending")
    return p


def run(args: argparse.Namespace, out: TextIO) -> int:
    cfg = load_connection_config(config_path=args.config)
    overrides = {
        k: v
        for k, v in (
            ("read_timeout_s", args.read_timeout),
            ("write_timeout_s", args.write_timeout),
            ("buffer_bytes", args.buffer_size),
        )
        if v is not None
    }
    if overrides:
        cfg = replace(cfg, **overrides)
        validate_connection_config(cfg)

    with Connection.from_config(cfg) as conn:
        conn.connect(args.host, args.port)
        log_event(log, "probe_connected", host=args.host, port=args.port or cfg.default_port)

        if not args.no_banner:
            out.write(conn.read_to_end(flatten=True) + "\n")

        for line in args.send:
            sent = conn.writeln(line)
            log_event(log, "probe_sent", bytes=sent)
            out.write(conn.read_to_end(flatten=True) + "\n")

    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None, out: Optional[TextIO] = None) -> int:
    load_dotenv_if_present()
    configure_logging()

    args = build_parser().parse_args(list(argv) if argv is not None else None)
    out = out or sys.stdout
    err = sys.stderr

    try:
        return run(args, out)
    except ValidationError as e:
        err.write(f"invalid: {e.reason}\n")
        return EXIT_INVALID
    except ConnectError as e:
        err.write(f"connect failed: {e.reason}\n")
        return EXIT_CONNECT
    except TransportError as e:
        err.write(f"transport failed: {e.reason}\n")
        return EXIT_TRANSPORT


if __name__ == "__main__":
    raise SystemExit(main())
