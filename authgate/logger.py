"""
authgate.logger
~~~~~~~~~~~~~~~
Human-readable console lines *and* JSON-lines file with daily rotation.
Denial reasons are written here only, never to the client.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

_ISO = "%Y-%m-%dT%H:%M:%SZ"

def _now() -> str:  # RFC-3339 without microseconds
    return datetime.now(tz=timezone.utc).strftime(_ISO)


class _PlainFormatter(logging.Formatter):
    """ e.g. 2025-06-19T15:07:02Z alice 127.0.0.1 GET /secret DENIED invalid credentials """

    def format(self, record):  # type: ignore[override]
        if not isinstance(record.msg, dict):
            return super().format(record)
        d: Dict[str, Any] = record.msg

        parts = [
            d.get("ts", _now()),
            d.get("user", "-"),
            d.get("ip", "-"),
            d.get("method", "-"),
            d.get("path", "-"),
        ]
        event = d.get("event")
        if event == "deny":
            parts.extend(["DENIED", d.get("reason", "")])
        elif event == "allow":
            parts.append("ALLOWED")
        elif event == "error":
            parts.extend(["ERROR", d.get("detail", "")])
        else:  # end
            parts.extend(
                [
                    str(d.get("status", "-")),
                    f'{d.get("bytes", 0):,}B',
                    f'{d.get("ms", 0)} ms',
                ]
            )
        return " ".join(parts)


class _JSONFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        if isinstance(record.msg, dict):
            return json.dumps(record.msg, separators=(",", ":"))
        return json.dumps({"event": "log", "ts": _now(), "msg": record.getMessage()})


class GateLogger:
    def __init__(self, basename: str | Path, console: bool = True):
        root = logging.getLogger("authgate")
        root.setLevel(logging.INFO)
        root.propagate = False  # don't spam the root logger
        for old in list(root.handlers):
            root.removeHandler(old)
            old.close()

        basename = Path(basename).with_suffix("")  # gate
        jsonl_file = basename.with_suffix(".jsonl")

        # json lines
        h = logging.handlers.TimedRotatingFileHandler(
            jsonl_file, when="midnight", backupCount=7, encoding="utf-8"
        )
        h.setFormatter(_JSONFormatter())
        root.addHandler(h)

        if console:
            c = logging.StreamHandler()
            c.setFormatter(_PlainFormatter())
            root.addHandler(c)

        self.log = root
        self.jsonl_file = jsonl_file

    def allow(self, user: str, ip: str, method: str, path: str):
        self.log.info(
            {
                "event": "allow",
                "ts": _now(),
                "user": user,
                "ip": ip,
                "method": method,
                "path": path,
            }
        )

    def deny(self, user: str, ip: str, method: str, path: str, reason: str, block: int | None = None):
        self.log.warning(
            {
                "event": "deny",
                "ts": _now(),
                "user": user,
                "ip": ip,
                "method": method,
                "path": path,
                "reason": reason,
                "block": block,
            }
        )

    def end(
        self,
        user: str,
        method: str,
        path: str,
        status: int,
        total_bytes: int,
        duration_ms: int,
    ):
        self.log.info(
            {
                "event": "end",
                "ts": _now(),
                "user": user,
                "method": method,
                "path": path,
                "status": status,
                "bytes": total_bytes,
                "ms": duration_ms,
            }
        )

    def error(self, ip: str, method: str, path: str, status: int, detail: str):
        self.log.error(
            {
                "event": "error",
                "ts": _now(),
                "ip": ip,
                "method": method,
                "path": path,
                "status": status,
                "detail": detail,
            }
        )

    def close(self) -> None:
        for h in list(self.log.handlers):
            self.log.removeHandler(h)
            h.close()
