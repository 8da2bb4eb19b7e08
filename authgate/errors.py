"""
authgate.errors
~~~~~~~~~~~~~~~
Exceptions shared across the gate.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Malformed manifest, directive file or setting.  Raised at start-up."""

    def __init__(self, msg: str, *, source: str | None = None, line: int | None = None):
        self.source = source
        self.line = line
        where = ""
        if source is not None:
            where = f"{source}:{line}: " if line is not None else f"{source}: "
        elif line is not None:
            where = f"line {line}: "
        super().__init__(where + msg)


class GateError(Exception):
    def __init__(self, status: int, msg: str):
        self.status = status
        self.msg = msg
        super().__init__(f"{status} {msg}")
