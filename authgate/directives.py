"""
authgate.directives
~~~~~~~~~~~~~~~~~~~
Parser for the gate configuration file (``Gatefile``):

    # comment
    gate {
        manifest users.json
        path     /secret
        path     /admin
        authenticated GET HEAD
        group    admins GET POST
    }

Any number of ``gate`` blocks may follow each other; they are returned in
file order.  Manifests referenced more than once are loaded once.
"""

from __future__ import annotations

import pathlib
import shlex
from dataclasses import dataclass
from typing import Iterator

from .acls import Rule, rule_from_tokens
from .engine import ConfigBlock
from .errors import ConfigurationError
from .manifest import Manifest, load_manifest

BLOCK_NAME = "gate"
_RULE_KINDS = ("authenticated", "group")


@dataclass(slots=True)
class _Line:
    no: int
    tokens: list[str]


def _lines(text: str, source: str | None) -> Iterator[_Line]:
    for no, raw in enumerate(text.splitlines(), start=1):
        try:
            tokens = shlex.split(raw, comments=True)
        except ValueError as e:
            raise ConfigurationError(str(e), source=source, line=no) from None
        if tokens:
            yield _Line(no, tokens)


class _Parser:
    def __init__(self, text: str, base_dir: pathlib.Path, source: str | None) -> None:
        self.lines = _lines(text, source)
        self.base_dir = base_dir
        self.source = source
        self._manifests: dict[pathlib.Path, Manifest] = {}

    def err(self, msg: str, line: _Line | None = None) -> ConfigurationError:
        return ConfigurationError(msg, source=self.source, line=line.no if line else None)

    def parse(self) -> list[ConfigBlock]:
        blocks = []
        for line in self.lines:
            head, *rest = line.tokens
            if head != BLOCK_NAME:
                raise self.err(f"expected {BLOCK_NAME!r}, got {head!r}", line)
            if rest != ["{"]:
                raise self.err(f"{BLOCK_NAME!r} takes no arguments and must open a block", line)
            blocks.append(self._block(line))
        return blocks

    def _block(self, opening: _Line) -> ConfigBlock:
        manifest: Manifest | None = None
        paths: list[str] = []
        rules: list[Rule] = []

        for line in self.lines:
            name, *args = line.tokens
            if name == "}":
                if args:
                    raise self.err("unexpected tokens after '}'", line)
                if manifest is None:
                    raise self.err("block has no manifest", opening)
                return ConfigBlock(manifest=manifest, protected_paths=paths, rules=rules)

            if name == "manifest":
                if len(args) != 1:
                    raise self.err("manifest takes exactly one argument", line)
                if manifest is not None:
                    raise self.err("duplicate manifest directive", line)
                manifest = self._manifest(args[0], line)
            elif name == "path":
                if len(args) != 1:
                    raise self.err("path takes exactly one argument", line)
                paths.append(args[0])
            elif name in _RULE_KINDS:
                try:
                    rules.append(rule_from_tokens(name, args))
                except ConfigurationError as e:
                    raise self.err(str(e), line) from None
            else:
                raise self.err(f"unknown directive {name!r}", line)

        raise self.err("unterminated block, missing '}'", opening)

    def _manifest(self, value: str, line: _Line) -> Manifest:
        path = pathlib.Path(value)
        if not path.is_absolute():
            path = self.base_dir / path
        path = path.resolve()
        if path not in self._manifests:
            self._manifests[path] = load_manifest(path)
        return self._manifests[path]


def parse_config_blocks(
    text: str,
    base_dir: str | pathlib.Path | None = None,
    source: str | None = None,
) -> list[ConfigBlock]:
    """Parse directive *text*; relative manifest paths resolve against *base_dir* (default: cwd)."""
    base = pathlib.Path(base_dir) if base_dir is not None else pathlib.Path.cwd()
    return _Parser(text, base, source).parse()


def load_config_blocks(path: str | pathlib.Path) -> list[ConfigBlock]:
    path = pathlib.Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read config: {e.strerror or e}", source=str(path)) from e
    return parse_config_blocks(text, base_dir=path.parent, source=str(path))
