"""
authgate.engine
~~~~~~~~~~~~~~~
The allow/deny decision.  Blocks are checked in declared order; a block
whose paths do not cover the request is skipped, every other block must
accept the request, and the first block that refuses decides the verdict.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence
from urllib.parse import unquote, urlsplit

from .acls import Rule, authorize
from .auth import Credentials, credentials_from_headers, verify
from .manifest import Manifest
from .paths import PathMatcher, PrefixMatcher, is_protected

DEFAULT_REALM = "Restricted"


@dataclass(frozen=True, slots=True)
class ConfigBlock:
    manifest: Manifest
    protected_paths: tuple[str, ...] = ()
    rules: tuple[Rule, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "protected_paths", tuple(self.protected_paths))
        object.__setattr__(self, "rules", tuple(self.rules))


@dataclass(frozen=True, slots=True)
class GateRequest:
    method: str
    path: str
    credentials: Credentials | None = None

    @classmethod
    def from_head(cls, method: str, target: str, headers: Mapping[str, str]) -> "GateRequest":
        """Build from a request line target (origin or absolute form) and lower-cased headers."""
        if target.startswith("/"):
            # origin-form; urlsplit would read a leading "//" as a netloc
            raw = target.split("?", 1)[0].split("#", 1)[0]
        else:
            raw = urlsplit(target).path
        path = unquote(raw) or "/"
        return cls(method=method, path=path, credentials=credentials_from_headers(headers))


class DenialReason(enum.Enum):
    MISSING_CREDENTIALS = "missing credentials"
    INVALID_CREDENTIALS = "invalid credentials"
    NO_MATCHING_RULE = "no matching rule"


class State(enum.Enum):
    ALLOWED = enum.auto()
    DENIED = enum.auto()


@dataclass(frozen=True, slots=True)
class Verdict:
    allowed: bool
    reason: DenialReason | None = None
    realm: str = DEFAULT_REALM
    # index of the block that refused the request
    block: int | None = field(default=None, compare=False)

    @property
    def state(self) -> State:
        return State.ALLOWED if self.allowed else State.DENIED

    @property
    def status(self) -> int:
        return 200 if self.allowed else 401

    def challenge_headers(self) -> dict[str, str]:
        if self.allowed:
            return {}
        return {"WWW-Authenticate": f'Basic realm="{self.realm}"'}


class AuthDecisionEngine:
    def __init__(
        self,
        blocks: Iterable[ConfigBlock],
        matcher: PathMatcher | None = None,
        realm: str = DEFAULT_REALM,
    ) -> None:
        self.blocks: tuple[ConfigBlock, ...] = tuple(blocks)
        self.matcher = matcher or PrefixMatcher()
        self.realm = _clean_realm(realm)

    def decide(self, request: GateRequest) -> Verdict:
        creds = request.credentials
        for idx, block in enumerate(self.blocks):
            if not is_protected(request.path, block.protected_paths, self.matcher):
                continue

            if creds is None:
                return self._deny(DenialReason.MISSING_CREDENTIALS, idx)
            stored = block.manifest.password_for(creds.username)
            if stored is None or not verify(stored, creds.password):
                return self._deny(DenialReason.INVALID_CREDENTIALS, idx)

            groups = block.manifest.groups_of(creds.username)
            if not authorize(request.method, groups, block.rules):
                return self._deny(DenialReason.NO_MATCHING_RULE, idx)

        return Verdict(allowed=True, realm=self.realm)

    def _deny(self, reason: DenialReason, block: int) -> Verdict:
        return Verdict(allowed=False, reason=reason, realm=self.realm, block=block)


def decide(
    request: GateRequest,
    blocks: Sequence[ConfigBlock],
    matcher: PathMatcher | None = None,
    realm: str = DEFAULT_REALM,
) -> Verdict:
    return AuthDecisionEngine(blocks, matcher=matcher, realm=realm).decide(request)


def _clean_realm(realm: str) -> str:
    """Realm safe to place inside a quoted header value."""
    realm = "".join(c for c in realm if c.isprintable()).replace('"', "'")
    return realm.encode("latin-1", "replace").decode("latin-1")
