"""
authgate.manifest
~~~~~~~~~~~~~~~~~
User/group manifest.  A manifest is a JSON document:

    {
      "users":  {"alice": "pw1", "bob": "pw2"},
      "groups": {"admins": ["alice"], "staff": ["alice", "bob"]}
    }

The user -> groups index is built once when the manifest is created and
never changes afterwards.
"""

from __future__ import annotations

import json
import pathlib
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .errors import ConfigurationError

_NO_GROUPS: frozenset[str] = frozenset()


def build_user_to_groups(groups: Mapping[str, Iterable[str]]) -> Mapping[str, frozenset[str]]:
    """Transpose a group -> users mapping into user -> groups."""
    index: dict[str, set[str]] = {}
    for group, users in groups.items():
        for user in users:
            index.setdefault(user, set()).add(group)
    return MappingProxyType({user: frozenset(gs) for user, gs in index.items()})


@dataclass(frozen=True, slots=True)
class Manifest:
    users: Mapping[str, str]
    groups: Mapping[str, tuple[str, ...]]
    user_to_groups: Mapping[str, frozenset[str]]

    @classmethod
    def from_mapping(
        cls,
        users: Mapping[str, str] | None = None,
        groups: Mapping[str, Iterable[str]] | None = None,
    ) -> "Manifest":
        users = dict(users or {})
        groups = {name: tuple(members) for name, members in (groups or {}).items()}
        _check_types(users, groups)
        return cls(
            users=MappingProxyType(users),
            groups=MappingProxyType(groups),
            user_to_groups=build_user_to_groups(groups),
        )

    def password_for(self, username: str) -> str | None:
        return self.users.get(username)

    def groups_of(self, username: str) -> frozenset[str]:
        return self.user_to_groups.get(username, _NO_GROUPS)


def _check_types(users: dict[Any, Any], groups: dict[Any, tuple[Any, ...]]) -> None:
    for name, pwd in users.items():
        if not isinstance(name, str) or not isinstance(pwd, str):
            raise ConfigurationError(f"user entry {name!r} must map a name to a password string")
    for name, members in groups.items():
        if not isinstance(name, str):
            raise ConfigurationError(f"group name {name!r} must be a string")
        for member in members:
            if not isinstance(member, str):
                raise ConfigurationError(f"group {name!r} lists non-string member {member!r}")


def parse_manifest(document: str | bytes, *, source: str | None = None) -> Manifest:
    try:
        data = json.loads(document)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"invalid manifest JSON: {e}", source=source) from e

    if not isinstance(data, dict):
        raise ConfigurationError("manifest must be a JSON object", source=source)

    users = data.get("users")
    users = {} if users is None else users
    groups = data.get("groups")
    groups = {} if groups is None else groups
    if not isinstance(users, dict):
        raise ConfigurationError('"users" must be an object', source=source)
    if not isinstance(groups, dict):
        raise ConfigurationError('"groups" must be an object', source=source)
    for name, members in groups.items():
        # a bare string would otherwise be iterated character by character
        if not isinstance(members, list):
            raise ConfigurationError(f"group {name!r} must be a list of usernames", source=source)

    try:
        return Manifest.from_mapping(users, groups)
    except ConfigurationError as e:
        raise ConfigurationError(str(e), source=source) from None


def load_manifest(path: str | pathlib.Path) -> Manifest:
    path = pathlib.Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ConfigurationError(f"cannot read manifest: {e.strerror or e}", source=str(path)) from e
    return parse_manifest(raw, source=str(path))
