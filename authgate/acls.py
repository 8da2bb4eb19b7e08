"""
authgate.acls
~~~~~~~~~~~~~
Rule engine for per-method access.  Two kinds of rule exist:

    authenticated GET HEAD      any user with valid credentials
    group admins GET POST       members of "admins" only

A rule with no methods never matches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Iterable, Sequence, Union

from .errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class Authenticated:
    methods: frozenset[str]


@dataclass(frozen=True, slots=True)
class GroupMember:
    group: str
    methods: frozenset[str]


Rule = Union[Authenticated, GroupMember]


def authenticated(*methods: str) -> Authenticated:
    return Authenticated(frozenset(methods))


def group_member(group: str, *methods: str) -> GroupMember:
    return GroupMember(group, frozenset(methods))


def rule_from_tokens(kind: str, args: Sequence[str]) -> Rule:
    """Build a rule from a directive name and its arguments."""
    if kind == "authenticated":
        return authenticated(*args)
    if kind == "group":
        if not args:
            raise ConfigurationError("group rule needs a group name")
        return group_member(args[0], *args[1:])
    raise ConfigurationError(f"unknown rule kind {kind!r}")


def authorize(method: str, user_groups: AbstractSet[str], rules: Iterable[Rule]) -> bool:
    """Return True if any rule grants *method* to a user in *user_groups*."""
    matched = False
    for rule in rules:
        if method not in rule.methods:
            continue

        match rule:
            case Authenticated():
                # keep scanning; the result is an OR over all rules
                matched = True
            case GroupMember(group=group):
                if group in user_groups:
                    return True
    return matched
