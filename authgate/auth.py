"""
authgate.auth
~~~~~~~~~~~~~
Basic-Auth header decoding and constant-time password checks.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Mapping


class AuthError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


def verify(stored: str, supplied: str) -> bool:
    """True iff *supplied* equals *stored*, in time independent of their contents.

    Both sides are hashed to fixed-length digests first so a length
    mismatch is compared just like any other mismatch.
    """
    a = stored.encode("utf-8")
    b = supplied.encode("utf-8")
    same_digest = hmac.compare_digest(hashlib.sha256(a).digest(), hashlib.sha256(b).digest())
    same_length = len(a) == len(b)
    return same_digest & same_length


def parse_basic(header_val: str) -> Credentials:
    scheme, _, token = header_val.strip().partition(" ")
    if scheme.lower() != "basic":
        raise AuthError("Unsupported auth scheme")
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise AuthError("Bad Base64") from e
    if ":" not in decoded:
        raise AuthError("Missing ':' in credentials")
    username, password = decoded.split(":", 1)
    return Credentials(username=username, password=password)


def credentials_from_headers(headers: Mapping[str, str]) -> Credentials | None:
    """Credentials from a lower-cased header mapping, or None if absent/malformed."""
    auth_hdr = headers.get("authorization")
    if not auth_hdr:
        return None
    try:
        return parse_basic(auth_hdr)
    except AuthError:
        return None
