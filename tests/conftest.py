"""
Shared pytest fixtures for the gate test suite.

Responsibilities:
    - Provide the two-user manifest used across unit and end-to-end tests
    - Provide a helper that writes manifests and Gatefiles into tmp_path
"""

import base64
import json

import pytest

from authgate.auth import Credentials
from authgate.manifest import Manifest


@pytest.fixture
def manifest() -> Manifest:
    return Manifest.from_mapping(
        users={"alice": "pw1", "bob": "pw2"},
        groups={"admins": ["alice"], "staff": ["alice", "bob"]},
    )


@pytest.fixture
def alice() -> Credentials:
    return Credentials("alice", "pw1")


@pytest.fixture
def write_manifest(tmp_path):
    """Write a manifest document to tmp_path and return its path."""

    def _write(name: str, users: dict, groups: dict | None = None):
        path = tmp_path / name
        path.write_text(json.dumps({"users": users, "groups": groups or {}}), encoding="utf-8")
        return path

    return _write


def basic_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"
