"""
Unit tests for authgate.engine.

Covers:
    - block relevance (empty protected paths, unprotected request paths)
    - credential failures (missing, unknown user, bad password)
    - rule failures, including blocks with zero rules
    - fail-fast AND composition across blocks
    - Verdict status and challenge headers
    - GateRequest.from_head
"""

import pytest

from authgate.acls import authenticated, group_member
from authgate.auth import Credentials
from authgate.engine import (
    AuthDecisionEngine,
    ConfigBlock,
    DenialReason,
    GateRequest,
    State,
    Verdict,
    decide,
)
from authgate.manifest import Manifest

from tests.conftest import basic_header


def _req(method="GET", path="/secret", creds=None):
    return GateRequest(method=method, path=path, credentials=creds)


def test_block_without_paths_never_denies(manifest):
    block = ConfigBlock(manifest, protected_paths=(), rules=())
    engine = AuthDecisionEngine([block])
    assert engine.decide(_req()).allowed
    assert engine.decide(_req(creds=Credentials("mallory", "x"))).allowed


def test_unprotected_path_needs_no_credentials(manifest):
    block = ConfigBlock(manifest, ["/secret"], [authenticated("GET")])
    assert decide(_req(path="/public"), [block]).allowed


def test_missing_credentials(manifest):
    block = ConfigBlock(manifest, ["/secret"], [authenticated("GET")])
    verdict = decide(_req(), [block])
    assert not verdict.allowed
    assert verdict.reason is DenialReason.MISSING_CREDENTIALS


@pytest.mark.parametrize("creds", [Credentials("mallory", "pw1"), Credentials("alice", "wrong")])
def test_invalid_credentials(manifest, creds):
    block = ConfigBlock(manifest, ["/secret"], [authenticated("GET")])
    verdict = decide(_req(creds=creds), [block])
    assert verdict.reason is DenialReason.INVALID_CREDENTIALS
    assert verdict.block == 0


def test_zero_rules_deny_valid_users(manifest, alice):
    block = ConfigBlock(manifest, ["/secret"], [])
    verdict = decide(_req(creds=alice), [block])
    assert verdict.reason is DenialReason.NO_MATCHING_RULE


def test_group_rule_uses_manifest_groups(manifest, alice):
    block = ConfigBlock(manifest, ["/secret"], [group_member("admins", "GET")])
    assert decide(_req(creds=alice), [block]).allowed
    verdict = decide(_req(creds=Credentials("bob", "pw2")), [block])
    assert verdict.reason is DenialReason.NO_MATCHING_RULE


def test_first_relevant_denial_wins(manifest, alice):
    other = Manifest.from_mapping(users={"alice": "different"})
    blocks = [
        ConfigBlock(manifest, ["/public"], [authenticated("GET")]),
        ConfigBlock(manifest, ["/secret"], []),
        ConfigBlock(other, ["/secret"], [authenticated("GET")]),
    ]
    verdict = decide(_req(creds=alice), blocks)
    assert verdict.reason is DenialReason.NO_MATCHING_RULE
    assert verdict.block == 1


def test_all_relevant_blocks_must_pass(manifest, alice):
    admins_only = ConfigBlock(manifest, ["/secret"], [group_member("admins", "GET")])
    staff_only = ConfigBlock(manifest, ["/secret"], [group_member("staff", "GET")])
    assert decide(_req(creds=alice), [admins_only, staff_only]).allowed
    verdict = decide(_req(creds=Credentials("bob", "pw2")), [staff_only, admins_only])
    assert verdict.block == 1


def test_verdict_status_and_challenge():
    allowed = Verdict(allowed=True)
    assert allowed.status == 200
    assert allowed.challenge_headers() == {}
    assert allowed.state is State.ALLOWED

    denied = Verdict(allowed=False, reason=DenialReason.INVALID_CREDENTIALS, realm="Vault")
    assert denied.status == 401
    assert denied.challenge_headers() == {"WWW-Authenticate": 'Basic realm="Vault"'}
    assert denied.state is State.DENIED


def test_realm_never_leaks_credentials(manifest):
    block = ConfigBlock(manifest, ["/secret"], [authenticated("GET")])
    engine = AuthDecisionEngine([block], realm="Restricted")
    verdict = engine.decide(_req(creds=Credentials("alice", "hunter2")))
    header = verdict.challenge_headers()["WWW-Authenticate"]
    assert "alice" not in header
    assert "hunter2" not in header


def test_realm_quotes_are_neutralised():
    engine = AuthDecisionEngine([], realm='evil" x="1')
    assert '"' not in engine.realm


def test_realm_control_characters_are_stripped():
    engine = AuthDecisionEngine([], realm="Vault\r\nSet-Cookie: x=1\x00")
    assert engine.realm == "VaultSet-Cookie: x=1"
    header = Verdict(allowed=False, realm=engine.realm).challenge_headers()["WWW-Authenticate"]
    assert "\r" not in header and "\n" not in header


@pytest.mark.parametrize(
    "target, path",
    [
        ("//secret/file.txt", "//secret/file.txt"),
        ("//secret/file.txt?x=//y", "//secret/file.txt"),
        ("/secret#frag", "/secret"),
        ("/a?b=//c", "/a"),
    ],
)
def test_origin_form_target_keeps_whole_path(target, path):
    assert GateRequest.from_head("GET", target, {}).path == path


def test_double_slash_target_is_still_protected(manifest):
    block = ConfigBlock(manifest, ["/secret"], [authenticated("GET")])
    verdict = decide(GateRequest.from_head("GET", "//secret/file.txt", {}), [block])
    assert not verdict.allowed
    assert verdict.reason is DenialReason.MISSING_CREDENTIALS


def test_gate_request_from_head():
    req = GateRequest.from_head(
        "GET",
        "/secret%20stuff/x?y=1",
        {"authorization": basic_header("alice", "pw1")},
    )
    assert req.path == "/secret stuff/x"
    assert req.credentials == Credentials("alice", "pw1")


def test_gate_request_from_absolute_target():
    req = GateRequest.from_head("GET", "http://example.com/secret", {})
    assert req.path == "/secret"
    assert req.credentials is None
