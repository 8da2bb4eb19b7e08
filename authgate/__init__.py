"""
authgate
~~~~~~~~
HTTP Basic-Auth gate driven by user/group manifests and per-path rules.
"""

from .acls import Authenticated, GroupMember, authorize
from .auth import Credentials, verify
from .engine import AuthDecisionEngine, ConfigBlock, DenialReason, GateRequest, Verdict, decide
from .errors import ConfigurationError
from .manifest import Manifest, build_user_to_groups, load_manifest

__all__ = [
    "AuthDecisionEngine",
    "Authenticated",
    "ConfigBlock",
    "ConfigurationError",
    "Credentials",
    "DenialReason",
    "GateRequest",
    "GroupMember",
    "Manifest",
    "Verdict",
    "authorize",
    "build_user_to_groups",
    "decide",
    "load_manifest",
    "verify",
]
