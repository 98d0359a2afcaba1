"""Configuration for ShardCA: defaults and the per-invocation request."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from shardca.keyusage import DEFAULT_CA_USAGE, KeyUsage

# ---------- Issuance defaults (overridable from the environment) ----------
DEFAULT_DAYS = int(os.environ.get("SHARDCA_DEFAULT_DAYS", "365"))
DEFAULT_NUM_SHARES = 3   # N
DEFAULT_THRESHOLD = 2    # T

# Root CAs may sign one level of sub-CAs by default; each level down
# reduces the limit by one.
DEFAULT_ROOT_PATH_LENGTH = 1

# ---------- Output file modes ----------
CERT_FILE_MODE = 0o644
SECRET_FILE_MODE = 0o600   # shares and exported keys

# ---------- Logging ----------
LOG_LEVEL = os.environ.get("SHARDCA_LOG_LEVEL", "WARNING").upper()


@dataclass(frozen=True)
class Subject:
    """Subject identity fields. Only the common name is required."""
    common_name: str
    organization: str = ""
    organizational_unit: str = ""
    locality: str = ""
    province: str = ""
    country: str = ""


@dataclass(frozen=True)
class IssuanceConfig:
    """
    Everything one issuance needs, collected up front.

    The front-ends build one of these and pass it to a single workflow
    call; nothing else carries state between invocations.

    Fields used by each operation:
        issue_root:        subject, days, n, t, share_paths, cert_path, path_length
        issue_subordinate: the above plus parent_cert_path, parent_share_paths
        issue_leaf:        subject, days, cert_path, parent_cert_path,
                           parent_share_paths, key_usage, key_path
    """
    subject: Subject
    cert_path: str
    days: int = DEFAULT_DAYS
    n: int = DEFAULT_NUM_SHARES
    t: int = DEFAULT_THRESHOLD
    share_paths: Tuple[str, ...] = ()
    parent_cert_path: Optional[str] = None
    parent_share_paths: Tuple[str, ...] = ()
    key_usage: KeyUsage = DEFAULT_CA_USAGE
    key_path: Optional[str] = None
    path_length: Optional[int] = DEFAULT_ROOT_PATH_LENGTH
    allow_single_share: bool = False
    # Informational only; marks a sub-CA meant to sign leaves
    issuing: bool = False

    def __post_init__(self):
        # Freeze list inputs so the request cannot change mid-operation
        object.__setattr__(self, "share_paths", tuple(self.share_paths))
        object.__setattr__(self, "parent_share_paths", tuple(self.parent_share_paths))


def parse_path_list(value: str) -> list[str]:
    """Split "a.txt, b.txt" into ["a.txt", "b.txt"], dropping empty entries."""
    if not value or not value.strip():
        return []
    return [p.strip() for p in value.split(",") if p.strip()]
