"""
ShardCA — A PKI Without Whole Keys
Issue root, intermediate and leaf certificates while CA private keys
exist on disk only as Shamir shares.

Two layers:
1. Shamir engine — byte-wise secret sharing over GF(2^8) (the math)
2. Issuance — root → sub-CA → leaf, with parent keys rebuilt from a
   quorum of shares only for the one signature they are needed for

Usage:
    from shardca import IssuanceConfig, Subject, issue_root
    issue_root(IssuanceConfig(
        subject=Subject(common_name="Example Root"),
        cert_path="root.pem",
        n=3, t=2,
        share_paths=["root.1", "root.2", "root.3"],
    ))
"""

__version__ = "0.1.0"

from shardca.shamir import split as shamir_split, combine as shamir_combine, Share
from shardca.keyusage import KeyUsage
from shardca.config import IssuanceConfig, Subject
from shardca.issuance import issue_root, issue_subordinate, issue_leaf, IssuanceResult
from shardca.chain import verify_chain
from shardca.errors import ShardCAError

__all__ = [
    "shamir_split",
    "shamir_combine",
    "Share",
    "KeyUsage",
    "IssuanceConfig",
    "Subject",
    "issue_root",
    "issue_subordinate",
    "issue_leaf",
    "IssuanceResult",
    "verify_chain",
    "ShardCAError",
]
