"""
ShardCA — Basic Usage Example

Builds a three-level PKI in a scratch directory. The root and sub-CA
keys are split 2-of-3 as soon as their certificates exist; each
signature after that rebuilds the signing key from two share files
and forgets it again.
"""

import shutil
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shardca import IssuanceConfig, KeyUsage, Subject, issue_leaf, issue_root, issue_subordinate, verify_chain


def main():
    workdir = Path("./example-pki")
    workdir.mkdir(exist_ok=True)

    print("=" * 50)
    print("  ShardCA — Root → Sub-CA → Leaf")
    print("=" * 50)

    root = issue_root(IssuanceConfig(
        subject=Subject(common_name="Example Root CA", organization="Example", country="US"),
        cert_path=str(workdir / "root.pem"),
        days=3650,
        n=3,
        t=2,
        share_paths=[str(workdir / f"root-share-{i}.txt") for i in range(1, 4)],
    ))
    print(f"\nRoot:   {root.subject} (serial {root.serial_number:x})")
    print(f"        key split into {len(root.share_paths)} shares, any 2 sign")

    # Custodians 1 and 3 show up to sign the sub-CA
    sub = issue_subordinate(IssuanceConfig(
        subject=Subject(common_name="Example Issuing CA", organization="Example", country="US"),
        cert_path=str(workdir / "issuing.pem"),
        days=1825,
        n=3,
        t=2,
        share_paths=[str(workdir / f"issuing-share-{i}.txt") for i in range(1, 4)],
        parent_cert_path=root.certificate,
        parent_share_paths=[root.share_paths[0], root.share_paths[2]],
        issuing=True,
    ))
    print(f"Sub-CA: {sub.subject}, issued by {sub.issuer}")

    leaf = issue_leaf(IssuanceConfig(
        subject=Subject(common_name="www.example.com"),
        cert_path=str(workdir / "www.pem"),
        days=90,
        parent_cert_path=sub.certificate,
        parent_share_paths=sub.share_paths[:2],
        key_usage=KeyUsage.DIGITAL_SIGNATURE | KeyUsage.KEY_ENCIPHERMENT,
        key_path=str(workdir / "www.key"),
    ))
    print(f"Leaf:   {leaf.subject}, valid until {leaf.not_after:%Y-%m-%d}")
    print(f"        private key exported to {leaf.key_path}")

    # Trust is re-derived from the files on disk
    chain = verify_chain(leaf.certificate, [sub.certificate, root.certificate])
    print("\nVerified chain:")
    for cert in chain:
        print(f"  {cert.subject.rfc4514_string()}")

    shutil.rmtree(workdir, ignore_errors=True)
    print("\nCleaned up example files.")


if __name__ == "__main__":
    main()
