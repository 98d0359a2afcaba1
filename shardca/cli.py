"""
Command-line front-end.

Collects flags into one IssuanceConfig and hands it to the workflow.
No state lives here between commands.

    shardca create-root  --cn Root --n 3 --t 2 --shares-out a,b,c --pem-out root.pem
    shardca create-subca --cn Sub --parent-pem root.pem --parent-shares-in a,b \\
                         --n 3 --t 2 --shares-out d,e,f --pem-out sub.pem
    shardca sign         --cn host --ca-pem sub.pem --shares-in d,e \\
                         --cert-out host.pem --key-out host.key --digital-signature
    shardca verify       host.pem --chain sub.pem,root.pem
"""

from __future__ import annotations

import argparse
import logging
import sys

from shardca import __version__, chain, issuance, keyusage
from shardca.config import (
    DEFAULT_DAYS,
    DEFAULT_NUM_SHARES,
    DEFAULT_ROOT_PATH_LENGTH,
    DEFAULT_THRESHOLD,
    LOG_LEVEL,
    IssuanceConfig,
    Subject,
    parse_path_list,
)
from shardca.errors import ShardCAError

logger = logging.getLogger(__name__)


def _add_subject_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--cn", default="", help="Common Name")
    p.add_argument("--org", default="", help="Organization Name")
    p.add_argument("--ou", default="", help="Organizational Unit")
    p.add_argument("--locality", default="", help="Locality (City)")
    p.add_argument("--province", default="", help="Province or State")
    p.add_argument("--country", default="", help="Country (2-letter code)")
    p.add_argument("--days", type=int, default=DEFAULT_DAYS, help="Validity period (in days)")


def _add_split_flags(p: argparse.ArgumentParser, what: str) -> None:
    p.add_argument("--n", type=int, default=DEFAULT_NUM_SHARES, help=f"Number of total key shares for the {what}")
    p.add_argument("--t", type=int, default=DEFAULT_THRESHOLD,
                   help="Threshold (quorum) number of shares required to recover the key")
    p.add_argument("--shares-out", default="",
                   help="Comma-separated list of file paths for the key shares (must match n)")
    p.add_argument("--allow-single-share", action="store_true",
                   help="Permit t=1, which leaves every share a plaintext copy of the key")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shardca",
        description="A small PKI whose CA keys only ever exist on disk as Shamir shares.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-root", help="Create a root CA, split its key, write certificate and shares")
    _add_subject_flags(p)
    _add_split_flags(p, "root CA")
    p.add_argument("--pem-out", required=True, help="File path for the root CA certificate (PEM)")
    p.add_argument("--path-length", type=int, default=DEFAULT_ROOT_PATH_LENGTH,
                   help="How many sub-CA levels the root may sign (-1 for unlimited)")
    p.set_defaults(func=cmd_create_root)

    p = sub.add_parser("create-subca", help="Create a sub-CA signed by a parent CA rebuilt from its shares")
    _add_subject_flags(p)
    _add_split_flags(p, "sub-CA")
    p.add_argument("--issuing", action="store_true", help="Mark this sub-CA as an issuing CA (informational)")
    p.add_argument("--parent-pem", required=True, help="File path to the parent CA certificate (PEM)")
    p.add_argument("--parent-shares-in", required=True, help="Comma-separated list of parent CA key share files")
    p.add_argument("--pem-out", required=True, help="File path for the sub-CA certificate (PEM)")
    p.set_defaults(func=cmd_create_subca)

    p = sub.add_parser("sign", help="Sign a leaf certificate with a CA rebuilt from its shares")
    _add_subject_flags(p)
    p.add_argument("--ca-pem", required=True, help="File path to the signing CA certificate (PEM)")
    p.add_argument("--shares-in", required=True, help="Comma-separated list of the signing CA's key share files")
    p.add_argument("--cert-out", required=True, help="File path for the signed leaf certificate (PEM)")
    p.add_argument("--key-out", default="", help="File path to store the new leaf private key (PEM)")
    for name in keyusage.FLAG_NAMES:
        p.add_argument(f"--{name}", action="append_const", const=name, dest="usages",
                       help=f"Set the {name} key usage bit")
    p.set_defaults(func=cmd_sign, usages=None)

    p = sub.add_parser("verify", help="Verify a certificate against stored CA certificates")
    p.add_argument("cert", help="Certificate to verify (PEM)")
    p.add_argument("--chain", required=True, help="Comma-separated list of CA certificates, including the root")
    p.set_defaults(func=cmd_verify)

    return parser


def _subject(args) -> Subject:
    return Subject(
        common_name=args.cn,
        organization=args.org,
        organizational_unit=args.ou,
        locality=args.locality,
        province=args.province,
        country=args.country,
    )


def cmd_create_root(args) -> int:
    config = IssuanceConfig(
        subject=_subject(args),
        cert_path=args.pem_out,
        days=args.days,
        n=args.n,
        t=args.t,
        share_paths=parse_path_list(args.shares_out),
        path_length=None if args.path_length < 0 else args.path_length,
        allow_single_share=args.allow_single_share,
    )
    result = issuance.issue_root(config)
    print(f"Root CA created!\n - Certificate: {result.certificate}\n - {len(result.share_paths)} shares written.")
    return 0


def cmd_create_subca(args) -> int:
    config = IssuanceConfig(
        subject=_subject(args),
        cert_path=args.pem_out,
        days=args.days,
        n=args.n,
        t=args.t,
        share_paths=parse_path_list(args.shares_out),
        parent_cert_path=args.parent_pem,
        parent_share_paths=parse_path_list(args.parent_shares_in),
        allow_single_share=args.allow_single_share,
        issuing=args.issuing,
    )
    result = issuance.issue_subordinate(config)
    print(
        f"SubCA created!\n - Cert: {result.certificate}\n - Issuing: {args.issuing}\n"
        f" - {len(result.share_paths)} shares written."
    )
    return 0


def cmd_sign(args) -> int:
    config = IssuanceConfig(
        subject=_subject(args),
        cert_path=args.cert_out,
        days=args.days,
        parent_cert_path=args.ca_pem,
        parent_share_paths=parse_path_list(args.shares_in),
        key_usage=keyusage.from_names(args.usages or []),
        key_path=args.key_out or None,
    )
    result = issuance.issue_leaf(config)
    print(f"Signed certificate written to {result.certificate}")
    if config.key_usage:
        print(f" - Key usage: {', '.join(keyusage.to_names(config.key_usage))}")
    if result.key_path:
        print(f"Leaf private key written to {result.key_path}")
    return 0


def cmd_verify(args) -> int:
    verified = chain.verify_chain(args.cert, parse_path_list(args.chain))
    print(f"OK: {args.cert}")
    for cert in verified:
        print(f" - {cert.subject.rfc4514_string()}")
    return 0


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, LOG_LEVEL, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return args.func(args)
    except ShardCAError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
