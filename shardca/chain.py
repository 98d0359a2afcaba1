"""
Chain verification.

Certificates never hold references to their issuers. Trust is re-derived
from the stored PEM files every time: starting at a certificate, find
the authority whose subject matches its issuer and whose key verifies
its signature, and repeat until a self-signed root is reached.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from cryptography import x509

from shardca import certs
from shardca.errors import ChainVerificationFailed, ParentCertificateUnreadable

logger = logging.getLogger(__name__)


def _load(path: str | Path) -> x509.Certificate:
    try:
        return certs.load_certificate(path)
    except ParentCertificateUnreadable as e:
        raise ChainVerificationFailed(str(e)) from e


def _describe(cert: x509.Certificate) -> str:
    return f"{cert.subject.rfc4514_string()} (serial {cert.serial_number:x})"


def _find_issuer(cert: x509.Certificate, pool: Sequence[x509.Certificate]) -> Optional[x509.Certificate]:
    for candidate in pool:
        if candidate.subject == cert.issuer and certs.verify_signature(cert, candidate):
            return candidate
    return None


def verify_chain(
    cert_path: str | Path,
    authority_paths: Sequence[str | Path],
    at: Optional[datetime] = None,
) -> list[x509.Certificate]:
    """
    Verify that a certificate chains up to a self-signed root.

    The root must be among *authority_paths*; being self-signed is what
    ends the walk, so callers decide which roots they trust by what they
    pass in.

    Args:
        cert_path: The certificate to verify (leaf or CA).
        authority_paths: Candidate issuer certificates, including the root.
        at: Time to check validity at (default: now).

    Returns:
        The chain from *cert_path* up to the root.

    Raises:
        ChainVerificationFailed: On a missing issuer, a bad signature, a
            non-CA issuer, an exceeded path length or an expired certificate.
    """
    at = at or datetime.now(timezone.utc)
    cert = _load(cert_path)
    pool = [_load(p) for p in authority_paths]

    chain = [cert]
    while True:
        current = chain[-1]
        if not current.not_valid_before_utc <= at <= current.not_valid_after_utc:
            raise ChainVerificationFailed(f"{_describe(current)} is not valid at {at.isoformat()}")

        if current.issuer == current.subject and certs.verify_signature(current, current):
            if len(chain) > 1 or current in pool:
                break
            raise ChainVerificationFailed(f"{_describe(current)} is self-signed but not a trusted authority")

        issuer = _find_issuer(current, pool)
        if issuer is None:
            raise ChainVerificationFailed(f"No trusted issuer found for {_describe(current)}")
        if issuer in chain:
            raise ChainVerificationFailed(f"Issuer loop at {_describe(issuer)}")

        constraints = certs.basic_constraints(issuer)
        if constraints is None or not constraints.ca:
            raise ChainVerificationFailed(f"Issuer {_describe(issuer)} is not a CA")
        # Intermediates between this issuer and the starting certificate
        intermediates = len(chain) - 1
        if constraints.path_length is not None and intermediates > constraints.path_length:
            raise ChainVerificationFailed(
                f"Path length {constraints.path_length} of {_describe(issuer)} exceeded"
            )
        chain.append(issuer)

    logger.debug("Verified chain of %d certificate(s) for %s", len(chain), cert_path)
    return chain
