"""
Issuance — Root, Sub-CA and Leaf Certificates
Each operation is one linear pass driven by a single IssuanceConfig.

Flow for a root:
1. Validate the request (subject, n/t, destinations) before any key exists
2. Generate a P-256 key and a self-signed CA certificate
3. Write the certificate
4. Split the private key into n shares and write one per file
5. Drop the key

Flow for a sub-CA or leaf:
1. Validate the request
2. Re-read the parent certificate from disk
3. Combine the parent's shares into its key (scoped, wiped on exit)
4. Generate the new key and have the parent key sign its certificate
5. Leave the scope: the parent key is gone before anything is written
6. Write the certificate, then split the new key (sub-CA) or optionally
   export it in the clear (leaf)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from cryptography import x509

from shardca import certs, custody, keyusage, shamir
from shardca.config import IssuanceConfig
from shardca.errors import (
    InvalidParameters,
    ParentCertificateUnreadable,
    ShareTargetMismatch,
)
from shardca.keyusage import KeyUsage

logger = logging.getLogger(__name__)


@dataclass
class IssuanceResult:
    """What one issuance produced on disk."""
    kind: str                       # "root", "subordinate" or "leaf"
    certificate: str
    serial_number: int
    subject: str
    issuer: str
    not_before: datetime
    not_after: datetime
    share_paths: list[str] = field(default_factory=list)
    key_path: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "certificate": self.certificate,
            "serial_number": f"{self.serial_number:x}",
            "subject": self.subject,
            "issuer": self.issuer,
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "share_paths": list(self.share_paths),
            "key_path": self.key_path,
        }


def _result(kind: str, cert: x509.Certificate, config: IssuanceConfig, share_paths=(), key_path=None) -> IssuanceResult:
    return IssuanceResult(
        kind=kind,
        certificate=config.cert_path,
        serial_number=cert.serial_number,
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        share_paths=list(share_paths),
        key_path=key_path,
    )


def _check_split(config: IssuanceConfig) -> None:
    """Share destinations and threshold, checked before any key is generated."""
    if len(config.share_paths) != config.n:
        raise ShareTargetMismatch(
            f"Number of share files ({len(config.share_paths)}) does not match n={config.n}"
        )
    if not 1 <= config.t <= config.n <= shamir.MAX_SHARES:
        raise InvalidParameters(
            f"Need 1 <= t <= n <= {shamir.MAX_SHARES}, got t={config.t}, n={config.n}"
        )
    if config.t == 1 and not config.allow_single_share:
        raise InvalidParameters(
            "t=1 makes every share a plaintext copy of the key; "
            "set allow_single_share to do this anyway"
        )


def _prepare(config: IssuanceConfig, is_ca: bool) -> x509.Name:
    """Validate everything that does not need the parent. Returns the subject name."""
    name = certs.build_name(config.subject)
    if not config.cert_path:
        raise InvalidParameters("A certificate output path is required")
    certs.check_validity_days(config.days)

    if is_ca:
        _check_split(config)
        keyusage.to_extension(config.key_usage | KeyUsage.KEY_CERT_SIGN)
        outputs = [config.cert_path, *config.share_paths]
    else:
        if config.key_usage & KeyUsage.KEY_CERT_SIGN:
            raise InvalidParameters("Leaf certificates cannot carry key-cert-sign")
        keyusage.to_extension(config.key_usage)
        outputs = [config.cert_path]
        if config.key_path:
            outputs.append(config.key_path)

    custody.ensure_destinations_free(outputs)
    return name


def _load_parent(config: IssuanceConfig) -> tuple[x509.Certificate, x509.BasicConstraints]:
    """Re-read the parent certificate and check that it may sign."""
    if not config.parent_cert_path:
        raise InvalidParameters("A parent certificate path is required")
    if not config.parent_share_paths:
        raise InvalidParameters("No parent share files given")

    parent = certs.load_certificate(config.parent_cert_path)
    constraints = certs.basic_constraints(parent)
    if constraints is None or not constraints.ca:
        raise ParentCertificateUnreadable(
            f"'{config.parent_cert_path}' is not a CA certificate"
        )
    try:
        usage = keyusage.from_extension(
            parent.extensions.get_extension_for_class(x509.KeyUsage).value
        )
    except x509.ExtensionNotFound:
        usage = None
    if usage is not None and not usage & KeyUsage.KEY_CERT_SIGN:
        raise ParentCertificateUnreadable(
            f"'{config.parent_cert_path}' is not allowed to sign certificates"
        )
    return parent, constraints


def _persist_authority(kind: str, cert, key, config: IssuanceConfig) -> IssuanceResult:
    """Write a CA certificate, then split its key into the share files."""
    custody.write_certificate(cert, config.cert_path)

    secret = bytearray(certs.private_key_to_der(key))
    try:
        written = custody.split_and_write(
            secret, config.n, config.t, config.share_paths, certificate=config.cert_path
        )
    finally:
        for i in range(len(secret)):
            secret[i] = 0

    logger.info(
        "Issued %s CA %s (serial %x), key split %d-of-%d",
        kind, cert.subject.rfc4514_string(), cert.serial_number, config.t, config.n,
    )
    return _result(kind, cert, config, share_paths=written)


def issue_root(config: IssuanceConfig) -> IssuanceResult:
    """
    Create a self-signed root CA and split its private key.

    Args:
        config: subject, days, n, t, share_paths, cert_path and
            path_length (None for unlimited) are used.

    Returns:
        IssuanceResult for the new root.

    Raises:
        SubjectInvalid: If the common name is missing.
        ShareTargetMismatch: If len(share_paths) != n.
        InvalidParameters: For bad n/t/days/path_length or t=1 without opt-in.
        DestinationExists: If an output path already exists.
        ShareWriteIncomplete: If only some shares could be written.
    """
    name = _prepare(config, is_ca=True)
    if config.path_length is not None and config.path_length < 0:
        raise InvalidParameters(f"Path length must be >= 0, got {config.path_length}")

    key = certs.generate_private_key()
    cert = certs.build_certificate(
        name,
        key.public_key(),
        key,
        days=config.days,
        is_ca=True,
        usage=config.key_usage,
        path_length=config.path_length,
    )
    try:
        return _persist_authority("root", cert, key, config)
    finally:
        del key


def issue_subordinate(config: IssuanceConfig) -> IssuanceResult:
    """
    Create an intermediate CA signed by a parent whose key is in shares.

    The path length constraint is one less than the parent's, or
    unlimited if the parent's is.

    Args:
        config: as for issue_root, plus parent_cert_path and
            parent_share_paths (at least the parent's threshold).

    Returns:
        IssuanceResult for the new sub-CA.

    Raises:
        ParentCertificateUnreadable: If the parent cannot be read or is not a CA.
        ParentKeyReconstructionFailed: If the shares do not rebuild the parent key.
        InvalidParameters: If the parent's path length forbids another CA level.
        ShareTargetMismatch, SubjectInvalid, DestinationExists,
        ShareWriteIncomplete: as for issue_root.
    """
    name = _prepare(config, is_ca=True)
    parent, constraints = _load_parent(config)
    if constraints.path_length == 0:
        raise InvalidParameters(
            f"Parent '{config.parent_cert_path}' has path length 0 and cannot issue CA certificates"
        )
    path_length = None if constraints.path_length is None else constraints.path_length - 1

    with custody.reconstructed_key(config.parent_share_paths, parent) as parent_key:
        key = certs.generate_private_key()
        cert = certs.build_certificate(
            name,
            key.public_key(),
            parent_key,
            days=config.days,
            is_ca=True,
            usage=config.key_usage,
            path_length=path_length,
            issuer=parent,
        )
    del parent_key

    if config.issuing:
        logger.info("Sub-CA %s marked as issuing CA", cert.subject.rfc4514_string())
    try:
        return _persist_authority("subordinate", cert, key, config)
    finally:
        del key


def issue_leaf(config: IssuanceConfig) -> IssuanceResult:
    """
    Sign an end-entity certificate with a CA whose key is in shares.

    The leaf key is not split. It is exported in the clear only if
    config.key_path is set; otherwise it is dropped after signing.

    Args:
        config: subject, days, cert_path, parent_cert_path,
            parent_share_paths, key_usage and optional key_path are used.

    Returns:
        IssuanceResult for the leaf.

    Raises:
        InvalidParameters: For key-cert-sign on a leaf, encipher/decipher-only
            without key-agreement, or bad days.
        ParentCertificateUnreadable, ParentKeyReconstructionFailed,
        SubjectInvalid, DestinationExists: as for issue_subordinate.
    """
    name = _prepare(config, is_ca=False)
    parent, _ = _load_parent(config)

    with custody.reconstructed_key(config.parent_share_paths, parent) as parent_key:
        key = certs.generate_private_key()
        cert = certs.build_certificate(
            name,
            key.public_key(),
            parent_key,
            days=config.days,
            is_ca=False,
            usage=config.key_usage,
            issuer=parent,
        )
    del parent_key

    try:
        custody.write_certificate(cert, config.cert_path)
        if config.key_path:
            custody.write_private_key(key, config.key_path)
    finally:
        del key

    logger.info(
        "Issued leaf %s (serial %x) signed by %s",
        cert.subject.rfc4514_string(), cert.serial_number, parent.subject.rfc4514_string(),
    )
    return _result("leaf", cert, config, key_path=config.key_path or None)
