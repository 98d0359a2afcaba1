"""
Certificates and keys.

Thin layer over the cryptography library: subject names, P-256 key
generation, X.509 building and signing, and the PEM/DER encodings used
on disk. Nothing here touches shares.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from shardca import keyusage
from shardca.config import Subject
from shardca.errors import (
    InvalidParameters,
    ParentCertificateUnreadable,
    RandomnessUnavailable,
    SubjectInvalid,
)
from shardca.keyusage import KeyUsage

CURVE = ec.SECP256R1()
SERIAL_BITS = 128
# Latest time an X.509 GeneralizedTime can carry
LATEST_NOT_AFTER = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def build_name(subject: Subject) -> x509.Name:
    """
    Turn a Subject into an X.509 name. Empty optional fields are left out.

    Raises:
        SubjectInvalid: If the common name is missing or a field is rejected
            (e.g. a country that is not a 2-letter code).
    """
    if not subject.common_name or not subject.common_name.strip():
        raise SubjectInvalid("Common name (CN) is required")

    fields = [
        (NameOID.COUNTRY_NAME, subject.country),
        (NameOID.STATE_OR_PROVINCE_NAME, subject.province),
        (NameOID.LOCALITY_NAME, subject.locality),
        (NameOID.ORGANIZATION_NAME, subject.organization),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, subject.organizational_unit),
        (NameOID.COMMON_NAME, subject.common_name),
    ]
    try:
        return x509.Name([x509.NameAttribute(oid, value) for oid, value in fields if value])
    except ValueError as e:
        raise SubjectInvalid(f"Invalid subject: {e}") from e


def new_serial_number() -> int:
    """Random 128-bit serial. Zero is not a valid serial, so it is redrawn."""
    try:
        serial = secrets.randbits(SERIAL_BITS)
        while serial == 0:
            serial = secrets.randbits(SERIAL_BITS)
    except (OSError, NotImplementedError) as e:
        raise RandomnessUnavailable(f"Failed to generate serial number: {e}") from e
    return serial


def check_validity_days(days: int) -> None:
    """
    Check a validity period before any key is generated.

    Raises:
        InvalidParameters: If *days* is below 1 or would put NotAfter past
            9999-12-31.
    """
    if days < 1:
        raise InvalidParameters(f"Validity must be at least 1 day, got days={days}")
    limit = (LATEST_NOT_AFTER - datetime.now(timezone.utc)).days
    if days > limit:
        raise InvalidParameters(f"Validity of {days} days ends after 9999-12-31 (at most {limit})")


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    """Generate a fresh ECDSA P-256 key."""
    return ec.generate_private_key(CURVE)


def build_certificate(
    name: x509.Name,
    public_key: ec.EllipticCurvePublicKey,
    signing_key: ec.EllipticCurvePrivateKey,
    days: int,
    is_ca: bool,
    usage: KeyUsage,
    path_length: Optional[int] = None,
    issuer: Optional[x509.Certificate] = None,
) -> x509.Certificate:
    """
    Build and sign a certificate.

    Self-signed when *issuer* is None (issuer name = subject name, and
    *signing_key* must be the subject's own key). CAs always get
    KEY_CERT_SIGN on top of *usage*.

    Args:
        name: Subject name.
        public_key: Subject public key embedded in the certificate.
        signing_key: Issuer private key.
        days: Validity in days from now.
        is_ca: Basic constraints CA flag.
        usage: Key usage bits.
        path_length: Path length constraint for CAs (None = unlimited).
        issuer: Issuer certificate, or None for self-signed.

    Returns:
        The signed certificate.
    """
    check_validity_days(days)
    if is_ca:
        usage |= KeyUsage.KEY_CERT_SIGN
    else:
        path_length = None

    # X.509 times carry whole seconds
    not_before = datetime.now(timezone.utc).replace(microsecond=0)
    not_after = not_before + timedelta(days=days)

    issuer_name = issuer.subject if issuer is not None else name
    builder = (
        x509.CertificateBuilder()
        .serial_number(new_serial_number())
        .subject_name(name)
        .issuer_name(issuer_name)
        .public_key(public_key)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=path_length), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
    )
    if usage:
        builder = builder.add_extension(keyusage.to_extension(usage), critical=True)
    if issuer is not None:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer.public_key()),
            critical=False,
        )

    return builder.sign(signing_key, hashes.SHA256())


def certificate_to_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def load_certificate(path: str | Path) -> x509.Certificate:
    """
    Read a PEM certificate from disk.

    Raises:
        ParentCertificateUnreadable: If the file is missing or not a PEM certificate.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ParentCertificateUnreadable(f"Unable to read certificate file '{path}': {e}") from e
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise ParentCertificateUnreadable(f"Failed to parse certificate '{path}': {e}") from e


def basic_constraints(cert: x509.Certificate) -> Optional[x509.BasicConstraints]:
    """Return the BasicConstraints extension, or None if absent."""
    try:
        return cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return None


def private_key_to_der(key: ec.EllipticCurvePrivateKey) -> bytes:
    """SEC1 DER encoding, the byte string that gets split into shares."""
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def private_key_to_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    """PEM "EC PRIVATE KEY" encoding used for leaf key export."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_keys_match(a, b) -> bool:
    """Compare two public keys by their SubjectPublicKeyInfo encoding."""
    fmt = serialization.PublicFormat.SubjectPublicKeyInfo
    return (
        a.public_bytes(serialization.Encoding.DER, fmt)
        == b.public_bytes(serialization.Encoding.DER, fmt)
    )


def verify_signature(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    """True if *cert* names *issuer* as its issuer and carries its valid signature."""
    try:
        cert.verify_directly_issued_by(issuer)
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True
