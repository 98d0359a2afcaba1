"""
Key usage flags.

Each X.509 key-usage bit is an independent flag. Flags are OR-combined
into one KeyUsage value and translated to the cryptography extension
through an explicit table, one entry per bit.
"""

from __future__ import annotations

import enum

from cryptography import x509

from shardca.errors import InvalidParameters


class KeyUsage(enum.IntFlag):
    """Key-usage bits, numbered as in RFC 5280 section 4.2.1.3."""
    NONE = 0
    DIGITAL_SIGNATURE = 1 << 0
    CONTENT_COMMITMENT = 1 << 1
    KEY_ENCIPHERMENT = 1 << 2
    DATA_ENCIPHERMENT = 1 << 3
    KEY_AGREEMENT = 1 << 4
    KEY_CERT_SIGN = 1 << 5
    CRL_SIGN = 1 << 6
    ENCIPHER_ONLY = 1 << 7
    DECIPHER_ONLY = 1 << 8


# Flag -> keyword argument of cryptography.x509.KeyUsage
_EXTENSION_ARGS = {
    KeyUsage.DIGITAL_SIGNATURE: "digital_signature",
    KeyUsage.CONTENT_COMMITMENT: "content_commitment",
    KeyUsage.KEY_ENCIPHERMENT: "key_encipherment",
    KeyUsage.DATA_ENCIPHERMENT: "data_encipherment",
    KeyUsage.KEY_AGREEMENT: "key_agreement",
    KeyUsage.KEY_CERT_SIGN: "key_cert_sign",
    KeyUsage.CRL_SIGN: "crl_sign",
    KeyUsage.ENCIPHER_ONLY: "encipher_only",
    KeyUsage.DECIPHER_ONLY: "decipher_only",
}

# Command-line flag name -> bit. key_cert_sign is implied for CAs and
# not offered for leaves.
FLAG_NAMES = {
    "digital-signature": KeyUsage.DIGITAL_SIGNATURE,
    "content-commitment": KeyUsage.CONTENT_COMMITMENT,
    "key-encipherment": KeyUsage.KEY_ENCIPHERMENT,
    "data-encipherment": KeyUsage.DATA_ENCIPHERMENT,
    "key-agreement": KeyUsage.KEY_AGREEMENT,
    "crl-sign": KeyUsage.CRL_SIGN,
    "encipher-only": KeyUsage.ENCIPHER_ONLY,
    "decipher-only": KeyUsage.DECIPHER_ONLY,
}

# Default base usage for CA keys; KEY_CERT_SIGN is always added on top
DEFAULT_CA_USAGE = KeyUsage.DIGITAL_SIGNATURE | KeyUsage.KEY_ENCIPHERMENT


def from_names(names) -> KeyUsage:
    """Combine flag names such as "digital-signature" into one value."""
    usage = KeyUsage.NONE
    for name in names:
        try:
            usage |= FLAG_NAMES[name]
        except KeyError:
            raise InvalidParameters(f"Unknown key usage '{name}'") from None
    return usage


def to_names(usage: KeyUsage) -> list[str]:
    """List the flag names set in *usage*."""
    names = [name for name, bit in FLAG_NAMES.items() if usage & bit]
    if usage & KeyUsage.KEY_CERT_SIGN:
        names.append("key-cert-sign")
    return names


def to_extension(usage: KeyUsage) -> x509.KeyUsage:
    """
    Build the cryptography KeyUsage extension for *usage*.

    Raises:
        InvalidParameters: If encipher-only or decipher-only is set
            without key-agreement (they only qualify key agreement).
    """
    only_bits = usage & (KeyUsage.ENCIPHER_ONLY | KeyUsage.DECIPHER_ONLY)
    if only_bits and not usage & KeyUsage.KEY_AGREEMENT:
        raise InvalidParameters("encipher-only and decipher-only require key-agreement")
    kwargs = {arg: bool(usage & bit) for bit, arg in _EXTENSION_ARGS.items()}
    return x509.KeyUsage(**kwargs)


def from_extension(ext: x509.KeyUsage) -> KeyUsage:
    """Read a cryptography KeyUsage extension back into flags."""
    usage = KeyUsage.NONE
    for bit, arg in _EXTENSION_ARGS.items():
        if arg in ("encipher_only", "decipher_only") and not ext.key_agreement:
            # cryptography raises when reading these without key_agreement
            continue
        if getattr(ext, arg):
            usage |= bit
    return usage
