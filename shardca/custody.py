"""
Key Custody
Where private keys are allowed to exist, and for how long.

A CA private key is never written to disk whole. Right after its
certificate is signed, the key's DER bytes are split into shares and
each share goes to its own file. To sign with that CA later, a quorum
of share files is combined inside reconstructed_key(), which wipes the
combined buffer and drops the key object on every exit path.

Output files are created exclusively: an existing path is an error,
never an overwrite.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from shardca import certs, shamir
from shardca.config import CERT_FILE_MODE, SECRET_FILE_MODE
from shardca.errors import (
    DestinationExists,
    InvalidParameters,
    MalformedShare,
    ParentKeyReconstructionFailed,
    PersistenceError,
    ShareWriteIncomplete,
)
from shardca.shamir import Share

logger = logging.getLogger(__name__)


def ensure_destinations_free(paths: Sequence[str]) -> None:
    """
    Check output paths before any key material exists.

    Raises:
        InvalidParameters: If the same path is named twice.
        DestinationExists: If a path is already taken.
    """
    seen = set()
    for path in paths:
        resolved = os.path.abspath(path)
        if resolved in seen:
            raise InvalidParameters(f"Output path '{path}' is named more than once")
        seen.add(resolved)
        if os.path.lexists(path):
            raise DestinationExists(f"Refusing to overwrite existing file '{path}'")


def write_exclusive(path: str | Path, data: bytes, mode: int) -> None:
    """Create *path* with *mode* and write *data*. Fails if the path exists."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    except FileExistsError as e:
        raise DestinationExists(f"Refusing to overwrite existing file '{path}'") from e
    except OSError as e:
        raise PersistenceError(f"Failed to create '{path}': {e}") from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except OSError as e:
        raise PersistenceError(f"Failed to write '{path}': {e}") from e


def write_certificate(cert: x509.Certificate, path: str | Path) -> None:
    write_exclusive(path, certs.certificate_to_pem(cert), CERT_FILE_MODE)
    logger.debug("Wrote certificate %s", path)


def write_private_key(key: ec.EllipticCurvePrivateKey, path: str | Path) -> None:
    """Export a key in the clear. Only ever used for leaf keys on request."""
    write_exclusive(path, certs.private_key_to_pem(key), SECRET_FILE_MODE)
    logger.debug("Wrote private key %s", path)


def split_and_write(
    secret: bytes | bytearray,
    n: int,
    t: int,
    paths: Sequence[str],
    certificate: Optional[str] = None,
) -> list[str]:
    """
    Split *secret* into n shares and write one base64 share per path.

    Args:
        secret: The key bytes to split.
        n: Total shares.
        t: Threshold.
        paths: Exactly n destination paths, in share order.
        certificate: Path of the certificate written for this key, reported
            if share writing fails partway.

    Returns:
        The paths written, in order.

    Raises:
        ShareWriteIncomplete: If a share could not be written. Shares
            already on disk are reported, not removed.
    """
    if len(paths) != n:
        raise InvalidParameters(f"Number of share paths ({len(paths)}) does not match n={n}")

    shares = shamir.split(secret, n, t)
    if not shamir.verify_shares(shares[:t], secret):
        raise PersistenceError("Shares do not reconstruct the key; nothing was written")

    written: list[str] = []
    for i, (share, path) in enumerate(zip(shares, paths)):
        try:
            write_exclusive(path, share.to_base64().encode("ascii"), SECRET_FILE_MODE)
        except PersistenceError as e:
            raise ShareWriteIncomplete(
                f"Failed to write share {share.identity} to '{path}': {e}",
                written=written,
                pending=list(paths[i:]),
                certificate=certificate,
            ) from e
        written.append(path)
        logger.debug("Wrote share %d/%d to %s", share.identity, n, path)

    return written


def read_shares(paths: Sequence[str]) -> list[Share]:
    """
    Read base64 share files.

    Raises:
        InvalidParameters: If no paths are given.
        PersistenceError: If a file cannot be read.
        MalformedShare: If a file does not hold a share.
    """
    if not paths:
        raise InvalidParameters("No share files given")

    shares = []
    for path in paths:
        try:
            text = Path(path).read_text(encoding="ascii")
        except UnicodeDecodeError as e:
            raise MalformedShare(f"Share file '{path}' is not base64 text") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read share file '{path}': {e}") from e
        try:
            shares.append(Share.from_base64(text))
        except MalformedShare as e:
            raise MalformedShare(f"Share file '{path}': {e}") from e
    return shares


@contextmanager
def reconstructed_key(
    share_paths: Sequence[str],
    parent: x509.Certificate,
) -> Iterator[ec.EllipticCurvePrivateKey]:
    """
    Rebuild the private key of *parent* from share files for one signing.

    The combined bytes live in a bytearray that is zeroed when the block
    exits, whether it succeeds or raises, and the key reference is
    dropped. Combine cannot tell a short quorum from a full one, so the
    result is checked by parsing it and by comparing its public key with
    the one in *parent*.

    Usage:
        with reconstructed_key(paths, parent_cert) as key:
            cert = sign_with(key)

    Raises:
        ParentKeyReconstructionFailed: If the bytes are not an EC key or
            not the key certified by *parent*.
    """
    shares = read_shares(share_paths)
    buffer = bytearray()
    key = None
    try:
        buffer = shamir.combine_into_buffer(shares)
        try:
            key = serialization.load_der_private_key(buffer, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ParentKeyReconstructionFailed(
                f"Combined {len(shares)} share(s) do not form a valid private key; "
                f"too few shares or shares from a different key?"
            ) from e
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise ParentKeyReconstructionFailed("Reconstructed key is not an EC private key")
        if not certs.public_keys_match(key.public_key(), parent.public_key()):
            raise ParentKeyReconstructionFailed(
                f"Reconstructed key does not match the parent certificate "
                f"(serial {parent.serial_number:x}); shares belong to another key "
                f"or the quorum is too small"
            )
        logger.info("Reconstructed parent key from %d share(s)", len(shares))
        yield key
    finally:
        for i in range(len(buffer)):
            buffer[i] = 0
        key = None
        logger.debug("Released reconstructed parent key")
