"""
Shamir's Secret Sharing over GF(2^8)
Split a byte string into N shares where any T can reconstruct it.

Every byte of the secret gets its own random polynomial of degree T-1
whose constant term is that byte. Share j holds the evaluations of all
those polynomials at its identity x_j, so one share is as long as the
secret plus one identity byte.

Any T shares determine each polynomial and therefore the secret. T-1 or
fewer are consistent with every possible byte value, so they reveal
nothing about it.

Combine cannot tell whether it was given enough shares: an
under-threshold set interpolates to a wrong secret without any error.
Callers that need a signal must check the result themselves.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
import secrets
from dataclasses import dataclass

from shardca import gf256
from shardca.errors import (
    DuplicateShareIdentity,
    InvalidParameters,
    InvalidShareIdentity,
    MalformedShare,
    RandomnessUnavailable,
)

logger = logging.getLogger(__name__)

MAX_SHARES = 255


@dataclass(frozen=True)
class Share:
    """A single share of a split secret."""
    identity: int   # The x-coordinate (1..255, never 0)
    data: bytes     # P_i(identity) for every byte position i

    def to_bytes(self) -> bytes:
        """Pack as one identity byte followed by the evaluations."""
        return bytes([self.identity]) + self.data

    @classmethod
    def from_bytes(cls, blob: bytes) -> "Share":
        """Unpack a blob produced by to_bytes()."""
        if len(blob) < 2:
            raise MalformedShare(f"Share blob too short ({len(blob)} bytes)")
        return cls(identity=blob[0], data=bytes(blob[1:]))

    def to_base64(self) -> str:
        """Serialize to the text form written to share files."""
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_base64(cls, text: str) -> "Share":
        """Deserialize from base64 text. Surrounding whitespace is ignored."""
        try:
            blob = base64.b64decode(text.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedShare(f"Share is not valid base64: {e}") from e
        return cls.from_bytes(blob)


def _random_bytes(count: int) -> bytes:
    """Draw from the OS CSPRNG. There is no fallback source."""
    try:
        return secrets.token_bytes(count)
    except (OSError, NotImplementedError) as e:
        raise RandomnessUnavailable(f"Secure random source failed: {e}") from e


def split(secret: bytes, n: int, t: int) -> list[Share]:
    """
    Split a secret into shares using Shamir's Secret Sharing.

    Args:
        secret: The bytes to split (at least 1 byte).
        n: Total shares to generate (N, at most 255).
        t: Minimum shares needed to reconstruct (T).

    Returns:
        List of n Share objects with identities 1..n.

    Raises:
        InvalidParameters: If 1 <= t <= n <= 255 does not hold or secret is empty.
        RandomnessUnavailable: If the secure random source fails.
    """
    if isinstance(n, bool) or isinstance(t, bool) or not isinstance(n, int) or not isinstance(t, int):
        raise InvalidParameters(f"n and t must be integers, got n={n!r}, t={t!r}")
    if t < 1:
        raise InvalidParameters(f"Threshold must be at least 1, got t={t}")
    if t > n:
        raise InvalidParameters(f"Threshold cannot exceed number of shares: t={t}, n={n}")
    if n > MAX_SHARES:
        raise InvalidParameters(f"At most {MAX_SHARES} shares are supported, got n={n}")
    if len(secret) < 1:
        raise InvalidParameters("Secret must not be empty")
    if t == 1:
        logger.warning("Splitting with t=1: every share is a plaintext copy of the secret")

    identities = list(range(1, n + 1))
    # All random coefficients at once: t-1 per byte position
    randomness = _random_bytes(len(secret) * (t - 1))

    columns = [bytearray(len(secret)) for _ in identities]
    for i, byte in enumerate(secret):
        coeffs = [byte]
        coeffs.extend(randomness[i * (t - 1):(i + 1) * (t - 1)])
        for j, x in enumerate(identities):
            columns[j][i] = gf256.eval_poly(coeffs, x)

    return [Share(identity=x, data=bytes(col)) for x, col in zip(identities, columns)]


def _validate(shares: list[Share]) -> None:
    if not shares:
        raise InvalidParameters("Need at least one share")

    length = len(shares[0].data)
    seen = set()
    for share in shares:
        if not 0 < share.identity < gf256.ORDER:
            raise InvalidShareIdentity(f"Share identity must be in 1..255, got {share.identity}")
        if len(share.data) == 0 or len(share.data) != length:
            raise MalformedShare(
                f"Share {share.identity} has {len(share.data)} data bytes, expected {length}"
            )
        if share.identity in seen:
            raise DuplicateShareIdentity(f"Share identity {share.identity} appears more than once")
        seen.add(share.identity)


def combine_into_buffer(shares: list[Share]) -> bytearray:
    """
    Reconstruct a secret into a mutable buffer the caller can wipe.

    Same rules as combine().
    """
    _validate(shares)

    xs = [s.identity for s in shares]
    length = len(shares[0].data)
    out = bytearray(length)
    for i in range(length):
        out[i] = gf256.interpolate_at_zero(xs, [s.data[i] for s in shares])
    return out


def combine(shares: list[Share]) -> bytes:
    """
    Reconstruct a secret from T or more shares using Lagrange interpolation.

    The original threshold is not stored in the shares, so a set smaller
    than T (or mixed from different splits) gives a wrong result silently.

    Args:
        shares: Shares from a single split() call.

    Returns:
        The reconstructed secret bytes.

    Raises:
        InvalidParameters: If no shares are given.
        MalformedShare: If share lengths differ or are empty.
        DuplicateShareIdentity: If an identity repeats.
        InvalidShareIdentity: If an identity is zero or above 255.
    """
    return bytes(combine_into_buffer(shares))


def verify_shares(shares: list[Share], secret: bytes | bytearray) -> bool:
    """
    Verify that a set of shares correctly reconstructs the secret.

    The reconstruction is zeroed before returning.
    """
    try:
        buffer = combine_into_buffer(shares)
    except (InvalidParameters, MalformedShare, DuplicateShareIdentity, InvalidShareIdentity):
        return False
    try:
        return hmac.compare_digest(buffer, secret)
    finally:
        for i in range(len(buffer)):
            buffer[i] = 0
