"""
Error taxonomy for ShardCA.

Every error derives from ShardCAError and from the closest builtin, so
callers that only know about ValueError or OSError still catch them.
"""

from typing import Optional


class ShardCAError(Exception):
    """Base class for all ShardCA errors."""


class InvalidParameters(ShardCAError, ValueError):
    """Bad n/t, empty secret, or an otherwise unusable request."""


class RandomnessUnavailable(ShardCAError, RuntimeError):
    """The secure random source failed. Fatal, never retried."""


class ShareError(ShardCAError, ValueError):
    """Input shares are structurally inconsistent."""


class MalformedShare(ShareError):
    """A share is truncated, undecodable, or has the wrong length."""


class DuplicateShareIdentity(ShareError):
    """Two shares carry the same identity byte."""


class InvalidShareIdentity(ShareError):
    """A share identity is zero or outside the field."""


class SubjectInvalid(ShardCAError, ValueError):
    """The certificate subject is missing a required field or is malformed."""


class ShareTargetMismatch(ShardCAError, ValueError):
    """The number of share destinations does not equal n."""


class ParentCertificateUnreadable(ShardCAError):
    """The parent certificate could not be read, parsed, or is not a CA."""


class ParentKeyReconstructionFailed(ShardCAError):
    """Combined share bytes are not the parent's private key."""


class ChainVerificationFailed(ShardCAError):
    """A stored certificate chain does not lead to a trusted root."""


class PersistenceError(ShardCAError, OSError):
    """Reading or writing a share, key or certificate file failed."""


class DestinationExists(PersistenceError):
    """An output path is already taken; nothing is overwritten."""


class ShareWriteIncomplete(PersistenceError):
    """
    Share writing stopped partway through.

    An incomplete share set silently lowers the number of shares that
    can ever be gathered, so the exact split is reported.
    """

    def __init__(self, message: str, written: list[str], pending: list[str], certificate: Optional[str] = None):
        super().__init__(message)
        self.written = list(written)
        self.pending = list(pending)
        self.certificate = certificate

    def __str__(self) -> str:
        text = (
            f"{self.args[0]} (written: {', '.join(self.written) or 'none'}; "
            f"not written: {', '.join(self.pending) or 'none'})"
        )
        if self.certificate:
            text += f"; certificate already written to {self.certificate}"
        return text
