"""Error taxonomy for the creative generation workflow."""
from __future__ import annotations


class CreativeError(RuntimeError):
    """Base class for all creative workflow failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadValidationError(CreativeError):
    """Raised when a required upload is missing, empty or not an image."""


class TransportError(CreativeError):
    """Raised when talking to a remote service fails at the HTTP level."""


class AuthError(TransportError):
    """Raised when a remote service rejects the configured credential."""


class QuotaError(TransportError):
    """Raised when a remote service reports rate limiting or missing credits."""


class JobFailedError(CreativeError):
    """Raised when a remote image job explicitly reports failure."""

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class JobTimeoutError(CreativeError):
    """Raised when polling exhausts its attempt ceiling."""

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class EncodeError(CreativeError):
    """Raised when generated image bytes cannot be decoded or re-encoded."""


class AllUnitsFailedError(CreativeError):
    """Raised when not a single creative survived the pipeline."""


__all__ = [
    "AllUnitsFailedError",
    "AuthError",
    "CreativeError",
    "EncodeError",
    "JobFailedError",
    "JobTimeoutError",
    "QuotaError",
    "TransportError",
    "UploadValidationError",
]
