"""Service error hierarchy for inference, storage and rate limiting.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Errors that may succeed if the caller tries again later
- PermanentError: Errors that will not succeed on retry

Generation jobs are never retried automatically; the split is kept so log
records and failure messages say which kind of failure occurred.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Upstream rate limit (429)
    - Service unavailable (503)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Configuration errors
    """

    pass


# Inference-specific errors
class InferenceError(ServiceError):
    """Base exception for inference gateway errors."""

    pass


class InferenceUnavailableError(InferenceError, TransientError):
    """Inference provider timed out, rate limited or is unavailable."""

    pass


class InferenceRejectedError(InferenceError, PermanentError):
    """Inference provider rejected the request (auth, validation, content policy)."""

    pass


class InvalidInferenceOutput(InferenceError, PermanentError):
    """Inference returned a response shape that cannot be decoded to image bytes."""

    pass


# Storage-specific errors
class StorageError(ServiceError):
    """Object storage read/write failure."""

    pass


# Rate limiting
class RateLimitExceeded(ServiceError):
    """Request budget for the current window is exhausted.

    Attributes:
        limit: Window budget
        reset_time_ms: Epoch milliseconds at which the window resets
    """

    def __init__(self, limit: int, reset_time_ms: int):
        super().__init__(f"Rate limit of {limit} requests exceeded")
        self.limit = limit
        self.reset_time_ms = reset_time_ms


# Submission errors
class UnknownUserError(ServiceError):
    """Identity header names a user that does not exist."""

    pass


class ParentImageNotFound(ServiceError):
    """Remix parent image does not exist."""

    pass


class ParentImageForbidden(ServiceError):
    """Remix parent image is private and owned by someone else."""

    pass
