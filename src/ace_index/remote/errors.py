"""User-facing errors raised by remote service calls."""

from __future__ import annotations


class RemoteServiceError(Exception):
    """Raised when a remote call fails in a way the user can act on."""

    def __init__(self, reason: str, hint: str) -> None:
        super().__init__(reason)
        self.reason = reason
        self.hint = hint


class CredentialRejectedError(RemoteServiceError):
    """The service rejected the token (HTTP 401)."""

    def __init__(self) -> None:
        super().__init__(
            reason="Token is invalid or expired.",
            hint="Update remote.token in ace_index.toml or pass --token.",
        )


class AccessDeniedError(RemoteServiceError):
    """The service refused the token (HTTP 403)."""

    def __init__(self) -> None:
        super().__init__(
            reason="Access denied; the token may have been disabled.",
            hint="Contact the service provider about the token.",
        )


class CertificateVerificationError(RemoteServiceError):
    """TLS certificate validation failed."""

    def __init__(self) -> None:
        super().__init__(
            reason="SSL certificate verification failed.",
            hint="Check that remote.base_url is correct, or contact the service provider.",
        )


class NetworkFailureError(RemoteServiceError):
    """A transient failure persisted through every retry attempt."""


class UnexpectedResponseError(Exception):
    """Raised when a response body does not have the expected shape."""
