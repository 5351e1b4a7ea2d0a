"""Remote blob store and retrieval service access."""

from .client import RemoteClient
from .errors import (
    AccessDeniedError,
    CertificateVerificationError,
    CredentialRejectedError,
    NetworkFailureError,
    RemoteServiceError,
    UnexpectedResponseError,
)
from .retry import classify_error, is_retryable_error, translate_error, with_retry
from .stream import EnhancedPromptParser, PromptExtractionError
from .upload import BlobDigestMismatchError, BlobUploader, UploadOutcome, upload_blobs

__all__ = [
    "AccessDeniedError",
    "BlobDigestMismatchError",
    "BlobUploader",
    "CertificateVerificationError",
    "CredentialRejectedError",
    "EnhancedPromptParser",
    "NetworkFailureError",
    "PromptExtractionError",
    "RemoteClient",
    "RemoteServiceError",
    "UnexpectedResponseError",
    "UploadOutcome",
    "classify_error",
    "is_retryable_error",
    "translate_error",
    "upload_blobs",
    "with_retry",
]
