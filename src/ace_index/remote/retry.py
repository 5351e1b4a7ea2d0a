"""Exponential-backoff retry with fatal vs transient error classification.

Classification
--------------
- ``credential`` (HTTP 401), ``access`` (HTTP 403), ``certificate`` (TLS
  validation): never retried, raised as translated RemoteServiceError.
- ``connection``, ``timeout``, ``dns``, ``server`` (HTTP 5xx): retried with
  ``base_delay * 2**k`` seconds after failed attempt ``k``; raised as
  NetworkFailureError once attempts run out.
- ``other``: re-raised unchanged after the first failure.
"""

from __future__ import annotations

import logging
import socket
import ssl
import time
from collections.abc import Callable, Iterator
from typing import Literal, TypeVar

import httpx
import tenacity

from ace_index.remote.errors import (
    AccessDeniedError,
    CertificateVerificationError,
    CredentialRejectedError,
    NetworkFailureError,
)

__all__ = [
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_ATTEMPTS",
    "FailureKind",
    "classify_error",
    "is_retryable_error",
    "translate_error",
    "with_retry",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
FailureKind = Literal[
    "credential", "access", "certificate", "connection", "timeout", "dns", "server", "other"
]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0

RETRYABLE_KINDS = frozenset({"connection", "timeout", "dns", "server"})
_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_error(exc: BaseException) -> FailureKind:
    """Classify an exception raised by a remote call."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 401:
            return "credential"
        if status == 403:
            return "access"
        if status >= 500:
            return "server"
        return "other"

    chain = list(_exception_chain(exc))
    messages = " ".join(str(item).lower() for item in chain)
    if any(isinstance(item, ssl.SSLCertVerificationError) for item in chain):
        return "certificate"
    if isinstance(exc, (httpx.ConnectError, ssl.SSLError)) and (
        "certificate" in messages or "altnames" in messages
    ):
        return "certificate"
    if isinstance(exc, httpx.TimeoutException) or any(
        isinstance(item, TimeoutError) for item in chain
    ):
        return "timeout"
    if any(isinstance(item, socket.gaierror) for item in chain) or any(
        marker in messages for marker in _DNS_MARKERS
    ):
        return "dns"
    if isinstance(exc, httpx.ConnectError) or any(
        isinstance(item, ConnectionRefusedError) for item in chain
    ):
        return "connection"
    return "other"


def is_retryable_error(exc: BaseException) -> bool:
    """Return True for transient failures worth another attempt."""
    return classify_error(exc) in RETRYABLE_KINDS


def translate_error(exc: BaseException) -> BaseException:
    """Map a final failure to its user-facing error, or return it unchanged."""
    kind = classify_error(exc)
    if kind == "credential":
        return CredentialRejectedError()
    if kind == "access":
        return AccessDeniedError()
    if kind == "certificate":
        return CertificateVerificationError()
    if kind == "connection":
        return NetworkFailureError(
            reason="Unable to connect to the server.",
            hint="Check the network connection and remote.base_url.",
        )
    if kind == "timeout":
        return NetworkFailureError(
            reason="Connection timed out.",
            hint="Check network conditions and try again.",
        )
    if kind == "dns":
        return NetworkFailureError(
            reason="Unable to resolve the server address.",
            hint="Check remote.base_url.",
        )
    if kind == "server" and isinstance(exc, httpx.HTTPStatusError):
        return NetworkFailureError(
            reason=f"Server error (HTTP {exc.response.status_code}).",
            hint="The remote service is failing; try again later.",
        )
    return exc


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "[RETRY] attempt %d failed (%s: %s); retrying in %.1fs",
        retry_state.attempt_number,
        type(exc).__name__,
        exc,
        delay,
    )


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run operation, retrying transient failures with exponential backoff."""
    retrying = tenacity.Retrying(
        retry=tenacity.retry_if_exception(is_retryable_error),
        stop=tenacity.stop_after_attempt(max_attempts),
        wait=tenacity.wait_exponential(multiplier=base_delay, exp_base=2),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    try:
        return retrying(operation)
    except Exception as error:
        translated = translate_error(error)
        if translated is error:
            raise
        logger.error("Request failed: %s", translated)
        raise translated from error
