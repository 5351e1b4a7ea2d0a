from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from ace_index.remote.errors import (
    AccessDeniedError,
    CertificateVerificationError,
    CredentialRejectedError,
    NetworkFailureError,
)
from ace_index.remote.retry import classify_error, is_retryable_error, with_retry

_REQUEST = httpx.Request("POST", "https://api.example.com/batch-upload")


def _status_error(status: int) -> httpx.HTTPStatusError:
    response = httpx.Response(status, request=_REQUEST)
    return httpx.HTTPStatusError(f"HTTP {status}", request=_REQUEST, response=response)


def _failing(errors: list[BaseException], result: str = "ok") -> Callable[[], str]:
    calls = iter(errors)

    def operation() -> str:
        error = next(calls, None)
        if error is not None:
            raise error
        return result

    return operation


def test_transient_failures_back_off_exponentially() -> None:
    sleeps: list[float] = []
    operation = _failing([httpx.ConnectError("refused"), httpx.ReadTimeout("slow")])

    assert with_retry(operation, sleep=sleeps.append) == "ok"
    assert sleeps == [1.0, 2.0]


def test_base_delay_scales_backoff() -> None:
    sleeps: list[float] = []
    operation = _failing([httpx.ConnectError("refused"), httpx.ConnectError("refused")])

    with_retry(operation, base_delay=2.0, sleep=sleeps.append)

    assert sleeps == [2.0, 4.0]


def test_exhausted_retries_raise_network_failure() -> None:
    sleeps: list[float] = []
    operation = _failing([httpx.ConnectError("refused")] * 3)

    with pytest.raises(NetworkFailureError) as excinfo:
        with_retry(operation, sleep=sleeps.append)

    assert sleeps == [1.0, 2.0]
    assert excinfo.value.reason == "Unable to connect to the server."
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_server_errors_are_retried() -> None:
    sleeps: list[float] = []
    operation = _failing([_status_error(503)] * 3)

    with pytest.raises(NetworkFailureError, match="HTTP 503"):
        with_retry(operation, sleep=sleeps.append)

    assert len(sleeps) == 2


@pytest.mark.parametrize(
    ("status", "expected"),
    [(401, CredentialRejectedError), (403, AccessDeniedError)],
)
def test_auth_failures_are_not_retried(status: int, expected: type[Exception]) -> None:
    sleeps: list[float] = []

    with pytest.raises(expected):
        with_retry(_failing([_status_error(status)]), sleep=sleeps.append)

    assert sleeps == []


def test_certificate_failure_is_fatal() -> None:
    error = httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed")
    sleeps: list[float] = []

    with pytest.raises(CertificateVerificationError):
        with_retry(_failing([error]), sleep=sleeps.append)

    assert sleeps == []


def test_other_errors_propagate_unchanged() -> None:
    client_error = _status_error(400)
    sleeps: list[float] = []

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        with_retry(_failing([client_error]), sleep=sleeps.append)

    assert excinfo.value is client_error
    assert sleeps == []
    with pytest.raises(KeyError):
        with_retry(_failing([KeyError("boom")]), sleep=sleeps.append)


def test_classification_table() -> None:
    assert classify_error(_status_error(401)) == "credential"
    assert classify_error(_status_error(403)) == "access"
    assert classify_error(_status_error(502)) == "server"
    assert classify_error(_status_error(404)) == "other"
    assert classify_error(httpx.ConnectTimeout("slow")) == "timeout"
    assert classify_error(httpx.ConnectError("Name or service not known")) == "dns"
    assert classify_error(httpx.ConnectError("Connection refused")) == "connection"
    assert classify_error(ValueError("nope")) == "other"
    assert is_retryable_error(httpx.ReadTimeout("slow"))
    assert not is_retryable_error(_status_error(401))
