"""Decide whether a response ends the call or earns another attempt."""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from .errors import KMSError, TerminalResponseError, TransportError


@dataclass(frozen=True)
class Success:
    """2xx with a JSON body."""
    data: Any


@dataclass(frozen=True)
class RetryableFailure:
    """5xx or a timed-out attempt."""
    reason: str
    status_code: Optional[int] = None
    body: str = ""


@dataclass(frozen=True)
class TerminalFailure:
    """Anything else. Raised as-is without further attempts."""
    error: KMSError


Outcome = Union[Success, RetryableFailure, TerminalFailure]


def _decode(body: Union[bytes, str]) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def classify(status_code: int, body: Union[bytes, str]) -> Outcome:
    """Classify an HTTP response.

    Args:
        status_code: HTTP status
        body: Raw response body

    Returns:
        Success, RetryableFailure or TerminalFailure
    """
    text = _decode(body)

    if status_code >= 500:
        return RetryableFailure(
            reason=f"server error ({status_code})",
            status_code=status_code,
            body=text,
        )

    try:
        data = json.loads(text)
    except ValueError:
        data = None
        parsed = False
    else:
        parsed = True

    if 200 <= status_code < 300:
        if parsed:
            return Success(data)
        return TerminalFailure(TerminalResponseError(
            f"return value must be json: {text}",
            status_code=status_code,
            body=text,
        ))

    code = message = request_id = None
    if isinstance(data, dict):
        code = data.get("Code")
        message = data.get("Message")
        request_id = data.get("RequestId")

    detail = f"{code}: {message}" if code else (message or text or "Unknown error")
    return TerminalFailure(TerminalResponseError(
        f"Request failed ({status_code}): {detail}",
        status_code=status_code,
        body=text,
        code=code,
        request_id=request_id,
    ))


def classify_response(response: httpx.Response) -> Outcome:
    return classify(response.status_code, response.content)


def classify_transport_error(exc: httpx.TransportError) -> Outcome:
    """Timeouts are retried; other network failures are not."""
    if isinstance(exc, httpx.TimeoutException):
        return RetryableFailure(reason=f"timeout ({type(exc).__name__})")
    return TerminalFailure(TransportError(f"Request could not be sent: {exc}"))
