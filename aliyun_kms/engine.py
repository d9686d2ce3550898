"""Retry execution engine.

Drives one logical call through as many signed attempts as its runtime
options allow:

    ATTEMPTING -> SUCCESS     2xx + JSON, result returned
               -> BACKOFF     5xx or timeout, sleep then ATTEMPTING again
               -> EXHAUSTED   attempt budget or deadline spent

Terminal outcomes (4xx, malformed body, credential or signing errors)
are raised on first occurrence. Each attempt resolves a fresh
credential and re-signs the query with a new timestamp; nothing else
carries over between attempts, so one engine can serve many concurrent
calls.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from .classifier import (
    Outcome,
    RetryableFailure,
    Success,
    TerminalFailure,
    classify_response,
    classify_transport_error,
)
from .config import DEFAULT_API_VERSION, DEFAULT_RUNTIME_OPTIONS, BackoffPolicy, RuntimeOptions
from .credentials import Credential, CredentialResolver
from .errors import ExhaustionError, RetryableTransportError
from .logging import get_logger, mask_sensitive
from .signer import canonical_query_string, sign

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestSnapshot:
    """The request as it was sent, kept for diagnostics."""
    method: str
    url: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> dict[str, Any]:
        """Loggable view with tokens and the signature masked."""
        return {
            "method": self.method,
            "path": self.path,
            "headers": mask_sensitive(self.headers),
            "params": mask_sensitive(self.params),
        }


@dataclass
class Attempt:
    """One pass through resolve -> sign -> send -> classify."""
    number: int
    request: RequestSnapshot
    outcome: Optional[Outcome] = None
    elapsed: float = 0.0


def backoff_delay(options: RuntimeOptions, attempt: int) -> float:
    """Seconds to wait before retry number `attempt` (1 = first retry)."""
    policy = options.backoff_policy
    period = options.backoff_period

    if attempt <= 0 or policy == BackoffPolicy.NONE:
        return 0.0
    if policy == BackoffPolicy.FIXED:
        return period
    if policy == BackoffPolicy.RANDOM:
        return random.uniform(0, period)
    if policy == BackoffPolicy.EXPONENTIAL:
        return min(period * (2 ** (attempt - 1)), options.backoff_max)
    raise ValueError(f"Unsupported backoff policy: {policy}")


class RetryEngine:
    """
    Executes signed GET requests against one KMS endpoint with retries.

    Example:
        engine = RetryEngine("kms.cn-hangzhou.aliyuncs.com", resolver)
        data = await engine.execute({"Action": "DescribeRegions"}, RuntimeOptions())
    """

    def __init__(
        self,
        endpoint: str,
        resolver: CredentialResolver,
        api_version: str = DEFAULT_API_VERSION,
        http_client: Optional[httpx.AsyncClient] = None,
        protocol: str = "https",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the engine.

        Args:
            endpoint: Host name of the KMS endpoint
            resolver: Source of credentials, consulted before every attempt
            api_version: Value of the Version parameter
            http_client: Client to send with; its TLS settings win over ignore_ssl
            protocol: https or http
            sleep: Coroutine used for backoff waits
            clock: Monotonic clock used for elapsed time and deadlines
        """
        self.endpoint = endpoint
        self.api_version = api_version
        self.protocol = protocol
        self._resolver = resolver
        self._http_client = http_client
        self._owned_clients: dict[bool, httpx.AsyncClient] = {}
        self._sleep = sleep
        self._clock = clock

    def _client(self, ignore_ssl: bool) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        client = self._owned_clients.get(ignore_ssl)
        if client is None:
            client = httpx.AsyncClient(verify=not ignore_ssl)
            self._owned_clients[ignore_ssl] = client
        return client

    async def execute(
        self,
        query: Mapping[str, Any],
        options: Optional[RuntimeOptions] = None,
        method: str = "GET",
    ) -> Any:
        """
        Run the call until it succeeds, fails terminally, or runs out of budget.

        Args:
            query: Unsigned action parameters; not modified
            options: Runtime options, already merged over defaults
            method: HTTP method

        Returns:
            Parsed JSON body of the successful response

        Raises:
            CredentialError: Credentials could not be resolved
            SigningError: The request could not be signed
            TerminalResponseError: 4xx or malformed body
            TransportError: Non-transient network failure
            ExhaustionError: Every attempt failed with a retryable outcome
        """
        options = options or DEFAULT_RUNTIME_OPTIONS
        method = method.upper()
        started = self._clock()
        last: Optional[Attempt] = None

        for attempt in range(options.max_attempts):
            if attempt > 0:
                delay = backoff_delay(options, attempt)
                if options.deadline is not None:
                    remaining = options.deadline - (self._clock() - started)
                    if delay >= remaining:
                        raise self._exhausted(last, attempt, options, deadline_exceeded=True)
                if delay > 0:
                    logger.debug("Backing off", attempt=attempt + 1, delay=round(delay, 3))
                    await self._sleep(delay)

            remaining = None
            if options.deadline is not None:
                remaining = options.deadline - (self._clock() - started)
                if remaining <= 0:
                    raise self._exhausted(last, attempt, options, deadline_exceeded=True)

            try:
                credential = await self._resolve(remaining)
            except asyncio.TimeoutError:
                raise self._exhausted(last, attempt, options, deadline_exceeded=True) from None

            timeout = options.timeout
            if options.deadline is not None:
                remaining = options.deadline - (self._clock() - started)
                if remaining <= 0:
                    raise self._exhausted(last, attempt, options, deadline_exceeded=True)
                timeout = min(timeout, remaining)

            last = await self._attempt(attempt + 1, query, method, credential, options, timeout)
            outcome = last.outcome

            if isinstance(outcome, Success):
                logger.debug(
                    "Request succeeded",
                    attempt=last.number,
                    duration_ms=round(last.elapsed * 1000, 2),
                )
                return outcome.data

            if isinstance(outcome, TerminalFailure):
                logger.debug(
                    "Request failed",
                    attempt=last.number,
                    error=str(outcome.error),
                )
                raise outcome.error

            logger.warning(
                "Retryable failure",
                attempt=last.number,
                max_attempts=options.max_attempts,
                reason=outcome.reason,
                duration_ms=round(last.elapsed * 1000, 2),
            )

        raise self._exhausted(last, options.max_attempts, options)

    async def _resolve(self, remaining: Optional[float]) -> Credential:
        if remaining is None:
            return await self._resolver.resolve()
        return await asyncio.wait_for(self._resolver.resolve(), remaining)

    async def _attempt(
        self,
        number: int,
        query: Mapping[str, Any],
        method: str,
        credential: Credential,
        options: RuntimeOptions,
        timeout: float,
    ) -> Attempt:
        params, _ = sign(dict(query), method, credential, self.api_version)

        headers = {"host": self.endpoint}
        headers.update(credential.headers())
        snapshot = RequestSnapshot(
            method=method,
            url=f"{self.protocol}://{self.endpoint}/?{canonical_query_string(params)}",
            path="/",
            headers=headers,
            params=dict(params),
        )

        logger.debug("Sending request", attempt=number, action=params.get("Action"))
        start = self._clock()
        outcome = await self._send(snapshot, options.ignore_ssl, timeout)
        return Attempt(number=number, request=snapshot, outcome=outcome, elapsed=self._clock() - start)

    async def _send(self, snapshot: RequestSnapshot, ignore_ssl: bool, timeout: float) -> Outcome:
        client = self._client(ignore_ssl)
        request = client.build_request(
            snapshot.method,
            snapshot.url,
            headers=snapshot.headers,
            timeout=timeout,
        )
        try:
            response = await client.send(request)
        except httpx.TransportError as e:
            return classify_transport_error(e)
        return classify_response(response)

    def _exhausted(
        self,
        last: Optional[Attempt],
        attempts: int,
        options: RuntimeOptions,
        deadline_exceeded: bool = False,
    ) -> ExhaustionError:
        request = last.request if last else None
        outcome = last.outcome if last else None

        if deadline_exceeded:
            message = f"Deadline of {options.deadline}s exceeded after {attempts} attempt(s)"
        else:
            message = f"Request failed after {attempts} attempt(s)"
        if request is not None:
            described = request.describe()
            message += f": {described['method']} {described['path']} headers={described['headers']}"
        if isinstance(outcome, RetryableFailure):
            message += f" (last error: {outcome.reason})"

        logger.error(message, attempts=attempts, deadline_exceeded=deadline_exceeded)

        error = ExhaustionError(
            message,
            attempts=attempts,
            last_request=request,
            last_outcome=outcome,
            deadline_exceeded=deadline_exceeded,
        )
        if isinstance(outcome, RetryableFailure):
            error.__cause__ = RetryableTransportError(outcome.reason, status_code=outcome.status_code)
        return error

    async def close(self):
        """Close the HTTP clients this engine created."""
        for client in self._owned_clients.values():
            await client.aclose()
        self._owned_clients.clear()
