"""Async HTTP client for the KIE.ai Suno API with API key failover.

Every request is tried against an ordered pool of API keys. A key is skipped
when the upstream rejects it (auth, balance, rate limit), when it does not own
the looked-up task, or when the connection to it fails. Anything else the
upstream says, including failed generations, is returned to the caller.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

from suno_relay.models import UpstreamResponse

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60.0
_CONNECT_TIMEOUT = 10.0
_KEY_SPLIT_RE = re.compile(r"[\r\n,]+")

# Body codes meaning "this key cannot serve the request": unauthorized,
# insufficient credits, rate limited.
REJECTED_CODES = frozenset({401, 402, 429})

GENERATE_PATH = "/api/v1/generate"
COVER_PATH = "/api/v1/generate/upload-cover"
RECORD_INFO_PATH = "/api/v1/generate/record-info"


class RelayError(Exception):
    """Base error for the relay client."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class NoCredentialsError(RelayError):
    """Raised when neither the caller nor the configuration supplies a key."""


class CredentialRejectedError(RelayError):
    """Raised when every key in the pool was rejected by the upstream."""


class TaskNotFoundError(CredentialRejectedError):
    """Raised when no key in the pool can see the requested task."""


class TransientNetworkError(RelayError):
    """Raised when the pool ran out and at least one key failed on the network."""


class ProtocolViolationError(RelayError):
    """Raised when a successful HTTP response carries a non-JSON body."""


@dataclass
class RequestSpec:
    """One logical upstream call, independent of the key used for it.

    Attributes:
        method: HTTP method.
        path: Path relative to the client's base URL.
        params: Query parameters.
        json: JSON body.
        task_lookup: A ``code == 200`` answer without data means the key's
            account does not own the task, so the next key is tried.
    """
    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    json: dict[str, Any] | None = None
    task_lookup: bool = False


def resolve_credentials(
    keys: str | Iterable[str] | None,
    default_key: str | None = None,
) -> list[str]:
    """Build the ordered key pool for one request.

    Args:
        keys: Caller keys, either one string delimited by commas/newlines or a
            sequence of strings. Blank entries are dropped.
        default_key: Configured fallback used when the caller sends none.

    Returns:
        The keys to try, in order.

    Raises:
        NoCredentialsError: If no key is available at all.
    """
    pool: list[str] = []
    if isinstance(keys, str):
        pool = [k.strip() for k in _KEY_SPLIT_RE.split(keys) if k.strip()]
    elif keys:
        pool = [(k or "").strip() for k in keys]
        pool = [k for k in pool if k]

    if not pool and default_key and default_key.strip():
        pool = [default_key.strip()]

    if not pool:
        raise NoCredentialsError("No API keys available: the client sent none and no default is configured")
    return pool


def mask_key(key: str) -> str:
    return f"{key[:5]}..."


class FailoverClient:
    """Async client that walks an API key pool until one key gets an answer.

    Usage::

        async with FailoverClient(default_key="...") as client:
            response = await client.lookup_task("abc123", keys="k1,k2")
            if response.ok:
                print(response.data)
    """

    def __init__(
        self,
        default_key: str | None = None,
        base_url: str = "https://api.kie.ai",
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.default_key = default_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout, connect=_CONNECT_TIMEOUT),
            transport=transport,
        )

    async def __aenter__(self) -> FailoverClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _send(self, request: RequestSpec, key: str) -> httpx.Response:
        logger.debug("%s %s%s params=%s body=%s", request.method, self.base_url,
                     request.path, request.params, request.json)
        return await self._client.request(
            request.method,
            request.path,
            params=request.params or None,
            json=request.json,
            headers={"Authorization": f"Bearer {key}"},
        )

    # ------------------------------------------------------------------
    # Public API — failover
    # ------------------------------------------------------------------

    async def attempt(
        self,
        request: RequestSpec,
        keys: str | Iterable[str] | None = None,
    ) -> UpstreamResponse:
        """Perform ``request`` with each key in turn until one yields a usable answer.

        Args:
            request: The call to make.
            keys: Caller-supplied keys; the configured default is used if empty.

        Returns:
            The first usable upstream response. Business failures reported by
            the upstream (e.g. a failed generation) count as usable.

        Raises:
            NoCredentialsError: No key available.
            ProtocolViolationError: A 2xx/3xx response had an undecodable body.
            TransientNetworkError: Pool exhausted and a key failed on the network.
            TaskNotFoundError: Pool exhausted and no key could see the task.
            CredentialRejectedError: Pool exhausted by rejected keys.
        """
        pool = resolve_credentials(keys, self.default_key)

        network_error: httpx.TransportError | None = None
        last_message = ""
        last_body: Any = None
        last_status: int | None = None
        not_found = 0

        for key in pool:
            masked = mask_key(key)
            logger.info("Trying key %s for %s %s", masked, request.method, request.path)
            try:
                response = await self._send(request, key)
            except httpx.TransportError as exc:
                logger.warning("Key %s: network error: %s", masked, exc)
                network_error = exc
                continue

            try:
                body = response.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                body = None

            if not isinstance(body, dict):
                if response.status_code >= 400:
                    logger.warning("Key %s: non-JSON response with HTTP %d, switching",
                                   masked, response.status_code)
                    last_message = f"HTTP {response.status_code}: non-JSON response"
                    last_status = response.status_code
                    last_body = response.text
                    continue
                raise ProtocolViolationError(
                    f"Non-JSON response from upstream (HTTP {response.status_code})",
                    status_code=response.status_code,
                    body=response.text,
                )

            upstream = UpstreamResponse.from_body(body, http_status=response.status_code)
            last_status = upstream.code
            last_body = body

            if upstream.code in REJECTED_CODES:
                logger.info("Key %s: code %s, switching", masked, upstream.code)
                last_message = upstream.msg or f"API error (code={upstream.code})"
                continue

            if request.task_lookup and upstream.ok and not upstream.data:
                logger.info("Key %s: task not found, switching", masked)
                last_message = upstream.msg or "Task not found"
                not_found += 1
                continue

            return upstream

        if network_error is not None:
            raise TransientNetworkError(
                f"Network error: {network_error}",
                status_code=last_status,
                body=last_body,
            ) from network_error
        if not_found == len(pool):
            raise TaskNotFoundError(
                f"Task not found with any of {len(pool)} key(s)",
                status_code=last_status,
                body=last_body,
            )
        raise CredentialRejectedError(
            f"All keys failed: {last_message}" if last_message else "All keys failed",
            status_code=last_status,
            body=last_body,
        )

    # ------------------------------------------------------------------
    # Public API — generation endpoints
    # ------------------------------------------------------------------

    async def submit(
        self,
        body: dict[str, Any],
        keys: str | Iterable[str] | None = None,
        cover: bool = False,
    ) -> UpstreamResponse:
        """Submit a generation job; ``cover`` selects the upload-cover endpoint."""
        path = COVER_PATH if cover else GENERATE_PATH
        return await self.attempt(RequestSpec("POST", path, json=body), keys)

    async def lookup_task(
        self,
        task_id: str,
        keys: str | Iterable[str] | None = None,
    ) -> UpstreamResponse:
        """Fetch the raw record of a generation task."""
        request = RequestSpec(
            "GET", RECORD_INFO_PATH, params={"taskId": task_id}, task_lookup=True,
        )
        return await self.attempt(request, keys)


def parse_task_id(data: Any) -> str | None:
    """Extract the task id from a submission payload, if present."""
    if isinstance(data, dict):
        for key in ("taskId", "task_id"):
            if data.get(key):
                return str(data[key])
    return None
