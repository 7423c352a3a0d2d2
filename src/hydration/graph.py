"""Microsoft Graph REST client.

A thin wrapper around a requests.Session that:
1. Attaches a bearer token from an azure-identity credential
2. Retries transient failures (429/503/504) with exponential backoff,
   honoring a server-supplied Retry-After header
3. Turns every other failure into a GraphRequestError carrying the
   server's error message

Only get/create/delete are exposed: the kit never PATCHes.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

import requests
from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError

from .config import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    MAX_REQUEST_RETRIES,
    MAX_RETRY_WAIT_SECONDS,
    RETRY_BACKOFF_BASE_SECONDS,
)

if TYPE_CHECKING:
    from .config import RunContext

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({429, 503, 504})

# Refresh tokens this long before they expire
TOKEN_REFRESH_BUFFER_SECONDS = 300


class GraphRequestError(Exception):
    """Raised when a Graph call fails terminally.

    Attributes:
        status_code: HTTP status, or None for transport failures.
        code: Graph error code from the response body, if any.
        method: HTTP method of the failed call.
        url: URL of the failed call.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.method = method
        self.url = url

    @property
    def is_transient(self) -> bool:
        return self.status_code in TRANSIENT_STATUS_CODES

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        if self.code:
            return f"{self.status_code} {self.code}: {self.message}"
        return f"{self.status_code}: {self.message}"


def extract_error_message(response: requests.Response) -> tuple[str, str | None]:
    """Pull the human-readable error out of a Graph error response.

    Graph errors look like {"error": {"code": "...", "message": "..."}}.
    Falls back to the raw body, then to the reason phrase.

    Returns:
        (message, code) where code may be None.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"]), error.get("code")
        if isinstance(error, str) and error:
            return error, None

    text = (response.text or "").strip()
    if text:
        return text, None
    return response.reason or f"HTTP {response.status_code}", None


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    return max(0.0, (retry_at - datetime.now(UTC)).total_seconds())


class GraphClient:
    """Minimal Graph REST client with token management and retry.

    SECURITY: Tokens come from an azure-identity credential and are only
    held in memory for their lifetime.
    """

    def __init__(
        self,
        credential: TokenCredential,
        *,
        base_url: str = "https://graph.microsoft.com/beta",
        scope: str = "https://graph.microsoft.com/.default",
        session: requests.Session | None = None,
        max_retries: int = MAX_REQUEST_RETRIES,
        backoff_base_seconds: float = RETRY_BACKOFF_BASE_SECONDS,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._credential = credential
        self._base_url = base_url.rstrip("/")
        self._scope = scope
        self._session = session or requests.Session()
        self._max_retries = max_retries
        self._backoff_base_seconds = backoff_base_seconds
        self._timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._access_token: str | None = None
        self._token_expires_on = 0.0

    @classmethod
    def from_context(
        cls,
        context: RunContext,
        credential: TokenCredential,
        **kwargs: Any,
    ) -> GraphClient:
        """Create a client for the context's cloud and API version."""
        return cls(
            credential,
            base_url=context.graph_base_url,
            scope=context.graph_scope,
            **kwargs,
        )

    def _token(self) -> str:
        now = time.time()
        if self._access_token and now < self._token_expires_on - TOKEN_REFRESH_BUFFER_SECONDS:
            return self._access_token

        try:
            access_token = self._credential.get_token(self._scope)
        except ClientAuthenticationError as e:
            raise GraphRequestError(f"Failed to acquire Graph token: {e}") from e

        self._access_token = access_token.token
        self._token_expires_on = float(access_token.expires_on)
        return self._access_token

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("https://"):
            return endpoint
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    def _retry_wait(self, response: requests.Response, attempt: int) -> float:
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        if retry_after is not None:
            return min(retry_after, MAX_RETRY_WAIT_SECONDS)
        # Exponential backoff with jitter
        backoff = self._backoff_base_seconds * (2 ** (attempt - 1))
        jitter = random.uniform(0, backoff * 0.2)
        return min(backoff + jitter, MAX_RETRY_WAIT_SECONDS)

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue one Graph call, retrying transient failures.

        Args:
            method: HTTP method.
            endpoint: Path relative to the base URL, or an absolute nextLink.
            body: JSON body for POST.

        Returns:
            Parsed JSON response, or an empty dict for empty responses.

        Raises:
            GraphRequestError: On any terminal failure, including exhausted retries.
        """
        url = self._url(endpoint)

        for attempt in range(1, self._max_retries + 1):
            headers = {
                "Authorization": f"Bearer {self._token()}",
                "Content-Type": "application/json",
            }
            try:
                response = self._session.request(
                    method,
                    url,
                    json=body,
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as e:
                raise GraphRequestError(str(e), method=method, url=url) from e

            if response.status_code in TRANSIENT_STATUS_CODES and attempt < self._max_retries:
                wait_time = self._retry_wait(response, attempt)
                logger.warning(
                    "Graph request throttled, retrying",
                    extra={
                        "method": method,
                        "url": url,
                        "status_code": response.status_code,
                        "attempt": attempt,
                        "max_attempts": self._max_retries,
                        "wait_seconds": round(wait_time, 2),
                    },
                )
                self._sleep(wait_time)
                continue

            if response.status_code >= 400:
                message, code = extract_error_message(response)
                raise GraphRequestError(
                    message,
                    status_code=response.status_code,
                    code=code,
                    method=method,
                    url=url,
                )

            if response.status_code == 204 or not response.content:
                return {}
            try:
                data = response.json()
            except ValueError as e:
                raise GraphRequestError(
                    f"Invalid JSON in Graph response: {e}",
                    status_code=response.status_code,
                    method=method,
                    url=url,
                ) from e
            return data if isinstance(data, dict) else {"value": data}

        # SAFETY: the final attempt either returns or raises above
        raise AssertionError("Retry loop completed without a result")

    def get(self, endpoint: str) -> dict[str, Any]:
        return self.request("GET", endpoint)

    def create(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a new object to a collection and return the created object."""
        return self.request("POST", endpoint, body=body)

    def delete(self, endpoint: str, resource_id: str) -> None:
        """DELETE one object from a collection."""
        self.request("DELETE", f"{endpoint.rstrip('/')}/{resource_id}")
