"""Fake requests.Session backed by a MockGraphTenant.

Implements just enough of Graph for the kit:
- GET on a collection, paged with $skiptoken and @odata.nextLink
- POST on a collection, returning the created object with a new id
- DELETE on collection/{id}, returning 204
Scripted failures return Graph-style error bodies or raise transport errors.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs, urlsplit

from .tenant import MockGraphTenant

MOCK_BASE_URL = "https://graph.microsoft.com/beta"


class MockResponse:
    """Minimal requests.Response stand-in."""

    def __init__(
        self,
        status_code: int,
        payload: Any = None,
        *,
        headers: dict[str, str] | None = None,
        text: str | None = None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self.reason = reason
        if text is not None:
            self.text = text
        elif payload is not None:
            self.text = json.dumps(payload)
        else:
            self.text = ""
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        if not self.text:
            raise ValueError("No JSON body")
        return json.loads(self.text)


class MockGraphSession:
    """Routes HTTP calls to an in-memory tenant."""

    def __init__(self, tenant: MockGraphTenant, base_url: str = MOCK_BASE_URL) -> None:
        self.tenant = tenant
        self.base_url = base_url.rstrip("/")
        self.headers_seen: list[dict[str, str]] = []

    def _split(self, url: str) -> tuple[str, dict[str, list[str]]]:
        parts = urlsplit(url)
        base_path = urlsplit(self.base_url).path
        path = parts.path
        if path.startswith(base_path):
            path = path[len(base_path):]
        return path.strip("/"), parse_qs(parts.query)

    def request(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> MockResponse:
        path, query = self._split(url)
        self.headers_seen.append(dict(headers or {}))
        self.tenant.record(method, path, json)

        failure = self.tenant.take_failure(method, path)
        if failure is not None:
            if failure.raise_exc is not None:
                raise failure.raise_exc
            response_headers = {}
            if failure.retry_after is not None:
                response_headers["Retry-After"] = failure.retry_after
            if failure.body_text is not None:
                return MockResponse(
                    failure.status, text=failure.body_text, headers=response_headers
                )
            return MockResponse(
                failure.status,
                {"error": {"code": failure.code, "message": failure.message}},
                headers=response_headers,
            )

        match method:
            case "GET":
                return self._get(path, query)
            case "POST":
                created = self.tenant.add(path, json or {})
                return MockResponse(201, created)
            case "DELETE":
                collection, _, object_id = path.rpartition("/")
                if self.tenant.remove(collection, object_id):
                    return MockResponse(204)
                return MockResponse(
                    404,
                    {"error": {"code": "ResourceNotFound", "message": f"{object_id} not found"}},
                )
            case _:
                return MockResponse(405, {"error": {"code": "BadRequest", "message": method}})

    def _get(self, path: str, query: dict[str, list[str]]) -> MockResponse:
        items = self.tenant.objects(path)
        skip = int(query.get("$skiptoken", ["0"])[0])
        page_size = self.tenant.page_size
        page = items[skip : skip + page_size]
        payload: dict[str, Any] = {
            "@odata.context": f"{self.base_url}/$metadata#{path}",
            "value": page,
        }
        if skip + page_size < len(items):
            payload["@odata.nextLink"] = f"{self.base_url}/{path}?$skiptoken={skip + page_size}"
        return MockResponse(200, payload)
