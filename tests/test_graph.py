"""Tests for the Graph REST client."""

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import pytest
import requests

from graph_mock import (
    MOCK_BASE_URL,
    MockGraphTenant,
    MockResponse,
    SleepRecorder,
    create_mock_client,
    create_mock_credential,
)
from hydration.config import MAX_RETRY_WAIT_SECONDS
from hydration.graph import (
    GraphClient,
    GraphRequestError,
    extract_error_message,
    parse_retry_after,
)


class TestExtractErrorMessage:
    def test_graph_error_body(self) -> None:
        response = MockResponse(
            400, {"error": {"code": "BadRequest", "message": "Invalid membershipRule"}}
        )
        assert extract_error_message(response) == ("Invalid membershipRule", "BadRequest")

    def test_plain_text_body(self) -> None:
        response = MockResponse(500, text="upstream exploded")
        assert extract_error_message(response) == ("upstream exploded", None)

    def test_empty_body_uses_reason(self) -> None:
        response = MockResponse(502, reason="Bad Gateway")
        assert extract_error_message(response) == ("Bad Gateway", None)


class TestParseRetryAfter:
    def test_seconds(self) -> None:
        assert parse_retry_after("7") == 7.0

    def test_missing(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None

    def test_http_date(self) -> None:
        retry_at = datetime.now(UTC) + timedelta(seconds=30)
        wait = parse_retry_after(format_datetime(retry_at, usegmt=True))
        assert wait is not None
        assert 0 < wait <= 30

    def test_garbage(self) -> None:
        assert parse_retry_after("soon") is None


class TestGraphClientRequests:
    def test_get_returns_json(self) -> None:
        tenant = MockGraphTenant()
        tenant.add("groups", {"displayName": "A"})
        client = create_mock_client(tenant)

        data = client.get("groups")

        assert [g["displayName"] for g in data["value"]] == ["A"]

    def test_create_returns_object_with_id(self) -> None:
        tenant = MockGraphTenant()
        client = create_mock_client(tenant)

        created = client.create("groups", {"displayName": "A"})

        assert created["id"]
        assert tenant.find("groups", "A") is not None
        assert tenant.calls[-1].body == {"displayName": "A"}

    def test_delete_targets_object_path(self) -> None:
        tenant = MockGraphTenant()
        stored = tenant.add("groups", {"displayName": "A"})
        client = create_mock_client(tenant)

        client.delete("groups", stored["id"])

        assert tenant.mutating_calls == [("DELETE", f"groups/{stored['id']}")]
        assert tenant.objects("groups") == []

    def test_absolute_url_passed_through(self) -> None:
        tenant = MockGraphTenant()
        tenant.add("groups", {"displayName": "A"})
        client = create_mock_client(tenant)

        data = client.get(f"{MOCK_BASE_URL}/groups")

        assert len(data["value"]) == 1

    def test_bearer_token_attached(self) -> None:
        tenant = MockGraphTenant()
        client = create_mock_client(tenant)

        client.get("groups")

        session = client._session
        assert session.headers_seen[0]["Authorization"] == "Bearer mock-token-1"

    def test_token_is_cached(self) -> None:
        credential = create_mock_credential()
        client = create_mock_client(MockGraphTenant(), credential=credential)

        client.get("groups")
        client.get("groups")

        assert credential.get_token_call_count == 1
        assert credential.get_token_calls[0]["scopes"] == ("https://graph.microsoft.com/.default",)

    def test_token_failure_raises_graph_error(self) -> None:
        credential = create_mock_credential()
        credential.set_failure(True, "consent required")
        client = create_mock_client(MockGraphTenant(), credential=credential)

        with pytest.raises(GraphRequestError) as exc_info:
            client.get("groups")
        assert "consent required" in str(exc_info.value)

    def test_max_retries_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            GraphClient(create_mock_credential(), max_retries=0)


class TestGraphClientErrors:
    def test_non_transient_error_not_retried(self) -> None:
        tenant = MockGraphTenant()
        tenant.fail("POST", "groups", status=400, message="Invalid membershipRule", times=5)
        sleep = SleepRecorder()
        client = create_mock_client(tenant, sleep=sleep)

        with pytest.raises(GraphRequestError) as exc_info:
            client.create("groups", {"displayName": "A"})

        error = exc_info.value
        assert error.status_code == 400
        assert error.code == "BadRequest"
        assert error.message == "Invalid membershipRule"
        assert error.method == "POST"
        assert not error.is_transient
        assert str(error) == "400 BadRequest: Invalid membershipRule"
        assert len(tenant.calls_to("POST")) == 1
        assert sleep.calls == []

    def test_transport_error_wrapped(self) -> None:
        tenant = MockGraphTenant()
        tenant.fail("GET", "groups", raise_exc=requests.ConnectionError("connection reset"))
        client = create_mock_client(tenant)

        with pytest.raises(GraphRequestError) as exc_info:
            client.get("groups")

        assert exc_info.value.status_code is None
        assert "connection reset" in str(exc_info.value)

    def test_not_found(self) -> None:
        client = create_mock_client(MockGraphTenant())

        with pytest.raises(GraphRequestError) as exc_info:
            client.delete("groups", "missing")

        assert exc_info.value.status_code == 404


class TestGraphClientRetry:
    def test_retry_after_honored(self) -> None:
        tenant = MockGraphTenant()
        tenant.fail("GET", "groups", status=429, code="TooManyRequests", retry_after="3")
        sleep = SleepRecorder()
        client = create_mock_client(tenant, sleep=sleep)

        data = client.get("groups")

        assert data["value"] == []
        assert sleep.calls == [3.0]
        assert len(tenant.calls_to("GET", "groups")) == 2

    def test_retry_after_capped(self) -> None:
        tenant = MockGraphTenant()
        tenant.fail("GET", "groups", status=429, retry_after="86400")
        sleep = SleepRecorder()
        client = create_mock_client(tenant, sleep=sleep)

        client.get("groups")

        assert sleep.calls == [MAX_RETRY_WAIT_SECONDS]

    @pytest.mark.parametrize("status", [429, 503, 504])
    def test_exponential_backoff(self, status: int) -> None:
        tenant = MockGraphTenant()
        tenant.fail("POST", "groups", status=status, times=2)
        sleep = SleepRecorder()
        client = create_mock_client(tenant, sleep=sleep, backoff_base_seconds=1)

        created = client.create("groups", {"displayName": "A"})

        assert created["id"]
        assert len(sleep.calls) == 2
        # 1s then 2s, each with up to 20% jitter
        assert 1 <= sleep.calls[0] <= 1.2
        assert 2 <= sleep.calls[1] <= 2.4

    def test_retries_exhausted(self) -> None:
        tenant = MockGraphTenant()
        tenant.fail("GET", "groups", status=503, message="Service unavailable", times=10)
        sleep = SleepRecorder()
        client = create_mock_client(tenant, sleep=sleep, max_retries=3)

        with pytest.raises(GraphRequestError) as exc_info:
            client.get("groups")

        assert exc_info.value.status_code == 503
        assert exc_info.value.is_transient
        assert len(tenant.calls_to("GET", "groups")) == 3
        assert len(sleep.calls) == 2
