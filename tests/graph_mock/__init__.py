"""Microsoft Graph mock for integration testing.

An in-memory tenant plus a fake requests session, so the real GraphClient,
ResourceLister, Reconciler and Hydrator run end to end without network
access.

Key Features:
- Collections keyed by Graph path, with server-assigned ids
- $skiptoken paging with absolute @odata.nextLink URLs
- Scripted failures (status, Graph error body, Retry-After, transport errors)
- A log of every call for ordering and dry-run assertions

Usage:
    from graph_mock import MockGraphTenant, create_mock_client

    tenant = MockGraphTenant()
    tenant.add("groups", {"displayName": "All Windows Devices"})
    client = create_mock_client(tenant)

    # Your test code here

    assert tenant.mutating_calls == []
"""

from .context import TEST_TENANT_ID, SleepRecorder, create_mock_client, make_context
from .credential import MockCredential, create_mock_credential
from .session import MOCK_BASE_URL, MockGraphSession, MockResponse
from .tenant import MockCall, MockFailure, MockGraphTenant

__all__ = [
    "MOCK_BASE_URL",
    "TEST_TENANT_ID",
    "MockCall",
    "MockCredential",
    "MockFailure",
    "MockGraphSession",
    "MockGraphTenant",
    "MockResponse",
    "SleepRecorder",
    "create_mock_client",
    "create_mock_credential",
    "make_context",
]
