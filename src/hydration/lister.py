"""Paginated listing of existing Graph objects.

The lister turns a Graph collection into a {display name: ExistingResource}
map. It follows @odata.nextLink to the end: list endpoints routinely span
more than one page and stopping early would make the kit create duplicates.

Listing failures are isolated: a broken endpoint yields an empty map and a
warning, and unrelated kinds in the same run carry on.

KNOWN RISK: when listing fails for a kind, create-mode treats every
definition of that kind as missing and may create duplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .config import MAX_LIST_PAGES
from .graph import GraphClient, GraphRequestError
from .kinds import Endpoint, ResourceKindConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistingResource:
    """An object that already exists in the tenant.

    Attributes:
        id: Server-assigned object id.
        display_name: Natural key.
        marker_field_value: Value of the description/notes field ("" if unset).
        endpoint: Collection the object was listed from (deletes go here).
        extra: Kind-specific properties, e.g. {"state": "disabled"}.
    """

    id: str
    display_name: str
    marker_field_value: str = ""
    endpoint: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


class ResourceLister:
    """Lists existing objects, caching each endpoint for the current run.

    A new lister is created per run, so nothing is cached across runs. The
    reconciler reports its own creates and deletes through remember() and
    forget() so later definitions in the same run see them.
    """

    def __init__(self, client: GraphClient, *, max_pages: int = MAX_LIST_PAGES) -> None:
        self._client = client
        self._max_pages = max_pages
        self._cache: dict[str, dict[str, ExistingResource]] = {}

    def _fetch_items(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        url: str | None = path
        pages = 0

        while url:
            if pages >= self._max_pages:
                # A partial listing would look like missing objects
                raise GraphRequestError(
                    f"Listing {path} did not finish within {self._max_pages} pages"
                )
            page = self._client.get(url)
            pages += 1
            value = page.get("value", [])
            if isinstance(value, list):
                items.extend(item for item in value if isinstance(item, dict))
            url = page.get("@odata.nextLink")

        logger.debug(
            "Listed endpoint",
            extra={"endpoint": path, "pages": pages, "items": len(items)},
        )
        return items

    def list(
        self,
        endpoint: Endpoint,
        *,
        marker_field: str = "description",
        extra_fields: tuple[str, ...] = (),
    ) -> dict[str, ExistingResource]:
        """Map display name to existing object for one collection.

        Args:
            endpoint: Collection to list.
            marker_field: Field that carries the ownership marker.
            extra_fields: Additional properties to keep on each resource.

        Returns:
            The (cached) map. Empty if the listing failed.
        """
        cached = self._cache.get(endpoint.path)
        if cached is not None:
            return cached

        try:
            items = self._fetch_items(endpoint.path)
        except GraphRequestError as e:
            logger.warning(
                "Failed to list existing objects; treating as empty",
                extra={
                    "endpoint": endpoint.path,
                    "error": str(e),
                    "transient": e.is_transient,
                },
            )
            return {}

        resources: dict[str, ExistingResource] = {}
        for item in items:
            name = item.get(endpoint.name_field)
            resource_id = item.get("id")
            if not name or not resource_id:
                continue
            if name in resources:
                logger.debug(
                    "Duplicate display name in listing, keeping first",
                    extra={"endpoint": endpoint.path, "object_name": name, "id": resource_id},
                )
                continue
            resources[name] = ExistingResource(
                id=str(resource_id),
                display_name=name,
                marker_field_value=item.get(marker_field) or "",
                endpoint=endpoint.path,
                extra={key: item.get(key) for key in extra_fields},
            )

        self._cache[endpoint.path] = resources
        return resources

    def list_kind(self, kind_config: ResourceKindConfig) -> dict[str, ExistingResource]:
        """Union of all of a kind's endpoints; the first endpoint wins a name clash."""
        combined: dict[str, ExistingResource] = {}
        for endpoint in kind_config.endpoints:
            listed = self.list(
                endpoint,
                marker_field=kind_config.marker_field,
                extra_fields=kind_config.extra_fields,
            )
            for name, resource in listed.items():
                combined.setdefault(name, resource)
        return combined

    def remember(self, resource: ExistingResource) -> None:
        """Record an object created during this run."""
        cached = self._cache.get(resource.endpoint)
        if cached is not None:
            cached.setdefault(resource.display_name, resource)

    def forget(self, resource: ExistingResource) -> None:
        """Drop an object deleted during this run."""
        cached = self._cache.get(resource.endpoint)
        if cached is not None and cached.get(resource.display_name) == resource:
            del cached[resource.display_name]
