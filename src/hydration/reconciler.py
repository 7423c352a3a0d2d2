"""Idempotent upsert and tagged-deletion reconciler.

One generic reconciler serves every kind; kind differences live entirely in
ResourceKindConfig. Per object, one decision is taken:

Create-mode run (for each ResourceDefinition):
    name already handled in this pass  -> Skip
    no existing object with that name  -> Create    (POST)
    existing, force-update not set     -> Skip
    existing, not kit-owned            -> Skip
    existing, kit-owned, force-update  -> Update    (DELETE, then POST)

Delete-mode run (for each ExistingResource of the kind):
    not kit-owned                      -> nothing, not even a record
    kit-owned                          -> Delete    (DELETE)

Dry-run applies to every transition: the Would* outcome is recorded and no
mutating call is issued. Planned creates and updates count as handled, so a
dry run reports the same decisions a real run would take.

Force-update deletes, so it passes the same ownership gate as delete mode.

ERROR HANDLING:
Each per-object step converts GraphRequestError into a Failed record, so the
loop over objects always runs to completion. An update whose delete
succeeded but whose recreate failed is recorded with object_removed=True:
the object is now gone from the tenant and the report must say so.

KNOWN RISK: update is delete-then-recreate. Graph offers no dependable
partial update for nested payloads such as settings catalog policies.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .config import RunContext, RunMode
from .graph import GraphClient, GraphRequestError
from .kinds import ResourceKind, ResourceKindConfig
from .lister import ExistingResource, ResourceLister
from .ownership import is_owned, stamp_marker
from .results import Outcome, ResultLog, ResultRecord
from .templates import ResourceDefinition

logger = logging.getLogger(__name__)

_HANDLED_OUTCOMES = frozenset(
    {Outcome.CREATED, Outcome.UPDATED, Outcome.WOULD_CREATE, Outcome.WOULD_UPDATE}
)


@dataclass(frozen=True)
class KindOptions:
    """Per-kind switches the reconciler acts on."""

    kind: ResourceKind
    enabled: bool = True
    force_update: bool = False
    dry_run: bool = False
    remove_existing: bool = False

    @classmethod
    def from_context(cls, context: RunContext, kind: ResourceKind) -> KindOptions:
        return cls(
            kind=kind,
            enabled=kind in context.enabled_kinds,
            force_update=context.force_update,
            dry_run=context.dry_run,
            remove_existing=context.mode == RunMode.DELETE,
        )


def build_request_body(
    kind_config: ResourceKindConfig,
    payload: dict[str, Any],
    marker: str,
) -> dict[str, Any]:
    """Turn a template payload into a creation request body.

    Server-assigned and read-only fields are stripped, kind overrides are
    applied (Conditional Access is always created disabled) and the
    ownership marker is stamped on the kind's marker field. The template
    payload itself is never modified.
    """
    body = {
        key: copy.deepcopy(value)
        for key, value in payload.items()
        if key not in kind_config.strip_fields
    }
    body.update(copy.deepcopy(kind_config.create_overrides))
    body[kind_config.marker_field] = stamp_marker(body.get(kind_config.marker_field), marker)
    return body


class Reconciler:
    """Applies one kind's desired state against the tenant.

    Processing is strictly sequential. A fixed delay follows every creation
    call to stay under Graph throttling limits.
    """

    def __init__(
        self,
        context: RunContext,
        client: GraphClient,
        lister: ResourceLister,
        results: ResultLog,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._context = context
        self._client = client
        self._lister = lister
        self._results = results
        self._sleep = sleep

    def reconcile(
        self,
        kind_config: ResourceKindConfig,
        definitions: Iterable[ResourceDefinition],
        options: KindOptions,
    ) -> list[ResultRecord]:
        """Reconcile one kind and append its records to the result log.

        Args:
            kind_config: Kind being processed.
            definitions: Desired state (ignored in delete mode).
            options: Enable, force, dry-run and delete switches.

        Returns:
            The records produced for this kind.
        """
        if not options.enabled:
            logger.info("Kind disabled, skipping", extra={"kind": kind_config.kind.value})
            return []

        logger.info(
            "Reconciling kind",
            extra={
                "kind": kind_config.kind.value,
                "mode": "delete" if options.remove_existing else "create",
                "dry_run": options.dry_run,
                "force_update": options.force_update,
            },
        )

        if options.remove_existing:
            return self._remove_owned(kind_config, options)
        return self._ensure_definitions(kind_config, definitions, options)

    # =========================================================================
    # Create mode
    # =========================================================================

    def _ensure_definitions(
        self,
        kind_config: ResourceKindConfig,
        definitions: Iterable[ResourceDefinition],
        options: KindOptions,
    ) -> list[ResultRecord]:
        existing = self._lister.list_kind(kind_config)
        # Names created, replaced or planned in this pass; later duplicates skip
        handled: set[str] = set()
        records = []
        for definition in definitions:
            record = self._ensure_one(kind_config, definition, existing, handled, options)
            if record.outcome in _HANDLED_OUTCOMES:
                handled.add(definition.display_name)
            records.append(record)
        return records

    def _ensure_one(
        self,
        kind_config: ResourceKindConfig,
        definition: ResourceDefinition,
        existing: dict[str, ExistingResource],
        handled: set[str],
        options: KindOptions,
    ) -> ResultRecord:
        name = definition.display_name
        match = existing.get(name)

        if name in handled:
            return self._record(
                kind_config,
                name,
                Outcome.SKIPPED,
                resource_id=match.id if match else None,
                detail="Duplicate definition, already processed in this run",
            )

        if match is None:
            if options.dry_run:
                return self._record(kind_config, name, Outcome.WOULD_CREATE, detail="Would create")
            return self._create(kind_config, definition, existing)

        if not options.force_update:
            return self._record(
                kind_config, name, Outcome.SKIPPED, resource_id=match.id, detail="Already exists"
            )

        if not is_owned(
            match.marker_field_value,
            match.extra,
            marker=self._context.marker,
            required_state=kind_config.deletion_state,
        ):
            return self._record(
                kind_config,
                name,
                Outcome.SKIPPED,
                resource_id=match.id,
                detail="Already exists and is not kit-owned, not replaced",
            )

        if options.dry_run:
            return self._record(
                kind_config,
                name,
                Outcome.WOULD_UPDATE,
                resource_id=match.id,
                detail="Would delete and recreate",
            )
        return self._replace(kind_config, definition, match, existing)

    def _post(
        self,
        kind_config: ResourceKindConfig,
        definition: ResourceDefinition,
        existing: dict[str, ExistingResource],
    ) -> ExistingResource:
        """POST a definition and track the new object. Raises GraphRequestError."""
        body = build_request_body(kind_config, definition.payload, self._context.marker)
        endpoint = kind_config.endpoint_for(body)
        try:
            created = self._client.create(endpoint.path, body)
        finally:
            self._sleep(self._context.request_delay_seconds)

        resource = ExistingResource(
            id=str(created.get("id", "")),
            display_name=definition.display_name,
            marker_field_value=body.get(kind_config.marker_field, ""),
            endpoint=endpoint.path,
            extra={key: body.get(key) for key in kind_config.extra_fields},
        )
        existing[definition.display_name] = resource
        self._lister.remember(resource)
        return resource

    def _create(
        self,
        kind_config: ResourceKindConfig,
        definition: ResourceDefinition,
        existing: dict[str, ExistingResource],
    ) -> ResultRecord:
        try:
            created = self._post(kind_config, definition, existing)
        except GraphRequestError as e:
            return self._record(kind_config, definition.display_name, Outcome.FAILED, detail=str(e))
        return self._record(
            kind_config, definition.display_name, Outcome.CREATED, resource_id=created.id
        )

    def _replace(
        self,
        kind_config: ResourceKindConfig,
        definition: ResourceDefinition,
        match: ExistingResource,
        existing: dict[str, ExistingResource],
    ) -> ResultRecord:
        name = definition.display_name
        try:
            self._client.delete(match.endpoint, match.id)
        except GraphRequestError as e:
            return self._record(
                kind_config,
                name,
                Outcome.FAILED,
                resource_id=match.id,
                detail=f"Update failed deleting existing object: {e}",
            )

        existing.pop(name, None)
        self._lister.forget(match)

        try:
            created = self._post(kind_config, definition, existing)
        except GraphRequestError as e:
            return self._record(
                kind_config,
                name,
                Outcome.FAILED,
                resource_id=match.id,
                detail=f"Existing object {match.id} was deleted but recreate failed: {e}",
                object_removed=True,
            )

        return self._record(
            kind_config,
            name,
            Outcome.UPDATED,
            resource_id=created.id,
            detail=f"Replaced {match.id}",
        )

    # =========================================================================
    # Delete mode
    # =========================================================================

    def _remove_owned(
        self, kind_config: ResourceKindConfig, options: KindOptions
    ) -> list[ResultRecord]:
        existing = self._lister.list_kind(kind_config)
        records = []
        for resource in list(existing.values()):
            if not is_owned(
                resource.marker_field_value,
                resource.extra,
                marker=self._context.marker,
                required_state=kind_config.deletion_state,
            ):
                logger.debug(
                    "Not kit-owned, leaving in place",
                    extra={"kind": kind_config.kind.value, "object_name": resource.display_name},
                )
                continue
            records.append(self._delete_one(kind_config, resource, options))
        return records

    def _delete_one(
        self,
        kind_config: ResourceKindConfig,
        resource: ExistingResource,
        options: KindOptions,
    ) -> ResultRecord:
        name = resource.display_name
        if options.dry_run:
            return self._record(
                kind_config,
                name,
                Outcome.WOULD_DELETE,
                resource_id=resource.id,
                detail="Would delete",
            )

        try:
            self._client.delete(resource.endpoint, resource.id)
        except GraphRequestError as e:
            return self._record(
                kind_config, name, Outcome.FAILED, resource_id=resource.id, detail=str(e)
            )

        self._lister.forget(resource)
        return self._record(kind_config, name, Outcome.DELETED, resource_id=resource.id)

    # =========================================================================
    # Recording
    # =========================================================================

    def _record(
        self,
        kind_config: ResourceKindConfig,
        name: str,
        outcome: Outcome,
        *,
        resource_id: str | None = None,
        detail: str = "",
        object_removed: bool = False,
    ) -> ResultRecord:
        record = ResultRecord(
            kind=kind_config.kind,
            name=name,
            outcome=outcome,
            resource_id=resource_id,
            detail=detail,
            object_removed=object_removed,
        )
        self._results.append(record)

        log_level = logging.ERROR if outcome == Outcome.FAILED else logging.INFO
        logger.log(
            log_level,
            "%s %s: %s",
            kind_config.kind.value,
            name,
            outcome.value,
            extra={
                "kind": kind_config.kind.value,
                "object_name": name,
                "outcome": outcome.value,
                "resource_id": resource_id,
                "detail": detail,
            },
        )
        return record
