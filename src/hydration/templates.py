"""Template loading with validation.

Templates are JSON files, one object per file, a wrapper such as
{"groups": [...]}, or a top-level array. Problems with a single file or
entry never abort the run: they become Failed result records and the
remaining templates are still loaded.

SECURITY: File sizes are checked before reading.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import MAX_TEMPLATE_FILE_SIZE_BYTES
from .kinds import ResourceKind, ResourceKindConfig
from .results import Outcome, ResultRecord

logger = logging.getLogger(__name__)

# Wrapper keys accepted for every kind, in addition to the kind's own
GENERIC_WRAPPER_KEYS: tuple[str, ...] = ("value",)


class TemplateLoadError(Exception):
    """Raised when a template file or entry cannot be used."""

    pass


@dataclass(frozen=True)
class ResourceDefinition:
    """Desired state of one object.

    Attributes:
        kind: Resource kind.
        display_name: Natural key within kind and tenant.
        payload: JSON body as authored in the template.
        marker_field: Payload field that carries the ownership marker.
        source: Template file the definition came from.
    """

    kind: ResourceKind
    display_name: str
    payload: dict[str, Any]
    marker_field: str = "description"
    source: Path | None = None


@dataclass
class LoadResult:
    """Definitions loaded from a directory plus per-file failures."""

    definitions: list[ResourceDefinition] = field(default_factory=list)
    failures: list[ResultRecord] = field(default_factory=list)


def _template_files(directory: Path, recursive: bool) -> list[Path]:
    pattern = "**/*.json" if recursive else "*.json"
    return sorted(p for p in directory.glob(pattern) if p.is_file())


def read_template_file(path: Path) -> Any:
    """Read and parse one template file.

    Raises:
        TemplateLoadError: If the file is too large, unreadable or not JSON.
    """
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise TemplateLoadError(f"Failed to stat template file: {e}") from e

    if file_size > MAX_TEMPLATE_FILE_SIZE_BYTES:
        raise TemplateLoadError(
            f"Template file exceeds maximum size of {MAX_TEMPLATE_FILE_SIZE_BYTES} bytes"
        )

    try:
        # utf-8-sig tolerates the BOM editors on Windows like to add
        content = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateLoadError(f"Failed to read template file: {e}") from e

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise TemplateLoadError(f"Invalid JSON: {e}") from e


def unwrap_entries(data: Any, kind_config: ResourceKindConfig) -> list[Any]:
    """Flatten a parsed template file into a list of candidate entries."""
    if isinstance(data, list):
        return data

    if isinstance(data, dict):
        for key in (*kind_config.plural_keys, *GENERIC_WRAPPER_KEYS):
            wrapped = data.get(key)
            if isinstance(wrapped, list):
                return wrapped
        return [data]

    raise TemplateLoadError(f"Template must be a JSON object or array, got {type(data).__name__}")


def validate_entry(entry: Any, kind_config: ResourceKindConfig) -> str:
    """Check required fields and return the entry's display name.

    Raises:
        TemplateLoadError: If the entry is not an object or misses a field.
    """
    if not isinstance(entry, dict):
        raise TemplateLoadError(f"Template entry must be a JSON object, got {type(entry).__name__}")

    name = kind_config.name_of(entry)
    missing: list[str] = []
    if name is None:
        missing.append(" or ".join(kind_config.name_fields))

    for required in kind_config.required_fields:
        value = entry.get(required)
        if value is None or value == "":
            missing.append(required)

    if name is None or missing:
        raise TemplateLoadError(f"Missing required field(s): {', '.join(missing)}")
    return name


def load_definitions(
    directory: Path,
    kind_config: ResourceKindConfig,
    *,
    recursive: bool = False,
) -> LoadResult:
    """Load every template for one kind from a directory.

    Args:
        directory: Directory holding the kind's JSON templates.
        kind_config: Kind the templates describe.
        recursive: Also descend into subdirectories.

    Returns:
        Valid definitions in file order, plus one Failed record per bad
        file or entry.
    """
    result = LoadResult()
    kind = kind_config.kind

    if not directory.is_dir():
        logger.warning(
            "Template directory not found, skipping kind",
            extra={"kind": kind.value, "directory": str(directory)},
        )
        return result

    for path in _template_files(directory, recursive):
        try:
            entries = unwrap_entries(read_template_file(path), kind_config)
        except TemplateLoadError as e:
            result.failures.append(
                ResultRecord(kind=kind, name=path.name, outcome=Outcome.FAILED, detail=str(e))
            )
            logger.error(
                "Failed to load template file",
                extra={"kind": kind.value, "file": str(path), "error": str(e)},
            )
            continue

        for index, entry in enumerate(entries):
            try:
                name = validate_entry(entry, kind_config)
            except TemplateLoadError as e:
                label = path.name if len(entries) == 1 else f"{path.name}[{index}]"
                result.failures.append(
                    ResultRecord(kind=kind, name=label, outcome=Outcome.FAILED, detail=str(e))
                )
                logger.error(
                    "Invalid template entry",
                    extra={"kind": kind.value, "file": str(path), "index": index, "error": str(e)},
                )
                continue

            result.definitions.append(
                ResourceDefinition(
                    kind=kind,
                    display_name=name,
                    payload=copy.deepcopy(entry),
                    marker_field=kind_config.marker_field,
                    source=path,
                )
            )

    logger.info(
        "Loaded templates",
        extra={
            "kind": kind.value,
            "directory": str(directory),
            "definitions": len(result.definitions),
            "failures": len(result.failures),
        },
    )
    return result
