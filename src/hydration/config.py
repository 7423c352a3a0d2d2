"""Run configuration with validation.

A RunContext is built once per invocation from the settings file,
HYDRATION_* environment variables and command-line overrides (in increasing
order of precedence), validated, and then threaded through every component.
There is no module-level mutable state.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .kinds import KIND_ORDER, ResourceKind
from .models import VALID_REPORT_FORMATS, HydrationSettings
from .ownership import DEFAULT_KIT_NAME, ownership_marker


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


class RunMode(str, Enum):
    """What a run does. Create and delete never happen in the same run."""

    CREATE = "create"
    DELETE = "delete"


class CloudEnvironment(str, Enum):
    """Microsoft cloud the tenant lives in."""

    GLOBAL = "Global"
    USGOV = "USGov"
    USGOV_DOD = "USGovDoD"
    CHINA = "China"


GRAPH_HOSTS: dict[CloudEnvironment, str] = {
    CloudEnvironment.GLOBAL: "https://graph.microsoft.com",
    CloudEnvironment.USGOV: "https://graph.microsoft.us",
    CloudEnvironment.USGOV_DOD: "https://dod-graph.microsoft.us",
    CloudEnvironment.CHINA: "https://microsoftgraph.chinacloudapi.cn",
}

# Configuration constants with documented bounds
DEFAULT_GRAPH_API_VERSION = "beta"
DEFAULT_REQUEST_DELAY_SECONDS = 0.1
MAX_REQUEST_DELAY_SECONDS = 10.0

DEFAULT_HTTP_TIMEOUT_SECONDS = 60
MAX_REQUEST_RETRIES = 5
RETRY_BACKOFF_BASE_SECONDS = 2
MAX_RETRY_WAIT_SECONDS = 120

# Runaway guard for nextLink pagination
MAX_LIST_PAGES = 1000

MAX_SETTINGS_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max settings file
MAX_TEMPLATE_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB max template file

VALID_TENANT_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


@dataclass(frozen=True)
class AuthConfig:
    """Authentication settings. Secrets are never part of this object."""

    mode: str = "interactive"
    client_id: str | None = None
    certificate_path: Path | None = None


@dataclass(frozen=True)
class RunContext:
    """Everything one run needs, validated at construction time.

    Invalid configurations raise ConfigurationError immediately rather than
    failing halfway through a tenant.
    """

    # Required fields
    tenant_id: str

    tenant_name: str = ""
    environment: CloudEnvironment = CloudEnvironment.GLOBAL
    auth: AuthConfig = field(default_factory=AuthConfig)

    # Behavior
    mode: RunMode = RunMode.CREATE
    dry_run: bool = False
    force_update: bool = False
    recursive: bool = False
    kit_name: str = DEFAULT_KIT_NAME
    enabled_kinds: frozenset[ResourceKind] = frozenset(KIND_ORDER)

    # Paths
    templates_dir: Path = field(default_factory=lambda: Path("templates"))
    reports_dir: Path = field(default_factory=lambda: Path("Reports"))
    report_formats: tuple[str, ...] = VALID_REPORT_FORMATS

    # Graph
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    request_delay_seconds: float = DEFAULT_REQUEST_DELAY_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.tenant_id:
            errors.append("tenant id is required (tenant.tenantId or HYDRATION_TENANT_ID)")
        elif not re.match(VALID_TENANT_ID_PATTERN, self.tenant_id.lower()):
            errors.append(f"tenant id must be a valid GUID: {self.tenant_id}")

        if not self.kit_name.strip():
            errors.append("kit name must not be empty")

        if self.mode == RunMode.DELETE and self.force_update:
            errors.append("force update only applies to create runs")

        if not (0 <= self.request_delay_seconds <= MAX_REQUEST_DELAY_SECONDS):
            errors.append(
                f"request delay must be between 0 and {MAX_REQUEST_DELAY_SECONDS} seconds"
            )

        unknown_formats = [f for f in self.report_formats if f not in VALID_REPORT_FORMATS]
        if unknown_formats:
            errors.append(f"unknown report formats: {unknown_formats}")

        # Templates are only read when creating
        if self.mode == RunMode.CREATE and not self.templates_dir.is_dir():
            errors.append(f"Templates directory does not exist: {self.templates_dir}")

        if self.auth.mode == "certificate":
            if not self.auth.client_id:
                errors.append("certificate authentication requires a client id")
            if self.auth.certificate_path is None or not self.auth.certificate_path.exists():
                errors.append(f"certificate file not found: {self.auth.certificate_path}")

        if self.auth.mode == "client_secret" and not self.auth.client_id:
            errors.append("client secret authentication requires a client id")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def marker(self) -> str:
        """Ownership marker stamped on every created object."""
        return ownership_marker(self.kit_name)

    @property
    def graph_base_url(self) -> str:
        return f"{GRAPH_HOSTS[self.environment]}/{self.graph_api_version}"

    @property
    def graph_scope(self) -> str:
        return f"{GRAPH_HOSTS[self.environment]}/.default"

    def ordered_kinds(self) -> list[ResourceKind]:
        """Enabled kinds in processing order.

        Delete runs go in reverse creation order so policies that reference
        groups and filters are removed before them.
        """
        kinds = [kind for kind in KIND_ORDER if kind in self.enabled_kinds]
        if self.mode == RunMode.DELETE:
            kinds.reverse()
        return kinds

    @classmethod
    def from_settings(
        cls,
        settings: HydrationSettings,
        base_dir: Path | None = None,
        **overrides: Any,
    ) -> RunContext:
        """Build a context from parsed settings, environment and overrides.

        Environment Variables:
            HYDRATION_TENANT_ID: Overrides tenant.tenantId
            HYDRATION_DRY_RUN: If "true", record decisions without mutating
            HYDRATION_FORCE: If "true", recreate objects that already exist
            HYDRATION_TEMPLATES_DIR: Overrides paths.templates
            HYDRATION_REPORTS_DIR: Overrides paths.reports

        Args:
            settings: Validated settings file contents.
            base_dir: Directory relative paths in the settings are resolved
                against (the settings file's directory).
            **overrides: Command-line overrides; None values are ignored.

        Raises:
            ConfigurationError: If the combined configuration is invalid.
        """

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def resolve(path: str) -> Path:
            candidate = Path(path).expanduser()
            if base_dir is not None and not candidate.is_absolute():
                return base_dir / candidate
            return candidate

        options = settings.options
        if options.create and options.delete and overrides.get("mode") is None:
            raise ConfigurationError(
                "Configuration validation failed:\n  - "
                "options.create and options.delete are mutually exclusive"
            )

        try:
            environment = CloudEnvironment(settings.tenant.environment)
        except ValueError as e:
            raise ConfigurationError(f"Unknown environment: {settings.tenant.environment}") from e

        certificate_path = settings.authentication.certificate_path
        values: dict[str, Any] = {
            "tenant_id": os.environ.get("HYDRATION_TENANT_ID") or settings.tenant.tenant_id,
            "tenant_name": settings.tenant.tenant_name,
            "environment": environment,
            "auth": AuthConfig(
                mode=settings.authentication.mode,
                client_id=settings.authentication.client_id,
                certificate_path=resolve(certificate_path) if certificate_path else None,
            ),
            "mode": RunMode.DELETE if options.delete else RunMode.CREATE,
            "dry_run": get_bool("HYDRATION_DRY_RUN", options.dry_run),
            "force_update": get_bool("HYDRATION_FORCE", options.force),
            "recursive": options.recursive,
            "kit_name": options.kit_name,
            "enabled_kinds": settings.imports.enabled_kinds(),
            "templates_dir": resolve(
                os.environ.get("HYDRATION_TEMPLATES_DIR") or settings.paths.templates
            ),
            "reports_dir": resolve(
                os.environ.get("HYDRATION_REPORTS_DIR") or settings.paths.reports
            ),
            "report_formats": tuple(settings.reporting.formats),
            "request_delay_seconds": options.request_delay_seconds,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def load_settings(settings_path: Path) -> HydrationSettings:
    """Load and validate a settings file (JSON or YAML).

    Raises:
        ConfigurationError: If the file cannot be read or fails validation.
    """
    if not settings_path.is_file():
        raise ConfigurationError(f"Settings file not found: {settings_path}")

    try:
        file_size = settings_path.stat().st_size
    except OSError as e:
        raise ConfigurationError(f"Failed to stat settings file {settings_path}: {e}") from e

    if file_size > MAX_SETTINGS_FILE_SIZE_BYTES:
        raise ConfigurationError(
            f"Settings file exceeds maximum size of {MAX_SETTINGS_FILE_SIZE_BYTES} bytes: "
            f"{settings_path}"
        )

    try:
        content = settings_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read settings file {settings_path}: {e}") from e

    # JSON is a subset of YAML, so one parser covers both formats
    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid settings file {settings_path}: {e}") from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(f"Settings file must contain a mapping: {settings_path}")

    try:
        return HydrationSettings.model_validate(raw_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise ConfigurationError(f"Validation failed for {settings_path}:\n{error_list}") from e


def load_run_context(settings_path: Path, **overrides: Any) -> RunContext:
    """Load a settings file and build the run context from it."""
    settings = load_settings(settings_path)
    return RunContext.from_settings(
        settings, base_dir=settings_path.resolve().parent, **overrides
    )
