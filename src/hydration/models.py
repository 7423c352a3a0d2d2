"""Pydantic models for the settings file with validation.

These models provide:
1. Type-safe parsing of settings.json / settings.yaml
2. Validation at the boundary (fail fast, fail loudly)
3. Translation of per-kind import flags to ResourceKinds
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .kinds import ResourceKind
from .ownership import DEFAULT_KIT_NAME

VALID_ENVIRONMENTS = ("Global", "USGov", "USGovDoD", "China")
VALID_AUTH_MODES = (
    "interactive",
    "device_code",
    "client_secret",
    "certificate",
    "managed_identity",
)
VALID_REPORT_FORMATS = ("markdown", "json")


class TenantSettings(BaseModel):
    """Target tenant."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    tenant_id: str = Field("", alias="tenantId")
    tenant_name: str = Field("", alias="tenantName")
    environment: str = "Global"

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(f"environment must be one of {VALID_ENVIRONMENTS}")
        return v


class AuthenticationSettings(BaseModel):
    """How the kit obtains a Graph token."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    mode: str = "interactive"
    client_id: str | None = Field(None, alias="clientId")
    certificate_path: str | None = Field(None, alias="certificatePath")
    client_secret: str | None = Field(None, alias="clientSecret")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        normalized = v.strip().lower().replace("-", "_")
        if normalized not in VALID_AUTH_MODES:
            raise ValueError(f"mode must be one of {VALID_AUTH_MODES}")
        return normalized

    @field_validator("client_secret")
    @classmethod
    def reject_plaintext_secret(cls, v: str | None) -> str | None:
        # Secrets only ever come from the environment
        if v:
            raise ValueError(
                "client secrets must not be stored in the settings file; "
                "set HYDRATION_CLIENT_SECRET instead"
            )
        return v


class OptionSettings(BaseModel):
    """Run behavior."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    # Create is the default mode; only an explicit true conflicts with delete
    create: bool | None = None
    delete: bool = False
    dry_run: bool = Field(False, alias="dryRun")
    force: bool = False
    recursive: bool = False
    kit_name: str = Field(DEFAULT_KIT_NAME, alias="kitName", min_length=1)
    request_delay_seconds: float = Field(0.1, alias="requestDelaySeconds", ge=0)


class ImportSettings(BaseModel):
    """Per-kind enable flags."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    groups: bool = True
    filters: bool = True
    compliance_policies: bool = Field(True, alias="compliancePolicies")
    app_protection: bool = Field(True, alias="appProtection")
    notification_templates: bool = Field(True, alias="notificationTemplates")
    enrollment_profiles: bool = Field(True, alias="enrollmentProfiles")
    conditional_access: bool = Field(True, alias="conditionalAccess")
    mobile_apps: bool = Field(True, alias="mobileApps")
    baseline: bool = False

    def enabled_kinds(self) -> frozenset[ResourceKind]:
        """Kinds whose import flag is set."""
        flags = {
            ResourceKind.GROUP: self.groups,
            ResourceKind.FILTER: self.filters,
            ResourceKind.COMPLIANCE_POLICY: self.compliance_policies,
            ResourceKind.APP_PROTECTION_POLICY: self.app_protection,
            ResourceKind.NOTIFICATION_TEMPLATE: self.notification_templates,
            ResourceKind.ENROLLMENT_PROFILE: self.enrollment_profiles,
            ResourceKind.CONDITIONAL_ACCESS_POLICY: self.conditional_access,
            ResourceKind.MOBILE_APP: self.mobile_apps,
            ResourceKind.BASELINE_POLICY: self.baseline,
        }
        return frozenset(kind for kind, enabled in flags.items() if enabled)


class PathSettings(BaseModel):
    """Filesystem locations."""

    model_config = ConfigDict(extra="ignore")

    templates: str = "./templates"
    reports: str = "./Reports"


class ReportingSettings(BaseModel):
    """Report artifacts to write."""

    model_config = ConfigDict(extra="ignore")

    formats: list[str] = Field(default_factory=lambda: list(VALID_REPORT_FORMATS))

    @field_validator("formats")
    @classmethod
    def validate_formats(cls, v: list[str]) -> list[str]:
        normalized = [f.lower() for f in v]
        unknown = [f for f in normalized if f not in VALID_REPORT_FORMATS]
        if unknown:
            raise ValueError(f"unknown report formats {unknown}; valid: {VALID_REPORT_FORMATS}")
        return normalized


class HydrationSettings(BaseModel):
    """Top-level settings file."""

    model_config = ConfigDict(extra="ignore")

    tenant: TenantSettings = Field(default_factory=TenantSettings)
    authentication: AuthenticationSettings = Field(default_factory=AuthenticationSettings)
    options: OptionSettings = Field(default_factory=OptionSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)
