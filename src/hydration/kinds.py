"""Resource kinds managed by the kit and their Graph wiring.

Every kind is described by a single ResourceKindConfig. The reconciler,
lister and template loader are generic and only consult this table for:
- which collection endpoint(s) hold objects of the kind
- which field is the natural key and which field carries the ownership marker
- which fields the server assigns and must be stripped before a create
- which extra state gates deletion (Conditional Access)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ResourceKind(str, Enum):
    """Categories of objects the kit creates."""

    GROUP = "Group"
    FILTER = "Filter"
    COMPLIANCE_POLICY = "CompliancePolicy"
    APP_PROTECTION_POLICY = "AppProtectionPolicy"
    NOTIFICATION_TEMPLATE = "NotificationTemplate"
    ENROLLMENT_PROFILE = "EnrollmentProfile"
    CONDITIONAL_ACCESS_POLICY = "ConditionalAccessPolicy"
    MOBILE_APP = "MobileApp"
    BASELINE_POLICY = "BaselinePolicy"


# Fields assigned by Graph on every resource type
SERVER_ASSIGNED_FIELDS: frozenset[str] = frozenset(
    {"id", "createdDateTime", "lastModifiedDateTime", "@odata.context"}
)


@dataclass(frozen=True)
class Endpoint:
    """A Graph collection holding objects of one kind.

    Attributes:
        path: Collection path relative to the Graph base URL.
        name_field: Payload field used as the natural key.
        odata_types: Payload @odata.type values that are created here.
    """

    path: str
    name_field: str = "displayName"
    odata_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResourceKindConfig:
    """Everything the generic components need to know about one kind."""

    kind: ResourceKind
    endpoints: tuple[Endpoint, ...]
    template_dir: str
    plural_keys: tuple[str, ...]
    required_fields: tuple[str, ...] = ()
    marker_field: str = "description"
    read_only_fields: frozenset[str] = frozenset()
    create_overrides: dict[str, Any] = field(default_factory=dict)
    # Extra state an owned object must be in before it may be deleted
    deletion_state: str | None = None
    extra_fields: tuple[str, ...] = ()

    @property
    def name_fields(self) -> tuple[str, ...]:
        """Distinct natural-key fields across this kind's endpoints."""
        seen: list[str] = []
        for endpoint in self.endpoints:
            if endpoint.name_field not in seen:
                seen.append(endpoint.name_field)
        return tuple(seen)

    @property
    def strip_fields(self) -> frozenset[str]:
        """All fields removed from a payload before it is sent."""
        return SERVER_ASSIGNED_FIELDS | self.read_only_fields

    def name_of(self, payload: dict[str, Any]) -> str | None:
        """Return the natural key of a payload, or None if it has none."""
        for name_field in self.name_fields:
            value = payload.get(name_field)
            if isinstance(value, str) and value:
                return value
        return None

    def endpoint_for(self, payload: dict[str, Any]) -> Endpoint:
        """Choose the collection a payload is created in.

        Routing order: an endpoint claiming the payload's @odata.type, then
        the first endpoint whose natural-key field the payload carries, then
        the first endpoint.
        """
        odata_type = payload.get("@odata.type")
        if odata_type:
            for endpoint in self.endpoints:
                if odata_type in endpoint.odata_types:
                    return endpoint

        for endpoint in self.endpoints:
            if payload.get(endpoint.name_field):
                return endpoint

        return self.endpoints[0]


# =============================================================================
# Kind Registry
# =============================================================================

KIND_CONFIGS: dict[ResourceKind, ResourceKindConfig] = {
    ResourceKind.GROUP: ResourceKindConfig(
        kind=ResourceKind.GROUP,
        endpoints=(Endpoint("groups"),),
        template_dir="Groups",
        plural_keys=("groups",),
        required_fields=("membershipRule",),
        read_only_fields=frozenset(
            {
                "deletedDateTime",
                "renewedDateTime",
                "securityIdentifier",
                "onPremisesSyncEnabled",
                "membershipRuleProcessingStatus",
            }
        ),
    ),
    ResourceKind.FILTER: ResourceKindConfig(
        kind=ResourceKind.FILTER,
        endpoints=(Endpoint("deviceManagement/assignmentFilters"),),
        template_dir="Filters",
        plural_keys=("filters",),
        required_fields=("platform", "rule"),
        read_only_fields=frozenset({"payloads"}),
    ),
    ResourceKind.COMPLIANCE_POLICY: ResourceKindConfig(
        kind=ResourceKind.COMPLIANCE_POLICY,
        endpoints=(
            Endpoint("deviceManagement/deviceCompliancePolicies"),
            # Linux compliance lives in the settings catalog and is keyed by name
            Endpoint(
                "deviceManagement/compliancePolicies",
                name_field="name",
                odata_types=("#microsoft.graph.deviceManagementCompliancePolicy",),
            ),
        ),
        template_dir="Compliance",
        plural_keys=("policies", "compliancePolicies"),
        read_only_fields=frozenset({"version", "settingCount", "creationSource"}),
    ),
    ResourceKind.APP_PROTECTION_POLICY: ResourceKindConfig(
        kind=ResourceKind.APP_PROTECTION_POLICY,
        endpoints=(
            Endpoint(
                "deviceAppManagement/androidManagedAppProtections",
                odata_types=("#microsoft.graph.androidManagedAppProtection",),
            ),
            Endpoint(
                "deviceAppManagement/iosManagedAppProtections",
                odata_types=("#microsoft.graph.iosManagedAppProtection",),
            ),
            Endpoint(
                "deviceAppManagement/windowsManagedAppProtections",
                odata_types=("#microsoft.graph.windowsManagedAppProtection",),
            ),
        ),
        template_dir="AppProtection",
        plural_keys=("policies", "appProtectionPolicies"),
        required_fields=("@odata.type",),
        read_only_fields=frozenset({"version", "isAssigned", "deployedAppCount"}),
    ),
    ResourceKind.NOTIFICATION_TEMPLATE: ResourceKindConfig(
        kind=ResourceKind.NOTIFICATION_TEMPLATE,
        endpoints=(Endpoint("deviceManagement/notificationMessageTemplates"),),
        template_dir="Notifications",
        plural_keys=("templates", "notificationTemplates"),
    ),
    ResourceKind.ENROLLMENT_PROFILE: ResourceKindConfig(
        kind=ResourceKind.ENROLLMENT_PROFILE,
        endpoints=(
            Endpoint(
                "deviceManagement/windowsAutopilotDeploymentProfiles",
                odata_types=(
                    "#microsoft.graph.azureADWindowsAutopilotDeploymentProfile",
                    "#microsoft.graph.activeDirectoryWindowsAutopilotDeploymentProfile",
                ),
            ),
            Endpoint(
                "deviceManagement/deviceEnrollmentConfigurations",
                odata_types=("#microsoft.graph.windows10EnrollmentCompletionPageConfiguration",),
            ),
        ),
        template_dir="Enrollment",
        plural_keys=("profiles", "enrollmentProfiles"),
        read_only_fields=frozenset({"version", "priority"}),
    ),
    ResourceKind.CONDITIONAL_ACCESS_POLICY: ResourceKindConfig(
        kind=ResourceKind.CONDITIONAL_ACCESS_POLICY,
        endpoints=(Endpoint("identity/conditionalAccess/policies"),),
        template_dir="ConditionalAccess",
        plural_keys=("policies", "conditionalAccessPolicies"),
        read_only_fields=frozenset({"modifiedDateTime", "templateId"}),
        create_overrides={"state": "disabled"},
        deletion_state="disabled",
        extra_fields=("state",),
    ),
    ResourceKind.MOBILE_APP: ResourceKindConfig(
        kind=ResourceKind.MOBILE_APP,
        endpoints=(Endpoint("deviceAppManagement/mobileApps"),),
        template_dir="MobileApps",
        plural_keys=("apps", "mobileApps"),
        marker_field="notes",
        read_only_fields=frozenset(
            {
                "uploadState",
                "publishingState",
                "isAssigned",
                "dependentAppCount",
                "supersedingAppCount",
                "supersededAppCount",
            }
        ),
    ),
    ResourceKind.BASELINE_POLICY: ResourceKindConfig(
        kind=ResourceKind.BASELINE_POLICY,
        endpoints=(
            Endpoint(
                "deviceManagement/configurationPolicies",
                name_field="name",
                odata_types=("#microsoft.graph.deviceManagementConfigurationPolicy",),
            ),
            Endpoint("deviceManagement/deviceConfigurations"),
        ),
        template_dir="Baseline",
        plural_keys=("policies", "baselinePolicies"),
        required_fields=("@odata.type",),
        read_only_fields=frozenset({"version", "settingCount", "creationSource", "isAssigned"}),
    ),
}

# Creation order: groups and filters first because policies reference them
KIND_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.GROUP,
    ResourceKind.FILTER,
    ResourceKind.COMPLIANCE_POLICY,
    ResourceKind.APP_PROTECTION_POLICY,
    ResourceKind.NOTIFICATION_TEMPLATE,
    ResourceKind.ENROLLMENT_PROFILE,
    ResourceKind.BASELINE_POLICY,
    ResourceKind.MOBILE_APP,
    ResourceKind.CONDITIONAL_ACCESS_POLICY,
)
