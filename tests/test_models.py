"""Tests for the settings file models."""

import pytest
from pydantic import ValidationError

from hydration.kinds import KIND_ORDER, ResourceKind
from hydration.models import (
    AuthenticationSettings,
    HydrationSettings,
    ImportSettings,
    OptionSettings,
    ReportingSettings,
)


class TestHydrationSettings:
    """Tests for the top-level settings model."""

    def test_defaults(self) -> None:
        """Test that an empty file gives a usable configuration."""
        settings = HydrationSettings.model_validate({})

        assert settings.tenant.environment == "Global"
        assert settings.authentication.mode == "interactive"
        assert settings.options.create is None
        assert settings.options.delete is False
        assert settings.options.kit_name == "Intune-Hydration-Kit"
        assert settings.paths.templates == "./templates"
        assert settings.reporting.formats == ["markdown", "json"]

    def test_unknown_keys_ignored(self) -> None:
        settings = HydrationSettings.model_validate({"tenant": {"tenantId": "x", "extra": 1}})
        assert settings.tenant.tenant_id == "x"


class TestImportSettings:
    def test_baseline_off_by_default(self) -> None:
        kinds = ImportSettings().enabled_kinds()

        assert ResourceKind.BASELINE_POLICY not in kinds
        assert kinds == frozenset(KIND_ORDER) - {ResourceKind.BASELINE_POLICY}

    def test_aliases(self) -> None:
        imports = ImportSettings.model_validate(
            {"conditionalAccess": False, "appProtection": False, "baseline": True}
        )
        kinds = imports.enabled_kinds()

        assert ResourceKind.CONDITIONAL_ACCESS_POLICY not in kinds
        assert ResourceKind.APP_PROTECTION_POLICY not in kinds
        assert ResourceKind.BASELINE_POLICY in kinds


class TestAuthenticationSettings:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Device-Code", "device_code"), (" managed_identity ", "managed_identity")],
    )
    def test_mode_normalized(self, raw: str, expected: str) -> None:
        assert AuthenticationSettings(mode=raw).mode == expected

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValidationError):
            AuthenticationSettings(mode="password")

    def test_secret_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            AuthenticationSettings.model_validate({"clientSecret": "hunter2"})

        assert "HYDRATION_CLIENT_SECRET" in str(exc_info.value)


class TestOptionSettings:
    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OptionSettings.model_validate({"requestDelaySeconds": -0.5})

    def test_empty_kit_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OptionSettings.model_validate({"kitName": ""})


class TestReportingSettings:
    def test_formats_normalized(self) -> None:
        assert ReportingSettings(formats=["Markdown"]).formats == ["markdown"]

    def test_unknown_format(self) -> None:
        with pytest.raises(ValidationError):
            ReportingSettings(formats=["pdf"])
