"""Tests for the hydrate command line."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from hydration.cli import cli
from hydration.config import RunMode
from hydration.kinds import ResourceKind

TENANT_ID = "12345678-1234-1234-1234-123456789012"


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    (tmp_path / "templates").mkdir()
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"tenant": {"tenantId": TENANT_ID}, "options": {"requestDelaySeconds": 0}}),
        encoding="utf-8",
    )
    return path


def _invoke(args: list[str], exit_code: int = 0):
    with (
        patch("hydration.cli.setup_logging"),
        patch("hydration.cli.run", return_value=exit_code) as run,
    ):
        result = CliRunner().invoke(cli, args)
    return result, run


class TestHydrateCommand:
    def test_defaults_to_create(self, settings_file: Path) -> None:
        result, run = _invoke(["--settings", str(settings_file)])

        assert result.exit_code == 0
        context = run.call_args.args[0]
        assert context.mode == RunMode.CREATE
        assert context.dry_run is False
        assert context.tenant_id == TENANT_ID

    def test_flags_reach_context(self, settings_file: Path) -> None:
        result, run = _invoke(
            ["-s", str(settings_file), "--dry-run", "--force", "-k", "Group", "-k", "Filter"]
        )

        assert result.exit_code == 0
        context = run.call_args.args[0]
        assert context.dry_run is True
        assert context.force_update is True
        assert context.enabled_kinds == frozenset({ResourceKind.GROUP, ResourceKind.FILTER})

    def test_delete_mode(self, settings_file: Path) -> None:
        result, run = _invoke(["-s", str(settings_file), "--delete"])

        assert result.exit_code == 0
        assert run.call_args.args[0].mode == RunMode.DELETE

    def test_run_exit_code_propagates(self, settings_file: Path) -> None:
        result, _ = _invoke(["-s", str(settings_file)], exit_code=3)

        assert result.exit_code == 3

    def test_missing_settings_is_fatal(self, tmp_path: Path) -> None:
        result, run = _invoke(["-s", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "Settings file not found" in result.output
        run.assert_not_called()

    def test_invalid_combination_is_fatal(self, settings_file: Path) -> None:
        result, run = _invoke(["-s", str(settings_file), "--delete", "--force"])

        assert result.exit_code == 1
        assert "force update only applies to create runs" in result.output
        run.assert_not_called()

    def test_unknown_kind_rejected(self, settings_file: Path) -> None:
        result, run = _invoke(["-s", str(settings_file), "-k", "Printer"])

        assert result.exit_code == 2
        run.assert_not_called()


class TestKindsCommand:
    def test_lists_every_kind(self) -> None:
        result = CliRunner().invoke(cli, ["kinds"])

        assert result.exit_code == 0
        for kind in ResourceKind:
            assert kind.value in result.output
        assert "identity/conditionalAccess/policies" in result.output
