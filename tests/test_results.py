"""Tests for result records and aggregation."""

from hydration.kinds import ResourceKind
from hydration.results import Outcome, ResultLog, ResultRecord, aggregate


def _record(kind: ResourceKind, outcome: Outcome, **kwargs) -> ResultRecord:
    return ResultRecord(kind=kind, name=kwargs.pop("name", "obj"), outcome=outcome, **kwargs)


class TestOutcome:
    def test_dry_run_variants(self) -> None:
        assert Outcome.WOULD_CREATE.is_dry_run
        assert Outcome.WOULD_UPDATE.is_dry_run
        assert Outcome.WOULD_DELETE.is_dry_run
        assert not Outcome.CREATED.is_dry_run
        assert not Outcome.SKIPPED.is_dry_run


class TestResultRecord:
    def test_to_dict(self) -> None:
        record = _record(
            ResourceKind.GROUP,
            Outcome.CREATED,
            name="All Windows Devices",
            resource_id="g1",
        )
        data = record.to_dict()

        assert data["kind"] == "Group"
        assert data["name"] == "All Windows Devices"
        assert data["outcome"] == "Created"
        assert data["id"] == "g1"
        assert data["objectRemoved"] is False
        assert "timestamp" in data


class TestResultLog:
    def test_append_preserves_order(self) -> None:
        log = ResultLog()
        log.append(_record(ResourceKind.GROUP, Outcome.CREATED, name="a"))
        log.append(_record(ResourceKind.GROUP, Outcome.SKIPPED, name="b"))

        assert [r.name for r in log] == ["a", "b"]
        assert len(log) == 2

    def test_records_is_a_snapshot(self) -> None:
        log = ResultLog()
        snapshot = log.records
        log.append(_record(ResourceKind.GROUP, Outcome.CREATED))

        assert snapshot == []
        assert len(log.records) == 1


class TestAggregate:
    def test_counts_overall_and_per_kind(self) -> None:
        records = [
            _record(ResourceKind.GROUP, Outcome.CREATED),
            _record(ResourceKind.GROUP, Outcome.CREATED),
            _record(ResourceKind.FILTER, Outcome.SKIPPED),
            _record(ResourceKind.FILTER, Outcome.FAILED),
        ]
        summary = aggregate(records)

        assert summary.total == 4
        assert summary.failed == 1
        assert summary.count(Outcome.CREATED) == 2
        assert summary.count(Outcome.CREATED, ResourceKind.GROUP) == 2
        assert summary.count(Outcome.CREATED, ResourceKind.FILTER) == 0
        assert summary.count(Outcome.SKIPPED, ResourceKind.FILTER) == 1

    def test_counts_removed_objects(self) -> None:
        records = [
            _record(ResourceKind.GROUP, Outcome.FAILED, object_removed=True),
            _record(ResourceKind.GROUP, Outcome.FAILED),
        ]
        assert aggregate(records).removed == 1

    def test_empty(self) -> None:
        summary = aggregate([])
        assert summary.total == 0
        assert summary.to_dict() == {
            "total": 0,
            "byOutcome": {},
            "byKind": {},
            "objectsRemoved": 0,
        }

    def test_to_dict_uses_enum_values(self) -> None:
        summary = aggregate([_record(ResourceKind.MOBILE_APP, Outcome.WOULD_CREATE)])
        data = summary.to_dict()

        assert data["byOutcome"] == {"WouldCreate": 1}
        assert data["byKind"] == {"MobileApp": {"WouldCreate": 1}}
