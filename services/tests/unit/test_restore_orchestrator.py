"""Unit tests for table-ordered restore orchestration."""

from __future__ import annotations

from typing import Sequence

from qreport.backup.models import TABLE_ORDER, DatabaseBackup
from qreport.backup.progress import CancellationToken, final_event
from qreport.backup.restore import (
    InMemoryRecordStore,
    RestoreOrchestrator,
    RestoreSelection,
    RestoreStatus,
    RestoreStrategy,
)


class RecordingSink(InMemoryRecordStore):
    """In-memory sink that records call order and can fail on one table."""

    def __init__(self, fail_on: str | None = None) -> None:
        super().__init__()
        self.calls: list[tuple[str, str, int]] = []
        self._fail_on = fail_on

    def clear(self, table: str) -> None:
        self.calls.append(("clear", table, 0))
        super().clear(table)

    def insert(self, table: str, records: Sequence[dict]) -> None:
        if table == self._fail_on:
            raise RuntimeError("constraint violated")
        self.calls.append(("insert", table, len(records)))
        super().insert(table, records)

    def upsert(self, table: str, records: Sequence[dict]) -> None:
        if table == self._fail_on:
            raise RuntimeError("constraint violated")
        self.calls.append(("upsert", table, len(records)))
        super().upsert(table, records)


def _database() -> DatabaseBackup:
    return DatabaseBackup(
        clients=[{"id": 1, "name": "Acme"}, {"id": 2, "name": "Globex"}],
        facilities=[{"id": 10, "clientId": 1}],
        check_ups=[{"id": 100, "clientId": 1}],
        check_items=[{"id": 1000 + index, "checkUpId": 100} for index in range(5)],
        technical_interventions=[{"id": 7, "clientId": 2}],
    )


def test_replace_all_applies_tables_in_dependency_order() -> None:
    sink = RecordingSink()
    orchestrator = RestoreOrchestrator(sink, batch_size=2)

    events = list(orchestrator.run(_database(), RestoreStrategy.REPLACE_ALL))

    result = events[-1]
    assert result.kind == "completed"
    assert result.count == 10
    cleared = [table for action, table, _ in sink.calls if action == "clear"]
    assert cleared == list(TABLE_ORDER)
    assert sink.count("check_items") == 5
    assert orchestrator.operation is not None
    assert orchestrator.operation.status is RestoreStatus.COMPLETED
    assert orchestrator.operation.applied_tables == list(TABLE_ORDER)


def test_batches_emit_monotonic_progress() -> None:
    sink = RecordingSink()

    events = list(RestoreOrchestrator(sink, batch_size=2).run(_database(), RestoreStrategy.REPLACE_ALL))

    inserts = [count for action, table, count in sink.calls if action == "insert" and table == "check_items"]
    assert inserts == [2, 2, 1]
    processed = [event.processed_count for event in events if event.kind == "in_progress"]
    assert processed == sorted(processed)
    assert processed[-1] == 10
    assert sum(1 for event in events if event.kind != "in_progress") == 1


def test_replace_all_drops_existing_rows() -> None:
    sink = RecordingSink()
    sink.upsert("clients", [{"id": 99, "name": "Stale"}])

    final_event(RestoreOrchestrator(sink).run(_database(), RestoreStrategy.REPLACE_ALL))

    assert {record["id"] for record in sink.records("clients")} == {1, 2}


def test_merge_upserts_and_keeps_unrelated_rows() -> None:
    sink = RecordingSink()
    sink.upsert("clients", [{"id": 1, "name": "Old"}, {"id": 99, "name": "Local only"}])

    result = final_event(RestoreOrchestrator(sink).run(_database(), RestoreStrategy.MERGE))

    assert result.kind == "completed"
    names = {record["id"]: record["name"] for record in sink.records("clients")}
    assert names == {1: "Acme", 2: "Globex", 99: "Local only"}
    assert not any(action == "clear" for action, _, _ in sink.calls)


def test_selective_restore_filters_tables_and_records() -> None:
    sink = RecordingSink()
    selection = RestoreSelection(
        tables=frozenset({"clients", "check_items"}),
        predicate=lambda table, record: table != "check_items" or record["id"] % 2 == 0,
    )

    result = final_event(RestoreOrchestrator(sink).run(_database(), RestoreStrategy.SELECTIVE, selection))

    assert result.kind == "completed"
    assert sink.count("clients") == 2
    assert sink.count("check_items") == 3
    assert sink.count("facilities") == 0


def test_selective_restore_requires_selection() -> None:
    result = final_event(RestoreOrchestrator(RecordingSink()).run(_database(), RestoreStrategy.SELECTIVE))

    assert result.kind == "error"
    assert result.code == "VALIDATION"


def test_cancellation_is_checked_at_table_boundaries() -> None:
    sink = RecordingSink()
    token = CancellationToken()
    orchestrator = RestoreOrchestrator(sink, batch_size=1)
    events = []

    for event in orchestrator.run(_database(), RestoreStrategy.REPLACE_ALL, cancel=token):
        events.append(event)
        if event.kind == "in_progress" and event.current_item == "clients":
            token.cancel()

    result = events[-1]
    assert result.kind == "error"
    assert result.code == "CANCELLED"
    assert sink.count("clients") == 2
    assert result.details["applied_tables"] == ["clients"]
    assert orchestrator.operation.status is RestoreStatus.CANCELLED


def test_failure_reports_applied_tables_without_rollback() -> None:
    sink = RecordingSink(fail_on="check_ups")

    result = final_event(RestoreOrchestrator(sink).run(_database(), RestoreStrategy.REPLACE_ALL))

    assert result.kind == "error"
    assert result.code == "PARTIAL_FAILURE"
    assert result.details["failed_table"] == "check_ups"
    assert result.details["rolled_back"] is False
    assert result.details["applied_tables"] == ["clients", "facilities", "contacts", "contracts", "facility_islands"]
    assert sink.count("clients") == 2


def test_records_without_id_are_skipped_with_warning() -> None:
    database = DatabaseBackup(clients=[{"id": 1}, {"name": "anonymous"}])

    result = final_event(RestoreOrchestrator(RecordingSink()).run(database, RestoreStrategy.MERGE))

    assert result.kind == "completed"
    assert result.count == 1
    assert result.warnings == ("clients: 1 records without id skipped",)
