"""Table-by-table restore of database snapshots into a record sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, Protocol, Sequence

from .models.snapshot import TABLE_ORDER, DatabaseBackup, Record
from .progress import CancellationToken, ProgressEmitter, ProgressEvent

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


class RestoreStrategy(str, Enum):
    REPLACE_ALL = "REPLACE_ALL"
    MERGE = "MERGE"
    SELECTIVE = "SELECTIVE"


class RestoreStatus(str, Enum):
    IDLE = "IDLE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class RestoreSelection:
    """Caller-supplied filter for selective restores.

    ``tables`` limits which tables are touched; ``predicate`` is consulted
    per record. Either may be omitted.
    """

    tables: frozenset[str] | None = None
    predicate: Callable[[str, Record], bool] | None = None

    def includes_table(self, table: str) -> bool:
        return self.tables is None or table in self.tables

    def accepts(self, table: str, record: Record) -> bool:
        return self.predicate is None or bool(self.predicate(table, record))


@dataclass
class RestoreOperation:
    strategy: RestoreStrategy
    status: RestoreStatus = RestoreStatus.IDLE
    current_table: str | None = None
    processed_records: int = 0
    total_records: int = 0
    applied_tables: list[str] = field(default_factory=list)


class RecordSink(Protocol):
    """Destination data store for restored records."""

    def clear(self, table: str) -> None: ...

    def insert(self, table: str, records: Sequence[Record]) -> None: ...

    def upsert(self, table: str, records: Sequence[Record]) -> None: ...


class InMemoryRecordStore:
    """Dictionary-backed :class:`RecordSink` keyed by record ``id``."""

    def __init__(self, tables: dict[str, Iterable[Record]] | None = None) -> None:
        self.tables: dict[str, dict[str, Record]] = {name: {} for name in TABLE_ORDER}
        for name, records in (tables or {}).items():
            self.insert(name, list(records))

    def clear(self, table: str) -> None:
        self.tables[table] = {}

    def insert(self, table: str, records: Sequence[Record]) -> None:
        bucket = self.tables.setdefault(table, {})
        for record in records:
            key = str(record["id"])
            if key in bucket:
                raise ValueError(f"duplicate id {key} in {table}")
            bucket[key] = dict(record)

    def upsert(self, table: str, records: Sequence[Record]) -> None:
        bucket = self.tables.setdefault(table, {})
        for record in records:
            bucket[str(record["id"])] = dict(record)

    def count(self, table: str) -> int:
        return len(self.tables.get(table, {}))

    def records(self, table: str) -> list[Record]:
        return list(self.tables.get(table, {}).values())


class RestoreOrchestrator:
    """Apply a :class:`DatabaseBackup` to a sink in dependency order.

    Tables are processed in ``TABLE_ORDER`` so referenced rows exist before
    the rows that reference them. Cancellation is honoured only between
    tables. A failure stops the run and reports the tables already applied;
    those tables are not rolled back.
    """

    def __init__(self, sink: RecordSink, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._sink = sink
        self._batch_size = batch_size
        self._operation: RestoreOperation | None = None

    @property
    def operation(self) -> RestoreOperation | None:
        return self._operation

    def run(
        self,
        database: DatabaseBackup,
        strategy: RestoreStrategy,
        selection: RestoreSelection | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ProgressEvent]:
        strategy = RestoreStrategy(strategy)
        operation = RestoreOperation(strategy=strategy)
        self._operation = operation
        emitter = ProgressEmitter()

        if strategy is RestoreStrategy.SELECTIVE and selection is None:
            operation.status = RestoreStatus.ERROR
            yield emitter.error("Selective restore requires a selection", code="VALIDATION")
            return

        warnings: list[str] = []
        plan = self._plan(database, strategy, selection, warnings)
        operation.total_records = sum(len(records) for _, records in plan)
        emitter.total_count = operation.total_records
        operation.status = RestoreStatus.IN_PROGRESS
        LOGGER.info("Restoring %d records with strategy %s", operation.total_records, strategy.value)

        for table, records in plan:
            if cancel is not None and cancel.cancelled:
                operation.status = RestoreStatus.CANCELLED
                LOGGER.warning("Restore cancelled before table %s", table)
                yield emitter.error(
                    "Restore cancelled",
                    code="CANCELLED",
                    details={"applied_tables": list(operation.applied_tables), "next_table": table},
                )
                return

            operation.current_table = table
            yield emitter.progress(operation.processed_records, table)
            try:
                if strategy is RestoreStrategy.REPLACE_ALL:
                    self._sink.clear(table)
                for start in range(0, len(records), self._batch_size):
                    batch = records[start : start + self._batch_size]
                    if strategy is RestoreStrategy.REPLACE_ALL:
                        self._sink.insert(table, batch)
                    else:
                        self._sink.upsert(table, batch)
                    operation.processed_records += len(batch)
                    yield emitter.progress(operation.processed_records, table)
            except Exception as exc:  # sink failures are reported, never rolled back
                operation.status = RestoreStatus.ERROR
                LOGGER.exception("Restore failed on table %s", table)
                yield emitter.error(
                    f"Restore failed on table {table}: {exc}",
                    code="PARTIAL_FAILURE",
                    details={
                        "applied_tables": list(operation.applied_tables),
                        "failed_table": table,
                        "rolled_back": False,
                    },
                )
                return

            operation.applied_tables.append(table)
            if strategy is RestoreStrategy.REPLACE_ALL:
                self._check_count(table, len(records), warnings)

        operation.current_table = None
        operation.status = RestoreStatus.COMPLETED
        LOGGER.info("Restore completed: %d records across %d tables", operation.processed_records, len(plan))
        yield emitter.completed(operation.processed_records, 0, None, warnings=warnings)

    def _plan(
        self,
        database: DatabaseBackup,
        strategy: RestoreStrategy,
        selection: RestoreSelection | None,
        warnings: list[str],
    ) -> list[tuple[str, list[Record]]]:
        plan: list[tuple[str, list[Record]]] = []
        for table in TABLE_ORDER:
            records = database.table(table)
            if strategy is RestoreStrategy.SELECTIVE and selection is not None:
                if not selection.includes_table(table):
                    continue
                records = [record for record in records if selection.accepts(table, record)]
            keyed = [record for record in records if record.get("id") is not None]
            if len(keyed) != len(records):
                warnings.append(f"{table}: {len(records) - len(keyed)} records without id skipped")
            plan.append((table, keyed))
        return plan

    def _check_count(self, table: str, expected: int, warnings: list[str]) -> None:
        count = getattr(self._sink, "count", None)
        if not callable(count):
            return
        actual = count(table)
        if actual != expected:
            LOGGER.warning("Row count mismatch for %s: expected %d, found %d", table, expected, actual)
            warnings.append(f"{table}: expected {expected} records, found {actual}")


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "InMemoryRecordStore",
    "RecordSink",
    "RestoreOperation",
    "RestoreOrchestrator",
    "RestoreSelection",
    "RestoreStatus",
    "RestoreStrategy",
]
