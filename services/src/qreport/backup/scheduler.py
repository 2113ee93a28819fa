"""Background jobs: deferred share cleanup and periodic backup verification."""

from __future__ import annotations

import json
import logging
import shutil
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .backup_verifier import run_verification
from .config import BackupSettings
from .layout import BackupLayoutManager
from .persistence import write_json_atomic
from .serializer import SnapshotSerializer
from .storage import FileStore

LOGGER = logging.getLogger(__name__)

LAST_VERIFICATION_FILE = "last_verification.json"
VERIFIER_JOB_ID = "backup-verifier"


def delete_path(target: Path) -> bool:
    """Remove ``target`` if present; returns whether anything was deleted."""

    target = Path(target)
    try:
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
    except FileNotFoundError:
        LOGGER.debug("Cleanup target already gone: %s", target)
        return False
    except OSError as exc:
        LOGGER.warning("Failed to clean up %s: %s", target, exc)
        return False
    LOGGER.info("Cleaned up %s", target)
    return True


class CleanupScheduler:
    """One-shot deletion jobs for temporary artifacts such as share bundles."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._owns_scheduler = scheduler is None

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def schedule_deletion(self, target: Path, delay_seconds: float) -> str:
        job_id = f"cleanup-{uuid.uuid4().hex}"
        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            delete_path,
            DateTrigger(run_date=run_at),
            args=[Path(target)],
            id=job_id,
            misfire_grace_time=None,
        )
        LOGGER.info("Scheduled deletion of %s at %s", target, run_at.isoformat())
        return job_id

    def cancel(self, job_id: str) -> bool:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        LOGGER.info("Cancelled cleanup job %s", job_id)
        return True

    def pending_jobs(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]


class VerificationScheduler:
    """Periodic runner that verifies backups and persists the latest report."""

    def __init__(
        self,
        settings: BackupSettings,
        *,
        layout: BackupLayoutManager,
        serializer: SnapshotSerializer,
        store: FileStore,
        interval_seconds: int | None = None,
    ) -> None:
        self._settings = settings
        self._layout = layout
        self._serializer = serializer
        self._store = store
        self._interval = interval_seconds or settings.verifier_interval_seconds
        self._scheduler = BackgroundScheduler(timezone=timezone.utc)
        self._job = None

    @property
    def report_path(self) -> Path:
        return self._settings.state_dir / LAST_VERIFICATION_FILE

    def start(self) -> None:
        if self._job is not None:
            return
        now = datetime.now(timezone.utc)
        trigger = IntervalTrigger(seconds=self._interval, start_date=now)
        # First run happens at startup rather than one interval later.
        self._job = self._scheduler.add_job(
            self.run_once,
            trigger,
            id=VERIFIER_JOB_ID,
            max_instances=1,
            replace_existing=True,
            next_run_time=now,
        )
        self._scheduler.start()
        LOGGER.info("Backup verifier started (interval=%ss)", self._interval)

    def shutdown(self) -> None:
        if self._job is None:
            return
        self._scheduler.shutdown(wait=False)
        self._job = None
        LOGGER.info("Backup verifier stopped")

    def run_once(self) -> dict[str, Any]:
        report = run_verification(
            self._layout,
            self._serializer,
            self._store,
            threshold=self._settings.validation_threshold,
        )
        write_json_atomic(self.report_path, report)
        return report

    def last_report(self) -> dict[str, Any] | None:
        try:
            return json.loads(self.report_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Unable to read verification report %s: %s", self.report_path, exc)
            return None


__all__ = ["CleanupScheduler", "VerificationScheduler", "delete_path"]
