import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import ValidationError

from core.cron_schedule import validate_cron_expression
from core.cron_types import RUN_HISTORY_LIMIT, CronJob, RunRecord
from core.errors import JobNotFoundError, JobValidationError

logger = logging.getLogger("core.cron_registry")

REQUIRED_FIELDS = ("name", "schedule", "target", "message")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _missing_fields(fields: Dict[str, Any]) -> List[str]:
    missing = []
    for name in REQUIRED_FIELDS:
        value = fields.get(name)
        if name == "target" and value in (None, ""):
            value = fields.get("chatId")
        if value is None or value == "":
            missing.append(name)
    return missing


class JobRegistry:
    """
    Authoritative in-memory store of cron jobs.

    Every mutation goes through a named operation under a single lock, and
    every read hands out a deep copy, so callers listing jobs while a fire
    is being recorded never see a half-updated job.
    """

    def __init__(self, history_limit: int = RUN_HISTORY_LIMIT):
        self.history_limit = history_limit
        self._jobs: Dict[str, CronJob] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def _new_id(self) -> str:
        while True:
            job_id = uuid.uuid4().hex[:12]
            if job_id not in self._jobs:
                return job_id

    def _require(self, job_id: str) -> CronJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def create(self, fields: Dict[str, Any]) -> CronJob:
        """Validate a job definition and register it. Nothing is stored on failure."""
        missing = _missing_fields(fields)
        if missing:
            raise JobValidationError("Missing required fields", missing)
        if not validate_cron_expression(fields["schedule"]):
            raise JobValidationError("Invalid cron expression", ["schedule"])

        definition = {
            key: value
            for key, value in fields.items()
            if key not in ("id", "lastRun", "last_run", "runHistory", "run_history",
                           "createdAt", "created_at", "nextRun", "next_run")
            and value not in (None, "")
        }
        # Anything except an explicit false leaves the job enabled
        definition["enabled"] = fields.get("enabled") is not False

        with self._lock:
            try:
                job = CronJob(id=self._new_id(), created_at=_now(), **definition)
            except ValidationError as e:
                bad = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
                raise JobValidationError(f"Invalid fields: {', '.join(bad)}", bad) from e
            self._jobs[job.id] = job
            logger.debug(f"Registered job {job.id}")
            return job.model_copy(deep=True)

    def get(self, job_id: str) -> CronJob:
        with self._lock:
            return self._require(job_id).model_copy(deep=True)

    def find(self, job_id: str) -> Optional[CronJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list(self) -> List[CronJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._require(job_id)
            del self._jobs[job_id]

    def set_enabled(self, job_id: str, enabled: bool) -> CronJob:
        with self._lock:
            job = self._require(job_id)
            job.enabled = enabled
            return job.model_copy(deep=True)

    def record_run(
        self,
        job_id: str,
        timestamp: datetime,
        status: Literal["ok", "error"],
        error: Optional[str] = None,
    ) -> CronJob:
        """Add an attempt to the job's history, keeping only the newest entries."""
        record = RunRecord(timestamp=timestamp, status=status, error=error)
        with self._lock:
            job = self._require(job_id)
            # Newest first by timestamp, even when concurrent callers arrive out of order
            history = sorted([record, *job.run_history], key=lambda r: r.timestamp, reverse=True)
            job.run_history = history[: self.history_limit]
            job.last_run = timestamp if job.last_run is None else max(job.last_run, timestamp)
            return job.model_copy(deep=True)
