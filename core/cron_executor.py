import logging
from datetime import datetime, timezone
from typing import Optional

from core.cron_registry import JobRegistry
from core.cron_types import CronJob
from core.errors import JobNotFoundError, TransportFailure, TransportUnavailable
from core.gateway import TransportGateway

logger = logging.getLogger("core.cron_executor")


class DispatchExecutor:
    """Runs one fire of a cron job: re-check, deliver, record."""

    def __init__(self, registry: JobRegistry, gateway: TransportGateway):
        self.registry = registry
        self.gateway = gateway

    async def execute(self, job_id: str) -> Optional[CronJob]:
        """
        Deliver the job's message once.

        Returns the updated job when an attempt was recorded, or None when the
        fire was skipped (job gone, disabled, or no transport attached).
        Transport errors are recorded in the job's history and never raised.
        """
        job = self.registry.find(job_id)
        if job is None:
            logger.debug(f"Cron fire for {job_id} ignored: job no longer exists")
            return None
        if not job.enabled:
            logger.debug(f"Cron fire for {job_id} ignored: job is disabled")
            return None
        if not self.gateway.is_attached:
            logger.warning(f"⚠️ Cron job {job.name} ({job.id}) skipped: bot is not active")
            return None

        started = datetime.now(timezone.utc)
        logger.info(f"⏰ Executing cron job: {job.name} ({job.id})")
        try:
            await self.gateway.send_message(job.target, job.message)
        except TransportUnavailable:
            logger.warning(f"⚠️ Cron job {job.name} ({job.id}) skipped: bot detached before send")
            return None
        except TransportFailure as e:
            logger.error(f"❌ Failed to send cron message to {job.target}: {e}")
            return self._record(job_id, started, "error", str(e))

        logger.info(f"💬 Cron message sent to {job.target}")
        return self._record(job_id, started, "ok")

    def _record(self, job_id: str, started: datetime, status: str, error: Optional[str] = None) -> Optional[CronJob]:
        try:
            return self.registry.record_run(job_id, started, status, error)
        except JobNotFoundError:
            logger.info(f"Cron job {job_id} was deleted mid-run; discarding result")
            return None
