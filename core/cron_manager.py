import logging
import threading
from typing import Any, Dict, List, Optional

from core.cron_executor import DispatchExecutor
from core.cron_registry import JobRegistry
from core.cron_types import CronJob
from core.errors import JobNotFoundError
from core.gateway import TransportGateway, gateway as default_gateway
from core.lane_manager import LaneManager
from core.timer_manager import TimerManager, TimerState

logger = logging.getLogger("core.cron_manager")


class CronManager:
    """
    Public operations on cron jobs.

    Keeps the job registry and the live timers in step: every operation runs
    under one lock, applies the timer transition first and the registry change
    last, and undoes the timer transition if the registry step fails.
    """

    def __init__(
        self,
        gateway: TransportGateway,
        registry: Optional[JobRegistry] = None,
        lanes: Optional[LaneManager] = None,
        timers: Optional[TimerManager] = None,
    ):
        self.gateway = gateway
        self.registry = registry if registry is not None else JobRegistry()
        self.lanes = lanes if lanes is not None else LaneManager()
        self.executor = DispatchExecutor(self.registry, gateway)
        self.timers = timers if timers is not None else TimerManager(self._on_fire)
        self.running = False
        self._lock = threading.RLock()

    async def _on_fire(self, job_id: str) -> None:
        # Hand off to the job's lane; the timer goes back to sleep immediately
        future = await self.lanes.submit(f"cron:{job_id}", self.executor.execute, job_id)
        future.add_done_callback(lambda f: self._fire_done(job_id, f))

    @staticmethod
    def _fire_done(job_id: str, future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"❌ Cron fire for {job_id} failed: {exc}")

    def _project(self, job: CronJob) -> CronJob:
        return job.model_copy(update={"next_run": self.timers.next_fire_at(job.id)})

    # ── Operations ───────────────────────────────────────────

    def create_job(self, fields: Dict[str, Any]) -> CronJob:
        with self._lock:
            job = self.registry.create(fields)
            if job.enabled:
                try:
                    self.timers.arm(job.id, job.schedule)
                except Exception:
                    self.timers.destroy(job.id)
                    self.registry.delete(job.id)
                    raise
            logger.info(f"Added job {job.name} ({job.id}) schedule='{job.schedule}' enabled={job.enabled}")
            return self._project(job)

    def delete_job(self, job_id: str) -> None:
        with self._lock:
            job = self.registry.get(job_id)
            self.timers.destroy(job_id)
            self.registry.delete(job_id)
            logger.info(f"Removed job {job.name} ({job_id})")

    def toggle_job(self, job_id: str) -> CronJob:
        with self._lock:
            job = self.registry.get(job_id)
            enabled = not job.enabled
            if enabled:
                previous = self.timers.state(job_id)
                self.timers.arm(job_id, job.schedule)
            else:
                previous = TimerState.ARMED
                self.timers.disarm(job_id)
            try:
                job = self.registry.set_enabled(job_id, enabled)
            except JobNotFoundError:
                self.timers.destroy(job_id)
                raise
            except Exception:
                self._restore_timer(job_id, job.schedule, previous)
                raise
            logger.info(f"Job {job.name} ({job_id}) {'enabled' if enabled else 'disabled'}")
            return self._project(job)

    def _restore_timer(self, job_id: str, schedule: str, state: TimerState) -> None:
        if state is TimerState.ARMED:
            self.timers.arm(job_id, schedule)
        elif state is TimerState.DISARMED:
            self.timers.disarm(job_id)
        else:
            self.timers.destroy(job_id)

    def get_job(self, job_id: str) -> CronJob:
        return self._project(self.registry.get(job_id))

    def list_jobs(self) -> List[CronJob]:
        return [self._project(job) for job in self.registry.list()]

    async def run_job(self, job_id: str) -> CronJob:
        """Dispatch a job right now through its lane, as if its timer had fired."""
        self.registry.get(job_id)
        future = await self.lanes.submit(f"cron:{job_id}", self.executor.execute, job_id)
        await future
        return self.get_job(job_id)

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self):
        """Arm a timer for every enabled job."""
        if self.running:
            return
        self.running = True
        with self._lock:
            for job in self.registry.list():
                if job.enabled:
                    self.timers.arm(job.id, job.schedule)
        logger.info(f"Cron manager started with {len(self.registry)} jobs.")

    async def stop(self):
        self.running = False
        with self._lock:
            self.timers.shutdown()
        await self.lanes.shutdown()
        logger.info("Cron manager stopped.")


cron_manager = CronManager(default_gateway)
