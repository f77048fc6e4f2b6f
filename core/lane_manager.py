import asyncio
import logging
from collections import defaultdict
from typing import Callable, Coroutine, Any, Dict

logger = logging.getLogger("core.lane_manager")

class LaneManager:
    """
    Manages asynchronous task queues per lane ID.

    Each cron job gets its own lane, so fires for one job run one at a time
    in submission order while fires for different jobs run concurrently.
    A worker task lives only while its lane has pending work, which keeps
    slow deliveries off the timer tasks and the request handlers.
    """
    def __init__(self):
        self.lanes: Dict[str, asyncio.Queue] = defaultdict(asyncio.Queue)
        self.workers: Dict[str, asyncio.Task] = {}

    async def submit(
        self,
        lane_id: str,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args,
        **kwargs
    ) -> asyncio.Future:
        """
        Enqueue an async function for a specific lane.
        Returns a Future that will resolve with the function's result.

        Args:
            lane_id: Identifier of the lane (e.g. "cron:<job id>").
            func: The async function to execute.
            *args: Positional arguments for the function.
            **kwargs: Keyword arguments for the function.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        await self.lanes[lane_id].put((func, args, kwargs, future))

        # Start a worker for this lane if one isn't currently running
        if lane_id not in self.workers or self.workers[lane_id].done():
            self.workers[lane_id] = asyncio.create_task(self._process(lane_id))

        return future

    def pending(self, lane_id: str) -> int:
        queue = self.lanes.get(lane_id)
        return queue.qsize() if queue else 0

    async def shutdown(self):
        """Cancel every running worker and drop queued work."""
        workers = list(self.workers.values())
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        for queue in self.lanes.values():
            while not queue.empty():
                _, _, _, future = queue.get_nowait()
                if not future.done():
                    future.cancel()
        self.lanes.clear()
        self.workers.clear()

    async def _process(self, lane_id: str):
        """
        Background worker that consumes the queue for a given lane.
        Exits when the queue is empty.
        """
        logger.debug(f"🚦 Started LaneManager worker for lane: {lane_id}")

        try:
            while not self.lanes[lane_id].empty():
                func, args, kwargs, future = await self.lanes[lane_id].get()

                try:
                    logger.debug(f"🟢 LaneManager executing task for lane: {lane_id}")
                    result = await func(*args, **kwargs)
                    if not future.done():
                        future.set_result(result)
                except asyncio.CancelledError:
                    # The item is already off the queue, so shutdown() cannot reach its future
                    if not future.done():
                        future.cancel()
                    raise
                except Exception as e:
                    logger.error(f"❌ LaneManager task error for lane {lane_id}: {e}", exc_info=True)
                    if not future.done():
                        future.set_exception(e)
                finally:
                    self.lanes[lane_id].task_done()

        except asyncio.CancelledError:
            logger.warning(f"⚠️ LaneManager worker cancelled for lane: {lane_id}")
        finally:
            logger.debug(f"🛑 Stopped LaneManager worker for lane: {lane_id}")
            if self.workers.get(lane_id) is asyncio.current_task():
                del self.workers[lane_id]
            queue = self.lanes.get(lane_id)
            if queue is not None and queue.empty():
                del self.lanes[lane_id]
