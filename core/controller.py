import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional
from core.executor import TaskExecutor
from core.page_pool import ManagedPage, PagePool
from core.queue_client import HttpQueueClient
from models.task import Task
from utils.helpers import utc_now, to_iso
from utils.logger import setup_logger
from utils.retry import RetryConfig
from config.settings import settings

logger = setup_logger(__name__)

TERMINAL_STATUSES = ("success", "error")
STOP_GRACE_SECONDS = 5


@dataclass
class ControllerStats:
    connected: bool = False
    pending_count: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    last_poll: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['last_poll'] = to_iso(self.last_poll) if self.last_poll else None
        return data


class AutomationController:
    """
    Single poll loop that pulls tasks off the queue and runs them one at a time.

    Features:
    - At most one task in flight; polls that land mid-task only refresh status
    - Every dispatched task gets exactly one success/error result posted back
    - Backs off while the queue is unreachable
    - Pages are closed after each task unless ``params.keep_page`` (or ``keep_tab``) is set
    """

    def __init__(
        self,
        client=None,
        page_pool: Optional[PagePool] = None,
        executor: Optional[TaskExecutor] = None,
        enabled: Optional[bool] = None,
        poll_interval: Optional[float] = None,
        poll_backoff: Optional[float] = None,
        disabled_interval: Optional[float] = None
    ):
        self.client = client
        self.page_pool = page_pool or PagePool()
        self.executor = executor or TaskExecutor()
        self.enabled = enabled if enabled is not None else settings.CONTROLLER_ENABLED
        self.poll_interval = poll_interval or settings.POLL_INTERVAL
        self.poll_backoff = poll_backoff or settings.POLL_BACKOFF
        self.disabled_interval = disabled_interval or settings.POLL_DISABLED_INTERVAL
        self.stats = ControllerStats()
        self.current_task: Optional[Task] = None
        self._stop_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    async def poll(self) -> Optional[Task]:
        """One pass of the loop. Returns the task that was run, if any."""
        self.stats.last_poll = utc_now()

        try:
            status = await self.client.fetch_queue_status()
        except Exception as e:
            logger.debug(f"Queue status unavailable: {e}")
            status = None
        if status is not None:
            self.stats.pending_count = status.get('pending_count', 0)
        self.stats.connected = status is not None

        if self.current_task is not None:
            logger.debug(f"Task {self.current_task.id} still running, skipping dequeue")
            return None

        task = await self.client.fetch_task()
        self.stats.connected = self.client.last_error is None
        self.stats.last_error = self.client.last_error
        if task is None:
            return None

        await self.run_task(task)
        return task

    async def tick(self) -> float:
        """Run one poll if polling is possible and return the delay before the next."""
        if not self.enabled or self.client is None:
            return self.disabled_interval

        try:
            await self.poll()
        except Exception as e:
            self.stats.connected = False
            self.stats.last_error = str(e)
            logger.error(f"Poll failed: {e}")

        return self.poll_interval if self.stats.connected else self.poll_backoff

    async def run(self):
        """Poll until ``stop()`` is called."""
        logger.info(f"Controller loop started (enabled={self.enabled})")
        while not self._stop_event.is_set():
            delay = await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        logger.info("Controller loop stopped")

    async def start(self):
        """Bring up the page pool and run the loop in the background."""
        if self._loop_task is not None:
            logger.warning("Controller already running")
            return
        await self.page_pool.initialize()
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self.run())

    def task_budget(self) -> float:
        """Upper bound on one run_task, used as the stop() wait."""
        load = self.executor.page_load_timeout_ms / 1000 + self.executor.settle_seconds
        budget = 2 * load + self.executor.dispatch_timeout + STOP_GRACE_SECONDS
        retry = getattr(self.client, 'retry_config', None)
        if isinstance(retry, RetryConfig):
            budget += retry.max_attempts * getattr(self.client, 'timeout', 0) + retry.total_delay()
        return budget

    async def stop(self):
        """Stop polling, then close pages, browser and queue client."""
        self._stop_event.set()
        if self._loop_task is not None:
            try:
                await asyncio.wait_for(self._loop_task, timeout=self.task_budget())
            except asyncio.TimeoutError:
                logger.error("Controller loop did not stop in time, cancelling")
                self._loop_task.cancel()
            self._loop_task = None
        await self.page_pool.cleanup()
        if self.client is not None:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    async def run_task(self, task: Task) -> Dict[str, Any]:
        """Acquire a page, execute, report. Never raises for task-level failures."""
        self.current_task = task
        managed: Optional[ManagedPage] = None
        logger.info(f"Running task {task.id} action={task.action} url={task.target_url}")

        try:
            try:
                managed = await self.page_pool.acquire(task)
                result = self._normalize(await self.executor.execute(task, managed))
            except Exception as e:
                logger.error(f"Task {task.id} failed: {e}")
                result = {"status": "error", "error": str(e) or e.__class__.__name__}

            if result["status"] == "success":
                self.stats.tasks_completed += 1
            else:
                self.stats.tasks_failed += 1

            try:
                if not await self.client.post_result(task.id, result):
                    self.stats.last_error = self.client.last_error
                    logger.error(f"Result for task {task.id} could not be delivered")
            finally:
                if managed is not None and not self.keeps_page(task):
                    await self.page_pool.release(managed)

            logger.info(f"Task {task.id} finished: {result['status']}")
            return result
        finally:
            self.current_task = None

    @staticmethod
    def keeps_page(task: Task) -> bool:
        return bool(task.params.get('keep_page') or task.params.get('keep_tab'))

    @staticmethod
    def _normalize(result: Any) -> Dict[str, Any]:
        if not isinstance(result, dict) or result.get("status") not in TERMINAL_STATUSES:
            return {"status": "error", "error": f"Malformed agent response: {result!r}"}
        return result

    # ------------------------------------------------------------------
    # Status and configuration
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "queue_url": getattr(self.client, "base_url", None),
            "poll_interval": self.poll_interval,
            "poll_backoff": self.poll_backoff,
            "stats": self.stats.to_dict(),
            "managed_pages": len(self.page_pool.pages),
            "current_task": self.current_task.id if self.current_task else None
        }

    async def configure(self, base_url: Optional[str] = None, enabled: Optional[bool] = None):
        """Point the controller at another queue and/or toggle polling."""
        if base_url is not None:
            old = self.client
            self.client = HttpQueueClient(base_url=base_url)
            if old is not None:
                await old.aclose()
            self.stats.connected = False
            self.stats.last_error = None
            logger.info(f"Controller now polling {self.client.base_url}")
        if enabled is not None:
            self.enabled = enabled
            logger.info(f"Controller polling {'enabled' if enabled else 'disabled'}")

    async def test_connection(self) -> Dict[str, Any]:
        if self.client is None:
            return {"ok": False, "error": "No queue configured"}
        status = await self.client.fetch_queue_status()
        if status is None:
            return {"ok": False, "error": self.client.last_error or "Queue unreachable"}
        return {"ok": True, "status": status}
