"""
Queue clients used by the controller.

``HttpQueueClient`` talks to a remote queue service over HTTP; ``LocalQueueClient``
wraps an in-process ``TaskQueue`` (embedded controller, tests). Both expose the
same coroutine API and never raise from ``fetch_task``.
"""

import asyncio
from typing import Any, Dict, Optional, Set
import httpx
from core.task_queue import TaskQueue
from models.task import Task, ResultStatus
from utils.exceptions import QueueTransportError
from utils.helpers import utc_now, to_iso
from utils.logger import setup_logger
from utils.retry import RetryConfig, retry_async
from config.settings import settings

logger = setup_logger(__name__)


def normalize_status(value: Any) -> ResultStatus:
    """Unknown statuses are treated as success, matching the result endpoint."""
    try:
        return ResultStatus(value)
    except ValueError:
        logger.warning(f"Unknown result status {value!r}, recording as success")
        return ResultStatus.SUCCESS


class HttpQueueClient:
    """Queue API over ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        prefix: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None
    ):
        self.base_url = (base_url or settings.QUEUE_BASE_URL).rstrip("/")
        self.prefix = prefix if prefix is not None else settings.API_PREFIX
        self.timeout = timeout or settings.QUEUE_REQUEST_TIMEOUT
        self.last_error: Optional[str] = None
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            initial_delay=1.0,
            exceptions=(QueueTransportError,)
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url + self.prefix,
            timeout=self.timeout,
            transport=transport
        )

    async def fetch_task(self) -> Optional[Task]:
        """Dequeue the next task, or None when empty or unreachable."""
        try:
            response = await self._client.get("/tasks")
        except httpx.HTTPError as e:
            self.last_error = str(e) or e.__class__.__name__
            logger.debug(f"Queue unreachable: {self.last_error}")
            return None

        if response.status_code in (204, 404):
            self.last_error = None
            return None
        if not response.is_success:
            self.last_error = f"HTTP {response.status_code}"
            return None

        self.last_error = None
        try:
            task = Task.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            self.last_error = f"Malformed task: {e}"
            logger.error(self.last_error)
            return None

        # The queue checks TTL with its own clock; ours may disagree
        if task.is_expired(utc_now()):
            logger.warning(f"Task {task.id} arrived already expired, skipping")
            await self.post_result(task.id, {"status": ResultStatus.EXPIRED.value})
            return None

        return task

    async def post_result(self, task_id: str, result: Dict[str, Any]) -> bool:
        """Report a terminal result. Returns False once retries are exhausted."""
        body = {
            "status": result.get("status", ResultStatus.ERROR.value),
            "data": result.get("data"),
            "error": result.get("error"),
            "completed_at": to_iso(utc_now())
        }

        async def send():
            try:
                response = await self._client.post(f"/results/{task_id}", json=body)
            except httpx.HTTPError as e:
                raise QueueTransportError(f"Posting result for {task_id} failed: {e}")
            if not response.is_success:
                raise QueueTransportError(f"Posting result for {task_id} failed: HTTP {response.status_code}")
            return response

        try:
            await retry_async(send, config=self.retry_config, operation=f"Result post for {task_id}")
            return True
        except QueueTransportError as e:
            self.last_error = str(e)
            logger.error(self.last_error)
            return False

    async def fetch_queue_status(self) -> Optional[Dict[str, Any]]:
        try:
            response = await self._client.get("/queue")
        except httpx.HTTPError as e:
            self.last_error = str(e) or e.__class__.__name__
            return None
        if not response.is_success:
            self.last_error = f"HTTP {response.status_code}"
            return None
        return response.json()

    async def aclose(self):
        await self._client.aclose()


class LocalQueueClient:
    """Same surface as ``HttpQueueClient`` over an in-process queue."""

    def __init__(self, queue: TaskQueue, on_result=None):
        self.queue = queue
        # on_result(task, stored_result) delivers callbacks for embedded runs
        self.on_result = on_result
        self.last_error: Optional[str] = None
        self._callbacks: Set[asyncio.Task] = set()

    async def fetch_task(self) -> Optional[Task]:
        return self.queue.dequeue()

    async def post_result(self, task_id: str, result: Dict[str, Any]) -> bool:
        stored = self.queue.add_result(
            task_id=task_id,
            status=normalize_status(result.get("status")),
            data=result.get("data"),
            error=result.get("error")
        )
        callback_task = self.queue.pop_callback_task(task_id)
        if callback_task and self.on_result:
            # Not awaited: a slow callback endpoint must not hold up polling
            pending = asyncio.create_task(self.on_result(callback_task, stored))
            self._callbacks.add(pending)
            pending.add_done_callback(self._callback_done)
        return True

    def _callback_done(self, pending: asyncio.Task):
        self._callbacks.discard(pending)
        if pending.cancelled():
            return
        exc = pending.exception()
        if exc is not None:
            logger.error(f"Result callback failed: {exc}")

    async def fetch_queue_status(self) -> Optional[Dict[str, Any]]:
        return self.queue.status()

    async def aclose(self):
        """Wait for callbacks still in flight."""
        if self._callbacks:
            await asyncio.gather(*self._callbacks, return_exceptions=True)
