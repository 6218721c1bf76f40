import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from models.task import Task, TaskResult, ResultStatus
from utils.helpers import utc_now
from utils.logger import setup_logger
from config.settings import settings

logger = setup_logger(__name__)

class TaskQueue:
    """
    In-memory FIFO of pending browser tasks plus a bounded result log.

    Features:
    - Lazy TTL enforcement (expired tasks are swept on dequeue, never handed out)
    - Most-recent-first result buffer capped at ``max_results``
    - Callback bookkeeping for dequeued tasks that carry a ``callback_url``
    - Statistics tracking

    Nothing is persisted; a restart discards pending tasks and history.
    """

    def __init__(
        self,
        max_results: Optional[int] = None,
        recent_limit: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        callback_grace: Optional[float] = None
    ):
        self.max_results = max_results or settings.MAX_RESULTS
        self.recent_limit = recent_limit or settings.RECENT_RESULTS
        self._clock = clock or utc_now
        # seconds past a task's TTL before its pending callback is given up
        self.callback_grace = callback_grace if callback_grace is not None else settings.TASK_DISPATCH_TIMEOUT
        self._tasks: List[Task] = []
        self._results: List[TaskResult] = []
        # task_id -> (dequeued task, dequeued at), only when a callback is wanted
        self._awaiting_callback: Dict[str, Tuple[Task, datetime]] = {}
        self.stats = {
            'total_enqueued': 0,
            'total_dequeued': 0,
            'total_expired': 0,
            'total_results': 0,
            'total_cancelled': 0,
            'total_callbacks_dropped': 0
        }

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(
        self,
        action: str,
        target_url: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        ttl_seconds: Optional[float] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        callback_url: Optional[str] = None,
        source: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> Task:
        """Append a task to the tail of the queue. No deduplication."""
        task = Task(
            id=id or str(uuid.uuid4()),
            created_at=created_at or self._clock(),
            action=action,
            ttl_seconds=ttl_seconds if ttl_seconds is not None else settings.DEFAULT_TASK_TTL,
            target_url=target_url,
            params=dict(params or {}),
            callback_url=callback_url,
            source=source,
            correlation_id=correlation_id
        )
        self._tasks.append(task)
        self.stats['total_enqueued'] += 1

        logger.info(
            f"Enqueued task {task.id} action={task.action} "
            f"(ttl: {task.ttl_seconds}s, pending: {len(self._tasks)})"
        )
        return task

    def cancel(self, task_id: str) -> int:
        """
        Remove a still-pending task. Returns how many entries were removed.

        Zero removals may mean the task was already dequeued, already expired,
        or never existed; it is only reported, not acted upon.
        """
        before = len(self._tasks)
        self._tasks = [t for t in self._tasks if t.id != task_id]
        removed = before - len(self._tasks)

        if removed == 0:
            logger.warning(
                f"Cancel for task {task_id} removed nothing - possible ghost cancellation "
                f"(already dequeued, expired, or unknown)"
            )
        else:
            self.stats['total_cancelled'] += removed
            logger.info(f"Cancelled task {task_id}")
        return removed

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def dequeue(self) -> Optional[Task]:
        """
        Pop the oldest task that is still within its TTL.

        Expired tasks met on the way are discarded for good and recorded as
        ``expired`` results.
        """
        now = self._clock()
        self._prune_callbacks(now)
        while self._tasks:
            task = self._tasks.pop(0)
            if not task.is_expired(now):
                if task.callback_url:
                    self._awaiting_callback[task.id] = (task, now)
                self.stats['total_dequeued'] += 1
                logger.info(f"Dequeued task {task.id} action={task.action}")
                return task
            self._record_expired(task)
        return None

    def add_result(
        self,
        task_id: str,
        status: ResultStatus,
        data: Any = None,
        error: Optional[str] = None,
        completed_at: Optional[datetime] = None
    ) -> TaskResult:
        """Store a result at the front of the log, dropping the oldest past capacity."""
        result = TaskResult(
            id=str(uuid.uuid4()),
            task_id=task_id,
            status=ResultStatus(status),
            completed_at=completed_at or self._clock(),
            data=data,
            error=error
        )
        self._results.insert(0, result)
        del self._results[self.max_results:]
        self.stats['total_results'] += 1

        logger.debug(f"Stored result {result.id} for task {task_id} ({result.status.value})")
        return result

    def pop_callback_task(self, task_id: str) -> Optional[Task]:
        """Return (once) the dequeued task whose result must go to its callback_url."""
        entry = self._awaiting_callback.pop(task_id, None)
        return entry[0] if entry else None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Summary for dashboards and pollers. Does not sweep expired tasks."""
        now = self._clock()
        return {
            'pending_count': sum(1 for t in self._tasks if not t.is_expired(now)),
            'total_in_queue': len(self._tasks),
            'results_stored': len(self._results),
            'recent_results': [r.to_dict() for r in self._results[:self.recent_limit]]
        }

    def list_pending(self) -> List[Task]:
        now = self._clock()
        return [t for t in self._tasks if not t.is_expired(now)]

    def list_results(self, limit: int = 50) -> List[TaskResult]:
        return self._results[:max(limit, 0)]

    def get_result(self, task_id: str) -> Optional[TaskResult]:
        """Latest stored result for a task id."""
        for result in self._results:
            if result.task_id == task_id:
                return result
        return None

    def clear(self):
        """Drop all pending tasks and results."""
        logger.info(f"Clearing queue ({len(self._tasks)} tasks, {len(self._results)} results)")
        self._tasks = []
        self._results = []
        self._awaiting_callback.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get queue statistics."""
        return {
            **self.stats,
            'max_results': self.max_results,
            'total_in_queue': len(self._tasks)
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _prune_callbacks(self, now: datetime):
        """Forget callback tasks whose result never arrived."""
        for task_id, (task, dequeued_at) in list(self._awaiting_callback.items()):
            if (now - dequeued_at).total_seconds() > task.ttl_seconds + self.callback_grace:
                del self._awaiting_callback[task_id]
                self.stats['total_callbacks_dropped'] += 1
                logger.warning(f"No result for task {task_id} since dequeue, dropping its callback")

    def _record_expired(self, task: Task):
        self.stats['total_expired'] += 1
        logger.info(
            f"Task {task.id} expired after {task.age_seconds(self._clock()):.0f}s "
            f"(ttl {task.ttl_seconds}s) - recording as expired"
        )
        self.add_result(task_id=task.id, status=ResultStatus.EXPIRED)

# Global singleton
task_queue = TaskQueue()
