import httpx
from models.task import Task, TaskResult
from utils.helpers import to_iso
from utils.logger import setup_logger
from config.settings import settings

logger = setup_logger(__name__)

def callback_payload(task: Task, result: TaskResult) -> dict:
    return {
        "task_id": task.id,
        "correlation_id": task.correlation_id,
        "source": task.source,
        "status": result.status.value,
        "data": result.data,
        "error": result.error,
        "completed_at": to_iso(result.completed_at)
    }

async def deliver_callback(task: Task, result: TaskResult, transport: httpx.AsyncBaseTransport = None) -> bool:
    """
    POST a task's result to its callback_url.

    Failures are logged and reported as False; they never touch the queue.
    """
    if not task.callback_url:
        return False

    try:
        async with httpx.AsyncClient(timeout=settings.CALLBACK_TIMEOUT, transport=transport) as client:
            response = await client.post(task.callback_url, json=callback_payload(task, result))
    except httpx.HTTPError as e:
        logger.warning(f"Callback for task {task.id} to {task.callback_url} failed: {e}")
        return False

    if not response.is_success:
        logger.warning(f"Callback for task {task.id} answered HTTP {response.status_code}")
        return False

    logger.info(f"Callback delivered for task {task.id}")
    return True
