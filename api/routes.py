from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Response
from api.callbacks import deliver_callback
from api.schemas import (
    TaskCreateRequest,
    ResultSubmission,
    ResultAccepted,
    CancelResponse,
    ClearResponse,
    QueueStatusResponse,
)
from core.queue_client import normalize_status
from core.task_queue import task_queue
from utils.exceptions import ValidationError
from utils.helpers import parse_iso
from utils.logger import setup_logger
from utils.validators import TaskValidator

logger = setup_logger(__name__)

router = APIRouter()

MAX_RESULTS_PAGE = 200

@router.post("/tasks", status_code=201)
async def create_task(body: TaskCreateRequest):
    """
    Enqueue a browser task for the controller.
    """
    try:
        TaskValidator.validate_task_request(body.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    task = task_queue.enqueue(
        action=body.action,
        target_url=body.target_url,
        params=body.params,
        ttl_seconds=body.ttl_seconds,
        callback_url=body.callback_url,
        source=body.source,
        correlation_id=body.correlation_id
    )
    return task.to_dict()

@router.get("/tasks")
async def next_task():
    """
    Hand the oldest live task to the polling controller; 204 when there is none.
    """
    task = task_queue.dequeue()
    if task is None:
        return Response(status_code=204)
    return task.to_dict()

@router.delete("/tasks/{task_id}", response_model=CancelResponse)
async def cancel_task(task_id: str):
    removed = task_queue.cancel(task_id)
    return CancelResponse(ok=removed > 0, removed=removed)

@router.post("/results/{task_id}", response_model=ResultAccepted)
async def submit_result(task_id: str, body: ResultSubmission, background_tasks: BackgroundTasks):
    """
    Record the terminal result of a task and forward it to the task's callback.
    """
    try:
        completed_at = parse_iso(body.completed_at) if body.completed_at else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid completed_at: {body.completed_at}")

    result = task_queue.add_result(
        task_id=task_id,
        status=normalize_status(body.status),
        data=body.data,
        error=body.error,
        completed_at=completed_at
    )

    callback_task = task_queue.pop_callback_task(task_id)
    if callback_task:
        background_tasks.add_task(deliver_callback, callback_task, result)

    return ResultAccepted(result_id=result.id)

@router.get("/results/{task_id}")
async def get_result(task_id: str):
    result = task_queue.get_result(task_id)
    if not result:
        raise HTTPException(status_code=404, detail="Result not found")
    return result.to_dict()

@router.get("/queue", response_model=QueueStatusResponse)
async def queue_status():
    return task_queue.status()

@router.get("/queue/pending")
async def pending_tasks():
    return {"tasks": [t.to_dict() for t in task_queue.list_pending()]}

@router.get("/queue/results")
async def recent_results(limit: int = Query(50, ge=0)):
    results = task_queue.list_results(min(limit, MAX_RESULTS_PAGE))
    return {"results": [r.to_dict() for r in results]}

@router.delete("/queue", response_model=ClearResponse)
async def clear_queue():
    task_queue.clear()
    return ClearResponse(message="Queue cleared")
