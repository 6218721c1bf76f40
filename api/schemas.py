from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any

class TaskCreateRequest(BaseModel):
    # Loosely typed on purpose: TaskValidator produces the 400 messages
    action: Optional[str] = Field(None, description="Action name, e.g. navigate, click, scroll_feed")
    target_url: Optional[str] = Field(None, description="Page the action runs on")
    params: Optional[Dict[str, Any]] = None
    ttl_seconds: Optional[float] = Field(None, description="Seconds the task may wait before it expires")
    callback_url: Optional[str] = Field(None, description="Receives the result once it is reported")
    source: Optional[str] = None
    correlation_id: Optional[str] = None

class ResultSubmission(BaseModel):
    status: str = "success"
    data: Optional[Any] = None
    error: Optional[str] = None
    completed_at: Optional[str] = None

class ResultAccepted(BaseModel):
    ok: bool = True
    result_id: str

class CancelResponse(BaseModel):
    ok: bool
    removed: int

class ClearResponse(BaseModel):
    ok: bool = True
    message: str

class QueueStatusResponse(BaseModel):
    pending_count: int
    total_in_queue: int
    results_stored: int
    recent_results: List[Dict[str, Any]] = []
