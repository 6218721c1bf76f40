from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional
from utils.helpers import to_iso, parse_iso

class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    EXPIRED = "expired"

@dataclass(frozen=True)
class Task:
    """A unit of requested browser work. Fields never change after creation."""
    id: str
    created_at: datetime
    action: str
    ttl_seconds: float = 300
    target_url: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    callback_url: Optional[str] = None
    source: Optional[str] = None
    correlation_id: Optional[str] = None

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        """True once the task has outlived its TTL."""
        return self.age_seconds(now) > self.ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        """Convert task to its wire representation."""
        data = {
            'id': self.id,
            'created_at': to_iso(self.created_at),
            'ttl_seconds': self.ttl_seconds,
            'action': self.action,
            'target_url': self.target_url,
            'params': dict(self.params),
        }
        for key in ('callback_url', 'source', 'correlation_id'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        """Create task from its wire representation."""
        return cls(
            id=data['id'],
            created_at=parse_iso(data['created_at']),
            action=data['action'],
            ttl_seconds=data.get('ttl_seconds') or 300,
            target_url=data.get('target_url'),
            params=data.get('params') or {},
            callback_url=data.get('callback_url'),
            source=data.get('source'),
            correlation_id=data.get('correlation_id')
        )

@dataclass(frozen=True)
class TaskResult:
    """Terminal outcome of one task."""
    id: str
    task_id: str
    status: ResultStatus
    completed_at: datetime
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'task_id': self.task_id,
            'status': self.status.value,
            'completed_at': to_iso(self.completed_at),
        }
        if self.data is not None:
            data['data'] = self.data
        if self.error is not None:
            data['error'] = self.error
        return data
