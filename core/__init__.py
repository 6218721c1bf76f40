from .task_queue import TaskQueue, task_queue
from .humanize import Humanizer
from .page_agent import PageAgent
from .page_pool import PagePool, ManagedPage
from .executor import TaskExecutor
from .queue_client import HttpQueueClient, LocalQueueClient
from .controller import AutomationController, ControllerStats

__all__ = [
    'TaskQueue',
    'task_queue',
    'Humanizer',
    'PageAgent',
    'PagePool',
    'ManagedPage',
    'TaskExecutor',
    'HttpQueueClient',
    'LocalQueueClient',
    'AutomationController',
    'ControllerStats'
]
