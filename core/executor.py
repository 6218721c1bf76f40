import asyncio
import base64
import os
from typing import Any, Dict, Optional
from core.page_pool import ManagedPage, wait_for_load
from models.task import Task
from utils.exceptions import TaskTimeoutError
from utils.helpers import same_page_url
from utils.logger import setup_logger
from config.settings import settings

logger = setup_logger(__name__)

SCREENSHOT_ACTION = "screenshot"


class TaskExecutor:
    """Runs one task on the page it was given and returns the agent-shaped result."""

    def __init__(
        self,
        dispatch_timeout: Optional[float] = None,
        page_load_timeout_ms: Optional[int] = None,
        settle_seconds: Optional[float] = None,
        screenshot_dir: Optional[str] = None
    ):
        self.dispatch_timeout = dispatch_timeout or settings.TASK_DISPATCH_TIMEOUT
        self.page_load_timeout_ms = page_load_timeout_ms or settings.PAGE_LOAD_TIMEOUT
        self.settle_seconds = (
            settle_seconds if settle_seconds is not None else settings.NAVIGATION_SETTLE_SECONDS
        )
        self.screenshot_dir = screenshot_dir or settings.SCREENSHOT_DIR

    async def execute(self, task: Task, managed: ManagedPage) -> Dict[str, Any]:
        """
        Navigate if needed, then run the action.

        Returns:
            ``{status, data?, error?}``. Navigation failures propagate as
            ``NavigationError`` for the controller to turn into an error result.
        """
        if managed.freshly_loaded:
            # Redirects and URL normalization leave page.url != target_url
            managed.freshly_loaded = False
        elif task.target_url and not same_page_url(managed.page.url, task.target_url):
            logger.info(f"Navigating {managed.handle} to {task.target_url}")
            await wait_for_load(managed.page, task.target_url, self.page_load_timeout_ms, self.settle_seconds)

        if task.action == SCREENSHOT_ACTION:
            return await self.capture_screenshot(managed, task.params)

        return await self.dispatch(task, managed)

    async def dispatch(self, task: Task, managed: ManagedPage) -> Dict[str, Any]:
        """Hand ``{action, params}`` to the page agent, bounded by the dispatch timeout."""
        message = {"action": task.action, "params": dict(task.params)}
        pending = asyncio.ensure_future(managed.agent.handle(message))

        done, _ = await asyncio.wait({pending}, timeout=self.dispatch_timeout)
        if pending in done:
            return pending.result()

        # The action keeps running in the page; whatever it returns is dropped
        pending.add_done_callback(lambda fut: self._discard_late(task.id, fut))
        logger.warning(f"Task {task.id} ({task.action}) timed out after {self.dispatch_timeout:g}s")
        return {"status": "error", "error": str(TaskTimeoutError(task.id, self.dispatch_timeout))}

    @staticmethod
    def _discard_late(task_id: str, fut: asyncio.Future):
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.debug(f"Late failure for task {task_id} discarded: {exc}")
        else:
            logger.info(f"Late response for task {task_id} discarded: {fut.result().get('status')}")

    async def capture_screenshot(self, managed: ManagedPage, params: Dict[str, Any]) -> Dict[str, Any]:
        """PNG of the visible viewport as a data URL; ``filename`` also writes it to disk."""
        png = await managed.page.screenshot(type="png", full_page=False)
        data: Dict[str, Any] = {
            "image": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
            "format": "png",
            "url": managed.page.url,
        }

        filename = params.get("filename")
        if filename:
            os.makedirs(self.screenshot_dir, exist_ok=True)
            path = os.path.join(self.screenshot_dir, os.path.basename(str(filename)))
            with open(path, "wb") as f:
                f.write(png)
            data["path"] = path
            logger.info(f"Screenshot saved: {path}")

        return {"status": "success", "data": data}
