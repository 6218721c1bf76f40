import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)
from core.page_agent import PageAgent
from models.task import Task
from utils.exceptions import (
    PagePoolError,
    PageInitializationError,
    NavigationError,
    PageLoadTimeoutError,
)
from utils.helpers import origin_of
from utils.logger import setup_logger
from utils.retry import RetryConfig, retry_async
from config.settings import settings

logger = setup_logger(__name__)

AgentFactory = Callable[[Page], PageAgent]


@dataclass
class ManagedPage:
    """A live page owned by the controller, plus the agent running in it."""
    handle: str
    page: Page
    agent: PageAgent
    task_id: str
    origin: Optional[str]
    created_at: float = field(default_factory=time.monotonic)
    # set when the pool itself just loaded the task's target_url
    freshly_loaded: bool = False

    @property
    def is_alive(self) -> bool:
        return not self.page.is_closed()

    async def close(self, timeout: float = 5.0):
        """Safely close the page with timeout."""
        try:
            await asyncio.wait_for(self.page.close(), timeout=timeout)
            logger.debug(f"Page {self.handle} closed")
        except asyncio.TimeoutError:
            logger.error(f"Timeout closing page {self.handle}")
        except PlaywrightError as e:
            # Page may have closed itself
            logger.debug(f"Page {self.handle} already gone: {e}")


async def wait_for_load(page: Page, url: str, timeout_ms: int, settle_seconds: float):
    """Navigate and wait for the load event, then give page scripts a moment."""
    try:
        await page.goto(url, wait_until="load", timeout=timeout_ms)
    except PlaywrightTimeoutError:
        raise PageLoadTimeoutError(url, timeout_ms)
    except PlaywrightError as e:
        raise NavigationError(url, str(e))
    if settle_seconds > 0:
        await asyncio.sleep(settle_seconds)


class PagePool:
    """
    One browser context whose pages are handed out per task.

    At most one page per origin is kept for reuse; pages that died since
    they were last used are evicted when a lookup runs into them.
    """

    def __init__(
        self,
        headless: Optional[bool] = None,
        page_load_timeout_ms: Optional[int] = None,
        settle_seconds: Optional[float] = None,
        agent_factory: Optional[AgentFactory] = None
    ):
        self.headless = headless if headless is not None else settings.HEADLESS
        self.page_load_timeout_ms = page_load_timeout_ms or settings.PAGE_LOAD_TIMEOUT
        self.settle_seconds = settle_seconds if settle_seconds is not None else settings.PAGE_SETTLE_SECONDS
        self.agent_factory = agent_factory or PageAgent
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.pages: Dict[str, ManagedPage] = {}
        self._page_counter = 0
        self._initialized = False

    async def initialize(self):
        """Start Playwright, launch the browser and open a context."""
        if self._initialized:
            logger.warning("Page pool already initialized")
            return

        try:
            async def start_playwright():
                return await async_playwright().start()

            self.playwright = await retry_async(
                start_playwright,
                config=RetryConfig(max_attempts=3, initial_delay=2.0),
                operation="Playwright start"
            )
            playwright = self.playwright

            async def launch_browser():
                return await playwright.chromium.launch(headless=self.headless)

            self.browser = await retry_async(
                launch_browser,
                config=RetryConfig(max_attempts=3, initial_delay=1.0),
                operation="Browser launch"
            )
            self.context = await self.browser.new_context()
            self.context.set_default_timeout(settings.BROWSER_TIMEOUT)
            self._initialized = True
            logger.info(f"Page pool initialized (headless={self.headless})")

        except Exception as e:
            raise PageInitializationError(f"Failed to initialize page pool: {e}")

    async def acquire(self, task: Task) -> ManagedPage:
        """
        Page for a task: a live page already on the task's origin, else a new one.

        Raises:
            PagePoolError: pool not initialized
            NavigationError / PageLoadTimeoutError: a new page failed to load
        """
        if not self._initialized or self.context is None:
            raise PagePoolError("Page pool not initialized. Call initialize() first.")

        origin = origin_of(task.target_url)
        if origin:
            reusable = self.find_reusable(origin)
            if reusable:
                reusable.task_id = task.id
                reusable.freshly_loaded = False
                logger.info(f"Reusing page {reusable.handle} for task {task.id} ({origin})")
                return reusable

        return await self._open_page(task, origin)

    def find_reusable(self, origin: str) -> Optional[ManagedPage]:
        """Live managed page on ``origin``; dead ones found on the way are dropped."""
        for handle, managed in list(self.pages.items()):
            if managed.origin != origin:
                continue
            if managed.is_alive:
                return managed
            logger.info(f"Evicting dead page {handle} ({origin})")
            del self.pages[handle]
        return None

    async def _open_page(self, task: Task, origin: Optional[str]) -> ManagedPage:
        self._page_counter += 1
        handle = f"page_{self._page_counter}"

        try:
            page = await self.context.new_page()
        except PlaywrightError as e:
            raise PageInitializationError(f"Failed to open page for task {task.id}: {e}")

        managed = ManagedPage(
            handle=handle,
            page=page,
            agent=self.agent_factory(page),
            task_id=task.id,
            origin=origin
        )
        self.pages[handle] = managed
        logger.info(f"Opened page {handle} for task {task.id} (total: {len(self.pages)})")

        if task.target_url:
            try:
                await wait_for_load(page, task.target_url, self.page_load_timeout_ms, self.settle_seconds)
            except NavigationError:
                await self.release(managed)
                raise
            managed.freshly_loaded = True

        return managed

    async def release(self, managed: ManagedPage):
        """Close a page and forget it."""
        self.pages.pop(managed.handle, None)
        await managed.close()
        logger.debug(f"Released page {managed.handle} (remaining: {len(self.pages)})")

    async def cleanup(self, timeout: float = 10.0):
        """
        Close all pages, the browser and Playwright with timeout.

        Args:
            timeout: Maximum time to wait for page cleanup
        """
        logger.info(f"Cleaning up page pool ({len(self.pages)} pages)")

        close_tasks = [managed.close() for managed in self.pages.values()]
        try:
            await asyncio.wait_for(
                asyncio.gather(*close_tasks, return_exceptions=True),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Page cleanup timed out after {timeout}s")

        for resource, name in ((self.context, "context"), (self.browser, "browser"), (self.playwright, "playwright")):
            if resource is None:
                continue
            try:
                closer = resource.stop() if name == "playwright" else resource.close()
                await asyncio.wait_for(closer, timeout=5.0)
            except asyncio.TimeoutError:
                logger.error(f"Closing {name} timed out")
            except Exception as e:
                logger.error(f"Error closing {name}: {e}")

        self.pages.clear()
        self.context = None
        self.browser = None
        self.playwright = None
        self._initialized = False
        logger.info("Page pool cleaned up")

    def get_stats(self) -> dict:
        """Get current pool statistics."""
        return {
            "managed_pages": len(self.pages),
            "alive": sum(1 for managed in self.pages.values() if managed.is_alive),
            "origins": sorted({m.origin for m in self.pages.values() if m.origin}),
            "initialized": self._initialized
        }
