import random
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, AsyncMock
from core.task_queue import TaskQueue

class FakeClock:
    """Manually advanced UTC clock for TTL tests."""
    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

@pytest.fixture
def clock():
    """Fixture providing a controllable clock."""
    return FakeClock()

@pytest.fixture
def queue(clock):
    """Fixture providing a fresh queue on the fake clock."""
    return TaskQueue(max_results=200, recent_limit=20, clock=clock)

@pytest.fixture
def rng():
    """Fixture providing a seeded random generator."""
    return random.Random(1234)

@pytest.fixture
def no_sleep():
    """Fixture providing a sleep coroutine that records instead of waiting."""
    return AsyncMock()

@pytest.fixture
def mock_page():
    """Fixture providing a mock Playwright page."""
    page = AsyncMock()
    page.url = "about:blank"
    page.viewport_size = {"width": 1280, "height": 720}
    page.is_closed = Mock(return_value=False)
    page.goto = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"\x89PNG fake")
    page.evaluate = AsyncMock(return_value=[])
    page.title = AsyncMock(return_value="Example Domain")
    page.query_selector = AsyncMock(return_value=None)
    page.query_selector_all = AsyncMock(return_value=[])
    page.wait_for_selector = AsyncMock()
    page.close = AsyncMock()

    page.mouse = Mock()
    page.mouse.move = AsyncMock()
    page.mouse.down = AsyncMock()
    page.mouse.up = AsyncMock()
    page.mouse.wheel = AsyncMock()

    page.keyboard = Mock()
    page.keyboard.type = AsyncMock()
    page.keyboard.press = AsyncMock()

    return page

def make_element(x=100, y=200, width=120, height=40, text=""):
    """Mock element handle with a visible bounding box."""
    element = AsyncMock()
    element.bounding_box = AsyncMock(return_value={"x": x, "y": y, "width": width, "height": height})
    element.evaluate = AsyncMock()
    element.focus = AsyncMock()
    element.inner_text = AsyncMock(return_value=text)
    element.get_attribute = AsyncMock(return_value=None)
    return element

@pytest.fixture
def element():
    """Fixture providing a mock element handle."""
    return make_element()

@pytest.fixture
def mock_context(mock_page):
    """Fixture providing a mock Playwright context."""
    context = AsyncMock()
    context.new_page = AsyncMock(return_value=mock_page)
    context.set_default_timeout = Mock()
    context.close = AsyncMock()
    return context

@pytest.fixture
def mock_browser(mock_context):
    """Fixture providing a mock Playwright browser."""
    browser = AsyncMock()
    browser.new_context = AsyncMock(return_value=mock_context)
    browser.close = AsyncMock()
    return browser
