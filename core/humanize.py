"""
Human-like input for a single Playwright page.

Provides Bezier pointer paths, eased and momentum scrolling, and typing with
variable cadence and adjacent-key mistakes. Every controller takes an
injectable ``random.Random`` and ``sleep`` coroutine so behaviour can be
replayed exactly in tests.

Usage:
    h = Humanizer(page)
    await h.find_and_click("#submit")
    await h.find_and_type("#search", "hello world", with_mistakes=True)
    await h.scroll_down()
"""

import asyncio
import math
import random
from typing import Awaitable, Callable, List, NamedTuple, Optional, Sequence, Tuple
from playwright.async_api import ElementHandle, Page, TimeoutError as PlaywrightTimeoutError
from utils.exceptions import ElementInteractionError, ElementWaitTimeoutError
from utils.logger import setup_logger

logger = setup_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


class Point(NamedTuple):
    x: float
    y: float


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def viewport_of(page: Page) -> dict:
    return page.viewport_size or DEFAULT_VIEWPORT


class _RandomMixin:
    """Shared randomness and pacing for the controllers."""

    def __init__(self, rng: Optional[random.Random] = None, sleep: Optional[SleepFn] = None):
        self.rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def rand(self, low: float, high: float) -> float:
        return self.rng.uniform(low, high)

    async def pause_ms(self, low: float, high: Optional[float] = None) -> float:
        """Sleep a (random) number of milliseconds and return it."""
        ms = low if high is None else self.rand(low, high)
        await self._sleep(ms / 1000)
        return ms


# ─── Bezier curves ────────────────────────────────────────────────────────────

class BezierCurve:
    """Pure curve helpers; all randomness comes from the caller's rng."""

    @staticmethod
    def de_casteljau(points: Sequence[Point], t: float) -> Point:
        """Evaluate a Bezier curve of any order at parameter t."""
        current = list(points)
        while len(current) > 1:
            current = [
                Point((1 - t) * a.x + t * b.x, (1 - t) * a.y + t * b.y)
                for a, b in zip(current, current[1:])
            ]
        return current[0]

    @staticmethod
    def ease_in_out(t: float) -> float:
        if t < 0.5:
            return 2 * t * t
        return 1 - ((-2 * t + 2) ** 2) / 2

    @staticmethod
    def generate_control_points(
        start: Point,
        end: Point,
        rng: random.Random,
        variation: float = 0.3
    ) -> List[Point]:
        """
        Cubic control points forming a gentle arc between start and end.

        Inner points sit at 25% and 75% of the chord, pushed sideways by at most
        min(40% of the distance, 100px) scaled by ``variation``.
        """
        dx = end.x - start.x
        dy = end.y - start.y
        dist = math.hypot(dx, dy)

        if dist < 5:
            return [start, end]

        perp_x = -dy / dist
        perp_y = dx / dist
        max_off = min(dist * 0.4, 100)

        off1 = rng.uniform(-max_off, max_off) * variation
        off2 = rng.uniform(-max_off, max_off) * variation

        return [
            start,
            Point(start.x + dx * 0.25 + perp_x * off1, start.y + dy * 0.25 + perp_y * off1),
            Point(start.x + dx * 0.75 + perp_x * off2, start.y + dy * 0.75 + perp_y * off2),
            end,
        ]

    @staticmethod
    def generate_path(
        start: Point,
        end: Point,
        rng: random.Random,
        num_points: int = 20,
        variation: float = 0.3
    ) -> List[Point]:
        """Sample ``num_points`` eased points along the curve; first is start, last is end."""
        if num_points < 2:
            return [start, end]
        control = BezierCurve.generate_control_points(start, end, rng, variation)
        path = []
        for i in range(num_points):
            t = BezierCurve.ease_in_out(i / (num_points - 1))
            path.append(BezierCurve.de_casteljau(control, t))
        return path


# ─── Mouse ────────────────────────────────────────────────────────────────────

class MouseController(_RandomMixin):
    """Pointer movement, clicking and idle presence for one page."""

    OVERSHOOT_CHANCE = 0.2
    OVERSHOOT_MIN_DISTANCE = 50

    def __init__(self, page: Page, rng: Optional[random.Random] = None, sleep: Optional[SleepFn] = None):
        super().__init__(rng, sleep)
        self.page = page
        viewport = viewport_of(page)
        self.current = Point(viewport["width"] / 2, viewport["height"] / 2)

    def plan_path(
        self,
        target: Point,
        steps: Optional[int] = None,
        variation: float = 0.35
    ) -> List[Point]:
        """
        Points a move from the current position to ``target`` would visit.

        Empty when the target is (almost) where the pointer already is.
        Longer moves occasionally overshoot and come back.
        """
        start = self.current
        dist = math.hypot(target.x - start.x, target.y - start.y)
        if dist < 1:
            return []

        num_steps = steps or int(clamp(round(dist / 8), 8, 60))
        path = BezierCurve.generate_path(start, target, self.rng, num_steps, variation)

        if self.rng.random() < self.OVERSHOOT_CHANCE and dist > self.OVERSHOOT_MIN_DISTANCE:
            overshoot_len = dist * self.rand(0.04, 0.12)
            beyond = Point(
                target.x + (target.x - start.x) / dist * overshoot_len,
                target.y + (target.y - start.y) / dist * overshoot_len,
            )
            path.extend(BezierCurve.generate_path(target, beyond, self.rng, 5, 0.1))
            path.extend(BezierCurve.generate_path(beyond, target, self.rng, 4, 0.1))

        return path

    async def move_to(
        self,
        x: float,
        y: float,
        steps: Optional[int] = None,
        variation: float = 0.35,
        delay_ms: Tuple[float, float] = (4, 12)
    ) -> int:
        """Move along a planned path. Returns how many move events were sent."""
        path = self.plan_path(Point(x, y), steps, variation)
        for point in path:
            await self.page.mouse.move(round(point.x), round(point.y))
            self.current = Point(round(point.x), round(point.y))
            await self.pause_ms(*delay_ms)
        return len(path)

    async def _element_box(self, element: ElementHandle) -> dict:
        box = await element.bounding_box()
        if not box or box["width"] <= 0 or box["height"] <= 0:
            raise ElementInteractionError("reach", "element", "element has no visible bounding box")
        return box

    async def move_to_element(self, element: ElementHandle) -> Point:
        """Move to a jittered point near the element's center (within 10% of its size)."""
        box = await self._element_box(element)
        x = box["x"] + box["width"] / 2 + self.rand(-box["width"] * 0.1, box["width"] * 0.1)
        y = box["y"] + box["height"] / 2 + self.rand(-box["height"] * 0.1, box["height"] * 0.1)
        await self.move_to(x, y)
        return Point(x, y)

    async def click(self, element: ElementHandle):
        """Move → hover → press → release; the browser emits the click itself."""
        await self.move_to_element(element)
        await self.pause_ms(80, 250)

        await self.page.mouse.down()
        await self.pause_ms(50, 150)
        await self.page.mouse.up()

    async def idle_wiggle(self, duration_ms: float = 1500) -> int:
        """Small jitters around the current point for roughly ``duration_ms``."""
        viewport = viewport_of(self.page)
        elapsed = 0.0
        moves = 0
        while elapsed < duration_ms:
            x = clamp(self.current.x + self.rand(-4, 4), 0, viewport["width"])
            y = clamp(self.current.y + self.rand(-4, 4), 0, viewport["height"])
            await self.page.mouse.move(x, y)
            self.current = Point(x, y)
            moves += 1
            elapsed += await self.pause_ms(120, 400)
        return moves


# ─── Scroll ───────────────────────────────────────────────────────────────────

def scroll_increments(delta: float, steps: int) -> List[float]:
    """
    Split a scroll of ``delta`` pixels into ``steps`` eased increments.

    Increments follow the ease-in-out curve (small, large, small) and sum to delta.
    """
    if steps < 2:
        return [delta]
    marks = [BezierCurve.ease_in_out(i / steps) for i in range(steps + 1)]
    return [delta * (b - a) for a, b in zip(marks, marks[1:])]


class ScrollController(_RandomMixin):
    """Wheel scrolling with easing, reading pauses and momentum."""

    def __init__(self, page: Page, rng: Optional[random.Random] = None, sleep: Optional[SleepFn] = None):
        super().__init__(rng, sleep)
        self.page = page
        self.smooth_steps = 12

    async def scroll(self, delta_y: float, smooth: bool = True):
        if not smooth:
            await self.page.mouse.wheel(0, delta_y)
            return

        for step in scroll_increments(delta_y, self.smooth_steps):
            await self.page.mouse.wheel(0, step)
            await self.pause_ms(12, 28)

    def natural_distance(self) -> float:
        """Viewport-relative scroll distance, clamped to 150..900px."""
        base = viewport_of(self.page)["height"] * self.rand(0.3, 0.75)
        return clamp(base, 150, 900)

    async def scroll_down(self, distance: Optional[float] = None) -> float:
        dist = distance or self.natural_distance()
        await self.scroll(dist)
        await self.pause_ms(500, 2000)  # reading pause
        return dist

    async def scroll_up(self, distance: Optional[float] = None) -> float:
        dist = distance or self.natural_distance()
        await self.scroll(-dist)
        await self.pause_ms(300, 1000)
        return dist

    async def scroll_to_element(self, element: ElementHandle):
        await element.evaluate("el => el.scrollIntoView({block: 'center', behavior: 'smooth'})")
        await self.pause_ms(800, 1600)

    async def scroll_momentum(
        self,
        initial_speed: float = 400,
        deceleration: float = 0.85,
        floor: float = 50
    ) -> List[float]:
        """Touch-like fling: geometric speed decay until below ``floor``."""
        if not 0 < deceleration < 1:
            raise ValueError("deceleration must be between 0 and 1")
        applied = []
        speed = initial_speed
        while speed > floor:
            await self.scroll(speed, smooth=False)
            applied.append(speed)
            speed *= deceleration
            await self.pause_ms(30, 60)
        return applied


# ─── Keyboard ─────────────────────────────────────────────────────────────────

PUNCTUATION = set('.,;:!?-()[]{}"\' `~@#$%^&*+=|\\/<>')
SENTENCE_ENDERS = set('.!?')

# QWERTY rows for typo simulation
KEYBOARD_ROWS = ['qwertyuiop', 'asdfghjkl', 'zxcvbnm']


def nearby_key(char: str, rng: random.Random) -> str:
    """A horizontally adjacent key on the same QWERTY row, keeping case."""
    lower = char.lower()
    for row in KEYBOARD_ROWS:
        idx = row.find(lower)
        if idx < 0:
            continue
        neighbors = []
        if idx > 0:
            neighbors.append(row[idx - 1])
        if idx < len(row) - 1:
            neighbors.append(row[idx + 1])
        picked = rng.choice(neighbors)
        return picked.upper() if char.isupper() else picked
    return char


class KeyboardController(_RandomMixin):
    """Typing cadence, mistakes and field filling through the focused element."""

    def __init__(self, page: Page, rng: Optional[random.Random] = None, sleep: Optional[SleepFn] = None):
        super().__init__(rng, sleep)
        self.page = page
        self.base_delay = 65        # ms between keystrokes
        self.speed_variation = 0.4  # ±40%
        self.mistake_chance = 0.03
        self.thinking_chance = 0.03

    def char_delay(self, char: str) -> float:
        """Milliseconds to wait after typing ``char``."""
        delay = self.base_delay * (1 + self.rand(-self.speed_variation, self.speed_variation))
        if char in PUNCTUATION:
            delay *= 1.6
        if char in SENTENCE_ENDERS:
            delay *= 1.4
        if char == ' ':
            delay *= 1.2
        return clamp(delay, 25, 220)

    async def _type_char(self, char: str):
        if char == '\n':
            await self.page.keyboard.press('Enter')
        else:
            await self.page.keyboard.type(char)

    async def _delete_char(self):
        await self.page.keyboard.press('Backspace')

    async def type_text(self, text: str, with_mistakes: bool = False) -> int:
        """Type into the focused element. Returns the number of corrected typos."""
        typos = 0
        for char in text:
            delay = self.char_delay(char)

            if with_mistakes and char.isascii() and char.isalpha() and self.rng.random() < self.mistake_chance:
                await self._type_char(nearby_key(char, self.rng))
                await self.pause_ms(200, 600)  # noticing the slip
                await self._delete_char()
                await self.pause_ms(50, 120)
                typos += 1

            await self._type_char(char)
            await self.pause_ms(delay)

            if self.rng.random() < self.thinking_chance:
                await self.pause_ms(400, 1200)
        return typos

    async def fill_field(self, element: ElementHandle, text: str, with_mistakes: bool = False) -> int:
        """Clear existing content, then type the replacement text."""
        await element.focus()
        await self.pause_ms(100, 300)

        await self.page.keyboard.press('ControlOrMeta+A')
        await self._delete_char()
        await self.pause_ms(100, 200)

        return await self.type_text(text, with_mistakes=with_mistakes)


# ─── Facade ───────────────────────────────────────────────────────────────────

class Humanizer:
    """One page's worth of mouse, scroll and keyboard controllers sharing an rng."""

    def __init__(self, page: Page, rng: Optional[random.Random] = None, sleep: Optional[SleepFn] = None):
        self.page = page
        self.rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep
        self.mouse = MouseController(page, self.rng, self._sleep)
        self.scroll = ScrollController(page, self.rng, self._sleep)
        self.keyboard = KeyboardController(page, self.rng, self._sleep)

    # Mouse
    async def move_to(self, x: float, y: float, **kwargs) -> int:
        return await self.mouse.move_to(x, y, **kwargs)

    async def click(self, element: ElementHandle):
        await self.mouse.click(element)

    async def idle_wiggle(self, duration_ms: float = 1500) -> int:
        return await self.mouse.idle_wiggle(duration_ms)

    # Scroll
    async def scroll_down(self, distance: Optional[float] = None) -> float:
        return await self.scroll.scroll_down(distance)

    async def scroll_up(self, distance: Optional[float] = None) -> float:
        return await self.scroll.scroll_up(distance)

    async def scroll_to_element(self, element: ElementHandle):
        await self.scroll.scroll_to_element(element)

    async def scroll_momentum(self, initial_speed: float = 400, deceleration: float = 0.85) -> List[float]:
        return await self.scroll.scroll_momentum(initial_speed, deceleration)

    # Keyboard
    async def type(self, text: str, with_mistakes: bool = False) -> int:
        return await self.keyboard.type_text(text, with_mistakes=with_mistakes)

    async def fill(self, element: ElementHandle, text: str, with_mistakes: bool = False) -> int:
        return await self.keyboard.fill_field(element, text, with_mistakes=with_mistakes)

    # Utility
    async def wait(self, ms: float):
        await self._sleep(ms / 1000)

    async def wait_random(self, low_ms: float, high_ms: float) -> float:
        ms = self.rng.uniform(low_ms, high_ms)
        await self._sleep(ms / 1000)
        return ms

    async def wait_for(self, selector: str, timeout_ms: int = 10000) -> ElementHandle:
        """Wait until ``selector`` is attached to the DOM, or raise ElementWaitTimeoutError."""
        try:
            element = await self.page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            raise ElementWaitTimeoutError(selector, timeout_ms)
        if element is None:
            raise ElementWaitTimeoutError(selector, timeout_ms)
        return element

    async def find_and_click(self, selector: str, timeout_ms: int = 10000) -> ElementHandle:
        element = await self.wait_for(selector, timeout_ms)
        await self.scroll_to_element(element)
        await self.wait_random(200, 600)
        await self.click(element)
        return element

    async def find_and_type(
        self,
        selector: str,
        text: str,
        timeout_ms: int = 10000,
        clear: bool = True,
        with_mistakes: bool = False
    ) -> ElementHandle:
        element = await self.wait_for(selector, timeout_ms)
        await self.scroll_to_element(element)
        await self.wait_random(100, 300)
        if clear:
            await self.fill(element, text, with_mistakes=with_mistakes)
        else:
            await element.focus()
            await self.type(text, with_mistakes=with_mistakes)
        logger.debug(f"Typed {len(text)} chars into {selector}")
        return element
