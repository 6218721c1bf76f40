"""
Page Agent: executes one named action inside a single page.

The controller sends ``{action, params}`` and receives
``{status: success|error, data?, error?}``. Handlers only touch their own page.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional
from pydantic import ValidationError as PydanticValidationError
from playwright.async_api import Page
from core.humanize import Humanizer
from models.actions import (
    AgentAction,
    ActionParams,
    PARAMS_MODELS,
    NavigateParams,
    ClickParams,
    TypeParams,
    ScrapeParams,
    ScrollFeedParams,
    LikeParams,
    FollowParams,
    ReplyParams,
    describe_params_error,
)
from utils.exceptions import ElementWaitTimeoutError
from utils.logger import setup_logger

logger = setup_logger(__name__)

CONTROL_WAIT_MS = 8000

# Runs in the page. Tweet-shaped articles first, generic <article> fallback.
FEED_EXTRACTION_JS = """
() => {
    function parseAriaCount(el) {
        if (!el) return 0;
        const m = (el.getAttribute('aria-label') || '').match(/(\\d[\\d,]*)/);
        return m ? parseInt(m[1].replace(/,/g, ''), 10) : 0;
    }

    const articles = document.querySelectorAll('article[data-testid="tweet"]');
    if (articles.length > 0) {
        return Array.from(articles).map(article => {
            const userEl = article.querySelector('[data-testid="User-Name"]');
            const textEl = article.querySelector('[data-testid="tweetText"]');
            const timeEl = article.querySelector('time');
            const linkEl = timeEl ? timeEl.closest('a') : null;

            let handle = '';
            if (userEl) {
                for (const a of userEl.querySelectorAll('a')) {
                    const href = a.getAttribute('href');
                    if (href && href.startsWith('/') && !href.includes('/status/')) {
                        handle = '@' + href.slice(1);
                        break;
                    }
                }
            }

            return {
                handle,
                author: userEl ? userEl.innerText.split('\\n')[0] : '',
                text: textEl ? textEl.innerText : '',
                time: timeEl ? timeEl.getAttribute('datetime') : '',
                url: linkEl ? new URL(linkEl.getAttribute('href'), location.origin).href : '',
                replies: parseAriaCount(article.querySelector('[data-testid="reply"]')),
                retweets: parseAriaCount(article.querySelector('[data-testid="retweet"]')),
                likes: parseAriaCount(article.querySelector('[data-testid="like"]')),
            };
        });
    }

    return Array.from(document.querySelectorAll('article')).map(a => ({
        text: a.innerText.slice(0, 500).trim(),
        url: (a.querySelector('a') || {}).href || '',
    }));
}
"""


def success(data: Any = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"status": "success"}
    if data is not None:
        result["data"] = data
    return result


def error(message: str) -> Dict[str, Any]:
    return {"status": "error", "error": message}


def feed_item_key(item: Dict[str, Any]) -> str:
    """Dedup key for a collected feed item: text, else url, else the whole item."""
    return item.get("text") or item.get("url") or json.dumps(item, sort_keys=True, default=str)


Handler = Callable[[Any], Awaitable[Dict[str, Any]]]


class PageAgent:
    """Action registry bound to one page and its Humanizer."""

    def __init__(self, page: Page, humanizer: Optional[Humanizer] = None):
        self.page = page
        self.h = humanizer or Humanizer(page)
        self._handlers: Dict[AgentAction, Handler] = {
            AgentAction.NAVIGATE: self._navigate,
            AgentAction.CLICK: self._click,
            AgentAction.TYPE: self._type,
            AgentAction.SCRAPE: self._scrape,
            AgentAction.SCROLL_FEED: self._scroll_feed,
            AgentAction.LIKE: self._like,
            AgentAction.FOLLOW: self._follow,
            AgentAction.REPLY: self._reply,
        }

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Run ``message['action']`` with ``message['params']``; never raises."""
        raw_action = message.get("action")
        action = AgentAction.parse(raw_action)
        if action is None:
            return error(f"Unknown action: {raw_action}")

        try:
            params: ActionParams = PARAMS_MODELS[action].model_validate(message.get("params") or {})
        except PydanticValidationError as e:
            return error(describe_params_error(e))

        try:
            return await self._handlers[action](params)
        except Exception as e:
            logger.warning(f"Action {action.value} failed: {e}")
            return error(str(e))

    # ── Generic actions ─────────────────────────────────────────────────────

    async def _navigate(self, params: NavigateParams) -> Dict[str, Any]:
        """Report where the page ended up once it has settled."""
        await self.h.wait_random(800, 2000)
        return success({
            "title": await self.page.title(),
            "url": self.page.url,
            "ready_state": await self.page.evaluate("document.readyState"),
        })

    async def _click(self, params: ClickParams) -> Dict[str, Any]:
        await self.h.find_and_click(params.selector, params.timeout_ms)
        return success({"clicked": params.selector})

    async def _type(self, params: TypeParams) -> Dict[str, Any]:
        await self.h.find_and_type(
            params.selector,
            params.text,
            timeout_ms=params.timeout_ms,
            clear=params.clear,
            with_mistakes=params.with_mistakes,
        )
        return success({"typed": f"{len(params.text)} chars"})

    async def _scrape(self, params: ScrapeParams) -> Dict[str, Any]:
        """Text per selector key; missing elements give None (or [] with multi)."""
        data: Dict[str, Any] = {}
        for key, selector in params.selectors.items():
            if params.multi:
                elements = await self.page.query_selector_all(selector)
                data[key] = [(await el.inner_text()).strip() for el in elements]
            else:
                element = await self.page.query_selector(selector)
                data[key] = (await element.inner_text()).strip() if element else None
        return success(data)

    async def _collect_feed_items(self) -> List[Dict[str, Any]]:
        try:
            items = await self.page.evaluate(FEED_EXTRACTION_JS)
        except Exception as e:
            logger.debug(f"Feed extraction failed: {e}")
            return []
        return [item for item in items or [] if isinstance(item, dict)]

    async def _scroll_feed(self, params: ScrollFeedParams) -> Dict[str, Any]:
        items: List[Dict[str, Any]] = []
        seen = set()

        for _ in range(params.scroll_times):
            if params.collect:
                for item in await self._collect_feed_items():
                    key = feed_item_key(item)
                    if key not in seen:
                        seen.add(key)
                        items.append(item)

            await self.h.scroll_down(params.scroll_distance)
            await self.h.wait_random(800, 2000)

            # Occasional idle presence between screens
            if self.h.rng.random() < 0.3:
                await self.h.idle_wiggle(self.h.rng.uniform(500, 1500))

        return success({
            "items": items[:params.max_items],
            "total_collected": len(items),
            "scroll_times": params.scroll_times,
        })

    # ── Social actions ──────────────────────────────────────────────────────

    async def _like(self, params: LikeParams) -> Dict[str, Any]:
        if await self.page.query_selector('[data-testid="unlike"]'):
            return success({"already_liked": True})

        like_btn = await self.h.wait_for('[data-testid="like"]', CONTROL_WAIT_MS)
        if params.sandbox:
            return success({"sandbox": True})

        await self.h.scroll_to_element(like_btn)
        await self.h.wait_random(500, 1500)
        await self.h.click(like_btn)
        await self.h.wait_random(1000, 2500)

        return success({"liked": params.tweet_url or self.page.url})

    async def _follow(self, params: FollowParams) -> Dict[str, Any]:
        handle = params.handle.lstrip("@")

        tracked = await self.page.query_selector_all('[data-testid="placementTracking"]')
        for btn in tracked:
            if "Following" in await btn.inner_text():
                return success({"already_following": True, "handle": params.handle})

        follow_btn = await self.page.query_selector(f'[aria-label="Follow @{handle}"]')
        if follow_btn is None:
            for btn in tracked:
                if (await btn.inner_text()).strip() == "Follow":
                    follow_btn = btn
                    break

        if follow_btn is None:
            try:
                follow_btn = await self.h.wait_for(f'[aria-label="Follow @{handle}"]', CONTROL_WAIT_MS)
            except ElementWaitTimeoutError:
                return error(f"Follow button not found for @{handle}")

        if params.sandbox:
            return success({"sandbox": True, "handle": params.handle})

        await self.h.scroll_to_element(follow_btn)
        await self.h.wait_random(500, 1200)
        await self.h.click(follow_btn)
        await self.h.wait_random(1500, 3500)

        return success({"followed": f"@{handle}"})

    async def _reply(self, params: ReplyParams) -> Dict[str, Any]:
        # Dwell on the tweet before engaging
        await self.h.idle_wiggle(self.h.rng.uniform(1000, 2500))

        reply_btn = await self.h.wait_for('[data-testid="reply"]', CONTROL_WAIT_MS)
        await self.h.click(reply_btn)
        await self.h.wait_random(1500, 3500)

        compose = await self.h.wait_for('[data-testid="tweetTextarea_0"]', CONTROL_WAIT_MS)
        await self.h.click(compose)
        await self.h.wait_random(400, 900)
        await self.h.type(params.reply_text, with_mistakes=True)
        await self.h.wait_random(800, 2000)

        if params.sandbox:
            await self.page.keyboard.press("Escape")
            return success({"sandbox": True, "reply_text": params.reply_text})

        post_btn = await self.page.query_selector('[data-testid="tweetButton"]')
        if post_btn is None:
            post_btn = await self.page.query_selector('[data-testid="tweetButtonInline"]')

        if post_btn is None or await post_btn.get_attribute("aria-disabled") == "true":
            return error("Post button not found or disabled")

        await self.h.scroll_to_element(post_btn)
        await self.h.wait_random(300, 700)
        await self.h.click(post_btn)
        await self.h.wait_random(2000, 4000)

        return success({"replied": True, "text": params.reply_text[:50]})
