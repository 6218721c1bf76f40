import pytest
from unittest.mock import AsyncMock
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from core.humanize import Humanizer
from core.page_agent import PageAgent, feed_item_key
from conftest import make_element

@pytest.fixture
def agent(mock_page, rng, no_sleep):
    """Agent over a mock page with instant, seeded humanization."""
    return PageAgent(mock_page, Humanizer(mock_page, rng, no_sleep))

def selector_map(mapping, default=None):
    """query_selector side effect resolving selectors from a dict."""
    async def lookup(selector):
        return mapping.get(selector, default)
    return lookup

class TestDispatch:
    """Tests for action lookup and parameter validation."""

    @pytest.mark.asyncio
    async def test_unknown_action(self, agent):
        result = await agent.handle({"action": "teleport", "params": {}})
        assert result == {"status": "error", "error": "Unknown action: teleport"}

    @pytest.mark.asyncio
    async def test_missing_selector_has_no_side_effects(self, agent, mock_page):
        """Validation fails before the page is touched."""
        result = await agent.handle({"action": "click", "params": {}})

        assert result == {"status": "error", "error": "selector is required"}
        mock_page.wait_for_selector.assert_not_awaited()
        mock_page.mouse.move.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, agent):
        result = await agent.handle({"action": "type", "params": {"selector": "#q", "text": ""}})
        assert result["error"] == "text is required"

    @pytest.mark.asyncio
    async def test_wrong_type_reported(self, agent):
        result = await agent.handle({"action": "scroll_feed", "params": {"scroll_times": "many"}})
        assert result["status"] == "error"
        assert result["error"].startswith("invalid scroll_times")

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error(self, agent, mock_page):
        """Exceptions from the page never escape handle()."""
        mock_page.title = AsyncMock(side_effect=RuntimeError("target closed"))
        result = await agent.handle({"action": "navigate"})
        assert result == {"status": "error", "error": "target closed"}

class TestGenericActions:
    """Tests for navigate, click, type and scrape."""

    @pytest.mark.asyncio
    async def test_navigate_reports_page(self, agent, mock_page):
        mock_page.url = "https://example.com/"
        mock_page.evaluate = AsyncMock(return_value="complete")

        result = await agent.handle({"action": "navigate", "params": {}})

        assert result["status"] == "success"
        assert result["data"] == {
            "title": "Example Domain",
            "url": "https://example.com/",
            "ready_state": "complete"
        }

    @pytest.mark.asyncio
    async def test_click_missing_element_times_out(self, agent, mock_page):
        """An element that never appears yields a timeout error within the wait bound."""
        mock_page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 10000ms exceeded"))

        result = await agent.handle({"action": "click", "params": {"selector": "#missing"}})

        assert result["status"] == "error"
        assert "Timeout" in result["error"]
        assert "#missing" in result["error"]
        mock_page.wait_for_selector.assert_awaited_once_with("#missing", state="attached", timeout=10000)
        mock_page.mouse.down.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_click_success(self, agent, mock_page, element):
        mock_page.wait_for_selector = AsyncMock(return_value=element)

        result = await agent.handle({"action": "click", "params": {"selector": "#go", "timeout_ms": 500}})

        assert result == {"status": "success", "data": {"clicked": "#go"}}
        mock_page.mouse.down.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_type_reports_length(self, agent, mock_page, element):
        mock_page.wait_for_selector = AsyncMock(return_value=element)

        result = await agent.handle({"action": "type", "params": {"selector": "#q", "text": "hello"}})

        assert result == {"status": "success", "data": {"typed": "5 chars"}}
        typed = "".join(call.args[0] for call in mock_page.keyboard.type.await_args_list)
        assert typed == "hello"

    @pytest.mark.asyncio
    async def test_scrape_single_and_missing(self, agent, mock_page):
        mock_page.query_selector = AsyncMock(side_effect=selector_map({"h1": make_element(text=" Title ")}))

        result = await agent.handle({
            "action": "scrape",
            "params": {"selectors": {"title": "h1", "price": ".price"}}
        })

        assert result["data"] == {"title": "Title", "price": None}

    @pytest.mark.asyncio
    async def test_scrape_multi(self, agent, mock_page):
        mock_page.query_selector_all = AsyncMock(return_value=[make_element(text="a"), make_element(text="b")])

        result = await agent.handle({"action": "scrape", "params": {"selectors": {"items": "li"}, "multi": True}})

        assert result["data"] == {"items": ["a", "b"]}

class TestScrollFeed:
    """Tests for feed collection."""

    def test_feed_item_key_fallbacks(self):
        assert feed_item_key({"text": "hi", "url": "u"}) == "hi"
        assert feed_item_key({"text": "", "url": "u"}) == "u"
        assert feed_item_key({"likes": 1}) == '{"likes": 1}'

    @pytest.mark.asyncio
    async def test_deduplicates_and_caps(self, agent, mock_page):
        batch = [{"text": "one"}, {"text": "two"}, {"text": "one"}]
        mock_page.evaluate = AsyncMock(return_value=batch)

        result = await agent.handle({"action": "scroll_feed", "params": {"scroll_times": 3, "max_items": 1}})

        assert result["status"] == "success"
        assert result["data"]["items"] == [{"text": "one"}]
        assert result["data"]["total_collected"] == 2
        assert result["data"]["scroll_times"] == 3

    @pytest.mark.asyncio
    async def test_extraction_failure_is_empty_batch(self, agent, mock_page):
        mock_page.evaluate = AsyncMock(side_effect=RuntimeError("execution context destroyed"))

        result = await agent.handle({"action": "scroll_feed", "params": {"scroll_times": 2}})

        assert result["status"] == "success"
        assert result["data"]["items"] == []
        assert mock_page.mouse.wheel.await_count == 2 * 12

class TestSocialActions:
    """Tests for like, follow and reply."""

    @pytest.mark.asyncio
    async def test_follow_already_following(self, agent, mock_page):
        """Existing follow state short-circuits without any clicks."""
        mock_page.query_selector_all = AsyncMock(return_value=[make_element(text="Following")])

        result = await agent.handle({"action": "follow", "params": {"handle": "@someone"}})

        assert result["status"] == "success"
        assert result["data"]["already_following"] is True
        mock_page.mouse.down.assert_not_awaited()
        mock_page.mouse.up.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_follow_button_missing(self, agent, mock_page):
        mock_page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("timeout"))

        result = await agent.handle({"action": "follow", "params": {"handle": "ghost"}})

        assert result == {"status": "error", "error": "Follow button not found for @ghost"}

    @pytest.mark.asyncio
    async def test_follow_clicks_labelled_button(self, agent, mock_page):
        button = make_element()
        mock_page.query_selector = AsyncMock(side_effect=selector_map({'[aria-label="Follow @someone"]': button}))

        result = await agent.handle({"action": "follow", "params": {"handle": "@someone"}})

        assert result == {"status": "success", "data": {"followed": "@someone"}}
        mock_page.mouse.down.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_follow_sandbox_does_not_click(self, agent, mock_page):
        button = make_element()
        mock_page.query_selector = AsyncMock(side_effect=selector_map({'[aria-label="Follow @someone"]': button}))

        result = await agent.handle({"action": "follow", "params": {"handle": "someone", "sandbox": True}})

        assert result["data"]["sandbox"] is True
        mock_page.mouse.down.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_like_already_liked(self, agent, mock_page):
        mock_page.query_selector = AsyncMock(side_effect=selector_map({'[data-testid="unlike"]': make_element()}))

        result = await agent.handle({"action": "like"})

        assert result == {"status": "success", "data": {"already_liked": True}}
        mock_page.wait_for_selector.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_like_clicks(self, agent, mock_page, element):
        mock_page.url = "https://x.com/a/status/1"
        mock_page.wait_for_selector = AsyncMock(return_value=element)

        result = await agent.handle({"action": "like"})

        assert result == {"status": "success", "data": {"liked": "https://x.com/a/status/1"}}
        mock_page.mouse.down.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reply_sandbox_escapes(self, agent, mock_page, element):
        """Sandbox replies type the text, then cancel instead of posting."""
        mock_page.wait_for_selector = AsyncMock(return_value=element)

        result = await agent.handle({"action": "reply", "params": {"reply_text": "nice", "sandbox": True}})

        assert result == {"status": "success", "data": {"sandbox": True, "reply_text": "nice"}}
        mock_page.keyboard.press.assert_any_await("Escape")
        mock_page.query_selector.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_disabled_post_button(self, agent, mock_page, element):
        post = make_element()
        post.get_attribute = AsyncMock(return_value="true")
        mock_page.wait_for_selector = AsyncMock(return_value=element)
        mock_page.query_selector = AsyncMock(side_effect=selector_map({'[data-testid="tweetButton"]': post}))

        result = await agent.handle({"action": "reply", "params": {"reply_text": "nice"}})

        assert result == {"status": "error", "error": "Post button not found or disabled"}

    @pytest.mark.asyncio
    async def test_reply_requires_text(self, agent, mock_page):
        result = await agent.handle({"action": "reply", "params": {}})
        assert result == {"status": "error", "error": "reply_text is required"}
        mock_page.mouse.move.assert_not_awaited()
