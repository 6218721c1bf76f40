"""
Page agent action vocabulary.

Each action has its own parameter model; the agent validates the free-form
``params`` map of a task against it before touching the page.
"""

from enum import Enum
from typing import Dict, Optional, Type
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from config.settings import settings


class AgentAction(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    SCRAPE = "scrape"
    SCROLL_FEED = "scroll_feed"
    LIKE = "like"
    FOLLOW = "follow"
    REPLY = "reply"

    @classmethod
    def parse(cls, value: object) -> Optional["AgentAction"]:
        """Map a raw action name to a known action, or None."""
        try:
            return cls(value)
        except ValueError:
            return None


class ActionParams(BaseModel):
    # Producers share one params map across features; unknown keys are ignored
    model_config = ConfigDict(extra="ignore")


class NavigateParams(ActionParams):
    pass


class ClickParams(ActionParams):
    selector: str = Field(min_length=1)
    timeout_ms: int = Field(settings.ELEMENT_WAIT_TIMEOUT, gt=0)


class TypeParams(ActionParams):
    selector: str = Field(min_length=1)
    text: str = Field(min_length=1)
    timeout_ms: int = Field(settings.ELEMENT_WAIT_TIMEOUT, gt=0)
    clear: bool = True
    with_mistakes: bool = False


class ScrapeParams(ActionParams):
    selectors: Dict[str, str] = Field(default_factory=dict)
    multi: bool = False


class ScrollFeedParams(ActionParams):
    scroll_times: int = Field(5, ge=0)
    max_items: int = Field(50, ge=0)
    collect: bool = True
    scroll_distance: Optional[int] = Field(None, gt=0)


class LikeParams(ActionParams):
    tweet_url: Optional[str] = None
    sandbox: bool = False


class FollowParams(ActionParams):
    handle: str = Field(min_length=1)
    sandbox: bool = False


class ReplyParams(ActionParams):
    reply_text: str = Field(min_length=1)
    sandbox: bool = False


PARAMS_MODELS: Dict[AgentAction, Type[ActionParams]] = {
    AgentAction.NAVIGATE: NavigateParams,
    AgentAction.CLICK: ClickParams,
    AgentAction.TYPE: TypeParams,
    AgentAction.SCRAPE: ScrapeParams,
    AgentAction.SCROLL_FEED: ScrollFeedParams,
    AgentAction.LIKE: LikeParams,
    AgentAction.FOLLOW: FollowParams,
    AgentAction.REPLY: ReplyParams,
}


def describe_params_error(error: PydanticValidationError) -> str:
    """Turn the first pydantic error into the short message handlers report."""
    first = error.errors()[0]
    name = ".".join(str(part) for part in first.get("loc", ())) or "params"
    if first.get("type") in ("missing", "string_too_short"):
        return f"{name} is required"
    return f"invalid {name}: {first.get('msg', 'bad value')}"
