from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)

def to_iso(value: datetime) -> str:
    """Format a datetime the way the queue API emits it (ISO-8601, millisecond Z)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')

def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'. Naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

def origin_of(url: Optional[str]) -> Optional[str]:
    """Network origin (scheme://host[:port]) of a URL, or None for empty input."""
    if not url:
        return None
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"

def same_page_url(a: Optional[str], b: Optional[str]) -> bool:
    """Compare URLs ignoring scheme/host case and a trailing slash on the path."""
    if not a or not b:
        return a == b
    left, right = urlparse(a), urlparse(b)
    return (
        left.scheme.lower() == right.scheme.lower()
        and left.netloc.lower() == right.netloc.lower()
        and (left.path.rstrip('/') or '/') == (right.path.rstrip('/') or '/')
        and left.query == right.query
        and left.fragment == right.fragment
    )
