from .logger import setup_logger
from .helpers import utc_now, to_iso, parse_iso, origin_of

__all__ = ['setup_logger', 'utc_now', 'to_iso', 'parse_iso', 'origin_of']
