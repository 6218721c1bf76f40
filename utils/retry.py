import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional, Tuple, Type, TypeVar
from utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff for a bounded number of attempts."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    exceptions: Tuple[Type[Exception], ...] = (Exception,)

    def delays(self) -> Iterator[float]:
        """Sleeps between consecutive attempts (one fewer than ``max_attempts``)."""
        delay = self.initial_delay
        for _ in range(max(self.max_attempts - 1, 0)):
            yield delay
            delay = min(delay * self.exponential_base, self.max_delay)

    def total_delay(self) -> float:
        """Worst-case time spent sleeping across all retries."""
        return sum(self.delays())


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    operation: Optional[str] = None
) -> T:
    """
    Await ``func()`` until it succeeds or the attempts run out.

    Only exceptions listed in ``config.exceptions`` are retried; the last one
    is re-raised. ``operation`` names the call in log lines.
    """
    config = config or RetryConfig()
    if config.max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {config.max_attempts}")

    name = operation or getattr(func, '__name__', 'operation')
    delays = config.delays()

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
        except config.exceptions as e:
            if attempt == config.max_attempts:
                logger.error(f"{name} failed after {attempt} attempts: {e}")
                raise
            delay = next(delays)
            logger.warning(f"{name} attempt {attempt}/{config.max_attempts} failed: {e}. Retrying in {delay:.1f}s")
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                logger.info(f"{name} succeeded on attempt {attempt}")
            return result
