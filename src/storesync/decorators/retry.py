from dataclasses import dataclass
from typing import Optional, Any, Callable, Type, Tuple, Generic, TypeVar, Awaitable
from enum import Enum
import asyncio
import logging
from functools import wraps

T = TypeVar('T')

class RetryStrategy(Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"

@dataclass
class RetryConfig:
    """
    Backoff settings for calls against a store API.

    With the exponential strategy the wait after failed attempt n is
    initial_delay * multiplier ** (n - 1), never more than max_delay.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay <= 0 or self.multiplier <= 0:
            raise ValueError("initial_delay and multiplier must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay cannot be below initial_delay")

    def delay_for(self, attempt: int) -> float:
        if self.strategy == RetryStrategy.CONSTANT:
            delay = self.initial_delay
        elif self.strategy == RetryStrategy.LINEAR:
            delay = self.initial_delay + (attempt - 1) * self.multiplier
        else:
            delay = self.initial_delay * self.multiplier ** (attempt - 1)
        return min(delay, self.max_delay)

@dataclass
class RetryResult(Generic[T]):
    success: bool
    attempts: int
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, 'message', None) or str(self.error)

class RetryError(Exception):
    """All attempts of a wrapped coroutine failed"""
    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Gave up after {attempts} attempt(s): {last_exception}")

class Retry(Generic[T]):
    """
    Runs coroutines with backoff and reports the outcome as a RetryResult.

    An error is retried only when it matches ``retry_on``, does not match
    ``never_retry`` and does not carry ``retryable = False`` (permission
    and validation failures from the store API).
    """

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        retry_on: Tuple[Type[Exception], ...] = (Exception,),
        never_retry: Tuple[Type[Exception], ...] = (),
        logger: Optional[Any] = None
    ):
        self.config = retry_config or RetryConfig()
        self.retry_on = retry_on
        self.never_retry = never_retry
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = asyncio.sleep

    def can_retry(self, error: Exception) -> bool:
        if isinstance(error, self.never_retry) or not isinstance(error, self.retry_on):
            return False
        return bool(getattr(error, 'retryable', True))

    async def run(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> RetryResult[T]:
        attempt = 1
        while True:
            try:
                value = await operation(*args, **kwargs)
            except Exception as e:
                if attempt >= self.config.max_attempts or not self.can_retry(e):
                    self.logger.error(f"{_name(operation)} failed after {attempt} attempt(s): {e}")
                    return RetryResult(success=False, attempts=attempt, error=e)

                delay = self.config.delay_for(attempt)
                self.logger.warning(
                    f"{_name(operation)} attempt {attempt}/{self.config.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
                attempt += 1
                continue

            if attempt > 1:
                self.logger.info(f"{_name(operation)} succeeded on attempt {attempt}")
            return RetryResult(success=True, attempts=attempt, value=value)

    def async_retry(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator form of run() that raises RetryError once attempts run out"""
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            result = await self.run(func, *args, **kwargs)
            if not result.success:
                raise RetryError(result.attempts, result.error) from result.error
            return result.value

        return wrapper

def _name(operation: Callable) -> str:
    return getattr(operation, '__qualname__', None) or type(operation).__name__
