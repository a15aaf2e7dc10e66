"""
Unit tests for the Retry helper.
"""
import pytest

from storesync.decorators.retry import Retry, RetryConfig, RetryError, RetryStrategy
from storesync.utils.constants import ErrorKind
from storesync.utils.exceptions import AuthError, ShopUnavailable, ShopAPIError, ValidationError

from conftest import make_retry


class Flaky:
    """Fails a fixed number of times before succeeding"""

    def __init__(self, failures, error_factory=lambda: ShopUnavailable("boom")):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self, value='ok'):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return value


class TestRetryConfig:
    """Tests for configuration validation."""

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    def test_rejects_max_delay_below_initial(self) -> None:
        with pytest.raises(ValueError):
            RetryConfig(initial_delay=5, max_delay=1)


class TestRetryRun:
    """Tests for Retry.run."""

    @pytest.mark.asyncio
    async def test_success_after_transient_failures(self) -> None:
        """Two failures then success: delays are 1s then 2s."""
        retry = make_retry()
        operation = Flaky(2)

        result = await retry.run(operation, 'value')

        assert result.success is True
        assert result.value == 'value'
        assert result.attempts == 3
        assert retry.delays == [1, 2]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        retry = make_retry()
        operation = Flaky(5)

        result = await retry.run(operation)

        assert result.success is False
        assert result.attempts == 3
        assert operation.calls == 3
        assert result.error_message == 'boom'

    @pytest.mark.asyncio
    async def test_auth_errors_are_not_retried(self) -> None:
        retry = make_retry()
        operation = Flaky(1, lambda: AuthError("bad token"))

        result = await retry.run(operation)

        assert result.success is False
        assert operation.calls == 1
        assert retry.delays == []

    @pytest.mark.asyncio
    async def test_validation_errors_are_not_retried(self) -> None:
        retry = make_retry()
        operation = Flaky(1, lambda: ValidationError("invalid handle"))

        result = await retry.run(operation)

        assert operation.calls == 1
        assert result.success is False

    @pytest.mark.asyncio
    async def test_permission_graphql_errors_are_not_retried(self) -> None:
        """ShopAPIError of kind permission exposes retryable=False."""
        retry = make_retry()
        operation = Flaky(1, lambda: ShopAPIError("Access denied", kind=ErrorKind.PERMISSION))

        result = await retry.run(operation)

        assert operation.calls == 1
        assert result.success is False

    @pytest.mark.asyncio
    async def test_transient_graphql_errors_are_retried(self) -> None:
        retry = make_retry()
        operation = Flaky(1, lambda: ShopAPIError("Throttled", kind=ErrorKind.TRANSIENT))

        result = await retry.run(operation)

        assert result.success is True
        assert operation.calls == 2


class TestDelays:
    """Tests for the backoff strategies."""

    def test_exponential_delays_are_capped(self) -> None:
        retry = Retry(RetryConfig(max_attempts=10, initial_delay=1, max_delay=5))

        assert [retry.config.delay_for(attempt) for attempt in range(1, 6)] == [1, 2, 4, 5, 5]

    def test_constant_strategy(self) -> None:
        retry = Retry(RetryConfig(initial_delay=2, max_delay=10, strategy=RetryStrategy.CONSTANT))

        assert retry.config.delay_for(1) == 2
        assert retry.config.delay_for(3) == 2


class TestAsyncRetryDecorator:
    @pytest.mark.asyncio
    async def test_raises_retry_error_when_exhausted(self) -> None:
        retry = make_retry(max_attempts=2)
        operation = Flaky(5)

        @retry.async_retry
        async def wrapped():
            return await operation()

        with pytest.raises(RetryError) as error:
            await wrapped()

        assert error.value.attempts == 2
