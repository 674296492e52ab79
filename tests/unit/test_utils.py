"""Unit tests for retry and cancellation helpers."""

import asyncio

import pytest

from inbox_assistant.exceptions import ProviderNotFoundError, ProviderTransientError
from inbox_assistant.utils import retry_async, shielded


class TestRetryAsync:
    """Test suite for retry_async."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self) -> None:
        """Retryable errors are retried."""
        attempts = []

        async def flaky() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise ProviderTransientError("try again")
            return "ok"

        result = await retry_async(flaky, max_retries=3, delay=0, retry_on=(ProviderTransientError,))

        assert result == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self) -> None:
        """Errors outside retry_on propagate on the first attempt."""
        attempts = []

        async def missing() -> None:
            attempts.append(1)
            raise ProviderNotFoundError("gone")

        with pytest.raises(ProviderNotFoundError):
            await retry_async(missing, max_retries=3, delay=0, retry_on=(ProviderTransientError,))
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self) -> None:
        """After max_retries the last error is raised."""

        async def always() -> None:
            raise ProviderTransientError("still down")

        with pytest.raises(ProviderTransientError, match="still down"):
            await retry_async(always, max_retries=2, delay=0, retry_on=(ProviderTransientError,))


class TestShielded:
    """Test suite for shielded."""

    @pytest.mark.asyncio
    async def test_side_effect_completes_after_cancel(self) -> None:
        """Cancelling the caller does not interrupt the shielded call."""
        started = asyncio.Event()
        finished = []

        async def mutation() -> None:
            started.set()
            await asyncio.sleep(0.05)
            finished.append(True)

        task = asyncio.create_task(shielded(mutation()))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert finished == [True]
