"""Tests for retrying transient storage errors."""

import pytest

from flowpay.core.exceptions import StorageError, ValidationError
from flowpay.resilience.retry import execute_with_retry, is_transient_error


class TestIsTransientError:
    def test_network_errors(self):
        assert is_transient_error(ConnectionError("reset"))
        assert is_transient_error(TimeoutError())

    def test_message_keywords(self):
        assert is_transient_error(RuntimeError("Connection refused by host"))
        assert is_transient_error(OSError("read timed out"))

    def test_domain_errors_are_not_transient(self):
        assert not is_transient_error(ValidationError("timeout must be positive"))
        assert not is_transient_error(StorageError("network error", collection="plans"))

    def test_other_errors(self):
        assert not is_transient_error(KeyError("id"))


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def read(key, default=None):
            return {"key": key, "default": default}

        assert await execute_with_retry(read, "k", default=1) == {"key": "k", "default": 1}

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("connection reset")
            return "ok"

        assert await execute_with_retry(flaky, attempts=3, wait_min=0.001, wait_max=0.01) == "ok"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = 0

        async def down():
            nonlocal calls
            calls += 1
            raise TimeoutError("redis timed out")

        with pytest.raises(TimeoutError):
            await execute_with_retry(down, attempts=2, wait_min=0.001, wait_max=0.01)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_permanent_errors(self):
        calls = 0

        async def bad():
            nonlocal calls
            calls += 1
            raise ValueError("bad record")

        with pytest.raises(ValueError):
            await execute_with_retry(bad, attempts=5, wait_min=0.001)
        assert calls == 1
