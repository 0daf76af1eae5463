"""Tests for the SQLite lock retry decorator."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from tunecache.infrastructure.persistence.retry import is_lock_error, with_db_retry


def _operational(message: str) -> OperationalError:
    return OperationalError("INSERT INTO tracks", {}, Exception(message))


class TestIsLockError:
    """Test lock error detection."""

    def test_lock_errors(self) -> None:
        """Test locked and busy messages are retryable."""
        assert is_lock_error(_operational("database is locked"))
        assert is_lock_error(_operational("database table is BUSY"))

    def test_other_errors(self) -> None:
        """Test anything else is not."""
        assert not is_lock_error(_operational("no such table: tracks"))
        assert not is_lock_error(IntegrityError("INSERT", {}, Exception("locked")))
        assert not is_lock_error(RuntimeError("database is locked"))


class TestWithDbRetry:
    """Test retry behaviour."""

    async def test_retries_until_success(self) -> None:
        """Test lock errors are retried and the result returned."""
        calls = 0

        @with_db_retry(max_attempts=3, initial_delay=0)
        async def write() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise _operational("database is locked")
            return "ok"

        assert await write() == "ok"
        assert calls == 3

    async def test_gives_up_after_max_attempts(self) -> None:
        """Test the last lock error is raised once attempts run out."""
        calls = 0

        @with_db_retry(max_attempts=2, initial_delay=0)
        async def write() -> None:
            nonlocal calls
            calls += 1
            raise _operational("database is locked")

        with pytest.raises(OperationalError):
            await write()
        assert calls == 2

    async def test_other_errors_not_retried(self) -> None:
        """Test non-lock errors propagate immediately."""
        calls = 0

        @with_db_retry(max_attempts=5, initial_delay=0)
        async def write() -> None:
            nonlocal calls
            calls += 1
            raise _operational("no such table: tracks")

        with pytest.raises(OperationalError):
            await write()
        assert calls == 1

    async def test_backoff_delays(self, mocker) -> None:
        """Test delays grow by the backoff factor up to max_delay."""
        sleep = mocker.patch(
            "tunecache.infrastructure.persistence.retry.asyncio.sleep",
            new_callable=mocker.AsyncMock,
        )

        @with_db_retry(max_attempts=4, initial_delay=1.0, max_delay=3.0, backoff_factor=2.0)
        async def write() -> None:
            raise _operational("database is locked")

        with pytest.raises(OperationalError):
            await write()

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 3.0]
