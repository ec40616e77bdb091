"""
Tests for RetryPolicy
"""

import pytest

from app.services.errors import ConcurrencyConflict, StorageError
from app.services.retry import RetryPolicy


class Flaky:
    def __init__(self, failures, error=ConcurrencyConflict):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"conflict {self.calls}")
        return value


class TestRetryPolicy:

    def test_succeeds_after_conflicts(self):
        delays = []
        func = Flaky(failures=2)

        result = RetryPolicy(stage="test", base_delay=0.01, jitter=0, sleep_fn=delays.append).execute(func, "ok")

        assert result == "ok"
        assert func.calls == 3
        assert delays == pytest.approx([0.01, 0.02])

    def test_exhaustion_wraps_last_conflict(self):
        func = Flaky(failures=5)

        with pytest.raises(StorageError) as excinfo:
            RetryPolicy(stage="assign", max_attempts=3, sleep_fn=lambda _: None).execute(func, "ok")

        assert func.calls == 3
        assert "assign failed after 3 attempts" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, ConcurrencyConflict)

    def test_other_errors_are_not_retried(self):
        func = Flaky(failures=1, error=KeyError)

        with pytest.raises(KeyError):
            RetryPolicy(stage="test", sleep_fn=lambda _: None).execute(func, "ok")

        assert func.calls == 1

    def test_delay_capped(self):
        delays = []
        func = Flaky(failures=3)

        RetryPolicy(stage="test", max_attempts=4, base_delay=1.0, max_delay=1.5, jitter=0,
                    sleep_fn=delays.append).execute(func, "ok")

        assert delays == pytest.approx([1.0, 1.5, 1.5])
