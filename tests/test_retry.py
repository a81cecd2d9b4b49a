import asyncio

import pytest

from app.errors import ProviderAuthError, TransientProviderError
from app.services.retry import is_retryable, retry_with_backoff


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_first_success_does_not_sleep():
    op, sleep = Flaky([]), RecordingSleep()
    assert asyncio.run(retry_with_backoff(op, sleep=sleep)) == "ok"
    assert op.calls == 1
    assert sleep.delays == []


def test_transient_errors_back_off_exponentially():
    op = Flaky([Exception("socket hang up"), Exception("read ECONNRESET")])
    sleep = RecordingSleep()
    assert asyncio.run(retry_with_backoff(op, max_retries=3, base_delay=1.0, sleep=sleep)) == "ok"
    assert op.calls == 3
    assert sleep.delays == [1.0, 2.0]


def test_gives_up_after_max_retries_plus_one_attempts():
    op = Flaky([TransientProviderError("Connection error: refused")] * 5)
    sleep = RecordingSleep()
    with pytest.raises(TransientProviderError):
        asyncio.run(retry_with_backoff(op, max_retries=2, base_delay=0.5, sleep=sleep))
    assert op.calls == 3
    assert sleep.delays == [0.5, 1.0]


def test_non_transient_error_is_not_retried():
    op, sleep = Flaky([ProviderAuthError("Invalid API key")]), RecordingSleep()
    with pytest.raises(ProviderAuthError):
        asyncio.run(retry_with_backoff(op, sleep=sleep))
    assert op.calls == 1
    assert sleep.delays == []


def test_zero_retries_means_one_attempt():
    op = Flaky([Exception("ETIMEDOUT")])
    with pytest.raises(Exception, match="ETIMEDOUT"):
        asyncio.run(retry_with_backoff(op, max_retries=0, sleep=RecordingSleep()))
    assert op.calls == 1


def test_negative_retries_rejected():
    with pytest.raises(ValueError):
        asyncio.run(retry_with_backoff(Flaky([]), max_retries=-1))


def test_is_retryable():
    assert is_retryable(TransientProviderError("anything"))
    assert is_retryable(RuntimeError("Connection error."))
    assert not is_retryable(RuntimeError("Invalid API key"))
    assert not is_retryable(ProviderAuthError("socket hang up"))
