"""
Tests for retry with backoff
"""
import pytest

from hotel_ads_funnel.errors import AdsApiError, AuthExpiredError, RateLimitError
from hotel_ads_funnel.retry import RetryPolicy, attempt, execute

NO_JITTER = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, jitter=0)


class Flaky:
    """Raises the queued errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryPolicy:
    def test_exponential_backoff(self):
        assert [NO_JITTER.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=10, max_delay=15, jitter=0)
        assert policy.delay_for(5) == 15

    def test_jitter_stays_in_range(self):
        policy = RetryPolicy(base_delay=1, jitter=0.5)
        for _ in range(20):
            assert 1.0 <= policy.delay_for(1) <= 1.5


class TestExecute:
    def test_returns_first_success(self):
        sleeps = []
        fn = Flaky()
        assert execute(fn, NO_JITTER, sleep=sleeps.append) == "ok"
        assert fn.calls == 1
        assert sleeps == []

    def test_retries_rate_limits(self):
        sleeps = []
        fn = Flaky(RateLimitError("slow down", status_code=429), RateLimitError("slow down", status_code=429))
        assert execute(fn, NO_JITTER, sleep=sleeps.append) == "ok"
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self):
        sleeps = []
        fn = Flaky(*[RateLimitError("quota", status_code=429) for _ in range(5)])
        with pytest.raises(RateLimitError):
            execute(fn, NO_JITTER, sleep=sleeps.append)
        assert fn.calls == 3
        assert len(sleeps) == 2

    def test_auth_errors_are_not_retried(self):
        fn = Flaky(AuthExpiredError("token expired", status_code=401))
        with pytest.raises(AuthExpiredError):
            execute(fn, NO_JITTER, sleep=lambda s: None)
        assert fn.calls == 1

    def test_other_api_errors_are_not_retried(self):
        fn = Flaky(AdsApiError("bad field", status_code=400))
        with pytest.raises(AdsApiError):
            execute(fn, NO_JITTER, sleep=lambda s: None)
        assert fn.calls == 1

    def test_single_attempt_policy(self):
        fn = Flaky(RateLimitError("quota"))
        with pytest.raises(RateLimitError):
            execute(fn, RetryPolicy(max_attempts=1, jitter=0), sleep=lambda s: None)
        assert fn.calls == 1


class TestAttempt:
    def test_success_result(self):
        result = attempt(Flaky(), NO_JITTER, sleep=lambda s: None)
        assert result.ok
        assert result.value == "ok"

    def test_failure_result(self):
        result = attempt(Flaky(AdsApiError("boom", status_code=500)), NO_JITTER, sleep=lambda s: None)
        assert not result.ok
        assert isinstance(result.error, AdsApiError)
        assert result.value is None
