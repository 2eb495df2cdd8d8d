"""Unit tests for the document-source retry policy."""

from __future__ import annotations

import pytest

from painradar.core.errors import PainRadarError, RateLimited, SourceUnavailable
from painradar.modules.sources.retry import RetryPolicy


class Flaky:
    """Raises the queued errors in order, then returns ``value``."""

    def __init__(self, errors: list[Exception], value: str = "ok") -> None:
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def _policy(sleeper, **overrides) -> RetryPolicy:
    options = {"max_attempts": 3, "base_delay": 1.0, "rate_limit_delay": 30.0, "sleep": sleeper}
    options.update(overrides)
    return RetryPolicy(**options)


async def test_success_needs_no_retry(sleeper) -> None:
    op = Flaky([])
    assert await _policy(sleeper).run(op) == "ok"
    assert op.calls == 1
    assert sleeper.delays == []


async def test_exponential_backoff_on_source_errors(sleeper) -> None:
    op = Flaky([SourceUnavailable("502"), SourceUnavailable("503")])

    assert await _policy(sleeper).run(op, label="fetch r/startups") == "ok"

    assert op.calls == 3
    assert sleeper.delays == [1.0, 2.0]


async def test_rate_limit_waits_at_least_the_fixed_window(sleeper) -> None:
    """Retry-After is honoured when it asks for longer than the default."""
    op = Flaky([RateLimited("429"), RateLimited("429", retry_after=45), RateLimited("429", retry_after=5)])

    assert await _policy(sleeper, max_attempts=4).run(op) == "ok"

    assert sleeper.delays == [30.0, 45.0, 30.0]


async def test_backoff_is_capped(sleeper) -> None:
    op = Flaky([SourceUnavailable("down")] * 4)

    await _policy(sleeper, max_attempts=5, base_delay=20.0).run(op)

    assert sleeper.delays == [20.0, 40.0, 60.0, 60.0]


async def test_exhausted_budget_reraises_last_error(sleeper) -> None:
    op = Flaky([SourceUnavailable("first"), SourceUnavailable("second"), SourceUnavailable("third")])

    with pytest.raises(SourceUnavailable, match="third"):
        await _policy(sleeper).run(op)

    assert op.calls == 3
    assert len(sleeper.delays) == 2


async def test_other_errors_are_not_retried(sleeper) -> None:
    op = Flaky([PainRadarError("bad payload")])

    with pytest.raises(PainRadarError, match="bad payload"):
        await _policy(sleeper).run(op)

    assert op.calls == 1
    assert sleeper.delays == []
