"""Pain Radar error taxonomy.

Recovery policy per error:
  - SourceUnavailable / RateLimited: retried locally by the RetryPolicy
  - NoNewInput: coordinator widens its fetch limit, then fails the job
  - StageSynthesisUnrecoverable: stage output is empty, pipeline continues
  - ValidationRejected: artifact dropped, never raised across a stage
  - JobTimeout: job failed, nothing persisted
  - score total drift: logged as a warning, no exception type
  - DeliveryFailed: logged per recipient, the digest run continues
"""

from __future__ import annotations


class PainRadarError(Exception):
    """Base class for all Pain Radar errors."""


class SourceUnavailable(PainRadarError):
    """The document source could not be reached or returned garbage."""


class RateLimited(SourceUnavailable):
    """The document source throttled us."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NoNewInput(PainRadarError):
    """Every fetched document has already been processed."""


class StageSynthesisUnrecoverable(PainRadarError):
    """No extraction strategy produced valid data for a stage."""

    def __init__(self, stage: str, attempts: list[str]) -> None:
        super().__init__(
            f"{stage}: all extraction strategies failed ({'; '.join(attempts) or 'no attempts'})"
        )
        self.stage = stage
        self.attempts = attempts


class ValidationRejected(PainRadarError):
    """An artifact failed validation and was dropped."""

    def __init__(self, kind: str, errors: list[str]) -> None:
        super().__init__(f"{kind} rejected: {', '.join(errors)}")
        self.kind = kind
        self.errors = errors


class JobTimeout(PainRadarError):
    """A job exceeded its wall-clock budget."""


class DeliveryFailed(PainRadarError):
    """The notifier could not deliver a message."""
