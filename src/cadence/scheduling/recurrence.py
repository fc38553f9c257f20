"""Next-run computation and the opt-in failure backoff policy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

# Fixed durations, not calendar arithmetic: "monthly" drifts against real months.
FREQUENCY_OFFSETS: dict[str, timedelta] = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}
DEFAULT_OFFSET = FREQUENCY_OFFSETS["daily"]


def next_run(frequency: str, now: datetime) -> datetime:
    """Return the next run instant for a frequency label. Unknown labels fall back to daily."""
    return now + FREQUENCY_OFFSETS.get(frequency, DEFAULT_OFFSET)


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential delay after consecutive failures, optionally deactivating at a threshold."""

    base_delay: timedelta
    max_delay: timedelta = timedelta(days=1)
    max_consecutive_failures: int | None = None

    def delay_for(self, failures: int) -> timedelta:
        if failures <= 0:
            return timedelta(0)
        seconds = self.base_delay.total_seconds() * 2.0 ** min(failures - 1, 64)
        return timedelta(seconds=min(seconds, self.max_delay.total_seconds()))

    def should_deactivate(self, failures: int) -> bool:
        return self.max_consecutive_failures is not None and failures >= self.max_consecutive_failures

    @classmethod
    def from_settings(cls, base_seconds: float, max_seconds: float, max_failures: int) -> BackoffPolicy | None:
        if base_seconds <= 0:
            return None
        return cls(
            base_delay=timedelta(seconds=base_seconds),
            max_delay=timedelta(seconds=max(base_seconds, max_seconds)),
            max_consecutive_failures=max_failures or None,
        )
