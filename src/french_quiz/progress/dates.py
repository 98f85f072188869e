"""Local calendar date helpers.

Streaks and daily aggregates follow the device's local calendar day, not
UTC, so an answer at 23:30 and one at 00:10 land on different days for
the user who gave them.
"""

from datetime import date, datetime, timedelta
from typing import TypeVar

T = TypeVar("T")


def local_date_string(moment: datetime | date) -> str:
    """Format a local date as YYYY-MM-DD."""
    if isinstance(moment, datetime):
        moment = moment.date()
    return moment.isoformat()


def yesterday_date_string(moment: datetime | date) -> str:
    if isinstance(moment, datetime):
        moment = moment.date()
    return local_date_string(moment - timedelta(days=1))


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    """Local naive datetime for an epoch-ms timestamp."""
    return datetime.fromtimestamp(ms / 1000)


def prune_daily_stats(
    daily_stats: dict[str, T], today: datetime | date, retention_days: int = 90
) -> dict[str, T]:
    """Drop date keys older than the retention window.

    Today plus the ``retention_days - 1`` preceding days are kept.
    Keys that are not valid dates are dropped too.
    """
    if isinstance(today, datetime):
        today = today.date()
    cutoff = today - timedelta(days=retention_days - 1)
    kept = {}
    for key, value in daily_stats.items():
        try:
            day = date.fromisoformat(key)
        except ValueError:
            continue
        if day >= cutoff:
            kept[key] = value
    return kept
