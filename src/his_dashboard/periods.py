"""Calendar period filters (today, this week/month/quarter/year) as epoch-ms bounds."""

from datetime import datetime
from typing import Optional, Tuple, Union

import pendulum

PERIODS = ("day", "week", "month", "quarter", "year")

Instant = Union[int, float, datetime, str]


def to_millis(value: Optional[Instant]) -> Optional[int]:
    """
    Normalise a query bound to epoch milliseconds.

    ints are taken as epoch ms, naive datetimes and strings as local time.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        value = pendulum.parse(value, tz=pendulum.local_timezone())
    return int(value.timestamp() * 1000)


def period_bounds(kind: str, reference: Optional[datetime] = None) -> Tuple[int, int]:
    """Inclusive [start, end] of the period containing reference (default: now)."""
    if kind not in PERIODS:
        raise ValueError(f"Unknown period {kind!r}; expected one of {PERIODS}")

    tz = pendulum.local_timezone()
    ref = pendulum.instance(reference, tz=tz) if reference else pendulum.now(tz)

    if kind == "quarter":
        first_month = 3 * ((ref.month - 1) // 3) + 1
        start = ref.set(month=first_month, day=1).start_of("day")
        end = start.add(months=2).end_of("month")
    else:
        start = ref.start_of(kind)
        end = ref.end_of(kind)

    return to_millis(start), to_millis(end)
