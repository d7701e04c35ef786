from datetime import datetime

import pendulum
import pytest

from his_dashboard.periods import period_bounds, to_millis


def _ms(*args):
    return int(datetime(*args).timestamp() * 1000)


REF = datetime(2025, 8, 14, 10, 30)


def test_to_millis_accepts_several_types():
    assert to_millis(None) is None
    assert to_millis(1_700_000_000_000) == 1_700_000_000_000
    assert to_millis(datetime(2025, 10, 14, 14, 43, 55)) == _ms(2025, 10, 14, 14, 43, 55)
    assert to_millis("2025-10-14T14:43:55") == _ms(2025, 10, 14, 14, 43, 55)


def test_day_bounds():
    start, end = period_bounds("day", REF)
    assert start == _ms(2025, 8, 14)
    assert end == _ms(2025, 8, 14, 23, 59, 59, 999999)


def test_month_bounds():
    start, end = period_bounds("month", REF)
    assert start == _ms(2025, 8, 1)
    assert end == _ms(2025, 8, 31, 23, 59, 59, 999999)


def test_quarter_bounds():
    start, end = period_bounds("quarter", REF)
    assert start == _ms(2025, 7, 1)
    assert end == _ms(2025, 9, 30, 23, 59, 59, 999999)


def test_year_bounds():
    start, end = period_bounds("year", REF)
    assert start == _ms(2025, 1, 1)
    assert end == _ms(2025, 12, 31, 23, 59, 59, 999999)


def test_week_starts_on_monday():
    start, end = period_bounds("week", REF)
    assert start == _ms(2025, 8, 11)
    assert end == _ms(2025, 8, 17, 23, 59, 59, 999999)


def test_default_reference_is_now():
    start, end = period_bounds("day")
    now = int(pendulum.now().timestamp() * 1000)
    assert start <= now <= end


def test_unknown_period():
    with pytest.raises(ValueError):
        period_bounds("decade", REF)
