from datetime import date

import pytest

from dx_core.common.sequences import next_daily_value

pytestmark = pytest.mark.django_db


def test_counter_increments_per_scope_and_day():
    day = date(2026, 3, 14)

    assert next_daily_value(scope_key="report:a", day=day) == 1
    assert next_daily_value(scope_key="report:a", day=day) == 2
    assert next_daily_value(scope_key="report:a", day=day) == 3


def test_counter_restarts_for_new_day_and_other_scope():
    next_daily_value(scope_key="report:a", day=date(2026, 3, 14))
    next_daily_value(scope_key="report:a", day=date(2026, 3, 14))

    assert next_daily_value(scope_key="report:a", day=date(2026, 3, 15)) == 1
    assert next_daily_value(scope_key="report:b", day=date(2026, 3, 14)) == 1
