"""Tests for tracesim.utils — simulated time, dates and logger setup."""

import logging
from datetime import date

import pytest

from tracesim.types import DAY
from tracesim.utils import (
    as_date,
    corrected_time,
    date_of_day,
    setup_logger,
    start_offset,
)


class TestSimulatedTime:
    def test_corrected_time_ignores_offset(self):
        offset = start_offset('2020-02-18')
        assert corrected_time(offset, 0.0, 3) == 3 * DAY
        assert corrected_time(0.0, 0.0, 3) == 3 * DAY

    def test_time_of_day_added(self):
        assert corrected_time(0.0, 3600.0, 2) == 2 * DAY + 3600.0

    def test_time_of_day_clamped_to_one_day(self):
        assert corrected_time(0.0, 2 * DAY, 1) == 2 * DAY

    def test_start_offset_is_utc_midnight(self):
        assert start_offset('1970-01-02') == 86400
        assert start_offset(date(2020, 2, 18)) == 1581984000


class TestDates:
    def test_day_one_is_start_date(self):
        assert date_of_day('2020-02-18', 1) == date(2020, 2, 18)
        assert date_of_day('2020-02-18', 13) == date(2020, 3, 1)

    def test_as_date_accepts_strings_and_dates(self):
        assert as_date('2020-03-01') == date(2020, 3, 1)
        assert as_date(date(2020, 3, 1)) == date(2020, 3, 1)

    def test_as_date_rejects_garbage(self):
        with pytest.raises(ValueError):
            as_date('yesterday')


class TestSetupLogger:
    def test_idempotent(self):
        logger = setup_logger('tracesim.test_idempotent', 'DEBUG')
        n = len(logger.handlers)
        again = setup_logger('tracesim.test_idempotent', logging.INFO)
        assert again is logger
        assert len(again.handlers) == n == 1
        assert again.level == logging.INFO
