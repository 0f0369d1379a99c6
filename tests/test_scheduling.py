"""
Unit tests for schedule expansion.

Expansion contract:
- one draft per day in [start, end] whose weekday is selected, ascending
- end_time = start_time + duration hours on a 24-hour clock (no day carry)
- an empty result is not an error; missing dates or weekdays are
"""

import unittest
from datetime import date, timedelta

from irati.errors import InvalidRequestError, MissingScheduleError
from irati.scheduling import WEEKDAYS, add_hours, expand_schedule, parse_duration_hours


class TestExpandSchedule(unittest.TestCase):
    def test_monday_wednesday_two_weeks(self) -> None:
        drafts = expand_schedule(
            date(2025, 3, 3), date(2025, 3, 14), ["monday", "wednesday"], "10:00", "2 horas"
        )
        self.assertEqual(
            [d.session_date for d in drafts],
            [date(2025, 3, 3), date(2025, 3, 5), date(2025, 3, 10), date(2025, 3, 12)],
        )
        for d in drafts:
            self.assertEqual((d.start_time, d.end_time), ("10:00", "12:00"))

    def test_no_matching_weekday_is_empty_not_error(self) -> None:
        # Monday 3rd to Saturday 8th: no Sunday in range
        drafts = expand_schedule(date(2025, 3, 3), date(2025, 3, 8), ["sunday"], "10:00", "2 horas")
        self.assertEqual(drafts, [])

    def test_same_inputs_same_output(self) -> None:
        args = (date(2025, 1, 1), date(2025, 2, 28), ["tuesday", "friday"], "18:30", "1 hora")
        self.assertEqual(expand_schedule(*args), expand_schedule(*args))

    def test_matches_brute_force_over_ranges(self) -> None:
        day_sets = [["monday"], ["saturday", "sunday"], ["tuesday", "thursday", "friday"], list(WEEKDAYS)]
        start = date(2024, 12, 20)
        for span in (0, 1, 6, 7, 30, 75):
            end = start + timedelta(days=span)
            for days in day_sets:
                wanted = {WEEKDAYS[d] for d in days}
                expected = [
                    start + timedelta(days=i)
                    for i in range(span + 1)
                    if (start + timedelta(days=i)).weekday() in wanted
                ]
                got = [d.session_date for d in expand_schedule(start, end, days, "09:00", "3h")]
                self.assertEqual(got, expected)

    def test_single_day_range(self) -> None:
        drafts = expand_schedule(date(2025, 3, 3), date(2025, 3, 3), ["monday"], "10:00", "2")
        self.assertEqual(len(drafts), 1)

    def test_default_start_time(self) -> None:
        drafts = expand_schedule(date(2025, 3, 3), date(2025, 3, 3), ["monday"], None, "1 hora")
        self.assertEqual((drafts[0].start_time, drafts[0].end_time), ("10:00", "11:00"))

    def test_missing_end_date_raises(self) -> None:
        with self.assertRaises(MissingScheduleError):
            expand_schedule(date(2025, 3, 3), None, ["monday"], "10:00", "2 horas")

    def test_missing_weekdays_raises(self) -> None:
        with self.assertRaises(MissingScheduleError):
            expand_schedule(date(2025, 3, 3), date(2025, 3, 14), [], "10:00", "2 horas")

    def test_unknown_weekday_raises(self) -> None:
        with self.assertRaises(InvalidRequestError):
            expand_schedule(date(2025, 3, 3), date(2025, 3, 14), ["lunes"], "10:00", "2 horas")


class TestDurationAndClock(unittest.TestCase):
    def test_first_number_wins(self) -> None:
        self.assertEqual(parse_duration_hours("3 horas"), 3)
        self.assertEqual(parse_duration_hours("1h30"), 1)

    def test_unparseable_defaults_to_two(self) -> None:
        self.assertEqual(parse_duration_hours("dos horas"), 2)
        self.assertEqual(parse_duration_hours(""), 2)
        self.assertEqual(parse_duration_hours(None), 2)

    def test_add_hours_keeps_minutes(self) -> None:
        self.assertEqual(add_hours("09:45", 2), "11:45")

    def test_add_hours_wraps_at_midnight(self) -> None:
        self.assertEqual(add_hours("23:00", 2), "01:00")

    def test_add_hours_rejects_garbage(self) -> None:
        with self.assertRaises(InvalidRequestError):
            add_hours("10", 1)


if __name__ == "__main__":
    unittest.main()
