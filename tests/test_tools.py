import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from tools import Bucket, DateTools, MathTools


class MathToolsTestCase(unittest.TestCase):
    def test_constants(self) -> None:
        self.assertAlmostEqual(MathTools.EPLEY_DIVISOR, 30.0)

    def test_epley_1rm(self) -> None:
        self.assertEqual(MathTools.epley_1rm(100, 1), 100)
        self.assertAlmostEqual(MathTools.epley_1rm(100, 10), 100 * (1 + 10 / 30))
        self.assertAlmostEqual(MathTools.epley_1rm(100, 10), 133.333, places=3)
        self.assertEqual(MathTools.epley_1rm(0, 10), 0)
        self.assertEqual(MathTools.epley_1rm(100, 0), 0)
        self.assertEqual(MathTools.epley_1rm(-5, 3), 0)

    def test_volume(self) -> None:
        sets = [(10, 100.0), (5, 150.0)]
        self.assertEqual(MathTools.volume(sets), 10 * 100.0 + 5 * 150.0)
        self.assertEqual(MathTools.volume([]), 0.0)

    def test_mean(self) -> None:
        self.assertEqual(MathTools.mean([1.0, 2.0, 3.0]), 2.0)
        self.assertEqual(MathTools.mean([]), 0.0)

    def test_percentages(self) -> None:
        result = MathTools.percentages({"chest": 600.0, "back": 400.0})
        self.assertAlmostEqual(result["chest"], 60.0)
        self.assertAlmostEqual(result["back"], 40.0)
        self.assertEqual(MathTools.percentages({"chest": 0.0}), {})
        self.assertEqual(MathTools.percentages({}), {})

    def test_inbody_standard_range(self) -> None:
        weight = MathTools.inbody_standard_range("weight", height=180)
        self.assertAlmostEqual(weight["base"], 21.7 * 1.8 ** 2)
        self.assertAlmostEqual(weight["min"], weight["base"] * 0.85)
        self.assertAlmostEqual(weight["max"], weight["base"] * 1.15)
        muscle = MathTools.inbody_standard_range("muscle", gender="male", weight=80)
        self.assertAlmostEqual(muscle["base"], 80 * 0.36)
        fat = MathTools.inbody_standard_range("fat")
        self.assertEqual(fat["base"], 10.0)
        with self.assertRaises(ValueError):
            MathTools.inbody_standard_range("bones")


class DateToolsTestCase(unittest.TestCase):
    def test_parse_timestamp(self) -> None:
        self.assertEqual(
            DateTools.parse_timestamp("2024-01-01T23:30:00Z"),
            datetime.datetime(2024, 1, 1, 23, 30),
        )
        self.assertEqual(
            DateTools.parse_timestamp("2024-01-02T01:00:00+09:00"),
            datetime.datetime(2024, 1, 2, 1, 0),
        )
        self.assertEqual(
            DateTools.calendar_day("2024-01-02T01:00:00+09:00"), datetime.date(2024, 1, 2)
        )
        self.assertEqual(
            DateTools.parse_timestamp(datetime.date(2024, 1, 5)),
            datetime.datetime(2024, 1, 5),
        )
        with self.assertRaises(ValueError):
            DateTools.parse_timestamp(12)

    def test_calendar_day(self) -> None:
        self.assertEqual(
            DateTools.calendar_day("2024-01-03T22:15:00"), datetime.date(2024, 1, 3)
        )
        self.assertEqual(
            DateTools.calendar_day(datetime.date(2024, 1, 3)), datetime.date(2024, 1, 3)
        )

    def test_weekday_starts_on_sunday(self) -> None:
        self.assertEqual(DateTools.weekday(datetime.date(2024, 1, 7)), 0)
        self.assertEqual(DateTools.weekday(datetime.date(2024, 1, 1)), 1)
        self.assertEqual(DateTools.weekday(datetime.date(2024, 1, 6)), 6)

    def test_start_of_week(self) -> None:
        day = datetime.date(2024, 1, 3)
        self.assertEqual(DateTools.start_of_week(day, 1), datetime.date(2024, 1, 1))
        self.assertEqual(DateTools.start_of_week(day, 0), datetime.date(2023, 12, 31))

    def test_bucket_start(self) -> None:
        self.assertEqual(
            DateTools.bucket_start("2024-01-17T08:00:00", "month"), datetime.date(2024, 1, 1)
        )
        with self.assertRaises(ValueError):
            DateTools.bucket_start("2024-01-17", "year")

    def test_shift_months_across_years(self) -> None:
        start = datetime.date(2024, 1, 1)
        self.assertEqual(DateTools.shift(start, "month", -1), datetime.date(2023, 12, 1))
        self.assertEqual(DateTools.shift(start, "month", 12), datetime.date(2025, 1, 1))

    def test_labels(self) -> None:
        self.assertEqual(DateTools.label(datetime.date(2024, 1, 5), "day"), "01/05")
        self.assertEqual(DateTools.label(datetime.date(2024, 1, 8), "week"), "Jan W2")
        self.assertEqual(DateTools.label(datetime.date(2024, 1, 1), "month"), "2024-01")

    def test_buckets(self) -> None:
        now = datetime.datetime(2024, 1, 3, 12, 0)
        buckets = DateTools.buckets("week", 2, 1, now=now)
        self.assertEqual(
            [b.start for b in buckets],
            [
                datetime.date(2023, 12, 18),
                datetime.date(2023, 12, 25),
                datetime.date(2024, 1, 1),
                datetime.date(2024, 1, 8),
            ],
        )
        self.assertEqual([b.label for b in buckets], ["Dec W3", "Dec W4", "Jan W1", "Jan W2"])
        self.assertEqual([b.is_future for b in buckets], [False, False, False, True])
        self.assertEqual(buckets[2].end, datetime.date(2024, 1, 8))

    def test_buckets_rejects_bad_arguments(self) -> None:
        with self.assertRaises(ValueError):
            DateTools.buckets("day", -1)
        with self.assertRaises(ValueError):
            DateTools.buckets("week", 1, week_start=7)

    def test_bucket_contains(self) -> None:
        bucket = Bucket(datetime.date(2024, 1, 1), datetime.date(2024, 1, 8), "Jan W1", False)
        self.assertTrue(bucket.contains(datetime.date(2024, 1, 7)))
        self.assertFalse(bucket.contains(datetime.date(2024, 1, 8)))


if __name__ == "__main__":
    unittest.main()
