import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from models import PersonalRecord, RecordType, WorkoutExercise, WorkoutSession, WorkoutSet
from pr_service import PersonalRecordService


def make_session(session_id, day, *entries):
    """``entries`` are (exercise_id, name, [(reps, weight), ...])."""
    return WorkoutSession(
        id=session_id,
        date=datetime.datetime(2024, 1, day, 10, 0),
        exercises=[
            WorkoutExercise(
                exercise_id=ex_id,
                exercise_name=name,
                sets=[WorkoutSet(reps=r, weight=w) for r, w in sets],
            )
            for ex_id, name, sets in entries
        ],
    )


class PersonalRecordServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.service = PersonalRecordService()

    def _values(self, records, record_type):
        return [r.value for r in records if r.type == record_type]

    def test_first_session_sets_every_metric(self) -> None:
        session = make_session("s1", 1, ("2", "Squat", [(5, 100), (3, 110)]))
        records = self.service.detect(session, [])
        self.assertEqual(len(records), 3)
        by_type = {r.type: r.value for r in records}
        self.assertEqual(by_type[RecordType.MAX_WEIGHT], 110)
        self.assertEqual(by_type[RecordType.MAX_VOLUME], 500 + 330)
        self.assertEqual(by_type[RecordType.MAX_REPS], 5)
        self.assertTrue(all(r.workout_session_id == "s1" for r in records))
        self.assertTrue(all(r.day == datetime.date(2024, 1, 1) for r in records))

    def test_ties_do_not_create_entries(self) -> None:
        first = self.service.detect(make_session("s1", 1, ("2", "Squat", [(5, 100)])), [])
        second = self.service.detect(make_session("s2", 2, ("2", "Squat", [(5, 100)])), first)
        self.assertEqual(second, [])

    def test_metrics_are_independent(self) -> None:
        first = self.service.detect(make_session("s1", 1, ("2", "Squat", [(5, 100)])), [])
        second = self.service.detect(make_session("s2", 2, ("2", "Squat", [(3, 110)])), first)
        self.assertEqual(len(second), 1)
        self.assertEqual(second[0].type, RecordType.MAX_WEIGHT)
        self.assertEqual(second[0].value, 110)

    def test_exercise_without_sets_is_skipped(self) -> None:
        session = make_session("s1", 1, ("2", "Squat", []))
        self.assertEqual(self.service.detect(session, []), [])

    def test_repeated_exercise_compares_within_session(self) -> None:
        session = make_session(
            "s1",
            1,
            ("1", "Bench Press", [(5, 100)]),
            ("1", "Bench Press", [(5, 120)]),
        )
        records = self.service.detect(session, [])
        self.assertEqual(len(records), 5)
        self.assertEqual(self._values(records, RecordType.MAX_WEIGHT), [100, 120])
        self.assertEqual(self._values(records, RecordType.MAX_REPS), [5])

    def test_unsaved_session_is_rejected(self) -> None:
        session = WorkoutSession(date=datetime.datetime(2024, 1, 1))
        with self.assertRaises(ValueError):
            self.service.detect(session, [])

    def test_history_is_monotonic(self) -> None:
        loads = [(5, 100), (5, 90), (6, 100), (3, 120), (5, 100), (8, 95), (2, 130)]
        records = []
        for day, (reps, weight) in enumerate(loads, start=1):
            session = make_session(f"s{day}", day, ("2", "Squat", [(reps, weight)]))
            records.extend(self.service.detect(session, records))
        for record_type in PersonalRecordService.METRICS:
            values = self._values(records, record_type)
            self.assertEqual(values, sorted(values))
            self.assertEqual(len(values), len(set(values)))

    def test_best_value_as_of(self) -> None:
        records = [
            PersonalRecord(
                exercise_id="2",
                exercise_name="Squat",
                type=RecordType.MAX_WEIGHT,
                value=v,
                date=datetime.datetime(2024, 1, d),
            )
            for v, d in [(100, 1), (120, 5)]
        ]
        best = PersonalRecordService.best_value
        self.assertEqual(best(records, "2", RecordType.MAX_WEIGHT), 120)
        self.assertEqual(
            best(records, "2", RecordType.MAX_WEIGHT, as_of=datetime.date(2024, 1, 3)), 100
        )
        self.assertIsNone(best(records, "2", RecordType.MAX_REPS))

    def test_matches_day(self) -> None:
        record = PersonalRecord(
            exercise_id="2",
            exercise_name="Squat",
            type=RecordType.MAX_WEIGHT,
            value=100,
            date=datetime.datetime(2024, 1, 1, 9, 0),
        )
        self.assertTrue(
            PersonalRecordService.matches_day(
                record, "2", "2024-01-01T23:59:00", RecordType.MAX_WEIGHT
            )
        )
        self.assertFalse(
            PersonalRecordService.matches_day(
                record, "2", datetime.date(2024, 1, 2), RecordType.MAX_WEIGHT
            )
        )


if __name__ == "__main__":
    unittest.main()
