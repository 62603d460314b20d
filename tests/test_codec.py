import os
import sys
import json
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import codec
from errors import FormatError, ParseError
from models import (
    AppSettings,
    AppState,
    BodyPart,
    InbodyRecord,
    PersonalRecord,
    RecordType,
    Routine,
    WorkoutExercise,
    WorkoutSession,
    WorkoutSet,
    default_exercises,
)

NOW = datetime.datetime(2024, 1, 10, 12, 0)


def sample_state() -> AppState:
    session = WorkoutSession(
        id="s1",
        date=datetime.datetime(2024, 1, 2, 18, 30),
        duration_minutes=55,
        exercises=[
            WorkoutExercise(
                exercise_id="2",
                exercise_name="Squat",
                sets=[WorkoutSet(reps=5, weight=100, rest_time_seconds=120)],
            )
        ],
    )
    return AppState(
        exercises=default_exercises(NOW),
        workout_sessions=[session],
        routines=[Routine(name="Legs", days_of_week=[1, 4], created_at=NOW, updated_at=NOW)],
        personal_records=[
            PersonalRecord(
                exercise_id="2",
                exercise_name="Squat",
                type=RecordType.MAX_WEIGHT,
                value=100,
                date=session.date,
                workout_session_id="s1",
            )
        ],
        inbody_records=[InbodyRecord(date=NOW, weight=80.5, gender="male")],
        settings=AppSettings(dark_mode=True, last_backup_at=NOW),
        current_workout=WorkoutSession(date=NOW),
    )


class CodecTestCase(unittest.TestCase):
    def test_parse_document_errors(self) -> None:
        with self.assertRaises(ParseError):
            codec.parse_document("{not json")
        with self.assertRaises(ValueError):
            codec.parse_document("")
        with self.assertRaises(FormatError):
            codec.parse_document("[1, 2]")
        self.assertEqual(codec.parse_document('{"a": 1}'), {"a": 1})

    def test_dump_state_keeps_draft(self) -> None:
        state = sample_state()
        doc = json.loads(codec.dump_state(state))
        self.assertEqual(
            set(doc),
            {
                "exercises",
                "workoutSessions",
                "routines",
                "personalRecords",
                "inbodyRecords",
                "settings",
                "currentWorkout",
            },
        )
        self.assertEqual(doc["workoutSessions"][0]["durationMinutes"], 55)
        self.assertEqual(doc["workoutSessions"][0]["exercises"][0]["sets"][0]["restTimeSeconds"], 120)
        empty = json.loads(codec.dump_state(state.model_copy(update={"current_workout": None})))
        self.assertIsNone(empty["currentWorkout"])

    def test_export_document(self) -> None:
        text = codec.export_document(sample_state(), NOW)
        doc = json.loads(text)
        self.assertNotIn("currentWorkout", doc)
        self.assertEqual(doc["exportedAt"], "2024-01-10T12:00:00")
        self.assertIn("\n  ", text)

    def test_export_round_trip(self) -> None:
        original = sample_state()
        doc = codec.parse_document(codec.export_document(original, NOW))
        restored = codec.state_from_document(doc, include_current_workout=False)
        for _key, attr, _model in codec.COLLECTIONS:
            self.assertEqual(getattr(restored, attr), getattr(original, attr))
        self.assertEqual(restored.settings, original.settings)
        self.assertIsNone(restored.current_workout)

    def test_local_round_trip_keeps_draft(self) -> None:
        original = sample_state()
        restored = codec.state_from_document(json.loads(codec.dump_state(original)))
        self.assertEqual(restored, original)

    def test_missing_fields_default(self) -> None:
        state = codec.state_from_document({}, now=NOW)
        self.assertEqual(len(state.exercises), 10)
        self.assertEqual(state.workout_sessions, [])
        self.assertEqual(state.settings, AppSettings())
        self.assertIsNone(state.current_workout)

    def test_wrong_shapes_default_per_field(self) -> None:
        with self.assertLogs("codec", level="WARNING"):
            state = codec.state_from_document(
                {"exercises": "nope", "workoutSessions": {}, "settings": [], "routines": []},
                now=NOW,
            )
        self.assertEqual(len(state.exercises), 10)
        self.assertEqual(state.workout_sessions, [])
        self.assertFalse(state.settings.dark_mode)

    def test_empty_exercise_list_is_kept(self) -> None:
        state = codec.state_from_document({"exercises": []})
        self.assertEqual(state.exercises, [])

    def test_invalid_entries_are_dropped(self) -> None:
        doc = {
            "workoutSessions": [
                {"id": "bad", "date": "not a date"},
                {"id": "good", "date": "2024-01-02T10:00:00", "exercises": []},
                "junk",
            ]
        }
        with self.assertLogs("codec", level="WARNING"):
            state = codec.state_from_document(doc)
        self.assertEqual([s.id for s in state.workout_sessions], ["good"])

    def test_session_without_id_gets_one(self) -> None:
        state = codec.state_from_document({"workoutSessions": [{"date": "2024-01-02"}]})
        self.assertIsNotNone(state.workout_sessions[0].id)

    def test_legacy_document(self) -> None:
        doc = {
            "exercises": [
                {"id": "1", "name": "Bench Press", "bodyPart": "가슴", "isCustom": False},
                {"id": "2", "name": "Squat", "bodyPart": "하체", "isCustom": False},
                {"id": "3", "name": "Pull Up", "bodyPart": "등", "isCustom": False},
                {"id": "4", "name": "Plank", "bodyPart": "복근", "isCustom": False},
                {"id": "5", "name": "Burpee", "bodyPart": "전신", "isCustom": True},
            ],
            "workoutSessions": [
                {
                    "id": "s1",
                    "date": "2024-01-02T10:00:00.000Z",
                    "duration": 40,
                    "exercises": [
                        {
                            "id": "e1",
                            "exerciseId": "2",
                            "exerciseName": "Squat",
                            "sets": [{"id": "x", "reps": 5, "weight": 100, "restTime": 90}],
                        }
                    ],
                }
            ],
            "settings": {"darkMode": True, "lastBackup": "2024-01-01T00:00:00Z"},
        }
        state = codec.state_from_document(doc)
        session = state.workout_sessions[0]
        self.assertEqual(session.duration_minutes, 40)
        self.assertEqual(session.exercises[0].sets[0].rest_time_seconds, 90)
        self.assertEqual(state.settings.last_backup_at, datetime.datetime(2024, 1, 1))
        self.assertEqual(
            [ex.body_part for ex in state.exercises],
            [BodyPart.CHEST, BodyPart.LEGS, BodyPart.BACK, BodyPart.CORE, BodyPart.FULL_BODY],
        )

    def test_invalid_draft_is_discarded(self) -> None:
        with self.assertLogs("codec", level="WARNING"):
            state = codec.state_from_document({"currentWorkout": {"date": "soon"}})
        self.assertIsNone(state.current_workout)

    def test_backup_filename(self) -> None:
        self.assertEqual(
            codec.backup_filename(datetime.date(2024, 1, 5)),
            "health-diary-backup-2024-01-05.json",
        )


if __name__ == "__main__":
    unittest.main()
