from __future__ import annotations

import datetime
import logging
from typing import Iterable, List, Optional

from models import PersonalRecord, RecordType, WorkoutExercise, WorkoutSession
from tools import DateTools

logger = logging.getLogger(__name__)


class PersonalRecordService:
    """Derive new personal-record entries from logged sessions.

    Records form an append-only history per (exercise, metric). A session
    only produces an entry for a metric when it strictly beats every value
    already on file, so each history is monotonically increasing.
    """

    METRICS = (RecordType.MAX_WEIGHT, RecordType.MAX_VOLUME, RecordType.MAX_REPS)

    @staticmethod
    def exercise_metrics(exercise: WorkoutExercise) -> dict[RecordType, float]:
        return {
            RecordType.MAX_WEIGHT: exercise.max_weight,
            RecordType.MAX_VOLUME: exercise.volume,
            RecordType.MAX_REPS: exercise.max_reps,
        }

    @staticmethod
    def best_value(
        records: Iterable[PersonalRecord],
        exercise_id: str,
        record_type: RecordType,
        as_of: Optional[datetime.date] = None,
    ) -> float | None:
        """Return the highest recorded value, optionally limited to days up to ``as_of``."""
        best = None
        for rec in records:
            if rec.exercise_id != exercise_id or rec.type != record_type:
                continue
            if as_of is not None and rec.day > as_of:
                continue
            if best is None or rec.value > best:
                best = rec.value
        return best

    def detect(
        self, session: WorkoutSession, records: Iterable[PersonalRecord]
    ) -> List[PersonalRecord]:
        if session.id is None:
            raise ValueError("session must be saved before records are derived")
        known = list(records)
        created: List[PersonalRecord] = []
        for exercise in session.exercises:
            if not exercise.sets:
                continue
            for record_type, value in self.exercise_metrics(exercise).items():
                best = self.best_value(known, exercise.exercise_id, record_type)
                if best is not None and value <= best:
                    continue
                entry = PersonalRecord(
                    exercise_id=exercise.exercise_id,
                    exercise_name=exercise.exercise_name,
                    type=record_type,
                    value=float(value),
                    date=session.date,
                    workout_session_id=session.id,
                )
                known.append(entry)
                created.append(entry)
        if created:
            logger.info(
                "session %s set %d new personal record(s)", session.id, len(created)
            )
        return created

    @staticmethod
    def matches_day(
        record: PersonalRecord, exercise_id: str, day, record_type: RecordType
    ) -> bool:
        return (
            record.exercise_id == exercise_id
            and record.type == record_type
            and record.day == DateTools.calendar_day(day)
        )
