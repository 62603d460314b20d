from __future__ import annotations
import datetime
import re
from typing import Dict, Iterable, List, Optional

from models import (
    BodyPart,
    Exercise,
    InbodyRecord,
    PersonalRecord,
    RecordType,
    Routine,
    WorkoutSession,
)
from tools import Bucket, DateTools, MathTools

# value of a bucket that lies in the future, as opposed to 0 for "nothing logged"
NO_VALUE = None

BIG_THREE = ("Squat", "Bench Press", "Deadlift")

INBODY_SCORE_PATTERN = re.compile(r"InBody score:\s*([0-9]+(?:\.[0-9]+)?)", re.IGNORECASE)


class StatisticsService:
    """Compute workout statistics for charts and summaries.

    The service works on a fixed snapshot of the collections and a fixed
    ``now`` so that every result is reproducible from literal fixtures.
    """

    def __init__(
        self,
        sessions: Iterable[WorkoutSession],
        personal_records: Iterable[PersonalRecord] = (),
        inbody_records: Iterable[InbodyRecord] = (),
        exercises: Iterable[Exercise] = (),
        routines: Iterable[Routine] = (),
        now: Optional[datetime.datetime] = None,
        week_start: int = 1,
    ) -> None:
        self.sessions = [s for s in sessions if s.id is not None]
        self.personal_records = list(personal_records)
        self.inbody_records = list(inbody_records)
        self.exercises = list(exercises)
        self.routines = list(routines)
        self.now = now or datetime.datetime.now()
        self.week_start = week_start

    @classmethod
    def from_store(
        cls, store, now: Optional[datetime.datetime] = None, week_start: int = 1
    ) -> "StatisticsService":
        state = store.state
        return cls(
            state.workout_sessions,
            state.personal_records,
            state.inbody_records,
            state.exercises,
            state.routines,
            now=now or store.clock(),
            week_start=week_start,
        )

    # ------------------------------------------------------------------
    # bucketing
    # ------------------------------------------------------------------
    def buckets(self, granularity: str, past: int, future: int = 0) -> List[Bucket]:
        return DateTools.buckets(granularity, past, future, self.now, self.week_start)

    def _bucket_key(self, value, granularity: str) -> datetime.date:
        return DateTools.bucket_start(value, granularity, self.week_start)

    @staticmethod
    def _value(bucket: Bucket, value):
        if bucket.is_future:
            return NO_VALUE
        return value

    def workout_counts(
        self, granularity: str = "week", past: int = 7, future: int = 0
    ) -> List[Dict]:
        """Count distinct training days per bucket; two sessions on one day count once."""
        days: Dict[datetime.date, set] = {}
        for session in self.sessions:
            key = self._bucket_key(session.date, granularity)
            days.setdefault(key, set()).add(session.day)
        return [
            {
                "label": b.label,
                "start": b.start,
                "count": self._value(b, len(days.get(b.start, ()))),
            }
            for b in self.buckets(granularity, past, future)
        ]

    def _volumes_by_name(self, granularity: str) -> Dict[str, Dict[datetime.date, float]]:
        volumes: Dict[str, Dict[datetime.date, float]] = {}
        for session in self.sessions:
            key = self._bucket_key(session.date, granularity)
            for exercise in session.exercises:
                per_bucket = volumes.setdefault(exercise.exercise_name, {})
                per_bucket[key] = per_bucket.get(key, 0.0) + exercise.volume
        return volumes

    def total_volumes(self) -> Dict[str, float]:
        """All-time volume per exercise name, in order of first appearance."""
        totals: Dict[str, float] = {}
        for session in self.sessions:
            for exercise in session.exercises:
                name = exercise.exercise_name
                totals[name] = totals.get(name, 0.0) + exercise.volume
        return totals

    def top_exercises(self, limit: int = 5) -> List[str]:
        totals = self.total_volumes()
        ranked = sorted(totals, key=lambda name: -totals[name])
        return ranked[:limit]

    def exercise_volumes(
        self,
        granularity: str = "week",
        past: int = 3,
        future: int = 0,
        exercise: Optional[str] = None,
        limit: int = 5,
    ) -> List[Dict]:
        """Volume per bucket for one exercise, or for the top exercises by all-time volume."""
        volumes = self._volumes_by_name(granularity)
        names = [exercise] if exercise else self.top_exercises(limit)
        rows = []
        for b in self.buckets(granularity, past, future):
            values = {
                name: self._value(b, volumes.get(name, {}).get(b.start, 0.0))
                for name in names
            }
            rows.append({"label": b.label, "start": b.start, "values": values})
        return rows

    # ------------------------------------------------------------------
    # body-part ratios
    # ------------------------------------------------------------------
    def _body_part_map(self) -> Dict[str, BodyPart]:
        return {ex.name: ex.body_part for ex in self.exercises}

    def _part_volumes(
        self, sessions: Iterable[WorkoutSession], targets: List[BodyPart]
    ) -> Dict[BodyPart, float]:
        mapping = self._body_part_map()
        result: Dict[BodyPart, float] = {}
        for session in sessions:
            for exercise in session.exercises:
                part = mapping.get(exercise.exercise_name)
                if part not in targets:
                    continue
                result[part] = result.get(part, 0.0) + exercise.volume
        return result

    def body_part_ratio(
        self, mode: str = "total", body_parts: Optional[Iterable[BodyPart]] = None
    ) -> List[Dict]:
        """Share of volume per body part, in percent.

        ``total`` divides summed volumes over the whole history. ``week`` and
        ``month`` compute the shares inside every elapsed period that has
        qualifying volume and average those shares, so the modes may differ.
        """
        targets = [BodyPart(p) for p in body_parts] if body_parts else list(BodyPart)
        if mode == "total":
            shares = MathTools.percentages(self._part_volumes(self.sessions, targets))
        elif mode in ("week", "month"):
            current = self._bucket_key(self.now, mode)
            periods: Dict[datetime.date, List[WorkoutSession]] = {}
            for session in self.sessions:
                key = self._bucket_key(session.date, mode)
                if key <= current:
                    periods.setdefault(key, []).append(session)
            per_period = []
            for key in sorted(periods):
                pct = MathTools.percentages(self._part_volumes(periods[key], targets))
                if pct:
                    per_period.append(pct)
            shares = {
                part: MathTools.mean(p.get(part, 0.0) for p in per_period)
                for part in targets
            } if per_period else {}
        else:
            raise ValueError(f"unknown ratio mode: {mode}")
        order = {part: pos for pos, part in enumerate(targets)}
        ranked = sorted(
            (part for part, pct in shares.items() if pct > 0),
            key=lambda part: (-shares[part], order[part]),
        )
        return [{"body_part": part, "percent": shares[part]} for part in ranked]

    def body_parts_for_session(self, session: WorkoutSession) -> List[BodyPart]:
        by_id = {ex.id: ex.body_part for ex in self.exercises}
        parts: List[BodyPart] = []
        for exercise in session.exercises:
            part = by_id.get(exercise.exercise_id)
            if part is not None and part not in parts:
                parts.append(part)
        return parts

    # ------------------------------------------------------------------
    # strength history
    # ------------------------------------------------------------------
    def max_weight_history(self, exercise: str, granularity: str = "day") -> List[Dict]:
        best: Dict[datetime.date, float] = {}
        for session in self.sessions:
            for item in session.exercises:
                if item.exercise_name != exercise or not item.sets:
                    continue
                key = self._bucket_key(session.date, granularity)
                best[key] = max(best.get(key, 0.0), item.max_weight)
        return [
            {
                "label": DateTools.label(key, granularity),
                "start": key,
                "max_weight": best[key],
            }
            for key in sorted(best)
        ]

    def data_points(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for session in self.sessions:
            for item in session.exercises:
                if item.sets:
                    counts[item.exercise_name] = counts.get(item.exercise_name, 0) + 1
        return counts

    def default_chart_exercise(self) -> Optional[str]:
        """Exercise with the most logged entries, ties broken alphabetically."""
        counts = self.data_points()
        if not counts:
            return None
        return min(counts, key=lambda name: (-counts[name], name))

    def estimated_1rm(self, exercise: str) -> float:
        best = 0.0
        for session in self.sessions:
            for item in session.exercises:
                if item.exercise_name != exercise:
                    continue
                for s in item.sets:
                    best = max(best, MathTools.epley_1rm(s.weight, s.reps))
        return best

    # ------------------------------------------------------------------
    # personal records
    # ------------------------------------------------------------------
    def pr_as_of(self, exercise_name: str, record_type: RecordType | str, as_of) -> float:
        kind = RecordType(record_type)
        day = DateTools.calendar_day(as_of)
        values = [
            rec.value
            for rec in self.personal_records
            if rec.exercise_name == exercise_name and rec.type == kind and rec.day <= day
        ]
        return max(values, default=0.0)

    def latest_records(
        self,
        names: Iterable[str] = BIG_THREE,
        record_type: RecordType | str = RecordType.MAX_WEIGHT,
    ) -> List[PersonalRecord]:
        kind = RecordType(record_type)
        result = []
        for name in names:
            entries = [
                r for r in self.personal_records if r.exercise_name == name and r.type == kind
            ]
            if entries:
                result.append(max(entries, key=lambda r: r.date))
        return result

    def big_three_total(self) -> float:
        return sum(r.value for r in self.latest_records(BIG_THREE))

    def pr_timeline(
        self,
        names: Iterable[str] = BIG_THREE,
        record_type: RecordType | str = RecordType.MAX_WEIGHT,
    ) -> List[Dict]:
        """One row per day with a record, giving each exercise's value that day or 0."""
        kind = RecordType(record_type)
        names = list(names)
        by_day: Dict[datetime.date, Dict[str, float]] = {}
        for rec in self.personal_records:
            if rec.type != kind or rec.exercise_name not in names:
                continue
            values = by_day.setdefault(rec.day, {})
            values[rec.exercise_name] = max(values.get(rec.exercise_name, 0.0), rec.value)
        return [
            {
                "date": day,
                "label": DateTools.label(day, "day"),
                "values": {name: by_day[day].get(name, 0.0) for name in names},
            }
            for day in sorted(by_day)
        ]

    # ------------------------------------------------------------------
    # summaries
    # ------------------------------------------------------------------
    def workout_days(self) -> List[datetime.date]:
        return sorted({s.day for s in self.sessions})

    def this_week_workout_days(self) -> int:
        start = DateTools.start_of_week(self.now.date(), self.week_start)
        end = start + datetime.timedelta(days=7)
        return sum(1 for day in self.workout_days() if start <= day < end)

    def total_workout_days(self) -> int:
        return len(self.workout_days())

    def first_workout_date(self) -> Optional[datetime.date]:
        days = self.workout_days()
        return days[0] if days else None

    def active_routines(self, day: Optional[datetime.date] = None) -> List[Routine]:
        """Routines scheduled for ``day`` (today by default)."""
        weekday = DateTools.weekday(day or self.now.date())
        return [r for r in self.routines if r.days_of_week and weekday in r.days_of_week]

    # ------------------------------------------------------------------
    # body composition
    # ------------------------------------------------------------------
    @staticmethod
    def inbody_score(record: InbodyRecord) -> Optional[float]:
        if not record.notes:
            return None
        match = INBODY_SCORE_PATTERN.search(record.notes)
        return float(match.group(1)) if match else None

    def inbody_history(self, metric: str = "weight") -> List[Dict]:
        """Chronological values of ``weight``, ``muscle_mass``, ``body_fat`` or ``score``."""
        if metric not in ("weight", "muscle_mass", "body_fat", "score"):
            raise ValueError(f"unknown body composition metric: {metric}")
        rows = []
        for record in sorted(self.inbody_records, key=lambda r: r.date):
            if metric == "score":
                value = self.inbody_score(record)
            else:
                value = getattr(record, metric)
            rows.append(
                {"date": record.day, "label": DateTools.label(record.day, "day"), "value": value}
            )
        return rows
