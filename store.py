from __future__ import annotations

import datetime
import logging
from typing import Callable, List, Optional

import pydantic

import codec
from errors import (
    FormatError,
    NotFoundError,
    PersistenceError,
    RefusedOperation,
    ValidationError,
)
from models import (
    MANUAL_RECORD,
    AppSettings,
    AppState,
    BodyPart,
    Exercise,
    InbodyRecord,
    PersonalRecord,
    RecordType,
    Routine,
    WorkoutSession,
    default_state,
    new_id,
)
from pr_service import PersonalRecordService
from storage import BaseStorage
from tools import DateTools

logger = logging.getLogger(__name__)

Subscriber = Callable[[AppState], None]


class StateStore:
    """Single source of truth for every collection and the workout draft.

    Each mutation validates its input, builds a new :class:`AppState`,
    writes the whole document to ``storage`` and then notifies subscribers.
    Updates and deletes that target an unknown id are silent no-ops.
    """

    def __init__(
        self,
        storage: BaseStorage,
        clock: Callable[[], datetime.datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        pr_service: PersonalRecordService | None = None,
        reevaluate_prs_on_update: bool = True,
    ) -> None:
        self.storage = storage
        self.clock = clock or datetime.datetime.now
        self.new_id = id_factory or new_id
        self.records = pr_service or PersonalRecordService()
        self.reevaluate_prs_on_update = reevaluate_prs_on_update
        self._subscribers: List[Subscriber] = []
        self._theme_observers: List[Callable[[bool], None]] = []
        self._state = self._load()

    # ------------------------------------------------------------------
    # state plumbing
    # ------------------------------------------------------------------
    def _load(self) -> AppState:
        raw = self.storage.load()
        if raw is None:
            return default_state(self.clock())
        try:
            doc = codec.parse_document(raw)
        except FormatError as exc:
            logger.warning("stored document unreadable, starting from defaults: %s", exc)
            return default_state(self.clock())
        return codec.state_from_document(doc, include_current_workout=True, now=self.clock())

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def exercises(self) -> List[Exercise]:
        return self._state.exercises

    @property
    def workout_sessions(self) -> List[WorkoutSession]:
        return self._state.workout_sessions

    @property
    def routines(self) -> List[Routine]:
        return self._state.routines

    @property
    def personal_records(self) -> List[PersonalRecord]:
        return self._state.personal_records

    @property
    def inbody_records(self) -> List[InbodyRecord]:
        return self._state.inbody_records

    @property
    def settings(self) -> AppSettings:
        return self._state.settings

    @property
    def current_workout(self) -> Optional[WorkoutSession]:
        return self._state.current_workout

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def add_theme_observer(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._theme_observers.append(callback)

        def remove() -> None:
            if callback in self._theme_observers:
                self._theme_observers.remove(callback)

        return remove

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self._state)

    def _notify_theme(self, previous: AppSettings) -> None:
        dark_mode = self._state.settings.dark_mode
        if dark_mode != previous.dark_mode:
            for observer in list(self._theme_observers):
                observer(dark_mode)

    def _apply(self, state: AppState) -> AppState:
        # in-memory state and observers move on even if the write fails
        previous = self._state.settings
        self._state = state
        try:
            self.storage.save(codec.dump_state(state))
        except OSError as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            self._notify()
            self._notify_theme(previous)
        return state

    def _commit(self, **changes) -> AppState:
        return self._apply(self._state.model_copy(update=changes))

    @staticmethod
    def _build(model, data):
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(str(exc)) from exc

    @classmethod
    def _merge(cls, item, updates: dict, frozen: tuple = ("id",)):
        unknown = set(updates) - set(type(item).model_fields)
        if unknown:
            raise ValidationError(f"unknown field(s): {', '.join(sorted(unknown))}")
        locked = set(updates) & set(frozen)
        if locked:
            raise ValidationError(f"field(s) cannot be changed: {', '.join(sorted(locked))}")
        data = item.model_dump()
        data.update(updates)
        return cls._build(type(item), data)

    @staticmethod
    def _index(items, item_id: str) -> int:
        for pos, item in enumerate(items):
            if item.id == item_id:
                return pos
        return -1

    @staticmethod
    def _replace(items, pos: int, item) -> list:
        result = list(items)
        result[pos] = item
        return result

    # ------------------------------------------------------------------
    # exercises
    # ------------------------------------------------------------------
    def get_exercise(self, exercise_id: str) -> Exercise:
        pos = self._index(self.exercises, exercise_id)
        if pos < 0:
            raise NotFoundError(f"exercise {exercise_id} not found")
        return self.exercises[pos]

    def add_exercise(
        self, name: str, body_part: BodyPart | str, is_favorite: bool = False
    ) -> Exercise:
        name = (name or "").strip()
        if not name:
            raise ValidationError("exercise name must not be blank")
        try:
            part = BodyPart(body_part)
        except ValueError:
            raise ValidationError(f"unknown body part: {body_part}") from None
        exercise = Exercise(
            id=self.new_id(),
            name=name,
            body_part=part,
            is_custom=True,
            is_favorite=is_favorite,
            created_at=self.clock(),
        )
        self._commit(exercises=[*self.exercises, exercise])
        return exercise

    def update_exercise(self, exercise_id: str, **updates) -> Optional[Exercise]:
        pos = self._index(self.exercises, exercise_id)
        if pos < 0:
            return None
        if "name" in updates:
            updates["name"] = (updates["name"] or "").strip()
            if not updates["name"]:
                raise ValidationError("exercise name must not be blank")
        if "body_part" in updates:
            try:
                updates["body_part"] = BodyPart(updates["body_part"])
            except ValueError:
                raise ValidationError(f"unknown body part: {updates['body_part']}") from None
        exercise = self._merge(self.exercises[pos], updates, frozen=("id", "is_custom"))
        self._commit(exercises=self._replace(self.exercises, pos, exercise))
        return exercise

    def toggle_exercise_favorite(self, exercise_id: str) -> Optional[Exercise]:
        pos = self._index(self.exercises, exercise_id)
        if pos < 0:
            return None
        current = self.exercises[pos]
        exercise = current.model_copy(update={"is_favorite": not current.is_favorite})
        self._commit(exercises=self._replace(self.exercises, pos, exercise))
        return exercise

    def delete_exercise(self, exercise_id: str) -> None:
        """Delete a custom exercise; built-in exercises are refused.

        Sessions that used the exercise keep their copy of its name.
        """
        pos = self._index(self.exercises, exercise_id)
        if pos < 0:
            return
        exercise = self.exercises[pos]
        if not exercise.is_custom:
            raise RefusedOperation(f"built-in exercise {exercise.name!r} cannot be deleted")
        self._commit(exercises=[ex for ex in self.exercises if ex.id != exercise_id])

    # ------------------------------------------------------------------
    # workout sessions
    # ------------------------------------------------------------------
    def find_workout_session(self, session_id: str) -> Optional[WorkoutSession]:
        pos = self._index(self.workout_sessions, session_id)
        return self.workout_sessions[pos] if pos >= 0 else None

    def add_workout_session(self, session: WorkoutSession | dict) -> WorkoutSession:
        """Persist a new session and return it with its assigned id."""
        if isinstance(session, WorkoutSession):
            data = session.model_dump()
        else:
            data = dict(session)
        data["id"] = self.new_id()
        created = self._build(WorkoutSession, data)
        new_records = self.records.detect(created, self.personal_records)
        try:
            self._commit(
                workout_sessions=[*self.workout_sessions, created],
                personal_records=[*self.personal_records, *new_records],
            )
        except PersistenceError as exc:
            exc.entity = created
            raise
        logger.debug("added session %s with %d exercise(s)", created.id, len(created.exercises))
        return created

    def update_workout_session(self, session_id: str, **updates) -> Optional[WorkoutSession]:
        """Merge ``updates`` into a saved session.

        When the exercises change and ``reevaluate_prs_on_update`` is set,
        the edited session is checked for new personal records as well.
        """
        pos = self._index(self.workout_sessions, session_id)
        if pos < 0:
            return None
        session = self._merge(self.workout_sessions[pos], updates)
        changes = {"workout_sessions": self._replace(self.workout_sessions, pos, session)}
        if self.reevaluate_prs_on_update and "exercises" in updates:
            new_records = self.records.detect(session, self.personal_records)
            if new_records:
                changes["personal_records"] = [*self.personal_records, *new_records]
        self._commit(**changes)
        return session

    def delete_workout_session(self, session_id: str) -> None:
        if self._index(self.workout_sessions, session_id) < 0:
            return
        # personal records earned by the session stay in the history
        self._commit(
            workout_sessions=[s for s in self.workout_sessions if s.id != session_id]
        )

    # ------------------------------------------------------------------
    # routines
    # ------------------------------------------------------------------
    def add_routine(
        self,
        name: str,
        exercises: list | tuple = (),
        description: str | None = None,
        days_of_week: list[int] | None = None,
        is_template: bool = False,
    ) -> Routine:
        name = (name or "").strip()
        if not name:
            raise ValidationError("routine name must not be blank")
        now = self.clock()
        routine = self._build(
            Routine,
            {
                "id": self.new_id(),
                "name": name,
                "description": description,
                "exercises": list(exercises),
                "days_of_week": days_of_week,
                "is_template": is_template,
                "created_at": now,
                "updated_at": now,
            },
        )
        self._commit(routines=[*self.routines, routine])
        return routine

    def update_routine(self, routine_id: str, **updates) -> Optional[Routine]:
        pos = self._index(self.routines, routine_id)
        if pos < 0:
            return None
        if "name" in updates:
            updates["name"] = (updates["name"] or "").strip()
            if not updates["name"]:
                raise ValidationError("routine name must not be blank")
        updates["updated_at"] = self.clock()
        routine = self._merge(self.routines[pos], updates, frozen=("id", "created_at"))
        self._commit(routines=self._replace(self.routines, pos, routine))
        return routine

    def delete_routine(self, routine_id: str) -> None:
        if self._index(self.routines, routine_id) < 0:
            return
        self._commit(routines=[r for r in self.routines if r.id != routine_id])

    # ------------------------------------------------------------------
    # draft slot
    # ------------------------------------------------------------------
    def set_current_workout(
        self, workout: WorkoutSession | dict | None
    ) -> Optional[WorkoutSession]:
        if workout is not None and not isinstance(workout, WorkoutSession):
            workout = self._build(WorkoutSession, workout)
        if workout == self.current_workout:
            return workout
        self._commit(current_workout=workout)
        return workout

    def update_current_workout(self, **updates) -> Optional[WorkoutSession]:
        if self.current_workout is None:
            return None
        workout = self._merge(self.current_workout, updates)
        return self.set_current_workout(workout)

    # ------------------------------------------------------------------
    # personal records
    # ------------------------------------------------------------------
    def _manual_record(
        self, exercise_id, exercise_name, record_type, value, date, workout_session_id
    ) -> PersonalRecord:
        if value is None or value <= 0:
            raise ValidationError("record value must be positive")
        return self._build(
            PersonalRecord,
            {
                "exercise_id": exercise_id,
                "exercise_name": exercise_name,
                "type": record_type,
                "value": value,
                "date": date if date is not None else self.clock(),
                "workout_session_id": workout_session_id,
            },
        )

    def add_personal_record(
        self,
        exercise_id: str,
        exercise_name: str,
        record_type: RecordType | str,
        value: float,
        date=None,
        workout_session_id: str = MANUAL_RECORD,
    ) -> PersonalRecord:
        """Append an entry. Callers replacing a day's entry delete it first."""
        record = self._manual_record(
            exercise_id, exercise_name, record_type, value, date, workout_session_id
        )
        self._commit(personal_records=[*self.personal_records, record])
        return record

    def _without_day(self, exercise_id: str, date, record_type) -> list:
        try:
            day = DateTools.calendar_day(date)
            kind = RecordType(record_type)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return [
            rec
            for rec in self.personal_records
            if not self.records.matches_day(rec, exercise_id, day, kind)
        ]

    def delete_personal_record(self, exercise_id: str, date, record_type: RecordType | str) -> int:
        """Remove entries for the exercise and type on the calendar day of ``date``."""
        kept = self._without_day(exercise_id, date, record_type)
        removed = len(self.personal_records) - len(kept)
        if removed:
            self._commit(personal_records=kept)
        return removed

    def replace_personal_record(
        self,
        exercise_id: str,
        exercise_name: str,
        record_type: RecordType | str,
        value: float,
        date=None,
    ) -> PersonalRecord:
        """Delete the day's entries for the exercise and type, then add one, in one write."""
        record = self._manual_record(
            exercise_id, exercise_name, record_type, value, date, MANUAL_RECORD
        )
        kept = self._without_day(exercise_id, record.date, record.type)
        self._commit(personal_records=[*kept, record])
        return record

    def reevaluate_personal_records(self, session_id: str) -> List[PersonalRecord]:
        session = self.find_workout_session(session_id)
        if session is None:
            return []
        new_records = self.records.detect(session, self.personal_records)
        if new_records:
            self._commit(personal_records=[*self.personal_records, *new_records])
        return new_records

    # ------------------------------------------------------------------
    # body composition
    # ------------------------------------------------------------------
    def add_inbody_record(self, date, **measurements) -> InbodyRecord:
        """Store a measurement, merging into the record already kept for that day."""
        record = self._build(InbodyRecord, {"id": self.new_id(), "date": date, **measurements})
        day = record.day
        existing = next((r for r in self.inbody_records if r.day == day), None)
        others = [r for r in self.inbody_records if r.day != day]
        if existing is not None:
            provided = {
                field: getattr(record, field)
                for field in InbodyRecord.MEASUREMENTS
                if getattr(record, field) is not None
            }
            provided["date"] = record.date
            record = existing.model_copy(update=provided)
        self._commit(inbody_records=[*others, record])
        return record

    def update_inbody_record(self, record_id: str, **updates) -> Optional[InbodyRecord]:
        pos = self._index(self.inbody_records, record_id)
        if pos < 0:
            return None
        record = self._merge(self.inbody_records[pos], updates)
        clash = any(r.day == record.day and r.id != record_id for r in self.inbody_records)
        if clash:
            raise ValidationError(f"another body composition record exists on {record.day}")
        self._commit(inbody_records=self._replace(self.inbody_records, pos, record))
        return record

    def delete_inbody_record(self, record_id: str) -> None:
        if self._index(self.inbody_records, record_id) < 0:
            return
        self._commit(inbody_records=[r for r in self.inbody_records if r.id != record_id])

    def cleanup_duplicate_inbody_records(self) -> int:
        """Keep only the latest record of each day. Returns how many were removed."""
        latest: dict = {}
        for record in self.inbody_records:
            kept = latest.get(record.day)
            if kept is None or record.date > kept.date:
                latest[record.day] = record
        removed = len(self.inbody_records) - len(latest)
        if removed:
            self._commit(inbody_records=list(latest.values()))
            logger.info("removed %d duplicate body composition record(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # settings, backup and reset
    # ------------------------------------------------------------------
    def update_settings(self, **updates) -> AppSettings:
        settings = self._merge(self.settings, updates, frozen=())
        self._commit(settings=settings)
        return settings

    def mark_backup(self, at: datetime.datetime | None = None) -> AppSettings:
        return self.update_settings(last_backup_at=at or self.clock())

    def export_data(self) -> str:
        return codec.export_document(self._state, self.clock())

    def import_data(self, text: str) -> AppState:
        """Replace every collection with the contents of an export document.

        Raises :class:`FormatError` (or its :class:`ParseError` subclass)
        without touching state when the text is not a JSON object.
        """
        doc = codec.parse_document(text)
        state = codec.state_from_document(doc, include_current_workout=False, now=self.clock())
        logger.info(
            "importing %d session(s), %d record(s)",
            len(state.workout_sessions),
            len(state.personal_records),
        )
        return self._apply(state)

    def reset(self) -> AppState:
        """Erase the stored document and start over from the seed state."""
        previous = self.settings
        self.storage.clear()
        self._state = default_state(self.clock())
        logger.info("state reset to defaults")
        self._notify()
        self._notify_theme(previous)
        return self._state
