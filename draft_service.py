from __future__ import annotations

import datetime
import enum
import logging
from typing import Iterable, List, Optional

from errors import PersistenceError, RefusedOperation, ValidationError
from models import AppState, WorkoutExercise, WorkoutSession, WorkoutSet
from store import StateStore
from tools import DateTools

logger = logging.getLogger(__name__)


class DraftState(enum.Enum):
    EMPTY = "empty"
    UNSAVED = "unsaved"
    LINKED = "linked"


class DraftSessionReconciler:
    """Keeps the in-progress workout consistent with the saved sessions.

    The draft lives in the store's ``current_workout`` slot. A draft without
    an id is unsaved; once saved it stays linked to its session and follows
    edits or deletion of that session made elsewhere.
    """

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self._sessions = store.state.workout_sessions
        self._unsubscribe = store.subscribe(self._on_change)
        self.refresh()

    def close(self) -> None:
        self._unsubscribe()

    @property
    def draft(self) -> Optional[WorkoutSession]:
        return self.store.current_workout

    @property
    def state(self) -> DraftState:
        draft = self.draft
        if draft is None:
            return DraftState.EMPTY
        if draft.id is None:
            return DraftState.UNSAVED
        return DraftState.LINKED

    def _require_draft(self) -> WorkoutSession:
        draft = self.draft
        if draft is None:
            raise RefusedOperation("no workout in progress")
        return draft

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------
    def _on_change(self, state: AppState) -> None:
        if state.workout_sessions is self._sessions:
            return
        self._sessions = state.workout_sessions
        self.refresh()

    def refresh(self) -> None:
        """Mirror the linked session, or drop the draft if that session is gone."""
        draft = self.draft
        if draft is None or draft.id is None:
            return
        saved = self.store.find_workout_session(draft.id)
        if saved is None:
            logger.info("linked session %s was deleted, clearing draft", draft.id)
            self.store.set_current_workout(None)
        elif saved != draft:
            self.store.set_current_workout(saved)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self, now: Optional[datetime.datetime] = None) -> WorkoutSession:
        """Resume the current draft, today's latest session, or a fresh draft."""
        if self.draft is not None:
            return self.draft
        now = now or self.store.clock()
        today = [s for s in self.store.workout_sessions if s.day == now.date()]
        if today:
            latest = max(today, key=lambda s: s.date)
            return self.store.set_current_workout(latest)
        return self.store.set_current_workout(WorkoutSession(date=now, exercises=[]))

    def cancel(self) -> None:
        self.store.set_current_workout(None)

    def finish(self) -> WorkoutSession:
        """Save the draft as a new session or as an update of its linked one.

        The draft is kept (linked) afterwards so editing can continue.
        """
        draft = self._require_draft()
        if not draft.exercises:
            raise ValidationError("add at least one exercise before finishing")
        return self._persist(draft)

    def _persist(self, draft: WorkoutSession) -> WorkoutSession:
        if draft.id is None:
            try:
                saved = self.store.add_workout_session(draft)
            except PersistenceError as exc:
                # the session is already in memory; link to it so a retry updates it
                if exc.entity is not None:
                    self.store.set_current_workout(exc.entity)
                raise
        else:
            saved = self.store.update_workout_session(
                draft.id,
                date=draft.date,
                exercises=draft.exercises,
                duration_minutes=draft.duration_minutes,
                notes=draft.notes,
            )
            if saved is None:
                self.store.set_current_workout(None)
                raise RefusedOperation(f"session {draft.id} no longer exists")
        self.store.set_current_workout(saved)
        return saved

    # ------------------------------------------------------------------
    # editing
    # ------------------------------------------------------------------
    def add_exercise(self, exercise_id: str) -> WorkoutExercise:
        """Add an exercise to the draft, or return the entry it already has."""
        draft = self._require_draft()
        for item in draft.exercises:
            if item.exercise_id == exercise_id:
                return item
        exercise = self.store.get_exercise(exercise_id)
        item = WorkoutExercise(exercise_id=exercise.id, exercise_name=exercise.name, sets=[])
        self.store.update_current_workout(exercises=[item, *draft.exercises])
        return item

    def remove_exercise(self, workout_exercise_id: str) -> None:
        draft = self._require_draft()
        remaining = [ex for ex in draft.exercises if ex.id != workout_exercise_id]
        if len(remaining) != len(draft.exercises):
            self.store.update_current_workout(exercises=remaining)

    def set_date(self, day) -> WorkoutSession:
        """Move the draft to another day, keeping its time of day."""
        draft = self._require_draft()
        new_date = datetime.datetime.combine(DateTools.calendar_day(day), draft.date.time())
        return self.store.update_current_workout(date=new_date)

    def set_notes(self, notes: Optional[str]) -> WorkoutSession:
        self._require_draft()
        return self.store.update_current_workout(notes=notes)

    def set_duration(self, minutes: Optional[float]) -> WorkoutSession:
        self._require_draft()
        return self.store.update_current_workout(duration_minutes=minutes)

    def save_sets(
        self, workout_exercise_id: str, sets: Iterable[WorkoutSet | dict]
    ) -> WorkoutSession:
        """Replace an exercise's sets and save the draft straight away."""
        draft = self._require_draft()
        sets = [s if isinstance(s, WorkoutSet) else WorkoutSet.model_validate(s) for s in sets]
        if not sets:
            raise ValidationError("at least one set is required")
        if not any(ex.id == workout_exercise_id for ex in draft.exercises):
            raise ValidationError(f"exercise {workout_exercise_id} is not part of the workout")
        exercises = [
            ex.model_copy(update={"sets": sets}) if ex.id == workout_exercise_id else ex
            for ex in draft.exercises
        ]
        return self._persist(draft.model_copy(update={"exercises": exercises}))

    def previous_sets(self, exercise_id: str) -> List[WorkoutSet]:
        """Copies of the sets logged for the exercise in its most recent session."""
        sessions = sorted(self.store.workout_sessions, key=lambda s: s.date, reverse=True)
        for session in sessions:
            for item in session.exercises:
                if item.exercise_id == exercise_id:
                    return [
                        WorkoutSet(
                            reps=s.reps,
                            weight=s.weight,
                            rest_time_seconds=s.rest_time_seconds,
                            notes=s.notes,
                        )
                        for s in item.sets
                    ]
        return []
