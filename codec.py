"""Serialization of the application state.

Two document shapes exist: the local-storage document, which also carries
the in-progress ``currentWorkout``, and the export document used for backups
and the cloud mirror, which leaves the draft out and adds ``exportedAt``.

Loading is permissive. Each top-level field is defaulted independently when
it is missing or has the wrong shape, and individual entries that fail
validation are dropped. Only input that is not a JSON object is rejected.
"""
import datetime
import json
import logging
from typing import Callable, List, Optional

import pydantic

from errors import FormatError, ParseError
from models import (
    AppSettings,
    AppState,
    Exercise,
    InbodyRecord,
    PersonalRecord,
    Routine,
    WorkoutSession,
    default_exercises,
    new_id,
)

logger = logging.getLogger(__name__)

COLLECTIONS = (
    ("exercises", "exercises", Exercise),
    ("workoutSessions", "workout_sessions", WorkoutSession),
    ("routines", "routines", Routine),
    ("personalRecords", "personal_records", PersonalRecord),
    ("inbodyRecords", "inbody_records", InbodyRecord),
)

BACKUP_PREFIX = "health-diary-backup"


def parse_document(text: str) -> dict:
    try:
        doc = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"document is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise FormatError("document must be a JSON object")
    return doc


def _collections(state: AppState) -> dict:
    doc = {}
    for key, attr, _model in COLLECTIONS:
        doc[key] = [item.to_dict() for item in getattr(state, attr)]
    doc["settings"] = state.settings.to_dict()
    return doc


def dump_state(state: AppState) -> str:
    """Serialize the full state, draft included, for local persistence."""
    doc = _collections(state)
    doc["currentWorkout"] = (
        state.current_workout.to_dict() if state.current_workout is not None else None
    )
    return json.dumps(doc, ensure_ascii=False)


def export_document(state: AppState, exported_at: datetime.datetime) -> str:
    doc = _collections(state)
    doc["exportedAt"] = exported_at.isoformat()
    return json.dumps(doc, ensure_ascii=False, indent=2)


def _load_items(doc: dict, key: str, model, default: Callable[[], List]) -> List:
    raw = doc.get(key)
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("ignoring %s: expected a list, got %s", key, type(raw).__name__)
        return default()
    items = []
    for index, entry in enumerate(raw):
        try:
            item = model.model_validate(entry)
        except pydantic.ValidationError as exc:
            logger.warning(
                "dropping %s[%d]: %d validation error(s)", key, index, exc.error_count()
            )
            continue
        if model is WorkoutSession and item.id is None:
            item = item.model_copy(update={"id": new_id()})
        items.append(item)
    return items


def _load_settings(doc: dict) -> AppSettings:
    raw = doc.get("settings")
    if isinstance(raw, dict):
        try:
            return AppSettings.model_validate(raw)
        except pydantic.ValidationError:
            logger.warning("ignoring invalid settings")
    return AppSettings()


def _load_draft(doc: dict) -> Optional[WorkoutSession]:
    raw = doc.get("currentWorkout")
    if not isinstance(raw, dict):
        return None
    try:
        return WorkoutSession.model_validate(raw)
    except pydantic.ValidationError:
        logger.warning("discarding invalid in-progress workout")
        return None


def state_from_document(
    doc: dict,
    include_current_workout: bool = True,
    now: Optional[datetime.datetime] = None,
) -> AppState:
    fields = {}
    for key, attr, model in COLLECTIONS:
        if attr == "exercises":
            default = lambda: default_exercises(now)
        else:
            default = list
        fields[attr] = _load_items(doc, key, model, default)
    fields["settings"] = _load_settings(doc)
    fields["current_workout"] = _load_draft(doc) if include_current_workout else None
    return AppState(**fields)


def backup_filename(day: Optional[datetime.date] = None) -> str:
    day = day or datetime.date.today()
    return f"{BACKUP_PREFIX}-{day.isoformat()}.json"
