from __future__ import annotations

import datetime
import enum
import time
import uuid
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tools import DateTools, MathTools


MANUAL_RECORD = "manual"


def new_id() -> str:
    """Return a timestamp based id with a random suffix."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def to_camel(name: str) -> str:
    first, *rest = name.split("_")
    return first + "".join(word.capitalize() for word in rest)


class BodyPart(str, enum.Enum):
    CHEST = "chest"
    BACK = "back"
    SHOULDERS = "shoulders"
    LEGS = "legs"
    ARMS = "arms"
    CORE = "core"
    FULL_BODY = "fullBody"
    OTHER = "other"


# body part names stored by the first releases of the app
LEGACY_BODY_PARTS = {
    "가슴": BodyPart.CHEST,
    "등": BodyPart.BACK,
    "어깨": BodyPart.SHOULDERS,
    "하체": BodyPart.LEGS,
    "팔": BodyPart.ARMS,
    "복근": BodyPart.CORE,
    "전신": BodyPart.FULL_BODY,
    "기타": BodyPart.OTHER,
}


class RecordType(str, enum.Enum):
    MAX_WEIGHT = "maxWeight"
    MAX_VOLUME = "maxVolume"
    MAX_REPS = "maxReps"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class Model(BaseModel):
    """Base for stored entities: snake_case attributes, camelCase documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # keys written by earlier versions of the document
    LEGACY_KEYS: ClassVar[Dict[str, str]] = {}

    @model_validator(mode="before")
    @classmethod
    def rename_legacy_keys(cls, data):
        if isinstance(data, dict) and cls.LEGACY_KEYS:
            data = dict(data)
            for old, new in cls.LEGACY_KEYS.items():
                if old in data and new not in data:
                    data[new] = data.pop(old)
        return data

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _timestamp(value):
    if value is None:
        return value
    return DateTools.parse_timestamp(value)


class Exercise(Model):
    id: str = Field(default_factory=new_id)
    name: str
    body_part: BodyPart = BodyPart.OTHER
    is_custom: bool = True
    is_favorite: bool = False
    created_at: datetime.datetime = Field(default_factory=datetime.datetime.now)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_timestamps(cls, value):
        return _timestamp(value)

    @field_validator("body_part", mode="before")
    @classmethod
    def known_body_part(cls, value):
        if isinstance(value, BodyPart):
            return value
        if isinstance(value, str) and value in LEGACY_BODY_PARTS:
            return LEGACY_BODY_PARTS[value]
        try:
            return BodyPart(value)
        except ValueError:
            return BodyPart.OTHER


class WorkoutSet(Model):
    id: str = Field(default_factory=new_id)
    reps: int = Field(ge=0)
    weight: float = Field(ge=0)
    rest_time_seconds: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

    LEGACY_KEYS: ClassVar[Dict[str, str]] = {"restTime": "restTimeSeconds"}

    @property
    def volume(self) -> float:
        return MathTools.volume([(self.reps, self.weight)])


class WorkoutExercise(Model):
    id: str = Field(default_factory=new_id)
    exercise_id: str
    exercise_name: str
    sets: List[WorkoutSet] = Field(default_factory=list)
    notes: Optional[str] = None

    @property
    def volume(self) -> float:
        return MathTools.volume((s.reps, s.weight) for s in self.sets)

    @property
    def max_weight(self) -> float:
        return max((s.weight for s in self.sets), default=0.0)

    @property
    def max_reps(self) -> int:
        return max((s.reps for s in self.sets), default=0)


class WorkoutSession(Model):
    """A logged workout. ``id`` stays ``None`` until the session is saved."""

    id: Optional[str] = None
    date: datetime.datetime
    exercises: List[WorkoutExercise] = Field(default_factory=list)
    duration_minutes: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    routine_id: Optional[str] = None

    LEGACY_KEYS: ClassVar[Dict[str, str]] = {"duration": "durationMinutes"}

    @field_validator("date", mode="before")
    @classmethod
    def parse_timestamps(cls, value):
        return _timestamp(value)

    @property
    def is_draft(self) -> bool:
        return self.id is None

    @property
    def day(self) -> datetime.date:
        return self.date.date()

    @property
    def total_volume(self) -> float:
        return sum(ex.volume for ex in self.exercises)


class RoutineExercise(Model):
    id: str = Field(default_factory=new_id)
    exercise_id: str
    exercise_name: str
    target_sets: int = Field(default=3, ge=1)
    target_reps: Optional[int] = Field(default=None, ge=0)
    target_weight: Optional[float] = Field(default=None, ge=0)


class Routine(Model):
    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    exercises: List[RoutineExercise] = Field(default_factory=list)
    days_of_week: Optional[List[int]] = None
    is_template: bool = False
    created_at: datetime.datetime = Field(default_factory=datetime.datetime.now)
    updated_at: datetime.datetime = Field(default_factory=datetime.datetime.now)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_timestamps(cls, value):
        return _timestamp(value)

    @field_validator("days_of_week")
    @classmethod
    def valid_days(cls, value):
        if value is None:
            return value
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError("days_of_week entries must be between 0 and 6")
        return sorted(set(value))


class PersonalRecord(Model):
    exercise_id: str
    exercise_name: str
    type: RecordType
    value: float
    date: datetime.datetime
    workout_session_id: str = MANUAL_RECORD

    @field_validator("date", mode="before")
    @classmethod
    def parse_timestamps(cls, value):
        return _timestamp(value)

    @property
    def day(self) -> datetime.date:
        return self.date.date()


class InbodyRecord(Model):
    id: str = Field(default_factory=new_id)
    date: datetime.datetime
    weight: Optional[float] = Field(default=None, ge=0)
    muscle_mass: Optional[float] = Field(default=None, ge=0)
    body_fat: Optional[float] = Field(default=None, ge=0)
    body_fat_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    height: Optional[float] = Field(default=None, ge=0)
    gender: Optional[Gender] = None
    notes: Optional[str] = None

    MEASUREMENTS: ClassVar[tuple] = (
        "weight",
        "muscle_mass",
        "body_fat",
        "body_fat_percentage",
        "height",
        "gender",
        "notes",
    )

    @field_validator("date", mode="before")
    @classmethod
    def parse_timestamps(cls, value):
        return _timestamp(value)

    @property
    def day(self) -> datetime.date:
        return self.date.date()


class AppSettings(Model):
    dark_mode: bool = False
    last_backup_at: Optional[datetime.datetime] = None

    LEGACY_KEYS: ClassVar[Dict[str, str]] = {"lastBackup": "lastBackupAt"}

    @field_validator("last_backup_at", mode="before")
    @classmethod
    def parse_timestamps(cls, value):
        return _timestamp(value)


class AppState(Model):
    """Immutable snapshot of every collection plus the draft slot."""

    model_config = ConfigDict(frozen=True)

    exercises: List[Exercise] = Field(default_factory=list)
    workout_sessions: List[WorkoutSession] = Field(default_factory=list)
    routines: List[Routine] = Field(default_factory=list)
    personal_records: List[PersonalRecord] = Field(default_factory=list)
    inbody_records: List[InbodyRecord] = Field(default_factory=list)
    settings: AppSettings = Field(default_factory=AppSettings)
    current_workout: Optional[WorkoutSession] = None


BUILTIN_EXERCISES = (
    ("1", "Bench Press", BodyPart.CHEST),
    ("2", "Squat", BodyPart.LEGS),
    ("3", "Deadlift", BodyPart.BACK),
    ("4", "Overhead Press", BodyPart.SHOULDERS),
    ("5", "Barbell Row", BodyPart.BACK),
    ("6", "Leg Press", BodyPart.LEGS),
    ("7", "Dumbbell Fly", BodyPart.CHEST),
    ("8", "Lateral Raise", BodyPart.SHOULDERS),
    ("9", "Biceps Curl", BodyPart.ARMS),
    ("10", "Triceps Extension", BodyPart.ARMS),
)


def default_exercises(now: Optional[datetime.datetime] = None) -> List[Exercise]:
    created = now or datetime.datetime.now()
    return [
        Exercise(
            id=ex_id,
            name=name,
            body_part=part,
            is_custom=False,
            is_favorite=False,
            created_at=created,
        )
        for ex_id, name, part in BUILTIN_EXERCISES
    ]


def default_state(now: Optional[datetime.datetime] = None) -> AppState:
    return AppState(exercises=default_exercises(now))
