import calendar
import datetime
from dataclasses import dataclass
from typing import Iterable, List, Optional


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula.

        A single rep is its own max; non-positive inputs estimate nothing.
        """
        if weight <= 0 or reps <= 0:
            return 0.0
        if reps == 1:
            return float(weight)
        return weight * (1 + reps / cls.EPLEY_DIVISOR)

    @staticmethod
    def volume(sets: Iterable[tuple[int, float]]) -> float:
        """Training volume of ``(reps, weight)`` pairs."""
        return float(sum(reps * weight for reps, weight in sets))

    @staticmethod
    def mean(values: Iterable[float]) -> float:
        data = list(values)
        if not data:
            return 0.0
        return sum(data) / len(data)

    @staticmethod
    def percentages(values: dict) -> dict:
        """Return each value as a percentage of the total (empty when total is 0)."""
        total = sum(values.values())
        if total <= 0:
            return {}
        return {key: val * 100.0 / total for key, val in values.items()}

    @staticmethod
    def inbody_standard_range(
        kind: str,
        height: float | None = None,
        gender: str | None = None,
        weight: float | None = None,
    ) -> dict[str, float]:
        """Return the normal band for a body-composition metric.

        ``kind`` is ``weight``, ``muscle`` or ``fat``. The band is expressed
        around a reference value derived from height, gender and body weight,
        falling back to fixed references when those are unknown.
        """
        if kind == "weight":
            low, high = 85.0, 115.0
            if height:
                base = 21.7 * (height / 100) ** 2
            else:
                base = 70.0
        elif kind == "muscle":
            low, high = 90.0, 110.0
            actual = weight
            if not actual and height and gender:
                actual = (22 if gender == "male" else 21) * (height / 100) ** 2
            if not actual or not gender:
                base = 35.0
            else:
                base = actual * (0.36 if gender == "male" else 0.30)
        elif kind == "fat":
            low, high = 80.0, 160.0
            if not height or not gender:
                base = 10.0
            else:
                actual = weight or (22 if gender == "male" else 21) * (height / 100) ** 2
                base = actual * (0.15 if gender == "male" else 0.23)
        else:
            raise ValueError(f"unknown metric kind: {kind}")
        return {
            "base": base,
            "min": base * low / 100,
            "max": base * high / 100,
        }


@dataclass(frozen=True)
class Bucket:
    """A half-open calendar interval ``[start, end)`` used for chart axes."""

    start: datetime.date
    end: datetime.date
    label: str
    is_future: bool

    def contains(self, day: datetime.date) -> bool:
        return self.start <= day < self.end


class DateTools:
    """Calendar helpers shared by the statistics and store layers."""

    GRANULARITIES = ("day", "week", "month")

    @staticmethod
    def parse_timestamp(value) -> datetime.datetime:
        """Return ``value`` as a naive datetime.

        The offset of an aware timestamp is dropped without conversion, so
        the calendar day is always the date prefix of its ISO form.
        """
        if isinstance(value, datetime.datetime):
            dt = value
        elif isinstance(value, datetime.date):
            dt = datetime.datetime.combine(value, datetime.time())
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            dt = datetime.datetime.fromisoformat(text)
        else:
            raise ValueError(f"unsupported timestamp: {value!r}")
        if dt.tzinfo is not None:
            dt = dt.replace(tzinfo=None)
        return dt

    @classmethod
    def calendar_day(cls, value) -> datetime.date:
        if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
            return value
        return cls.parse_timestamp(value).date()

    @staticmethod
    def weekday(day: datetime.date) -> int:
        """Return the day of week with 0 for Sunday through 6 for Saturday."""
        return (day.weekday() + 1) % 7

    @classmethod
    def start_of_week(cls, day: datetime.date, week_start: int = 1) -> datetime.date:
        offset = (cls.weekday(day) - week_start) % 7
        return day - datetime.timedelta(days=offset)

    @classmethod
    def bucket_start(
        cls, value, granularity: str, week_start: int = 1
    ) -> datetime.date:
        day = cls.calendar_day(value)
        if granularity == "day":
            return day
        if granularity == "week":
            return cls.start_of_week(day, week_start)
        if granularity == "month":
            return day.replace(day=1)
        raise ValueError(f"unknown granularity: {granularity}")

    @staticmethod
    def shift(start: datetime.date, granularity: str, count: int) -> datetime.date:
        if granularity == "day":
            return start + datetime.timedelta(days=count)
        if granularity == "week":
            return start + datetime.timedelta(weeks=count)
        if granularity == "month":
            index = start.year * 12 + start.month - 1 + count
            return datetime.date(index // 12, index % 12 + 1, 1)
        raise ValueError(f"unknown granularity: {granularity}")

    @staticmethod
    def label(start: datetime.date, granularity: str) -> str:
        if granularity == "day":
            return start.strftime("%m/%d")
        if granularity == "week":
            week_of_month = (start.day - 1) // 7 + 1
            return f"{calendar.month_abbr[start.month]} W{week_of_month}"
        if granularity == "month":
            return start.strftime("%Y-%m")
        raise ValueError(f"unknown granularity: {granularity}")

    @classmethod
    def buckets(
        cls,
        granularity: str,
        past: int,
        future: int = 0,
        now: Optional[datetime.datetime] = None,
        week_start: int = 1,
    ) -> List[Bucket]:
        """Return consecutive buckets from ``past`` units ago to ``future`` units ahead."""
        if past < 0 or future < 0:
            raise ValueError("bucket counts must be non-negative")
        if not 0 <= week_start <= 6:
            raise ValueError("week_start must be between 0 and 6")
        current = cls.bucket_start(now or datetime.datetime.now(), granularity, week_start)
        result = []
        for offset in range(-past, future + 1):
            start = cls.shift(current, granularity, offset)
            result.append(
                Bucket(
                    start=start,
                    end=cls.shift(start, granularity, 1),
                    label=cls.label(start, granularity),
                    is_future=offset > 0,
                )
            )
        return result
