"""Daily targets form payload and its domain constraints."""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

STEPS_RANGE = (1_000, 20_000)
RUNNING_KM_RANGE = (1, 20)
SPORTS_MINUTES_RANGE = (15, 180)
WORKOUT_MINUTES_RANGE = (15, 180)
MILESTONE_MAX_LENGTH = 200
MILESTONE_YEARS_AHEAD = 5


def _check_range(value: float, bounds: tuple[int, int], label: str, unit: str = "") -> float:
    low, high = bounds
    if value < low or value > high:
        suffix = f" {unit}" if unit else ""
        raise ValueError(f"{label} must be between {low} and {high}{suffix}")
    return value


class DailyTargets(BaseModel):
    """Targets a client sets for steps, running, sports and workouts."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    steps: int = 8_000
    running: float = 5
    sports: int = 60
    workout: int = 60
    milestone: str = Field(default="", max_length=MILESTONE_MAX_LENGTH)
    milestone_month: int | None = None
    milestone_year: int | None = None

    @field_validator("steps")
    @classmethod
    def _steps(cls, value: int) -> int:
        return int(_check_range(value, STEPS_RANGE, "Steps"))

    @field_validator("running")
    @classmethod
    def _running(cls, value: float) -> float:
        return _check_range(value, RUNNING_KM_RANGE, "Running distance", "km")

    @field_validator("sports")
    @classmethod
    def _sports(cls, value: int) -> int:
        return int(_check_range(value, SPORTS_MINUTES_RANGE, "Sports time", "minutes"))

    @field_validator("workout")
    @classmethod
    def _workout(cls, value: int) -> int:
        return int(_check_range(value, WORKOUT_MINUTES_RANGE, "Workout time", "minutes"))

    @field_validator("milestone_month")
    @classmethod
    def _month(cls, value: int | None) -> int | None:
        if value is not None and not 1 <= value <= 12:
            raise ValueError("Month must be between 1 and 12")
        return value

    @field_validator("milestone_year")
    @classmethod
    def _year(cls, value: int | None) -> int | None:
        if value is None:
            return value
        current = date.today().year
        if not current <= value <= current + MILESTONE_YEARS_AHEAD:
            raise ValueError(
                f"Year must be between {current} and {current + MILESTONE_YEARS_AHEAD}"
            )
        return value

    @model_validator(mode="after")
    def _milestone_date(self) -> "DailyTargets":
        if self.milestone and (self.milestone_month is None or self.milestone_year is None):
            raise ValueError("Milestone needs a month and a year")
        return self


def validate_targets(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a raw form payload and return its normalized JSON form."""

    return DailyTargets.model_validate(payload).model_dump(mode="json")


__all__ = [
    "DailyTargets",
    "MILESTONE_MAX_LENGTH",
    "RUNNING_KM_RANGE",
    "SPORTS_MINUTES_RANGE",
    "STEPS_RANGE",
    "WORKOUT_MINUTES_RANGE",
    "validate_targets",
]
