from __future__ import annotations

import re

from pydantic import BaseModel, Field, model_validator

from app.models.department import UnschedulablePolicy

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class DepartmentSettingsBase(BaseModel):
    start_hour: int = Field(default=7, ge=0, le=23)
    end_hour: int = Field(default=19, ge=1, le=24)
    professor_max_hours: int = Field(default=12, ge=1, le=24)
    professor_max_weekly_hours: int | None = Field(default=None, ge=1, le=144)
    student_max_hours: int = Field(default=12, ge=1, le=24)
    professor_break: float = Field(default=1.0, ge=0, le=24)
    max_allowed_gap: float = Field(default=5.0, ge=0, le=24)
    next_schedule_break: float = Field(default=0.5, ge=0, le=24)
    enforce_spacing_rules: bool = False
    unschedulable_policy: UnschedulablePolicy = UnschedulablePolicy.skip
    room_type_matching: bool = False

    @model_validator(mode="after")
    def validate_window(self) -> "DepartmentSettingsBase":
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        if self.next_schedule_break > self.max_allowed_gap:
            raise ValueError("next_schedule_break cannot exceed max_allowed_gap")
        return self


class DepartmentSettingsUpdate(DepartmentSettingsBase):
    pass


class DepartmentSettingsOut(DepartmentSettingsBase):
    id: str
    department_id: str

    model_config = {"from_attributes": True}
