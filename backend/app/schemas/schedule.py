from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.settings import TIME_PATTERN, parse_time_to_minutes


class ScheduleEntryBase(BaseModel):
    assignation_id: str
    room_id: str
    day: int = Field(ge=1, le=6)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "ScheduleEntryBase":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class ScheduleEntryCreate(ScheduleEntryBase):
    section_ids: list[str] = Field(default_factory=list, max_length=100)


class ScheduleEntryBatchCreate(BaseModel):
    entries: list[ScheduleEntryCreate] = Field(min_length=1, max_length=200)


class ScheduleEntryUpdate(ScheduleEntryCreate):
    pass


class ScheduleEntryOut(BaseModel):
    id: str
    assignation_id: str
    day: int
    start_time: str
    end_time: str
    room_id: str
    room: str
    course: str
    course_type: str
    professor_id: str
    professor: str
    department_id: str
    section_ids: list[str]
    sections: list[str]
    locked: bool


class LockUpdate(BaseModel):
    locked: bool


class BulkLockRequest(BaseModel):
    locked: bool = True
    department_id: str | None = None
    room_id: str | None = None
    professor_id: str | None = None
    day: int | None = Field(default=None, ge=1, le=6)

    @model_validator(mode="after")
    def validate_filters(self) -> "BulkLockRequest":
        if not any(value is not None for value in (self.department_id, self.room_id, self.professor_id, self.day)):
            raise ValueError("At least one filter is required")
        return self


class BulkLockResponse(BaseModel):
    locked: bool
    updated: int


class ScopeRequest(BaseModel):
    department_id: str = Field(min_length=1)
    school_year: str = Field(default="", max_length=20)
    semester: str = Field(default="", max_length=20)


class BulkDeleteRequest(ScopeRequest):
    include_locked: bool = False


class BulkDeleteResponse(BaseModel):
    deleted: int
    kept_locked: int
