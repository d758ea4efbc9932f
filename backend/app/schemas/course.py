from pydantic import BaseModel, Field, field_validator

from app.models.course import CourseType
from app.models.room import RoomType


class CourseBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=1, max_length=200)
    duration: int = Field(default=1, ge=1, le=12)
    units: int = Field(default=3, ge=0, le=12)
    type: CourseType
    year: int = Field(default=1, ge=1, le=6)
    room_type: RoomType | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class CourseCreate(CourseBase):
    program_ids: list[str] = Field(default_factory=list, max_length=100)


class CourseUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = Field(default=None, min_length=1, max_length=200)
    duration: int | None = Field(default=None, ge=1, le=12)
    units: int | None = Field(default=None, ge=0, le=12)
    type: CourseType | None = None
    year: int | None = Field(default=None, ge=1, le=6)
    room_type: RoomType | None = None


class CourseProgramsUpdate(BaseModel):
    program_ids: list[str] = Field(default_factory=list, max_length=100)


class CourseOut(CourseBase):
    id: str
    program_ids: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}
