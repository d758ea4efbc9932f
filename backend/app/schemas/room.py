from pydantic import BaseModel, Field, field_validator

from app.models.room import RoomType


class RoomBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    building: str = Field(default="", max_length=200)
    floor: str = Field(default="", max_length=50)
    type: RoomType = RoomType.lecture

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip()


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    building: str | None = Field(default=None, max_length=200)
    floor: str | None = Field(default=None, max_length=50)
    type: RoomType | None = None


class RoomOut(RoomBase):
    id: str

    model_config = {"from_attributes": True}
