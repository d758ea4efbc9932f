from pydantic import BaseModel, Field, field_validator

from app.schemas.settings import DepartmentSettingsBase


class DepartmentBase(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class DepartmentCreate(DepartmentBase):
    settings: DepartmentSettingsBase | None = None


class DepartmentOut(DepartmentBase):
    id: str

    model_config = {"from_attributes": True}
