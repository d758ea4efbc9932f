from pydantic import BaseModel, Field, field_validator


class ProgramBase(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    department_id: str

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class ProgramCreate(ProgramBase):
    pass


class ProgramOut(ProgramBase):
    id: str

    model_config = {"from_attributes": True}


class SectionBase(BaseModel):
    year: int = Field(ge=1, le=6)
    letter: str = Field(min_length=1, max_length=10)
    enrolled_count: int = Field(default=0, ge=0, le=1000)

    @field_validator("letter")
    @classmethod
    def normalize_letter(cls, value: str) -> str:
        return value.strip().upper()


class SectionCreate(SectionBase):
    pass


class SectionOut(SectionBase):
    id: str
    program_id: str
    label: str

    model_config = {"from_attributes": True}
