from pydantic import BaseModel, EmailStr, Field


class ProfessorBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr | None = None
    department_id: str | None = None


class ProfessorCreate(ProfessorBase):
    pass


class ProfessorOut(ProfessorBase):
    id: str

    model_config = {"from_attributes": True}
