from pydantic import BaseModel, Field


class AssignationBase(BaseModel):
    course_id: str
    professor_id: str
    department_id: str
    school_year: str = Field(default="", max_length=20)
    semester: str = Field(default="", max_length=20)


class AssignationCreate(AssignationBase):
    section_ids: list[str] = Field(default_factory=list, max_length=100)


class AssignationOut(AssignationBase):
    id: str
    course_code: str
    professor_name: str
    section_ids: list[str] = Field(default_factory=list)
