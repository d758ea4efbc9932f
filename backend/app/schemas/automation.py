from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.department import UnschedulablePolicy
from app.schemas.schedule import ScopeRequest
from app.services.backtracking_scheduler import OrderingStrategy, SearchStatus


class SearchOverrides(BaseModel):
    start_hour: int | None = Field(default=None, ge=0, le=23)
    end_hour: int | None = Field(default=None, ge=1, le=24)
    professor_max_daily_hours: int | None = Field(default=None, ge=1, le=24)
    professor_max_weekly_hours: int | None = Field(default=None, ge=1, le=144)
    student_max_daily_hours: int | None = Field(default=None, ge=1, le=24)
    unschedulable_policy: UnschedulablePolicy | None = None
    room_type_matching: bool | None = None
    max_nodes: int | None = Field(default=None, ge=1, le=50_000_000)
    time_limit_seconds: float | None = Field(default=None, gt=0, le=600)


class AutomateRequest(ScopeRequest):
    overrides: SearchOverrides | None = None


class CancelRequest(ScopeRequest):
    pass


class CancelResponse(BaseModel):
    cancelled: bool
    message: str


class FailedAssignationOut(BaseModel):
    id: str
    course: str
    professor: str
    reason: str


class ScheduleReportRow(BaseModel):
    professor: str
    course: str
    course_type: str
    sections: list[str]
    room: str
    day: int
    start_time: str
    end_time: str


class AutomationResponse(BaseModel):
    successful: bool
    status: SearchStatus
    message: str
    schedule_report: list[ScheduleReportRow] = Field(default_factory=list)
    failed_assignations: list[FailedAssignationOut] = Field(default_factory=list)
    nodes_explored: int = 0
    runtime_ms: int = 0


class VariantPrioritiesIn(BaseModel):
    professor_ids: list[str] = Field(default_factory=list, max_length=200)
    room_ids: list[str] = Field(default_factory=list, max_length=200)
    section_ids: list[str] = Field(default_factory=list, max_length=200)

    @field_validator("professor_ids", "room_ids", "section_ids")
    @classmethod
    def dedupe(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for item in value:
            item = item.strip()
            if not item:
                raise ValueError("Priority ids cannot be blank")
            if item not in seen:
                seen.append(item)
        return seen


class VariantsRequest(ScopeRequest):
    count: int | None = Field(default=None, ge=1, le=20)
    strategies: list[OrderingStrategy] = Field(default_factory=list, max_length=20)
    priorities: VariantPrioritiesIn | None = None
    seed: int | None = None
    overrides: SearchOverrides | None = None

    @model_validator(mode="after")
    def validate_strategies(self) -> "VariantsRequest":
        if self.strategies and self.count is not None and len(self.strategies) > self.count:
            raise ValueError("More strategies than variants requested")
        return self


class VariantOut(BaseModel):
    index: int
    name: str
    strategy: OrderingStrategy
    status: SearchStatus
    successful: bool
    message: str
    placements: list[ScheduleReportRow] = Field(default_factory=list)
    failed_assignations: list[FailedAssignationOut] = Field(default_factory=list)
    nodes_explored: int = 0
    runtime_ms: int = 0


class VariantSetOut(BaseModel):
    set_id: str
    department_id: str
    school_year: str
    semester: str
    variants: list[VariantOut]


class VariantSelectRequest(BaseModel):
    index: int = Field(ge=0)


class VariantSelectResponse(BaseModel):
    successful: bool
    message: str
    variant: str
    created: int
