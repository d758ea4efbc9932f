from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_cache, get_db, get_registry
from app.core.config import get_settings
from app.schemas.automation import (
    AutomateRequest,
    AutomationResponse,
    CancelRequest,
    CancelResponse,
    FailedAssignationOut,
    ScheduleReportRow,
    VariantOut,
    VariantSelectRequest,
    VariantSelectResponse,
    VariantSetOut,
    VariantsRequest,
)
from app.services.automation import AutomationScope, run_automation
from app.services.backtracking_scheduler import FailedObligation, VariantPriorities
from app.services.scope_lock import ScopeRunRegistry
from app.services.variants import (
    Variant,
    VariantCache,
    VariantSet,
    generate_variants,
    get_variant_set,
    select_variant,
)

router = APIRouter()


def _failed_out(failed: list[FailedObligation]) -> list[FailedAssignationOut]:
    return [
        FailedAssignationOut(id=item.obligation_id, course=item.course_code, professor=item.professor_name, reason=item.reason)
        for item in failed
    ]


def _variant_out(variant: Variant) -> VariantOut:
    return VariantOut(
        index=variant.index,
        name=variant.name,
        strategy=variant.strategy,
        status=variant.status,
        successful=variant.successful,
        message=variant.message,
        placements=[ScheduleReportRow(**row) for row in variant.report],
        failed_assignations=_failed_out(variant.failed),
        nodes_explored=variant.nodes_explored,
        runtime_ms=variant.runtime_ms,
    )


def _variant_set_out(variant_set: VariantSet) -> VariantSetOut:
    return VariantSetOut(
        set_id=variant_set.id,
        department_id=variant_set.scope.department_id,
        school_year=variant_set.scope.school_year,
        semester=variant_set.scope.semester,
        variants=[_variant_out(variant) for variant in variant_set.variants],
    )


@router.post("/schedules/automate", response_model=AutomationResponse)
def automate_schedule(
    payload: AutomateRequest,
    actor: str | None = Depends(get_actor),
    registry: ScopeRunRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
) -> AutomationResponse:
    scope = AutomationScope(payload.department_id, payload.school_year, payload.semester)
    overrides = payload.overrides.model_dump(exclude_none=True) if payload.overrides else None
    with registry.hold(scope.key, timeout=get_settings().automation_lock_timeout_seconds) as cancel_event:
        outcome = run_automation(db, scope, actor=actor, overrides=overrides, cancel_event=cancel_event)
    result = outcome.result
    return AutomationResponse(
        successful=result.successful,
        status=result.status,
        message=result.message,
        schedule_report=[ScheduleReportRow(**row) for row in result.report],
        failed_assignations=_failed_out(result.failed),
        nodes_explored=result.nodes_explored,
        runtime_ms=result.runtime_ms,
    )


@router.post("/schedules/automate/cancel", response_model=CancelResponse)
def cancel_automation(
    payload: CancelRequest,
    registry: ScopeRunRegistry = Depends(get_registry),
) -> CancelResponse:
    scope = AutomationScope(payload.department_id, payload.school_year, payload.semester)
    if registry.cancel(scope.key):
        return CancelResponse(cancelled=True, message="Cancellation requested.")
    return CancelResponse(cancelled=False, message="No scheduling run is in progress for this scope.")


@router.post("/schedules/variants", response_model=VariantSetOut)
def create_variants(
    payload: VariantsRequest,
    registry: ScopeRunRegistry = Depends(get_registry),
    cache: VariantCache = Depends(get_cache),
    db: Session = Depends(get_db),
) -> VariantSetOut:
    scope = AutomationScope(payload.department_id, payload.school_year, payload.semester)
    priorities = None
    if payload.priorities is not None:
        priorities = VariantPriorities(
            professor_ids=tuple(payload.priorities.professor_ids),
            room_ids=tuple(payload.priorities.room_ids),
            section_ids=tuple(payload.priorities.section_ids),
        )
    overrides = payload.overrides.model_dump(exclude_none=True) if payload.overrides else None
    with registry.hold(scope.key, timeout=get_settings().automation_lock_timeout_seconds) as cancel_event:
        variant_set = generate_variants(
            db,
            scope,
            count=payload.count,
            strategies=payload.strategies or None,
            priorities=priorities,
            seed=payload.seed,
            overrides=overrides,
            cancel_event=cancel_event,
            cache=cache,
        )
    return _variant_set_out(variant_set)


@router.get("/schedules/variants/{set_id}", response_model=VariantSetOut)
def get_variants(set_id: str, cache: VariantCache = Depends(get_cache)) -> VariantSetOut:
    return _variant_set_out(get_variant_set(set_id, cache))


@router.delete("/schedules/variants/{set_id}")
def discard_variants(set_id: str, cache: VariantCache = Depends(get_cache)) -> dict:
    get_variant_set(set_id, cache)
    cache.discard(set_id)
    return {"success": True}


@router.post("/schedules/variants/{set_id}/select", response_model=VariantSelectResponse)
def select_variant_route(
    set_id: str,
    payload: VariantSelectRequest,
    actor: str | None = Depends(get_actor),
    registry: ScopeRunRegistry = Depends(get_registry),
    cache: VariantCache = Depends(get_cache),
    db: Session = Depends(get_db),
) -> VariantSelectResponse:
    variant_set = get_variant_set(set_id, cache)
    with registry.hold(variant_set.scope.key, timeout=get_settings().automation_lock_timeout_seconds):
        variant, created = select_variant(db, set_id, payload.index, actor=actor, cache=cache)
    return VariantSelectResponse(
        successful=True,
        message=f"{variant.name} saved.",
        variant=variant.name,
        created=len(created),
    )
