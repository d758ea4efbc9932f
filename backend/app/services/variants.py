from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import ResourceNotFoundError, SchedulerError, StaleVariantError
from app.services.automation import (
    AutomationScope,
    build_scheduler,
    commit_placements,
    load_scope_inputs,
    validate_placements_against_baseline,
)
from app.services.backtracking_scheduler import (
    FailedObligation,
    OrderingStrategy,
    Placement,
    SearchStatus,
    VariantPriorities,
)

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_CYCLE: tuple[OrderingStrategy, ...] = (
    OrderingStrategy.declaration,
    OrderingStrategy.room_rotation,
    OrderingStrategy.longest_first,
    OrderingStrategy.shuffled,
)


@dataclass
class Variant:
    index: int
    name: str
    strategy: OrderingStrategy
    status: SearchStatus
    message: str
    placements: list[Placement] = field(default_factory=list)
    report: list[dict] = field(default_factory=list)
    failed: list[FailedObligation] = field(default_factory=list)
    nodes_explored: int = 0
    runtime_ms: int = 0

    @property
    def successful(self) -> bool:
        return self.status == SearchStatus.solved


@dataclass
class VariantSet:
    id: str
    scope: AutomationScope
    variants: list[Variant]
    overrides: dict = field(default_factory=dict)
    created_at: float = field(default_factory=time.monotonic)


class VariantCache:
    """Process-local store of generated variant sets, dropped after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float, clock=time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sets: dict[str, VariantSet] = {}
        self._lock = threading.Lock()

    def _expired(self, variant_set: VariantSet, now: float) -> bool:
        return now - variant_set.created_at > self.ttl_seconds

    def put(self, variant_set: VariantSet) -> None:
        with self._lock:
            variant_set.created_at = self._clock()
            self._purge(variant_set.created_at)
            self._sets[variant_set.id] = variant_set

    def get(self, set_id: str) -> VariantSet | None:
        with self._lock:
            variant_set = self._sets.get(set_id)
            if variant_set is None:
                return None
            if self._expired(variant_set, self._clock()):
                del self._sets[set_id]
                return None
            return variant_set

    def discard(self, set_id: str) -> bool:
        with self._lock:
            return self._sets.pop(set_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sets.clear()

    def _purge(self, now: float) -> None:
        for set_id in [key for key, value in self._sets.items() if self._expired(value, now)]:
            del self._sets[set_id]


_cache: VariantCache | None = None
_cache_guard = threading.Lock()


def get_variant_cache() -> VariantCache:
    global _cache
    with _cache_guard:
        if _cache is None:
            _cache = VariantCache(ttl_seconds=get_settings().variant_cache_ttl_seconds)
        return _cache


def clear_variant_cache() -> None:
    get_variant_cache().clear()


def strategy_for(index: int, strategies: Sequence[OrderingStrategy] | None = None) -> OrderingStrategy:
    cycle = tuple(strategies) if strategies else DEFAULT_STRATEGY_CYCLE
    return cycle[index % len(cycle)]


def generate_variants(
    db: Session,
    scope: AutomationScope,
    *,
    count: int | None = None,
    strategies: Sequence[OrderingStrategy] | None = None,
    priorities: VariantPriorities | None = None,
    seed: int | None = None,
    overrides: Mapping[str, object] | None = None,
    cancel_event: threading.Event | None = None,
    cache: VariantCache | None = None,
    app_settings: Settings | None = None,
) -> VariantSet:
    """Run the search ``count`` times from one baseline with a different enumeration order each time."""
    app_settings = app_settings or get_settings()
    count = count or app_settings.variant_default_count
    if count < 1 or count > app_settings.variant_max_count:
        raise SchedulerError(
            f"Variant count must be between 1 and {app_settings.variant_max_count}",
            details={"count": count},
        )

    inputs = load_scope_inputs(db, scope, overrides=overrides, app_settings=app_settings)
    base_seed = seed if seed is not None else 0
    logger.info(
        "VARIANTS START | department_id=%s | count=%s | obligations=%s | seed=%s",
        scope.department_id,
        count,
        len(inputs.obligations),
        base_seed,
    )

    variants: list[Variant] = []
    for index in range(count):
        strategy = strategy_for(index, strategies)
        result = build_scheduler(
            inputs,
            ordering=strategy,
            priorities=priorities,
            rotation=index,
            seed=base_seed + index,
            cancel_event=cancel_event,
        ).run()
        variants.append(
            Variant(
                index=index,
                name=f"Variant {index + 1}",
                strategy=strategy,
                status=result.status,
                message=result.message,
                placements=result.placements,
                report=result.report,
                failed=result.failed,
                nodes_explored=result.nodes_explored,
                runtime_ms=result.runtime_ms,
            )
        )
        if result.status == SearchStatus.cancelled:
            break

    variant_set = VariantSet(
        id=str(uuid.uuid4()),
        scope=scope,
        variants=variants,
        overrides=dict(overrides or {}),
    )
    (cache or get_variant_cache()).put(variant_set)
    logger.info(
        "VARIANTS COMPLETE | department_id=%s | set_id=%s | statuses=%s",
        scope.department_id,
        variant_set.id,
        ",".join(variant.status.value for variant in variants),
    )
    return variant_set


def get_variant_set(set_id: str, cache: VariantCache | None = None) -> VariantSet:
    variant_set = (cache or get_variant_cache()).get(set_id)
    if variant_set is None:
        raise ResourceNotFoundError("Variant set", set_id)
    return variant_set


def select_variant(
    db: Session,
    set_id: str,
    index: int,
    *,
    actor: str | None = None,
    cache: VariantCache | None = None,
    app_settings: Settings | None = None,
) -> tuple[Variant, list[str]]:
    """Re-check a cached variant against the store, commit it, and drop the whole set."""
    cache = cache or get_variant_cache()
    variant_set = get_variant_set(set_id, cache)
    if index < 0 or index >= len(variant_set.variants):
        raise ResourceNotFoundError("Variant", f"{set_id}/{index}")
    variant = variant_set.variants[index]
    if not variant.successful:
        raise SchedulerError(
            f"{variant.name} has no schedule to apply",
            details={"status": variant.status.value},
        )

    inputs = load_scope_inputs(db, variant_set.scope, overrides=variant_set.overrides, app_settings=app_settings)
    problems = validate_placements_against_baseline(
        inputs,
        variant.placements,
        skipped_obligation_ids=[failure.obligation_id for failure in variant.failed],
    )
    if problems:
        logger.warning(
            "VARIANT STALE | set_id=%s | variant=%s | problems=%s",
            set_id,
            index,
            len(problems),
        )
        raise StaleVariantError(
            f"{variant.name} no longer fits the current schedule; generate new variants",
            details={"problems": problems},
        )

    created = commit_placements(
        db,
        inputs,
        variant.placements,
        actor=actor,
        action="schedule.variant.select",
        details={"set_id": set_id, "variant": variant.name, "strategy": variant.strategy.value},
    )
    cache.discard(set_id)
    logger.info(
        "VARIANT SELECTED | set_id=%s | variant=%s | created=%s",
        set_id,
        index,
        len(created),
    )
    return variant, created
