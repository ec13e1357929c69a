from __future__ import annotations

from typing import Sequence

from ..core.entity import Entity
from ..types.metrics import TickMetrics


def create_metrics(
    tick: int,
    entities: Sequence[Entity],
    rule_evaluations: int,
    unruled: int,
    duration_ms: float,
) -> TickMetrics:
    population = len(entities)
    speed_sum = 0.0
    max_speed = 0.0
    for entity in entities:
        speed = entity.velocity.length()
        speed_sum += speed
        if speed > max_speed:
            max_speed = speed
    return TickMetrics(
        tick=tick,
        population=population,
        average_speed=0.0 if population == 0 else speed_sum / population,
        max_speed=max_speed,
        rule_evaluations=rule_evaluations,
        unruled=unruled,
        tick_duration_ms=duration_ms,
    )
