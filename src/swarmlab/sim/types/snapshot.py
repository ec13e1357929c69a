from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    entities: List[Dict[str, Any]]
    species: List["SnapshotSpecies"]
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotSpecies:
    name: str
    max_speed: float
    count: int


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    tick_rate: float
    max_velocity: float
    seed: int
    config_version: str
