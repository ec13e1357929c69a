from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

_ORIGIN = (0.0, 0.0, 0.0)


@dataclass
class SpeciesConfig:
    name: str = "boid"
    max_speed: float = 5.0
    prefab: Optional[str] = None


@dataclass
class RuleConfig:
    kind: str = "cohesion"
    global_weight: float = 1.0
    # neighbor species name -> interaction weight
    weights: Dict[str, float] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)


def _default_rules() -> List[RuleConfig]:
    return [
        RuleConfig(kind="cohesion", weights={"boid": 1.0}, params={"vision_radius": 8.0, "max_force": 2.0}),
        RuleConfig(kind="separation", global_weight=1.5, weights={"boid": 1.0}, params={"min_distance": 2.5, "max_force": 5.0}),
        RuleConfig(kind="alignment", weights={"boid": 1.0}, params={"neighbor_radius": 6.0, "max_force": 2.0}),
        RuleConfig(
            kind="bounding_box",
            global_weight=2.0,
            params={"center": (0.0, 0.0, 0.0), "size": (40.0, 40.0, 40.0), "edge_threshold": 5.0, "max_force": 10.0},
        ),
    ]


@dataclass
class PopulationConfig:
    species: str = "boid"
    count: int = 60
    spawn_offset: tuple[float, float, float] = _ORIGIN
    spawn_radius: float = 8.0
    rules: List[RuleConfig] = field(default_factory=_default_rules)


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 50.0
    # global ceiling applied after forces are summed; species max_speed only shapes steering
    max_velocity: float = 5.0
    initial_speed: float = 2.0
    heading_smoothing: float = 5.0
    heading_speed_threshold_sq: float = 0.1
    seed: int = 42
    config_version: str = "v1"
    species: List[SpeciesConfig] = field(default_factory=lambda: [SpeciesConfig()])
    populations: List[PopulationConfig] = field(default_factory=lambda: [PopulationConfig()])

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text())
        return load_config(data or {})


def _triple(value: Any, default: tuple[float, float, float]) -> tuple[float, float, float]:
    if isinstance(value, (tuple, list)) and len(value) == 3:
        return (float(value[0]), float(value[1]), float(value[2]))
    if value is None:
        return default
    raise ValueError(f"expected a 3-component vector, got {value!r}")


def _load_rule(raw: dict) -> RuleConfig:
    params = dict(raw.get("params") or {})
    for key in ("center", "size"):
        if key in params:
            params[key] = _triple(params[key], _ORIGIN)
    weights = {str(name): float(weight) for name, weight in (raw.get("weights") or {}).items()}
    values = {k: v for k, v in raw.items() if k not in {"params", "weights"}}
    return RuleConfig(weights=weights, params=params, **values)


def _load_population(raw: dict) -> PopulationConfig:
    values = {k: v for k, v in raw.items() if k not in {"rules", "spawn_offset"}}
    population = PopulationConfig(
        spawn_offset=_triple(raw.get("spawn_offset"), _ORIGIN),
        **values,
    )
    population.rules = [_load_rule(rule) for rule in raw.get("rules") or []]
    return population


def load_config(raw: dict) -> SimulationConfig:
    sim_values = {k: v for k, v in raw.items() if k not in {"species", "populations"}}
    config = SimulationConfig(**sim_values)
    if "species" in raw:
        config.species = [SpeciesConfig(**entry) for entry in raw.get("species") or []]
    if "populations" in raw:
        config.populations = [_load_population(entry) for entry in raw.get("populations") or []]
    return config
