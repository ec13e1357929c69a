from __future__ import annotations

import logging
from time import perf_counter
from typing import Dict, Iterable, List, Optional, Sequence

from pygame.math import Vector3

from .config import SimulationConfig
from .entity import Entity
from .rng import DeterministicRng
from .species import Species, SpeciesRegistry
from ..systems import metrics as metrics_system
from ..systems import population
from ..systems.population import SinkFactory
from ..systems.steering import SteeringRule
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotSpecies
from ..utils.math3d import _clamp_length, _is_finite, _safe_normalize, _smooth_heading

logger = logging.getLogger(__name__)


class Swarm:
    """Owns the species registry, the per-species rule sets and the live entities.

    Each ``step`` runs two phases: every entity's acceleration is computed
    against the same untouched entity snapshot, and only then are velocities
    and positions integrated. Rule sets are derived from the configuration once
    and rebuilt only through ``reload``.
    """

    def __init__(
        self,
        config: SimulationConfig,
        entities: Optional[Iterable[Entity]] = None,
        sink_factory: Optional[SinkFactory] = None,
    ):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._sink_factory = sink_factory
        self._registry: SpeciesRegistry = SpeciesRegistry()
        self._rules_map: Dict[Species, List[SteeringRule]] = {}
        self._entities: List[Entity] = []
        self._accelerations: List[Vector3] = []
        self._next_id = 0
        self._metrics: TickMetrics | None = None
        self._rebuild_rules()
        if entities is None:
            self.generate()
        else:
            for entity in entities:
                self.add_entity(entity)

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def entities(self) -> List[Entity]:
        return self._entities

    @property
    def registry(self) -> SpeciesRegistry:
        return self._registry

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def rules_for(self, species: Species) -> List[SteeringRule]:
        return self._rules_map.get(species, [])

    def reload(self, config: SimulationConfig) -> None:
        """Swap in a new configuration and rebuild the derived species indices.

        Live entities are re-pointed at the new registry by species name; the
        ones whose species vanished keep their old reference and drift.
        """
        self._config = config
        self._rng.reseed(config.seed)
        self._rebuild_rules()
        for entity in self._entities:
            species = self._registry.get(entity.species.name)
            if species is not None:
                entity.species = species

    def set_max_speed(self, species_name: str, max_speed: float) -> None:
        species = self._registry.get(species_name)
        if species is None:
            raise KeyError(species_name)
        species.max_speed = float(max_speed)

    def add_entity(self, entity: Entity) -> Entity:
        registered = self._registry.get(entity.species.name)
        if registered is not None:
            # share the registry instance so max_speed edits reach this entity
            entity.species = registered
        else:
            logger.warning("Entity %d uses unregistered species %r; no rules apply", entity.id, entity.species.name)
        self._entities.append(entity)
        self._next_id = max(self._next_id, entity.id + 1)
        return entity

    def spawn_entity(
        self,
        species_name: str,
        position: Vector3,
        velocity: Optional[Vector3] = None,
    ) -> Entity:
        species = self._registry.get(species_name)
        if species is None:
            raise KeyError(species_name)
        entity = Entity(
            id=self._next_id,
            species=species,
            position=Vector3(position),
            velocity=Vector3() if velocity is None else Vector3(velocity),
        )
        if self._sink_factory is not None:
            entity.sink = self._sink_factory(entity)
        return self.add_entity(entity)

    def clear(self) -> None:
        self._entities.clear()
        self._accelerations.clear()
        self._next_id = 0
        self._metrics = None

    def generate(self) -> None:
        self.clear()
        spawned = population.spawn_population(self._config, self._registry, self._rng, self._sink_factory)
        for entity in spawned:
            self.add_entity(entity)
        logger.info("Generated %d entities across %d species", len(spawned), len(self._registry))

    def reset(self) -> None:
        self._rng.reset()
        self.generate()

    def step(self, tick: int, dt: float | None = None) -> TickMetrics:
        start = perf_counter()
        dt = self._config.time_step if dt is None else dt
        snapshot = tuple(self._entities)
        rule_evaluations, unruled = self._accumulate_forces(snapshot)
        self._integrate(snapshot, dt)
        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(tick, snapshot, rule_evaluations, unruled, duration_ms)
        return self._metrics

    def snapshot(self, tick: int) -> Snapshot:
        metrics = self._metrics
        if metrics is None or metrics.tick != tick:
            metrics = metrics_system.create_metrics(tick, self._entities, 0, 0, 0.0)
        counts: Dict[str, int] = {}
        for entity in self._entities:
            counts[entity.species.name] = counts.get(entity.species.name, 0) + 1
        species = [
            SnapshotSpecies(name=entry.name, max_speed=entry.max_speed, count=counts.get(entry.name, 0))
            for entry in self._registry
        ]
        time_step = self._config.time_step
        return Snapshot(
            tick=tick,
            metrics=metrics,
            entities=[self._entity_snapshot(entity) for entity in self._entities],
            species=species,
            metadata=SnapshotMetadata(
                sim_dt=time_step,
                tick_rate=0.0 if time_step <= 0 else 1.0 / time_step,
                max_velocity=self._config.max_velocity,
                seed=self._config.seed,
                config_version=self._config.config_version,
            ),
        )

    def _rebuild_rules(self) -> None:
        self._registry = population.build_registry(self._config)
        self._rules_map = population.build_rule_sets(self._config, self._registry)

    def _accumulate_forces(self, snapshot: Sequence[Entity]) -> tuple[int, int]:
        accelerations = self._accelerations
        accelerations.clear()
        rule_evaluations = 0
        unruled = 0
        for entity in snapshot:
            total = Vector3()
            rules = self._rules_map.get(entity.species)
            if not rules:
                unruled += 1
                accelerations.append(total)
                continue
            for rule in rules:
                total += rule.compute_force(entity, snapshot) * rule.global_weight
                rule_evaluations += 1
            if not _is_finite(total):
                logger.warning("Non-finite force on entity %d (%s); ignoring this tick", entity.id, entity.species.name)
                total = Vector3()
            accelerations.append(total)
        return rule_evaluations, unruled

    def _integrate(self, snapshot: Sequence[Entity], dt: float) -> None:
        config = self._config
        heading_min_sq = config.heading_speed_threshold_sq
        turn = dt * config.heading_smoothing
        for entity, acceleration in zip(snapshot, self._accelerations):
            velocity = _clamp_length(entity.velocity + acceleration * dt, config.max_velocity)
            entity.velocity = velocity
            entity.position = entity.position + velocity * dt
            if velocity.length_squared() > heading_min_sq:
                entity.heading = _smooth_heading(entity.heading, _safe_normalize(velocity), turn)
        # sinks see the committed tick only
        for entity in snapshot:
            entity.update_transform()

    def _entity_snapshot(self, entity: Entity) -> Dict[str, float | int | str]:
        return {
            "id": entity.id,
            "species": entity.species.name,
            "x": entity.position.x,
            "y": entity.position.y,
            "z": entity.position.z,
            "vx": entity.velocity.x,
            "vy": entity.velocity.y,
            "vz": entity.velocity.z,
            "hx": entity.heading.x,
            "hy": entity.heading.y,
            "hz": entity.heading.z,
            "speed": entity.velocity.length(),
        }
