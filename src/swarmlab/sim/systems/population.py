from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from pygame.math import Vector3

from ..core.config import PopulationConfig, RuleConfig, SimulationConfig
from ..core.entity import Entity
from ..core.rng import DeterministicRng
from ..core.species import Species, SpeciesRegistry
from ..types.sink import TransformSink
from .steering import SteeringRule, build_rule

logger = logging.getLogger(__name__)

SinkFactory = Callable[[Entity], Optional[TransformSink]]


def build_registry(config: SimulationConfig) -> SpeciesRegistry:
    registry = SpeciesRegistry()
    for entry in config.species:
        registry.register(Species(name=entry.name, max_speed=float(entry.max_speed), prefab=entry.prefab))
    return registry


def _build_rule(rule_config: RuleConfig, registry: SpeciesRegistry, owner: str) -> SteeringRule:
    weights: Dict[Species, float] = {}
    for name, weight in rule_config.weights.items():
        species = registry.get(name)
        if species is None:
            logger.warning(
                "Rule %r of species %r weights unknown species %r; entry dropped",
                rule_config.kind,
                owner,
                name,
            )
            continue
        weights[species] = weight
    rule = build_rule(rule_config.kind, rule_config.global_weight, weights, **rule_config.params)
    rule.sync_species(registry)
    return rule


def build_rule_sets(config: SimulationConfig, registry: SpeciesRegistry) -> Dict[Species, List[SteeringRule]]:
    rules_map: Dict[Species, List[SteeringRule]] = {}
    for population in config.populations:
        species = registry.get(population.species)
        if species is None:
            logger.warning("Population references unregistered species %r; skipped", population.species)
            continue
        if species in rules_map:
            logger.debug("Duplicate population entry for %r; keeping first rule set", species.name)
            continue
        rules_map[species] = [_build_rule(rule, registry, species.name) for rule in population.rules]
        logger.debug("Species %r: %d steering rules", species.name, len(rules_map[species]))
    for species in registry:
        if species not in rules_map:
            logger.warning("Species %r has no rule set; its entities will drift", species.name)
    return rules_map


def spawn_entities(
    population: PopulationConfig,
    species: Species,
    rng: DeterministicRng,
    initial_speed: float,
    first_id: int,
    sink_factory: Optional[SinkFactory] = None,
) -> List[Entity]:
    offset = Vector3(population.spawn_offset)
    entities: List[Entity] = []
    for index in range(max(0, int(population.count))):
        position = offset + rng.next_inside_unit_sphere() * population.spawn_radius
        velocity = rng.next_on_unit_sphere() * initial_speed
        entity = Entity(id=first_id + index, species=species, position=position, velocity=velocity)
        if sink_factory is not None:
            entity.sink = sink_factory(entity)
        entities.append(entity)
    return entities


def spawn_population(
    config: SimulationConfig,
    registry: SpeciesRegistry,
    rng: DeterministicRng,
    sink_factory: Optional[SinkFactory] = None,
) -> List[Entity]:
    entities: List[Entity] = []
    for population in config.populations:
        species = registry.get(population.species)
        if species is None:
            continue
        entities.extend(
            spawn_entities(population, species, rng, config.initial_speed, len(entities), sink_factory)
        )
    return entities
