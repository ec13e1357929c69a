from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from pygame.math import Vector3

from ..core.entity import Entity
from ..core.species import Species
from ..utils.math3d import _clamp_length, _safe_normalize

WEIGHT_EPSILON = 1e-3

RULE_TYPES: Dict[str, Type["SteeringRule"]] = {}

_RuleT = TypeVar("_RuleT", bound=Type["SteeringRule"])


def register_rule(kind: str) -> Callable[[_RuleT], _RuleT]:
    def decorator(cls: _RuleT) -> _RuleT:
        if kind in RULE_TYPES:
            raise ValueError(f"steering rule kind {kind!r} is already registered")
        cls.kind = kind
        RULE_TYPES[kind] = cls
        return cls

    return decorator


def build_rule(
    kind: str,
    global_weight: float = 1.0,
    weights: Optional[Mapping[Species, float]] = None,
    **params: object,
) -> "SteeringRule":
    try:
        rule_cls = RULE_TYPES[kind]
    except KeyError:
        known = ", ".join(sorted(RULE_TYPES))
        raise ValueError(f"unknown steering rule kind {kind!r} (known: {known})") from None
    return rule_cls(global_weight=global_weight, weights=weights, **params)


def _as_vector(value: Vector3 | Sequence[float]) -> Vector3:
    return Vector3(value[0], value[1], value[2])


class SteeringRule(ABC):
    """Force-generating algorithm for one reacting species.

    ``interaction_weights`` tells how strongly the reacting species responds to
    neighbors of each species. A missing entry reads as ``0.0`` and any weight
    at or below ``WEIGHT_EPSILON`` is skipped. Rules never mutate the entity
    or its neighbors; every degenerate case yields the zero vector.
    """

    kind = ""

    def __init__(self, global_weight: float = 1.0, weights: Optional[Mapping[Species, float]] = None) -> None:
        self.global_weight = float(global_weight)
        self.interaction_weights: Dict[Species, float] = {}
        if weights:
            for species, weight in weights.items():
                self.interaction_weights[species] = float(weight)

    def weight_for(self, neighbor_species: Species) -> float:
        return self.interaction_weights.get(neighbor_species, 0.0)

    def set_weight(self, neighbor_species: Species, weight: float) -> None:
        self.interaction_weights[neighbor_species] = float(weight)

    def sync_species(self, species: Iterable[Species], default_weight: float = 0.0) -> list[Species]:
        """Make the weight table cover exactly ``species``.

        Returns the species whose entries were dropped.
        """
        wanted = list(species)
        wanted_set = set(wanted)
        dropped = [known for known in self.interaction_weights if known not in wanted_set]
        for known in dropped:
            del self.interaction_weights[known]
        for entry in wanted:
            if entry not in self.interaction_weights:
                self.interaction_weights[entry] = float(default_weight)
        return dropped

    @abstractmethod
    def compute_force(self, entity: Entity, neighbors: Sequence[Entity]) -> Vector3:
        raise NotImplementedError

    @staticmethod
    def _steer(entity: Entity, direction: Vector3, max_force: float) -> Vector3:
        desired = _safe_normalize(direction)
        if desired.length_squared() == 0.0:
            return Vector3()
        desired *= entity.species.max_speed
        return _clamp_length(desired - entity.velocity, max_force)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(global_weight={self.global_weight}, weights={len(self.interaction_weights)})"


@register_rule("cohesion")
class CohesionRule(SteeringRule):
    def __init__(
        self,
        global_weight: float = 1.0,
        weights: Optional[Mapping[Species, float]] = None,
        vision_radius: float = 100.0,
        max_force: float = 2.0,
    ) -> None:
        super().__init__(global_weight, weights)
        self.vision_radius = float(vision_radius)
        self.max_force = float(max_force)

    def compute_force(self, entity: Entity, neighbors: Sequence[Entity]) -> Vector3:
        if not neighbors:
            return Vector3()
        position = entity.position
        radius_sq = self.vision_radius * self.vision_radius
        sum_x = 0.0
        sum_y = 0.0
        sum_z = 0.0
        total_weight = 0.0
        for other in neighbors:
            if other is entity:
                continue
            dist_sq = position.distance_squared_to(other.position)
            if dist_sq <= 0.0 or dist_sq >= radius_sq:
                continue
            weight = self.weight_for(other.species)
            if weight <= WEIGHT_EPSILON:
                continue
            sum_x += other.position.x * weight
            sum_y += other.position.y * weight
            sum_z += other.position.z * weight
            total_weight += weight
        if total_weight <= 0.0:
            return Vector3()
        inv = 1.0 / total_weight
        centroid = Vector3(sum_x * inv, sum_y * inv, sum_z * inv)
        return self._steer(entity, centroid - position, self.max_force)


@register_rule("separation")
class SeparationRule(SteeringRule):
    def __init__(
        self,
        global_weight: float = 1.0,
        weights: Optional[Mapping[Species, float]] = None,
        min_distance: float = 2.5,
        max_force: float = 5.0,
    ) -> None:
        super().__init__(global_weight, weights)
        self.min_distance = float(min_distance)
        self.max_force = float(max_force)

    def compute_force(self, entity: Entity, neighbors: Sequence[Entity]) -> Vector3:
        if not neighbors:
            return Vector3()
        position = entity.position
        min_sq = self.min_distance * self.min_distance
        accum_x = 0.0
        accum_y = 0.0
        accum_z = 0.0
        count = 0
        for other in neighbors:
            if other is entity:
                continue
            dist_sq = position.distance_squared_to(other.position)
            if dist_sq <= 0.0 or dist_sq >= min_sq:
                continue
            weight = self.weight_for(other.species)
            if weight <= WEIGHT_EPSILON:
                continue
            # unit vector away from the neighbor, scaled by 1 / dist
            scale = weight / dist_sq
            accum_x += (position.x - other.position.x) * scale
            accum_y += (position.y - other.position.y) * scale
            accum_z += (position.z - other.position.z) * scale
            count += 1
        if count == 0:
            return Vector3()
        inv = 1.0 / count
        return self._steer(entity, Vector3(accum_x * inv, accum_y * inv, accum_z * inv), self.max_force)


@register_rule("alignment")
class AlignmentRule(SteeringRule):
    def __init__(
        self,
        global_weight: float = 1.0,
        weights: Optional[Mapping[Species, float]] = None,
        neighbor_radius: float = 10.0,
        max_force: float = 2.0,
    ) -> None:
        super().__init__(global_weight, weights)
        self.neighbor_radius = float(neighbor_radius)
        self.max_force = float(max_force)

    def compute_force(self, entity: Entity, neighbors: Sequence[Entity]) -> Vector3:
        if not neighbors:
            return Vector3()
        position = entity.position
        radius_sq = self.neighbor_radius * self.neighbor_radius
        sum_x = 0.0
        sum_y = 0.0
        sum_z = 0.0
        total_weight = 0.0
        count = 0
        for other in neighbors:
            if other is entity:
                continue
            dist_sq = position.distance_squared_to(other.position)
            if dist_sq <= 0.0 or dist_sq >= radius_sq:
                continue
            weight = self.weight_for(other.species)
            if weight <= WEIGHT_EPSILON:
                continue
            velocity = other.velocity
            sum_x += velocity.x * weight
            sum_y += velocity.y * weight
            sum_z += velocity.z * weight
            total_weight += weight
            count += 1
        if count == 0 or total_weight <= WEIGHT_EPSILON:
            return Vector3()
        inv = 1.0 / count
        average = Vector3(sum_x * inv, sum_y * inv, sum_z * inv)
        return self._steer(entity, average, self.max_force)


@register_rule("bounding_box")
class BoundingBoxRule(SteeringRule):
    """Pushes entities back inside an axis-aligned box.

    Walls affect every species the same way, so interaction weights are ignored;
    only ``global_weight`` scales the result.
    """

    def __init__(
        self,
        global_weight: float = 1.0,
        weights: Optional[Mapping[Species, float]] = None,
        center: Vector3 | Sequence[float] = (0.0, 0.0, 0.0),
        size: Vector3 | Sequence[float] = (20.0, 20.0, 20.0),
        edge_threshold: float = 5.0,
        max_force: float = 10.0,
    ) -> None:
        super().__init__(global_weight, weights)
        self.center = _as_vector(center)
        self.size = _as_vector(size)
        self.edge_threshold = float(edge_threshold)
        self.max_force = float(max_force)

    def safe_interior(self) -> Tuple[Vector3, Vector3]:
        half = self.size * 0.5
        margin = Vector3(self.edge_threshold, self.edge_threshold, self.edge_threshold)
        return self.center - half + margin, self.center + half - margin

    def compute_force(self, entity: Entity, neighbors: Sequence[Entity]) -> Vector3:
        low, high = self.safe_interior()
        position = entity.position
        desired = Vector3()
        for axis in range(3):
            if position[axis] < low[axis]:
                desired[axis] = 1.0
            elif position[axis] > high[axis]:
                desired[axis] = -1.0
        if desired.length_squared() == 0.0:
            return Vector3()
        return self._steer(entity, desired, self.max_force)
