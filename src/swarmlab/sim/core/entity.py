from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from pygame.math import Vector3

from ..types.sink import TransformSink
from .species import Species


def _default_heading() -> Vector3:
    return Vector3(0.0, 0.0, 1.0)


@dataclass(slots=True, eq=False)
class Entity:
    id: int
    species: Species
    position: Vector3 = field(default_factory=Vector3)
    velocity: Vector3 = field(default_factory=Vector3)
    heading: Vector3 = field(default_factory=_default_heading)
    sink: Optional[TransformSink] = None

    def update_transform(self) -> None:
        if self.sink is None:
            return
        self.sink.update_transform(Vector3(self.position), Vector3(self.heading))
