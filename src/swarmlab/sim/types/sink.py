from __future__ import annotations

from typing import Protocol, runtime_checkable

from pygame.math import Vector3


@runtime_checkable
class TransformSink(Protocol):
    """One-way receiver of an entity's committed transform after each tick."""

    def update_transform(self, position: Vector3, heading: Vector3) -> None: ...
