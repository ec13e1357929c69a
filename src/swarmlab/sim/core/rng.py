from __future__ import annotations

import math
import random

from pygame.math import Vector3


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reseed(self, seed: int) -> None:
        self._seed = seed
        self._random.seed(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_on_unit_sphere(self) -> Vector3:
        # uniform direction: z uniform in [-1, 1], azimuth uniform
        z = self._random.uniform(-1.0, 1.0)
        angle = self._random.uniform(0.0, 2.0 * math.pi)
        ring = math.sqrt(max(0.0, 1.0 - z * z))
        return Vector3(ring * math.cos(angle), ring * math.sin(angle), z)

    def next_inside_unit_sphere(self) -> Vector3:
        direction = self.next_on_unit_sphere()
        radius = self.next_float() ** (1.0 / 3.0)
        return direction * radius
