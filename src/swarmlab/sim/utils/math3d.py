from __future__ import annotations

import math

from pygame.math import Vector3


def _safe_normalize(vector: Vector3) -> Vector3:
    return _safe_normalize_xyz(vector.x, vector.y, vector.z)


def _safe_normalize_xyz(x: float, y: float, z: float) -> Vector3:
    magnitude_sq = x * x + y * y + z * z
    if magnitude_sq < 1e-10:
        return Vector3()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector3(x * inv, y * inv, z * inv)


def _clamp_length(vector: Vector3, max_length: float) -> Vector3:
    if max_length <= 0:
        return Vector3()
    magnitude_sq = vector.length_squared()
    if magnitude_sq <= max_length * max_length:
        return Vector3(vector)
    inv = max_length / math.sqrt(magnitude_sq)
    return Vector3(vector.x * inv, vector.y * inv, vector.z * inv)


def _is_finite(vector: Vector3) -> bool:
    return math.isfinite(vector.x) and math.isfinite(vector.y) and math.isfinite(vector.z)


def _smooth_heading(current: Vector3, target: Vector3, t: float) -> Vector3:
    t = _clamp_value(t, 0.0, 1.0)
    blended = current + (target - current) * t
    if blended.length_squared() < 1e-10:
        # current and target are opposite; blending passes through zero
        return _safe_normalize(target)
    return _safe_normalize(blended)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))
