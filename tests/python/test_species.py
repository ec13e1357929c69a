from __future__ import annotations

import logging

from pygame.math import Vector3
from pytest import approx

from swarmlab.sim.core.entity import Entity
from swarmlab.sim.core.species import Species, SpeciesRegistry
from swarmlab.sim.types.sink import TransformSink
from swarmlab.sim.utils.math3d import _clamp_length, _is_finite, _safe_normalize, _smooth_heading


def test_species_identity_is_the_name():
    a = Species("boid", max_speed=2.0)
    b = Species("boid", max_speed=9.0, prefab="Other")
    assert a == b
    assert hash(a) == hash(b)
    assert {a: 1.0}[b] == 1.0
    assert Species("fish") != a
    assert not hasattr(a, "__dict__")


def test_registry_first_registration_wins(caplog):
    registry = SpeciesRegistry()
    first = registry.register(Species("boid", max_speed=2.0))
    with caplog.at_level(logging.WARNING):
        again = registry.register(Species("boid", max_speed=7.0))
    assert again is first
    assert registry.get("boid").max_speed == approx(2.0)
    assert "Duplicate species" in caplog.text
    assert "boid" in registry
    assert Species("boid") in registry
    assert "fish" not in registry
    assert len(registry) == 1
    assert registry.get("fish") is None


def test_entity_defaults_are_isolated():
    species = Species("boid")
    a = Entity(id=1, species=species)
    b = Entity(id=2, species=species)
    assert not hasattr(a, "__dict__")
    a.velocity.x = 3.0
    a.heading.y = 1.0
    assert b.velocity == Vector3()
    assert b.heading == Vector3(0.0, 0.0, 1.0)
    assert a.species is b.species


def test_entity_update_transform_without_sink_is_noop():
    entity = Entity(id=0, species=Species("boid"), position=Vector3(1.0, 2.0, 3.0))
    entity.update_transform()
    assert entity.position == Vector3(1.0, 2.0, 3.0)


def test_recording_sink_satisfies_protocol():
    class Sink:
        def __init__(self):
            self.last = None

        def update_transform(self, position, heading):
            self.last = (position, heading)

    sink = Sink()
    assert isinstance(sink, TransformSink)
    entity = Entity(id=0, species=Species("boid"), position=Vector3(1.0, 0.0, 0.0), sink=sink)
    entity.update_transform()
    assert sink.last == (Vector3(1.0, 0.0, 0.0), Vector3(0.0, 0.0, 1.0))


def test_math_helpers_are_total():
    assert _safe_normalize(Vector3()) == Vector3()
    assert _safe_normalize(Vector3(0.0, 3.0, 4.0)) == Vector3(0.0, 0.6, 0.8)
    assert _clamp_length(Vector3(3.0, 4.0, 0.0), 2.5).length() == approx(2.5)
    assert _clamp_length(Vector3(0.3, 0.4, 0.0), 2.5) == Vector3(0.3, 0.4, 0.0)
    assert _clamp_length(Vector3(), 1.0) == Vector3()
    assert _clamp_length(Vector3(1.0, 0.0, 0.0), 0.0) == Vector3()
    assert _is_finite(Vector3(1.0, 2.0, 3.0))
    assert not _is_finite(Vector3(float("nan"), 0.0, 0.0))
    assert not _is_finite(Vector3(0.0, float("inf"), 0.0))


def test_smooth_heading_handles_opposite_directions():
    forward = Vector3(1.0, 0.0, 0.0)
    backward = Vector3(-1.0, 0.0, 0.0)
    assert _smooth_heading(forward, backward, 0.5) == backward
    assert _smooth_heading(forward, backward, 0.0) == forward
    assert _smooth_heading(forward, Vector3(0.0, 1.0, 0.0), 5.0) == Vector3(0.0, 1.0, 0.0)
