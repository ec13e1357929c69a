import asyncio
import json

import pytest

from swarmlab.app.server import SimulationController
from swarmlab.sim.core.config import PopulationConfig, SimulationConfig


def test_snapshot_queue_ack_cleanup() -> None:
    controller = SimulationController(SimulationConfig())

    async def exercise() -> None:
        controller.tick = 1
        await controller._broadcast_snapshot()
        controller.tick = 2
        await controller._broadcast_snapshot()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]

    asyncio.run(exercise())


def test_snapshot_payload_shape() -> None:
    controller = SimulationController(SimulationConfig(populations=[PopulationConfig(count=3)]))
    queued = controller._serialize_snapshot()
    payload = json.loads(queued.payload)
    assert payload["type"] == "snapshot"
    assert len(payload["payload"]["entities"]) == 3
    assert payload["payload"]["species"][0]["name"] == "boid"
    assert payload["payload"]["metadata"]["config_version"] == "v1"


def test_set_max_speed_updates_shared_species() -> None:
    controller = SimulationController(SimulationConfig())

    async def exercise() -> None:
        await controller.set_max_speed("boid", 1.5)
        with pytest.raises(KeyError):
            await controller.set_max_speed("ghost", 1.0)

    asyncio.run(exercise())
    assert controller.swarm.registry.get("boid").max_speed == pytest.approx(1.5)
    assert all(entity.species.max_speed == pytest.approx(1.5) for entity in controller.swarm.entities)


def test_snapshot_queue_is_bounded_without_acks() -> None:
    controller = SimulationController(SimulationConfig(populations=[PopulationConfig(count=2)]), max_queued_snapshots=16)

    async def exercise() -> None:
        for tick in range(500):
            controller.tick = tick
            await controller._broadcast_snapshot()

    asyncio.run(exercise())
    ticks = [item.tick for item in controller._snapshot_queue]
    assert len(ticks) == 16
    assert ticks == list(range(484, 500))
