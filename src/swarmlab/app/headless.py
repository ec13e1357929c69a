from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.swarm import Swarm
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_BASIC_HEADER = [
    "tick",
    "population",
    "avg_speed",
    "max_speed",
    "rule_evaluations",
    "unruled",
    "tick_ms",
]

_DETAILED_HEADER = _BASIC_HEADER + [
    "rule_evaluations_per_entity",
    "tick_ms_per_entity",
    "centroid_x",
    "centroid_y",
    "centroid_z",
    "spread",
    "polarization",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        f"{metrics.average_speed:.4f}",
        f"{metrics.max_speed:.4f}",
        metrics.rule_evaluations,
        metrics.unruled,
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(swarm: Swarm, metrics: TickMetrics, tick_ms: float) -> list[object]:
    row = _format_basic_row(metrics, tick_ms)
    population = metrics.population
    if population <= 0:
        return row + [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]

    cx = cy = cz = 0.0
    hx = hy = hz = 0.0
    for entity in swarm.entities:
        cx += entity.position.x
        cy += entity.position.y
        cz += entity.position.z
        speed = entity.velocity.length()
        if speed > 1e-9:
            hx += entity.velocity.x / speed
            hy += entity.velocity.y / speed
            hz += entity.velocity.z / speed
    inv = 1.0 / population
    cx *= inv
    cy *= inv
    cz *= inv
    spread = 0.0
    for entity in swarm.entities:
        dx = entity.position.x - cx
        dy = entity.position.y - cy
        dz = entity.position.z - cz
        spread += math.sqrt(dx * dx + dy * dy + dz * dz)
    spread *= inv
    # 1.0 when every entity heads the same way, ~0 for random headings
    polarization = math.sqrt(hx * hx + hy * hy + hz * hz) * inv

    return row + [
        f"{metrics.rule_evaluations * inv:.4f}",
        f"{tick_ms * inv:.4f}",
        f"{cx:.4f}",
        f"{cy:.4f}",
        f"{cz:.4f}",
        f"{spread:.4f}",
        f"{polarization:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    config_path: Optional[Path] = None,
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
) -> Swarm:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    swarm = Swarm(config)

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    speed_series: list[float] = []
    report_every = max(1, steps // 10)
    try:
        for tick in range(steps):
            metrics = swarm.step(tick)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            tick_ms_series.append(tick_ms)
            speed_series.append(metrics.average_speed)
            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(swarm, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
            if (tick + 1) % report_every == 0:
                logger.info(
                    "tick %d/%d population=%d avg_speed=%.3f",
                    tick + 1,
                    steps,
                    metrics.population,
                    metrics.average_speed,
                )
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        summary = {
            "steps": steps,
            "seed": config.seed,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "population": len(swarm.entities),
            "species": swarm.registry.names(),
            "tick_ms": _summary_stats(tick_ms_series),
            "avg_speed": _summary_stats(speed_series),
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return swarm


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless swarm simulation")
    parser.add_argument("--steps", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML swarm configuration")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        config_path=args.config,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
    )


if __name__ == "__main__":
    main()
