from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple

from .config import SEED_MASK, SynthesisConfig, load_config
from .errors import DungeonGraphError
from .evaluation import GraphMetrics, score_graph
from .graph import Graph
from .rng import DeterministicRNG
from .synthesis import available_strategies, synthesize

logger = logging.getLogger(__name__)

CANDIDATE_STAGE = "candidate_seeds"


def _render_text(graph: Graph, metrics: GraphMetrics) -> str:
    lines = [
        f"Dungeon graph seed={graph.seed} strategy={graph.metadata.get('strategy', '?')} "
        f"attempts={graph.metadata.get('attempts', '?')}",
        f"{metrics.room_count} rooms, {metrics.connector_count} connectors, "
        f"critical path {metrics.critical_path_length}, branching {metrics.branching_factor:.2f}",
    ]
    for room_id in graph.sorted_room_ids():
        room = graph.rooms[room_id]
        biome = room.tags.get("biome", "-")
        lines.append("")
        lines.append(f"{room} biome={biome}")
        for connector in graph.incident_connectors(room_id):
            other = connector.to_id if connector.from_id == room_id else connector.from_id
            arrow = "<->" if connector.bidirectional else ("->" if connector.from_id == room_id else "<-")
            gate = f" requires {connector.gate.type}:{connector.gate.value}" if connector.gate else ""
            lines.append(f" - {arrow} {other} ({connector.type.value}){gate}")
        for capability in room.provides:
            lines.append(f" * provides {capability.type}:{capability.value}")
    return "\n".join(lines)


def _select_best_graph(config: SynthesisConfig, candidate_count: int) -> Tuple[Graph, float, GraphMetrics]:
    config = config.resolve_seed()
    if candidate_count <= 1:
        graph = synthesize(config)
        score, metrics = score_graph(graph, pacing=config.pacing)
        return graph, score, metrics

    seeds = DeterministicRNG.for_stage(config.seed, CANDIDATE_STAGE)
    best: Optional[Tuple[Graph, float, GraphMetrics]] = None
    for _ in range(candidate_count):
        graph = synthesize(config.with_seed(seeds.int_range(1, SEED_MASK)))
        score, metrics = score_graph(graph, pacing=config.pacing)
        logger.debug("Candidate seed=%d scored %.3f", graph.seed, score)
        if best is None or score > best[1]:
            best = (graph, score, metrics)
    if best is None:
        raise RuntimeError("Failed to synthesize any graph candidates.")
    return best


def build_graph(
    config_path: Path,
    seed: Optional[int] = None,
    strategy: Optional[str] = None,
    candidate_count: int = 1,
) -> Tuple[Graph, float, GraphMetrics]:
    config = load_config(config_path)
    if seed is not None:
        config = config.with_seed(seed)
    if strategy is not None:
        config = replace(config, strategy=strategy)
    return _select_best_graph(config, candidate_count)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Synthesize an abstract dungeon graph.")
    parser.add_argument("--config", type=Path, default=Path("config/default_config.toml"),
                        help="Path to config file.")
    parser.add_argument("--seed", type=int, default=None,
                        help="Override the master seed from the config (0 draws one from the clock).")
    parser.add_argument("--strategy", choices=available_strategies(), default=None,
                        help="Override the synthesis strategy from the config.")
    parser.add_argument("--format", choices=("json", "text"), default="json",
                        help="Choose the output format.")
    parser.add_argument("--candidates", type=int, default=1,
                        help="Number of graphs to synthesize before keeping the best scored one.")
    parser.add_argument("--verbose", action="store_true", help="Log synthesis progress to stderr.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        graph, score, metrics = build_graph(args.config, args.seed, args.strategy, args.candidates)
    except (FileNotFoundError, DungeonGraphError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.format == "json":
        payload = graph.to_dict()
        payload["evaluation"] = {"score": score, **metrics.to_dict()}
        print(json.dumps(payload, indent=2))
    else:
        print(_render_text(graph, metrics))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
