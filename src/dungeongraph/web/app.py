from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
import uvicorn

from ..config import SynthesisConfig, load_config
from ..errors import ConfigError, DungeonGraphError
from ..evaluation import score_graph
from ..graph import Graph
from ..synthesis import available_strategies, synthesize


class GraphManager:
    def __init__(self, config_path: Path) -> None:
        self._config_path = config_path
        self._config: Optional[SynthesisConfig] = None
        self._current_graph: Optional[Graph] = None

    def get_graph(self, reload: bool = False, seed: Optional[int] = None) -> Graph:
        if seed is not None:
            return synthesize(self._load().with_seed(seed))
        if reload or self._current_graph is None:
            # Re-read the file so edits are picked up on reload.
            self._config = None
            self._current_graph = synthesize(self._load())
        return self._current_graph

    def payload(self, graph: Graph) -> Dict[str, Any]:
        score, metrics = score_graph(graph, pacing=self._load().pacing)
        data = graph.to_dict()
        data["evaluation"] = {"score": score, **metrics.to_dict()}
        return data

    def _load(self) -> SynthesisConfig:
        if self._config is None:
            self._config = load_config(self._config_path)
        return self._config


def create_app(config_path: Path) -> FastAPI:
    manager = GraphManager(config_path)

    app = FastAPI(title="Dungeon Graph Explorer", version="0.1.0")

    @app.get("/api/strategies")
    async def get_strategies() -> JSONResponse:
        return JSONResponse({"strategies": available_strategies()})

    @app.get("/api/graph")
    async def get_graph(reload: Optional[int] = None, seed: Optional[int] = None) -> JSONResponse:
        try:
            graph = manager.get_graph(reload=bool(reload), seed=seed)
            return JSONResponse(manager.payload(graph))
        except FileNotFoundError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except DungeonGraphError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    return app


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Serve synthesized dungeon graphs over HTTP.")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config/default_config.toml"),
        help="Path to the synthesis configuration file.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    args = parser.parse_args(argv)

    config_path = args.config.resolve()
    app = create_app(config_path)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
