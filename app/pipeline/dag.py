from __future__ import annotations

import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable


NodeFn = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass
class Node:
    name: str
    fn: NodeFn
    depends_on: list[str]


class DAG:
    """Runs nodes wave by wave; nodes within a wave run concurrently.

    A wave starts only after every node of the previous wave has returned, so a node
    with dependencies always sees all of their outputs. The first exception raised by
    any node propagates and no later wave runs.
    """

    def __init__(self, nodes: list[Node], max_workers: int = 4) -> None:
        self._nodes = {n.name: n for n in nodes}
        self._waves = self._topological_waves()
        self._max_workers = max(1, max_workers)

    @property
    def waves(self) -> list[list[str]]:
        return [list(w) for w in self._waves]

    def run(self, seed: dict[str, Any]) -> dict[str, Any]:
        context = dict(seed)
        outputs: dict[str, dict[str, Any]] = {}
        node_durations_ms: dict[str, float] = {}
        order: list[str] = []

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            for wave in self._waves:
                futures = {}
                for name in wave:
                    node = self._nodes[name]
                    merged = dict(context)
                    for dep in node.depends_on:
                        merged[dep] = outputs[dep]
                    futures[name] = pool.submit(self._timed, node.fn, merged)

                # Collect in declaration order so outputs are deterministic.
                for name in wave:
                    out, elapsed_ms = futures[name].result()
                    outputs[name] = out
                    context[name] = out
                    node_durations_ms[name] = round(elapsed_ms, 3)
                    order.append(name)

        context["node_outputs"] = outputs
        context["node_durations_ms"] = node_durations_ms
        context["execution_order"] = order
        return context

    @staticmethod
    def _timed(fn: NodeFn, ctx: dict[str, Any]) -> tuple[dict[str, Any], float]:
        t0 = time.perf_counter()
        out = fn(ctx)
        return out, (time.perf_counter() - t0) * 1000

    def _topological_waves(self) -> list[list[str]]:
        indegree = {name: 0 for name in self._nodes}
        adj: dict[str, list[str]] = defaultdict(list)

        for node in self._nodes.values():
            for dep in node.depends_on:
                if dep not in self._nodes:
                    raise ValueError(f"Node '{node.name}' depends on unknown node '{dep}'")
                indegree[node.name] += 1
                adj[dep].append(node.name)

        wave = [name for name, deg in indegree.items() if deg == 0]
        waves: list[list[str]] = []
        seen = 0

        while wave:
            waves.append(wave)
            seen += len(wave)
            nxt: list[str] = []
            for cur in wave:
                for child in adj[cur]:
                    indegree[child] -= 1
                    if indegree[child] == 0:
                        nxt.append(child)
            wave = nxt

        if seen != len(self._nodes):
            raise ValueError("DAG has cycle")
        return waves
