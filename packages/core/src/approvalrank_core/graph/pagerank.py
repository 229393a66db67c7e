"""Sparse weighted digraph and power-iteration PageRank."""

from __future__ import annotations

import logging
from typing import Iterator

logger = logging.getLogger(__name__)

DAMPING = 0.85
TOLERANCE = 1e-8
MAX_ITERATIONS = 10_000


class WeightedDigraph:
    """Directed graph stored as an adjacency map ``node -> {successor: weight}``.

    Nodes keep insertion order.
    """

    def __init__(self):
        self._succ: dict[str, dict[str, float]] = {}

    def add_node(self, node: str) -> None:
        self._succ.setdefault(node, {})

    def set_edge(self, source: str, target: str, weight: float) -> None:
        if weight < 0:
            raise ValueError(f"negative weight on {source!r} -> {target!r}: {weight}")
        self.add_node(source)
        self.add_node(target)
        self._succ[source][target] = weight

    def nodes(self) -> list[str]:
        return list(self._succ)

    def successors(self, node: str) -> dict[str, float]:
        return self._succ[node]

    def weight(self, source: str, target: str) -> float:
        return self._succ[source][target]

    def edges(self) -> Iterator[tuple[str, str, float]]:
        for source, targets in self._succ.items():
            for target, weight in targets.items():
                yield source, target, weight

    def __contains__(self, node: str) -> bool:
        return node in self._succ

    def __len__(self) -> int:
        return len(self._succ)


def pagerank(
    graph: WeightedDigraph,
    damping: float = DAMPING,
    tol: float = TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> dict[str, float]:
    """Return the weighted PageRank of every node; the scores sum to 1.

    Each node passes ``damping`` of its rank to its successors in proportion
    to edge weight. The remaining ``1 - damping`` teleports uniformly to all
    nodes, as does all rank held by nodes without outgoing weight. Iterates
    until the L1 distance between successive rank vectors is below ``tol``.
    """
    nodes = graph.nodes()
    n = len(nodes)
    if n == 0:
        return {}

    out_weight = {node: sum(graph.successors(node).values()) for node in nodes}
    rank = dict.fromkeys(nodes, 1.0 / n)

    for iteration in range(1, max_iterations + 1):
        dangling = sum(rank[node] for node in nodes if out_weight[node] <= 0)
        base = (1.0 - damping) / n + damping * dangling / n

        new_rank = dict.fromkeys(nodes, base)
        for node in nodes:
            total = out_weight[node]
            if total <= 0:
                continue
            share = damping * rank[node] / total
            for target, weight in graph.successors(node).items():
                new_rank[target] += share * weight

        delta = sum(abs(new_rank[node] - rank[node]) for node in nodes)
        rank = new_rank
        if delta < tol:
            logger.debug("PageRank converged after %d iteration(s)", iteration)
            return rank

    logger.warning("PageRank did not converge within %d iterations", max_iterations)
    return rank
