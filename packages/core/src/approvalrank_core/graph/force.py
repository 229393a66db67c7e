"""Approval graph and its force-graph document.

An edge ``requester -> reviewer`` means the reviewer approved one of the
requester's pull requests; its frequency counts how often. PageRank over
these edges therefore ranks people whose approvals are sought by people
whose approvals are sought.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from approvalrank_core.graph.pagerank import DAMPING, TOLERANCE, WeightedDigraph, pagerank
from approvalrank_core.models import GHOST_LOGIN, PullAggregate

logger = logging.getLogger(__name__)

MAX_SCORE = 10.0


@dataclass
class ForceLink:
    source: str
    target: str
    value: int

    def to_dict(self) -> dict:
        return {"source": self.source, "target": self.target, "value": self.value}


@dataclass
class ForceNode:
    id: str
    score: float
    neighbors: list[str] = field(default_factory=list)
    links: list[ForceLink] = field(default_factory=list)
    group: str = "1"
    rank: float = 0.0  # raw PageRank, not part of the document

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "score": self.score,
            "neighbors": list(self.neighbors),
            "links": [link.to_dict() for link in self.links],
            "group": self.group,
        }


@dataclass
class ForceGraph:
    nodes: list[ForceNode] = field(default_factory=list)
    links: list[ForceLink] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "links": [link.to_dict() for link in self.links],
        }


def _countable(login: str) -> bool:
    return bool(login) and login != GHOST_LOGIN


def approval_frequencies(aggregates: list[PullAggregate]) -> tuple[Counter, int]:
    """Count approvals per (requester, reviewer) pair, and in total.

    Only reviews in the APPROVED state count. Empty logins (deleted users
    come back with no user object) and the ``ghost`` placeholder are skipped.
    """
    frequencies: Counter = Counter()
    total = 0
    for aggregate in aggregates:
        requester = aggregate.pull.author
        for review in aggregate.reviews:
            if not review.approved:
                continue
            if not _countable(requester) or not _countable(review.reviewer):
                continue
            frequencies[(requester, review.reviewer)] += 1
            total += 1
    return frequencies, total


def normalize_scores(ranks: dict[str, float]) -> dict[str, float]:
    """Min-max scale raw scores onto [0, 10]. Equal scores all map to 0."""
    if not ranks:
        return {}
    lowest = min(ranks.values())
    highest = max(ranks.values())
    spread = highest - lowest
    if spread <= 0:
        return dict.fromkeys(ranks, 0.0)
    return {node: MAX_SCORE * (rank - lowest) / spread for node, rank in ranks.items()}


def visual_group(rank: float, max_rank: float) -> int:
    """Bucket a raw score by how many doublings it takes to reach the maximum.

    The top scorer is group 1; every halving of the score adds a group. This
    is a colouring heuristic for the visualization, not a ranking.
    """
    if rank <= 0:
        return 1
    group = 1
    while rank < max_rank:
        rank *= 2
        group += 1
    return group


def build_graph(
    aggregates: list[PullAggregate],
    damping: float = DAMPING,
    tol: float = TOLERANCE,
) -> ForceGraph:
    """Build the ranked force-graph document for a set of pull requests.

    A node's ``links`` are its outgoing edges only, but its ``neighbors``
    are everyone joined to it by an edge in either direction: a reviewer lists
    the authors they approved as well as the reviewers they asked.
    """
    frequencies, total = approval_frequencies(aggregates)
    logger.info("Building force graph out of %d pull request(s), %d approval(s)", len(aggregates), total)
    if not frequencies:
        return ForceGraph()

    graph = WeightedDigraph()
    for (requester, reviewer), frequency in frequencies.items():
        graph.set_edge(requester, reviewer, frequency / total * 100)

    ranks = pagerank(graph, damping=damping, tol=tol)
    scores = normalize_scores(ranks)
    max_rank = max(ranks.values())

    outgoing: dict[str, list[ForceLink]] = {node: [] for node in ranks}
    neighbors: dict[str, set[str]] = {node: set() for node in ranks}
    links = []
    for (requester, reviewer), frequency in sorted(frequencies.items()):
        link = ForceLink(source=requester, target=reviewer, value=frequency)
        links.append(link)
        outgoing[requester].append(link)
        neighbors[requester].add(reviewer)
        neighbors[reviewer].add(requester)

    nodes = [
        ForceNode(
            id=node,
            score=scores[node],
            neighbors=sorted(neighbors[node]),
            links=outgoing[node],
            group=str(visual_group(rank, max_rank)),
            rank=rank,
        )
        for node, rank in sorted(ranks.items(), key=lambda item: (-item[1], item[0]))
    ]
    return ForceGraph(nodes=nodes, links=links)
