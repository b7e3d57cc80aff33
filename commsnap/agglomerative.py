"""Greedy agglomerative community detection driven by a max-heap.

Every vertex starts as a singleton community.  The pair with the best
key is merged repeatedly until the stopping rule of the chosen key type
fires or no pair is left.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from .core import (
    INFTY,
    NO_MAX_KEY,
    AdjacentCommunity,
    Community,
    Graph,
    KeyType,
    MaxHeap,
    WeightTotals,
)
from .merge import StopHistory, compute_membership, merge_communities


@dataclass
class CommunityResult:
    """Final labelling of the vertices and the modularity reached."""

    membership: list[int]
    num_communities: int
    modularity: float


def _unique_neighbours(
    vertex: int, entries: list[AdjacentCommunity]
) -> list[AdjacentCommunity]:
    """Sort by id, drop self-loops and keep the first of each duplicate."""
    entries.sort(key=lambda entry: entry.comm_id)
    kept: list[AdjacentCommunity] = []
    for entry in entries:
        if entry.comm_id == vertex:
            continue
        if kept and kept[-1].comm_id == entry.comm_id:
            continue
        kept.append(entry)
    return kept


@dataclass
class AgglomerationState:
    """Communities, heap and totals shared by the agglomerative algorithms."""

    communities: list[Community]
    totals: WeightTotals
    keytype: KeyType
    heap: MaxHeap
    history: StopHistory = field(default_factory=StopHistory)

    @classmethod
    def build(cls, graph: Graph, keytype: int) -> "AgglomerationState":
        """Create singleton communities with their initial merge keys."""
        keytype = KeyType(keytype)
        totals = WeightTotals(weighted=graph.weighted)
        communities: list[Community] = []
        num_uniq_edges = 0
        total_weight = 0.0

        for i in range(graph.n):
            community = Community()
            entries: list[AdjacentCommunity] = []
            for e in graph.edge_range(i):
                entry = AdjacentCommunity(comm_id=graph.end_v[e])
                if totals.weighted:
                    w = float(graph.weight(e))
                    entry.xij = w
                    total_weight += w
                    community.a += w
                else:
                    entry.lij = 1
                entries.append(entry)
            community.adjcomm = _unique_neighbours(i, entries)
            if not totals.weighted:
                community.a = float(community.degree)
            num_uniq_edges += community.degree
            communities.append(community)

        if keytype == KeyType.LIN and not totals.weighted:
            totals.weighted = True
            total_weight = float(num_uniq_edges)
            for community in communities:
                for entry in community.adjcomm:
                    entry.xij = 1.0

        if totals.weighted:
            if total_weight == 0:
                raise ValueError("graph has no edge weight")
            totals.mass = total_weight
            totals.orig_mass = total_weight
            m_inv = 1.0 / totals.mass
        else:
            if num_uniq_edges == 0:
                raise ValueError("graph has no edges besides self-loops")
            totals.count = num_uniq_edges
            m_inv = 1.0 / totals.count

        for community in communities:
            community.a *= m_inv

        n_nz = 0
        if keytype == KeyType.LIN:
            for community in communities:
                community.a_lin = community.a
                if community.a > 0:
                    n_nz += 1

        for i, community in enumerate(communities):
            degree_i = community.degree
            for entry in community.adjcomm:
                other = communities[entry.comm_id]
                if totals.weighted:
                    entry.value[KeyType.CNM] = 2.0 * (
                        entry.xij * m_inv - community.a * other.a
                    )
                else:
                    entry.value[KeyType.CNM] = 2.0 * (
                        m_inv - (degree_i * m_inv) * (other.degree * m_inv)
                    )

            best, best_idx = NO_MAX_KEY, -1
            for j, entry in enumerate(community.adjcomm):
                other = communities[entry.comm_id]
                if keytype in (KeyType.MB, KeyType.RAT, KeyType.MBRAT):
                    rij = 0.5 * totals.scale * entry.value[KeyType.CNM]
                    limit = entry.xij if totals.weighted else 1.0
                    if not rij < limit:
                        raise ValueError(
                            f"expected edge count {rij} of pair ({i}, {entry.comm_id}) "
                            f"is not below its weight {limit}"
                        )
                    entry.value[KeyType.MB] = rij / math.sqrt(limit - rij)

                if keytype != KeyType.CNM:
                    entry.value[KeyType.RAT] = entry.value[KeyType.CNM]
                    entry.value[KeyType.MBRAT] = entry.value[KeyType.MB]
                    if keytype == KeyType.LIN:
                        entry.value[KeyType.LIN] = 2.0 * (
                            entry.xij
                            - totals.mass * (community.a + other.a) / n_nz
                            + totals.mass / (n_nz * n_nz)
                        )
                    if degree_i == 1 or other.degree == 1:
                        entry.value[keytype] = INFTY

                if entry.value[keytype] > best:
                    best, best_idx = entry.value[keytype], j
            community.max_key = best
            community.max_key_idx = best_idx

        return cls(
            communities=communities,
            totals=totals,
            keytype=keytype,
            heap=MaxHeap(use2=keytype == KeyType.LIN),
        )

    def build_heap(self, members: Iterable[int]) -> None:
        """Put the given communities in the heap and reset the stop history.

        Communities without adjacencies are left out.
        """
        heap = MaxHeap(use2=self.keytype == KeyType.LIN)
        for i in members:
            community = self.communities[i]
            if community.max_key == NO_MAX_KEY:
                continue
            best = community.adjcomm[community.max_key_idx]
            heap.push(
                i,
                best.value[self.keytype],
                best.value[KeyType.CNM] if heap.use2 else 0.0,
            )
        heap.check()
        self.heap = heap
        self.history = StopHistory()

    def merge(self) -> float:
        """Merge the best pair; returns its modularity change."""
        return merge_communities(
            self.communities, self.heap, self.totals, self.keytype, self.history
        )

    def initial_modularity(self) -> float:
        """Modularity of the all-singleton partition."""
        return -sum(community.a * community.a for community in self.communities)


def modularity_greedy_agglomerative(graph: Graph, alg_type: str) -> CommunityResult:
    """Detect communities by greedy agglomeration.

    ``alg_type`` is one of ``CNM``, ``MB``, ``RAT``, ``MBRAT`` or ``LIN``.
    """
    keytype = KeyType.from_name(alg_type)
    state = AgglomerationState.build(graph, keytype)
    mod_val = state.initial_modularity()
    state.build_heap(range(graph.n))

    total_joins = len(state.heap) - 1
    joins = 0
    while joins < total_joins:
        n_before = len(state.heap)
        gain = state.merge()
        joins += 1
        if len(state.heap) == n_before:
            break
        mod_val += gain

    membership, count = compute_membership(state.communities)
    return CommunityResult(membership=membership, num_communities=count, modularity=mod_val)