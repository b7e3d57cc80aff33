"""Merging two communities in the greedy agglomerative algorithms.

One call to :func:`merge_communities` takes the best pair from the
max-heap, checks the stopping rule for the active key type and, unless
it stops, folds one community into the other while keeping every
adjacency list, best key and heap entry consistent.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, field
from typing import Sequence

from .adjacency import remove_adjcomm, update_dq_p1, update_dq_p2, update_values
from .core import (
    CULL_THRESHOLD,
    HIGH_VID,
    INFTY,
    MAXHISTORY,
    NO_MAX_KEY,
    NSTDDEV,
    AdjacentCommunity,
    Community,
    HeapError,
    KeyType,
    MaxHeap,
    WeightTotals,
    adjacent_position,
)


@dataclass
class StopHistory:
    """Ring buffer of recent best keys used by the MB stopping rule."""

    values: list[float] = field(default_factory=lambda: [0.0] * MAXHISTORY)
    idx: int = 0
    filled: bool = False
    total: float = 0.0
    total_sq: float = 0.0

    def record(self, max_key: float) -> None:
        """Add a best key, dropping the oldest once the buffer is full."""
        old = self.values[self.idx]
        self.values[self.idx] = max_key
        self.idx = (self.idx + 1) % MAXHISTORY
        if self.filled:
            self.total -= old
            self.total_sq -= old * old
        self.total += max_key
        self.total_sq += max_key * max_key
        if not self.filled and self.idx == 0:
            self.filled = True

    def below_threshold(self, max_key: float) -> bool:
        """True once full and ``max_key`` lies NSTDDEV deviations below the mean."""
        if not self.filled:
            return False
        mean = self.total / MAXHISTORY
        variance = self.total_sq / MAXHISTORY - mean * mean
        if variance < 0:
            return False
        return max_key < mean - NSTDDEV * math.sqrt(variance)


def _weight_of(entry: AdjacentCommunity, totals: WeightTotals) -> float:
    return entry.xij if totals.weighted else entry.lij


def _should_stop(
    keytype: KeyType, max_key: float, max_dq: float, history: StopHistory
) -> bool:
    if keytype == KeyType.CNM:
        return max_dq < 0.0
    if keytype == KeyType.MB:
        if max_dq < 0:
            return True
        if max_key < INFTY:
            history.record(max_key)
            return history.below_threshold(max_key)
        return False
    return max_key < 0.0


def merge_communities(
    communities: Sequence[Community],
    heap: MaxHeap,
    totals: WeightTotals,
    keytype: int,
    history: StopHistory | None = None,
) -> float:
    """Merge the best pair at the top of the heap.

    Returns the modularity change of the chosen pair.  When the stopping
    rule fires, or no merge is possible, nothing is merged and the heap
    keeps its size.
    """
    keytype = KeyType(keytype)
    if history is None:
        history = StopHistory()

    top = heap.top()
    comm1 = top.comm_id
    max_key = top.val
    first = communities[comm1]
    max_key_idx = first.max_key_idx

    if max_key != first.max_key:
        warnings.warn(
            f"merge: comm1: {comm1} heap key {max_key} differs from "
            f"community key {first.max_key} (idx {max_key_idx})",
            RuntimeWarning,
            stacklevel=2,
        )
        return 0.0
    if not 0 <= max_key_idx < first.degree:
        return 0.0

    max_dq = first.adjcomm[max_key_idx].value[KeyType.CNM]
    if _should_stop(keytype, max_key, max_dq, history):
        return max_dq

    comm2 = first.adjcomm[max_key_idx].comm_id
    second = communities[comm2]
    idx2 = second.max_key_idx
    if not 0 <= idx2 < second.degree or second.adjcomm[idx2].comm_id != comm1:
        second.max_key_idx = adjacent_position(second.adjcomm, comm1)

    if heap.position(comm2) >= 0 and first.degree < second.degree:
        frm, to = comm1, comm2
    else:
        frm, to = comm2, comm1

    source = communities[frm]
    target = communities[to]
    from_adj = source.adjcomm
    to_adj = target.adjcomm
    from_deg = len(from_adj)
    to_deg = len(to_adj)
    from_a = source.a
    to_a = target.a

    max_edge_2xij = 0.0
    if keytype == KeyType.LIN:
        if not totals.weighted:
            raise ValueError("the LIN key needs weighted totals")
        max_edge_2xij = 2.0 * first.adjcomm[max_key_idx].xij
        totals.mass -= max_edge_2xij

    to_max_key = NO_MAX_KEY
    to_max_key_idx = -1
    curr_idx = 0

    def consider(entry: AdjacentCommunity) -> None:
        nonlocal to_max_key, to_max_key_idx
        if entry.value[keytype] > to_max_key:
            to_max_key = entry.value[keytype]
            to_max_key_idx = curr_idx

    def keep(i: int, p1: int) -> None:
        entry = to_adj[i]
        entry.value[KeyType.CNM] -= 2 * from_a * communities[p1].a
        update_values(communities, to, i, p1, totals, len(heap) - 1, keytype)
        consider(entry)
        update_dq_p1(
            communities, heap, p1, to, totals,
            entry.value[KeyType.CNM], _weight_of(entry, totals), keytype,
        )

    def add(j: int, p2: int, weight_source: AdjacentCommunity | None) -> None:
        from_entry = from_adj[j]
        entry = AdjacentCommunity(comm_id=p2)
        entry.value[KeyType.CNM] = (
            from_entry.value[KeyType.CNM] - 2 * to_a * communities[p2].a
        )
        if totals.weighted:
            entry.xij = from_entry.xij
        else:
            entry.lij = from_entry.lij
        to_adj.append(entry)
        update_values(communities, to, len(to_adj) - 1, p2, totals, len(heap) - 1, keytype)
        consider(entry)
        if totals.weighted and weight_source is not None:
            weight = weight_source.xij
        else:
            weight = _weight_of(entry, totals)
        update_dq_p2(
            communities, heap, p2, frm, to, totals,
            entry.value[KeyType.CNM], weight, keytype,
        )

    i = j = 0
    while i < to_deg and j < from_deg:
        p1 = to_adj[i].comm_id
        p2 = from_adj[j].comm_id
        if p1 == frm:
            to_adj[i].comm_id = HIGH_VID
            i += 1
        elif p2 == to:
            j += 1
        elif p1 < p2:
            keep(i, p1)
            i += 1
            curr_idx += 1
        elif p1 == p2:
            entry = to_adj[i]
            entry.value[KeyType.CNM] += from_adj[j].value[KeyType.CNM]
            if totals.weighted:
                entry.xij += from_adj[j].xij
            else:
                entry.lij += from_adj[j].lij
            update_values(communities, to, i, p1, totals, len(heap) - 1, keytype)
            consider(entry)
            update_dq_p1(
                communities, heap, p1, to, totals,
                entry.value[KeyType.CNM], _weight_of(entry, totals), keytype,
            )
            remove_adjcomm(communities, heap, p2, frm, keytype)
            i += 1
            j += 1
            curr_idx += 1
        else:
            add(j, p2, to_adj[i])
            j += 1
            curr_idx += 1

    while i < to_deg:
        p1 = to_adj[i].comm_id
        if p1 == frm:
            to_adj[i].comm_id = HIGH_VID
        else:
            keep(i, p1)
            curr_idx += 1
        i += 1

    while j < from_deg:
        p2 = from_adj[j].comm_id
        if p2 != to:
            add(j, p2, None)
            curr_idx += 1
        j += 1

    to_adj.sort(key=lambda entry: entry.comm_id)
    target.a += source.a
    if keytype == KeyType.LIN:
        target.a_lin += source.a_lin
        target.a_lin -= max_edge_2xij / totals.orig_mass
        target.comm_wt += source.comm_wt + max_edge_2xij
    del to_adj[-1]
    target.comm_size += source.comm_size
    source.parent_id = to

    heap.remove(frm)

    if (
        keytype != KeyType.CNM
        and target.degree == 1
        and target.comm_size <= CULL_THRESHOLD
    ):
        to_adj[0].value[keytype] = INFTY
        to_max_key = INFTY
        to_max_key_idx = 0

    target.max_key = to_max_key
    target.max_key_idx = to_max_key_idx

    heap_pos = heap.position(to)
    if heap_pos < 0:
        raise HeapError(f"community {to} is not in the heap after a merge")
    slot = heap.entries[heap_pos]
    old_key, old_key2 = slot.val, slot.val2
    slot.val = to_max_key
    if 0 <= to_max_key_idx < target.degree:
        slot.val2 = to_adj[to_max_key_idx].value[KeyType.CNM]
    if to_max_key > old_key or (
        heap.use2 and to_max_key == old_key and slot.val2 > old_key2
    ):
        heap.sift_up(heap_pos)
    else:
        heap.sift_down(heap_pos)

    return max_dq


def compute_membership(communities: Sequence[Community]) -> tuple[list[int], int]:
    """Label every vertex with its final community.

    Root communities are numbered in index order.  Returns the label
    list and the number of communities.
    """
    membership = [-1] * len(communities)
    count = 0
    for i, community in enumerate(communities):
        if community.parent_id == -1:
            membership[i] = count
            count += 1
    for i, community in enumerate(communities):
        if community.parent_id != -1:
            root = community.parent_id
            while communities[root].parent_id != -1:
                root = communities[root].parent_id
            membership[i] = membership[root]
    return membership, count