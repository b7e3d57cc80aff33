"""Maintenance of community adjacency lists and their merge scores.

These routines keep each community's sorted list of neighbouring
communities, its best key and the max-heap consistent while a merge
is being carried out.
"""

from __future__ import annotations

import math
import warnings
from typing import Sequence

from .core import (
    NO_MAX_KEY,
    AdjacentCommunity,
    Community,
    KeyType,
    MaxHeap,
    WeightTotals,
    adjacent_position,
)

_TINY_VARIANCE = 0.000001


def _fdiv(a: float, b: float) -> float:
    """Floating-point division that yields inf/nan instead of raising."""
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _rescan(adjcomm: Sequence[AdjacentCommunity], keytype: int) -> tuple[float, int]:
    """Largest key over the adjacencies, first occurrence wins."""
    best, best_idx = NO_MAX_KEY, -1
    for i, entry in enumerate(adjcomm):
        if entry.value[keytype] > best:
            best, best_idx = entry.value[keytype], i
    return best, best_idx


def _assign(
    entry: AdjacentCommunity, totals: WeightTotals, new_dq: float, new_weight: float
) -> None:
    entry.value[KeyType.CNM] = new_dq
    if totals.weighted:
        entry.xij = float(new_weight)
    else:
        entry.lij = int(new_weight)


def _reposition(
    adjcomm: list[AdjacentCommunity], pos: int, new_comm_id: int, moving_up: bool
) -> int:
    """Bubble the entry at ``pos`` to its sorted place; return its new index."""
    i = pos
    if moving_up:
        while i < len(adjcomm) - 1 and new_comm_id > adjcomm[i + 1].comm_id:
            adjcomm[i], adjcomm[i + 1] = adjcomm[i + 1], adjcomm[i]
            i += 1
    else:
        while i > 0 and new_comm_id < adjcomm[i - 1].comm_id:
            adjcomm[i], adjcomm[i - 1] = adjcomm[i - 1], adjcomm[i]
            i -= 1
    return i


def _secondary(community: Community) -> float:
    idx = community.max_key_idx
    if 0 <= idx < len(community.adjcomm):
        return community.adjcomm[idx].value[KeyType.CNM]
    return 0.0


def _refresh_heap(
    heap: MaxHeap,
    comm_id: int,
    community: Community,
    old_key: float,
    old_key2: float,
    up_only: bool = False,
) -> None:
    """Write the community's best key into the heap and restore order."""
    heap_pos = heap.position(comm_id)
    if heap_pos < 0:
        return
    entry = heap.entries[heap_pos]
    entry.val = community.max_key
    if heap.use2:
        entry.val2 = _secondary(community)
    if up_only:
        heap.sift_up(heap_pos)
    elif entry.val > old_key or (
        heap.use2 and entry.val == old_key and entry.val2 > old_key2
    ):
        heap.sift_up(heap_pos)
    else:
        heap.sift_down(heap_pos)


def update_values(
    communities: Sequence[Community],
    comm1: int,
    idx: int,
    comm2: int,
    totals: WeightTotals,
    n: int,
    keytype: int,
) -> None:
    """Recompute the non-CNM keys of adjacency ``idx`` (comm1 -> comm2)."""
    keytype = KeyType(keytype)
    if keytype == KeyType.CNM:
        return

    first = communities[comm1]
    entry = first.adjcomm[idx]
    if entry.comm_id != comm2:
        raise ValueError(
            f"adjacency {idx} of community {comm1} is {entry.comm_id}, not {comm2}"
        )
    second = communities[comm2]

    if keytype in (KeyType.MB, KeyType.RAT, KeyType.MBRAT):
        rij = 0.5 * totals.scale * entry.value[KeyType.CNM]
        lhat = (entry.xij if totals.weighted else float(entry.lij)) - rij
        if lhat < 0:
            raise ValueError(f"variance lij - Rij ({lhat}) < 0")
        lhat = math.sqrt(lhat)
        if lhat < _TINY_VARIANCE:
            warnings.warn("update values lhat < 0.000001", RuntimeWarning, stacklevel=2)
        entry.value[KeyType.MB] = _fdiv(rij, lhat)

        if first.comm_size < second.comm_size:
            cratio = first.comm_size / second.comm_size
        else:
            cratio = second.comm_size / first.comm_size
        entry.value[KeyType.RAT] = entry.value[KeyType.CNM] * cratio
        entry.value[KeyType.MBRAT] = entry.value[KeyType.MB] * cratio
    elif keytype == KeyType.LIN:
        entry.value[KeyType.LIN] = 2.0 * (
            entry.xij
            - _fdiv(totals.orig_mass * (first.a_lin + second.a_lin), float(n))
            + _fdiv(totals.mass, float(n * n))
        )


def update_dq_p1(
    communities: Sequence[Community],
    heap: MaxHeap,
    comm1: int,
    comm2: int,
    totals: WeightTotals,
    new_dq: float,
    new_weight: float,
    keytype: int,
) -> None:
    """Set the dq and weight of adjacency comm1 -> comm2 and refresh keys."""
    keytype = KeyType(keytype)
    if heap.position(comm1) < 0:
        return

    community = communities[comm1]
    adjcomm = community.adjcomm
    max_key_idx = community.max_key_idx
    if max_key_idx < 0:
        raise ValueError(f"community {comm1} has no best adjacency")
    old_key = community.max_key
    old_key2 = adjcomm[max_key_idx].value[KeyType.CNM]

    if adjcomm[max_key_idx].comm_id == comm2:
        entry = adjcomm[max_key_idx]
        _assign(entry, totals, new_dq, new_weight)
        update_values(communities, comm1, max_key_idx, comm2, totals, len(heap) - 1, keytype)
        if entry.value[keytype] > old_key:
            community.max_key = entry.value[keytype]
        else:
            community.max_key, community.max_key_idx = _rescan(adjcomm, keytype)
        _refresh_heap(heap, comm1, community, old_key, old_key2)
    else:
        pos = adjacent_position(adjcomm, comm2)
        entry = adjcomm[pos]
        _assign(entry, totals, new_dq, new_weight)
        update_values(communities, comm1, pos, comm2, totals, len(heap) - 1, keytype)
        if entry.value[keytype] > old_key:
            community.max_key = entry.value[keytype]
            community.max_key_idx = pos
            _refresh_heap(heap, comm1, community, old_key, old_key2, up_only=True)


def update_dq_p2(
    communities: Sequence[Community],
    heap: MaxHeap,
    comm1: int,
    comm2: int,
    new_comm_id: int,
    totals: WeightTotals,
    new_dq: float,
    new_weight: float,
    keytype: int,
) -> None:
    """Redirect adjacency comm1 -> comm2 to ``new_comm_id`` with a new dq."""
    keytype = KeyType(keytype)
    community = communities[comm1]
    adjcomm = community.adjcomm
    max_key_idx = community.max_key_idx
    if max_key_idx < 0:
        raise ValueError(f"community {comm1} has no best adjacency")
    old_key = community.max_key
    old_key2 = adjcomm[max_key_idx].value[KeyType.CNM]
    moving_up = new_comm_id > comm2

    if adjcomm[max_key_idx].comm_id == comm2:
        entry = adjcomm[max_key_idx]
        _assign(entry, totals, new_dq, new_weight)
        entry.comm_id = new_comm_id
        update_values(
            communities, comm1, max_key_idx, new_comm_id, totals, len(heap) - 1, keytype
        )
        if entry.value[keytype] > old_key:
            community.max_key = entry.value[keytype]
            community.max_key_idx = _reposition(adjcomm, max_key_idx, new_comm_id, moving_up)
        else:
            _reposition(adjcomm, max_key_idx, new_comm_id, moving_up)
            community.max_key, community.max_key_idx = _rescan(adjcomm, keytype)
        _refresh_heap(heap, comm1, community, old_key, old_key2)
    else:
        pos = adjacent_position(adjcomm, comm2)
        entry = adjcomm[pos]
        _assign(entry, totals, new_dq, new_weight)
        entry.comm_id = new_comm_id
        i = _reposition(adjcomm, pos, new_comm_id, moving_up)
        update_values(communities, comm1, i, new_comm_id, totals, len(heap) - 1, keytype)

        if adjcomm[pos].value[keytype] > old_key:
            community.max_key = adjcomm[pos].value[keytype]
            community.max_key_idx = i
            _refresh_heap(heap, comm1, community, old_key, old_key2, up_only=True)
        else:
            idx = community.max_key_idx
            if moving_up:
                if pos < idx <= i:
                    community.max_key_idx = idx - 1
            elif i <= idx < pos:
                community.max_key_idx = idx + 1


def remove_adjcomm(
    communities: Sequence[Community],
    heap: MaxHeap,
    comm1: int,
    comm2: int,
    keytype: int,
) -> None:
    """Delete the adjacency comm1 -> comm2 and keep the best key current."""
    keytype = KeyType(keytype)
    community = communities[comm1]
    adjcomm = community.adjcomm
    max_key_idx = community.max_key_idx
    if max_key_idx < 0:
        raise ValueError(f"community {comm1} has no best adjacency")
    old_key = community.max_key
    old_key2 = adjcomm[max_key_idx].value[KeyType.CNM]

    if adjcomm[max_key_idx].comm_id == comm2:
        pos = next(
            (i for i, entry in enumerate(adjcomm) if entry.comm_id == comm2),
            len(adjcomm) - 1,
        )
        del adjcomm[pos]
        community.max_key, community.max_key_idx = _rescan(adjcomm, keytype)
        _refresh_heap(heap, comm1, community, old_key, old_key2)
    else:
        pos = adjacent_position(adjcomm, comm2)
        if max_key_idx > pos:
            community.max_key_idx -= 1
        del adjcomm[pos]


def dq_stats(
    communities: Sequence[Community], heap: MaxHeap, keytype: int
) -> tuple[float, float, int]:
    """Mean, standard deviation and count of the keys of the first communities.

    The first ``len(heap)`` communities are inspected.  With no
    adjacencies the mean and deviation are NaN.
    """
    keytype = KeyType(keytype)
    count = 0
    sumx = 0.0
    sumx2 = 0.0
    for community in communities[: len(heap)]:
        for entry in community.adjcomm:
            x = entry.value[keytype]
            sumx += x
            sumx2 += x * x
            count += 1
    if count == 0:
        return math.nan, math.nan, 0
    mean = sumx / count
    variance = sumx2 / count - mean * mean
    stddev = math.sqrt(variance) if variance >= 0 else math.nan
    return mean, stddev, count