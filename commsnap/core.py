"""Graph storage, key types, community records and the indexed max-heap.

These are the shared building blocks of the greedy agglomerative
community detection algorithms.
"""

from __future__ import annotations

import sys
from bisect import bisect_left
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, Sequence

INFTY = sys.float_info.max
NO_MAX_KEY = -INFTY
MAXHISTORY = 20
NSTDDEV = 1.5
CULL_THRESHOLD = 3
HIGH_VID = 1 << 30
NUM_KEY_TYPES = 5


class HeapError(Exception):
    """Raised when the max-heap is empty or its ordering is violated."""


@dataclass
class Graph:
    """A graph in compressed sparse row form.

    ``offsets[v]:offsets[v + 1]`` are the edge slots of vertex ``v``;
    ``end_v`` holds the far endpoint of each slot and ``weights``, when
    present, the weight of each slot.  Undirected edges occupy two slots.
    """

    n: int
    offsets: list[int]
    end_v: list[int]
    weights: list[float] | None = None
    undirected: bool = True

    @classmethod
    def from_edges(
        cls,
        n: int,
        edges: Iterable[tuple[int, int]],
        weights: Sequence[float] | None = None,
        undirected: bool = True,
    ) -> "Graph":
        """Build a graph on ``n`` vertices from an edge list."""
        if n < 0:
            raise ValueError(f"vertex count must be non-negative, got {n}")
        edge_list = list(edges)
        if weights is not None and len(weights) != len(edge_list):
            raise ValueError(
                f"{len(weights)} weights given for {len(edge_list)} edges"
            )
        adjacency: list[list[tuple[int, float]]] = [[] for _ in range(n)]
        for k, (u, v) in enumerate(edge_list):
            for x in (u, v):
                if not 0 <= x < n:
                    raise ValueError(f"vertex {x} out of range for {n} vertices")
            w = 1.0 if weights is None else float(weights[k])
            adjacency[u].append((v, w))
            if undirected:
                adjacency[v].append((u, w))
        offsets = [0]
        end_v: list[int] = []
        slot_weights: list[float] = []
        for slots in adjacency:
            for v, w in slots:
                end_v.append(v)
                slot_weights.append(w)
            offsets.append(len(end_v))
        return cls(
            n=n,
            offsets=offsets,
            end_v=end_v,
            weights=slot_weights if weights is not None else None,
            undirected=undirected,
        )

    @property
    def m(self) -> int:
        """Number of edge slots (twice the edge count when undirected)."""
        return len(self.end_v)

    @property
    def weighted(self) -> bool:
        return self.weights is not None

    def degree(self, v: int) -> int:
        return self.offsets[v + 1] - self.offsets[v]

    def neighbors(self, v: int) -> list[int]:
        return self.end_v[self.offsets[v] : self.offsets[v + 1]]

    def edge_range(self, v: int) -> range:
        return range(self.offsets[v], self.offsets[v + 1])

    def weight(self, e: int) -> float:
        """Weight of edge slot ``e``; 1.0 for unweighted graphs."""
        if self.weights is None:
            if not 0 <= e < len(self.end_v):
                raise IndexError(f"edge slot {e} out of range")
            return 1.0
        return self.weights[e]


class KeyType(IntEnum):
    """Which score of an adjacency drives the heap."""

    CNM = 0
    MB = 1
    RAT = 2
    MBRAT = 3
    LIN = 4

    @classmethod
    def from_name(cls, name: str) -> "KeyType":
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown algorithm: {name}") from None


@dataclass
class WeightTotals:
    """Total edge count (unweighted) or total edge weight (weighted)."""

    weighted: bool = False
    count: int = 0
    mass: float = 0.0
    orig_mass: float = 0.0

    @property
    def scale(self) -> float:
        return self.mass if self.weighted else float(self.count)


@dataclass
class AdjacentCommunity:
    """One entry in a community's sorted list of neighbouring communities.

    ``value`` holds the candidate heap keys indexed by :class:`KeyType`.
    """

    comm_id: int
    lij: int = 0
    xij: float = 0.0
    value: list[float] = field(default_factory=lambda: [0.0] * NUM_KEY_TYPES)


@dataclass
class Community:
    """A community together with its adjacent communities."""

    adjcomm: list[AdjacentCommunity] = field(default_factory=list)
    max_key_idx: int = -1
    max_key: float = NO_MAX_KEY
    a: float = 0.0
    a_lin: float = 0.0
    comm_size: int = 1
    comm_wt: float = 0.0
    parent_id: int = -1

    @property
    def degree(self) -> int:
        return len(self.adjcomm)


@dataclass(slots=True)
class _HeapEntry:
    comm_id: int
    val: float
    val2: float = 0.0


class MaxHeap:
    """Array max-heap of communities keyed by their best merge score.

    With ``use2`` set, equal keys are ordered by a secondary value.
    The heap position of each community is tracked for in-place updates.
    """

    def __init__(self, use2: bool = False) -> None:
        self.use2 = use2
        self.entries: list[_HeapEntry] = []
        self._index: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def _ranks_below(self, a: _HeapEntry, b: _HeapEntry) -> bool:
        if a.val < b.val:
            return True
        return self.use2 and a.val == b.val and a.val2 < b.val2

    def _swap(self, i: int, j: int) -> None:
        entries = self.entries
        entries[i], entries[j] = entries[j], entries[i]
        self._index[entries[i].comm_id] = i
        self._index[entries[j].comm_id] = j

    def push(self, comm_id: int, val: float, val2: float = 0.0) -> None:
        self.entries.append(_HeapEntry(comm_id, val, val2))
        self._index[comm_id] = len(self.entries) - 1
        self.sift_up(len(self.entries) - 1)

    def sift_up(self, idx: int) -> None:
        """Restore order after the key at ``idx`` increased."""
        entries = self.entries
        root = idx
        while root > 0:
            parent = (root - 1) // 2
            if not self._ranks_below(entries[parent], entries[root]):
                break
            self._swap(parent, root)
            root = parent

    def sift_down(self, idx: int) -> None:
        """Restore order after the key at ``idx`` decreased."""
        entries = self.entries
        n = len(entries)
        root = idx
        while 2 * root + 1 < n:
            child = 2 * root + 1
            if child + 1 < n and self._ranks_below(entries[child], entries[child + 1]):
                child += 1
            if not self._ranks_below(entries[root], entries[child]):
                break
            self._swap(root, child)
            root = child

    def remove(self, comm_id: int) -> None:
        """Remove a community; absent communities are ignored."""
        idx = self._index.get(comm_id, -1)
        if idx < 0:
            return
        old = self.entries[idx]
        last = self.entries.pop()
        self._index[comm_id] = -1
        if idx == len(self.entries):
            return
        self.entries[idx] = last
        self._index[last.comm_id] = idx
        if self._ranks_below(old, last):
            self.sift_up(idx)
        else:
            self.sift_down(idx)

    def check(self) -> None:
        """Raise :class:`HeapError` if the heap property is violated."""
        entries = self.entries
        n = len(entries)
        problems = []
        for i in range(n // 2):
            for child in (2 * i + 1, 2 * i + 2):
                if child < n and self._ranks_below(entries[i], entries[child]):
                    problems.append(
                        f"heap property violated (n: {n} i: {i} child: {child}) "
                        f"{entries[i].val:9.6f} < {entries[child].val:9.6f}"
                    )
        if problems:
            raise HeapError("; ".join(problems))

    def top(self) -> _HeapEntry:
        if not self.entries:
            raise HeapError("heap is empty")
        return self.entries[0]

    def position(self, comm_id: int) -> int:
        """Heap position of ``comm_id``, or -1 if it is not in the heap."""
        return self._index.get(comm_id, -1)


def adjacent_position(adjcomm: Sequence[AdjacentCommunity], comm_id: int) -> int:
    """Binary search for ``comm_id`` in a list sorted by community id.

    Returns the first position whose id is not below ``comm_id``, clamped
    to the last position.
    """
    pos = bisect_left(adjcomm, comm_id, key=lambda entry: entry.comm_id)
    return min(pos, max(len(adjcomm) - 1, 0))