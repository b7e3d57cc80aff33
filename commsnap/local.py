"""Local community detection around seed vertices.

This module grows a community around a seed set with local methods:
approximate personalized PageRank with a conductance sweep, a limited
Andersen-Lang random-walk sweep, or plain breadth-first expansion.  It
also provides a random walk helper that picks vertices.
"""

from __future__ import annotations

import logging
import math
import random
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Sequence

from .core import Graph
from .seedgrow import Stopwatch

_log = logging.getLogger(__name__)


def _check_seeds(graph: Graph, seeds: Iterable[int]) -> list[int]:
    seed_list = list(seeds)
    for seed in seed_list:
        if not 0 <= seed < graph.n:
            raise ValueError(f"seed {seed} out of range for {graph.n} vertices")
    return seed_list


def _push(
    graph: Graph,
    u: int,
    p: list[float],
    r: list[float],
    alpha: float,
    eps: float,
) -> list[int]:
    """Push residual from ``u`` until it drops below ``eps`` per edge.

    Returns the neighbours whose residual crossed ``eps`` during the push.
    """
    deg = graph.degree(u)
    neighbours = graph.neighbors(u)
    activated: list[int] = []
    while r[u] / deg >= eps:
        for v in neighbours:
            before = r[v]
            r[v] = r[v] + (1 - alpha) * r[u] / (2.0 * deg)
            if before < eps and r[v] >= eps:
                activated.append(v)
        r[u] = (1 - alpha) * r[u] / 2.0
        p[u] += alpha * r[u]
    return activated


def compute_approx_pagerank(
    graph: Graph, seeds: Iterable[int], alpha: float, eps: float
) -> list[float]:
    """Approximate personalized PageRank vector started from ``seeds``.

    Each seed starts with residual ``1 / len(seeds)``; residual is pushed
    while it is at least ``eps`` per incident edge slot.
    """
    seed_list = _check_seeds(graph, seeds)
    if eps <= 0:
        raise ValueError(f"eps must be positive, got {eps}")
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must lie in [0, 1], got {alpha}")

    p = [0.0] * graph.n
    r = [0.0] * graph.n
    if seed_list:
        share = 1.0 / len(seed_list)
        for seed in seed_list:
            r[seed] = share

    queue = deque(seed_list)
    while queue:
        u = queue.popleft()
        deg = graph.degree(u)
        if deg != 0 and r[u] / deg >= eps:
            queue.extend(_push(graph, u, p, r, alpha, eps))
    return p


def _sweep(
    graph: Graph,
    order: Sequence[int],
    loc: Sequence[int],
    conductance: Callable[[int, int], float],
) -> Iterator[tuple[int, float]]:
    """Conductance of each prefix of ``order``, as ``(position, value)``."""
    vol_s = 0
    internal = 0
    m = graph.m
    for k, v in enumerate(order):
        vol_s += graph.degree(v)
        for w in graph.neighbors(v):
            if w != v and 0 <= loc[w] < k:
                internal += 1
        cut = vol_s - 2 * internal
        vol_bar = m - 2 * internal
        yield k, conductance(cut, min(vol_s, vol_bar))


def _pagerank_conductance(cut: int, minvol: int) -> float:
    return cut / minvol if minvol else math.inf


def _walk_conductance(cut: int, minvol: int) -> float:
    if minvol > 0:
        return cut / minvol
    if cut == 0:
        return 1.0
    return math.inf


def _mark(graph: Graph, vertices: Iterable[int]) -> list[int]:
    membership = [0] * graph.n
    for v in vertices:
        if graph.degree(v) != 0:
            membership[v] = 1
    return membership


def pagerank_community(
    graph: Graph, seeds: Iterable[int], alpha: float, eps: float
) -> list[int]:
    """Grow a community by PageRank ranking and conductance minimisation.

    Returns a 0/1 membership list; vertices of degree zero are never
    included.
    """
    with Stopwatch() as watch:
        seed_list = _check_seeds(graph, seeds)
        p = compute_approx_pagerank(graph, seed_list, alpha, eps)
        order = sorted(range(graph.n), key=lambda v: -p[v])
        loc = [0] * graph.n
        for k, v in enumerate(order):
            loc[v] = k

        mincond = math.inf
        mink = -1
        for k, cond in _sweep(graph, order, loc, _pagerank_conductance):
            if cond < mincond:
                mincond = cond
                mink = k

        for seed in seed_list:
            mink = max(mink, loc[seed])

        membership = _mark(graph, order[: max(mink, 0)])

    _log.debug("pagerank community took %.6f s", watch.elapsed)
    return membership


@dataclass
class _Walker:
    v: int
    deg: int
    p: float
    weighted_p: float = 0.0


def andersen_lang(graph: Graph, seeds: Iterable[int], nsweep: int) -> list[int]:
    """Grow a community with a limited Andersen-Lang random-walk sweep.

    Each of ``nsweep`` sweeps applies one lazy walk step to the
    distribution, ranks vertices by probability per degree and keeps the
    prefix of least conductance that holds every seed.  Returns a 0/1
    membership list.
    """
    if nsweep < 0:
        raise ValueError(f"nsweep must be non-negative, got {nsweep}")
    with Stopwatch() as watch:
        seed_list = list(dict.fromkeys(_check_seeds(graph, seeds)))
        loc = [-1] * graph.n

        entries: list[_Walker] = []
        for seed in seed_list:
            deg = graph.degree(seed)
            loc[seed] = len(entries)
            entries.append(_Walker(seed, deg, float(deg)))
        total = sum(entry.deg for entry in entries)
        for entry in entries:
            entry.p = entry.p / total if total else 0.0
            entry.weighted_p = entry.p

        global_mincond = math.inf
        best: list[int] = []
        saved = 0

        for _ in range(nsweep):
            previous = entries[:]
            for k, entry in enumerate(previous):
                loc[entry.v] = k
                entry.weighted_p = entry.p
                entry.p = 0.5 * entry.p
            for entry in previous:
                x = entry.weighted_p
                for w in graph.neighbors(entry.v):
                    degw = graph.degree(w)
                    if degw <= 0:
                        raise ValueError(f"neighbour {w} of {entry.v} has no edges")
                    if w == entry.v:
                        continue
                    if loc[w] < 0:
                        loc[w] = len(entries)
                        entries.append(_Walker(w, degw, 0.0))
                    entries[loc[w]].p += 0.5 * x / degw

            for entry in entries:
                entry.weighted_p = entry.p / entry.deg if entry.deg else 0.0
            entries.sort(key=lambda entry: -entry.weighted_p)
            for k, entry in enumerate(entries):
                loc[entry.v] = k

            minseedk = max((loc[seed] for seed in seed_list), default=-1)

            order = [entry.v for entry in entries]
            mincond = math.inf
            mink = 0
            for k, cond in _sweep(graph, order, loc, _walk_conductance):
                if cond < mincond and k >= minseedk:
                    mincond = cond
                    mink = k

            if mincond < global_mincond:
                global_mincond = mincond
                saved = mink
                best = order[: mink + 1]

        membership = _mark(graph, best[:saved])

    _log.debug("andersen-lang took %.6f s", watch.elapsed)
    return membership


def bfs_seed_set_expansion(
    graph: Graph, seeds: Iterable[int], steps: int
) -> list[int]:
    """Mark every vertex within ``steps`` breadth-first steps of a seed.

    Returns a 0/1 membership list.
    """
    with Stopwatch() as watch:
        seed_list = _check_seeds(graph, seeds)
        membership = [0] * graph.n
        queue: list[int] = []
        for seed in seed_list:
            queue.append(seed)
            membership[seed] = 1

        head = 0
        for _ in range(steps):
            frontier_end = len(queue)
            while head < frontier_end:
                v = queue[head]
                head += 1
                for w in graph.neighbors(v):
                    if not membership[w]:
                        membership[w] = 1
                        queue.append(w)
            if frontier_end == len(queue):
                break

    _log.debug("bfs seed set expansion took %.6f s", watch.elapsed)
    return membership


def random_walk(
    graph: Graph,
    start: int,
    levels: int,
    rng: random.Random | None = None,
) -> int | None:
    """Walk ``levels`` uniformly random steps from ``start``.

    Returns the final vertex, or ``None`` if the walk reaches a vertex
    without edges.
    """
    if not 0 <= start < graph.n:
        raise ValueError(f"vertex {start} out of range for {graph.n} vertices")
    source = rng if rng is not None else random
    v = start
    for _ in range(levels):
        deg = graph.degree(v)
        if deg == 0:
            return None
        v = graph.end_v[graph.offsets[v] + int(source.random() * deg)]
    return v