"""Growing a community around seed vertices by greedy agglomeration.

Only the seed communities are placed in the heap.  Each step merges the
best neighbour into a seed community.  Growth stops as soon as the best
modularity change turns negative.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from .agglomerative import AgglomerationState, CommunityResult
from .core import Graph, KeyType
from .merge import compute_membership

_log = logging.getLogger(__name__)


class Stopwatch:
    """Measures elapsed time, by default process CPU time."""

    def __init__(self, clock: Callable[[], float] = time.process_time) -> None:
        self._clock = clock
        self._t0: float | None = None
        self.elapsed = 0.0

    def start(self) -> None:
        """Record the starting time."""
        self._t0 = self._clock()

    def stop(self) -> float:
        """Return and remember the time since :meth:`start`."""
        if self._t0 is None:
            raise RuntimeError("stopwatch was never started")
        self.elapsed = self._clock() - self._t0
        return self.elapsed

    def __enter__(self) -> "Stopwatch":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def seed_set_community_detection(
    graph: Graph, alg_type: str, seeds: Iterable[int]
) -> CommunityResult:
    """Greedily grow regions around ``seeds`` until modularity would drop.

    ``alg_type`` is one of ``CNM``, ``MB``, ``RAT``, ``MBRAT`` or ``LIN``.
    Vertices never absorbed by a seed stay in singleton communities.
    The reported modularity accumulates the gains of the merges made.
    """
    with Stopwatch() as watch:
        keytype = KeyType.from_name(alg_type)
        seed_list = list(dict.fromkeys(seeds))
        for seed in seed_list:
            if not 0 <= seed < graph.n:
                raise ValueError(
                    f"seed {seed} out of range for {graph.n} vertices"
                )

        state = AgglomerationState.build(graph, keytype)
        mod_val = state.initial_modularity()
        state.build_heap(seed_list)

        total_joins = graph.n - 1
        joins = 0
        while joins < total_joins and len(state.heap) > 0:
            gain = state.merge()
            joins += 1
            if gain < 0:
                break
            mod_val += gain
            if joins % 10000 == 0:
                _log.info("join: %d, mod %9.6f", joins, mod_val)

        membership, count = compute_membership(state.communities)

    _log.debug("seed set community detection took %.6f s", watch.elapsed)
    return CommunityResult(
        membership=membership, num_communities=count, modularity=mod_val
    )