import math
import statistics

import pytest

from commsnap.adjacency import (
    dq_stats,
    remove_adjcomm,
    update_dq_p1,
    update_dq_p2,
    update_values,
)
from commsnap.core import (
    NO_MAX_KEY,
    AdjacentCommunity,
    Community,
    KeyType,
    MaxHeap,
    WeightTotals,
)


def _adj(comm_id, dq, lij=1, xij=1.0):
    entry = AdjacentCommunity(comm_id=comm_id, lij=lij, xij=xij)
    entry.value[KeyType.CNM] = dq
    return entry


def _community(pairs, max_idx):
    adj = [_adj(cid, dq) for cid, dq in pairs]
    key = adj[max_idx].value[KeyType.CNM] if adj else NO_MAX_KEY
    return Community(adjcomm=adj, max_key_idx=max_idx, max_key=key)


def _heap_for(communities):
    heap = MaxHeap()
    for cid, community in enumerate(communities):
        if community.max_key != NO_MAX_KEY:
            heap.push(cid, community.max_key)
    return heap


def _consistent(community, keytype=KeyType.CNM):
    values = [entry.value[keytype] for entry in community.adjcomm]
    ids = [entry.comm_id for entry in community.adjcomm]
    return (
        ids == sorted(ids)
        and community.max_key == max(values)
        and community.adjcomm[community.max_key_idx].value[keytype] == max(values)
    )


def _empty_communities(n):
    return [Community() for _ in range(n)]


# ---------------------------------------------------------------- update_values


def test_update_values_cnm_leaves_entry_untouched():
    communities = _empty_communities(2)
    communities[0].adjcomm = [_adj(1, 0.25)]
    update_values(communities, 0, 0, 1, WeightTotals(count=4), 2, KeyType.CNM)
    assert communities[0].adjcomm[0].value == [0.25, 0.0, 0.0, 0.0, 0.0]


def test_update_values_equal_sizes_ratio_keys_copy_base_keys():
    communities = _empty_communities(2)
    communities[0].adjcomm = [_adj(1, 0.5)]
    update_values(communities, 0, 0, 1, WeightTotals(count=2), 2, KeyType.RAT)
    entry = communities[0].adjcomm[0]
    assert entry.value[KeyType.RAT] == entry.value[KeyType.CNM]
    assert entry.value[KeyType.MBRAT] == entry.value[KeyType.MB]
    assert entry.value[KeyType.MB] == pytest.approx(math.sqrt(0.5))


def test_update_values_ratio_is_symmetric_in_sizes():
    results = []
    for sizes in ((1, 4), (4, 1)):
        communities = _empty_communities(2)
        communities[0].comm_size, communities[1].comm_size = sizes
        communities[0].adjcomm = [_adj(1, 0.4)]
        update_values(communities, 0, 0, 1, WeightTotals(count=2), 2, KeyType.MBRAT)
        results.append(communities[0].adjcomm[0].value[KeyType.RAT])
    assert results[0] == results[1]
    assert results[0] < 0.4


def test_update_values_negative_variance_raises():
    communities = _empty_communities(2)
    communities[0].adjcomm = [_adj(1, 0.5, lij=0)]
    with pytest.raises(ValueError):
        update_values(communities, 0, 0, 1, WeightTotals(count=2), 2, KeyType.MB)


def test_update_values_wrong_adjacency_raises():
    communities = _empty_communities(3)
    communities[0].adjcomm = [_adj(1, 0.5)]
    with pytest.raises(ValueError):
        update_values(communities, 0, 0, 2, WeightTotals(count=2), 3, KeyType.RAT)


def test_update_values_lin_increases_with_weight():
    totals = WeightTotals(weighted=True, mass=4.0, orig_mass=4.0)
    outcomes = []
    for xij in (1.0, 2.0):
        communities = _empty_communities(2)
        communities[0].adjcomm = [_adj(1, 0.1, xij=xij)]
        update_values(communities, 0, 0, 1, totals, 2, KeyType.LIN)
        outcomes.append(communities[0].adjcomm[0].value[KeyType.LIN])
    assert outcomes[1] - outcomes[0] == pytest.approx(2.0)


# ---------------------------------------------------------------- update_dq_p1


def _p1_setup():
    communities = _empty_communities(6)
    communities[0] = _community([(1, 0.5), (3, 0.1), (5, 0.2)], 0)
    communities[1] = _community([(0, 0.3)], 0)
    heap = _heap_for(communities)
    return communities, heap


def test_p1_lowering_best_key_rescans_and_reorders_heap():
    communities, heap = _p1_setup()
    update_dq_p1(communities, heap, 0, 1, WeightTotals(count=6), 0.05, 2, KeyType.CNM)
    community = communities[0]
    assert community.adjcomm[0].value[KeyType.CNM] == 0.05
    assert community.adjcomm[0].lij == 2
    assert _consistent(community)
    assert heap.top().comm_id == 1
    heap.check()
    assert heap.entries[heap.position(0)].val == community.max_key


def test_p1_raising_other_key_becomes_best():
    communities, heap = _p1_setup()
    update_dq_p1(communities, heap, 0, 3, WeightTotals(count=6), 0.9, 1, KeyType.CNM)
    community = communities[0]
    assert community.max_key_idx == 1
    assert _consistent(community)
    assert heap.top().comm_id == 0
    heap.check()


def test_p1_ignores_community_outside_heap():
    communities, heap = _p1_setup()
    communities[2] = _community([(0, 0.4)], 0)
    update_dq_p1(communities, heap, 2, 0, WeightTotals(count=6), 0.9, 1, KeyType.CNM)
    assert communities[2].adjcomm[0].value[KeyType.CNM] == 0.4


def test_p1_weighted_sets_weight_sum():
    communities, heap = _p1_setup()
    totals = WeightTotals(weighted=True, mass=6.0, orig_mass=6.0)
    update_dq_p1(communities, heap, 0, 5, totals, 0.1, 2.5, KeyType.CNM)
    assert communities[0].adjcomm[2].xij == 2.5
    assert _consistent(communities[0])


# ---------------------------------------------------------------- update_dq_p2


def test_p2_rename_best_adjacency_with_lower_key():
    communities = _empty_communities(6)
    communities[0] = _community([(1, 0.5), (3, 0.1), (5, 0.2)], 0)
    heap = _heap_for(communities)
    update_dq_p2(communities, heap, 0, 1, 4, WeightTotals(count=6), 0.05, 1, KeyType.CNM)
    community = communities[0]
    assert [e.comm_id for e in community.adjcomm] == [3, 4, 5]
    assert community.adjcomm[1].value[KeyType.CNM] == 0.05
    assert _consistent(community)
    assert heap.entries[heap.position(0)].val == community.max_key


def test_p2_rename_best_adjacency_with_higher_key():
    communities = _empty_communities(6)
    communities[0] = _community([(1, 0.5), (3, 0.1), (5, 0.2)], 0)
    heap = _heap_for(communities)
    update_dq_p2(communities, heap, 0, 1, 4, WeightTotals(count=6), 0.9, 1, KeyType.CNM)
    community = communities[0]
    assert community.adjcomm[community.max_key_idx].comm_id == 4
    assert _consistent(community)
    heap.check()


@pytest.mark.parametrize(
    "pairs, max_idx, comm2, new_id, expected_ids",
    [
        ([(1, 0.1), (3, 0.2), (5, 0.5)], 2, 1, 4, [3, 4, 5]),
        ([(1, 0.1), (3, 0.5), (5, 0.2)], 1, 1, 4, [3, 4, 5]),
        ([(1, 0.5), (3, 0.2), (5, 0.1)], 0, 5, 2, [1, 2, 3]),
        ([(1, 0.2), (3, 0.1), (5, 0.5)], 2, 1, 2, [2, 3, 5]),
    ],
)
def test_p2_rename_other_adjacency_keeps_best_index(
    pairs, max_idx, comm2, new_id, expected_ids
):
    communities = _empty_communities(6)
    communities[0] = _community(pairs, max_idx)
    best_id = communities[0].adjcomm[max_idx].comm_id
    heap = _heap_for(communities)
    update_dq_p2(
        communities, heap, 0, comm2, new_id, WeightTotals(count=6), 0.05, 1, KeyType.CNM
    )
    community = communities[0]
    assert [e.comm_id for e in community.adjcomm] == expected_ids
    assert community.adjcomm[community.max_key_idx].comm_id == best_id
    assert _consistent(community)


def test_p2_without_best_adjacency_raises():
    communities = _empty_communities(2)
    communities[0] = Community(adjcomm=[_adj(1, 0.1)])
    heap = MaxHeap()
    with pytest.raises(ValueError):
        update_dq_p2(communities, heap, 0, 1, 2, WeightTotals(count=2), 0.1, 1, KeyType.CNM)


# ---------------------------------------------------------------- remove_adjcomm


def test_remove_best_adjacency_rescans():
    communities = _empty_communities(6)
    communities[0] = _community([(1, 0.1), (3, 0.5), (5, 0.2)], 1)
    communities[2] = _community([(0, 0.3)], 0)
    heap = _heap_for(communities)
    remove_adjcomm(communities, heap, 0, 3, KeyType.CNM)
    community = communities[0]
    assert [e.comm_id for e in community.adjcomm] == [1, 5]
    assert community.degree == 2
    assert _consistent(community)
    assert heap.top().comm_id == 2
    heap.check()


def test_remove_earlier_adjacency_shifts_best_index():
    communities = _empty_communities(6)
    communities[0] = _community([(1, 0.1), (3, 0.2), (5, 0.5)], 2)
    heap = _heap_for(communities)
    remove_adjcomm(communities, heap, 0, 1, KeyType.CNM)
    community = communities[0]
    assert [e.comm_id for e in community.adjcomm] == [3, 5]
    assert community.adjcomm[community.max_key_idx].comm_id == 5


def test_remove_last_adjacency_leaves_no_key():
    communities = _empty_communities(2)
    communities[0] = _community([(1, 0.3)], 0)
    heap = _heap_for(communities)
    remove_adjcomm(communities, heap, 0, 1, KeyType.CNM)
    assert communities[0].degree == 0
    assert communities[0].max_key == NO_MAX_KEY
    assert communities[0].max_key_idx == -1


def test_remove_without_best_adjacency_raises():
    communities = _empty_communities(2)
    communities[0] = Community(adjcomm=[_adj(1, 0.1)])
    with pytest.raises(ValueError):
        remove_adjcomm(communities, MaxHeap(), 0, 1, KeyType.CNM)


# ---------------------------------------------------------------- dq_stats


def test_dq_stats_matches_population_statistics():
    communities = _empty_communities(3)
    communities[0] = _community([(1, 1.0), (2, 3.0)], 1)
    communities[1] = _community([(0, 2.0)], 0)
    communities[2] = _community([(0, 100.0)], 0)
    heap = MaxHeap()
    heap.push(0, 3.0)
    heap.push(1, 2.0)
    mean, stddev, count = dq_stats(communities, heap, KeyType.CNM)
    assert count == 3
    assert mean == pytest.approx(statistics.fmean([1.0, 3.0, 2.0]))
    assert stddev == pytest.approx(statistics.pstdev([1.0, 3.0, 2.0]))


def test_dq_stats_empty_is_nan():
    mean, stddev, count = dq_stats(_empty_communities(2), MaxHeap(), KeyType.CNM)
    assert count == 0
    assert math.isnan(mean) and math.isnan(stddev)