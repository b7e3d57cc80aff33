# commsnap

This package finds communities in graphs that are stored in compressed
sparse row form. It uses only the Python standard library and needs
Python 3.10 or later.

```
pip install .
```

## Modules

- `commsnap.core` holds the shared building blocks:
  - `Graph`, the graph itself;
  - `KeyType`, the scoring rules;
  - `WeightTotals`, `Community` and `AdjacentCommunity`, the community
    records;
  - `MaxHeap`, an indexed max-heap;
  - `HeapError`;
  - `adjacent_position`, a binary search over a sorted adjacency list.
- `commsnap.adjacency` and `commsnap.merge` keep adjacency lists, scores and
  the heap consistent while communities merge. `compute_membership` turns the
  merge tree into one label per vertex.
- `commsnap.agglomerative` holds `modularity_greedy_agglomerative`, which
  runs greedy agglomerative modularity clustering over the whole graph.
- `commsnap.seedgrow` holds two things:
  - `seed_set_community_detection`, the same agglomeration started from seed
    vertices only;
  - `Stopwatch`, a small CPU-time timer that is also a context manager.
- `commsnap.local` holds the local methods around seeds:
  - `compute_approx_pagerank` and `pagerank_community`;
  - `andersen_lang`;
  - `bfs_seed_set_expansion`;
  - `random_walk`.

## Building a graph

```python
from commsnap.core import Graph

edges = [(0, 1), (1, 2), (0, 2), (3, 4), (4, 5), (3, 5), (2, 3)]
graph = Graph.from_edges(6, edges, weights=None, undirected=True)
```

An undirected graph stores each edge in both directions. Pass a list of
weights, one per edge, to get a weighted graph. `Graph` offers `degree(v)`,
`neighbors(v)`, `edge_range(v)` and `weight(e)`. An unweighted edge slot has
weight 1.0.

## Clustering a whole graph

```python
from commsnap.agglomerative import modularity_greedy_agglomerative

result = modularity_greedy_agglomerative(graph, "CNM")
print(result.num_communities, result.modularity)
print(result.membership)   # community index for every vertex
```

The algorithm starts from singleton communities. It keeps merging the pair of
adjacent communities with the best score until the stopping rule fires or no
pair is left. The scoring rules, chosen by name, are:

- `"CNM"`: the change in modularity. It stops when the best change is
  negative.
- `"MB"`: the change in modularity divided by its estimated standard
  deviation. It stops when the change in modularity is negative. It also
  stops when the score falls more than 1.5 standard deviations below the
  mean of the last 20 best scores.
- `"RAT"`: the CNM score scaled by the size ratio of the two communities.
- `"MBRAT"`: the MB score scaled by the same ratio.
- `"LIN"`: a linear background model over edge weights. An unweighted graph
  is treated as having weight 1 on each edge.

`RAT`, `MBRAT` and `LIN` stop when the best score is negative. For every rule
except `CNM`, a pair that involves a community with only one neighbour gets
the highest possible score, so that community is merged first.

`CommunityResult.membership` numbers the final communities in vertex order.
`modularity` is the modularity of the singleton partition plus the gains of
the merges that were made.

## Growing a community around seeds

```python
from commsnap.seedgrow import seed_set_community_detection

grown = seed_set_community_detection(graph, "CNM", [0])
print(grown.membership, grown.modularity)
```

Only the seed communities enter the heap. Growth stops as soon as the best
modularity change turns negative. Vertices that no seed absorbs stay in
singleton communities in `membership`.

## Local methods

```python
from commsnap.local import andersen_lang, bfs_seed_set_expansion, pagerank_community

members = pagerank_community(graph, [0], alpha=0.15, eps=1e-4)
walked = andersen_lang(graph, [0], nsweep=5)
near = bfs_seed_set_expansion(graph, [0], steps=1)
```

Each of these returns one entry per vertex: 1 for a vertex in the community,
0 for a vertex outside it.

- `pagerank_community` ranks vertices by approximate personalised PageRank and
  keeps the prefix of least conductance. It widens that prefix to reach every
  seed.
- `andersen_lang` runs `nsweep` lazy random-walk sweeps. It keeps the prefix
  of least conductance that contains every seed.
- `bfs_seed_set_expansion` marks every vertex within `steps` breadth-first
  steps of a seed, the seeds included.

`pagerank_community` and `andersen_lang` never include vertices of degree
zero.

`random_walk(graph, start, levels, rng=None)` takes `levels` uniformly random
steps and returns the final vertex. It returns `None` if the walk reaches a
vertex that has no edges.

## Errors

- An unknown algorithm name raises `ValueError`.
- `ValueError` is also raised for:
  - a seed or vertex outside the graph;
  - a graph with no edges other than self-loops;
  - a graph with no total edge weight;
  - a non-positive `eps` or an `alpha` outside [0, 1].
- `MaxHeap.check` raises `HeapError` when the heap ordering is broken.
  `MaxHeap.top` raises it when the heap is empty.

## What the package does not do

- It has no command-line program.
- It does not read graphs from files or generate synthetic graphs. Build
  graphs in code with `Graph.from_edges`, or pass the compressed arrays to
  `Graph` directly.