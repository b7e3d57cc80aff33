"""Greedy agglomerative modularity clustering, seed-set growth and local community detection."""

__version__ = "0.4.0"