[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "commsnap"
version = "0.4.0"
description = "Greedy agglomerative modularity clustering and seed-set community detection for graphs"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "graph",
    "community detection",
    "modularity",
    "clustering",
    "pagerank",
    "conductance",
    "network analysis",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Information Analysis",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["commsnap"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
