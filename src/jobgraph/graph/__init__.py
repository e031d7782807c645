"""Dependency graph engine: snapshot, validation, resolution, satisfaction and analytics."""

from jobgraph.graph.resolver import ChainNode, chain, critical_path
from jobgraph.graph.snapshot import EdgeRecord, GraphCache, GraphSnapshot
from jobgraph.graph.validation import validate_edge

__all__ = [
    "ChainNode",
    "EdgeRecord",
    "GraphCache",
    "GraphSnapshot",
    "chain",
    "critical_path",
    "validate_edge",
]
