"""JobGraph: dependency graph and resolution engine for scheduled jobs."""

__version__ = "0.1.0"

from jobgraph.graph.snapshot import GraphSnapshot, EdgeRecord
from jobgraph.services.dependency_service import DependencyService

__all__ = ["DependencyService", "GraphSnapshot", "EdgeRecord", "__version__"]
