"""Input/output for configurations, results and snapshots."""

from .io_json import JSONImporter, JSONExporter, example_run_config
from .snapshot import (
    SimulationSnapshot,
    SnapshotStore,
    InMemorySnapshotStore,
    JSONSnapshotStore,
    build_snapshot,
)

__all__ = [
    "JSONImporter",
    "JSONExporter",
    "example_run_config",
    "SimulationSnapshot",
    "SnapshotStore",
    "InMemorySnapshotStore",
    "JSONSnapshotStore",
    "build_snapshot",
]
