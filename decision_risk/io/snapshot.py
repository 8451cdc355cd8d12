"""Persisted run snapshots and the storage port they are written through.

The engine never touches a store; callers build a snapshot from a finished
RunResult and hand it to whichever SnapshotStore they use.
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.data_models import (
    BayesianBlend,
    MAX_RUN_COUNT,
    MIN_RUN_COUNT,
    RunResult,
    SimulationResult,
)
from ..core.exceptions import SnapshotStoreError
from ..core.logging_config import get_logger

logger = get_logger(__name__)

RUN_ID_PATTERN = r"^run-[a-f0-9]{64}$"


class CopulaSnapshot(BaseModel):
    """Dependence summary: variable count, target matrix and repair distance."""

    model_config = ConfigDict(frozen=True)

    k: int = Field(..., ge=0, description="Number of correlated variables")
    target_set: List[List[float]] = Field(..., description="Target rank correlation matrix")
    fro_err: float = Field(..., ge=0, description="Frobenius distance of the PSD repair")


class SimulationSnapshot(BaseModel):
    """Stored record of one simulation run."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(..., pattern=RUN_ID_PATTERN)
    decision_id: str = Field(..., min_length=1)
    seed: int = Field(..., ge=0)
    runs: int = Field(..., ge=MIN_RUN_COUNT, le=MAX_RUN_COUNT)
    horizon_months: int = Field(..., ge=1)
    achieved_spearman: Optional[float] = None
    bayes: List[BayesianBlend] = Field(default_factory=list)
    copula: Optional[CopulaSnapshot] = None
    metrics_by_option: Dict[str, SimulationResult]
    timestamp: datetime


def build_snapshot(
    result: RunResult,
    decision_id: str,
    timestamp: Optional[datetime] = None,
) -> SimulationSnapshot:
    """Build the snapshot for a finished run."""
    copula = None
    if result.dependence_fit is not None:
        fit = result.dependence_fit
        copula = CopulaSnapshot(
            k=len(fit.variable_ids),
            target_set=fit.target,
            fro_err=fit.repair_frobenius,
        )

    return SimulationSnapshot(
        run_id=result.run_id,
        decision_id=decision_id,
        seed=result.seed,
        runs=result.run_count,
        horizon_months=result.horizon_months,
        achieved_spearman=result.achieved_spearman,
        bayes=result.bayes,
        copula=copula,
        metrics_by_option={r.option_id: r for r in result.results},
        timestamp=timestamp or datetime.now(timezone.utc),
    )


class SnapshotStore(Protocol):
    """Storage port for simulation snapshots."""

    def save(self, snapshot: SimulationSnapshot) -> None:
        ...

    def load(self, run_id: str) -> SimulationSnapshot:
        ...

    def list_runs(self, decision_id: Optional[str] = None) -> List[str]:
        ...


class InMemorySnapshotStore:
    """Thread-safe dictionary store, mostly for tests and notebooks."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, SimulationSnapshot] = {}

    def save(self, snapshot: SimulationSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.run_id] = snapshot

    def load(self, run_id: str) -> SimulationSnapshot:
        with self._lock:
            if run_id not in self._snapshots:
                raise SnapshotStoreError(f"No snapshot for run '{run_id}'", location=run_id)
            return self._snapshots[run_id]

    def list_runs(self, decision_id: Optional[str] = None) -> List[str]:
        with self._lock:
            return sorted(
                run_id for run_id, snapshot in self._snapshots.items()
                if decision_id is None or snapshot.decision_id == decision_id
            )


class JSONSnapshotStore:
    """One JSON file per run in a directory, named ``<run_id>.json``.

    Saving the same run twice overwrites the earlier file; identical
    configurations produce identical run ids.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, run_id: str) -> Path:
        return self.directory / f"{run_id}.json"

    def save(self, snapshot: SimulationSnapshot) -> None:
        path = self._path(snapshot.run_id)
        try:
            with self._lock:
                self.directory.mkdir(parents=True, exist_ok=True)
                path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise SnapshotStoreError(f"Could not write snapshot: {e}", location=str(path), cause=e) from e
        logger.info(
            f"Saved snapshot {snapshot.run_id}",
            extra={'component': 'snapshot', 'run_id': snapshot.run_id}
        )

    def load(self, run_id: str) -> SimulationSnapshot:
        path = self._path(run_id)
        if not path.exists():
            raise SnapshotStoreError(f"No snapshot for run '{run_id}'", location=str(path))
        try:
            return SimulationSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise SnapshotStoreError(f"Could not read snapshot: {e}", location=str(path), cause=e) from e

    def list_runs(self, decision_id: Optional[str] = None) -> List[str]:
        if not self.directory.exists():
            return []
        run_ids = []
        for path in sorted(self.directory.glob("run-*.json")):
            if decision_id is None:
                run_ids.append(path.stem)
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise SnapshotStoreError(f"Could not read snapshot: {e}", location=str(path), cause=e) from e
            if data.get("decision_id") == decision_id:
                run_ids.append(path.stem)
        return run_ids
