"""Determinism verification for simulation runs.

Re-runs a configuration several times outside the cache and compares a hash
of every per-draw outcome array, so any nondeterminism shows up bit for bit.
"""

import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import numpy as np

from .data_models import EngineSettings
from .exceptions import DecisionRiskError
from .logging_config import get_logger

logger = get_logger(__name__)


class DeterminismVerifier:
    """Verifies simulation determinism and reproducibility."""

    @staticmethod
    def verify_reproducibility(
        config,
        n_runs: int = 3,
        settings: Optional[EngineSettings] = None,
        vary_workers: bool = True,
    ) -> Dict[str, Any]:
        """Verify that a configuration produces identical draws on every run.

        Args:
            config: RunConfig or raw configuration mapping
            n_runs: Number of verification runs
            settings: Base execution settings
            vary_workers: Alternate single-threaded and multi-threaded runs

        Returns:
            Verification results
        """
        from .aggregation import SimulationEngine

        settings = settings or EngineSettings()
        runs = []

        try:
            for run_number in range(n_runs):
                workers = settings.workers
                if vary_workers:
                    workers = 1 if run_number % 2 == 0 else max(2, settings.workers)
                engine = SimulationEngine(settings.model_copy(update={'workers': workers}))
                result, samples = engine.simulate(config)

                runs.append({
                    'run_number': run_number + 1,
                    'workers': workers,
                    'run_id': result.run_id,
                    'outcomes_hash': DeterminismVerifier._hash_outcomes(samples.outcomes),
                    'ev': {r.option_id: r.ev for r in result.results},
                })
        except DecisionRiskError as e:
            logger.error(f"Verification failed: {e}", extra={'component': 'audit'})
            return {
                'reproducible': False,
                'reason': f"Verification failed: {e}",
                'runs': runs,
            }

        first_hash = runs[0]['outcomes_hash'] if runs else None
        all_identical = all(run['outcomes_hash'] == first_hash for run in runs)

        verification = {
            'reproducible': all_identical,
            'runs': runs,
            'run_id': runs[0]['run_id'] if runs else None,
            'verification_timestamp': datetime.now(timezone.utc).isoformat(),
        }
        if not all_identical:
            verification['reason'] = "Outcomes differ between runs with the same configuration"
        return verification

    @staticmethod
    def _hash_outcomes(outcomes: Dict[str, np.ndarray]) -> str:
        """Hash the exact bytes of every outcome array in option order."""
        digest = hashlib.sha256()
        for option_id, values in outcomes.items():
            digest.update(option_id.encode("utf-8"))
            digest.update(np.ascontiguousarray(values, dtype=np.float64).tobytes())
        return digest.hexdigest()[:16]
