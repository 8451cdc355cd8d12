"""Core decision risk engine."""

# Sampling pipeline
from .distributions import DistributionSampler, get_distribution_stats
from .sampler import CounterStream, plan_chunks
from .correlation import GaussianCopula, nearest_correlation_matrix
from .bayesian import BayesianPriorBlender
from .payoff import PayoffEvaluator
from .metrics import RiskMetricAggregator, UtilityCalculator, ConvergenceDiagnostics
from .aggregation import SimulationEngine, run_simulation

# Caching and cancellation
from .cache import FingerprintCache
from .cancellation import CancellationToken, run_sweep
from .fingerprint import compute_fingerprint, run_id_for

# Analysis
from .sensitivity import SensitivityAnalyzer, TornadoReport
from .stress import StressTester, StressScenario, STRESS_PRESETS

# Validation and audit
from .validation import ValidationEngine, validate_run_config
from .audit import DeterminismVerifier

__all__ = [
    "DistributionSampler",
    "get_distribution_stats",
    "CounterStream",
    "plan_chunks",
    "GaussianCopula",
    "nearest_correlation_matrix",
    "BayesianPriorBlender",
    "PayoffEvaluator",
    "RiskMetricAggregator",
    "UtilityCalculator",
    "ConvergenceDiagnostics",
    "SimulationEngine",
    "run_simulation",
    "FingerprintCache",
    "CancellationToken",
    "run_sweep",
    "compute_fingerprint",
    "run_id_for",
    "SensitivityAnalyzer",
    "TornadoReport",
    "StressTester",
    "StressScenario",
    "STRESS_PRESETS",
    "ValidationEngine",
    "validate_run_config",
    "DeterminismVerifier",
]
