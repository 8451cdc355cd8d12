"""Decision risk engine.

Monte Carlo evaluation of competing strategic options under correlated
uncertainty, with risk-adjusted metrics, sensitivity rankings and stress
testing.
"""

__version__ = "1.0.0"

# Core functionality
from .core.aggregation import SimulationEngine, run_simulation
from .core.data_models import (
    EngineSettings,
    Option,
    RunConfig,
    RunResult,
    ScenarioVariable,
    SimulationResult,
)
from .core.fingerprint import compute_fingerprint
from .core.validation import validate_run_config

# Exception handling
from .core.exceptions import (
    DecisionRiskError,
    ConfigurationError,
    CorrelationMatrixError,
    ComputationError,
    CancellationRequested,
)

# Logging configuration
from .core.logging_config import setup_logging, get_logger

__all__ = [
    # Core functionality
    "SimulationEngine",
    "run_simulation",
    "EngineSettings",
    "Option",
    "RunConfig",
    "RunResult",
    "ScenarioVariable",
    "SimulationResult",
    "compute_fingerprint",
    "validate_run_config",
    # Exception handling
    "DecisionRiskError",
    "ConfigurationError",
    "CorrelationMatrixError",
    "ComputationError",
    "CancellationRequested",
    # Logging
    "setup_logging",
    "get_logger",
]
