"""Exception hierarchy for the decision risk engine.

Every error carries a category, a severity, a context mapping and recovery
suggestions, and serialises with ``to_dict`` for structured logs and CLI
output. Subclasses declare their defaults as class attributes.

Numerical degeneracies are not exceptions: they are recovered inside the
metric aggregator and reported as notices on the affected result.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    COMPUTATION = "computation"
    CANCELLATION = "cancellation"
    IO = "io"
    SYSTEM = "system"


class DecisionRiskError(Exception):
    """Base exception for all decision risk engine errors.

    Args:
        message: Human-readable error description
        context: Extra key/value context, merged over the subclass context
        recovery_suggestions: Overrides the class default suggestions
        severity: Overrides the class default severity
        cause: Original exception, if any
    """

    category: ErrorCategory = ErrorCategory.SYSTEM
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    default_suggestions: Tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recovery_suggestions: Optional[List[str]] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})
        self.recovery_suggestions = list(recovery_suggestions or self.default_suggestions)
        if severity is not None:
            self.severity = severity
        self.cause = cause

    @property
    def error_code(self) -> str:
        return f"DR_{type(self).__name__.upper()}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_code': self.error_code,
            'exception_type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions,
            'cause': repr(self.cause) if self.cause else None,
        }


class ConfigurationError(DecisionRiskError):
    """Raised when a run configuration is invalid.

    Always raised before any sampling starts. ``field`` holds the dotted
    path of the offending field, e.g. ``scenario_variables.0.distribution.sd``.
    """

    category = ErrorCategory.CONFIGURATION
    default_suggestions = (
        "Check the named field against its documented range",
        "Verify every referenced id exists in the configuration",
        "Run the 'validate' command for a full error listing",
    )

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.context.update(field=field, value=value)
        self.field = field
        self.value = value


class CorrelationMatrixError(ConfigurationError):
    """Raised when a dependence matrix is malformed or cannot be repaired."""

    default_suggestions = (
        "Keep correlations within [-1, 1]",
        "Use a square, symmetric matrix with a unit diagonal",
        "Enable copula_config.use_nearest_psd to repair non-PSD targets",
    )

    def __init__(self, message: str, matrix_property: str, **kwargs):
        super().__init__(message, **kwargs)
        self.context['matrix_property'] = matrix_property
        self.matrix_property = matrix_property


class ComputationError(DecisionRiskError):
    """Unexpected numerical failure inside a run."""

    category = ErrorCategory.COMPUTATION
    severity = ErrorSeverity.HIGH
    default_suggestions = (
        "Check distribution parameters for extreme values",
        "Re-run with --log-level DEBUG and report the run id",
    )

    def __init__(self, message: str, operation: str, **kwargs):
        super().__init__(message, **kwargs)
        self.context['operation'] = operation
        self.operation = operation


class CancellationRequested(DecisionRiskError):
    """Raised when a sweep is cancelled between runs.

    ``completed`` maps the label of every run that finished before the
    cancellation was observed to its result; those runs also remain in the
    engine cache.
    """

    category = ErrorCategory.CANCELLATION
    severity = ErrorSeverity.LOW
    default_suggestions = ("Re-submit the sweep; completed runs are served from cache",)

    def __init__(self, message: str, completed: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.completed = dict(completed or {})
        self.context['completed_runs'] = sorted(self.completed)


class FileFormatError(DecisionRiskError):
    """Raised when an input file is missing, unsupported or unparsable."""

    category = ErrorCategory.IO
    default_suggestions = (
        "Check the file path exists and is readable",
        "Use a .json, .yaml or .yml configuration file",
    )

    def __init__(self, message: str, file_path: Optional[str] = None, expected_format: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.context.update(file_path=file_path, expected_format=expected_format)
        self.file_path = file_path


class SnapshotStoreError(DecisionRiskError):
    """Raised when a snapshot cannot be read or written."""

    category = ErrorCategory.IO
    default_suggestions = (
        "Check the snapshot directory exists and is writable",
        "Re-run the simulation to regenerate a corrupt snapshot",
    )

    def __init__(self, message: str, location: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.context['location'] = location
