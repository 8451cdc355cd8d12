"""Validation of run configurations.

Structural rules live on the pydantic models; this module turns their
failures into ConfigurationError with the dotted path of the offending
field, and adds the checks that need numerical work (positive
semi-definiteness) or only merit a warning.
"""

from typing import Any, Dict, List, Tuple, Union

import numpy as np
from pydantic import ValidationError as PydanticValidationError

from .correlation import is_positive_semidefinite
from .data_models import EngineSettings, RunConfig, UtilityMode
from .exceptions import ConfigurationError, CorrelationMatrixError

LOW_RUN_COUNT = 1000


def _field_path(loc) -> str:
    return ".".join(str(part) for part in loc) if loc else "<root>"


def _message(error: Dict[str, Any]) -> str:
    message = error.get('msg', 'invalid value')
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message


def _errors_from_pydantic(exc: PydanticValidationError) -> List[Tuple[str, str, Any]]:
    return [(_field_path(err.get('loc')), _message(err), err.get('input')) for err in exc.errors()]


def validate_run_config(data: Union[RunConfig, Dict[str, Any]]) -> RunConfig:
    """Validate raw input into a RunConfig.

    Args:
        data: Raw configuration mapping, or an already built RunConfig

    Returns:
        Validated, immutable RunConfig

    Raises:
        ConfigurationError: First violated rule, naming its field
        CorrelationMatrixError: Dependence matrix is malformed, or not PSD
            while repair is disabled
    """
    if isinstance(data, RunConfig):
        config = data
    else:
        try:
            config = RunConfig.model_validate(data)
        except PydanticValidationError as e:
            field, message, value = _errors_from_pydantic(e)[0]
            if field.startswith("dependence_config"):
                raise CorrelationMatrixError(
                    f"{field}: {message}", matrix_property="structure", field=field, value=value, cause=e
                ) from e
            raise ConfigurationError(f"{field}: {message}", field=field, value=value, cause=e) from e

    _check_dependence_repairable(config)
    return config


def validate_engine_settings(data: Dict[str, Any]) -> EngineSettings:
    """Validate the engine section of a configuration file.

    Raises:
        ConfigurationError: First violated rule, with its field under ``engine.``
    """
    try:
        return EngineSettings.model_validate(data)
    except PydanticValidationError as e:
        field, message, value = _errors_from_pydantic(e)[0]
        field = f"engine.{field}"
        raise ConfigurationError(f"{field}: {message}", field=field, value=value, cause=e) from e


def _check_dependence_repairable(config: RunConfig) -> None:
    if config.dependence_config is None:
        return
    use_repair = config.copula_config.use_nearest_psd if config.copula_config else True
    if not use_repair and not is_positive_semidefinite(np.array(config.dependence_config.matrix)):
        raise CorrelationMatrixError(
            "dependence_config.matrix: not positive semi-definite and copula_config.use_nearest_psd is false",
            matrix_property="positive_semidefinite",
            field="dependence_config.matrix",
        )


class ValidationEngine:
    """Collects every error and warning for a configuration."""

    def __init__(self, fail_on_warnings: bool = False):
        """Initialize validation engine.

        Args:
            fail_on_warnings: Whether to treat warnings as errors
        """
        self.fail_on_warnings = fail_on_warnings
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate(self, data: Union[RunConfig, Dict[str, Any]]) -> Tuple[bool, List[str], List[str]]:
        """Validate a configuration.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors = []
        self.warnings = []

        if isinstance(data, RunConfig):
            config = data
        else:
            try:
                config = RunConfig.model_validate(data)
            except PydanticValidationError as e:
                self.errors = [f"{field}: {message}" for field, message, _ in _errors_from_pydantic(e)]
                return False, self.errors, self.warnings

        try:
            _check_dependence_repairable(config)
        except ConfigurationError as e:
            self.errors.append(e.message)

        self._collect_warnings(config)

        is_valid = not self.errors and not (self.fail_on_warnings and self.warnings)
        return is_valid, self.errors, self.warnings

    def _collect_warnings(self, config: RunConfig) -> None:
        if config.run_count < LOW_RUN_COUNT:
            self.warnings.append(
                f"run_count: {config.run_count} draws leave wide sampling error on tail metrics"
            )

        dependence = config.dependence_config
        if dependence is not None and not is_positive_semidefinite(np.array(dependence.matrix)):
            self.warnings.append(
                "dependence_config.matrix: not positive semi-definite; the nearest correlation matrix will be used"
            )

        if config.game_config is not None and not config.option_strategies:
            self.warnings.append("game_config: no option_strategies given, the game affects no option")

        utility = config.utility_params
        if utility is not None and utility.mode in (UtilityMode.CRRA, UtilityMode.POWER):
            self.warnings.append(
                f"utility_params.mode: {utility.mode.value} is undefined when any outcome is non-positive"
            )

        for index, option in enumerate(config.options):
            if option.base_cost == 0 and option.base_expected_return == 0:
                self.warnings.append(f"options.{index}: base cost and return are both 0")
