"""Stress testing against named presets and ad hoc scenarios.

A stress scenario rewrites the baseline configuration (post-shock cost and
return multipliers, scaled variable weights, replaced distributions) and
the pipeline is re-run with the same seed and run count. The report gives
the signed change of every metric per option relative to the baseline.
"""

from typing import Dict, Iterable, List, Optional, Union

from pydantic import Field

from .aggregation import SimulationEngine
from .cancellation import CancellationToken, run_sweep
from .data_models import (
    ConfigModel,
    Distribution,
    METRIC_NAMES,
    ResultModel,
    RunConfig,
    RunResult,
)
from .exceptions import ConfigurationError
from .logging_config import get_logger, log_performance
from .validation import validate_run_config

logger = get_logger(__name__)


class StressScenario(ConfigModel):
    """Named rewrite of a baseline configuration."""

    name: str
    description: str = ""
    cost_multiplier: float = Field(1.0, gt=0)
    return_multiplier: float = Field(1.0, ge=0)
    weight_multiplier: float = Field(1.0, gt=0)
    variable_overrides: Dict[str, Distribution] = Field(default_factory=dict)


STRESS_PRESETS: Dict[str, StressScenario] = {
    "base": StressScenario(
        name="base",
        description="Baseline assumptions",
    ),
    "cost_spike": StressScenario(
        name="cost_spike",
        description="Effective costs 15% higher after shocks",
        cost_multiplier=1.15,
    ),
    "demand_slump": StressScenario(
        name="demand_slump",
        description="Effective returns 25% lower after shocks",
        return_multiplier=0.75,
    ),
    "volatility_up": StressScenario(
        name="volatility_up",
        description="Every scenario variable weighs 50% more",
        weight_multiplier=1.5,
    ),
}


class OptionStressDelta(ResultModel):
    option_id: str
    option_label: str
    baseline: Dict[str, Optional[float]]
    stressed: Dict[str, Optional[float]]
    delta: Dict[str, Optional[float]]


class StressReport(ResultModel):
    scenario: str
    description: str = ""
    baseline_run_id: str
    stressed_run_id: str
    options: List[OptionStressDelta]


def resolve_scenario(scenario: Union[str, StressScenario]) -> StressScenario:
    if isinstance(scenario, StressScenario):
        return scenario
    if scenario not in STRESS_PRESETS:
        raise ConfigurationError(
            f"Unknown stress preset '{scenario}'. Available: {sorted(STRESS_PRESETS)}",
            field="scenario",
            value=scenario,
        )
    return STRESS_PRESETS[scenario]


def apply_scenario(config: RunConfig, scenario: StressScenario) -> RunConfig:
    """Build the stressed configuration for ``scenario``.

    Raises:
        ConfigurationError: An override names an unknown variable
    """
    known = {variable.id for variable in config.scenario_variables}
    for variable_id in scenario.variable_overrides:
        if variable_id not in known:
            raise ConfigurationError(
                f"Stress scenario '{scenario.name}' overrides unknown variable '{variable_id}'",
                field=f"variable_overrides.{variable_id}",
                value=variable_id,
            )

    data = config.model_dump()
    for variable in data['scenario_variables']:
        variable['weight'] = variable['weight'] * scenario.weight_multiplier
        override = scenario.variable_overrides.get(variable['id'])
        if override is not None:
            variable['distribution'] = override.model_dump()

    if scenario.cost_multiplier != 1.0 or scenario.return_multiplier != 1.0:
        overlay = data.get('stress_overlay') or {'cost_multiplier': 1.0, 'return_multiplier': 1.0}
        data['stress_overlay'] = {
            'cost_multiplier': overlay['cost_multiplier'] * scenario.cost_multiplier,
            'return_multiplier': overlay['return_multiplier'] * scenario.return_multiplier,
        }

    return validate_run_config(data)


def compare_runs(baseline: RunResult, stressed: RunResult) -> List[OptionStressDelta]:
    """Signed per-metric change of ``stressed`` relative to ``baseline``."""
    deltas = []
    for base_result in baseline.results:
        stress_result = stressed.result_for(base_result.option_id)
        base_values = {name: base_result.metric(name) for name in METRIC_NAMES}
        stress_values = {name: stress_result.metric(name) for name in METRIC_NAMES}
        delta = {
            name: (stress_values[name] - base_values[name])
            if stress_values[name] is not None and base_values[name] is not None
            else None
            for name in METRIC_NAMES
        }
        deltas.append(OptionStressDelta(
            option_id=base_result.option_id,
            option_label=base_result.option_label,
            baseline=base_values,
            stressed=stress_values,
            delta=delta,
        ))
    return deltas


class StressTester:
    """Runs stress scenarios against a baseline through a simulation engine.

    Args:
        engine: Engine used for every run; its cache is shared across scenarios
        max_workers: Scenarios executed concurrently
    """

    def __init__(self, engine: Optional[SimulationEngine] = None, max_workers: int = 1):
        self.engine = engine or SimulationEngine()
        self.max_workers = max_workers

    def run_scenario(self, config, scenario: Union[str, StressScenario]) -> StressReport:
        """Run one preset (by name) or ad hoc scenario against the baseline."""
        return self.run_scenarios(config, [scenario])[resolve_scenario(scenario).name]

    @log_performance
    def run_scenarios(
        self,
        config,
        scenarios: Optional[Iterable[Union[str, StressScenario]]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Dict[str, StressReport]:
        """Run several scenarios; every preset when ``scenarios`` is omitted.

        Args:
            config: Baseline RunConfig or raw configuration mapping
            scenarios: Preset names or StressScenario objects
            token: Cancellation token checked between runs

        Returns:
            Reports keyed by scenario name, in the order given

        Raises:
            ConfigurationError: Unknown preset or invalid override
            CancellationRequested: ``token`` was cancelled mid-sweep
        """
        baseline_config = validate_run_config(config)
        resolved = [resolve_scenario(s) for s in (scenarios if scenarios is not None else STRESS_PRESETS)]
        stressed_configs = {s.name: apply_scenario(baseline_config, s) for s in resolved}

        tasks = [("__baseline__", lambda: self.engine.run(baseline_config))]
        tasks.extend(
            (name, lambda c=stressed: self.engine.run(c)) for name, stressed in stressed_configs.items()
        )
        runs = run_sweep(tasks, max_workers=self.max_workers, token=token)
        baseline = runs["__baseline__"]

        reports = {}
        for scenario in resolved:
            stressed = runs[scenario.name]
            reports[scenario.name] = StressReport(
                scenario=scenario.name,
                description=scenario.description,
                baseline_run_id=baseline.run_id,
                stressed_run_id=stressed.run_id,
                options=compare_runs(baseline, stressed),
            )
            logger.debug(
                f"Stress scenario '{scenario.name}' complete",
                extra={'component': 'stress', 'scenario': scenario.name, 'run_id': stressed.run_id}
            )
        return reports
