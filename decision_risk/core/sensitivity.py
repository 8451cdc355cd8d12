"""Sensitivity analysis and tornado rankings.

Two rankings are offered for an option:

* rank correlation: Spearman correlation between each scenario variable's
  draws and the option's outcomes, from a single run;
* one-at-a-time: each input is perturbed by +/- ``step_pct`` percent and the
  pipeline re-run with the same seed and run count, holding everything else
  at baseline; the impact is the larger absolute change of the target metric.

Both rankings order entries by descending absolute impact, ties broken by
name, so the ordering is deterministic for a fixed seed.
"""

import warnings
from typing import Callable, List, Optional, Tuple

import numpy as np
from scipy import stats

from .aggregation import SimulationEngine
from .cancellation import CancellationToken, run_sweep
from .data_models import (
    LogNormalDistribution,
    NormalDistribution,
    ResultModel,
    RunConfig,
    METRIC_NAMES,
)
from .logging_config import get_logger, log_performance
from .validation import validate_run_config

logger = get_logger(__name__)


class TornadoEntry(ResultModel):
    param_name: str
    param_type: str
    impact: float
    delta_plus: Optional[float] = None
    delta_minus: Optional[float] = None
    percent_plus: Optional[float] = None
    percent_minus: Optional[float] = None


class TornadoReport(ResultModel):
    option_id: str
    method: str
    metric: Optional[str] = None
    baseline: Optional[float] = None
    step_pct: Optional[float] = None
    entries: List[TornadoEntry]


def _ranked(entries: List[TornadoEntry]) -> List[TornadoEntry]:
    return sorted(entries, key=lambda e: (-abs(e.impact), e.param_name))


def _percent(delta: Optional[float], baseline: Optional[float]) -> Optional[float]:
    if delta is None or baseline is None or baseline == 0:
        return None
    return delta / abs(baseline) * 100.0


class SensitivityAnalyzer:
    """Performs sensitivity analysis through a simulation engine.

    Args:
        engine: Engine used for every run; its cache is shared across sweeps
        max_workers: Perturbed runs executed concurrently
    """

    def __init__(self, engine: Optional[SimulationEngine] = None, max_workers: int = 1):
        self.engine = engine or SimulationEngine()
        self.max_workers = max_workers

    def rank_correlation_tornado(self, config, option_id: str) -> TornadoReport:
        """Rank scenario variables by rank correlation with an option's outcomes.

        Args:
            config: RunConfig or raw configuration mapping
            option_id: Option whose outcomes are attributed

        Returns:
            Ranked tornado entries with the signed Spearman coefficient as impact
        """
        config = validate_run_config(config)
        config.option(option_id)
        _, samples = self.engine.simulate(config)
        outcomes = samples.outcomes[option_id]

        entries = []
        for variable in config.scenario_variables:
            draws = samples.variable_draws[variable.id]
            if np.std(draws) > 0 and np.std(outcomes) > 0:
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore")
                    rho, _ = stats.spearmanr(draws, outcomes)
                rho = 0.0 if np.isnan(rho) else float(rho)
            else:
                rho = 0.0
            entries.append(TornadoEntry(param_name=variable.name, param_type="variable", impact=rho))

        return TornadoReport(option_id=option_id, method="rank_correlation", entries=_ranked(entries))

    @log_performance
    def one_at_a_time_tornado(
        self,
        config,
        option_id: str,
        metric: str = "raroc",
        step_pct: float = 10.0,
        token: Optional[CancellationToken] = None,
    ) -> TornadoReport:
        """Rank inputs by the metric swing of a +/- ``step_pct`` perturbation.

        Perturbed inputs: the option's base cost and base return, every
        scenario variable's weight, and the mean (normal) or mu (log-normal)
        of every scenario variable whose location is non-zero.

        Args:
            config: RunConfig or raw configuration mapping
            option_id: Option whose metric is measured
            metric: Result field to measure, e.g. ``raroc``, ``ev``,
                ``certainty_equivalent``
            step_pct: Perturbation size in percent, in (0, 100)
            token: Cancellation token checked between runs

        Returns:
            Ranked tornado entries with ``impact = max(|delta+|, |delta-|)``

        Raises:
            CancellationRequested: ``token`` was cancelled mid-sweep
        """
        if metric not in METRIC_NAMES:
            raise ValueError(f"Unknown metric '{metric}'; expected one of {METRIC_NAMES}")
        if not 0 < step_pct < 100:
            raise ValueError("step_pct must lie strictly between 0 and 100")

        base = self._single_option(validate_run_config(config), option_id)
        perturbations = self._perturbations(base, option_id)

        tasks = [("baseline", lambda: self.engine.run(base))]
        for index, (_, _, build) in enumerate(perturbations):
            for sign, factor in (("+", 1 + step_pct / 100.0), ("-", 1 - step_pct / 100.0)):
                tasks.append((f"{index}{sign}", lambda b=build, f=factor: self.engine.run(b(f))))

        runs = run_sweep(tasks, max_workers=self.max_workers, token=token)
        baseline = runs["baseline"].result_for(option_id).metric(metric)

        entries = []
        for index, (name, param_type, _) in enumerate(perturbations):
            plus = runs[f"{index}+"].result_for(option_id).metric(metric)
            minus = runs[f"{index}-"].result_for(option_id).metric(metric)
            delta_plus = plus - baseline if plus is not None and baseline is not None else None
            delta_minus = minus - baseline if minus is not None and baseline is not None else None
            impact = max(abs(d) for d in (delta_plus, delta_minus, 0.0) if d is not None)
            entries.append(TornadoEntry(
                param_name=name,
                param_type=param_type,
                impact=impact,
                delta_plus=delta_plus,
                delta_minus=delta_minus,
                percent_plus=_percent(delta_plus, baseline),
                percent_minus=_percent(delta_minus, baseline),
            ))

        logger.info(
            f"One-at-a-time tornado over {len(perturbations)} inputs for '{option_id}'",
            extra={'component': 'sensitivity', 'option_id': option_id, 'runs': len(tasks)}
        )
        return TornadoReport(
            option_id=option_id,
            method="one_at_a_time",
            metric=metric,
            baseline=baseline,
            step_pct=step_pct,
            entries=_ranked(entries),
        )

    @staticmethod
    def _single_option(config: RunConfig, option_id: str) -> RunConfig:
        option = config.option(option_id)
        return config.model_copy(update={
            'options': [option],
            'option_strategies': [s for s in config.option_strategies if s.option_id == option_id],
        })

    @staticmethod
    def _perturbations(config: RunConfig, option_id: str) -> List[Tuple[str, str, Callable[[float], RunConfig]]]:
        option = config.option(option_id)
        perturbations = []

        def with_option(**changes):
            def build(factor: float) -> RunConfig:
                updated = option.model_copy(update={k: v * factor for k, v in changes.items()})
                return config.model_copy(update={'options': [updated]})
            return build

        def with_variable(index: int, weight: bool):
            def build(factor: float) -> RunConfig:
                variables = list(config.scenario_variables)
                variable = variables[index]
                if weight:
                    variables[index] = variable.model_copy(update={'weight': variable.weight * factor})
                else:
                    dist = variable.distribution
                    key = 'mean' if isinstance(dist, NormalDistribution) else 'mu'
                    shifted = dist.model_copy(update={key: getattr(dist, key) * factor})
                    variables[index] = variable.model_copy(update={'distribution': shifted})
                return config.model_copy(update={'scenario_variables': variables})
            return build

        perturbations.append((f"{option.label}: cost", "cost", with_option(base_cost=option.base_cost)))
        perturbations.append((f"{option.label}: return", "return", with_option(base_expected_return=option.base_expected_return)))

        for index, variable in enumerate(config.scenario_variables):
            perturbations.append((f"{variable.name}: weight", "weight", with_variable(index, weight=True)))
            dist = variable.distribution
            if isinstance(dist, NormalDistribution) and dist.mean != 0:
                perturbations.append((f"{variable.name}: mean", "mean", with_variable(index, weight=False)))
            elif isinstance(dist, LogNormalDistribution) and dist.mu != 0:
                perturbations.append((f"{variable.name}: mu", "mean", with_variable(index, weight=False)))

        return perturbations
