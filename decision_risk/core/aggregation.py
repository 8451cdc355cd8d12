"""Monte Carlo simulation orchestration and aggregation.

Main simulation engine that coordinates prior blending, dependence,
sampling, payoff evaluation and metric aggregation for one RunConfig.
Draws are produced in chunks that may be evaluated on a thread pool; every
chunk is independent, so results do not depend on worker count or chunk
size. Aggregation starts only after all chunks have completed.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from .bayesian import BayesianPriorBlender
from .cache import FingerprintCache
from .correlation import GaussianCopula
from .data_models import EngineSettings, RunConfig, RunResult
from .distributions import DistributionSampler
from .fingerprint import compute_fingerprint, run_id_for
from .logging_config import get_logger
from .metrics import RiskMetricAggregator
from .payoff import PayoffChunk, PayoffEvaluator
from .performance import RunTimer
from .sampler import plan_chunks, variable_stream
from .validation import validate_run_config

logger = get_logger(__name__)

TCOR_COMPONENTS = ('expected_loss', 'insurance', 'contingency', 'mitigation')


@dataclass
class ChunkOutput:
    start: int
    stop: int
    draws: Dict[str, np.ndarray]
    payoffs: Dict[str, PayoffChunk]


@dataclass
class SimulationSamples:
    """Per-draw arrays of a run, kept only on request."""

    variable_draws: Dict[str, np.ndarray] = field(default_factory=dict)
    annual_outcomes: Dict[str, np.ndarray] = field(default_factory=dict)
    outcomes: Dict[str, np.ndarray] = field(default_factory=dict)


def _resolve_max_workers(max_workers: Optional[int], n_chunks: int) -> int:
    """Bound pool size by the requested maximum, chunk count and CPUs."""
    if max_workers is None:
        return max(1, min(n_chunks, os.cpu_count() or 1))
    return max(1, min(max_workers, n_chunks))


class _RunPlan:
    """Everything resolved once per run before any chunk is sampled."""

    def __init__(self, config: RunConfig):
        self.config = config
        self.variables, self.blends = BayesianPriorBlender.apply(
            config.scenario_variables, config.bayesian_overrides
        )
        self.copula = (
            GaussianCopula(config.dependence_config, config.copula_config)
            if config.dependence_config is not None
            else None
        )
        self.evaluator = PayoffEvaluator(config, self.variables)

    def sample_chunk(self, start: int, stop: int) -> Dict[str, np.ndarray]:
        """Scenario variable draws for draw indices ``start..stop-1``."""
        seed = self.config.seed
        latents = {v.id: variable_stream(seed, v.id).standard_normals(start, stop) for v in self.variables}

        if self.copula is not None:
            ids = self.copula.variable_ids
            correlated = self.copula.correlate(np.column_stack([latents[v] for v in ids]))
            for index, variable_id in enumerate(ids):
                latents[variable_id] = correlated[:, index]

        return {v.id: DistributionSampler.from_latent(v.distribution, latents[v.id]) for v in self.variables}

    def evaluate_chunk(self, bounds: Tuple[int, int]) -> ChunkOutput:
        start, stop = bounds
        draws = self.sample_chunk(start, stop)
        payoffs = {
            option.id: self.evaluator.evaluate(option, draws, start, stop)
            for option in self.config.options
        }
        return ChunkOutput(start=start, stop=stop, draws=draws, payoffs=payoffs)


class SimulationEngine:
    """Main Monte Carlo simulation engine.

    Runs are cached by fingerprint: an identical configuration returns the
    stored result, and concurrent requests for the same fingerprint share a
    single computation.

    Args:
        settings: Execution settings (workers, chunk size, cache size)
        cache: Shared cache; a private one is created when omitted
    """

    def __init__(self, settings: Optional[EngineSettings] = None, cache: Optional[FingerprintCache] = None):
        self.settings = settings or EngineSettings()
        self.cache = cache if cache is not None else FingerprintCache(self.settings.cache_size)

    def run(self, config: Union[RunConfig, Dict[str, Any]]) -> RunResult:
        """Validate, fingerprint and run ``config``.

        Args:
            config: RunConfig or raw configuration mapping

        Returns:
            Run result with per-option metrics

        Raises:
            ConfigurationError: Configuration is invalid; nothing was sampled
        """
        config = validate_run_config(config)
        fingerprint = compute_fingerprint(config)
        return self.cache.get_or_compute(fingerprint, lambda: self._execute(config, fingerprint)[0])

    def simulate(self, config: Union[RunConfig, Dict[str, Any]]) -> Tuple[RunResult, SimulationSamples]:
        """Run ``config`` without the cache and keep every per-draw array."""
        config = validate_run_config(config)
        fingerprint = compute_fingerprint(config)
        return self._execute(config, fingerprint, keep_samples=True)

    def _execute(
        self,
        config: RunConfig,
        fingerprint: str,
        keep_samples: bool = False,
    ) -> Tuple[RunResult, SimulationSamples]:
        run_id = run_id_for(fingerprint)

        timer = RunTimer(config.run_count)

        with timer.stage("plan"):
            plan = _RunPlan(config)
            chunks = plan_chunks(config.run_count, self.settings.chunk_size)
            workers = _resolve_max_workers(self.settings.workers, len(chunks))

        with timer.stage("sample"):
            if workers > 1:
                with ThreadPoolExecutor(max_workers=workers) as executor:
                    outputs = list(executor.map(plan.evaluate_chunk, chunks))
            else:
                outputs = [plan.evaluate_chunk(bounds) for bounds in chunks]

        with timer.stage("aggregate"):
            result, samples = self._aggregate(config, plan, outputs, run_id, fingerprint, keep_samples)

        timing = timer.timing
        logger.info(
            f"Completed {config.run_count:,} draws for {len(config.options)} option(s) "
            f"in {timing.total_seconds:.3f}s ({timing.draws_per_second:,.0f} draws/s)",
            extra={
                'component': 'engine',
                'run_id': run_id,
                'workers': workers,
                'chunks': len(chunks),
                **timing.as_log_context(),
            }
        )
        return result, samples

    @staticmethod
    def _aggregate(
        config: RunConfig,
        plan: _RunPlan,
        outputs: List[ChunkOutput],
        run_id: str,
        fingerprint: str,
        keep_samples: bool,
    ) -> Tuple[RunResult, SimulationSamples]:
        samples = SimulationSamples()
        results = []

        for option in config.options:
            annual = np.concatenate([out.payoffs[option.id].annual_outcome for out in outputs])
            tcor_means = None
            if config.tcor_params is not None:
                tcor_means = {
                    name: float(np.mean(np.concatenate([getattr(out.payoffs[option.id], name) for out in outputs])))
                    for name in TCOR_COMPONENTS
                }

            horizon = config.effective_horizon(option)
            results.append(RiskMetricAggregator.aggregate(
                option,
                horizon,
                annual,
                tcor_means,
                config.utility_params,
                config.capital_convention,
                config.tcor_params,
            ))

            if keep_samples:
                samples.annual_outcomes[option.id] = annual
                samples.outcomes[option.id] = annual * (horizon / 12.0)

        if keep_samples:
            samples.variable_draws = {
                v.id: np.concatenate([out.draws[v.id] for out in outputs]) for v in plan.variables
            }

        dependence_fit = None
        warnings = []
        if plan.copula is not None:
            covered = np.column_stack([
                np.concatenate([out.draws[variable_id] for out in outputs])
                for variable_id in plan.copula.variable_ids
            ])
            dependence_fit = plan.copula.fit_report(covered)
            if dependence_fit.repaired:
                warnings.append(
                    f"Dependence matrix was not positive semi-definite; repaired with Frobenius "
                    f"distance {dependence_fit.repair_frobenius:.6g}"
                )

        for result in results:
            for notice in result.notices:
                warnings.append(f"{result.option_id}: {notice.message}")

        return RunResult(
            run_id=run_id,
            fingerprint=fingerprint,
            seed=config.seed,
            run_count=config.run_count,
            horizon_months=config.horizon_months,
            results=results,
            dependence_fit=dependence_fit,
            bayes=plan.blends,
            warnings=warnings,
        ), samples


def run_simulation(
    config: Union[RunConfig, Dict[str, Any]],
    settings: Optional[EngineSettings] = None,
) -> RunResult:
    """Run a single simulation with a fresh engine.

    Args:
        config: RunConfig or raw configuration mapping
        settings: Execution settings

    Returns:
        Run result
    """
    return SimulationEngine(settings).run(config)
