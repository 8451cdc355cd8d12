"""Option payoff and total-cost-of-risk evaluation.

For each draw an option's outcome over its horizon is

    outcome = h * [(R0 + return_shock) - (C0 + cost_shock) - TCOR]

with ``h = horizon_months / 12``. Shocks are relative to the option's base
amounts: a return variable drawn at ``x`` with weight ``w`` moves the return
by ``R0 * w * x``. Effective return and cost never go below zero. The
competitor game and stress overlay scale the effective amounts after the
shocks.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .data_models import (
    AppliesTo,
    CompetitorMove,
    Option,
    RunConfig,
    ScenarioVariable,
    TCORParams,
)
from .sampler import game_stream


@dataclass
class PayoffChunk:
    """Per-draw values of one option over one chunk, before horizon scaling."""

    annual_outcome: np.ndarray
    tcor: np.ndarray
    expected_loss: np.ndarray
    insurance: np.ndarray
    contingency: np.ndarray
    mitigation: np.ndarray


class PayoffEvaluator:
    """Evaluates option payoffs from scenario variable draws.

    Args:
        config: Run configuration
        variables: Effective scenario variables (after prior blending)
    """

    def __init__(self, config: RunConfig, variables: List[ScenarioVariable]):
        self.config = config
        ordered = sorted(variables, key=lambda v: v.id)
        self.return_weights = [(v.id, v.weight) for v in ordered if v.applies_to is AppliesTo.RETURN]
        self.cost_weights = [(v.id, v.weight) for v in ordered if v.applies_to is AppliesTo.COST]

    @staticmethod
    def horizon_factor(horizon_months: int) -> float:
        return horizon_months / 12.0

    @staticmethod
    def _relative_shock(weights, draws: Dict[str, np.ndarray], n: int) -> np.ndarray:
        shock = np.zeros(n)
        for variable_id, weight in weights:
            shock = shock + weight * draws[variable_id]
        return shock

    def evaluate(self, option: Option, draws: Dict[str, np.ndarray], start: int, stop: int) -> PayoffChunk:
        """Evaluate ``option`` for draws ``start..stop-1``.

        Args:
            option: Option to evaluate
            draws: Scenario variable draws for the chunk keyed by variable id
            start: First draw index of the chunk
            stop: One past the last draw index

        Returns:
            Annual outcome and TCOR components per draw
        """
        n = stop - start
        config = self.config

        effective_return = np.maximum(
            0.0, option.base_expected_return * (1.0 + self._relative_shock(self.return_weights, draws, n))
        )
        effective_cost = np.maximum(
            0.0, option.base_cost * (1.0 + self._relative_shock(self.cost_weights, draws, n))
        )

        strategy = config.strategy_for(option.id)
        if config.game_config is not None and strategy is not None:
            game = config.game_config
            u = game_stream(config.seed, option.id).uniforms(start, stop)[:, 0]
            undercut = u < game.p_undercut
            on_undercut = game.multipliers_for(CompetitorMove.UNDERCUT)
            on_match = game.multipliers_for(CompetitorMove.MATCH)
            effective_return = effective_return * np.where(
                undercut,
                on_undercut.return_multiplier.for_strategy(strategy),
                on_match.return_multiplier.for_strategy(strategy),
            )
            effective_cost = effective_cost * np.where(
                undercut,
                on_undercut.cost_multiplier.for_strategy(strategy),
                on_match.cost_multiplier.for_strategy(strategy),
            )

        if config.stress_overlay is not None:
            effective_return = effective_return * config.stress_overlay.return_multiplier
            effective_cost = effective_cost * config.stress_overlay.cost_multiplier

        components = self._tcor_components(config.tcor_params, option, draws, n)
        tcor = components['expected_loss'] + components['insurance'] + components['contingency'] + components['mitigation']

        return PayoffChunk(
            annual_outcome=effective_return - effective_cost - tcor,
            tcor=tcor,
            **components,
        )

    @staticmethod
    def _tcor_components(
        params: Optional[TCORParams],
        option: Option,
        draws: Dict[str, np.ndarray],
        n: int,
    ) -> Dict[str, np.ndarray]:
        """Per-draw TCOR components.

        Capital-based contingency and outcome-based expected loss are summary
        figures added by the metric aggregator; they are not charged per draw.
        """
        zeros = np.zeros(n)
        if params is None:
            return {
                'expected_loss': zeros,
                'insurance': zeros,
                'contingency': zeros,
                'mitigation': zeros,
            }

        expected_loss = np.full(n, params.expected_loss)
        if params.loss_variable_id is not None and params.loss_sensitivity > 0:
            upside = np.maximum(0.0, draws[params.loss_variable_id])
            expected_loss = expected_loss + params.loss_sensitivity * option.base_cost * upside

        mitigation = option.mitigation_cost or 0.0
        if not params.include_mitigation:
            mitigation = 0.0

        return {
            'expected_loss': expected_loss,
            'insurance': np.full(n, params.insurance_rate * option.base_cost),
            'contingency': np.full(n, params.contingency_rate * option.base_cost),
            'mitigation': np.full(n, mitigation),
        }
