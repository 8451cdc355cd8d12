"""Tests for option payoff and total cost of risk evaluation."""

import numpy as np
import pytest

from decision_risk.core.data_models import RunConfig
from decision_risk.core.payoff import PayoffEvaluator


def _config(**overrides):
    data = {
        "seed": 1,
        "run_count": 100,
        "options": [{"id": "opt-a", "label": "Option A", "base_cost": 50.0, "base_expected_return": 100.0}],
        "scenario_variables": [
            {
                "id": "demand",
                "name": "Demand",
                "distribution": {"type": "normal", "mean": 0.0, "sd": 0.1},
                "applies_to": "return",
            },
            {
                "id": "inflation",
                "name": "Inflation",
                "distribution": {"type": "normal", "mean": 0.0, "sd": 0.1},
                "applies_to": "cost",
            },
        ],
    }
    data.update(overrides)
    return RunConfig.model_validate(data)


def _evaluate(config, demand, inflation):
    evaluator = PayoffEvaluator(config, config.scenario_variables)
    draws = {"demand": np.asarray(demand, dtype=float), "inflation": np.asarray(inflation, dtype=float)}
    n = len(draws["demand"])
    return evaluator.evaluate(config.options[0], draws, 0, n)


class TestPayoffEvaluator:
    """Test payoff composition per draw."""

    def test_no_shock(self):
        """Without shocks the outcome is return minus cost."""
        chunk = _evaluate(_config(), [0.0, 0.0], [0.0, 0.0])
        np.testing.assert_allclose(chunk.annual_outcome, [50.0, 50.0])
        np.testing.assert_allclose(chunk.tcor, [0.0, 0.0])

    def test_relative_shocks(self):
        """Shocks scale the base amounts."""
        chunk = _evaluate(_config(), [0.1, -0.1], [0.2, 0.0])
        np.testing.assert_allclose(chunk.annual_outcome, [110.0 - 60.0, 90.0 - 50.0])

    def test_weights(self):
        """Weights multiply each variable's shock."""
        config = _config()
        variables = [v.model_copy(update={"weight": 2.0}) if v.id == "demand" else v for v in config.scenario_variables]
        evaluator = PayoffEvaluator(config, variables)
        chunk = evaluator.evaluate(
            config.options[0], {"demand": np.array([0.1]), "inflation": np.array([0.0])}, 0, 1
        )
        np.testing.assert_allclose(chunk.annual_outcome, [120.0 - 50.0])

    def test_effective_amounts_floored_at_zero(self):
        """Effective return and cost never go negative."""
        chunk = _evaluate(_config(), [-3.0], [-3.0])
        np.testing.assert_allclose(chunk.annual_outcome, [0.0])

    @pytest.mark.parametrize("p_undercut,expected", [(1.0, 100 * 0.85 - 50 * 1.02), (0.0, 100 * 1.05 - 50.0)])
    def test_game_interaction(self, p_undercut, expected):
        """Competitor moves apply the strategy's multipliers."""
        config = _config(
            game_config={"p_undercut": p_undercut},
            option_strategies=[{"option_id": "opt-a", "strategy": "aggressive"}],
        )
        chunk = _evaluate(config, np.zeros(20), np.zeros(20))
        np.testing.assert_allclose(chunk.annual_outcome, np.full(20, expected))

    def test_game_without_strategy_is_inert(self):
        """Options without a strategy are not affected by the game."""
        chunk = _evaluate(_config(game_config={"p_undercut": 1.0}), [0.0], [0.0])
        np.testing.assert_allclose(chunk.annual_outcome, [50.0])

    def test_game_mixes_moves(self):
        """With an interior probability both moves occur."""
        config = _config(
            game_config={"p_undercut": 0.4},
            option_strategies=[{"option_id": "opt-a", "strategy": "conservative"}],
        )
        chunk = _evaluate(config, np.zeros(5000), np.zeros(5000))
        undercut_share = np.mean(np.isclose(chunk.annual_outcome, 95.0 - 50.0))
        assert set(np.round(chunk.annual_outcome, 6)) == {45.0, 50.0}
        assert undercut_share == pytest.approx(0.4, abs=0.03)

    def test_stress_overlay(self):
        """The stress overlay scales effective amounts after shocks."""
        config = _config(stress_overlay={"cost_multiplier": 1.1, "return_multiplier": 0.5})
        chunk = _evaluate(config, [0.0], [0.0])
        np.testing.assert_allclose(chunk.annual_outcome, [50.0 - 55.0])


class TestTotalCostOfRisk:
    """Test TCOR components."""

    def test_components(self):
        """Every component is derived from its own parameter."""
        config = _config(
            options=[{
                "id": "opt-a", "label": "Option A", "base_cost": 50.0,
                "base_expected_return": 100.0, "mitigation_cost": 2.0,
            }],
            tcor_params={"expected_loss": 1.0, "insurance_rate": 0.02, "contingency_rate": 0.05},
        )
        chunk = _evaluate(config, [0.0], [0.0])

        np.testing.assert_allclose(chunk.expected_loss, [1.0])
        np.testing.assert_allclose(chunk.insurance, [1.0])
        np.testing.assert_allclose(chunk.contingency, [2.5])
        np.testing.assert_allclose(chunk.mitigation, [2.0])
        np.testing.assert_allclose(chunk.tcor, [6.5])
        np.testing.assert_allclose(chunk.annual_outcome, [50.0 - 6.5])

    def test_mitigation_excluded(self):
        """Mitigation can be left out of TCOR."""
        config = _config(
            options=[{
                "id": "opt-a", "label": "Option A", "base_cost": 50.0,
                "base_expected_return": 100.0, "mitigation_cost": 2.0,
            }],
            tcor_params={"include_mitigation": False},
        )
        chunk = _evaluate(config, [0.0], [0.0])
        np.testing.assert_allclose(chunk.tcor, [0.0])

    def test_loss_variable(self):
        """Upside draws of the loss variable add expected loss."""
        config = _config(tcor_params={"loss_variable_id": "inflation", "loss_sensitivity": 0.5})
        chunk = _evaluate(config, [0.0, 0.0], [-0.1, 0.2])
        np.testing.assert_allclose(chunk.expected_loss, [0.0, 0.5 * 50.0 * 0.2])
