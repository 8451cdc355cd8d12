"""Bayesian prior blending for scenario variables.

A prior on a variable's central tendency is combined with the variable's
own distribution as a conjugate normal update: precisions add and the
posterior mean is the precision-weighted average. Blending runs once per
run, before any sampling.
"""

import math
from typing import List, Tuple

from .data_models import BayesianBlend, BayesianPriorOverride, ScenarioVariable
from .distributions import location_and_spread, with_location_and_spread
from .logging_config import get_logger

logger = get_logger(__name__)


def blend_moments(prior_mean: float, prior_sd: float, mean: float, sd: float) -> Tuple[float, float]:
    """Posterior mean and standard deviation of a normal-normal update.

    A variable with zero spread carries infinite precision and is returned
    unchanged.

    Args:
        prior_mean: Prior central tendency
        prior_sd: Prior spread, must be positive
        mean: Variable central tendency
        sd: Variable spread

    Returns:
        (posterior_mean, posterior_sd)
    """
    if sd <= 0:
        return mean, 0.0

    prior_precision = 1.0 / prior_sd ** 2
    precision = 1.0 / sd ** 2
    total = prior_precision + precision

    posterior_mean = (prior_mean * prior_precision + mean * precision) / total
    posterior_sd = math.sqrt(1.0 / total)
    return posterior_mean, posterior_sd


class BayesianPriorBlender:
    """Applies prior overrides to scenario variables."""

    @staticmethod
    def apply(
        variables: List[ScenarioVariable],
        overrides: List[BayesianPriorOverride],
    ) -> Tuple[List[ScenarioVariable], List[BayesianBlend]]:
        """Blend every override into its variable.

        Overrides with ``applied = False`` are still reported with the blend
        they would have produced, but leave the variable untouched.

        Returns:
            (effective variables in input order, blend records in override order)
        """
        by_id = {variable.id: variable for variable in variables}
        replaced = {}
        blends = []

        for override in overrides:
            variable = by_id[override.variable_id]
            mean, sd = location_and_spread(variable.distribution)
            posterior_mean, posterior_sd = blend_moments(override.prior_mean, override.prior_sd, mean, sd)

            blends.append(BayesianBlend(
                variable_id=variable.id,
                prior_mean=override.prior_mean,
                prior_sd=override.prior_sd,
                variable_mean=mean,
                variable_sd=sd,
                posterior_mean=posterior_mean,
                posterior_sd=posterior_sd,
                applied=override.applied,
            ))

            if override.applied:
                distribution = with_location_and_spread(variable.distribution, posterior_mean, posterior_sd)
                replaced[variable.id] = variable.model_copy(update={'distribution': distribution})
                logger.debug(
                    f"Blended prior into '{variable.id}': mean {mean:.6g} -> {posterior_mean:.6g}, "
                    f"sd {sd:.6g} -> {posterior_sd:.6g}"
                )

        effective = [replaced.get(variable.id, variable) for variable in variables]
        return effective, blends
