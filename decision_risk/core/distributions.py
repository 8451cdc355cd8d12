"""Probability distributions for Monte Carlo simulation.

Every marginal is produced from standard-normal latents so that the copula
can act on them before the marginal transform. All transforms are
elementwise NumPy operations: a draw depends only on its own latent, never
on how draws are grouped into chunks.
"""

import math
import numpy as np
from scipy.special import ndtr
from typing import Tuple

from .data_models import (
    Distribution,
    TriangularDistribution,
    NormalDistribution,
    LogNormalDistribution,
    UniformDistribution,
)


class DistributionSampler:
    """Maps standard-normal latents to each supported marginal."""

    @staticmethod
    def from_latent(distribution: Distribution, z: np.ndarray) -> np.ndarray:
        """Transform standard-normal latents into draws of ``distribution``.

        Args:
            distribution: Validated distribution configuration
            z: Standard-normal latents

        Returns:
            Array of draws, same shape as ``z``
        """
        if isinstance(distribution, NormalDistribution):
            return distribution.mean + distribution.sd * z
        elif isinstance(distribution, LogNormalDistribution):
            return np.exp(distribution.mu + distribution.sigma * z)
        elif isinstance(distribution, TriangularDistribution):
            return DistributionSampler._triangular_ppf(distribution, ndtr(z))
        elif isinstance(distribution, UniformDistribution):
            return distribution.min + (distribution.max - distribution.min) * ndtr(z)
        else:
            raise ValueError(f"Unsupported distribution type: {type(distribution).__name__}")

    @staticmethod
    def _triangular_ppf(dist: TriangularDistribution, u: np.ndarray) -> np.ndarray:
        low, mode, high = dist.min, dist.mode, dist.max
        width = high - low
        if width == 0:
            return np.full_like(u, low, dtype=float)

        split = (mode - low) / width
        left = low + np.sqrt(u * width * (mode - low))
        right = high - np.sqrt((1.0 - u) * width * (high - mode))
        return np.where(u < split, left, right)


def get_distribution_stats(distribution: Distribution) -> Tuple[float, float]:
    """Return (mean, standard deviation) of a distribution.

    Log-normal moments are those of the variable itself, not of its log.
    """
    if isinstance(distribution, NormalDistribution):
        return distribution.mean, distribution.sd

    elif isinstance(distribution, LogNormalDistribution):
        mu, sigma = distribution.mu, distribution.sigma
        mean = math.exp(mu + sigma ** 2 / 2)
        variance = (math.exp(sigma ** 2) - 1) * math.exp(2 * mu + sigma ** 2)
        return mean, math.sqrt(variance)

    elif isinstance(distribution, TriangularDistribution):
        a, c, b = distribution.min, distribution.mode, distribution.max
        mean = (a + b + c) / 3
        variance = (a ** 2 + b ** 2 + c ** 2 - a * b - a * c - b * c) / 18
        return mean, math.sqrt(max(variance, 0.0))

    elif isinstance(distribution, UniformDistribution):
        a, b = distribution.min, distribution.max
        return (a + b) / 2, (b - a) / math.sqrt(12)

    raise ValueError(f"Unsupported distribution type: {type(distribution).__name__}")


def location_and_spread(distribution: Distribution) -> Tuple[float, float]:
    """Central tendency and spread on the scale the distribution is parameterised in.

    Normal, triangular and uniform use their own mean and sd; log-normal uses
    ``mu`` and ``sigma`` of the underlying normal.
    """
    if isinstance(distribution, LogNormalDistribution):
        return distribution.mu, distribution.sigma
    return get_distribution_stats(distribution)


def with_location_and_spread(distribution: Distribution, mean: float, sd: float) -> Distribution:
    """Rebuild ``distribution`` so that ``location_and_spread`` returns (mean, sd).

    Triangular and uniform keep their shape through an affine rescaling of
    their parameters about the current mean.
    """
    if isinstance(distribution, NormalDistribution):
        return NormalDistribution(mean=mean, sd=sd)

    if isinstance(distribution, LogNormalDistribution):
        return LogNormalDistribution(mu=mean, sigma=sd)

    current_mean, current_sd = get_distribution_stats(distribution)
    ratio = sd / current_sd if current_sd > 0 else 0.0

    def rescale(value: float) -> float:
        return mean + (value - current_mean) * ratio

    if isinstance(distribution, TriangularDistribution):
        return TriangularDistribution(
            min=rescale(distribution.min),
            mode=rescale(distribution.mode),
            max=rescale(distribution.max),
        )
    if isinstance(distribution, UniformDistribution):
        return UniformDistribution(min=rescale(distribution.min), max=rescale(distribution.max))

    raise ValueError(f"Unsupported distribution type: {type(distribution).__name__}")
