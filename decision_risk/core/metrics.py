"""Risk metric aggregation over per-draw outcomes.

All tail metrics use the lower 5% tail of the outcome distribution. VaR95 is
the 5th percentile with linear interpolation between order statistics: for
``n`` sorted outcomes the fractional index is ``0.05 * (n - 1)``. CVaR95 is
the mean of every outcome at or below VaR95.

Economic capital is measured on the annual distribution and scaled with the
square root of the horizon in years; EV scales linearly, so RAROC grows with
``sqrt(h)`` when the horizon is extended.
"""

import math
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.special import logsumexp

from .data_models import (
    CapitalConvention,
    NumericNotice,
    Option,
    SimulationResult,
    TCORParams,
    TCORComponents,
    UtilityMode,
    UtilityParams,
    finite_or_none,
)

VAR_PERCENTILE = 5.0
DEGENERATE_CAPITAL = 1e-12
RISK_NEUTRAL_THRESHOLD = 1e-10
RELATIVE_TOLERANCE = 1e-9


def percentile_linear(values: np.ndarray, percentile: float, presorted: bool = False) -> float:
    """Percentile with linear interpolation between adjacent order statistics.

    Args:
        values: Sample
        percentile: Percentile in [0, 100]
        presorted: Skip sorting when ``values`` is already ascending

    Returns:
        ``x[lo] + (index - lo) * (x[hi] - x[lo])`` with ``index = p/100 * (n-1)``
    """
    ordered = values if presorted else np.sort(values)
    n = ordered.shape[0]
    if n == 0:
        raise ValueError("Cannot take a percentile of an empty sample")

    index = percentile / 100.0 * (n - 1)
    lo = int(math.floor(index))
    hi = min(lo + 1, n - 1)
    fraction = index - lo
    return float(ordered[lo] + fraction * (ordered[hi] - ordered[lo]))


def tail_metrics(outcomes: np.ndarray) -> Tuple[float, float, float]:
    """Return (EV, VaR95, CVaR95) of an outcome sample."""
    ordered = np.sort(outcomes)
    ev = float(np.mean(ordered))
    var95 = percentile_linear(ordered, VAR_PERCENTILE, presorted=True)
    cvar95 = float(np.mean(ordered[ordered <= var95]))
    return ev, var95, cvar95


def expected_loss_below_zero(outcomes: np.ndarray) -> float:
    """P(loss) times the mean size of a loss, i.e. ``mean(max(-x, 0))``."""
    return float(np.mean(np.maximum(-outcomes, 0.0)))


class ConvergenceDiagnostics:
    """Sampling error of Monte Carlo estimates."""

    @staticmethod
    def standard_error(values: np.ndarray) -> float:
        n = values.shape[0]
        if n < 2:
            return 0.0
        return float(np.std(values, ddof=1) / math.sqrt(n))

    @staticmethod
    def standard_error_trace(values: np.ndarray, checkpoints: List[int]) -> List[Tuple[int, float, float]]:
        """Running (n, mean, standard error) at each checkpoint prefix length."""
        trace = []
        for n in checkpoints:
            prefix = values[:n]
            trace.append((int(prefix.shape[0]), float(np.mean(prefix)), ConvergenceDiagnostics.standard_error(prefix)))
        return trace


class UtilityCalculator:
    """Expected utility and certainty equivalent for each utility family.

    ``scale`` divides outcomes before CARA, Exponential and Quadratic
    utilities are applied; CRRA and Power act on raw outcomes and are only
    defined when every outcome is positive.
    """

    @staticmethod
    def evaluate(outcomes: np.ndarray, params: UtilityParams) -> Tuple[Optional[float], Optional[float], List[NumericNotice]]:
        """Compute expected utility and certainty equivalent.

        Returns:
            (expected_utility, certainty_equivalent, notices)
        """
        notices = []
        scale = params.scale
        if scale <= 0:
            scale = 1.0
            notices.append(NumericNotice(
                code="zero_utility_scale",
                message="Utility scale was 0; a scale of 1 was used",
            ))

        a = params.risk_aversion
        mode = params.mode

        if mode in (UtilityMode.CARA, UtilityMode.EXPONENTIAL, UtilityMode.QUADRATIC) and a <= RISK_NEUTRAL_THRESHOLD:
            notices.append(NumericNotice(
                code="risk_neutral_utility",
                message="Risk aversion is 0; utility is linear and the certainty equivalent equals EV",
            ))
            eu = float(np.mean(outcomes / scale))
            return eu, eu * scale, notices

        if mode in (UtilityMode.CARA, UtilityMode.EXPONENTIAL):
            # log(mean(exp(-a x / scale))) without overflow on large losses
            log_mean = float(logsumexp(-a * outcomes / scale) - math.log(outcomes.shape[0]))
            ce = -(scale / a) * log_mean
            if mode is UtilityMode.CARA:
                eu = -math.expm1(log_mean) if log_mean < 709 else None
            else:
                eu = -math.exp(log_mean) if log_mean < 709 else None
            if eu is None:
                notices.append(NumericNotice(
                    code="utility_overflow",
                    message="Expected utility is beyond floating-point range; certainty equivalent is exact",
                ))
            return eu, ce, notices

        if mode is UtilityMode.QUADRATIC:
            xs = outcomes / scale
            eu = float(np.mean(xs - (a / 2.0) * xs * xs))
            discriminant = 1.0 - 2.0 * a * eu
            if discriminant < 0:
                notices.append(NumericNotice(
                    code="certainty_equivalent_undefined",
                    message="Quadratic expected utility exceeds the utility peak",
                ))
                return eu, None, notices
            return eu, (1.0 - math.sqrt(discriminant)) / a * scale, notices

        # CRRA and Power
        if np.any(outcomes <= 0):
            notices.append(NumericNotice(
                code="utility_undefined",
                message=f"{mode.value} utility requires strictly positive outcomes",
            ))
            return None, None, notices

        exponent = 1.0 - a
        if abs(exponent) < RISK_NEUTRAL_THRESHOLD:
            eu = float(np.mean(np.log(outcomes)))
            return eu, math.exp(eu), notices

        if mode is UtilityMode.CRRA:
            eu = float(np.mean(np.power(outcomes, exponent) / exponent))
            base = exponent * eu
        else:
            eu = float(np.mean(np.power(outcomes, exponent)))
            base = eu

        if base <= 0:
            notices.append(NumericNotice(
                code="certainty_equivalent_undefined",
                message=f"{mode.value} certainty equivalent has no real solution",
            ))
            return finite_or_none(eu), None, notices
        return finite_or_none(eu), finite_or_none(base ** (1.0 / exponent)), notices


class RiskMetricAggregator:
    """Turns one option's per-draw annual outcomes into a SimulationResult."""

    @staticmethod
    def capital_basis(annual_outcomes: np.ndarray, convention: CapitalConvention) -> Tuple[float, bool]:
        """Annual economic capital and whether the CVaR fallback was used.

        Under ``ev_minus_var`` a sample whose VaR95 lies above EV (a mean
        dragged down by a few extreme losses) is measured as ``EV - CVaR95``
        instead, which is never negative.
        """
        ev, var95, cvar95 = tail_metrics(annual_outcomes)
        if convention is CapitalConvention.ABS_VAR:
            return abs(var95), False
        if convention is CapitalConvention.ABS_CVAR:
            return abs(cvar95), False
        if var95 - ev > RELATIVE_TOLERANCE * max(1.0, abs(ev)):
            return max(ev - cvar95, 0.0), True
        return max(ev - var95, 0.0), False

    @staticmethod
    def economic_capital(annual_outcomes: np.ndarray, horizon_years: float, convention: CapitalConvention) -> float:
        capital, _ = RiskMetricAggregator.capital_basis(annual_outcomes, convention)
        return capital * math.sqrt(horizon_years)

    @staticmethod
    def aggregate(
        option: Option,
        horizon_months: int,
        annual_outcomes: np.ndarray,
        tcor_means: Optional[Dict[str, float]],
        utility: Optional[UtilityParams],
        convention: CapitalConvention = CapitalConvention.EV_MINUS_VAR,
        tcor_params: Optional[TCORParams] = None,
    ) -> SimulationResult:
        """Aggregate outcome draws into decision metrics.

        Args:
            option: Option the draws belong to
            horizon_months: Effective horizon of the option
            annual_outcomes: Per-draw outcome on a one-year basis
            tcor_means: Mean annual TCOR components, or None without TCOR
            utility: Utility parameters, or None to skip utility metrics
            convention: Economic capital convention
            tcor_params: TCOR settings for the components derived from the
                outcome distribution and from economic capital

        Returns:
            Immutable metrics for the option
        """
        h = horizon_months / 12.0
        outcomes = annual_outcomes * h
        notices = []

        ev, var95, cvar95 = tail_metrics(outcomes)
        annual_capital, used_cvar = RiskMetricAggregator.capital_basis(annual_outcomes, convention)
        capital = annual_capital * math.sqrt(h)

        if used_cvar:
            notices.append(NumericNotice(
                code="var_above_ev",
                message=(
                    f"VaR95 ({var95:,.2f}) lies above EV ({ev:,.2f}) in a heavy loss tail; "
                    "economic capital is measured as EV - CVaR95"
                ),
            ))

        if capital <= DEGENERATE_CAPITAL:
            raroc = ev
            notices.append(NumericNotice(
                code="zero_economic_capital",
                message="Economic capital is 0; RAROC is reported as EV per unit capital",
            ))
        else:
            raroc = ev / capital

        expected_utility = certainty_equivalent = None
        if utility is not None:
            expected_utility, certainty_equivalent, utility_notices = UtilityCalculator.evaluate(outcomes, utility)
            notices.extend(utility_notices)

        tcor = components = None
        if tcor_means is not None:
            scaled = {name: value * h for name, value in tcor_means.items()}
            if tcor_params is not None:
                if tcor_params.expected_loss_from_outcomes:
                    scaled['expected_loss'] += expected_loss_below_zero(outcomes)
                scaled['contingency'] += tcor_params.contingency_on_capital * capital
            components = TCORComponents(**scaled)
            tcor = components.expected_loss + components.insurance + components.contingency + components.mitigation

        return SimulationResult(
            option_id=option.id,
            option_label=option.label,
            horizon_months=horizon_months,
            ev=ev,
            var95=var95,
            cvar95=cvar95,
            economic_capital=capital,
            raroc=raroc,
            certainty_equivalent=finite_or_none(certainty_equivalent),
            expected_utility=finite_or_none(expected_utility),
            tcor=tcor,
            tcor_components=components,
            ev_standard_error=ConvergenceDiagnostics.standard_error(outcomes),
            notices=notices,
        )
