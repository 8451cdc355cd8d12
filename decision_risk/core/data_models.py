"""Pydantic data models for the decision risk engine.

Covers the run configuration consumed by the engine (distributions, scenario
variables, options, dependence, Bayesian priors, game interaction, utility,
cost-of-risk and stress overlays) and the immutable results it produces.
Every choice axis is a closed set: distributions are a tagged union on
``type`` and the enumerated modes are string enums.
"""

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from typing import Annotated, List, Optional, Union, Any, Literal
from enum import Enum
import math

SYMMETRY_TOLERANCE = 1e-8

MIN_RUN_COUNT = 100
MAX_RUN_COUNT = 100_000
MIN_HORIZON_MONTHS = 1
MAX_HORIZON_MONTHS = 240


class ConfigModel(BaseModel):
    """Base for configuration models: immutable, strict about unknown keys."""

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)


class ResultModel(BaseModel):
    """Base for result models."""

    model_config = ConfigDict(frozen=True)


class AppliesTo(str, Enum):
    """Which side of an option's payoff a scenario variable shocks."""

    RETURN = "return"
    COST = "cost"


class OurStrategy(str, Enum):
    """Strategy an option plays in the competitor game."""

    CONSERVATIVE = "conservative"
    AGGRESSIVE = "aggressive"


class CompetitorMove(str, Enum):
    """Competitor response drawn per draw."""

    MATCH = "match"
    UNDERCUT = "undercut"


class UtilityMode(str, Enum):
    """Utility function families."""

    CARA = "CARA"
    CRRA = "CRRA"
    EXPONENTIAL = "Exponential"
    QUADRATIC = "Quadratic"
    POWER = "Power"


class CapitalConvention(str, Enum):
    """How economic capital is derived from the annual outcome distribution."""

    EV_MINUS_VAR = "ev_minus_var"  # unexpected loss at the 95% level
    ABS_VAR = "abs_var"
    ABS_CVAR = "abs_cvar"


# Distribution Configurations
class TriangularDistribution(ConfigModel):
    """Triangular distribution sampled by inverse CDF."""

    type: Literal["triangular"] = "triangular"
    min: float = Field(..., description="Minimum value")
    mode: float = Field(..., description="Most likely value")
    max: float = Field(..., description="Maximum value")

    @model_validator(mode="after")
    def validate_ordering(self):
        if not (self.min <= self.mode <= self.max):
            raise ValueError(
                f"Triangular requires min <= mode <= max, got "
                f"min={self.min}, mode={self.mode}, max={self.max}"
            )
        return self


class NormalDistribution(ConfigModel):
    """Normal distribution; ``sd = 0`` is a point mass at ``mean``."""

    type: Literal["normal"] = "normal"
    mean: float = Field(..., description="Mean value")
    sd: float = Field(..., ge=0, description="Standard deviation")


class LogNormalDistribution(ConfigModel):
    """Log-normal distribution parameterised on the underlying normal."""

    type: Literal["lognormal"] = "lognormal"
    mu: float = Field(..., description="Mean of ln(X)")
    sigma: float = Field(..., ge=0, description="Std dev of ln(X)")


class UniformDistribution(ConfigModel):
    """Uniform distribution on [min, max]."""

    type: Literal["uniform"] = "uniform"
    min: float = Field(..., description="Lower bound")
    max: float = Field(..., description="Upper bound")

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max < self.min:
            raise ValueError(f"Uniform requires min <= max, got min={self.min}, max={self.max}")
        return self


Distribution = Annotated[
    Union[
        TriangularDistribution,
        NormalDistribution,
        LogNormalDistribution,
        UniformDistribution,
    ],
    Field(discriminator="type"),
]


class ScenarioVariable(ConfigModel):
    """Uncertain driver shared by every option."""

    id: str = Field(..., min_length=1, description="Stable variable identifier")
    name: str = Field(..., description="Display name")
    distribution: Distribution
    applies_to: AppliesTo = Field(..., description="Payoff side the variable shocks")
    weight: float = Field(1.0, gt=0, description="Shock sensitivity")


class Option(ConfigModel):
    """A decision alternative with a base cost and expected return."""

    id: str = Field(..., min_length=1)
    label: str
    base_cost: float = Field(..., ge=0, description="Base cost per year")
    base_expected_return: float = Field(..., description="Base expected return per year")
    mitigation_cost: Optional[float] = Field(None, ge=0, description="Mitigation spend per year")
    horizon_months: Optional[int] = Field(
        None,
        ge=MIN_HORIZON_MONTHS,
        le=MAX_HORIZON_MONTHS,
        description="Overrides the run horizon for this option",
    )


class DependenceConfig(ConfigModel):
    """Target Spearman rank-correlation matrix over a subset of variables."""

    variable_ids: List[str] = Field(..., min_length=2)
    matrix: List[List[float]]

    @field_validator("variable_ids")
    @classmethod
    def validate_unique_ids(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("Dependence variable ids must be distinct")
        return v

    @model_validator(mode="after")
    def validate_matrix(self):
        k = len(self.variable_ids)
        if len(self.matrix) != k or any(len(row) != k for row in self.matrix):
            raise ValueError(f"Dependence matrix must be {k}x{k} to match variable_ids")

        for i in range(k):
            if abs(self.matrix[i][i] - 1.0) > SYMMETRY_TOLERANCE:
                raise ValueError(f"Dependence matrix diagonal must be 1, got {self.matrix[i][i]} at [{i}][{i}]")
            for j in range(k):
                value = self.matrix[i][j]
                if not -1.0 <= value <= 1.0:
                    raise ValueError(f"Dependence matrix entry [{i}][{j}]={value} outside [-1, 1]")
                if abs(value - self.matrix[j][i]) > SYMMETRY_TOLERANCE:
                    raise ValueError(f"Dependence matrix is not symmetric at [{i}][{j}]")
        return self

    @classmethod
    def pairwise(cls, var_a: str, var_b: str, rho: float) -> "DependenceConfig":
        """Build the two-variable case from a single target correlation."""
        return cls(variable_ids=[var_a, var_b], matrix=[[1.0, rho], [rho, 1.0]])


class CopulaConfig(ConfigModel):
    """How a dependence target is imposed on the marginals."""

    family: Literal["gaussian"] = "gaussian"
    use_nearest_psd: bool = Field(True, description="Repair non-PSD targets")
    rank_to_linear: bool = Field(
        True, description="Convert Spearman targets to latent Pearson correlations"
    )


class BayesianPriorOverride(ConfigModel):
    """Prior blended into a scenario variable's central tendency and spread."""

    variable_id: str
    prior_mean: float
    prior_sd: float = Field(..., gt=0)
    applied: bool = True


class MultiplierPair(ConfigModel):
    conservative: float = Field(1.0, ge=0)
    aggressive: float = Field(1.0, ge=0)

    def for_strategy(self, strategy: OurStrategy) -> float:
        if strategy is OurStrategy.AGGRESSIVE:
            return self.aggressive
        return self.conservative


class MoveMultipliers(ConfigModel):
    """Return and cost multipliers for one competitor move."""

    return_multiplier: MultiplierPair = Field(default_factory=MultiplierPair)
    cost_multiplier: MultiplierPair = Field(default_factory=MultiplierPair)


class GameInteractionConfig(ConfigModel):
    """Two-player competitor game applied per draw.

    Defaults reproduce the standard table: matching rewards an aggressive
    stance slightly, undercutting hurts it most.
    """

    p_undercut: float = Field(0.4, ge=0, le=1, description="Probability the competitor undercuts")
    match: MoveMultipliers = Field(
        default_factory=lambda: MoveMultipliers(
            return_multiplier=MultiplierPair(conservative=1.0, aggressive=1.05),
            cost_multiplier=MultiplierPair(conservative=1.0, aggressive=1.0),
        )
    )
    undercut: MoveMultipliers = Field(
        default_factory=lambda: MoveMultipliers(
            return_multiplier=MultiplierPair(conservative=0.95, aggressive=0.85),
            cost_multiplier=MultiplierPair(conservative=1.0, aggressive=1.02),
        )
    )

    def multipliers_for(self, move: CompetitorMove) -> MoveMultipliers:
        return self.undercut if move is CompetitorMove.UNDERCUT else self.match


class OptionGameStrategy(ConfigModel):
    option_id: str
    strategy: OurStrategy = OurStrategy.CONSERVATIVE


class UtilityParams(ConfigModel):
    """Utility function used for expected utility and certainty equivalent."""

    mode: UtilityMode = UtilityMode.CARA
    risk_aversion: float = Field(..., ge=0, description="Risk aversion coefficient a")
    scale: float = Field(1.0, ge=0, description="Outcome scale dividing x before U is applied")


class TCORParams(ConfigModel):
    """Total cost of risk components.

    Fixed, loss-variable, insurance and rate-based contingency components are
    derived per draw. The capital-based contingency and the outcome-based
    expected loss depend on the whole outcome distribution and are added when
    the option metrics are aggregated.
    """

    expected_loss: float = Field(0.0, ge=0, description="Fixed expected loss per year")
    loss_variable_id: Optional[str] = Field(
        None, description="Scenario variable whose upside draws add expected loss"
    )
    loss_sensitivity: float = Field(0.0, ge=0, description="Loss per unit draw, as a share of base cost")
    insurance_rate: float = Field(0.0, ge=0, description="Premium as a share of base cost")
    contingency_rate: float = Field(0.0, ge=0, description="Contingency reserve as a share of base cost")
    contingency_on_capital: float = Field(0.0, ge=0, description="Contingency reserve as a share of economic capital")
    expected_loss_from_outcomes: bool = Field(
        False, description="Add P(loss) x mean loss of the outcome distribution to expected loss"
    )
    include_mitigation: bool = Field(True, description="Count option mitigation cost in TCOR")


class StressOverlay(ConfigModel):
    """Post-shock multipliers applied to every option's effective return and cost."""

    cost_multiplier: float = Field(1.0, gt=0)
    return_multiplier: float = Field(1.0, ge=0)


class RunConfig(ConfigModel):
    """Complete, validated input of one simulation run.

    Immutable once built; every field participates in the run fingerprint.
    """

    seed: int = Field(..., ge=0, description="Root seed of every random stream")
    run_count: int = Field(..., ge=MIN_RUN_COUNT, le=MAX_RUN_COUNT)
    horizon_months: int = Field(12, ge=MIN_HORIZON_MONTHS, le=MAX_HORIZON_MONTHS)
    options: List[Option] = Field(..., min_length=1)
    scenario_variables: List[ScenarioVariable] = Field(default_factory=list)
    dependence_config: Optional[DependenceConfig] = None
    copula_config: Optional[CopulaConfig] = None
    bayesian_overrides: List[BayesianPriorOverride] = Field(default_factory=list)
    game_config: Optional[GameInteractionConfig] = None
    option_strategies: List[OptionGameStrategy] = Field(default_factory=list)
    tcor_params: Optional[TCORParams] = None
    utility_params: Optional[UtilityParams] = None
    capital_convention: CapitalConvention = CapitalConvention.EV_MINUS_VAR
    stress_overlay: Optional[StressOverlay] = None

    @model_validator(mode="after")
    def validate_references(self):
        option_ids = [option.id for option in self.options]
        if len(set(option_ids)) != len(option_ids):
            raise ValueError("Option ids must be unique")

        variable_ids = [variable.id for variable in self.scenario_variables]
        if len(set(variable_ids)) != len(variable_ids):
            raise ValueError("Scenario variable ids must be unique")
        known_variables = set(variable_ids)

        if self.dependence_config is not None:
            unknown = [v for v in self.dependence_config.variable_ids if v not in known_variables]
            if unknown:
                raise ValueError(f"Dependence references unknown variables: {unknown}")

        prior_targets = [prior.variable_id for prior in self.bayesian_overrides]
        unknown = [v for v in prior_targets if v not in known_variables]
        if unknown:
            raise ValueError(f"Bayesian overrides reference unknown variables: {unknown}")
        if len(set(prior_targets)) != len(prior_targets):
            raise ValueError("At most one Bayesian override per variable")

        strategy_targets = [s.option_id for s in self.option_strategies]
        unknown = [o for o in strategy_targets if o not in set(option_ids)]
        if unknown:
            raise ValueError(f"Option strategies reference unknown options: {unknown}")
        if len(set(strategy_targets)) != len(strategy_targets):
            raise ValueError("At most one strategy per option")

        if self.tcor_params is not None and self.tcor_params.loss_variable_id is not None:
            if self.tcor_params.loss_variable_id not in known_variables:
                raise ValueError(
                    f"TCOR loss variable '{self.tcor_params.loss_variable_id}' is not a scenario variable"
                )
        return self

    def variable(self, variable_id: str) -> ScenarioVariable:
        for variable in self.scenario_variables:
            if variable.id == variable_id:
                return variable
        raise KeyError(variable_id)

    def option(self, option_id: str) -> Option:
        for option in self.options:
            if option.id == option_id:
                return option
        raise KeyError(option_id)

    def strategy_for(self, option_id: str) -> Optional[OurStrategy]:
        for entry in self.option_strategies:
            if entry.option_id == option_id:
                return entry.strategy
        return None

    def effective_horizon(self, option: Option) -> int:
        return option.horizon_months if option.horizon_months is not None else self.horizon_months


class EngineSettings(BaseModel):
    """Execution settings. Never part of the fingerprint."""

    workers: int = Field(1, ge=1, description="Thread pool size for chunk evaluation")
    chunk_size: int = Field(10_000, ge=1, description="Draws per work item")
    cache_size: Optional[int] = Field(128, ge=1, description="Completed runs kept in memory")


# Results Models
class NumericNotice(ResultModel):
    """Informational record of a recovered numerical degeneracy."""

    code: str
    message: str


class TCORComponents(ResultModel):
    expected_loss: float
    insurance: float
    contingency: float
    mitigation: float


class SimulationResult(ResultModel):
    """Risk metrics of one option, on the option's horizon."""

    option_id: str
    option_label: str
    horizon_months: int
    ev: float
    var95: float
    cvar95: float
    economic_capital: float
    raroc: float
    certainty_equivalent: Optional[float] = None
    expected_utility: Optional[float] = None
    tcor: Optional[float] = None
    tcor_components: Optional[TCORComponents] = None
    ev_standard_error: float
    notices: List[NumericNotice] = Field(default_factory=list)

    def metric(self, name: str) -> Optional[float]:
        """Look up a scalar metric by field name."""
        if name not in METRIC_NAMES:
            raise KeyError(f"Unknown metric '{name}'")
        return getattr(self, name)


METRIC_NAMES = (
    "ev",
    "var95",
    "cvar95",
    "economic_capital",
    "raroc",
    "certainty_equivalent",
    "expected_utility",
    "tcor",
)


class DependenceFit(ResultModel):
    """Requested, repaired and achieved rank-correlation structure."""

    variable_ids: List[str]
    target: List[List[float]]
    repaired_target: List[List[float]]
    achieved: List[List[float]]
    repaired: bool
    repair_frobenius: float
    achieved_frobenius: float
    achieved_spearman: float


class BayesianBlend(ResultModel):
    """Record of one prior blend, applied or not."""

    variable_id: str
    prior_mean: float
    prior_sd: float
    variable_mean: float
    variable_sd: float
    posterior_mean: float
    posterior_sd: float
    applied: bool


class RunResult(ResultModel):
    """Everything a run produces, keyed by its fingerprint."""

    run_id: str
    fingerprint: str
    seed: int
    run_count: int
    horizon_months: int
    results: List[SimulationResult]
    dependence_fit: Optional[DependenceFit] = None
    bayes: List[BayesianBlend] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def result_for(self, option_id: str) -> SimulationResult:
        for result in self.results:
            if result.option_id == option_id:
                return result
        raise KeyError(option_id)

    @property
    def achieved_spearman(self) -> Optional[float]:
        if self.dependence_fit is None:
            return None
        return self.dependence_fit.achieved_spearman


def finite_or_none(value: Any) -> Optional[float]:
    """Map NaN/inf to None so results stay JSON-safe."""
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None
