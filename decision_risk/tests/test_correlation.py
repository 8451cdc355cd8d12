"""Tests for dependence modeling through the Gaussian copula."""

import numpy as np
import pytest
from pydantic import ValidationError
from scipy import stats

from decision_risk.core.correlation import (
    GaussianCopula,
    is_positive_semidefinite,
    nearest_correlation_matrix,
    spearman_matrix,
    spearman_to_pearson,
)
from decision_risk.core.data_models import CopulaConfig, DependenceConfig
from decision_risk.core.exceptions import CorrelationMatrixError

NON_PSD = [
    [1.0, 0.9, -0.9],
    [0.9, 1.0, 0.9],
    [-0.9, 0.9, 1.0],
]


class TestMatrixRepair:
    """Test PSD checks and nearest-correlation repair."""

    def test_identity_is_psd(self):
        """The identity is positive semi-definite."""
        assert is_positive_semidefinite(np.eye(3))

    def test_inconsistent_matrix_is_not_psd(self):
        """Mutually inconsistent correlations are detected."""
        assert not is_positive_semidefinite(np.array(NON_PSD))

    def test_nearest_correlation_matrix(self):
        """Repair yields a symmetric PSD matrix with unit diagonal."""
        repaired = nearest_correlation_matrix(np.array(NON_PSD))

        np.testing.assert_allclose(repaired, repaired.T)
        np.testing.assert_allclose(np.diag(repaired), np.ones(3))
        assert np.linalg.eigvalsh(repaired).min() > 0
        assert np.all(np.abs(repaired) <= 1.0 + 1e-12)

    def test_psd_matrix_is_a_fixed_point(self):
        """A valid correlation matrix is left essentially unchanged."""
        valid = np.array([[1.0, 0.3], [0.3, 1.0]])
        np.testing.assert_allclose(nearest_correlation_matrix(valid), valid, atol=1e-8)

    def test_spearman_to_pearson(self):
        """The Gaussian copula conversion fixes 0 and 1."""
        assert spearman_to_pearson(0.0) == pytest.approx(0.0)
        assert spearman_to_pearson(1.0) == pytest.approx(1.0)
        assert spearman_to_pearson(0.5) > 0.5

    def test_constant_column_spearman(self):
        """A constant column has zero rank correlation."""
        draws = np.column_stack([np.arange(10.0), np.zeros(10)])
        np.testing.assert_array_equal(spearman_matrix(draws), np.eye(2))


class TestGaussianCopula:
    """Test imposing rank correlation on latents."""

    @pytest.fixture
    def independent(self):
        """Independent standard normals."""
        return np.random.default_rng(2024).standard_normal((100_000, 2))

    def test_achieves_target_spearman(self, independent):
        """A 0.8 target is achieved within 0.02 over 100,000 draws."""
        copula = GaussianCopula(DependenceConfig.pairwise("a", "b", 0.8))
        correlated = copula.correlate(independent)
        rho, _ = stats.spearmanr(correlated[:, 0], correlated[:, 1])
        assert rho == pytest.approx(0.8, abs=0.02)

    def test_negative_target(self, independent):
        """Negative targets are reproduced as well."""
        copula = GaussianCopula(DependenceConfig.pairwise("a", "b", -0.5))
        correlated = copula.correlate(independent)
        rho, _ = stats.spearmanr(correlated[:, 0], correlated[:, 1])
        assert rho == pytest.approx(-0.5, abs=0.02)

    def test_rows_are_independent_of_grouping(self, independent):
        """Correlating a slice equals slicing the correlated output."""
        copula = GaussianCopula(DependenceConfig.pairwise("a", "b", 0.6))
        full = copula.correlate(independent[:1000])
        part = copula.correlate(independent[400:1000])
        np.testing.assert_array_equal(full[400:], part)

    def test_fit_report(self, independent):
        """The fit report compares achieved and target correlation."""
        copula = GaussianCopula(DependenceConfig.pairwise("a", "b", 0.8))
        fit = copula.fit_report(copula.correlate(independent))

        assert fit.variable_ids == ["a", "b"]
        assert not fit.repaired
        assert fit.repair_frobenius == pytest.approx(0.0)
        assert fit.achieved_spearman == pytest.approx(0.8, abs=0.02)
        assert fit.achieved_frobenius < 0.05

    def test_non_psd_is_repaired(self):
        """A non-PSD target is repaired and the distance reported."""
        dependence = DependenceConfig(variable_ids=["a", "b", "c"], matrix=NON_PSD)
        copula = GaussianCopula(dependence)

        assert copula.repaired
        assert copula.repair_frobenius > 0
        assert is_positive_semidefinite(copula.repaired_target)
        np.testing.assert_allclose(copula.cholesky_factor @ copula.cholesky_factor.T, copula.latent_correlation)

    def test_repair_disabled_raises(self):
        """Disabling repair turns a non-PSD target into an error."""
        dependence = DependenceConfig(variable_ids=["a", "b", "c"], matrix=NON_PSD)
        with pytest.raises(CorrelationMatrixError) as exc_info:
            GaussianCopula(dependence, CopulaConfig(use_nearest_psd=False))
        assert exc_info.value.field == "dependence_config.matrix"

    def test_linear_targets(self, independent):
        """Without rank conversion the target is used as the latent Pearson correlation."""
        copula = GaussianCopula(DependenceConfig.pairwise("a", "b", 0.5), CopulaConfig(rank_to_linear=False))
        correlated = copula.correlate(independent)
        assert np.corrcoef(correlated.T)[0, 1] == pytest.approx(0.5, abs=0.02)


class TestDependenceConfig:
    """Test structural validation of dependence matrices."""

    def test_asymmetric(self):
        """Asymmetric matrices are rejected."""
        with pytest.raises(ValidationError):
            DependenceConfig(variable_ids=["a", "b"], matrix=[[1.0, 0.5], [0.4, 1.0]])

    def test_diagonal(self):
        """Diagonal entries must be 1."""
        with pytest.raises(ValidationError):
            DependenceConfig(variable_ids=["a", "b"], matrix=[[0.9, 0.5], [0.5, 1.0]])

    def test_out_of_range(self):
        """Entries must lie in [-1, 1]."""
        with pytest.raises(ValidationError):
            DependenceConfig.pairwise("a", "b", 1.2)

    def test_shape(self):
        """Matrix shape must match the variable list."""
        with pytest.raises(ValidationError):
            DependenceConfig(variable_ids=["a", "b"], matrix=[[1.0]])

    def test_duplicate_ids(self):
        """Variable ids must be distinct."""
        with pytest.raises(ValidationError):
            DependenceConfig.pairwise("a", "a", 0.3)
