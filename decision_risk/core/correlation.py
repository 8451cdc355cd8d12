"""Rank-correlation dependence through a Gaussian copula.

A requested Spearman matrix is repaired to the nearest correlation matrix
when it is not positive semi-definite, converted to the latent Pearson
correlation that reproduces it under a Gaussian copula, and imposed on the
standard-normal latents through its Cholesky factor. The achieved rank
correlation is measured from the generated draws and reported next to the
request.
"""

import warnings
import numpy as np
from scipy import stats
from scipy.linalg import cholesky, LinAlgError
from typing import List, Optional, Tuple

from .data_models import CopulaConfig, DependenceConfig, DependenceFit
from .exceptions import ComputationError, CorrelationMatrixError
from .logging_config import get_logger

logger = get_logger(__name__)

PSD_TOLERANCE = 1e-10
MIN_EIGENVALUE = 1e-10


def is_positive_semidefinite(matrix: np.ndarray, tolerance: float = PSD_TOLERANCE) -> bool:
    """Check whether a symmetric matrix has no eigenvalue below ``-tolerance``."""
    try:
        eigenvals = np.linalg.eigvalsh(matrix)
    except LinAlgError:
        return False
    return bool(np.all(eigenvals >= -tolerance))


def _clip_eigenvalues(matrix: np.ndarray, floor: float = 0.0) -> np.ndarray:
    eigenvals, eigenvecs = np.linalg.eigh(matrix)
    eigenvals = np.maximum(eigenvals, floor)
    clipped = eigenvecs @ np.diag(eigenvals) @ eigenvecs.T
    return (clipped + clipped.T) / 2


def _unit_diagonal(matrix: np.ndarray) -> np.ndarray:
    d = np.sqrt(np.clip(np.diag(matrix), MIN_EIGENVALUE, None))
    scaled = matrix / np.outer(d, d)
    np.fill_diagonal(scaled, 1.0)
    return scaled


def nearest_correlation_matrix(
    matrix: np.ndarray,
    max_iterations: int = 200,
    tolerance: float = 1e-10,
) -> np.ndarray:
    """Nearest correlation matrix in Frobenius norm (Higham 2002).

    Alternating projections onto the PSD cone and the unit-diagonal set with
    Dykstra's correction, followed by a final eigenvalue floor so the result
    admits a Cholesky factor.

    Args:
        matrix: Symmetric matrix with unit diagonal
        max_iterations: Projection iterations before giving up on convergence
        tolerance: Relative change at which iteration stops

    Returns:
        Symmetric positive definite matrix with unit diagonal
    """
    y = np.array(matrix, dtype=float)
    correction = np.zeros_like(y)

    for _ in range(max_iterations):
        r = y - correction
        x = _clip_eigenvalues(r)
        correction = x - r
        y_next = x.copy()
        np.fill_diagonal(y_next, 1.0)

        change = np.linalg.norm(y_next - y, "fro") / max(np.linalg.norm(y, "fro"), 1e-300)
        y = y_next
        if change < tolerance:
            break

    return _unit_diagonal(_clip_eigenvalues(y, floor=MIN_EIGENVALUE))


def spearman_to_pearson(rho: np.ndarray) -> np.ndarray:
    """Latent Pearson correlation giving Spearman ``rho`` under a Gaussian copula."""
    return 2.0 * np.sin(np.pi * np.asarray(rho) / 6.0)


def spearman_matrix(draws: np.ndarray) -> np.ndarray:
    """Empirical Spearman matrix of the columns of ``draws``.

    Constant columns have no rank correlation; they are reported as 0.
    """
    k = draws.shape[1]
    if k < 2:
        return np.eye(k)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        if k == 2:
            rho, _ = stats.spearmanr(draws[:, 0], draws[:, 1])
            result = np.array([[1.0, rho], [rho, 1.0]])
        else:
            rho, _ = stats.spearmanr(draws)
            result = np.array(rho, dtype=float)

    result = np.nan_to_num(result, nan=0.0)
    np.fill_diagonal(result, 1.0)
    return result


class GaussianCopula:
    """Imposes a target rank-correlation matrix on standard-normal latents.

    Args:
        dependence: Target Spearman matrix and the variables it covers
        copula: Copula settings; defaults when omitted

    Raises:
        CorrelationMatrixError: Target is not PSD and repair is disabled
        ComputationError: Cholesky factorisation failed after repair
    """

    def __init__(self, dependence: DependenceConfig, copula: Optional[CopulaConfig] = None):
        self.dependence = dependence
        self.copula = copula or CopulaConfig()
        self.variable_ids: List[str] = list(dependence.variable_ids)
        self.target = np.array(dependence.matrix, dtype=float)

        self.repaired = not is_positive_semidefinite(self.target)
        if self.repaired:
            if not self.copula.use_nearest_psd:
                raise CorrelationMatrixError(
                    "Dependence matrix is not positive semi-definite and nearest-PSD repair is disabled",
                    matrix_property="positive_semidefinite",
                    field="dependence_config.matrix",
                )
            self.repaired_target = nearest_correlation_matrix(self.target)
        else:
            self.repaired_target = self.target.copy()
        self.repair_frobenius = float(np.linalg.norm(self.repaired_target - self.target, "fro"))

        if self.repaired:
            logger.info(
                f"Repaired dependence matrix to nearest correlation matrix "
                f"(Frobenius distance {self.repair_frobenius:.6f})",
                extra={'component': 'copula', 'repair_frobenius': self.repair_frobenius}
            )

        latent = spearman_to_pearson(self.repaired_target) if self.copula.rank_to_linear else self.repaired_target.copy()
        np.fill_diagonal(latent, 1.0)
        self.latent_correlation = self._factorisable(latent)
        self.cholesky_factor = self._cholesky(self.latent_correlation)

    @staticmethod
    def _factorisable(matrix: np.ndarray) -> np.ndarray:
        eigenvals = np.linalg.eigvalsh(matrix)
        if eigenvals.min() >= MIN_EIGENVALUE:
            return matrix
        return nearest_correlation_matrix(matrix)

    @staticmethod
    def _cholesky(matrix: np.ndarray) -> np.ndarray:
        try:
            return cholesky(matrix, lower=True)
        except LinAlgError as e:
            raise ComputationError(
                f"Cholesky factorisation of latent correlation failed: {e}",
                operation="cholesky",
                cause=e,
            ) from e

    def correlate(self, z: np.ndarray) -> np.ndarray:
        """Apply the Cholesky factor to independent latents.

        Columns are combined with elementwise arithmetic in a fixed order, so
        each row of the result depends only on the same row of ``z``.

        Args:
            z: Independent standard normals, shape (n, k)

        Returns:
            Correlated standard normals, shape (n, k)
        """
        k = len(self.variable_ids)
        out = np.empty_like(z)
        for i in range(k):
            column = self.cholesky_factor[i, 0] * z[:, 0]
            for j in range(1, i + 1):
                column = column + self.cholesky_factor[i, j] * z[:, j]
            out[:, i] = column
        return out

    def fit_report(self, draws: np.ndarray) -> DependenceFit:
        """Compare the achieved rank correlation of ``draws`` with the target.

        Args:
            draws: Marginal draws of the covered variables, shape (n, k), in
                ``variable_ids`` order
        """
        achieved = spearman_matrix(draws)
        achieved_frobenius = float(np.linalg.norm(achieved - self.target, "fro"))
        i, j = self._headline_pair()

        return DependenceFit(
            variable_ids=self.variable_ids,
            target=self.target.tolist(),
            repaired_target=self.repaired_target.tolist(),
            achieved=achieved.tolist(),
            repaired=self.repaired,
            repair_frobenius=self.repair_frobenius,
            achieved_frobenius=achieved_frobenius,
            achieved_spearman=float(achieved[i, j]),
        )

    def _headline_pair(self) -> Tuple[int, int]:
        """Pair whose achieved correlation is reported as the scalar summary."""
        k = len(self.variable_ids)
        best = (0, 1)
        best_value = -1.0
        for i in range(k):
            for j in range(i + 1, k):
                if abs(self.target[i, j]) > best_value:
                    best, best_value = (i, j), abs(self.target[i, j])
        return best
