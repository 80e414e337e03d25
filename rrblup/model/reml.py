"""
Variance component estimation for the ridge-regression BLUP model

Fits y = Xb + u + e with u ~ N(0, G*vg) and e ~ N(0, I*ve) by restricted
maximum likelihood. G is rotated to its eigenbasis once, after which every
likelihood evaluation is O(n). The likelihood is profiled over the variance
ratio h2 = vg / (vg + ve) and maximised with a bounded Brent search, which
follows rMVP's variance component estimation.
"""

import warnings
import numpy as np
from typing import Dict, Optional, Tuple
from scipy import optimize

from ..utils.data_types import VarianceComponents
from ..utils.errors import (
    ConvergenceWarning,
    DimensionError,
    HeritabilityBoundaryWarning,
    InvalidParameterError,
    NumericalInstabilityError,
)

# Search interval for h2; the likelihood is undefined at exactly 0 and 1.
H2_BOUNDS: Tuple[float, float] = (1e-6, 1.0 - 1e-6)
BOUNDARY_TOL = 1e-4
EIGEN_FLOOR = 1e-6
DEFAULT_MAX_ITERATIONS = 500
DEFAULT_TOLERANCE = 1.22e-4  # rMVP tolerance


def decompose_relationship(G: np.ndarray) -> Dict[str, np.ndarray]:
    """Eigendecomposition of a relationship matrix, eigenvalues descending

    Raises:
        NumericalInstabilityError: G has non-finite entries or cannot be decomposed
    """
    G = np.asarray(G, dtype=np.float64)
    if G.ndim != 2 or G.shape[0] != G.shape[1]:
        raise DimensionError(f"Relationship matrix must be square, got shape {G.shape}")
    if not np.all(np.isfinite(G)):
        raise NumericalInstabilityError("Relationship matrix contains non-finite values")

    try:
        eigenvals, eigenvecs = np.linalg.eigh((G + G.T) / 2.0)
    except np.linalg.LinAlgError as exc:
        raise NumericalInstabilityError(f"Eigendecomposition of relationship matrix failed: {exc}") from exc
    if not (np.all(np.isfinite(eigenvals)) and np.all(np.isfinite(eigenvecs))):
        raise NumericalInstabilityError("Eigendecomposition of relationship matrix is not finite")

    # Sort by eigenvalues in descending order
    sort_indices = np.argsort(eigenvals)[::-1]
    return {
        'eigenvals': eigenvals[sort_indices],
        'eigenvecs': eigenvecs[:, sort_indices],
    }


def _check_inputs(y: np.ndarray, X: np.ndarray, n: int) -> Tuple[np.ndarray, np.ndarray]:
    y = np.asarray(y, dtype=np.float64)
    X = np.asarray(X, dtype=np.float64)
    if y.ndim != 1 or y.size != n:
        raise DimensionError(f"Phenotype vector must have length {n}, got shape {y.shape}")
    if X.ndim != 2 or X.shape[0] != n:
        raise DimensionError(f"Design matrix must have {n} rows, got shape {X.shape}")
    if not np.all(np.isfinite(y)):
        raise NumericalInstabilityError("Phenotype vector contains non-finite values")
    if n - X.shape[1] < 1:
        raise DimensionError(
            f"REML needs more individuals ({n}) than fixed effects ({X.shape[1]})"
        )
    return y, X


def _projected_phenotype(h2: float, y: np.ndarray, X: np.ndarray,
                         eig_safe: np.ndarray) -> Tuple[float, float, float]:
    """Return (y'Py, sum(log V), log|X'V^-1 X|) in eigenspace for a given h2."""
    V0b = h2 * eig_safe + (1.0 - h2)
    V0bi = 1.0 / V0b
    ViX = V0bi[:, np.newaxis] * X
    XViX = X.T @ ViX

    sign, logdet_XViX = np.linalg.slogdet(XViX)
    if sign <= 0:
        raise np.linalg.LinAlgError("X'V^-1X is not positive definite")
    beta = np.linalg.solve(XViX, ViX.T @ y)
    P0y = V0bi * y - ViX @ beta
    return float(np.dot(P0y, y)), float(np.sum(np.log(V0b))), float(logdet_XViX)


def _neg_reml_likelihood(h2: float, y: np.ndarray, X: np.ndarray, eig_safe: np.ndarray) -> float:
    """REML negative log-likelihood, profiled over the total variance

    Formula: 0.5 * [sum(log V) + log|(X'V^-1X)^-1| + df*log(y'Py) + df*(1-log(df))]
    """
    n, p = X.shape
    df = n - p
    try:
        yPy, log_V_sum, logdet_XViX = _projected_phenotype(h2, y, X, eig_safe)
    except (np.linalg.LinAlgError, ValueError, FloatingPointError):
        return np.inf
    if not np.isfinite(yPy) or yPy <= 0:
        return np.inf
    return 0.5 * (log_V_sum - logdet_XViX + df * np.log(yPy) + df * (1.0 - np.log(df)))


def _components_at(h2: float, y: np.ndarray, X: np.ndarray, eig_safe: np.ndarray) -> Tuple[float, float]:
    n, p = X.shape
    try:
        yPy, _, _ = _projected_phenotype(h2, y, X, eig_safe)
    except np.linalg.LinAlgError as exc:
        raise NumericalInstabilityError(f"Fixed-effect system is singular: {exc}") from exc
    if not np.isfinite(yPy):
        raise NumericalInstabilityError(f"Residual quadratic form is not finite at h2={h2:.6g}")
    v_base = max(yPy, 0.0) / max(1, n - p)
    return h2 * v_base, (1.0 - h2) * v_base


def _is_constant_after_fixed_effects(y: np.ndarray, X: np.ndarray) -> bool:
    """True when the fixed effects explain the phenotype exactly."""
    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    resid = y - X @ beta
    scale = max(1.0, float(np.dot(y, y)))
    return float(np.dot(resid, resid)) <= 1e-12 * scale


def _rotate(y: np.ndarray, X: np.ndarray, G: Optional[np.ndarray],
            eigen: Optional[Dict[str, np.ndarray]]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    if eigen is None:
        if G is None:
            raise InvalidParameterError("Either a relationship matrix or its eigendecomposition is required")
        eigen = decompose_relationship(G)
    eigenvals = np.asarray(eigen['eigenvals'], dtype=np.float64)
    eigenvecs = np.asarray(eigen['eigenvecs'], dtype=np.float64)
    n = eigenvals.size
    y, X = _check_inputs(y, X, n)
    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        y_t = eigenvecs.T @ y
        X_t = eigenvecs.T @ X
    if not (np.all(np.isfinite(y_t)) and np.all(np.isfinite(X_t))):
        raise NumericalInstabilityError("Rotation to the relationship eigenbasis produced non-finite values")
    return y_t, X_t, np.maximum(eigenvals, EIGEN_FLOOR)


def estimate_variance_components(y: np.ndarray,
                                 X: np.ndarray,
                                 G: Optional[np.ndarray] = None,
                                 *,
                                 eigen: Optional[Dict[str, np.ndarray]] = None,
                                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                                 tolerance: float = DEFAULT_TOLERANCE,
                                 verbose: bool = False) -> VarianceComponents:
    """REML estimates of genetic and residual variance

    Args:
        y: Phenotype vector (n)
        X: Fixed-effect design matrix (n × k)
        G: Relationship matrix (n × n); ignored when ``eigen`` is given
        eigen: Pre-computed ``decompose_relationship(G)``
        max_iterations: Iteration bound for the Brent search
        tolerance: Absolute tolerance on h2
        verbose: Print optimization progress

    Returns:
        VarianceComponents. When the iteration bound is hit the best iterate is
        returned with ``converged=False`` and a ConvergenceWarning is emitted.
        A phenotype with no variance left after the fixed effects yields
        zero components, ``converged=False`` and a ConvergenceWarning.

    Raises:
        NumericalInstabilityError: G (or the likelihood) is not finite
        InvalidParameterError: max_iterations < 1
    """
    if max_iterations < 1:
        raise InvalidParameterError(
            "max_iterations must be >= 1 for REML; supply a fixed heritability (hsq) instead"
        )
    y_t, X_t, eig_safe = _rotate(y, X, G, eigen)

    if _is_constant_after_fixed_effects(y_t, X_t):
        message = "Phenotype has no variance beyond the fixed effects; variance components set to 0"
        warnings.warn(message, ConvergenceWarning, stacklevel=2)
        return VarianceComponents(0.0, 0.0, converged=False, n_iterations=0,
                                  method="REML", warnings=(message,))

    def neg_reml_likelihood(h2):
        return _neg_reml_likelihood(h2, y_t, X_t, eig_safe)

    # Runs in cross-validation worker threads: leave the warning filters alone
    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        result = optimize.minimize_scalar(
            neg_reml_likelihood,
            bounds=H2_BOUNDS,
            method='bounded',
            options={'xatol': tolerance, 'maxiter': int(max_iterations)},
        )

    if not np.isfinite(result.fun):
        raise NumericalInstabilityError(
            "REML likelihood is not finite over the heritability range; "
            "relationship or design matrix is ill-conditioned"
        )

    h2_hat = float(result.x)
    converged = bool(result.success)
    n_iterations = int(getattr(result, 'nit', getattr(result, 'nfev', 0)))
    vg_hat, ve_hat = _components_at(h2_hat, y_t, X_t, eig_safe)

    notes = []
    if not converged:
        message = (
            f"REML did not converge within {max_iterations} iterations "
            f"({result.message}); returning best iterate h2={h2_hat:.6f}"
        )
        warnings.warn(message, ConvergenceWarning, stacklevel=2)
        notes.append(message)
    if h2_hat <= H2_BOUNDS[0] + BOUNDARY_TOL or h2_hat >= H2_BOUNDS[1] - BOUNDARY_TOL:
        message = f"REML heritability estimate h2={h2_hat:.6f} lies on the boundary of (0, 1)"
        warnings.warn(message, HeritabilityBoundaryWarning, stacklevel=2)
        notes.append(message)

    if verbose:
        print(f"Brent optimization: h² = {h2_hat:.6f}, neg-log-likelihood = {result.fun:.6f}")
        print(f"Estimated vg = {vg_hat:.6f}, ve = {ve_hat:.6f}")
        print(f"Converged: {converged} after {n_iterations} iterations")

    return VarianceComponents(
        genetic_variance=vg_hat,
        residual_variance=ve_hat,
        converged=converged,
        n_iterations=n_iterations,
        method="REML",
        log_likelihood=-float(result.fun),
        warnings=tuple(notes),
    )


def components_at_heritability(y: np.ndarray,
                               X: np.ndarray,
                               G: Optional[np.ndarray] = None,
                               hsq: float = 0.5,
                               *,
                               eigen: Optional[Dict[str, np.ndarray]] = None) -> VarianceComponents:
    """Variance components for a caller-fixed heritability (no iteration)

    The total variance is the REML profile estimate y'Py / (n - k) at ``hsq``,
    split as vg = hsq * total and ve = (1 - hsq) * total.
    """
    if not np.isfinite(hsq) or hsq <= 0.0 or hsq >= 1.0:
        raise InvalidParameterError(f"Fixed heritability must lie strictly between 0 and 1, got {hsq}")
    y_t, X_t, eig_safe = _rotate(y, X, G, eigen)

    notes = ()
    if _is_constant_after_fixed_effects(y_t, X_t):
        message = "Phenotype has no variance beyond the fixed effects; variance components set to 0"
        warnings.warn(message, ConvergenceWarning, stacklevel=2)
        notes = (message,)
        vg_hat, ve_hat = 0.0, 0.0
    else:
        vg_hat, ve_hat = _components_at(float(hsq), y_t, X_t, eig_safe)

    return VarianceComponents(
        genetic_variance=vg_hat,
        residual_variance=ve_hat,
        converged=True,
        n_iterations=0,
        method="fixed",
        log_likelihood=-_neg_reml_likelihood(float(hsq), y_t, X_t, eig_safe),
        warnings=notes,
    )
