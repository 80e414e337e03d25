"""
Ridge-regression marker effect estimation

Solves min ||y - Xb - Z*beta||^2 + beta' D beta through the mixed-model
equations

    [X'X  X'Z    ] [b   ]   [X'y]
    [Z'X  Z'Z + D] [beta] = [Z'y]

with D = lambda*I (homogeneous) or diag(lambda_1..lambda_m) (heterogeneous).
Without fixed effects this is exactly (Z'Z + D) beta = Z'y.

When there are more markers than individuals and every lambda_j > 0 the
equivalent n × n dual system is cheaper:

    V = Z D^-1 Z' + I,   b = (X'V^-1X)^-1 X'V^-1 y,   beta = D^-1 Z' V^-1 (y - Xb)
"""

import warnings
import numpy as np
from typing import Iterable, Optional, Tuple, Union
from scipy import linalg

from ..utils.data_types import GenotypeMatrix, MarkerEffects, ShrinkageSpec, VarianceComponents
from ..utils.errors import (
    DimensionError,
    InvalidParameterError,
    LeastSquaresFallbackWarning,
    SingularSystemError,
)

SOLVER_CHOICES: Tuple[str, ...] = ("auto", "primal", "dual")

# Cholesky pivots below this ratio are treated as a semidefinite system.
CHOLESKY_PIVOT_RATIO = 1e-7
LSTSQ_RCOND = 1e-10


def _cholesky_solve(A: np.ndarray, rhs: np.ndarray) -> Optional[np.ndarray]:
    """Solve A x = rhs by Cholesky; None when A is not numerically positive definite."""
    try:
        factor, lower = linalg.cho_factor(A, lower=True, check_finite=False)
    except linalg.LinAlgError:
        return None
    pivots = np.abs(np.diag(factor))
    if pivots.size == 0 or pivots.min() <= CHOLESKY_PIVOT_RATIO * pivots.max():
        return None
    solution = linalg.cho_solve((factor, lower), rhs, check_finite=False)
    if not np.all(np.isfinite(solution)):
        return None
    return solution


def _solve_normal_equations(A: np.ndarray, rhs: np.ndarray) -> Tuple[np.ndarray, str, Optional[str]]:
    """Cholesky solve with a least-squares fallback

    Returns:
        Tuple of (solution, solver name, warning message or None)
    """
    solution = _cholesky_solve(A, rhs)
    if solution is not None:
        return solution, "cholesky", None

    message = (
        "Regularized system is not positive definite (markers without shrinkage?); "
        "falling back to least squares"
    )
    warnings.warn(message, LeastSquaresFallbackWarning, stacklevel=3)
    try:
        solution, _, rank, _ = linalg.lstsq(A, rhs, cond=LSTSQ_RCOND, check_finite=False)
    except (linalg.LinAlgError, ValueError) as exc:
        raise SingularSystemError(f"Least-squares fallback failed: {exc}") from exc
    if rank < A.shape[0] or not np.all(np.isfinite(solution)):
        raise SingularSystemError(
            f"Regularized system of size {A.shape[0]} has rank {rank}; "
            "check for duplicate markers with zero shrinkage"
        )
    return solution, "lstsq", message


def _solve_primal(Z: np.ndarray, y: np.ndarray, X: Optional[np.ndarray],
                  penalty: np.ndarray) -> Tuple[np.ndarray, np.ndarray, str, Optional[str]]:
    if X is None:
        A = Z.T @ Z
        A[np.diag_indices_from(A)] += penalty
        solution, solver, note = _solve_normal_equations(A, Z.T @ y)
        return np.zeros(0), solution, solver, note

    k = X.shape[1]
    C = np.column_stack([X, Z])
    A = C.T @ C
    idx = np.arange(k, A.shape[0])
    A[idx, idx] += penalty
    solution, solver, note = _solve_normal_equations(A, C.T @ y)
    return solution[:k], solution[k:], solver, note


def _solve_dual(Z: np.ndarray, y: np.ndarray, X: Optional[np.ndarray],
                penalty: np.ndarray) -> Tuple[np.ndarray, np.ndarray, str, Optional[str]]:
    d_inv = 1.0 / penalty
    V = (Z * d_inv[np.newaxis, :]) @ Z.T
    V[np.diag_indices_from(V)] += 1.0
    try:
        factor = linalg.cho_factor(V, lower=True, check_finite=False)
    except linalg.LinAlgError as exc:
        raise SingularSystemError(f"Dual system Z D^-1 Z' + I is not positive definite: {exc}") from exc

    if X is None:
        b = np.zeros(0)
        resid = y
    else:
        ViX = linalg.cho_solve(factor, X, check_finite=False)
        XViX = X.T @ ViX
        try:
            b = linalg.solve(XViX, ViX.T @ y, assume_a='pos', check_finite=False)
        except (linalg.LinAlgError, ValueError) as exc:
            raise SingularSystemError(f"Fixed-effect system X'V^-1X is singular: {exc}") from exc
        resid = y - X @ b

    alpha = linalg.cho_solve(factor, resid, check_finite=False)
    beta = d_inv * (Z.T @ alpha)
    if not (np.all(np.isfinite(beta)) and np.all(np.isfinite(b))):
        raise SingularSystemError("Dual ridge solution is not finite")
    return b, beta, "dual-cholesky", None


def estimate_marker_effects(Z: Union[GenotypeMatrix, np.ndarray],
                            y: np.ndarray,
                            shrinkage: ShrinkageSpec,
                            X: Optional[np.ndarray] = None,
                            *,
                            marker_labels: Optional[Iterable[str]] = None,
                            variance_components: Optional[VarianceComponents] = None,
                            solver: str = "auto",
                            verbose: bool = False) -> MarkerEffects:
    """Ridge-regression BLUP of marker effects

    Args:
        Z: Training genotypes (n × m)
        y: Training phenotypes (n)
        shrinkage: Homogeneous or heterogeneous penalty over the m markers
        X: Optional fixed-effect design matrix (n × k)
        marker_labels: Marker labels (taken from Z when it is a GenotypeMatrix)
        variance_components: Recorded on the result for provenance
        solver: 'auto' (dual when m > n and all lambda_j > 0), 'primal' or 'dual'
        verbose: Print solver information

    Returns:
        MarkerEffects with m marker effects and k fixed effects

    Raises:
        DimensionError: Shapes of Z, y, X and shrinkage disagree
        SingularSystemError: The regularized system cannot be solved
    """
    if isinstance(Z, GenotypeMatrix):
        if marker_labels is None:
            marker_labels = Z.marker_labels
        Z = Z.values
    Z = np.asarray(Z, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    if Z.ndim != 2 or Z.shape[0] == 0 or Z.shape[1] == 0:
        raise DimensionError(f"Genotype matrix must be non-empty 2D, got shape {Z.shape}")
    n, m = Z.shape
    if y.ndim != 1 or y.size != n:
        raise DimensionError(f"Phenotype vector must have length {n}, got shape {y.shape}")
    if shrinkage.n_markers != m:
        raise DimensionError(f"Shrinkage covers {shrinkage.n_markers} markers but Z has {m}")
    if X is not None:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2 or X.shape[0] != n:
            raise DimensionError(f"Design matrix must have {n} rows, got shape {X.shape}")
    if marker_labels is None:
        marker_labels = [f"M{j + 1}" for j in range(m)]

    solver = solver.lower()
    if solver not in SOLVER_CHOICES:
        raise InvalidParameterError(f"Unknown solver '{solver}'; expected one of {SOLVER_CHOICES}")

    penalty = shrinkage.penalty_diagonal()
    notes = []
    zero_markers = shrinkage.zero_weight_markers
    if zero_markers.size > 0:
        notes.append(f"{zero_markers.size} markers estimated without shrinkage")

    if solver == "dual" and zero_markers.size > 0:
        raise InvalidParameterError("The dual solver requires every shrinkage weight to be > 0")
    use_dual = solver == "dual" or (solver == "auto" and m > n and zero_markers.size == 0)

    if verbose:
        print(f"Solving {'dual' if use_dual else 'primal'} ridge system for {n} individuals, {m} markers "
              f"({shrinkage.mode} shrinkage)")

    if use_dual:
        b, beta, used_solver, note = _solve_dual(Z, y, X, penalty)
    else:
        b, beta, used_solver, note = _solve_primal(Z, y, X, penalty)
    if note is not None:
        notes.append(note)

    return MarkerEffects(
        effects=beta,
        fixed_effects=b,
        marker_labels=tuple(marker_labels),
        shrinkage=shrinkage,
        variance_components=variance_components,
        solver=used_solver,
        warnings=tuple(notes),
    )
