"""
Shrinkage (ridge penalty) factors from variance components

Homogeneous mode applies one penalty to every marker:
    lambda = m * (1/h2 - 1)

Heterogeneous mode (RMLA) apportions the total genetic variance across
markers in proportion to their single-marker variance contributions and
penalizes each marker by the residual-to-marker variance ratio:
    var_j    = (vg * m) * SM_j / sum(SM)
    lambda_j = ve / var_j
"""

import numpy as np
from typing import Optional

from ..utils.data_types import SHRINKAGE_MODES, ShrinkageSpec, VarianceComponents
from ..utils.errors import DegenerateInputError, DimensionError, InvalidParameterError


def homogeneous_shrinkage(hsq: float, n_markers: int) -> ShrinkageSpec:
    """Single ridge penalty lambda = m * (1/h2 - 1)

    Raises:
        InvalidParameterError: h2 outside (0, 1) or no markers
    """
    if n_markers < 1:
        raise InvalidParameterError(f"Shrinkage needs at least one marker, got {n_markers}")
    hsq = float(hsq)
    if not np.isfinite(hsq) or hsq <= 0.0 or hsq >= 1.0:
        raise InvalidParameterError(
            f"Heritability must lie strictly between 0 and 1 for homogeneous shrinkage, got {hsq}"
        )
    lam = n_markers * (1.0 / hsq - 1.0)
    return ShrinkageSpec(mode="homogeneous", weights=np.array(lam), n_markers=n_markers)


def apportion_genetic_variance(genetic_variance: float, marker_variances: np.ndarray) -> np.ndarray:
    """Split vg * m across markers proportionally to their single-marker variances

    The result sums to vg * m exactly (up to floating point).
    """
    sm = np.asarray(marker_variances, dtype=np.float64)
    if sm.ndim != 1 or sm.size == 0:
        raise DimensionError(f"Marker variances must be a non-empty 1D array, got shape {sm.shape}")
    if not np.all(np.isfinite(sm)):
        raise InvalidParameterError("Marker variances must be finite")
    if np.any(sm < 0):
        raise InvalidParameterError("Marker variances must be >= 0")

    total = float(sm.sum())
    if total <= 0.0:
        raise DegenerateInputError("Single-marker variances sum to zero; no marker explains any variance")
    return (genetic_variance * sm.size) * (sm / total)


def heterogeneous_shrinkage(components: VarianceComponents, marker_variances: np.ndarray) -> ShrinkageSpec:
    """Per-marker ridge penalties lambda_j = ve / var_j

    Markers whose apportioned variance is 0 get lambda_j = 0 when ve is also 0.

    Raises:
        DegenerateInputError: sum(SM) == 0, or var_j == 0 while ve > 0
    """
    var_marker = apportion_genetic_variance(components.genetic_variance, marker_variances)
    ve = components.residual_variance

    zero_markers = np.where(var_marker <= 0.0)[0]
    if zero_markers.size > 0 and ve > 0.0:
        raise DegenerateInputError(
            f"{zero_markers.size} markers have zero apportioned genetic variance "
            f"(first indices: {zero_markers[:5].tolist()}) while residual variance is {ve:.6g}"
        )

    weights = np.zeros_like(var_marker)
    nonzero = var_marker > 0.0
    weights[nonzero] = ve / var_marker[nonzero]
    return ShrinkageSpec(mode="heterogeneous", weights=weights, n_markers=var_marker.size)


def calculate_shrinkage(mode: str,
                        n_markers: int,
                        *,
                        components: Optional[VarianceComponents] = None,
                        hsq: Optional[float] = None,
                        marker_variances: Optional[np.ndarray] = None) -> ShrinkageSpec:
    """Shrinkage for an explicitly selected mode

    Args:
        mode: 'homogeneous' or 'heterogeneous'
        n_markers: Number of markers m
        components: Variance components (required for heterogeneous mode; the
            source of h2 in homogeneous mode when ``hsq`` is not given)
        hsq: Fixed heritability, overrides ``components`` in homogeneous mode
        marker_variances: Single-marker variances SM_j (heterogeneous mode)
    """
    if mode not in SHRINKAGE_MODES:
        raise InvalidParameterError(f"Unknown shrinkage mode '{mode}'; expected one of {SHRINKAGE_MODES}")

    if mode == "homogeneous":
        if hsq is None:
            if components is None:
                raise InvalidParameterError("Homogeneous shrinkage needs a heritability or variance components")
            hsq = components.heritability
        return homogeneous_shrinkage(hsq, n_markers)

    if components is None:
        raise InvalidParameterError("Heterogeneous shrinkage needs variance components")
    if marker_variances is None:
        raise InvalidParameterError("Heterogeneous shrinkage needs single-marker variances")
    sm = np.asarray(marker_variances, dtype=np.float64)
    if sm.shape != (n_markers,):
        raise DimensionError(f"Expected {n_markers} single-marker variances, got shape {sm.shape}")
    return heterogeneous_shrinkage(components, sm)
