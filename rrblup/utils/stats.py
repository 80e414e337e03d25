"""
Statistical utilities for genomic prediction
"""

import numpy as np
from typing import Dict, Tuple

from .errors import DimensionError


def pearson_correlation(predicted: np.ndarray, observed: np.ndarray) -> float:
    """Pearson correlation between predicted and observed values

    Returns NaN when either vector has fewer than two values or zero variance,
    since the correlation is undefined there.
    """
    predicted = np.asarray(predicted, dtype=np.float64)
    observed = np.asarray(observed, dtype=np.float64)
    if predicted.shape != observed.shape:
        raise DimensionError(
            f"Predicted and observed values differ in shape: {predicted.shape} vs {observed.shape}"
        )
    if predicted.size < 2:
        return float('nan')

    pred_c = predicted - predicted.mean()
    obs_c = observed - observed.mean()
    denom = np.sqrt(np.dot(pred_c, pred_c) * np.dot(obs_c, obs_c))
    if denom <= 0 or not np.isfinite(denom):
        return float('nan')
    return float(np.clip(np.dot(pred_c, obs_c) / denom, -1.0, 1.0))


def summarize_correlations(correlations: np.ndarray) -> Dict[str, float]:
    """Mean, sample variance and count of the finite correlations

    Args:
        correlations: Per-run correlations (NaN entries are ignored)

    Returns:
        Dict with 'mean', 'variance', 'n' (variance is NaN for n < 2)
    """
    values = np.asarray(correlations, dtype=np.float64)
    values = values[np.isfinite(values)]
    n = int(values.size)
    if n == 0:
        return {'mean': float('nan'), 'variance': float('nan'), 'n': 0}
    variance = float(np.var(values, ddof=1)) if n > 1 else float('nan')
    return {'mean': float(values.mean()), 'variance': variance, 'n': n}


def single_marker_anova(genotypes: np.ndarray, phenotype: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """One-way ANOVA of the phenotype on genotype class, for every marker

    Each distinct genotype code of a marker is one class. Computed with
    vectorized class sums rather than a per-marker model fit.

    Args:
        genotypes: Genotype matrix (individuals × markers), no missing values
        phenotype: Phenotype vector aligned to the genotype rows

    Returns:
        Tuple of (between-class sum of squares, number of classes) per marker
    """
    Z = np.asarray(genotypes, dtype=np.float64)
    y = np.asarray(phenotype, dtype=np.float64)
    if Z.ndim != 2 or y.ndim != 1 or Z.shape[0] != y.size:
        raise DimensionError(
            f"Genotype matrix {Z.shape} and phenotype vector {y.shape} are not aligned"
        )

    n_markers = Z.shape[1]
    ss_between = np.zeros(n_markers, dtype=np.float64)
    n_classes = np.zeros(n_markers, dtype=np.int64)
    if y.size == 0 or n_markers == 0:
        return ss_between, n_classes

    y_c = y - y.mean()
    for code in np.unique(Z):
        in_class = (Z == code).astype(np.float64)
        counts = in_class.sum(axis=0).astype(np.int64)
        sums = y_c @ in_class
        present = counts > 0
        ss_between[present] += sums[present] ** 2 / counts[present]
        n_classes += present

    # ss_between is exactly 0 for a single class; clear rounding noise there
    ss_between[n_classes < 2] = 0.0
    return np.maximum(ss_between, 0.0), n_classes


def single_marker_variances(genotypes: np.ndarray, phenotype: np.ndarray) -> np.ndarray:
    """Phenotypic variance explained by each marker on its own

    SM_var_j is the between-class sum of squares divided by n, i.e. the
    variance of the fitted genotype-class means. Monomorphic markers get 0.
    """
    ss_between, _ = single_marker_anova(genotypes, phenotype)
    n = np.asarray(phenotype).size
    if n == 0:
        return ss_between
    return ss_between / n
