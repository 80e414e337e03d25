"""
Fixed-effect design matrix and genomic relationship matrix construction
"""

import numpy as np
from typing import Optional, Tuple, Union

from ..utils.data_types import GenotypeMatrix
from ..utils.errors import DimensionError, InvalidParameterError, NumericalInstabilityError

NORMALIZATION_CHOICES: Tuple[str, ...] = ("none", "markers", "vanraden")


def _as_genotype_array(Z: Union[GenotypeMatrix, np.ndarray]) -> np.ndarray:
    if isinstance(Z, GenotypeMatrix):
        array = Z.values
    else:
        array = np.asarray(Z, dtype=np.float64)
    if array.ndim != 2:
        raise DimensionError(f"Genotype matrix must be 2D, got shape {array.shape}")
    n_individuals, n_markers = array.shape
    if n_individuals == 0 or n_markers == 0:
        raise DimensionError(
            f"Genotype matrix needs at least one individual and one marker, got shape {array.shape}"
        )
    return array


def build_design_matrix(n_individuals: int, covariates: Optional[np.ndarray] = None) -> np.ndarray:
    """Fixed-effect design matrix X = [1 | covariates]

    Args:
        n_individuals: Number of rows
        covariates: Optional covariate matrix (n_individuals × n_covariates)

    Returns:
        Design matrix (n_individuals × k), intercept in the first column
    """
    if n_individuals <= 0:
        raise DimensionError("Design matrix needs at least one individual")
    intercept = np.ones((n_individuals, 1), dtype=np.float64)
    if covariates is None:
        return intercept

    cov = np.asarray(covariates, dtype=np.float64)
    if cov.ndim == 1:
        cov = cov[:, np.newaxis]
    if cov.ndim != 2 or cov.shape[0] != n_individuals:
        raise DimensionError(
            f"Covariate matrix must have {n_individuals} rows, got shape {cov.shape}"
        )
    if not np.all(np.isfinite(cov)):
        raise NumericalInstabilityError("Covariate matrix contains non-finite values")
    return np.column_stack([intercept, cov])


def build_relationship_matrix(Z: Union[GenotypeMatrix, np.ndarray],
                              normalization: str = "none") -> np.ndarray:
    """Genomic relationship matrix from marker codes

    Normalization policies:
        none:     G = ZZ' (raw marker codes as genotypic covariates)
        markers:  G = ZZ' / m
        vanraden: G = WW' / mean(diag(WW')), W = Z - 2p (0/1/2 dosage coding)

    Returns:
        Symmetric n × n relationship matrix
    """
    array = _as_genotype_array(Z)
    policy = normalization.lower()
    if policy not in NORMALIZATION_CHOICES:
        raise InvalidParameterError(
            f"Unknown relationship normalization '{normalization}'; expected one of {NORMALIZATION_CHOICES}"
        )

    if policy == "vanraden":
        # Frequency of alt allele = mean(genotype) / 2
        freq = array.mean(axis=0) / 2.0
        W = array - 2.0 * freq[np.newaxis, :]
        G = W @ W.T
        mean_diag = float(np.mean(np.diag(G)))
        if mean_diag <= 0:
            raise NumericalInstabilityError(
                "VanRaden relationship matrix has a non-positive mean diagonal (all markers monomorphic?)"
            )
        G = G / mean_diag
    else:
        G = array @ array.T
        if policy == "markers":
            G = G / array.shape[1]

    G = (G + G.T) / 2.0
    if not np.all(np.isfinite(G)):
        raise NumericalInstabilityError("Relationship matrix contains non-finite values")
    return G
