"""
Ridge-regression BLUP calibration: the full estimation chain on one training set

DesignMatrixBuilder -> VarianceComponentEstimator -> ShrinkageCalculator -> RidgeEffectEstimator
"""

from dataclasses import replace

import numpy as np
from typing import Dict, Optional

from ..config import PredictionConfig
from ..matrix.design import build_design_matrix, build_relationship_matrix
from ..utils.data_types import GenotypeMatrix, MarkerEffects, PhenotypeVector, VarianceComponents, align_phenotypes
from ..utils.errors import DimensionError, NonConvergenceError
from ..utils.stats import single_marker_variances
from .reml import components_at_heritability, decompose_relationship, estimate_variance_components
from .ridge import estimate_marker_effects
from .shrinkage import calculate_shrinkage


def _variance_components(geno: GenotypeMatrix,
                         y: np.ndarray,
                         X: np.ndarray,
                         config: PredictionConfig,
                         eigen: Optional[Dict[str, np.ndarray]],
                         require_convergence: bool) -> VarianceComponents:
    if eigen is None:
        G = build_relationship_matrix(geno, config.relationship_normalization)
        eigen = decompose_relationship(G)

    if config.hsq is not None:
        return components_at_heritability(y, X, hsq=config.hsq, eigen=eigen)

    components = estimate_variance_components(
        y, X, eigen=eigen, max_iterations=config.max_iterations, verbose=config.verbose
    )
    if components.converged:
        return components

    if config.fallback_hsq is not None:
        fallback = components_at_heritability(y, X, hsq=config.fallback_hsq, eigen=eigen)
        note = f"REML did not converge; using fallback heritability {config.fallback_hsq}"
        if config.verbose:
            print(note)
        return VarianceComponents(
            genetic_variance=fallback.genetic_variance,
            residual_variance=fallback.residual_variance,
            converged=False,
            n_iterations=components.n_iterations,
            method="fallback",
            log_likelihood=fallback.log_likelihood,
            warnings=components.warnings + fallback.warnings + (note,),
        )
    if require_convergence:
        reason = components.warnings[0] if components.warnings else "REML did not converge"
        raise NonConvergenceError(reason)
    return components


def fit_marker_effects(geno: GenotypeMatrix,
                       y: np.ndarray,
                       config: Optional[PredictionConfig] = None,
                       *,
                       covariates: Optional[np.ndarray] = None,
                       marker_variances: Optional[np.ndarray] = None,
                       eigen: Optional[Dict[str, np.ndarray]] = None,
                       require_convergence: bool = False) -> MarkerEffects:
    """Estimate marker effects from genotypes and phenotypes aligned row by row

    Args:
        geno: Training genotypes (n × m)
        y: Training phenotypes aligned to the genotype rows
        config: Analysis options (defaults to PredictionConfig())
        covariates: Optional fixed-effect covariates (n × c)
        marker_variances: Single-marker variances for heterogeneous shrinkage;
            computed from the training data by one-way ANOVA when omitted
        eigen: Pre-computed eigendecomposition of the training relationship matrix
        require_convergence: Raise NonConvergenceError instead of continuing
            with the best REML iterate (ignored when fallback_hsq is set)

    Returns:
        MarkerEffects carrying the variance components and shrinkage used.
        Variance components are None for homogeneous shrinkage with a fixed
        hsq, which needs no variance model.
    """
    config = (config or PredictionConfig()).validate()
    y = np.asarray(y, dtype=np.float64)
    if y.ndim != 1 or y.size != geno.n_individuals:
        raise DimensionError(
            f"Phenotype vector of length {y.size} does not match {geno.n_individuals} genotyped individuals"
        )
    if geno.n_markers == 0:
        raise DimensionError("Genotype matrix has no markers")

    X = build_design_matrix(geno.n_individuals, covariates)

    components: Optional[VarianceComponents] = None
    if config.shrinkage_mode == "heterogeneous" or config.hsq is None:
        components = _variance_components(geno, y, X, config, eigen, require_convergence)

    if config.shrinkage_mode == "heterogeneous" and marker_variances is None:
        marker_variances = single_marker_variances(geno.values, y)

    shrinkage = calculate_shrinkage(
        config.shrinkage_mode,
        geno.n_markers,
        components=components,
        hsq=config.hsq,
        marker_variances=marker_variances,
    )

    if config.verbose:
        if shrinkage.is_homogeneous:
            print(f"Homogeneous shrinkage lambda = {float(shrinkage.weights):.6f}")
        else:
            print(f"Heterogeneous shrinkage, lambda range "
                  f"[{shrinkage.weights.min():.6g}, {shrinkage.weights.max():.6g}]")

    effects = estimate_marker_effects(
        geno, y, shrinkage, X,
        variance_components=components,
        solver=config.solver,
        verbose=config.verbose,
    )
    if components is not None and components.is_degenerate:
        note = "Residual variance is 0; marker effects come from a degenerate fit"
        if config.verbose:
            print(note)
        effects = replace(effects, warnings=effects.warnings + (note,))
    return effects


def estimate_effects(geno: GenotypeMatrix,
                     phe: PhenotypeVector,
                     config: Optional[PredictionConfig] = None,
                     *,
                     covariates: Optional[np.ndarray] = None,
                     marker_variances: Optional[np.ndarray] = None) -> MarkerEffects:
    """Ridge-regression BLUP of marker effects from ID-keyed data

    Phenotypes are matched to genotype rows by individual ID; genotyped
    individuals without a phenotype are left out of the training set.

    Args:
        geno: Genotype matrix
        phe: Phenotype vector keyed by individual ID
        config: Analysis options
        covariates: Optional covariates aligned to the genotype rows of ``geno``
        marker_variances: Optional single-marker variances (heterogeneous mode)

    Returns:
        MarkerEffects
    """
    geno_train, y = align_phenotypes(geno, phe)
    if covariates is not None:
        covariates = np.asarray(covariates, dtype=np.float64)
        if covariates.shape[0] != geno.n_individuals:
            raise DimensionError(
                f"Covariates have {covariates.shape[0]} rows but genotype matrix has {geno.n_individuals}"
            )
        covariates = covariates[geno.index_of(geno_train.individual_ids)]
    return fit_marker_effects(
        geno_train, y, config,
        covariates=covariates,
        marker_variances=marker_variances,
    )
