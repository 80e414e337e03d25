"""Repeated random-subsampling cross-validation of ridge-regression BLUP"""

from __future__ import annotations

import multiprocessing
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ..config import PredictionConfig
from ..model.fit import fit_marker_effects
from ..model.predict import predict_genotypes
from ..utils.data_types import GenotypeMatrix, MarkerEffects, PhenotypeVector, align_phenotypes
from ..utils.errors import NUMERICAL_ERRORS, CrossValidationError, DimensionError, InvalidParameterError
from ..utils.stats import pearson_correlation, summarize_correlations


@dataclass(frozen=True, eq=False)
class CVRun:
    """One cross-validation repetition"""

    repetition: int
    train_ids: Tuple[str, ...]
    test_ids: Tuple[str, ...]
    effects: Optional[MarkerEffects]
    predicted: np.ndarray
    observed: np.ndarray
    correlation: float
    success: bool = True
    reason: Optional[str] = None

    def to_row(self) -> Dict[str, Union[str, int, float, bool, None]]:
        components = self.effects.variance_components if self.effects is not None else None
        return {
            "Repetition": self.repetition,
            "NTrain": len(self.train_ids),
            "NTest": len(self.test_ids),
            "Correlation": float(self.correlation),
            "Success": self.success,
            "Reason": self.reason,
            "h2": components.heritability if components is not None else np.nan,
        }


class CVResult:
    """Ordered cross-validation runs plus accuracy summary over successful runs"""

    def __init__(self, runs: Sequence[CVRun], config: PredictionConfig) -> None:
        self.runs: List[CVRun] = sorted(runs, key=lambda run: run.repetition)
        self.config = config
        self._summary = summarize_correlations(self.correlations)

    @property
    def successful_runs(self) -> List[CVRun]:
        return [run for run in self.runs if run.success]

    @property
    def n_success(self) -> int:
        return len(self.successful_runs)

    @property
    def n_failed(self) -> int:
        return len(self.runs) - self.n_success

    @property
    def failure_reasons(self) -> Dict[int, str]:
        return {run.repetition: run.reason for run in self.runs if not run.success}

    @property
    def correlations(self) -> np.ndarray:
        """Correlations of successful runs (NaN where the correlation is undefined)"""
        return np.array([run.correlation for run in self.successful_runs], dtype=np.float64)

    @property
    def mean_correlation(self) -> float:
        return self._summary['mean']

    @property
    def var_correlation(self) -> float:
        return self._summary['variance']

    @property
    def n_scored(self) -> int:
        """Successful runs with a defined correlation"""
        return self._summary['n']

    def summary(self) -> Dict[str, Union[int, float]]:
        return {
            'repetitions': len(self.runs),
            'n_success': self.n_success,
            'n_failed': self.n_failed,
            'n_scored': self.n_scored,
            'mean_correlation': self.mean_correlation,
            'var_correlation': self.var_correlation,
        }

    def to_dataframe(self) -> pd.DataFrame:
        rows = [run.to_row() for run in self.runs]
        if not rows:
            return pd.DataFrame(columns=["Repetition", "NTrain", "NTest", "Correlation", "Success", "Reason", "h2"])
        return pd.DataFrame(rows)


def _validate_inputs(repetitions: int, test_size: int, n_individuals: int) -> None:
    if repetitions <= 0:
        raise InvalidParameterError("Number of cross-validation repetitions must be positive")
    if test_size < 1:
        raise InvalidParameterError("Cross-validation test size must be at least 1")
    if test_size > n_individuals - 2:
        raise InvalidParameterError(
            f"Test size {test_size} leaves fewer than 2 of {n_individuals} individuals for training"
        )


def _subset_covariates(cv: Optional[np.ndarray], indices: np.ndarray) -> Optional[np.ndarray]:
    if cv is None:
        return None
    return cv[indices]


def draw_partition(rng: np.random.Generator, n_individuals: int, test_size: int) -> Tuple[np.ndarray, np.ndarray]:
    """Uniformly random split into (train indices, test indices), each sorted"""
    order = rng.permutation(n_individuals)
    return np.sort(order[test_size:]), np.sort(order[:test_size])


def _run_repetition(repetition: int,
                    seed: np.random.SeedSequence,
                    geno: GenotypeMatrix,
                    y: np.ndarray,
                    covariates: Optional[np.ndarray],
                    config: PredictionConfig) -> CVRun:
    rng = np.random.default_rng(seed)
    train_idx, test_idx = draw_partition(rng, geno.n_individuals, config.cv_test_size)

    geno_train = geno.subset_individuals(train_idx)
    geno_test = geno.subset_individuals(test_idx)
    observed = y[test_idx]

    try:
        effects = fit_marker_effects(
            geno_train,
            y[train_idx],
            config,
            covariates=_subset_covariates(covariates, train_idx),
            require_convergence=True,
        )
        prediction = predict_genotypes(
            effects,
            geno_test,
            include_fixed=True,
            covariates=_subset_covariates(covariates, test_idx),
        )
    except NUMERICAL_ERRORS as exc:
        return CVRun(
            repetition=repetition,
            train_ids=geno_train.individual_ids,
            test_ids=geno_test.individual_ids,
            effects=None,
            predicted=np.full(test_idx.size, np.nan),
            observed=observed,
            correlation=float('nan'),
            success=False,
            reason=f"{type(exc).__name__}: {exc}",
        )

    return CVRun(
        repetition=repetition,
        train_ids=geno_train.individual_ids,
        test_ids=geno_test.individual_ids,
        effects=effects,
        predicted=np.asarray(prediction.values),
        observed=observed,
        correlation=pearson_correlation(prediction.values, observed),
    )


def cross_validate(geno: GenotypeMatrix,
                   phe: PhenotypeVector,
                   config: Optional[PredictionConfig] = None,
                   *,
                   covariates: Optional[np.ndarray] = None) -> CVResult:
    """Estimate predictive accuracy by repeated random train/test partitioning

    Each repetition draws a test set of ``config.cv_test_size`` individuals,
    runs the whole estimation chain on the remaining individuals only, and
    correlates predicted with observed phenotypes in the test set.
    Repetition r draws its partition from child r of
    ``SeedSequence(config.random_seed)``, so results do not depend on the
    order in which parallel workers finish.

    Args:
        geno: Genotype matrix
        phe: Phenotype vector keyed by individual ID
        config: Analysis options (cv_repetitions, cv_test_size, random_seed, cpu, ...)
        covariates: Optional covariates aligned to the genotype rows of ``geno``

    Returns:
        CVResult with one CVRun per repetition, in repetition order

    Raises:
        CrossValidationError: No repetition succeeded
        DimensionError, MarkerMismatchError: Structural input problems
    """
    config = (config or PredictionConfig()).validate()
    geno_all, y = align_phenotypes(geno, phe)
    if covariates is not None:
        covariates = np.asarray(covariates, dtype=np.float64)
        if covariates.shape[0] != geno.n_individuals:
            raise DimensionError(
                f"Covariates have {covariates.shape[0]} rows but genotype matrix has {geno.n_individuals}"
            )
        covariates = covariates[geno.index_of(geno_all.individual_ids)]

    repetitions = config.cv_repetitions
    _validate_inputs(repetitions, config.cv_test_size, geno_all.n_individuals)

    cpu = config.cpu
    if cpu == 0:
        cpu = multiprocessing.cpu_count()

    if config.verbose:
        print(f"Cross-validation: {repetitions} repetitions, test size {config.cv_test_size} "
              f"of {geno_all.n_individuals} individuals, {config.shrinkage_mode} shrinkage")
        if cpu > 1:
            print(f"Using {cpu} parallel workers")

    seeds = np.random.SeedSequence(config.random_seed).spawn(repetitions)
    # Workers print nothing; progress is reported once all runs are collected
    worker_config = config.replace(verbose=False)

    if cpu > 1:
        runs = Parallel(n_jobs=cpu, backend='threading')(
            delayed(_run_repetition)(rep, seeds[rep], geno_all, y, covariates, worker_config)
            for rep in range(repetitions)
        )
    else:
        runs = [
            _run_repetition(rep, seeds[rep], geno_all, y, covariates, worker_config)
            for rep in range(repetitions)
        ]

    result = CVResult(runs, config)
    if config.verbose:
        print(f"Cross-validation complete: {result.n_success} succeeded, {result.n_failed} failed")
        print(f"Mean correlation: {result.mean_correlation:.4f} (variance {result.var_correlation:.4f})")

    if result.n_success == 0:
        reasons = sorted(set(result.failure_reasons.values()))
        raise CrossValidationError(
            f"All {repetitions} cross-validation repetitions failed: {'; '.join(reasons[:3])}"
        )
    return result
