"""
Train/validate comparison of calibration methods on a held-out set

Each method is a set of PredictionConfig overrides. The defaults reproduce
the three classic ridge-regression calibrations:

    RR       homogeneous shrinkage, fixed heritability 0.9
    RR_BLUP  homogeneous shrinkage, REML heritability
    RR_HET   heterogeneous (per-marker) shrinkage, REML variance components
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

from ..config import PredictionConfig
from ..matrix.design import build_relationship_matrix
from ..model.fit import fit_marker_effects
from ..model.predict import predict_genotypes
from ..model.reml import decompose_relationship
from ..utils.data_types import GenotypeMatrix, MarkerEffects, PhenotypeVector, align_phenotypes
from ..utils.errors import DimensionError
from ..utils.stats import pearson_correlation

DEFAULT_METHODS: Dict[str, Dict[str, Any]] = {
    "RR": {"shrinkage_mode": "homogeneous", "hsq": 0.9},
    "RR_BLUP": {"shrinkage_mode": "homogeneous", "hsq": None},
    "RR_HET": {"shrinkage_mode": "heterogeneous", "hsq": None},
}


@dataclass
class HoldoutResult:
    """Per-method predictions for a validation set, with accuracy when phenotypes are known"""

    predictions: pd.DataFrame
    effects: Dict[str, MarkerEffects]
    observed: Optional[pd.Series] = None
    correlations: Dict[str, float] = field(default_factory=dict)

    @property
    def methods(self):
        return list(self.effects)

    def correlation_table(self) -> pd.DataFrame:
        return pd.DataFrame({
            'Method': list(self.correlations),
            'Correlation': list(self.correlations.values()),
        })


def validate_holdout(train_geno: GenotypeMatrix,
                     train_phe: PhenotypeVector,
                     valid_geno: GenotypeMatrix,
                     valid_phe: Optional[PhenotypeVector] = None,
                     config: Optional[PredictionConfig] = None,
                     *,
                     methods: Optional[Mapping[str, Mapping[str, Any]]] = None) -> HoldoutResult:
    """Calibrate every method on the training set and predict the validation set

    Args:
        train_geno: Training genotypes
        train_phe: Training phenotypes keyed by individual ID
        valid_geno: Validation genotypes, same markers as training
        valid_phe: Observed validation phenotypes (optional)
        config: Base options shared by all methods
        methods: Mapping of method name -> PredictionConfig overrides
            (defaults to DEFAULT_METHODS)

    Returns:
        HoldoutResult; ``correlations`` holds Pearson r between each method's
        predictions and the observed validation phenotypes

    Raises:
        DimensionError: Training and validation individuals overlap
        MarkerMismatchError: Validation markers differ from training
    """
    config = (config or PredictionConfig()).validate()
    methods = dict(methods if methods is not None else DEFAULT_METHODS)
    if not methods:
        raise DimensionError("At least one calibration method is required")

    geno_train, y_train = align_phenotypes(train_geno, train_phe)
    overlap = set(geno_train.individual_ids) & set(valid_geno.individual_ids)
    if overlap:
        raise DimensionError(
            f"{len(overlap)} individuals appear in both training and validation sets: "
            f"{', '.join(sorted(overlap)[:5])}"
        )

    eigen_cache: Dict[str, Dict[str, np.ndarray]] = {}
    effects: Dict[str, MarkerEffects] = {}
    predictions = pd.DataFrame({'ID': list(valid_geno.individual_ids)})

    for name, overrides in methods.items():
        method_config = config.replace(**dict(overrides))
        eigen = None
        if method_config.hsq is None or method_config.shrinkage_mode == "heterogeneous":
            policy = method_config.relationship_normalization
            if policy not in eigen_cache:
                eigen_cache[policy] = decompose_relationship(build_relationship_matrix(geno_train, policy))
            eigen = eigen_cache[policy]

        if config.verbose:
            print(f"Calibrating {name} on {geno_train.n_individuals} individuals")
        effects[name] = fit_marker_effects(geno_train, y_train, method_config, eigen=eigen)
        predictions[name] = predict_genotypes(effects[name], valid_geno, include_fixed=True).values

    result = HoldoutResult(predictions=predictions, effects=effects)
    if valid_phe is None:
        return result

    observed = valid_phe.to_series().reindex(list(valid_geno.individual_ids))
    scored = observed.notna().to_numpy()
    if not scored.any():
        raise DimensionError("No validation individual has an observed phenotype")
    result.observed = observed
    for name in methods:
        result.correlations[name] = pearson_correlation(
            predictions[name].to_numpy()[scored], observed.to_numpy()[scored]
        )
        if config.verbose:
            print(f"   {name}: r = {result.correlations[name]:.4f}")
    return result
