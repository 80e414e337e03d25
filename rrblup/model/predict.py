"""
Genotypic value prediction from estimated marker effects
"""

import numpy as np
from typing import Optional, Sequence

from ..matrix.design import build_design_matrix
from ..utils.data_types import GenotypeMatrix, MarkerEffects, PredictionResult
from ..utils.errors import DimensionError, MarkerMismatchError


def check_marker_alignment(training_labels: Sequence[str], prediction_labels: Sequence[str]) -> None:
    """Raise MarkerMismatchError unless both marker lists are identical and identically ordered."""
    training_labels = tuple(training_labels)
    prediction_labels = tuple(prediction_labels)
    if training_labels == prediction_labels:
        return

    if len(training_labels) != len(prediction_labels):
        missing = sorted(set(training_labels) - set(prediction_labels))
        extra = sorted(set(prediction_labels) - set(training_labels))
        raise MarkerMismatchError(
            f"Training has {len(training_labels)} markers but prediction set has {len(prediction_labels)} "
            f"(missing: {missing[:5]}, unexpected: {extra[:5]})"
        )

    position = next(
        idx for idx, (train, pred) in enumerate(zip(training_labels, prediction_labels)) if train != pred
    )
    if set(training_labels) == set(prediction_labels):
        detail = "same markers in a different order"
    else:
        detail = "different marker sets"
    raise MarkerMismatchError(
        f"Marker mismatch at position {position}: training '{training_labels[position]}' vs "
        f"prediction '{prediction_labels[position]}' ({detail})"
    )


def predict_genotypes(effects: MarkerEffects,
                      geno: GenotypeMatrix,
                      *,
                      include_fixed: bool = False,
                      covariates: Optional[np.ndarray] = None) -> PredictionResult:
    """Predict genotypic values y_hat = Z_new * beta (+ X_new * b)

    Args:
        effects: Estimated marker effects
        geno: Genotypes of the new individuals; markers must match the
            training markers label for label
        include_fixed: Add the fixed-effect contribution; X_new is rebuilt
            from ``covariates`` the same way as for training
        covariates: Covariates of the new individuals (only with include_fixed)

    Raises:
        MarkerMismatchError: Marker labels differ from training
        DimensionError: Covariates do not match the fixed effects
    """
    if not isinstance(geno, GenotypeMatrix):
        raise DimensionError("Prediction genotypes must be a GenotypeMatrix so marker labels can be checked")
    check_marker_alignment(effects.marker_labels, geno.marker_labels)

    values = geno.values @ effects.effects
    if include_fixed:
        if effects.fixed_effects.size == 0:
            raise DimensionError("Marker effects were estimated without fixed effects")
        X_new = build_design_matrix(geno.n_individuals, covariates)
        if X_new.shape[1] != effects.fixed_effects.size:
            raise DimensionError(
                f"New design matrix has {X_new.shape[1]} columns but {effects.fixed_effects.size} "
                "fixed effects were estimated"
            )
        values = values + X_new @ effects.fixed_effects
    elif covariates is not None:
        raise DimensionError("Covariates are only used together with include_fixed=True")

    return PredictionResult(individual_ids=geno.individual_ids, values=values)
