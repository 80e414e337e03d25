import warnings

import numpy as np
import pytest

from rrblup.config import PredictionConfig
from rrblup.utils.data_types import GenotypeMatrix, PhenotypeVector
from rrblup.utils.errors import DimensionError, MarkerMismatchError
from rrblup.validation.holdout import DEFAULT_METHODS, validate_holdout


def _make_split(n_train: int = 40, n_valid: int = 15, n_markers: int = 25, seed: int = 2):
    rng = np.random.default_rng(seed)
    n_total = n_train + n_valid
    Z = rng.integers(0, 3, size=(n_total, n_markers)).astype(float)
    beta = rng.normal(scale=0.6, size=n_markers)
    y = 3.0 + Z @ beta + rng.normal(scale=0.5, size=n_total)
    ids = [f"g{i}" for i in range(n_total)]
    labels = [f"snp{j}" for j in range(n_markers)]
    train = GenotypeMatrix(Z[:n_train], ids[:n_train], labels)
    valid = GenotypeMatrix(Z[n_train:], ids[n_train:], labels)
    return (
        train,
        PhenotypeVector(y[:n_train], ids[:n_train]),
        valid,
        PhenotypeVector(y[n_train:], ids[n_train:]),
    )


def test_default_methods_are_compared_on_validation_set() -> None:
    train_geno, train_phe, valid_geno, valid_phe = _make_split()

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        result = validate_holdout(train_geno, train_phe, valid_geno, valid_phe)

    assert result.methods == list(DEFAULT_METHODS)
    assert list(result.predictions.columns) == ["ID"] + list(DEFAULT_METHODS)
    assert result.predictions["ID"].tolist() == list(valid_geno.individual_ids)
    for name in DEFAULT_METHODS:
        assert -1.0 <= result.correlations[name] <= 1.0
    # Strong simulated signal: every calibration should predict well
    assert min(result.correlations.values()) > 0.3

    assert result.effects["RR"].variance_components is None
    assert result.effects["RR_BLUP"].variance_components.method == "REML"
    assert not result.effects["RR_HET"].shrinkage.is_homogeneous

    table = result.correlation_table()
    assert table["Method"].tolist() == list(DEFAULT_METHODS)


def test_fixed_heritability_method_uses_lambda_from_hsq() -> None:
    train_geno, train_phe, valid_geno, _ = _make_split()

    result = validate_holdout(
        train_geno, train_phe, valid_geno,
        methods={"RR": {"shrinkage_mode": "homogeneous", "hsq": 0.9}},
    )

    assert float(result.effects["RR"].shrinkage.weights) == pytest.approx(25 * (1 / 0.9 - 1))
    assert result.correlations == {}
    assert result.observed is None


def test_missing_validation_phenotypes_are_skipped() -> None:
    train_geno, train_phe, valid_geno, valid_phe = _make_split()
    values = np.array(valid_phe.values)
    values[:3] = np.nan
    partial = PhenotypeVector(values, valid_phe.individual_ids)

    result = validate_holdout(
        train_geno, train_phe, valid_geno, partial,
        PredictionConfig(hsq=0.5),
        methods={"RR": {"hsq": 0.5}},
    )

    assert np.isfinite(result.correlations["RR"])
    assert result.observed.isna().sum() == 3


def test_overlapping_sets_are_rejected() -> None:
    train_geno, train_phe, _, _ = _make_split()
    with pytest.raises(DimensionError, match="both training and validation"):
        validate_holdout(train_geno, train_phe, train_geno.subset_individuals([0, 1, 2]))


def test_validation_markers_must_match() -> None:
    train_geno, train_phe, valid_geno, _ = _make_split()
    renamed = GenotypeMatrix(
        valid_geno.values,
        valid_geno.individual_ids,
        ["other"] + list(valid_geno.marker_labels[1:]),
    )
    with pytest.raises(MarkerMismatchError):
        validate_holdout(train_geno, train_phe, renamed, methods={"RR": {"hsq": 0.9}})
