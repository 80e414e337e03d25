import warnings

import numpy as np

from rrblup.config import PredictionConfig
from rrblup.model.fit import fit_marker_effects
from rrblup.utils.data_types import GenotypeMatrix


def _small_population():
    geno = GenotypeMatrix(
        np.array([[0, 1], [1, 2], [2, 0], [1, 1], [0, 0], [2, 2]], dtype=float),
        [f"ind{i}" for i in range(6)],
    )
    y = np.array([1.0, 3.0, 2.0, 5.0, 4.0, 6.0])
    return geno, y


def test_zero_residual_variance_is_flagged_on_effects() -> None:
    geno, y = _small_population()
    config = PredictionConfig(hsq=0.5, shrinkage_mode="heterogeneous")

    # A covariate equal to the phenotype leaves no residual variance
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        effects = fit_marker_effects(geno, y, config, covariates=y.reshape(-1, 1))

    assert effects.variance_components.is_degenerate
    np.testing.assert_array_equal(effects.shrinkage.zero_weight_markers, [0, 1])
    assert any("degenerate fit" in note for note in effects.warnings)
    assert any("without shrinkage" in note for note in effects.warnings)


def test_regular_fit_carries_no_degenerate_flag() -> None:
    geno, y = _small_population()

    effects = fit_marker_effects(geno, y, PredictionConfig(hsq=0.5, shrinkage_mode="heterogeneous"))

    assert not effects.variance_components.is_degenerate
    assert effects.shrinkage.zero_weight_markers.size == 0
    assert not any("degenerate fit" in note for note in effects.warnings)
