import numpy as np
import pytest

from rrblup.model.shrinkage import (
    apportion_genetic_variance,
    calculate_shrinkage,
    heterogeneous_shrinkage,
    homogeneous_shrinkage,
)
from rrblup.utils.data_types import VarianceComponents
from rrblup.utils.errors import DegenerateInputError, DimensionError, InvalidParameterError


def test_homogeneous_shrinkage_formula() -> None:
    spec = homogeneous_shrinkage(0.9, 3)
    assert spec.is_homogeneous
    assert float(spec.weights) == pytest.approx(1.0 / 3.0)

    assert float(homogeneous_shrinkage(0.5, 100).weights) == pytest.approx(100.0)


def test_homogeneous_shrinkage_limits() -> None:
    near_one = float(homogeneous_shrinkage(1.0 - 1e-9, 10).weights)
    near_zero = float(homogeneous_shrinkage(1e-6, 10).weights)
    assert 0.0 < near_one < 1e-6
    assert near_zero > 1e6

    for bad in (0.0, 1.0, -0.2, np.nan):
        with pytest.raises(InvalidParameterError):
            homogeneous_shrinkage(bad, 10)
    with pytest.raises(InvalidParameterError, match="at least one marker"):
        homogeneous_shrinkage(0.5, 0)


def test_apportioned_variance_sums_to_total() -> None:
    sm = np.array([0.5, 1.5, 0.0, 2.0])
    var_marker = apportion_genetic_variance(2.0, sm)
    assert var_marker.sum() == pytest.approx(2.0 * 4)
    np.testing.assert_allclose(var_marker, [1.0, 3.0, 0.0, 4.0])


def test_apportion_rejects_degenerate_and_invalid_input() -> None:
    with pytest.raises(DegenerateInputError, match="sum to zero"):
        apportion_genetic_variance(1.0, np.zeros(3))
    with pytest.raises(InvalidParameterError):
        apportion_genetic_variance(1.0, np.array([1.0, -1.0]))
    with pytest.raises(InvalidParameterError):
        apportion_genetic_variance(1.0, np.array([1.0, np.inf]))


def test_heterogeneous_shrinkage_weights() -> None:
    components = VarianceComponents(genetic_variance=1.0, residual_variance=2.0)
    spec = heterogeneous_shrinkage(components, np.array([1.0, 3.0]))
    # var_j = (1 * 2) * [0.25, 0.75] = [0.5, 1.5]
    np.testing.assert_allclose(spec.weights, [4.0, 4.0 / 3.0])
    assert not spec.is_homogeneous


def test_heterogeneous_shrinkage_zero_marker_variance() -> None:
    components = VarianceComponents(genetic_variance=1.0, residual_variance=2.0)
    with pytest.raises(DegenerateInputError, match="zero apportioned"):
        heterogeneous_shrinkage(components, np.array([1.0, 0.0]))

    noiseless = VarianceComponents(genetic_variance=1.0, residual_variance=0.0)
    spec = heterogeneous_shrinkage(noiseless, np.array([1.0, 0.0]))
    np.testing.assert_array_equal(spec.weights, [0.0, 0.0])


def test_calculate_shrinkage_dispatch() -> None:
    components = VarianceComponents(genetic_variance=3.0, residual_variance=1.0)

    homo = calculate_shrinkage("homogeneous", 4, components=components)
    assert float(homo.weights) == pytest.approx(4 * (1 / 0.75 - 1))

    fixed = calculate_shrinkage("homogeneous", 4, components=components, hsq=0.5)
    assert float(fixed.weights) == pytest.approx(4.0)

    het = calculate_shrinkage("heterogeneous", 2, components=components, marker_variances=np.array([1.0, 1.0]))
    np.testing.assert_allclose(het.weights, [1.0 / 3.0, 1.0 / 3.0])


def test_calculate_shrinkage_requires_inputs() -> None:
    with pytest.raises(InvalidParameterError, match="Unknown shrinkage mode"):
        calculate_shrinkage("elastic", 3, hsq=0.5)
    with pytest.raises(InvalidParameterError):
        calculate_shrinkage("homogeneous", 3)
    with pytest.raises(InvalidParameterError, match="variance components"):
        calculate_shrinkage("heterogeneous", 3, marker_variances=np.ones(3))
    with pytest.raises(DimensionError):
        calculate_shrinkage(
            "heterogeneous", 3,
            components=VarianceComponents(1.0, 1.0),
            marker_variances=np.ones(2),
        )


def test_constant_phenotype_components_cannot_shrink() -> None:
    zero = VarianceComponents(0.0, 0.0, converged=False)
    with pytest.raises(InvalidParameterError):
        calculate_shrinkage("homogeneous", 3, components=zero)
    with pytest.raises(DegenerateInputError):
        calculate_shrinkage("heterogeneous", 3, components=zero, marker_variances=np.zeros(3))
