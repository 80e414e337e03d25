import numpy as np
import pytest

from rrblup.matrix.design import build_design_matrix, build_relationship_matrix
from rrblup.utils.data_types import GenotypeMatrix
from rrblup.utils.errors import DimensionError, InvalidParameterError, NumericalInstabilityError


def _fixture_genotypes() -> np.ndarray:
    return np.array([
        [1, 0, -1],
        [0, 1, 1],
        [-1, -1, 0],
        [1, 1, 1],
    ], dtype=float)


def test_design_matrix_intercept_and_covariates() -> None:
    X = build_design_matrix(3)
    np.testing.assert_array_equal(X, np.ones((3, 1)))

    X = build_design_matrix(3, np.array([0.5, 1.5, 2.5]))
    assert X.shape == (3, 2)
    np.testing.assert_array_equal(X[:, 0], 1.0)
    np.testing.assert_array_equal(X[:, 1], [0.5, 1.5, 2.5])


def test_design_matrix_rejects_bad_covariates() -> None:
    with pytest.raises(DimensionError, match="3 rows"):
        build_design_matrix(3, np.ones((2, 1)))
    with pytest.raises(NumericalInstabilityError):
        build_design_matrix(2, np.array([[1.0], [np.inf]]))


def test_relationship_matrix_raw_cross_product() -> None:
    Z = _fixture_genotypes()
    G = build_relationship_matrix(Z)
    np.testing.assert_allclose(G, Z @ Z.T)
    np.testing.assert_allclose(G, G.T)

    G_scaled = build_relationship_matrix(GenotypeMatrix(Z, missing_value=-99), "markers")
    np.testing.assert_allclose(G_scaled, Z @ Z.T / 3)


def test_relationship_matrix_vanraden_has_unit_mean_diagonal() -> None:
    rng = np.random.default_rng(3)
    Z = rng.integers(0, 3, size=(8, 20)).astype(float)
    G = build_relationship_matrix(Z, "vanraden")
    assert np.mean(np.diag(G)) == pytest.approx(1.0)

    with pytest.raises(NumericalInstabilityError, match="monomorphic"):
        build_relationship_matrix(np.ones((4, 3)), "vanraden")


def test_relationship_matrix_rejects_empty_and_unknown_policy() -> None:
    with pytest.raises(DimensionError):
        build_relationship_matrix(np.zeros((3, 0)))
    with pytest.raises(InvalidParameterError, match="normalization"):
        build_relationship_matrix(_fixture_genotypes(), "centered")
