import argparse

import pytest

from rrblup.config import PredictionConfig
from rrblup.utils.errors import InvalidParameterError


def test_defaults_are_valid() -> None:
    config = PredictionConfig().validate()
    assert config.hsq is None
    assert config.shrinkage_mode == "homogeneous"
    assert config.cv_repetitions == 50
    assert config.cv_test_size == 200
    assert config.max_iterations == 500
    assert config.relationship_normalization == "none"
    assert config.cpu == 1


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"hsq": 1.0}, "hsq"),
        ({"hsq": 0.0}, "hsq"),
        ({"fallback_hsq": 1.5}, "fallback_hsq"),
        ({"shrinkage_mode": "lasso"}, "shrinkage_mode"),
        ({"cv_repetitions": 0}, "cv_repetitions"),
        ({"cv_test_size": 0}, "cv_test_size"),
        ({"max_iterations": -1}, "max_iterations"),
        ({"max_iterations": 0}, "requires a fixed hsq"),
        ({"relationship_normalization": "gower"}, "relationship_normalization"),
        ({"max_missing_rate": 1.2}, "max_missing_rate"),
        ({"solver": "svd"}, "solver"),
        ({"cpu": -2}, "cpu"),
    ],
)
def test_invalid_options_are_rejected(changes, message) -> None:
    with pytest.raises(InvalidParameterError, match=message):
        PredictionConfig(**changes).validate()


def test_zero_iterations_allowed_with_fixed_heritability() -> None:
    config = PredictionConfig(hsq=0.9, max_iterations=0).validate()
    assert config.max_iterations == 0


def test_replace_validates_and_keeps_original() -> None:
    base = PredictionConfig(hsq=0.5)
    changed = base.replace(shrinkage_mode="heterogeneous", verbose=True)
    assert changed.shrinkage_mode == "heterogeneous"
    assert base.shrinkage_mode == "homogeneous"
    with pytest.raises(InvalidParameterError):
        base.replace(cv_repetitions=-1)


def test_from_args_ignores_unknown_attributes() -> None:
    args = argparse.Namespace(hsq=0.8, cv_repetitions=5, cpu=2, genotype="g.csv", verbose=True)
    config = PredictionConfig.from_args(args)
    assert config.hsq == 0.8
    assert config.cv_repetitions == 5
    assert config.cpu == 2
    assert config.verbose is True
    assert config.to_dict()["cv_test_size"] == 200
