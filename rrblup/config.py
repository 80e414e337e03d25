"""
Analysis configuration shared by the pipeline, cross-validation and the CLI
"""

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

from .matrix.design import NORMALIZATION_CHOICES
from .model.ridge import SOLVER_CHOICES
from .utils.data_types import SHRINKAGE_MODES
from .utils.errors import InvalidParameterError


def _check_heritability(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if not (0.0 < float(value) < 1.0):
        raise InvalidParameterError(f"{name} must lie strictly between 0 and 1, got {value}")


@dataclass(frozen=True)
class PredictionConfig:
    """Options recognised by every genomic prediction workflow

    Attributes:
        hsq: Fixed heritability; bypasses REML when given
        shrinkage_mode: 'homogeneous' (one lambda) or 'heterogeneous' (lambda per marker)
        cv_repetitions: Number of cross-validation repetitions R
        cv_test_size: Individuals per cross-validation test set k
        random_seed: Seed for the cross-validation partitions
        max_iterations: Iteration bound for REML (0 requires hsq)
        relationship_normalization: 'none' (ZZ'), 'markers' (ZZ'/m) or 'vanraden'
        fallback_hsq: Heritability used when REML does not converge
        max_missing_rate: Largest accepted fraction of missing calls per individual
        solver: Ridge solver, 'auto', 'primal' or 'dual'
        cpu: Parallel cross-validation workers (0 = all cores)
        verbose: Print progress information
    """

    hsq: Optional[float] = None
    shrinkage_mode: str = "homogeneous"
    cv_repetitions: int = 50
    cv_test_size: int = 200
    random_seed: Optional[int] = None
    max_iterations: int = 500
    relationship_normalization: str = "none"
    fallback_hsq: Optional[float] = None
    max_missing_rate: float = 1.0
    solver: str = "auto"
    cpu: int = 1
    verbose: bool = False

    def validate(self) -> "PredictionConfig":
        """Raise InvalidParameterError for any out-of-range option; return self."""
        _check_heritability("hsq", self.hsq)
        _check_heritability("fallback_hsq", self.fallback_hsq)
        if self.shrinkage_mode not in SHRINKAGE_MODES:
            raise InvalidParameterError(
                f"shrinkage_mode must be one of {SHRINKAGE_MODES}, got '{self.shrinkage_mode}'"
            )
        if self.cv_repetitions < 1:
            raise InvalidParameterError("cv_repetitions must be positive")
        if self.cv_test_size < 1:
            raise InvalidParameterError("cv_test_size must be positive")
        if self.max_iterations < 0:
            raise InvalidParameterError("max_iterations must be >= 0")
        if self.max_iterations == 0 and self.hsq is None:
            raise InvalidParameterError("max_iterations=0 disables REML and requires a fixed hsq")
        if self.relationship_normalization not in NORMALIZATION_CHOICES:
            raise InvalidParameterError(
                f"relationship_normalization must be one of {NORMALIZATION_CHOICES}, "
                f"got '{self.relationship_normalization}'"
            )
        if not (0.0 <= self.max_missing_rate <= 1.0):
            raise InvalidParameterError("max_missing_rate must be between 0 and 1 inclusive")
        if self.solver not in SOLVER_CHOICES:
            raise InvalidParameterError(f"solver must be one of {SOLVER_CHOICES}, got '{self.solver}'")
        if self.cpu < 0:
            raise InvalidParameterError("cpu must be >= 0")
        return self

    def replace(self, **changes: Any) -> "PredictionConfig":
        return replace(self, **changes).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_args(cls, args: Any) -> "PredictionConfig":
        """Build from an argparse namespace; unknown attributes are ignored."""
        fields = cls.__dataclass_fields__
        values = {name: getattr(args, name) for name in fields if hasattr(args, name)}
        return cls(**values).validate()
