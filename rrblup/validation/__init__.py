from .cross_validation import CVResult, CVRun, cross_validate
from .holdout import DEFAULT_METHODS, HoldoutResult, validate_holdout

__all__ = ['cross_validate', 'CVResult', 'CVRun', 'validate_holdout', 'HoldoutResult', 'DEFAULT_METHODS']
