"""
Estimation chain: variance components, shrinkage, marker effects, prediction

``fit`` is imported directly (``rrblup.model.fit``) because it depends on
``rrblup.config``, which itself imports from this package.
"""

from .predict import check_marker_alignment, predict_genotypes
from .reml import components_at_heritability, decompose_relationship, estimate_variance_components
from .ridge import estimate_marker_effects
from .shrinkage import calculate_shrinkage, heterogeneous_shrinkage, homogeneous_shrinkage

__all__ = [
    'estimate_variance_components',
    'components_at_heritability',
    'decompose_relationship',
    'homogeneous_shrinkage',
    'heterogeneous_shrinkage',
    'calculate_shrinkage',
    'estimate_marker_effects',
    'predict_genotypes',
    'check_marker_alignment',
]
