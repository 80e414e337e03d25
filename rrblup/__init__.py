"""
pyRRBLUP: genomic prediction by ridge-regression best linear unbiased prediction

Estimates marker effects from a genotyped and phenotyped training population,
predicts genotypic values of new individuals, and measures predictive
accuracy by repeated random-subsampling cross-validation.
"""

__version__ = "0.1.0"

from .config import PredictionConfig
from .utils.data_types import (
    GenotypeMatrix,
    MarkerEffects,
    PhenotypeVector,
    PredictionResult,
    ShrinkageSpec,
    VarianceComponents,
)
from .model.fit import estimate_effects, fit_marker_effects
from .model.predict import predict_genotypes
from .model.reml import estimate_variance_components
from .model.ridge import estimate_marker_effects
from .model.shrinkage import calculate_shrinkage
from .validation.cross_validation import cross_validate
from .validation.holdout import validate_holdout
from .pipelines.prediction import GenomicPredictionPipeline

__all__ = [
    'PredictionConfig',
    'GenotypeMatrix',
    'PhenotypeVector',
    'VarianceComponents',
    'ShrinkageSpec',
    'MarkerEffects',
    'PredictionResult',
    'estimate_variance_components',
    'calculate_shrinkage',
    'estimate_marker_effects',
    'fit_marker_effects',
    'estimate_effects',
    'predict_genotypes',
    'cross_validate',
    'validate_holdout',
    'GenomicPredictionPipeline',
]
