from .prediction import GenomicPredictionPipeline

__all__ = ['GenomicPredictionPipeline']
