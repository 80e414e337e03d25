"""
Genomic Prediction Pipeline Module

This module wraps the ridge-regression BLUP workflow in a reusable pipeline
class: data loading, calibration of marker effects, prediction of new
individuals, cross-validation and train/validate comparison, and export of
every result table to an output directory.
"""

import time
import warnings
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..config import PredictionConfig
from ..data.loaders import load_covariate_file, load_genotype_file, load_phenotype_file
from ..model.fit import estimate_effects
from ..model.predict import predict_genotypes
from ..utils.data_types import GenotypeMatrix, MarkerEffects, PhenotypeVector, PredictionResult
from ..utils.errors import DimensionError
from ..validation.cross_validation import CVResult, cross_validate
from ..validation.holdout import HoldoutResult, validate_holdout


class GenomicPredictionPipeline:
    """
    High-level pipeline for ridge-regression BLUP genomic prediction.

    Typical workflow:
        1. Initialize pipeline with a PredictionConfig and output directory
        2. Load (or set) genotype, phenotype and optional covariate data
        3. Fit marker effects on the training individuals
        4. Predict genotypic values of new individuals, cross-validate, or
           compare calibration methods on a validation set
        5. Export result tables to the output directory

    Attributes:
        config (PredictionConfig): Analysis options
        genotype_matrix (GenotypeMatrix): Training genotypes
        phenotype (PhenotypeVector): Training phenotypes keyed by ID
        covariates (ndarray): Covariates aligned to the genotype rows (optional)
        effects (MarkerEffects): Result of the last fit()
        predictions (PredictionResult): Result of the last predict()
        cv_result (CVResult): Result of the last cross_validate()
        holdout_result (HoldoutResult): Result of the last validate()
    """

    def __init__(self,
                 config: Optional[PredictionConfig] = None,
                 output_dir: Optional[Union[str, Path]] = None):
        self.config = (config or PredictionConfig()).validate()
        self.output_dir: Optional[Path] = None
        if output_dir is not None:
            self.output_dir = Path(output_dir)
            self.output_dir.mkdir(parents=True, exist_ok=True)

        # Data storage
        self.genotype_matrix: Optional[GenotypeMatrix] = None
        self.phenotype: Optional[PhenotypeVector] = None
        self.covariates: Optional[np.ndarray] = None

        # Analysis state
        self.effects: Optional[MarkerEffects] = None
        self.predictions: Optional[PredictionResult] = None
        self.cv_result: Optional[CVResult] = None
        self.holdout_result: Optional[HoldoutResult] = None

    def log(self, message: str):
        """Print ``message`` when the configuration is verbose"""
        if self.config.verbose:
            print(message)

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            elapsed = time.time() - start_time
            self.log(f"{step_name} completed in {elapsed:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    def load_data(self,
                  genotype_file: Union[str, Path],
                  phenotype_file: Union[str, Path],
                  trait: Optional[str] = None,
                  covariate_file: Optional[Union[str, Path]] = None,
                  covariate_columns: Optional[List[str]] = None,
                  drop_monomorphic: bool = True,
                  missing_value: float = -9):
        """
        Load training data from delimited text files.

        Args:
            genotype_file: ID column + one numeric column per marker
            phenotype_file: ID column + trait columns
            trait: Trait column to analyze (first numeric column when None)
            covariate_file: ID column + covariate columns (optional)
            covariate_columns: Subset of covariate columns to use
            drop_monomorphic: Drop markers without variation before fitting
            missing_value: Genotype code marking a missing call
        """
        step_start = time.time()
        self.log_step("Loading input data")

        geno = load_genotype_file(
            genotype_file,
            missing_value=missing_value,
            max_missing_rate=self.config.max_missing_rate,
            drop_monomorphic=drop_monomorphic,
            verbose=self.config.verbose,
        )
        phe = load_phenotype_file(phenotype_file, trait=trait, verbose=self.config.verbose)

        covariates = None
        if covariate_file is not None:
            covariates = load_covariate_file(covariate_file, geno.individual_ids, covariate_columns)
            self.log(f"   Loaded {covariates.shape[1]} covariate columns")

        self.set_data(geno, phe, covariates)
        self.log_step("Data loading", step_start)

    def set_data(self,
                 geno: GenotypeMatrix,
                 phe: PhenotypeVector,
                 covariates: Optional[np.ndarray] = None):
        """Use in-memory training data; covariates are aligned to the genotype rows"""
        if covariates is not None:
            covariates = np.asarray(covariates, dtype=np.float64)
            if covariates.ndim == 1:
                covariates = covariates.reshape(-1, 1)
            if covariates.shape[0] != geno.n_individuals:
                raise DimensionError(
                    f"Covariates have {covariates.shape[0]} rows but genotype matrix has {geno.n_individuals}"
                )

        shared = set(geno.individual_ids) & set(phe.individual_ids)
        if not shared:
            raise DimensionError("No individual is shared between genotype and phenotype data")
        if len(shared) < geno.n_individuals:
            self.log(f"   {geno.n_individuals - len(shared)} genotyped individuals have no phenotype record")

        self.genotype_matrix = geno
        self.phenotype = phe
        self.covariates = covariates
        self.effects = None

    def _require_data(self):
        if self.genotype_matrix is None or self.phenotype is None:
            raise RuntimeError("No training data: call load_data() or set_data() first")

    def fit(self) -> MarkerEffects:
        """Estimate marker effects on all phenotyped training individuals"""
        self._require_data()
        step_start = time.time()
        self.log_step(f"Fitting marker effects ({self.config.shrinkage_mode} shrinkage)")

        self.effects = estimate_effects(
            self.genotype_matrix, self.phenotype, self.config, covariates=self.covariates
        )

        components = self.effects.variance_components
        if components is not None:
            self.log(f"   Vg = {components.genetic_variance:.6g}, Ve = {components.residual_variance:.6g}, "
                     f"h2 = {components.heritability:.4f} ({components.method})")
        for message in self.effects.warnings:
            self.log(f"   Warning: {message}")
        self.log_step("Marker effect estimation", step_start)
        return self.effects

    def predict(self,
                geno_new: GenotypeMatrix,
                covariates: Optional[np.ndarray] = None,
                include_fixed: bool = False) -> PredictionResult:
        """Predict genotypic values of new individuals with the fitted effects"""
        if self.effects is None:
            self.fit()
        if covariates is not None:
            include_fixed = True
        elif include_fixed and self.covariates is not None:
            raise DimensionError("Training used covariates; supply covariates for the new individuals")

        self.predictions = predict_genotypes(
            self.effects, geno_new, include_fixed=include_fixed, covariates=covariates
        )
        self.log(f"   Predicted {len(self.predictions)} individuals")
        return self.predictions

    def cross_validate(self) -> CVResult:
        """Repeated random-subsampling cross-validation on the training data"""
        self._require_data()
        step_start = time.time()
        self.log_step(f"Cross-validation ({self.config.cv_repetitions} repetitions)")
        self.cv_result = cross_validate(
            self.genotype_matrix, self.phenotype, self.config, covariates=self.covariates
        )
        if self.cv_result.n_failed:
            warnings.warn(
                f"{self.cv_result.n_failed} of {len(self.cv_result.runs)} cross-validation repetitions failed"
            )
        self.log_step("Cross-validation", step_start)
        return self.cv_result

    def validate(self,
                 valid_geno: GenotypeMatrix,
                 valid_phe: Optional[PhenotypeVector] = None,
                 methods: Optional[Mapping[str, Mapping[str, Any]]] = None) -> HoldoutResult:
        """Compare calibration methods by predicting a held-out validation set"""
        self._require_data()
        if self.covariates is not None:
            warnings.warn("Covariates are not used for train/validate method comparison")
        step_start = time.time()
        self.log_step("Train/validate comparison")
        self.holdout_result = validate_holdout(
            self.genotype_matrix, self.phenotype, valid_geno, valid_phe, self.config, methods=methods
        )
        self.log_step("Train/validate comparison", step_start)
        return self.holdout_result

    def export_results(self, output_dir: Optional[Union[str, Path]] = None) -> Dict[str, Path]:
        """
        Write every available result table as CSV.

        Returns:
            Mapping of table name -> written path
        """
        target = Path(output_dir) if output_dir is not None else self.output_dir
        if target is None:
            raise ValueError("No output directory given")
        target.mkdir(parents=True, exist_ok=True)

        written: Dict[str, Path] = {}

        def _write(name: str, df: pd.DataFrame, filename: str):
            path = target / filename
            df.to_csv(path, index=False)
            written[name] = path
            self.log(f"   Saved {name} to {path}")

        if self.effects is not None:
            _write("marker_effects", self.effects.to_dataframe(), "RRBLUP_marker_effects.csv")
            components = self.effects.variance_components
            if components is not None:
                _write("variance_components", pd.DataFrame([components.to_dict()]),
                       "RRBLUP_variance_components.csv")
        if self.predictions is not None:
            _write("predictions", self.predictions.to_dataframe(), "RRBLUP_predictions.csv")
        if self.cv_result is not None:
            _write("cross_validation", self.cv_result.to_dataframe(), "RRBLUP_cross_validation.csv")
            _write("cross_validation_summary", pd.DataFrame([self.cv_result.summary()]),
                   "RRBLUP_cross_validation_summary.csv")
        if self.holdout_result is not None:
            _write("holdout_predictions", self.holdout_result.predictions, "RRBLUP_holdout_predictions.csv")
            if self.holdout_result.correlations:
                _write("holdout_correlations", self.holdout_result.correlation_table(),
                       "RRBLUP_holdout_correlations.csv")
        return written
