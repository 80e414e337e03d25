#!/usr/bin/env python3
"""
Genomic prediction by ridge-regression BLUP

Fits marker effects on a training set, optionally cross-validates, predicts a
prediction set, and compares the RR / RR_BLUP / RR_HET calibrations when the
prediction set has observed phenotypes.
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rrblup.cli.utils import normalize_methods, parse_args
from rrblup.config import PredictionConfig
from rrblup.data.loaders import load_genotype_file, load_phenotype_file
from rrblup.pipelines.prediction import GenomicPredictionPipeline
from rrblup.validation.holdout import DEFAULT_METHODS


def main(argv=None):
    args = parse_args(argv)
    config = PredictionConfig.from_args(args)

    pipeline = GenomicPredictionPipeline(config=config, output_dir=args.outputdir)

    cov_cols = [c.strip() for c in args.covariate_columns.split(',')] if args.covariate_columns else None
    pipeline.load_data(
        genotype_file=args.genotype,
        phenotype_file=args.phenotype,
        trait=args.trait,
        covariate_file=args.covariates,
        covariate_columns=cov_cols,
        drop_monomorphic=args.drop_monomorphic,
        missing_value=args.missing_value,
    )

    pipeline.fit()

    if args.cross_validate:
        result = pipeline.cross_validate()
        summary = result.summary()
        print(f"Cross-validation: mean r = {summary['mean_correlation']:.4f}, "
              f"variance = {summary['var_correlation']:.4f} "
              f"({summary['n_success']} of {summary['repetitions']} repetitions succeeded)")

    if args.prediction_genotype:
        # Prediction markers must match the markers kept for training
        valid_geno = load_genotype_file(
            args.prediction_genotype,
            missing_value=args.missing_value,
            drop_monomorphic=False,
            verbose=config.verbose,
        )
        train_markers = list(pipeline.genotype_matrix.marker_labels)
        if args.drop_monomorphic and set(train_markers) <= set(valid_geno.marker_labels):
            valid_geno = valid_geno.select_markers(train_markers)
        pipeline.predict(valid_geno)

        valid_phe = None
        if args.prediction_phenotype:
            valid_phe = load_phenotype_file(args.prediction_phenotype, trait=args.trait)
        methods = {name: DEFAULT_METHODS[name] for name in normalize_methods(args.methods)}
        holdout = pipeline.validate(valid_geno, valid_phe, methods=methods)
        if holdout.correlations:
            print(holdout.correlation_table().to_string(index=False))

    written = pipeline.export_results()
    print(f"Wrote {len(written)} result tables to {pipeline.output_dir}")


if __name__ == "__main__":
    main()
