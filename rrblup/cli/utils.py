import argparse
from typing import List, Optional

from ..validation.holdout import DEFAULT_METHODS

METHOD_CHOICES = tuple(DEFAULT_METHODS)


def normalize_methods(methods: Optional[List[str]]) -> List[str]:
    """Helper to normalize calibration method choices"""
    if not methods:
        return list(METHOD_CHOICES)
    valid = []
    for item in methods:
        for part in str(item).split(','):
            part = part.strip().upper().replace('-', '_')
            if part in METHOD_CHOICES and part not in valid:
                valid.append(part)
    return valid if valid else list(METHOD_CHOICES)


def _heritability(value: str) -> float:
    hsq = float(value)
    if not 0.0 < hsq < 1.0:
        raise argparse.ArgumentTypeError(f"heritability must lie strictly between 0 and 1, got {value}")
    return hsq


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments for the genomic prediction pipeline"""
    parser = argparse.ArgumentParser(
        description="Genomic prediction by ridge-regression BLUP",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--genotype", "-g", required=True,
                       help="Training genotype file (CSV/TSV with ID column and one column per marker)")
    parser.add_argument("--phenotype", "-p", required=True,
                       help="Training phenotype file (CSV/TSV with ID column and trait columns)")

    # Optional inputs
    parser.add_argument("--trait", default=None,
                       help="Trait column to analyze (first numeric column when omitted)")
    parser.add_argument("--prediction-genotype", default=None,
                       help="Genotypes of individuals to predict (same markers as training)")
    parser.add_argument("--prediction-phenotype", default=None,
                       help="Observed phenotypes of the prediction set; enables method comparison")
    parser.add_argument("--covariates", default=None,
                       help="Optional covariate file for the training individuals")
    parser.add_argument("--covariate-columns", default=None,
                       help="Comma-separated list of covariate column names")
    parser.add_argument("--outputdir", "-o", default="./RRBLUP_results",
                       help="Output directory")
    parser.add_argument("--missing-value", type=float, default=-9,
                       help="Genotype code marking a missing call")

    # Model
    parser.add_argument("--hsq", type=_heritability, default=None,
                       help="Fixed heritability (skips REML)")
    parser.add_argument("--shrinkage-mode", default="homogeneous",
                       choices=["homogeneous", "heterogeneous"],
                       help="One shrinkage for all markers or one per marker")
    parser.add_argument("--max-iterations", type=int, default=500,
                       help="Max iterations for REML")
    parser.add_argument("--fallback-hsq", type=_heritability, default=None,
                       help="Heritability used when REML does not converge")
    parser.add_argument("--relationship-normalization", default="none",
                       choices=["none", "markers", "vanraden"],
                       help="Scaling of the marker relationship matrix used by REML")
    parser.add_argument("--solver", default="auto", choices=["auto", "primal", "dual"],
                       help="Mixed-model equation solver")

    # Cross-validation
    parser.add_argument("--cross-validate", action='store_true',
                       help="Run repeated random-subsampling cross-validation")
    parser.add_argument("--cv-repetitions", type=int, default=50,
                       help="Number of cross-validation repetitions")
    parser.add_argument("--cv-test-size", type=int, default=200,
                       help="Individuals per cross-validation test set")
    parser.add_argument("--random-seed", type=int, default=None,
                       help="Random seed for cross-validation partitions")

    # Method comparison
    parser.add_argument("--methods", nargs='+', default=list(METHOD_CHOICES),
                       help="Calibration methods compared on the prediction set")

    # Loader options
    parser.add_argument("--drop-monomorphic", action='store_true', dest='drop_monomorphic',
                       help="Drop monomorphic markers (default behavior)")
    parser.add_argument("--keep-monomorphic", action='store_false', dest='drop_monomorphic',
                       help="Keep monomorphic markers (override default)")
    parser.add_argument("--max-missing-rate", type=float, default=1.0,
                       help="Largest accepted fraction of missing calls per individual")

    # Execution
    parser.add_argument("--cpu", type=int, default=1,
                       help="Parallel cross-validation workers (0 = all cores)")
    parser.add_argument("--verbose", "-v", action='store_true',
                       help="Print progress information")

    # Set defaults
    parser.set_defaults(drop_monomorphic=True)

    return parser.parse_args(argv)
