"""Integration tests for GenomicPredictionPipeline end-to-end workflows."""

import importlib.util
import warnings
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from rrblup.config import PredictionConfig
from rrblup.pipelines.prediction import GenomicPredictionPipeline
from rrblup.utils.data_types import GenotypeMatrix, PhenotypeVector
from rrblup.utils.errors import DimensionError

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def synthetic_data(tmp_path: Path):
    """Training and prediction files with a strong additive signal."""
    rng = np.random.default_rng(42)
    n_train, n_pred, n_markers = 40, 12, 30
    n_total = n_train + n_pred

    sample_ids = [f"Sample{i:03d}" for i in range(n_total)]
    marker_names = [f"SNP{i:04d}" for i in range(n_markers)]
    genotypes = rng.integers(0, 3, size=(n_total, n_markers))
    genotypes[:, 5] = 1  # monomorphic marker, dropped by the loader
    effects = rng.normal(scale=0.5, size=n_markers)
    trait = 20.0 + genotypes @ effects + rng.normal(scale=0.5, size=n_total)

    geno_df = pd.DataFrame(genotypes, columns=marker_names)
    geno_df.insert(0, 'ID', sample_ids)
    geno_df.iloc[:n_train].to_csv(tmp_path / "train_geno.csv", index=False)
    geno_df.iloc[n_train:].to_csv(tmp_path / "pred_geno.csv", index=False)

    pheno_df = pd.DataFrame({'ID': sample_ids, 'Height': trait})
    pheno_df.iloc[:n_train].to_csv(tmp_path / "train_phe.csv", index=False)
    pheno_df.iloc[n_train:].to_csv(tmp_path / "pred_phe.csv", index=False)

    pd.DataFrame({
        'ID': sample_ids[:n_train],
        'Block': [i % 2 for i in range(n_train)],
    }).to_csv(tmp_path / "covariates.csv", index=False)

    return {
        'dir': tmp_path,
        'n_train': n_train,
        'n_pred': n_pred,
        'n_markers': n_markers,
    }


def test_pipeline_fit_predict_and_export(synthetic_data) -> None:
    d = synthetic_data['dir']
    pipeline = GenomicPredictionPipeline(PredictionConfig(hsq=0.5), output_dir=d / "out")
    pipeline.load_data(d / "train_geno.csv", d / "train_phe.csv")

    assert pipeline.genotype_matrix.n_markers == synthetic_data['n_markers'] - 1
    assert "SNP0005" not in pipeline.genotype_matrix.marker_labels

    effects = pipeline.fit()
    assert effects.n_markers == synthetic_data['n_markers'] - 1
    assert effects.variance_components is None

    pred_geno = GenotypeMatrix.from_dataframe(pd.read_csv(d / "pred_geno.csv").drop(columns=["SNP0005"]))
    predictions = pipeline.predict(pred_geno)
    assert len(predictions) == synthetic_data['n_pred']

    written = pipeline.export_results()
    assert set(written) == {"marker_effects", "predictions"}
    exported = pd.read_csv(written["predictions"])
    assert exported["ID"].tolist() == list(pred_geno.individual_ids)
    np.testing.assert_allclose(exported["Prediction"], predictions.values)


def test_pipeline_cross_validation_and_method_comparison(synthetic_data) -> None:
    d = synthetic_data['dir']
    config = PredictionConfig(cv_repetitions=3, cv_test_size=8, random_seed=1)
    pipeline = GenomicPredictionPipeline(config)
    pipeline.load_data(d / "train_geno.csv", d / "train_phe.csv", trait="Height")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        pipeline.fit()
        cv_result = pipeline.cross_validate()
        valid_geno = GenotypeMatrix.from_dataframe(
            pd.read_csv(d / "pred_geno.csv").drop(columns=["SNP0005"])
        )
        pheno = pd.read_csv(d / "pred_phe.csv")
        holdout = pipeline.validate(valid_geno, PhenotypeVector.from_dataframe(pheno, "Height"))

    assert pipeline.effects.variance_components.method == "REML"
    assert cv_result.n_success >= 1
    assert set(holdout.correlations) == {"RR", "RR_BLUP", "RR_HET"}

    written = pipeline.export_results(d / "exported")
    assert {"cross_validation", "cross_validation_summary", "holdout_predictions",
            "holdout_correlations", "variance_components"} <= set(written)
    summary = pd.read_csv(written["cross_validation_summary"])
    assert summary.loc[0, "repetitions"] == 3


def test_pipeline_with_covariates(synthetic_data) -> None:
    d = synthetic_data['dir']
    pipeline = GenomicPredictionPipeline(PredictionConfig(hsq=0.5))
    pipeline.load_data(d / "train_geno.csv", d / "train_phe.csv", covariate_file=d / "covariates.csv")

    effects = pipeline.fit()
    assert effects.fixed_effects.size == 2

    with pytest.raises(DimensionError, match="supply covariates"):
        pipeline.predict(pipeline.genotype_matrix, include_fixed=True)
    fitted = pipeline.predict(pipeline.genotype_matrix, covariates=pipeline.covariates)
    assert len(fitted) == synthetic_data['n_train']


def test_pipeline_requires_data() -> None:
    pipeline = GenomicPredictionPipeline()
    with pytest.raises(RuntimeError, match="load_data"):
        pipeline.fit()
    with pytest.raises(ValueError, match="output directory"):
        pipeline.export_results()


def test_set_data_rejects_disjoint_ids() -> None:
    pipeline = GenomicPredictionPipeline()
    geno = GenotypeMatrix(np.eye(3), ["a", "b", "c"])
    with pytest.raises(DimensionError, match="No individual"):
        pipeline.set_data(geno, PhenotypeVector([1.0, 2.0], ["x", "y"]))


def test_run_prediction_script(synthetic_data, capsys) -> None:
    d = synthetic_data['dir']
    spec = importlib.util.spec_from_file_location("run_prediction", REPO_ROOT / "scripts" / "run_prediction.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        module.main([
            "-g", str(d / "train_geno.csv"),
            "-p", str(d / "train_phe.csv"),
            "--prediction-genotype", str(d / "pred_geno.csv"),
            "--prediction-phenotype", str(d / "pred_phe.csv"),
            "--methods", "RR", "RR_BLUP",
            "--cross-validate",
            "--cv-repetitions", "2",
            "--cv-test-size", "5",
            "--random-seed", "3",
            "-o", str(d / "cli_out"),
        ])

    out = capsys.readouterr().out
    assert "Cross-validation: mean r" in out
    assert "RR_BLUP" in out
    assert (d / "cli_out" / "RRBLUP_predictions.csv").exists()
    holdout = pd.read_csv(d / "cli_out" / "RRBLUP_holdout_predictions.csv")
    assert list(holdout.columns) == ["ID", "RR", "RR_BLUP"]
