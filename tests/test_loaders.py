import numpy as np
import pandas as pd
import pytest

from rrblup.data.loaders import (
    detect_separator,
    load_covariate_file,
    load_genotype_file,
    load_phenotype_file,
)
from rrblup.utils.errors import DimensionError, MissingDataError


def _write_genotypes(path, sep=","):
    df = pd.DataFrame({
        "ID": ["s1", "s2", "s3", "s4"],
        "m1": [0, 1, 2, -9],
        "m2": [1, 1, 1, 1],
        "m3": [2, 0, "NA", 0],
    })
    df.to_csv(path, index=False, sep=sep)
    return path


def test_detect_separator(tmp_path) -> None:
    assert detect_separator(tmp_path / "x.csv") == ","
    assert detect_separator(tmp_path / "x.tsv") == "\t"
    data = tmp_path / "table.dat"
    data.write_text("ID\tm1\n a\t1\n")
    assert detect_separator(data) == "\t"


def test_load_genotype_file_imputes_and_drops_monomorphic(tmp_path) -> None:
    path = _write_genotypes(tmp_path / "geno.csv")

    geno = load_genotype_file(path, drop_monomorphic=True)

    assert geno.individual_ids == ("s1", "s2", "s3", "s4")
    assert geno.marker_labels == ("m1", "m3")
    assert geno.n_missing == 2
    np.testing.assert_array_equal(geno.values[:, 1], [2.0, 0.0, 0.0, 0.0])

    kept = load_genotype_file(path)
    assert kept.marker_labels == ("m1", "m2", "m3")


def test_load_genotype_file_tsv_and_missing_rate(tmp_path) -> None:
    path = _write_genotypes(tmp_path / "geno.tsv", sep="\t")
    with pytest.raises(MissingDataError):
        load_genotype_file(path, max_missing_rate=0.2)


def test_load_genotype_file_rejects_text_codes(tmp_path) -> None:
    path = tmp_path / "geno.csv"
    pd.DataFrame({"ID": ["a", "b"], "m1": ["AA", "AT"]}).to_csv(path, index=False)
    with pytest.raises(DimensionError, match="non-numeric"):
        load_genotype_file(path)


def test_load_genotype_file_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_genotype_file(tmp_path / "absent.csv")


def test_load_phenotype_file_detects_id_column_and_trait(tmp_path) -> None:
    path = tmp_path / "phe.csv"
    pd.DataFrame({
        "Taxa": ["s1", "s2", "s3"],
        "Height": [1.5, "NA", 2.5],
        "Yield": [3.0, 4.0, 5.0],
    }).to_csv(path, index=False)

    with pytest.warns(UserWarning, match="Multiple trait columns"):
        phe = load_phenotype_file(path)
    assert phe.name == "Height"
    assert phe.individual_ids == ("s1", "s2", "s3")
    assert np.isnan(phe.values[1])

    yield_phe = load_phenotype_file(path, trait="Yield")
    np.testing.assert_array_equal(yield_phe.values, [3.0, 4.0, 5.0])

    with pytest.raises(DimensionError, match="no trait column 'Weight'"):
        load_phenotype_file(path, trait="Weight")


def test_load_phenotype_file_falls_back_to_first_column(tmp_path) -> None:
    path = tmp_path / "phe.csv"
    pd.DataFrame({"line": ["a", "b"], "y": [1.0, 2.0]}).to_csv(path, index=False)
    with pytest.warns(UserWarning, match="first column 'line'"):
        phe = load_phenotype_file(path)
    assert phe.individual_ids == ("a", "b")


def test_load_covariate_file_aligns_to_requested_ids(tmp_path) -> None:
    path = tmp_path / "cov.csv"
    pd.DataFrame({
        "ID": ["s1", "s2", "s3"],
        "PC1": [0.1, 0.2, 0.3],
        "Env": [1, 0, 1],
    }).to_csv(path, index=False)

    values = load_covariate_file(path, ["s3", "s1"])
    np.testing.assert_allclose(values, [[0.3, 1.0], [0.1, 1.0]])

    only_pc = load_covariate_file(path, ["s2"], covariate_columns=["PC1"])
    np.testing.assert_allclose(only_pc, [[0.2]])

    with pytest.raises(DimensionError, match="s9"):
        load_covariate_file(path, ["s9"])
    with pytest.raises(DimensionError, match="Requested covariate columns"):
        load_covariate_file(path, ["s1"], covariate_columns=["PC9"])


def test_load_covariate_file_rejects_missing_values(tmp_path) -> None:
    path = tmp_path / "cov.csv"
    pd.DataFrame({"ID": ["a", "b"], "PC1": [0.1, "NA"]}).to_csv(path, index=False)
    with pytest.raises(DimensionError, match="PC1"):
        load_covariate_file(path, ["a", "b"])
