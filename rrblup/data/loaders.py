"""
Loaders for numeric genotype, phenotype and covariate tables

Only plain delimited text is supported: an ID column followed by one column
per marker (genotypes), per trait (phenotypes) or per covariate.
"""

import warnings
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..utils.data_types import GenotypeMatrix, PhenotypeVector
from ..utils.errors import DimensionError

NA_VALUES = [
    '', 'NA', 'NaN', 'nan', 'NAN', 'na', 'N/A', 'n/a', 'Null', 'NULL',
    '.', '-', '--'
]

POSSIBLE_ID_COLUMNS = [
    'ID', 'id', 'IID',
    'sample', 'Sample',
    'Taxa', 'taxa',
    'Genotype', 'genotype',
    'Accession', 'accession',
]


def detect_separator(filepath: Union[str, Path]) -> str:
    """Delimiter from the extension, else from the first non-empty line."""
    filepath = Path(filepath)
    suffix = filepath.suffix.lower()
    if suffix == '.csv':
        return ','
    if suffix in ('.tsv', '.txt'):
        return '\t'
    try:
        with filepath.open('r') as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                return '\t' if line.count('\t') >= line.count(',') and '\t' in line else ','
    except OSError:
        pass
    return ','


def _read_table(filepath: Union[str, Path]) -> pd.DataFrame:
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    return pd.read_csv(filepath, sep=detect_separator(filepath), na_values=NA_VALUES, keep_default_na=True)


def _standardize_id_column(df: pd.DataFrame, id_column: str) -> pd.DataFrame:
    """Rename the ID column to 'ID', auto-detecting it when absent."""
    if id_column in df.columns:
        if id_column != 'ID':
            df = df.rename(columns={id_column: 'ID'})
    else:
        present_candidates = [c for c in df.columns if c in POSSIBLE_ID_COLUMNS]
        if present_candidates:
            if len(present_candidates) > 1:
                warnings.warn(
                    "Multiple potential ID columns found: {}. Selecting leftmost '{}' as ID.".format(
                        present_candidates, present_candidates[0]
                    )
                )
            df = df.rename(columns={present_candidates[0]: 'ID'})
        else:
            first_col = df.columns[0]
            warnings.warn(
                "No recognized ID column found; using first column '{}' as ID.".format(first_col)
            )
            df = df.rename(columns={first_col: 'ID'})
    df['ID'] = df['ID'].astype(str)
    if df['ID'].duplicated().any():
        dups = df.loc[df['ID'].duplicated(), 'ID'].unique().tolist()
        raise DimensionError(f"Duplicated individual IDs: {', '.join(dups[:5])}")
    return df


def load_genotype_file(filepath: Union[str, Path],
                       id_column: str = 'ID',
                       *,
                       missing_value: float = -9,
                       max_missing_rate: float = 1.0,
                       drop_monomorphic: bool = False,
                       verbose: bool = False) -> GenotypeMatrix:
    """Load a numeric genotype table (ID column + one column per marker)

    Args:
        filepath: CSV/TSV path
        id_column: Name of the ID column (auto-detected when absent)
        missing_value: Sentinel for missing calls (NA tokens are missing too)
        max_missing_rate: Largest accepted per-individual missing-call fraction
        drop_monomorphic: Drop markers with a single observed genotype code
        verbose: Print a loading summary

    Returns:
        GenotypeMatrix keyed by individual ID and marker column name
    """
    df = _standardize_id_column(_read_table(filepath), id_column)
    markers = [col for col in df.columns if col != 'ID']
    if not markers:
        raise DimensionError(f"Genotype file '{filepath}' has no marker columns")

    codes = df[markers].apply(pd.to_numeric, errors='coerce')
    non_numeric = codes.isna() & df[markers].notna()
    if non_numeric.any().any():
        bad_col = non_numeric.any().idxmax()
        raise DimensionError(f"Marker column '{bad_col}' contains non-numeric genotype codes")

    if drop_monomorphic:
        observed = codes.mask(codes == missing_value)
        monomorphic = [col for col in markers if observed[col].nunique(dropna=True) <= 1]
        if monomorphic:
            if verbose:
                print(f"   Dropping {len(monomorphic)} monomorphic markers")
            markers = [col for col in markers if col not in monomorphic]
            codes = codes[markers]
        if not markers:
            raise DimensionError("All markers are monomorphic")

    geno = GenotypeMatrix(
        codes.to_numpy(dtype=np.float64),
        df['ID'].tolist(),
        markers,
        missing_value=missing_value,
        max_missing_rate=max_missing_rate,
    )
    if verbose:
        print(f"   Loaded {geno.n_individuals} individuals x {geno.n_markers} markers "
              f"({geno.n_missing} missing calls imputed)")
    return geno


def load_phenotype_file(filepath: Union[str, Path],
                        trait: Optional[str] = None,
                        id_column: str = 'ID',
                        verbose: bool = False) -> PhenotypeVector:
    """Load one trait from a phenotype table (ID column + trait columns)

    The first numeric column is used when ``trait`` is not given.
    """
    df = _standardize_id_column(_read_table(filepath), id_column)
    traits = [col for col in df.columns if col != 'ID']
    if not traits:
        raise DimensionError(f"Phenotype file '{filepath}' has no trait columns")

    if trait is None:
        numeric = [col for col in traits if pd.to_numeric(df[col], errors='coerce').notna().any()]
        if not numeric:
            raise DimensionError(f"Phenotype file '{filepath}' has no numeric trait column")
        trait = numeric[0]
        if len(numeric) > 1:
            warnings.warn(f"Multiple trait columns found; using '{trait}'")

    phe = PhenotypeVector.from_dataframe(df, trait)
    if verbose:
        n_obs = int(np.isfinite(phe.values).sum())
        print(f"   Loaded trait '{trait}' for {n_obs} of {phe.n_individuals} individuals")
    return phe


def load_covariate_file(filepath: Union[str, Path],
                        individual_ids: Sequence[str],
                        covariate_columns: Optional[List[str]] = None,
                        id_column: str = 'ID') -> np.ndarray:
    """Load numeric covariates aligned to ``individual_ids``

    Raises:
        DimensionError: A requested individual or column is missing, or a
            covariate value is missing or non-numeric
    """
    df = _standardize_id_column(_read_table(filepath), id_column)
    available = [c for c in df.columns if c != 'ID']
    if covariate_columns is not None:
        missing = [c for c in covariate_columns if c not in df.columns]
        if missing:
            raise DimensionError(
                "Requested covariate columns missing from file '{}': {}".format(filepath, missing)
            )
        selected = list(covariate_columns)
    else:
        selected = available
    if not selected:
        raise DimensionError(f"No covariate columns found in file '{filepath}'")

    indexed = df.set_index('ID')
    ids = [str(ind_id) for ind_id in individual_ids]
    absent = [ind_id for ind_id in ids if ind_id not in indexed.index]
    if absent:
        raise DimensionError(f"Covariates missing for individuals: {', '.join(absent[:5])}")

    values = indexed.loc[ids, selected].apply(pd.to_numeric, errors='coerce')
    if values.isna().any().any():
        bad_col = values.isna().any().idxmax()
        raise DimensionError(f"Covariate column '{bad_col}' has missing or non-numeric values")
    return values.to_numpy(dtype=np.float64)
