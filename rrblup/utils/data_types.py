"""
Core data structures for pyRRBLUP package
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import (
    DimensionError,
    InvalidParameterError,
    MissingDataError,
    NumericalInstabilityError,
)

SHRINKAGE_MODES: Tuple[str, ...] = ("homogeneous", "heterogeneous")


def _readonly(values: Any, dtype=np.float64) -> np.ndarray:
    """Return a private read-only float copy of ``values``."""
    array = np.array(values, dtype=dtype, copy=True)
    array.setflags(write=False)
    return array


def _normalise_labels(labels: Optional[Iterable[Any]], count: int, prefix: str, kind: str) -> Tuple[str, ...]:
    if labels is None:
        return tuple(f"{prefix}{i + 1}" for i in range(count))
    labels = tuple(str(label) for label in labels)
    if len(labels) != count:
        raise DimensionError(f"Expected {count} {kind}, got {len(labels)}")
    if len(set(labels)) != len(labels):
        duplicates = pd.Series(labels)
        duplicates = duplicates[duplicates.duplicated()].unique().tolist()
        raise DimensionError(f"Duplicate {kind}: {', '.join(duplicates[:5])}")
    return labels


class GenotypeMatrix:
    """Immutable genotype matrix (n_individuals × n_markers)

    Rows are keyed by individual ID and columns by marker label. Missing
    calls (``missing_value`` or NaN) are imputed with the per-marker major
    allele, which matches rMVP's missing data strategy. Individuals whose
    missing-call rate exceeds ``max_missing_rate`` are rejected.
    """

    def __init__(self, data: Union[np.ndarray, Sequence[Sequence[float]]],
                 individual_ids: Optional[Iterable[Any]] = None,
                 marker_labels: Optional[Iterable[Any]] = None,
                 *,
                 missing_value: float = -9,
                 max_missing_rate: float = 1.0):
        array = np.array(data, dtype=np.float64, copy=True)
        if array.ndim != 2:
            raise DimensionError(f"Genotype matrix must be 2D, got shape {array.shape}")
        if not (0.0 <= max_missing_rate <= 1.0):
            raise InvalidParameterError("max_missing_rate must be between 0 and 1 inclusive")

        n_individuals, n_markers = array.shape
        self._individual_ids = _normalise_labels(individual_ids, n_individuals, "IND", "individual IDs")
        self._marker_labels = _normalise_labels(marker_labels, n_markers, "M", "marker labels")

        missing_mask = np.isnan(array) | (array == missing_value)
        if n_markers > 0:
            self._missing_rates = missing_mask.mean(axis=1)
        else:
            self._missing_rates = np.zeros(n_individuals)
        too_sparse = np.where(self._missing_rates > max_missing_rate)[0]
        if too_sparse.size > 0:
            preview = ', '.join(
                f"{self._individual_ids[i]} ({self._missing_rates[i]:.2f})" for i in too_sparse[:5]
            )
            raise MissingDataError(
                f"{too_sparse.size} individuals exceed max_missing_rate={max_missing_rate}: {preview}"
            )

        self._major_alleles = self._compute_major_alleles(array, missing_mask)
        if missing_mask.any():
            array[missing_mask] = np.broadcast_to(self._major_alleles, array.shape)[missing_mask]
        self._n_missing = int(missing_mask.sum())

        array.setflags(write=False)
        self._data = array
        self._missing_rates.setflags(write=False)
        self._major_alleles.setflags(write=False)

    @staticmethod
    def _compute_major_alleles(array: np.ndarray, missing_mask: np.ndarray) -> np.ndarray:
        """Most frequent observed code per marker (0 for entirely missing markers)."""
        n_markers = array.shape[1]
        major = np.zeros(n_markers, dtype=np.float64)
        if array.size == 0:
            return major

        valid_values = array[~missing_mask]
        if valid_values.size == 0:
            return major

        unique_vals = np.unique(valid_values)
        counts = np.zeros((unique_vals.size, n_markers), dtype=np.int64)
        for idx, val in enumerate(unique_vals):
            counts[idx, :] = np.sum((array == val) & ~missing_mask, axis=0)

        major = unique_vals[np.argmax(counts, axis=0)].astype(np.float64)
        completely_missing = (~missing_mask).sum(axis=0) == 0
        major[completely_missing] = 0.0
        return major

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, id_column: str = 'ID', **kwargs) -> "GenotypeMatrix":
        """Build from a DataFrame with an ID column followed by marker columns."""
        if id_column not in df.columns:
            raise DimensionError(f"Genotype table is missing ID column '{id_column}'")
        markers = [col for col in df.columns if col != id_column]
        return cls(df[markers].to_numpy(dtype=np.float64), df[id_column].astype(str).tolist(), markers, **kwargs)

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix shape (n_individuals, n_markers)"""
        return self._data.shape

    @property
    def n_individuals(self) -> int:
        """Number of individuals"""
        return self.shape[0]

    @property
    def n_markers(self) -> int:
        """Number of markers"""
        return self.shape[1]

    @property
    def individual_ids(self) -> Tuple[str, ...]:
        return self._individual_ids

    @property
    def marker_labels(self) -> Tuple[str, ...]:
        return self._marker_labels

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the imputed genotype codes"""
        return self._data

    @property
    def missing_rates(self) -> np.ndarray:
        """Per-individual fraction of missing calls before imputation"""
        return self._missing_rates

    @property
    def n_missing(self) -> int:
        """Number of genotype calls that were imputed"""
        return self._n_missing

    @property
    def major_alleles(self) -> np.ndarray:
        return self._major_alleles

    def __getitem__(self, key):
        return self._data[key]

    def to_numpy(self) -> np.ndarray:
        """Writable copy of the imputed genotype codes"""
        return self._data.copy()

    def index_of(self, individual_ids: Iterable[Any]) -> np.ndarray:
        """Row indices of the requested individuals, in the requested order."""
        lookup = {ind_id: idx for idx, ind_id in enumerate(self._individual_ids)}
        requested = [str(ind_id) for ind_id in individual_ids]
        missing = [ind_id for ind_id in requested if ind_id not in lookup]
        if missing:
            raise DimensionError(f"Individuals not found in genotype matrix: {', '.join(missing[:5])}")
        return np.array([lookup[ind_id] for ind_id in requested], dtype=int)

    def subset_individuals(self, indices: Union[np.ndarray, List[int]]) -> "GenotypeMatrix":
        """Return a GenotypeMatrix restricted to a subset of rows."""
        indexer = np.asarray(indices)
        if indexer.dtype == bool:
            indexer = np.where(indexer)[0]
        indexer = indexer.astype(int)
        return GenotypeMatrix(
            self._data[indexer, :],
            [self._individual_ids[i] for i in indexer],
            self._marker_labels,
        )

    def select_markers(self, marker_labels: Iterable[Any]) -> "GenotypeMatrix":
        """Return a GenotypeMatrix with the requested markers, in the requested order."""
        lookup = {label: idx for idx, label in enumerate(self._marker_labels)}
        requested = [str(label) for label in marker_labels]
        missing = [label for label in requested if label not in lookup]
        if missing:
            raise DimensionError(f"Markers not found in genotype matrix: {', '.join(missing[:5])}")
        columns = [lookup[label] for label in requested]
        return GenotypeMatrix(self._data[:, columns], self._individual_ids, requested)

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(self._data, columns=list(self._marker_labels))
        df.insert(0, 'ID', list(self._individual_ids))
        return df

    def __repr__(self) -> str:
        return f"GenotypeMatrix(n_individuals={self.n_individuals}, n_markers={self.n_markers})"


class PhenotypeVector:
    """One numeric trait value per individual, keyed by individual ID"""

    def __init__(self, values: Union[np.ndarray, Sequence[float], pd.Series],
                 individual_ids: Optional[Iterable[Any]] = None,
                 name: str = "Trait"):
        if isinstance(values, pd.Series):
            if individual_ids is None:
                individual_ids = values.index.tolist()
            if values.name is not None and name == "Trait":
                name = str(values.name)
            values = values.to_numpy()

        array = np.array(values, dtype=np.float64, copy=True)
        if array.ndim != 1:
            raise DimensionError(f"Phenotype values must be 1D, got shape {array.shape}")
        if individual_ids is None:
            raise DimensionError("Phenotype values require individual IDs for alignment")

        self._individual_ids = _normalise_labels(individual_ids, array.size, "IND", "individual IDs")
        array.setflags(write=False)
        self._values = array
        self.name = name

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, trait: str, id_column: str = 'ID') -> "PhenotypeVector":
        if id_column not in df.columns:
            raise DimensionError(f"Phenotype table is missing ID column '{id_column}'")
        if trait not in df.columns:
            raise DimensionError(f"Phenotype table has no trait column '{trait}'")
        values = pd.to_numeric(df[trait], errors='coerce')
        return cls(values.to_numpy(), df[id_column].astype(str).tolist(), name=trait)

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def individual_ids(self) -> Tuple[str, ...]:
        return self._individual_ids

    @property
    def n_individuals(self) -> int:
        return self._values.size

    def to_series(self) -> pd.Series:
        return pd.Series(self._values, index=list(self._individual_ids), name=self.name)

    def __repr__(self) -> str:
        return f"PhenotypeVector(name={self.name!r}, n_individuals={self.n_individuals})"


def align_phenotypes(geno: GenotypeMatrix, phe: PhenotypeVector) -> Tuple[GenotypeMatrix, np.ndarray]:
    """Match phenotypes to genotype rows by individual ID.

    Individuals are kept in genotype order. Genotyped individuals without a
    phenotype, and phenotypes that are NaN, are dropped.

    Returns:
        Tuple of (genotype subset, phenotype array aligned to its rows)
    """
    phe_lookup = dict(zip(phe.individual_ids, phe.values))
    keep = [
        idx for idx, ind_id in enumerate(geno.individual_ids)
        if ind_id in phe_lookup and np.isfinite(phe_lookup[ind_id])
    ]
    if not keep:
        raise DimensionError("No individuals with both genotype and phenotype data")

    geno_sub = geno if len(keep) == geno.n_individuals else geno.subset_individuals(keep)
    y = np.array([phe_lookup[ind_id] for ind_id in geno_sub.individual_ids], dtype=np.float64)
    return geno_sub, y


@dataclass(frozen=True)
class VarianceComponents:
    """Genetic and residual variance from a mixed-model fit"""

    genetic_variance: float
    residual_variance: float
    converged: bool = True
    n_iterations: int = 0
    method: str = "REML"
    log_likelihood: float = float('nan')
    warnings: Tuple[str, ...] = ()

    def __post_init__(self):
        for name in ('genetic_variance', 'residual_variance'):
            value = float(getattr(self, name))
            if not np.isfinite(value):
                raise NumericalInstabilityError(f"{name} is not finite ({value})")
            if value < 0:
                raise InvalidParameterError(f"{name} must be >= 0, got {value}")
            object.__setattr__(self, name, value)
        object.__setattr__(self, 'warnings', tuple(self.warnings))

    @property
    def heritability(self) -> float:
        """h² = σ²_g / (σ²_g + σ²_e); 0 when both components are 0"""
        total = self.genetic_variance + self.residual_variance
        if total <= 0:
            return 0.0
        return self.genetic_variance / total

    @property
    def is_degenerate(self) -> bool:
        """A zero residual variance means the fit is degenerate"""
        return self.residual_variance == 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'Vg': self.genetic_variance,
            'Ve': self.residual_variance,
            'h2': self.heritability,
            'Converged': self.converged,
            'Iterations': self.n_iterations,
            'Method': self.method,
            'LogLik': self.log_likelihood,
            'Warnings': '; '.join(self.warnings),
        }


@dataclass(frozen=True)
class ShrinkageSpec:
    """Ridge penalty: one scalar (homogeneous) or one weight per marker (heterogeneous)"""

    mode: str
    weights: np.ndarray
    n_markers: int

    def __post_init__(self):
        if self.mode not in SHRINKAGE_MODES:
            raise InvalidParameterError(
                f"Unknown shrinkage mode '{self.mode}'; expected one of {SHRINKAGE_MODES}"
            )
        weights = np.array(self.weights, dtype=np.float64, copy=True)
        if self.mode == "homogeneous":
            if weights.size != 1:
                raise DimensionError(f"Homogeneous shrinkage needs one weight, got {weights.size}")
            weights = weights.reshape(())
        elif weights.shape != (self.n_markers,):
            raise DimensionError(
                f"Heterogeneous shrinkage needs {self.n_markers} weights, got shape {weights.shape}"
            )
        if not np.all(np.isfinite(weights)):
            raise InvalidParameterError("Shrinkage weights must be finite")
        if np.any(weights < 0):
            raise InvalidParameterError("Shrinkage weights must be >= 0")
        weights.setflags(write=False)
        object.__setattr__(self, 'weights', weights)
        object.__setattr__(self, 'n_markers', int(self.n_markers))

    @property
    def is_homogeneous(self) -> bool:
        return self.mode == "homogeneous"

    def penalty_diagonal(self) -> np.ndarray:
        """Diagonal of the penalty matrix D (length n_markers)"""
        if self.is_homogeneous:
            return np.full(self.n_markers, float(self.weights))
        return self.weights.copy()

    @property
    def zero_weight_markers(self) -> np.ndarray:
        """Indices of markers that receive no regularization"""
        return np.where(self.penalty_diagonal() == 0.0)[0]


@dataclass(frozen=True)
class MarkerEffects:
    """Marker effect estimates from one ridge solve"""

    effects: np.ndarray
    fixed_effects: np.ndarray
    marker_labels: Tuple[str, ...]
    shrinkage: ShrinkageSpec
    variance_components: Optional[VarianceComponents] = None
    solver: str = "cholesky"
    warnings: Tuple[str, ...] = ()

    def __post_init__(self):
        effects = _readonly(self.effects)
        labels = tuple(str(label) for label in self.marker_labels)
        if effects.ndim != 1 or effects.size != len(labels):
            raise DimensionError(
                f"Got {effects.size} effects for {len(labels)} marker labels"
            )
        if effects.size != self.shrinkage.n_markers:
            raise DimensionError(
                f"Got {effects.size} effects for a shrinkage spec over {self.shrinkage.n_markers} markers"
            )
        object.__setattr__(self, 'effects', effects)
        object.__setattr__(self, 'fixed_effects', _readonly(np.atleast_1d(self.fixed_effects)))
        object.__setattr__(self, 'marker_labels', labels)
        object.__setattr__(self, 'warnings', tuple(self.warnings))

    @property
    def n_markers(self) -> int:
        return self.effects.size

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            'Marker': list(self.marker_labels),
            'Effect': self.effects,
            'Shrinkage': self.shrinkage.penalty_diagonal(),
        })


@dataclass(frozen=True)
class PredictionResult:
    """Predicted genotypic values for new individuals"""

    individual_ids: Tuple[str, ...]
    values: np.ndarray
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        values = _readonly(self.values)
        ids = tuple(str(ind_id) for ind_id in self.individual_ids)
        if values.ndim != 1 or values.size != len(ids):
            raise DimensionError(f"Got {values.size} predictions for {len(ids)} individuals")
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'individual_ids', ids)
        object.__setattr__(self, 'warnings', tuple(self.warnings))

    def __len__(self) -> int:
        return self.values.size

    def to_series(self) -> pd.Series:
        return pd.Series(self.values, index=list(self.individual_ids), name='Prediction')

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({'ID': list(self.individual_ids), 'Prediction': self.values})
