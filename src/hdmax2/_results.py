"""Typed result objects for the mediation association study.

Frozen dataclasses that provide:

* **Attribute access** — ``result.max2_pvalues``, ``result.as_1``, etc.
* **Field access by key** — ``result["max2_pvalues"]``,
  ``result.get("key")``, ``"key" in result``, ``result.keys()``.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with NumPy, pandas and Polars values converted to native Python.

Three types mirror the structure of an analysis:

* :class:`AssociationResult` — one association study (Stage 1 or
  Stage 2): per-mediator p-values and the model-level statistics.
* :class:`Step1Inputs` — the untransformed inputs and their resolved
  type tags.
* :class:`Step1Result` — the complete record returned by
  :func:`~hdmax2.run_as`.

All types are frozen: a result is a snapshot of a completed analysis
and is only ever read by downstream selection, effect estimation and
display code.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
import pandas as pd

from ._compat import _NOT_POLARS, _polars_to_python

if TYPE_CHECKING:
    from .lfmm import LatentFactorModel
    from .normalize import ExposureSpec, OutcomeSpec

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy / pandas / Polars values to native types.

    Handles nested dicts, lists, result records, ``np.ndarray``,
    ``pd.Series`` (→ ``dict`` keyed by index), ``pd.DataFrame``
    (→ column-oriented ``dict``), Polars frames and series (the raw
    inputs kept on :class:`Step1Inputs` may be Polars objects), NumPy
    scalars and enums, so that :meth:`_RecordMixin.to_dict` returns a
    fully JSON-serialisable structure.
    """
    if isinstance(obj, _RecordMixin):
        return obj.to_dict()
    if isinstance(obj, pd.DataFrame):
        return {str(c): _numpy_to_python(obj[c]) for c in obj.columns}
    if isinstance(obj, pd.Series):
        return {str(k): _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, pd.Categorical):
        return [_numpy_to_python(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_numpy_to_python(item) for item in obj]
    converted = _polars_to_python(obj)
    if converted is not _NOT_POLARS:
        return _numpy_to_python(converted)
    return obj


def _freeze(array: np.ndarray | None) -> None:
    """Mark *array* read-only in place."""
    if isinstance(array, np.ndarray):
        array.flags.writeable = False


# ------------------------------------------------------------------ #
# Record mixin
# ------------------------------------------------------------------ #


class _RecordMixin:
    """Mapping-style access to the fields of a result record.

    ``record["max2_pvalues"]``, ``record.get("as_2")``,
    ``"as_1" in record`` and ``record.keys()`` all address the
    dataclass fields only; methods and properties are not keys.
    Fields named in ``_EXCLUDE_FROM_DICT`` are reachable as keys but
    left out of :meth:`to_dict` because they have no plain-data form.
    """

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def keys(self) -> list[str]:
        return [f.name for f in fields(self)]  # type: ignore[arg-type]

    def __getitem__(self, key: str) -> Any:
        if key not in self.keys():
            raise KeyError(key)
        return getattr(self, key)

    def get(self, key: str, default: Any = None) -> Any:
        return self[key] if key in self else default

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self.keys()

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to JSON-serialisable plain data."""
        return {
            name: _numpy_to_python(getattr(self, name))
            for name in self.keys()
            if name not in self._EXCLUDE_FROM_DICT
        }


# ------------------------------------------------------------------ #
# AssociationResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class AssociationResult(_RecordMixin):
    """One high-dimensional association study.

    For Stage 1 (mediators ~ exposure) the p-values are the global
    ones: an omnibus partial-F p-value for categorical and multivariate
    exposures, the single-column p-value otherwise.  For Stage 2
    (mediators ~ exposure + outcome) every statistic refers to the
    outcome row only.
    """

    pvalues: pd.Series
    """P-value per mediator, indexed by mediator identifier."""

    zscores: np.ndarray
    """t statistics ``(rows, p)`` of the tested design columns."""

    fscores: np.ndarray
    """Genomic-control calibrated statistics ``(rows, p)``."""

    adj_r_squared: np.ndarray
    """Adjusted R² of each mediator's regression ``(p,)``."""

    gif: np.ndarray
    """Genomic inflation factor(s)."""

    mode: str
    """``"omnibus"`` or ``"per_column"``."""

    U: np.ndarray | None = field(default=None, repr=False)
    """Latent factor scores ``(n, K)`` (Stage 1 only)."""

    V: np.ndarray | None = field(default=None, repr=False)
    """Latent factor loadings ``(p, K)`` (Stage 1 only)."""

    each_var_pvalues: pd.DataFrame | None = field(default=None, repr=False)
    """Per design column p-values, mediators × columns (Stage 1 with
    ``each_var_pval=True`` only)."""

    def __post_init__(self) -> None:
        for array in (self.zscores, self.fscores, self.adj_r_squared, self.gif, self.U, self.V):
            _freeze(array)


# ------------------------------------------------------------------ #
# Step1Inputs
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Step1Inputs(_RecordMixin):
    """Original inputs of an analysis and their resolved type tags."""

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"exposure", "outcome"})

    exposure_input: Any
    """Exposure exactly as passed by the caller."""

    outcome_input: Any
    """Outcome exactly as passed by the caller."""

    expo_var_types: list[str]
    """Raw dtype of each exposure variable."""

    expo_var_ids: list[str]
    """Original names of the exposure variables."""

    outcome_var_type: str
    """``"binary"`` or ``"continuous"``."""

    covar: Any
    """Adjustment factors as passed (``None`` if absent)."""

    suppl_covar: Any
    """Supplementary Stage-2 adjustment factors (``None`` if absent)."""

    exposure: ExposureSpec = field(repr=False, compare=False)
    """Resolved exposure variant with its design matrix."""

    outcome: OutcomeSpec = field(repr=False, compare=False)
    """Resolved outcome variant."""


# ------------------------------------------------------------------ #
# Step1Result
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Step1Result(_RecordMixin):
    """Complete record of the two association studies and the max2 test.

    ``max2_pvalues`` is the only field mediator selection needs (top-N,
    FDR thresholding, region aggregation); the remaining fields are
    kept for diagnostics and for downstream effect estimation.
    """

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"model"})

    as_1: AssociationResult
    """Stage 1: mediators ~ exposure (+ covariates), with ``U``, ``V``."""

    as_2: AssociationResult
    """Stage 2: mediators ~ exposure + outcome, outcome row."""

    max2_pvalues: pd.Series
    """``max(p₁, p₂)²`` per mediator."""

    max2_each_var_pvalues: dict[str, pd.Series] | None
    """Max2 p-values per exposure design column, or ``None`` when
    per-variable p-values were not requested."""

    inputs: Step1Inputs
    """Untransformed inputs and resolved type tags."""

    model: LatentFactorModel = field(repr=False, compare=False)
    """The latent factor fit shared by both stages."""

    def top_mediators(self, n: int = 10) -> pd.Series:
        """Return the *n* mediators with the smallest max2 p-values.

        Mediators with a NaN p-value sort last.
        """
        return self.max2_pvalues.sort_values(na_position="last").head(n)
