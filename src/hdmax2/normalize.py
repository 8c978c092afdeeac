"""Input classification and validation at the analysis boundary.

Raw user inputs are classified exactly once, here, into closed
variants that the rest of the pipeline consumes:

* :class:`ExposureSpec` — continuous, binary, categorical, or
  multivariate, together with the numeric design matrix it expands to.
* :class:`OutcomeSpec` — binary or continuous, as a float vector.

Exposure classification rules, in order:

1. A table with more than one column is **multivariate**; each column
   is classified independently by rules 2–4 and the expanded columns
   are concatenated under synthetic identifiers ``Var_1``, ``Var_2``…
2. A pandas ``Categorical`` (ordered or not) is **categorical**.
3. String values are **categorical**, with levels in sorted order.
4. Numeric or logical values stay a single numeric column, tagged
   **binary** when every value lies in ``{0, 1}`` and **continuous**
   otherwise.

A one-column table is treated exactly like the vector it wraps.

Categorical variables expand by reference-level dummy coding: a
``k``-level factor yields ``k − 1`` columns, the first level being the
reference absorbed by the intercept.

Outcome classification: logical → binary (``True`` → 1.0); numeric
with values in ``{0, 1}`` → binary (values passed through);
other numeric → continuous; anything else is rejected.
"""

from __future__ import annotations

import logging
import numbers
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from ._compat import _from_polars
from ._errors import (
    DegenerateExposure,
    InvalidCovariates,
    InvalidExposureType,
    InvalidLatentFactorCount,
    InvalidMediatorMatrix,
    MissingLatentFactorCount,
    ShapeMismatch,
    UnsupportedOutcomeType,
)

logger = logging.getLogger(__name__)

UNIVARIATE_ID = "univariate"


class ExposureKind(str, Enum):
    CONTINUOUS = "continuous"
    BINARY = "binary"
    CATEGORICAL = "categorical"
    MULTIVARIATE = "multivariate"


class OutcomeKind(str, Enum):
    BINARY = "binary"
    CONTINUOUS = "continuous"


# ------------------------------------------------------------------ #
# Resolved variants
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ExposureColumnSpec:
    """One exposure variable after classification."""

    identifier: str
    """``"univariate"`` or the synthetic ``Var_j`` identifier."""

    original_name: str
    """Name of the variable in the user's input."""

    kind: ExposureKind
    """Resolved type (never ``MULTIVARIATE``)."""

    source_dtype: str
    """dtype of the raw values, kept for reporting."""

    levels: tuple[Any, ...] | None
    """Canonical level order for categorical variables; the first
    level is the reference."""

    design_columns: tuple[str, ...]
    """Names of the design columns this variable expands to."""


@dataclass(frozen=True)
class ExposureSpec:
    """Classified exposure and its numeric design matrix."""

    kind: ExposureKind
    columns: tuple[ExposureColumnSpec, ...]
    design: pd.DataFrame
    """Numeric design ``(n, d)``, no intercept column."""

    @property
    def is_multivariate(self) -> bool:
        return self.kind is ExposureKind.MULTIVARIATE

    @property
    def omnibus(self) -> bool:
        """Whether the global Stage-1 test collapses the design into a
        single partial-F p-value per mediator."""
        return self.kind in (ExposureKind.CATEGORICAL, ExposureKind.MULTIVARIATE)

    @property
    def n_samples(self) -> int:
        return int(self.design.shape[0])

    @property
    def design_columns(self) -> tuple[str, ...]:
        return tuple(self.design.columns)

    @property
    def values(self) -> np.ndarray:
        return self.design.to_numpy(dtype=float)

    @property
    def var_ids(self) -> list[str]:
        """Original variable names, in input order."""
        return [col.original_name for col in self.columns]

    @property
    def var_types(self) -> list[str]:
        """Raw dtype of each input variable."""
        return [col.source_dtype for col in self.columns]


@dataclass(frozen=True)
class OutcomeSpec:
    """Classified outcome as a float vector."""

    kind: OutcomeKind
    values: np.ndarray
    name: str
    source_dtype: str

    @property
    def n_samples(self) -> int:
        return int(self.values.shape[0])


@dataclass(frozen=True)
class NormalizedInputs:
    """Everything the association stages need, fully validated."""

    mediators: np.ndarray
    mediator_ids: tuple[str, ...]
    exposure: ExposureSpec
    outcome: OutcomeSpec
    K: int
    covar: np.ndarray | None
    covar_names: tuple[str, ...]
    suppl_covar: np.ndarray | None
    suppl_covar_names: tuple[str, ...]
    per_variable: bool

    @property
    def n_samples(self) -> int:
        return int(self.mediators.shape[0])

    @property
    def n_mediators(self) -> int:
        return int(self.mediators.shape[1])


# ------------------------------------------------------------------ #
# Exposure
# ------------------------------------------------------------------ #


_INFERRED_NUMERIC = frozenset({"integer", "floating", "mixed-integer-float", "decimal"})


def _coerce_object_values(values: pd.Series) -> tuple[pd.Series, str]:
    """Give an object-dtype vector the dtype of the values it holds.

    Returns the (possibly converted) vector and the inferred kind from
    :func:`pandas.api.types.infer_dtype`.  Only all-logical and
    all-numeric contents are converted.
    """
    if not ptypes.is_object_dtype(values.dtype):
        return values, ""
    inferred = ptypes.infer_dtype(values, skipna=False)
    if inferred == "boolean":
        return values.astype(bool), inferred
    if inferred in _INFERRED_NUMERIC:
        return values.astype(float), inferred
    return values, inferred


def _exposure_container(exposure: Any) -> pd.DataFrame | pd.Series:
    """Wrap *exposure* in a pandas table or vector without reinterpreting it."""
    exposure = _from_polars(exposure)
    if isinstance(exposure, (pd.DataFrame, pd.Series)):
        return exposure
    if isinstance(exposure, pd.Categorical):
        return pd.Series(exposure)
    if isinstance(exposure, np.ndarray):
        if exposure.ndim == 1:
            return pd.Series(exposure)
        if exposure.ndim == 2:
            return pd.DataFrame(
                exposure, columns=[f"X{j + 1}" for j in range(exposure.shape[1])]
            )
        raise InvalidExposureType(
            f"Exposure array must be 1-D or 2-D, got {exposure.ndim} dimensions."
        )
    if isinstance(exposure, (list, tuple)):
        return pd.Series(list(exposure))
    raise InvalidExposureType(
        "Exposure must be a vector, a categorical, or a table of variables; "
        f"got {type(exposure).__name__}."
    )


def _expand_column(
    values: pd.Series, identifier: str, original_name: str
) -> tuple[ExposureColumnSpec, pd.DataFrame]:
    """Classify one exposure variable and expand it to design columns."""
    values = values.reset_index(drop=True)
    n_missing = int(values.isna().sum())
    if n_missing:
        raise InvalidExposureType(
            f"Exposure variable {original_name!r} contains {n_missing} missing "
            "value(s); impute them before the analysis."
        )
    source_dtype = str(values.dtype)
    values, inferred = _coerce_object_values(values)

    if isinstance(values.dtype, pd.CategoricalDtype):
        values = values.cat.remove_unused_categories()
        levels = tuple(values.cat.categories)
    elif ptypes.is_bool_dtype(values.dtype) or (
        ptypes.is_numeric_dtype(values.dtype)
        and not ptypes.is_complex_dtype(values.dtype)
    ):
        numeric = values.astype(float)
        unique = np.unique(numeric.to_numpy())
        if unique.size < 2:
            raise DegenerateExposure(
                f"Exposure variable {original_name!r} must take at least two "
                f"distinct values, got {unique.size}."
            )
        kind = (
            ExposureKind.BINARY
            if np.isin(unique, [0.0, 1.0]).all()
            else ExposureKind.CONTINUOUS
        )
        spec = ExposureColumnSpec(
            identifier=identifier,
            original_name=original_name,
            kind=kind,
            source_dtype=source_dtype,
            levels=None,
            design_columns=(identifier,),
        )
        return spec, pd.DataFrame({identifier: numeric.to_numpy()})
    elif ptypes.is_string_dtype(values.dtype) or ptypes.is_object_dtype(values.dtype):
        if inferred != "string" and not all(isinstance(v, str) for v in values):
            raise InvalidExposureType(
                f"Exposure variable {original_name!r} mixes value types "
                f"({inferred or values.dtype}); encode it as numeric or as a "
                "categorical."
            )
        levels = tuple(sorted(values.unique()))
        values = pd.Series(pd.Categorical(values, categories=levels))
    else:
        raise InvalidExposureType(
            f"Exposure variable {original_name!r} has unsupported dtype "
            f"{values.dtype}; use numeric, logical, string or categorical values."
        )

    if len(levels) < 2:
        raise DegenerateExposure(
            f"Categorical exposure {original_name!r} must have at least two "
            f"levels, got {len(levels)}."
        )
    dummies = pd.get_dummies(
        values, prefix=identifier, prefix_sep="_", drop_first=True, dtype=float
    )
    spec = ExposureColumnSpec(
        identifier=identifier,
        original_name=original_name,
        kind=ExposureKind.CATEGORICAL,
        source_dtype=source_dtype,
        levels=levels,
        design_columns=tuple(str(c) for c in dummies.columns),
    )
    dummies.columns = list(spec.design_columns)
    return spec, dummies


def classify_exposure(exposure: Any) -> ExposureSpec:
    """Classify *exposure* and expand it to a numeric design matrix.

    Args:
        exposure: A vector (list, 1-D array, ``pd.Series``), a
            ``pd.Categorical``, or a table (``pd.DataFrame``, 2-D
            array, Polars DataFrame) with one column per variable.

    Returns:
        The resolved :class:`ExposureSpec`.

    Raises:
        InvalidExposureType: Unsupported container or values, or
            missing values.
        DegenerateExposure: A variable with fewer than two distinct
            values or levels.
    """
    container = _exposure_container(exposure)

    if isinstance(container, pd.DataFrame):
        if container.shape[1] == 0:
            raise InvalidExposureType("Exposure table has no columns.")
        if container.shape[1] == 1:
            column = container.iloc[:, 0]
            spec, design = _expand_column(column, UNIVARIATE_ID, str(container.columns[0]))
            logger.info("The input exposure is a single %s variable.", spec.kind.value)
            return ExposureSpec(kind=spec.kind, columns=(spec,), design=design)

        specs = []
        designs = []
        for j, name in enumerate(container.columns, start=1):
            spec, design = _expand_column(container.iloc[:, j - 1], f"Var_{j}", str(name))
            logger.info("The input exposure no %d (%s) is %s.", j, name, spec.kind.value)
            specs.append(spec)
            designs.append(design)
        design = pd.concat(designs, axis=1)
        logger.info(
            "The input exposure is multivariate: %d variables, %d design columns.",
            len(specs),
            design.shape[1],
        )
        return ExposureSpec(
            kind=ExposureKind.MULTIVARIATE, columns=tuple(specs), design=design
        )

    name = str(container.name) if container.name is not None else UNIVARIATE_ID
    spec, design = _expand_column(container, UNIVARIATE_ID, name)
    if spec.kind is ExposureKind.CATEGORICAL:
        logger.info(
            "The input exposure is categorical with %d levels (reference %r).",
            len(spec.levels or ()),
            (spec.levels or (None,))[0],
        )
    else:
        logger.info("The input exposure is %s.", spec.kind.value)
    return ExposureSpec(kind=spec.kind, columns=(spec,), design=design)


# ------------------------------------------------------------------ #
# Outcome
# ------------------------------------------------------------------ #


def classify_outcome(outcome: Any) -> OutcomeSpec:
    """Classify *outcome* as binary or continuous.

    Args:
        outcome: A vector, or a table / matrix with a single column,
            of logical or numeric values.

    Returns:
        The resolved :class:`OutcomeSpec`.

    Raises:
        UnsupportedOutcomeType: More than one column, missing values,
            or values that are neither numeric nor logical.
    """
    outcome = _from_polars(outcome)
    name = "outcome"

    if isinstance(outcome, pd.DataFrame):
        if outcome.shape[1] != 1:
            raise UnsupportedOutcomeType(
                f"The outcome table must have a single column, got {outcome.shape[1]}."
            )
        name = str(outcome.columns[0])
        series = outcome.iloc[:, 0]
    elif isinstance(outcome, pd.Series):
        if outcome.name is not None:
            name = str(outcome.name)
        series = outcome
    elif isinstance(outcome, np.ndarray):
        if outcome.ndim == 2 and outcome.shape[1] == 1:
            outcome = outcome[:, 0]
        if outcome.ndim != 1:
            raise UnsupportedOutcomeType(
                f"The outcome must be a vector or a single-column matrix, "
                f"got an array of shape {outcome.shape}."
            )
        series = pd.Series(outcome)
    elif isinstance(outcome, (list, tuple)):
        series = pd.Series(list(outcome))
    else:
        raise UnsupportedOutcomeType(
            "The outcome must be a vector, a single-column table or a "
            f"single-column matrix; got {type(outcome).__name__}."
        )

    n_missing = int(series.isna().sum())
    if n_missing:
        raise UnsupportedOutcomeType(
            f"The outcome contains {n_missing} missing value(s); impute them "
            "before the analysis."
        )

    source_dtype = str(series.dtype)
    series, _ = _coerce_object_values(series)
    if ptypes.is_bool_dtype(series.dtype):
        logger.info("The outcome is logical and transformed to numeric 0/1 (binary).")
        return OutcomeSpec(
            kind=OutcomeKind.BINARY,
            values=series.astype(float).to_numpy(),
            name=name,
            source_dtype=source_dtype,
        )
    if ptypes.is_numeric_dtype(series.dtype) and not ptypes.is_complex_dtype(series.dtype):
        values = series.astype(float).to_numpy()
        if np.isin(values, [0.0, 1.0]).all():
            logger.info("The outcome only contains 0s and 1s; treated as binary.")
            kind = OutcomeKind.BINARY
        else:
            logger.info("The outcome is numeric; treated as continuous.")
            kind = OutcomeKind.CONTINUOUS
        return OutcomeSpec(kind=kind, values=values, name=name, source_dtype=source_dtype)

    raise UnsupportedOutcomeType(
        f"The outcome is neither numeric nor logical (dtype {series.dtype})."
    )


# ------------------------------------------------------------------ #
# Mediators, K, covariates
# ------------------------------------------------------------------ #


def _is_real_numeric(dtype: Any) -> bool:
    return (
        ptypes.is_numeric_dtype(dtype)
        and not ptypes.is_bool_dtype(dtype)
        and not ptypes.is_complex_dtype(dtype)
    )


def validate_mediators(M: Any) -> tuple[np.ndarray, tuple[str, ...]]:
    """Validate the mediator matrix.

    Returns:
        ``(values, ids)``: a float ``(n, p)`` array and the mediator
        identifiers (DataFrame column names, or ``M1 … Mp`` for
        arrays).

    Raises:
        InvalidMediatorMatrix: Not 2-D, not numeric, empty, non-finite
            or duplicated identifiers.
    """
    M = _from_polars(M)
    if isinstance(M, pd.DataFrame):
        bad = [str(c) for c, dtype in M.dtypes.items() if not _is_real_numeric(dtype)]
        if bad:
            raise InvalidMediatorMatrix(
                f"Mediator columns must be numeric; non-numeric columns: {bad[:5]}"
                + (" …" if len(bad) > 5 else "")
            )
        ids = tuple(str(c) for c in M.columns)
        values = M.to_numpy(dtype=float)
    elif isinstance(M, np.ndarray):
        if M.ndim != 2:
            raise InvalidMediatorMatrix(
                f"Mediators must be a 2-D matrix, got an array of shape {M.shape}."
            )
        if not _is_real_numeric(M.dtype):
            raise InvalidMediatorMatrix(
                f"Mediators must be numeric, got dtype {M.dtype}."
            )
        ids = tuple(f"M{j + 1}" for j in range(M.shape[1]))
        values = M.astype(float)
    else:
        raise InvalidMediatorMatrix(
            "Mediators must be a 2-D numeric array or DataFrame, "
            f"got {type(M).__name__}."
        )

    if values.shape[0] == 0 or values.shape[1] == 0:
        raise InvalidMediatorMatrix(f"Mediator matrix is empty (shape {values.shape}).")
    n_bad = int(np.size(values) - np.isfinite(values).sum())
    if n_bad:
        raise InvalidMediatorMatrix(
            f"Mediator matrix contains {n_bad} missing or non-finite value(s); "
            "impute them before the analysis."
        )
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise InvalidMediatorMatrix(f"Duplicated mediator identifiers: {dupes[:5]}")
    return values, ids


def resolve_k(K: Any) -> int:
    """Resolve the number of latent factors to a positive integer.

    Non-integer real values are truncated with a ``UserWarning``.

    Raises:
        MissingLatentFactorCount: If *K* is ``None``.
        InvalidLatentFactorCount: If *K* is not a real number or is
            smaller than 1 after truncation.
    """
    if K is None:
        raise MissingLatentFactorCount(
            "K (number of latent factors) is not provided; it can be chosen "
            "from the eigenvalues of a PCA of the mediator matrix."
        )
    if isinstance(K, (bool, np.bool_)) or not isinstance(K, numbers.Real):
        raise InvalidLatentFactorCount(f"K must be an integer, got {type(K).__name__}.")
    if isinstance(K, numbers.Integral):
        k = int(K)
    else:
        if not np.isfinite(K):
            raise InvalidLatentFactorCount(f"K must be finite, got {K}.")
        k = int(K)
        if k != K:
            warnings.warn(
                f"K={K} is not an integer and has been truncated to {k}.",
                UserWarning,
                stacklevel=4,
            )
    if k < 1:
        raise InvalidLatentFactorCount(f"K must be a positive integer, got {k}.")
    return k


def validate_covariates(
    covar: Any, *, name: str = "covar"
) -> tuple[np.ndarray, tuple[str, ...]]:
    """Validate a table of adjustment factors.

    Raises:
        InvalidCovariates: Not 2-D, not numeric, or missing values.
    """
    covar = _from_polars(covar)
    if isinstance(covar, pd.Series):
        covar = covar.to_frame()
    if isinstance(covar, pd.DataFrame):
        bad = [str(c) for c, dtype in covar.dtypes.items() if not _is_real_numeric(dtype)]
        if bad:
            raise InvalidCovariates(f"'{name}' must be numeric; non-numeric columns: {bad}")
        names = tuple(str(c) for c in covar.columns)
        values = covar.to_numpy(dtype=float)
    elif isinstance(covar, np.ndarray):
        if covar.ndim != 2:
            raise InvalidCovariates(
                f"'{name}' must be a 2-D matrix, got an array of shape {covar.shape}."
            )
        if not _is_real_numeric(covar.dtype):
            raise InvalidCovariates(f"'{name}' must be numeric, got dtype {covar.dtype}.")
        names = tuple(f"{name}_{j + 1}" for j in range(covar.shape[1]))
        values = covar.astype(float)
    else:
        raise InvalidCovariates(
            f"'{name}' must be a DataFrame or a 2-D matrix, got {type(covar).__name__}."
        )

    n_bad = int(np.size(values) - np.isfinite(values).sum())
    if n_bad:
        raise InvalidCovariates(
            f"'{name}' contains {n_bad} missing or non-finite value(s)."
        )
    return values, names


def normalize_inputs(
    exposure: Any,
    outcome: Any,
    M: Any,
    K: Any,
    covar: Any = None,
    suppl_covar: Any = None,
    per_variable: bool = False,
) -> NormalizedInputs:
    """Validate and encode all inputs of an analysis.

    Pure validation and transformation; nothing is fitted here.

    Raises:
        ShapeMismatch: If exposure, outcome, mediators, covariates and
            supplementary covariates disagree on the number of samples.
        InvalidLatentFactorCount: If *K* is not below ``min(n, p)``.
        Hdmax2Error: Any of the classification errors raised by the
            individual validators.
    """
    exposure_spec = classify_exposure(exposure)
    outcome_spec = classify_outcome(outcome)
    mediators, mediator_ids = validate_mediators(M)
    k = resolve_k(K)

    covar_values, covar_names = (None, ())
    if covar is not None:
        covar_values, covar_names = validate_covariates(covar, name="covar")
    suppl_values, suppl_names = (None, ())
    if suppl_covar is not None:
        suppl_values, suppl_names = validate_covariates(suppl_covar, name="suppl_covar")

    n, p = mediators.shape
    rows = {
        "exposure": exposure_spec.n_samples,
        "outcome": outcome_spec.n_samples,
        "M": n,
    }
    if covar_values is not None:
        rows["covar"] = covar_values.shape[0]
    if suppl_values is not None:
        rows["suppl_covar"] = suppl_values.shape[0]
    if len(set(rows.values())) != 1:
        detail = ", ".join(f"{key}={value}" for key, value in rows.items())
        raise ShapeMismatch(f"Inputs disagree on the number of samples: {detail}.")

    if k >= min(n, p):
        raise InvalidLatentFactorCount(
            f"K={k} must be smaller than min(n, p) = {min(n, p)}."
        )

    logger.debug(
        "Normalised inputs: n=%d, p=%d, d=%d, K=%d, covariates=%d, supplementary=%d",
        n,
        p,
        exposure_spec.design.shape[1],
        k,
        len(covar_names),
        len(suppl_names),
    )
    return NormalizedInputs(
        mediators=mediators,
        mediator_ids=mediator_ids,
        exposure=exposure_spec,
        outcome=outcome_spec,
        K=k,
        covar=covar_values,
        covar_names=covar_names,
        suppl_covar=suppl_values,
        suppl_covar_names=suppl_names,
        per_variable=bool(per_variable),
    )
