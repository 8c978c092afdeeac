"""Latent factor mixed model (LFMM2) fit and association test.

This module is the regression primitive both association stages are
built on.  It exposes exactly two operations:

* :func:`fit_lfmm` estimates ``K`` latent factors ``U`` jointly with
  the exposure effects, using the ridge estimator of Caye et al.
  (2019).  The returned :class:`LatentFactorModel` is an immutable
  value: it is fitted once and then handed to every subsequent test.
* :func:`lfmm_test` regresses every mediator on
  ``[1, X, covariates, U]`` in one vectorised OLS solve and converts
  the coefficients into test statistics.

Aggregation modes
~~~~~~~~~~~~~~~~~
``full=False`` returns one statistic per column of ``X`` and mediator
(a ``(d, p)`` table).  ``full=True`` collapses the whole ``X`` block
into a single omnibus statistic per mediator by a partial F test of
the full design against the reduced design ``[1, covariates, U]``:

    F = ((RSS_reduced − RSS_full) / d) / (RSS_full / df_resid)

A single call cannot produce both shapes, so callers that need both
invoke :func:`lfmm_test` twice against the same fitted model.

Genomic control
~~~~~~~~~~~~~~~
Unmodelled confounding inflates test statistics across the board.
Genomic control (Devlin & Roeder, 1999) estimates the inflation from
the bulk of the statistic distribution, where null mediators dominate,
and rescales before computing p-values:

* per column:  ``gif_j = median(z_j²) / χ²₁⁻¹(0.5)``,
  ``p = P(χ²₁ > z²/gif_j)``
* omnibus:     ``gif = median(F) / F⁻¹_{d,df}(0.5)``,
  ``p = P(F_{d,df} > F/gif)``

References:
    Caye, K., Jumentier, B., Lepeule, J. & François, O. (2019).
    LFMM 2: fast and accurate inference of gene-environment
    associations in genome-wide studies.  *Molecular Biology and
    Evolution*, 36(4), 852–860.

    Devlin, B. & Roeder, K. (1999).  Genomic control for association
    studies.  *Biometrics*, 55(4), 997–1004.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import statsmodels.api as sm
from scipy import stats

from ._backends import BackendProtocol, resolve_backend
from ._errors import InvalidLatentFactorCount, RegressionFitFailure, ShapeMismatch

logger = logging.getLogger(__name__)

DEFAULT_RIDGE_LAMBDA: float = 1e-5
"""Ridge penalty on the exposure effects during the latent factor fit."""

OMNIBUS_ROW: str = "omnibus"
"""Row label of the single statistic row produced with ``full=True``."""


# ------------------------------------------------------------------ #
# Result containers
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class LatentFactorModel:
    """Fitted latent factor estimate shared by both association stages."""

    U: np.ndarray
    """Latent factor scores ``(n, K)``."""

    V: np.ndarray
    """Mediator loadings on the latent factors ``(p, K)``."""

    B: np.ndarray
    """Ridge estimates of the exposure effects ``(p, d)``."""

    K: int
    """Number of latent factors."""

    ridge_lambda: float
    """Ridge penalty used for the fit."""

    backend: str
    """Name of the compute backend that produced the fit."""

    def __post_init__(self) -> None:
        # Both stages and the returned result share these arrays.
        for array in (self.U, self.V, self.B):
            array.flags.writeable = False

    @property
    def n_samples(self) -> int:
        return int(self.U.shape[0])


@dataclass(frozen=True)
class LfmmTestResult:
    """Statistic table returned by :func:`lfmm_test`."""

    pvalues: np.ndarray
    """P-values ``(rows, p)``; one row per column of ``X``, or a
    single ``"omnibus"`` row when ``full=True``."""

    zscores: np.ndarray
    """Per-column t statistics ``(d, p)`` from the full model."""

    fscores: np.ndarray
    """Calibrated statistics ``(rows, p)``: ``z²/gif`` per column, or
    the omnibus ``F/gif``."""

    adj_r_squared: np.ndarray
    """Adjusted R² of the full model, one per mediator ``(p,)``."""

    gif: np.ndarray
    """Genomic inflation factor per row ``(rows,)``."""

    row_labels: tuple[str, ...]
    """Labels of the rows of :attr:`pvalues` and :attr:`fscores`."""

    column_labels: tuple[str, ...]
    """Labels of the columns of ``X`` (rows of :attr:`zscores`)."""

    full: bool
    """Whether the omnibus aggregation was used."""

    df_resid: int
    """Residual degrees of freedom of the full model."""

    def row(self, label: str) -> int:
        """Index of the statistic row labelled *label*.

        Raises:
            KeyError: If no row carries *label*.
        """
        try:
            return self.row_labels.index(label)
        except ValueError:
            raise KeyError(
                f"No statistic row labelled {label!r}; available rows: "
                f"{list(self.row_labels)}"
            ) from None

    def column(self, label: str) -> int:
        """Index of the ``X`` column labelled *label* in :attr:`zscores`."""
        try:
            return self.column_labels.index(label)
        except ValueError:
            raise KeyError(
                f"No design column labelled {label!r}; available columns: "
                f"{list(self.column_labels)}"
            ) from None


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _as_2d(values: np.ndarray | Sequence[float], name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2:
        raise ShapeMismatch(f"'{name}' must be 1-D or 2-D, got {arr.ndim} dimensions.")
    return arr


def _drop_constant_columns(covar: np.ndarray | None) -> np.ndarray | None:
    """Remove covariate columns that are constant across samples.

    A constant column is collinear with the intercept and carries no
    adjustment information.  Returns ``None`` when nothing remains.
    """
    if covar is None:
        return None
    keep = np.ptp(covar, axis=0) > 0
    n_dropped = int(covar.shape[1] - keep.sum())
    if n_dropped:
        logger.info(
            "Dropping %d constant covariate column(s) from the design", n_dropped
        )
    covar = covar[:, keep]
    return covar if covar.shape[1] else None


def _ols(
    backend: BackendProtocol, design: np.ndarray, M: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray, int]:
    try:
        return backend.ols_many(design, M)
    except np.linalg.LinAlgError as exc:
        raise RegressionFitFailure(
            f"Least-squares solve failed for a design of shape {design.shape}: {exc}"
        ) from exc


# ------------------------------------------------------------------ #
# Public API
# ------------------------------------------------------------------ #


def fit_lfmm(
    M: np.ndarray,
    X: np.ndarray,
    K: int,
    *,
    ridge_lambda: float = DEFAULT_RIDGE_LAMBDA,
    backend: str | None = None,
) -> LatentFactorModel:
    """Fit ``K`` latent factors to the mediator matrix.

    Columns of both *M* and *X* are centred before the decomposition,
    so the latent factors do not absorb mediator means and the fitted
    factors depend on the exposure design only through its column span.

    Args:
        M: Mediator matrix ``(n, p)``.
        X: Exposure design ``(n, d)`` (1-D input is treated as one
            column).
        K: Number of latent factors, ``1 <= K < min(n, p)``.
        ridge_lambda: Ridge penalty on the exposure effects.
        backend: ``"numpy"``, ``"jax"`` or ``None`` for the configured
            default.

    Returns:
        The fitted :class:`LatentFactorModel`.

    Raises:
        ShapeMismatch: If *M* and *X* disagree on the number of rows.
        InvalidLatentFactorCount: If *K* is out of range.
        RegressionFitFailure: If the decomposition fails or produces
            non-finite values.
    """
    M = _as_2d(M, "M")
    X = _as_2d(X, "X")
    n, p = M.shape
    if X.shape[0] != n:
        raise ShapeMismatch(
            f"Exposure design has {X.shape[0]} rows but the mediator matrix has {n}."
        )
    if not 1 <= K < min(n, p):
        raise InvalidLatentFactorCount(
            f"K must satisfy 1 <= K < min(n, p) = {min(n, p)}, got K={K}."
        )
    if ridge_lambda <= 0:
        raise ValueError(f"ridge_lambda must be positive, got {ridge_lambda}.")

    _backend = resolve_backend(backend)
    logger.debug(
        "Fitting LFMM with K=%d on M%s, X%s (backend=%s)",
        K,
        M.shape,
        X.shape,
        _backend.name,
    )

    Y_c = M - M.mean(axis=0)
    X_c = X - X.mean(axis=0)
    try:
        U, V, B = _backend.lfmm_ridge(Y_c, X_c, K, ridge_lambda)
    except np.linalg.LinAlgError as exc:
        raise RegressionFitFailure(f"Latent factor decomposition failed: {exc}") from exc

    if not (np.all(np.isfinite(U)) and np.all(np.isfinite(V))):
        raise RegressionFitFailure(
            "Latent factor decomposition produced non-finite factors; "
            "check the exposure design and mediator scaling."
        )

    return LatentFactorModel(
        U=U, V=V, B=B, K=K, ridge_lambda=ridge_lambda, backend=_backend.name
    )


def lfmm_test(
    model: LatentFactorModel,
    M: np.ndarray,
    X: np.ndarray,
    covar: np.ndarray | None = None,
    *,
    full: bool = False,
    genomic_control: bool = True,
    labels: Sequence[str] | None = None,
    backend: str | None = None,
) -> LfmmTestResult:
    """Test association of every mediator with *X* given the latent factors.

    The latent factors are taken from *model* unchanged; this function
    never refits them, so repeated calls against the same model and
    inputs are deterministic.

    Args:
        model: Fitted latent factor model.
        M: Mediator matrix ``(n, p)``.
        X: Explanatory design ``(n, d)``.  It need not be the design
            the model was fitted on (Stage 2 appends the outcome).
        covar: Optional adjustment factors ``(n, c)``.  Constant
            columns are dropped.
        full: ``True`` for a single omnibus p-value per mediator,
            ``False`` for one p-value per column of *X*.
        genomic_control: Rescale statistics by the genomic inflation
            factor before computing p-values.
        labels: Names of the columns of *X*; defaults to
            ``X1 … Xd``.
        backend: Compute backend override.

    Returns:
        An :class:`LfmmTestResult`.

    Raises:
        ShapeMismatch: If row counts disagree with the fitted model.
        RegressionFitFailure: If the design is rank deficient or
            leaves no residual degrees of freedom.
    """
    M = _as_2d(M, "M")
    X = _as_2d(X, "X")
    n, p = M.shape
    d = X.shape[1]

    if model.n_samples != n or X.shape[0] != n:
        raise ShapeMismatch(
            f"Latent factors have {model.n_samples} rows, mediators {n} rows and "
            f"the explanatory design {X.shape[0]} rows; all must match."
        )
    if labels is None:
        labels = [f"X{j + 1}" for j in range(d)]
    labels = tuple(str(label) for label in labels)
    if len(labels) != d:
        raise ShapeMismatch(f"Got {len(labels)} labels for {d} design columns.")

    if covar is not None:
        covar = _as_2d(covar, "covar")
        if covar.shape[0] != n:
            raise ShapeMismatch(
                f"Covariates have {covar.shape[0]} rows but mediators have {n}."
            )
    covar = _drop_constant_columns(covar)

    blocks = [X] + ([covar] if covar is not None else []) + [model.U]
    design = sm.add_constant(np.column_stack(blocks), has_constant="add")
    q = design.shape[1]
    df_resid = n - q
    if df_resid <= 0:
        raise RegressionFitFailure(
            f"Design with {q} columns leaves no residual degrees of freedom "
            f"for n={n} samples; reduce K or the number of covariates."
        )

    _backend = resolve_backend(backend)
    coef, se, rss, rank = _ols(_backend, design, M)
    if rank < q:
        n_covar = 0 if covar is None else covar.shape[1]
        raise RegressionFitFailure(
            f"Design [intercept, explanatory ({d}), covariates ({n_covar}), "
            f"latent factors ({model.K})] is rank deficient: rank {rank} < {q} "
            f"columns.  Check for collinear covariates or exposure columns."
        )

    with np.errstate(divide="ignore", invalid="ignore"):
        zscores = coef[1 : d + 1] / se[1 : d + 1]
        tss = np.sum((M - M.mean(axis=0)) ** 2, axis=0)
        adj_r_squared = 1.0 - (rss / df_resid) / (tss / (n - 1))

    if full:
        reduced = np.delete(design, np.s_[1 : d + 1], axis=1)
        _, _, rss_reduced, _ = _ols(_backend, reduced, M)
        with np.errstate(divide="ignore", invalid="ignore"):
            fstat = ((rss_reduced - rss) / d) / (rss / df_resid)
        if genomic_control:
            gif = np.array([np.nanmedian(fstat) / stats.f.ppf(0.5, d, df_resid)])
            fstat = fstat / gif[0]
        else:
            gif = np.ones(1)
        pvalues = stats.f.sf(fstat, d, df_resid)[None, :]
        fscores = fstat[None, :]
        row_labels: tuple[str, ...] = (OMNIBUS_ROW,)
    else:
        z2 = zscores**2
        if genomic_control:
            gif = np.nanmedian(z2, axis=1) / stats.chi2.ppf(0.5, df=1)
            fscores = z2 / gif[:, None]
            pvalues = stats.chi2.sf(fscores, df=1)
        else:
            gif = np.ones(d)
            fscores = z2
            pvalues = 2.0 * stats.t.sf(np.abs(zscores), df_resid)
        row_labels = labels

    logger.debug(
        "LFMM test (full=%s, genomic_control=%s): gif=%s",
        full,
        genomic_control,
        np.round(gif, 4).tolist(),
    )

    return LfmmTestResult(
        pvalues=pvalues,
        zscores=zscores,
        fscores=fscores,
        adj_r_squared=adj_r_squared,
        gif=gif,
        row_labels=row_labels,
        column_labels=labels,
        full=full,
        df_resid=df_resid,
    )
