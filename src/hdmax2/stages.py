"""The two association stages and the max-squared combination.

Stage 1 — mediators ~ exposure (+ covariates)
    Fits the latent factors once and tests every mediator against the
    exposure design.  Categorical and multivariate exposures are tested
    globally with one omnibus p-value per mediator; on request a second
    test against the *same* fitted model gives one p-value per design
    column.

Stage 2 — mediators ~ exposure + outcome (+ covariates)
    Reuses the Stage-1 latent factors unchanged and adds the outcome
    as a regressor.  Only the statistics of the outcome column are
    kept; they are located by label, never by position.  Because the
    outcome enters as a regressor, the same model serves binary and
    continuous outcomes.

Max-squared test
    Mediation through a mediator needs both the exposure → mediator
    and the mediator → outcome effects to be non-null.  The larger of
    the two p-values tests the intersection null; squaring it gives a
    valid p-value when either path effect is zero:

        p_max2 = max(p₁, p₂)²
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from ._errors import ShapeMismatch
from ._results import AssociationResult
from .lfmm import DEFAULT_RIDGE_LAMBDA, LatentFactorModel, fit_lfmm, lfmm_test
from .normalize import ExposureSpec, OutcomeSpec

logger = logging.getLogger(__name__)

OUTCOME_ROW = "outcome"
"""Label of the outcome column in the Stage-2 explanatory design."""


@dataclass(frozen=True)
class Stage1Output:
    """Fitted latent factors plus the Stage-1 association result."""

    model: LatentFactorModel
    association: AssociationResult


def _mediator_index(M: np.ndarray, mediator_ids: Sequence[str] | None) -> pd.Index:
    if mediator_ids is None:
        return pd.Index([f"M{j + 1}" for j in range(M.shape[1])])
    if len(mediator_ids) != M.shape[1]:
        raise ShapeMismatch(
            f"Got {len(mediator_ids)} mediator identifiers for {M.shape[1]} mediators."
        )
    return pd.Index(list(mediator_ids))


def _stack_covariates(
    covar: np.ndarray | None, suppl_covar: np.ndarray | None
) -> np.ndarray | None:
    """Stage-2 covariates: *covar* extended by *suppl_covar*."""
    if suppl_covar is None:
        return covar
    if covar is None:
        return suppl_covar
    if covar.shape[0] != suppl_covar.shape[0]:
        raise ShapeMismatch(
            f"Supplementary covariates have {suppl_covar.shape[0]} rows but "
            f"covariates have {covar.shape[0]}."
        )
    return np.column_stack([covar, suppl_covar])


def run_stage1(
    M: np.ndarray,
    exposure: ExposureSpec,
    K: int,
    covar: np.ndarray | None = None,
    *,
    per_variable: bool = False,
    mediator_ids: Sequence[str] | None = None,
    ridge_lambda: float = DEFAULT_RIDGE_LAMBDA,
    backend: str | None = None,
) -> Stage1Output:
    """Fit the latent factors and test mediators against the exposure.

    Args:
        M: Mediator matrix ``(n, p)``.
        exposure: Classified exposure.
        K: Number of latent factors.
        covar: Optional adjustment factors ``(n, c)``.
        per_variable: Also compute one p-value per design column.
        mediator_ids: Identifiers used to index the p-values.
        ridge_lambda: Ridge penalty of the latent factor fit.
        backend: Compute backend override.

    Returns:
        The fitted model and the Stage-1 :class:`AssociationResult`.

    Raises:
        RegressionFitFailure: If the fit or the test fails.
    """
    index = _mediator_index(M, mediator_ids)
    X = exposure.values
    labels = exposure.design_columns

    if exposure.is_multivariate:
        logger.info("Running first regression with multivariate exposure variables.")
    else:
        logger.info("Running first regression with univariate exposure variable.")

    model = fit_lfmm(M, X, K, ridge_lambda=ridge_lambda, backend=backend)
    full = exposure.omnibus
    res = lfmm_test(model, M, X, covar, full=full, labels=labels, backend=backend)

    each_var = None
    if per_variable:
        logger.info("Generating detailed pvalues for each explanatory variable.")
        res_each = lfmm_test(model, M, X, covar, full=False, labels=labels, backend=backend)
        each_var = pd.DataFrame(
            res_each.pvalues.T, index=index, columns=list(res_each.row_labels)
        )

    association = AssociationResult(
        pvalues=pd.Series(res.pvalues[0], index=index, name="pval"),
        zscores=res.zscores,
        fscores=res.fscores,
        adj_r_squared=res.adj_r_squared,
        gif=res.gif,
        mode="omnibus" if full else "per_column",
        U=model.U,
        V=model.V,
        each_var_pvalues=each_var,
    )
    return Stage1Output(model=model, association=association)


def run_stage2(
    model: LatentFactorModel,
    M: np.ndarray,
    exposure: ExposureSpec,
    outcome: OutcomeSpec,
    covar: np.ndarray | None = None,
    suppl_covar: np.ndarray | None = None,
    *,
    mediator_ids: Sequence[str] | None = None,
    backend: str | None = None,
) -> AssociationResult:
    """Test mediators against exposure and outcome with Stage-1 factors.

    Args:
        model: The Stage-1 latent factor fit; it is not refitted.
        M: Mediator matrix ``(n, p)``.
        exposure: Classified exposure.
        outcome: Classified outcome.
        covar: Stage-1 adjustment factors ``(n, c)``.
        suppl_covar: Additional Stage-2 adjustment factors, appended
            to *covar*.
        mediator_ids: Identifiers used to index the p-values.
        backend: Compute backend override.

    Returns:
        The :class:`AssociationResult` of the outcome column.
    """
    index = _mediator_index(M, mediator_ids)
    env = np.column_stack([exposure.values, outcome.values])
    labels = (*exposure.design_columns, OUTCOME_ROW)
    covars = _stack_covariates(covar, suppl_covar)

    res = lfmm_test(model, M, env, covars, full=False, labels=labels, backend=backend)
    row = res.row(OUTCOME_ROW)
    col = res.column(OUTCOME_ROW)

    return AssociationResult(
        pvalues=pd.Series(res.pvalues[row], index=index, name="pval"),
        zscores=res.zscores[col : col + 1],
        fscores=res.fscores[row : row + 1],
        adj_r_squared=res.adj_r_squared,
        gif=res.gif[row : row + 1],
        mode="per_column",
    )


def combine_max2(stage1_p: pd.Series, stage2_p: pd.Series) -> pd.Series:
    """Combine two p-value series with the max-squared rule.

    NaN in either input gives NaN for that mediator.

    Raises:
        ShapeMismatch: If the two series are not indexed by the same
            mediators in the same order.
    """
    if not stage1_p.index.equals(stage2_p.index):
        raise ShapeMismatch(
            "Stage-1 and Stage-2 p-values are not indexed by the same mediators "
            f"({len(stage1_p)} vs {len(stage2_p)} entries)."
        )
    values = np.maximum(stage1_p.to_numpy(dtype=float), stage2_p.to_numpy(dtype=float))
    return pd.Series(values**2, index=stage1_p.index, name="max2_pval")


def combine_max2_each(
    each_var_pvalues: pd.DataFrame, stage2_p: pd.Series
) -> dict[str, pd.Series]:
    """Apply :func:`combine_max2` to every per-variable Stage-1 column."""
    return {
        str(column): combine_max2(each_var_pvalues[column], stage2_p)
        for column in each_var_pvalues.columns
    }
