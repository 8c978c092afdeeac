"""High-dimensional mediation: the association study (step 1).

:func:`run_as` evaluates the association between an exposure ``X``,
candidate mediators ``M`` and an outcome ``Y`` while estimating ``K``
unobserved latent factors with a latent factor mixed model (LFMM2):

1. **Normalise** — classify exposure and outcome, validate the
   mediator matrix, ``K`` and the covariates
   (:mod:`hdmax2.normalize`).
2. **Stage 1** — fit the latent factors once and test
   ``M ~ X (+ covariates)``.
3. **Stage 2** — reusing those latent factors, test
   ``M ~ X + Y (+ covariates + supplementary covariates)`` and keep the
   outcome row.
4. **Max-squared test** — ``p = max(p₁, p₂)²`` per mediator rejects
   the null that either the effect of X on M or the effect of M on Y
   is zero.

The result is a frozen :class:`~hdmax2.Step1Result`; its
``max2_pvalues`` drive mediator selection, and the full record feeds
downstream effect estimation.

Reference:
    Jumentier, B., Barrot, C.-C., Estavoyer, M., Tost, J., Heude, B.,
    François, O. & Lepeule, J. (2023).  High-dimensional mediation
    analysis: a new method applied to maternal smoking, placental DNA
    methylation, and birth outcomes.  *Environmental Health
    Perspectives*, 131(4), 047013.
"""

from __future__ import annotations

import logging
from typing import Any

from ._backends import resolve_backend
from ._results import Step1Inputs, Step1Result
from .lfmm import DEFAULT_RIDGE_LAMBDA
from .normalize import normalize_inputs
from .stages import combine_max2, combine_max2_each, run_stage1, run_stage2

logger = logging.getLogger(__name__)


def run_as(
    exposure: Any,
    outcome: Any,
    M: Any,
    K: Any,
    covar: Any = None,
    suppl_covar: Any = None,
    each_var_pval: bool = False,
    *,
    ridge_lambda: float = DEFAULT_RIDGE_LAMBDA,
    backend: str | None = None,
) -> Step1Result:
    """Run the two association studies and the max-squared test.

    Args:
        exposure: Exposure variable(s), ``n`` rows.  A vector
            (numeric, logical or string), a ``pd.Categorical``, or a
            table with one column per variable.  String and categorical
            variables are dummy coded against their first level.
        outcome: Outcome, ``n`` values; binary (logical or 0/1) or
            continuous.  A vector or a single-column table.
        M: Mediator matrix ``(n, p)``, numeric with no missing values.
            DataFrame column names identify the mediators.
        K: Number of latent factors.  It can be chosen from the
            eigenvalues of a PCA of ``M``.
        covar: Optional numeric adjustment factors ``(n, c)``.
        suppl_covar: Optional supplementary adjustment factors used in
            the second association study only, in addition to *covar*.
        each_var_pval: Also compute p-values (and max2 p-values) for
            each exposure design column.
        ridge_lambda: Ridge penalty of the latent factor fit.
        backend: ``"numpy"`` or ``"jax"``; defaults to the configured
            backend (see :func:`~hdmax2.set_backend`).

    Returns:
        A :class:`~hdmax2.Step1Result`.

    Raises:
        InvalidExposureType, DegenerateExposure, UnsupportedOutcomeType,
        InvalidMediatorMatrix, MissingLatentFactorCount,
        InvalidLatentFactorCount, InvalidCovariates, ShapeMismatch:
            On invalid inputs, before any regression is run.
        RegressionFitFailure: If a regression cannot be fitted.

    Examples:
        >>> res = run_as(exposure=x, outcome=y, M=M, K=5)  # doctest: +SKIP
        >>> res.top_mediators(10)  # doctest: +SKIP
    """
    inputs = normalize_inputs(
        exposure,
        outcome,
        M,
        K,
        covar=covar,
        suppl_covar=suppl_covar,
        per_variable=each_var_pval,
    )
    # Resolve once so both stages run on the same backend.
    backend_name = resolve_backend(backend).name

    stage1 = run_stage1(
        inputs.mediators,
        inputs.exposure,
        inputs.K,
        inputs.covar,
        per_variable=inputs.per_variable,
        mediator_ids=inputs.mediator_ids,
        ridge_lambda=ridge_lambda,
        backend=backend_name,
    )

    logger.info("Running second regression.")
    as_2 = run_stage2(
        stage1.model,
        inputs.mediators,
        inputs.exposure,
        inputs.outcome,
        inputs.covar,
        inputs.suppl_covar,
        mediator_ids=inputs.mediator_ids,
        backend=backend_name,
    )

    logger.info("Running max-squared test.")
    as_1 = stage1.association
    max2 = combine_max2(as_1.pvalues, as_2.pvalues)
    max2_each = None
    if inputs.per_variable and as_1.each_var_pvalues is not None:
        max2_each = combine_max2_each(as_1.each_var_pvalues, as_2.pvalues)

    step_inputs = Step1Inputs(
        exposure_input=exposure,
        outcome_input=outcome,
        expo_var_types=inputs.exposure.var_types,
        expo_var_ids=inputs.exposure.var_ids,
        outcome_var_type=inputs.outcome.kind.value,
        covar=covar,
        suppl_covar=suppl_covar,
        exposure=inputs.exposure,
        outcome=inputs.outcome,
    )
    return Step1Result(
        as_1=as_1,
        as_2=as_2,
        max2_pvalues=max2,
        max2_each_var_pvalues=max2_each,
        inputs=step_inputs,
        model=stage1.model,
    )
