"""Formatted ASCII table display utilities for association results.

These tables mirror the statsmodels summary style: a top panel with
the analysis metadata (exposure and outcome types, sample and mediator
counts, latent factors, genomic inflation) and a bottom panel listing
the mediators with their Stage-1, Stage-2 and max2 p-values side by
side.

Reading the three p-values together shows which path drives a
mediator's max2 p-value: the max-squared rule is only as small as the
weaker of the exposure → mediator and mediator → outcome
associations.
"""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from ._results import AssociationResult, Step1Result

_THRESHOLDS = (0.05, 0.01, 0.001)


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _fmt_diag_val(val: object) -> str:
    """Format a diagnostic value for display.

    Converts ``nan`` floats and ``None`` to ``'N/A'``.  Leaves
    strings and other values as-is via ``str()``.
    """
    if val is None:
        return "N/A"
    if isinstance(val, float) and (val != val):  # nan check
        return "N/A"
    return str(val)


def _fmt_pvalue(p: float) -> str:
    """Format a p-value in fixed or scientific notation with a marker."""
    if p != p:
        return "N/A"
    if p < 1e-4:
        text = f"{p:.2e}"
    else:
        text = f"{p:.4f}"
    return f"{text} {_significance_marker(p)}"


def _significance_marker(p: float) -> str:
    """Return the ``(***)``/``(**)``/``(*)``/``(ns)`` marker for *p*."""
    one, two, three = _THRESHOLDS
    if p < three:
        return "(***)"
    if p < two:
        return "(**)"
    if p < one:
        return "(*)"
    return "(ns)"


def _print_title(title: str) -> None:
    print("=" * 80)
    for line in textwrap.wrap(title, width=78):
        print(f"{line:^80}")
    print("=" * 80)


def _print_footer() -> None:
    one, two, three = _THRESHOLDS
    print("=" * 80)
    print(
        f"(***) p < {three}   "
        f"(**) p < {two}   "
        f"(*) p < {one}   "
        f"(ns) p >= {one}"
    )
    print()


def _fmt_gif(gif: np.ndarray) -> str:
    values = np.atleast_1d(np.asarray(gif, dtype=float))
    if values.size == 0:
        return "N/A"
    if values.size == 1:
        return _fmt_diag_val(round(float(values[0]), 4))
    return f"{np.nanmin(values):.3f}-{np.nanmax(values):.3f}"


def print_step1_summary(
    result: Step1Result,
    *,
    top: int = 10,
    title: str = "High-Dimensional Mediation: Association Study",
) -> None:
    """Print the analysis metadata and the top mediators by max2 p-value.

    Args:
        result: Record returned by :func:`~hdmax2.run_as`.
        top: Number of mediators to list.
        title: Title for the output table.
    """
    inputs = result.inputs
    exposure = inputs.exposure
    outcome = inputs.outcome
    model = result.model

    _print_title(title)

    col1 = 40
    col2 = 38
    expo_types = ", ".join(c.kind.value for c in exposure.columns)
    rows = [
        ("Exposure:", _truncate(expo_types, col1 - 17),
         "No. Observations:", str(exposure.n_samples)),
        ("Outcome:", outcome.kind.value,
         "No. Mediators:", str(len(result.max2_pvalues))),
        ("Stage-1 test:", result.as_1.mode,
         "Latent factors:", str(model.K)),
        ("Design cols:", str(len(exposure.design_columns)),
         "Backend:", model.backend),
        ("GIF (Stage 1):", _fmt_gif(result.as_1.gif),
         "GIF (Stage 2):", _fmt_gif(result.as_2.gif)),
    ]
    for ll, lv, rl, rv in rows:
        print(f"{ll:<16}{lv:<{col1 - 16}}{rl:>{col2 - 11}} {rv:>10}")

    print("-" * 80)

    # Mediator (fc=26) | Stage 1 (18) | Stage 2 (18) | Max2 (18) = 80
    fc = 26
    print(f"{'Mediator':<{fc}}{'P (Stage 1)':>18}{'P (Stage 2)':>18}{'P (Max2)':>18}")
    print("-" * 80)

    top_ids = result.top_mediators(top).index
    p1 = result.as_1.pvalues
    p2 = result.as_2.pvalues
    p_max2 = result.max2_pvalues
    for med in top_ids:
        print(
            f"{_truncate(str(med), fc):<{fc}}"
            f"{_fmt_pvalue(float(p1[med])):>18}"
            f"{_fmt_pvalue(float(p2[med])):>18}"
            f"{_fmt_pvalue(float(p_max2[med])):>18}"
        )

    n_nan = int(p_max2.isna().sum())
    if n_nan:
        print("-" * 80)
        print("Notes")
        print("-" * 80)
        print(
            textwrap.fill(
                f"  [!] {n_nan} mediator(s) have an undefined max2 p-value.",
                width=80,
                subsequent_indent=" " * 6,
            )
        )

    _print_footer()


def print_association_table(
    association: AssociationResult,
    *,
    top: int = 10,
    title: str = "Association Study",
) -> None:
    """Print the smallest p-values of one association study.

    Args:
        association: ``result.as_1`` or ``result.as_2``.
        top: Number of mediators to list.
        title: Title for the output table.
    """
    _print_title(title)

    col1 = 40
    col2 = 38
    print(
        f"{'Test:':<16}{association.mode:<{col1 - 16}}"
        f"{'No. Mediators:':>{col2 - 11}} {len(association.pvalues):>10}"
    )
    print(
        f"{'GIF:':<16}{_fmt_gif(association.gif):<{col1 - 16}}"
        f"{'Median adj. R2:':>{col2 - 11}} "
        f"{_fmt_diag_val(round(float(np.nanmedian(association.adj_r_squared)), 4)):>10}"
    )
    print("-" * 80)

    fc = 44
    print(f"{'Mediator':<{fc}}{'Adj. R2':>18}{'P-value':>18}")
    print("-" * 80)

    position = {med: i for i, med in enumerate(association.pvalues.index)}
    for med, p in association.pvalues.sort_values(na_position="last").head(top).items():
        r2 = float(association.adj_r_squared[position[med]])
        print(
            f"{_truncate(str(med), fc):<{fc}}"
            f"{r2:>18.4f}"
            f"{_fmt_pvalue(float(p)):>18}"
        )

    _print_footer()
