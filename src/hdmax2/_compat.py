"""Optional Polars interop at the analysis boundary.

Exposure, outcome, mediators and covariates may be passed as Polars
objects.  :func:`_from_polars` turns them into their pandas
counterparts before classification, so the normaliser only ever
inspects pandas / NumPy values.  :func:`_polars_to_python` is the
reverse direction used by result serialisation: the raw inputs kept
on a result may still be Polars objects.

Polars is **not** a required dependency.  Without it both helpers
pass every object through untouched.
"""

from __future__ import annotations

from typing import Any

# Runtime detection of the optional Polars dependency.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False

_NOT_POLARS = object()


def _from_polars(obj: Any) -> Any:
    """Return the pandas equivalent of a Polars object, else *obj* unchanged.

    ``LazyFrame`` inputs are collected first.  NumPy arrays, lists and
    pandas objects are returned as they are.
    """
    if not _HAS_POLARS:
        return obj
    if isinstance(obj, pl.LazyFrame):
        obj = obj.collect()
    if isinstance(obj, (pl.DataFrame, pl.Series)):
        return obj.to_pandas()
    return obj


def _polars_to_python(obj: Any) -> Any:
    """Convert a Polars object to native Python containers.

    A ``DataFrame`` (or collected ``LazyFrame``) becomes a
    column-oriented ``dict`` of lists and a ``Series`` becomes a list.
    Returns the ``_NOT_POLARS`` sentinel for anything else.
    """
    if not _HAS_POLARS:
        return _NOT_POLARS
    if isinstance(obj, pl.LazyFrame):
        obj = obj.collect()
    if isinstance(obj, pl.DataFrame):
        return obj.to_dict(as_series=False)
    if isinstance(obj, pl.Series):
        return obj.to_list()
    return _NOT_POLARS
