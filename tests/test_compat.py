"""Tests for Polars input compatibility."""

import json

import numpy as np
import pandas as pd
import pytest

from hdmax2 import run_as
from hdmax2._compat import _NOT_POLARS, _from_polars, _polars_to_python

# Import polars; skip all tests in this module if not installed.
pl = pytest.importorskip("polars")


class TestFromPolars:
    """Tests for the _from_polars converter."""

    def test_series_converted(self):
        result = _from_polars(pl.Series("x", [1.0, 2.0]))
        assert isinstance(result, pd.Series)
        assert result.tolist() == [1.0, 2.0]

    def test_dataframe_converted(self):
        result = _from_polars(pl.DataFrame({"a": [1, 2, 3]}))
        assert isinstance(result, pd.DataFrame)
        assert list(result.columns) == ["a"]
        assert result["a"].tolist() == [1, 2, 3]

    def test_lazyframe_collected_and_converted(self):
        lf = pl.DataFrame({"a": [1, 2, 3]}).lazy()
        result = _from_polars(lf)
        assert isinstance(result, pd.DataFrame)
        assert result["a"].tolist() == [1, 2, 3]

    def test_pandas_passthrough(self):
        df = pd.DataFrame({"a": [1, 2, 3]})
        assert _from_polars(df) is df

    def test_other_objects_pass_through(self):
        arr = np.arange(3)
        assert _from_polars(arr) is arr


class TestPolarsToPython:
    """Tests for the _polars_to_python serialisation helper."""

    def test_series_to_list(self):
        assert _polars_to_python(pl.Series("x", [1.5, 2.5])) == [1.5, 2.5]

    def test_dataframe_to_column_dict(self):
        df = pl.DataFrame({"a": [1, 2], "b": ["u", "v"]})
        assert _polars_to_python(df) == {"a": [1, 2], "b": ["u", "v"]}

    def test_lazyframe_collected(self):
        lf = pl.DataFrame({"a": [1, 2]}).lazy()
        assert _polars_to_python(lf) == {"a": [1, 2]}

    def test_non_polars_returns_sentinel(self):
        assert _polars_to_python(np.arange(3)) is _NOT_POLARS
        assert _polars_to_python(pd.Series([1, 2])) is _NOT_POLARS


class TestPolarsEndToEnd:
    """Polars inputs give the same analysis as their pandas equivalents."""

    @staticmethod
    def _make_data(n=60, p=40, seed=42):
        rng = np.random.default_rng(seed)
        x = rng.standard_normal(n)
        M = rng.standard_normal((n, p)) + 0.8 * x[:, None]
        y = M[:, 0] + rng.standard_normal(n)
        M_df = pd.DataFrame(M, columns=[f"cg{j:03d}" for j in range(p)])
        return x, y, M_df

    def test_polars_matches_pandas(self):
        x, y, M_df = self._make_data()
        res_pd = run_as(pd.Series(x, name="x"), pd.Series(y, name="y"), M_df, K=2)
        res_pl = run_as(
            pl.Series("x", x),
            pl.DataFrame({"y": y}),
            pl.from_pandas(M_df),
            K=2,
        )
        assert list(res_pl.max2_pvalues.index) == list(M_df.columns)
        np.testing.assert_allclose(
            res_pl.max2_pvalues.to_numpy(), res_pd.max2_pvalues.to_numpy()
        )

    def test_to_dict_is_json_serialisable(self):
        x, y, M_df = self._make_data()
        result = run_as(
            pl.Series("x", x),
            pl.DataFrame({"y": y}),
            pl.from_pandas(M_df),
            K=2,
            covar=pl.DataFrame({"age": np.arange(60.0)}).lazy(),
        )
        d = json.loads(json.dumps(result.to_dict()))
        assert d["inputs"]["exposure_input"] == x.tolist()
        assert d["inputs"]["outcome_input"] == {"y": y.tolist()}
        assert d["inputs"]["covar"] == {"age": list(np.arange(60.0))}
        assert len(d["max2_pvalues"]) == 40
