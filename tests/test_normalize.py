"""Tests for input classification and validation."""

import warnings

import numpy as np
import pandas as pd
import pytest

from hdmax2 import (
    DegenerateExposure,
    ExposureKind,
    InvalidCovariates,
    InvalidExposureType,
    InvalidLatentFactorCount,
    InvalidMediatorMatrix,
    MissingLatentFactorCount,
    OutcomeKind,
    ShapeMismatch,
    UnsupportedOutcomeType,
    normalize_inputs,
)
from hdmax2.normalize import (
    classify_exposure,
    classify_outcome,
    resolve_k,
    validate_covariates,
    validate_mediators,
)


def _make_inputs(n=30, p=12, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(n)
    y = rng.standard_normal(n)
    M = rng.standard_normal((n, p))
    return x, y, M


# ------------------------------------------------------------------ #
# Exposure
# ------------------------------------------------------------------ #


class TestClassifyExposureUnivariate:
    def test_continuous(self):
        spec = classify_exposure(np.array([0.1, 2.5, -1.0, 3.3]))
        assert spec.kind is ExposureKind.CONTINUOUS
        assert spec.design_columns == ("univariate",)
        assert not spec.omnibus
        assert not spec.is_multivariate

    def test_integer_zero_one_is_binary(self):
        spec = classify_exposure([0, 1, 1, 0, 1])
        assert spec.kind is ExposureKind.BINARY
        np.testing.assert_array_equal(spec.values[:, 0], [0.0, 1.0, 1.0, 0.0, 1.0])

    def test_logical_is_binary(self):
        spec = classify_exposure(np.array([True, False, True, False]))
        assert spec.kind is ExposureKind.BINARY
        assert spec.values.dtype == float
        assert spec.var_types == ["bool"]

    def test_object_floats_are_continuous(self):
        spec = classify_exposure(pd.Series([0.5, 1.5, 2.0], dtype=object))
        assert spec.kind is ExposureKind.CONTINUOUS
        assert spec.var_types == ["object"]
        np.testing.assert_array_equal(spec.values[:, 0], [0.5, 1.5, 2.0])

    def test_object_zero_one_floats_are_binary(self):
        spec = classify_exposure(pd.Series([0.0, 1.0, 1.0], dtype=object))
        assert spec.kind is ExposureKind.BINARY
        assert not spec.omnibus

    def test_object_logicals_are_binary(self):
        spec = classify_exposure(pd.Series([True, False, True], dtype=object))
        assert spec.kind is ExposureKind.BINARY
        np.testing.assert_array_equal(spec.values[:, 0], [1.0, 0.0, 1.0])

    def test_object_strings_are_categorical(self):
        spec = classify_exposure(pd.Series(["lo", "hi", "lo"], dtype=object))
        assert spec.kind is ExposureKind.CATEGORICAL
        assert spec.columns[0].levels == ("hi", "lo")

    def test_strings_are_categorical_with_sorted_reference(self):
        spec = classify_exposure(["b", "a", "c", "a", "b", "c"])
        assert spec.kind is ExposureKind.CATEGORICAL
        assert spec.omnibus
        assert spec.design_columns == ("univariate_b", "univariate_c")
        assert spec.columns[0].levels == ("a", "b", "c")
        np.testing.assert_array_equal(spec.values[:, 0], [1, 0, 0, 0, 1, 0])
        np.testing.assert_array_equal(spec.values[:, 1], [0, 0, 1, 0, 0, 1])

    def test_four_levels_expand_to_three_columns(self):
        spec = classify_exposure(["A", "B", "C", "D", "A", "C"])
        assert spec.design.shape == (6, 3)
        assert spec.design_columns == ("univariate_B", "univariate_C", "univariate_D")

    def test_categorical_uses_category_order(self):
        cat = pd.Categorical(["a", "b", "c", "a"], categories=["c", "a", "b"])
        spec = classify_exposure(cat)
        assert spec.kind is ExposureKind.CATEGORICAL
        assert spec.design_columns == ("univariate_a", "univariate_b")

    def test_unused_categories_are_dropped(self):
        cat = pd.Categorical(["a", "b", "a", "b"], categories=["a", "b", "z"])
        spec = classify_exposure(cat)
        assert spec.columns[0].levels == ("a", "b")
        assert spec.design_columns == ("univariate_b",)

    def test_ordered_categorical_is_categorical(self):
        cat = pd.Categorical(["lo", "hi", "mid", "lo"], categories=["lo", "mid", "hi"], ordered=True)
        spec = classify_exposure(cat)
        assert spec.kind is ExposureKind.CATEGORICAL
        assert spec.design.shape == (4, 2)

    def test_single_column_table_matches_vector(self):
        x = np.array([0.3, 1.2, -0.4, 2.2, 0.0])
        from_vector = classify_exposure(x)
        from_table = classify_exposure(pd.DataFrame({"smoking": x}))
        assert from_table.kind is from_vector.kind
        assert from_table.design_columns == from_vector.design_columns
        np.testing.assert_array_equal(from_table.values, from_vector.values)
        assert from_table.var_ids == ["smoking"]

    def test_series_name_is_kept_as_identifier(self):
        spec = classify_exposure(pd.Series([1.0, 2.0, 3.0], name="dose"))
        assert spec.var_ids == ["dose"]


class TestClassifyExposureMultivariate:
    def test_mixed_table(self):
        df = pd.DataFrame(
            {
                "age": [31.0, 25.0, 40.0, 36.0, 29.0, 33.0],
                "parity": ["0", "1", "2+", "0", "1", "2+"],
                "smoker": [True, False, True, False, False, True],
            }
        )
        spec = classify_exposure(df)
        assert spec.kind is ExposureKind.MULTIVARIATE
        assert spec.is_multivariate
        assert spec.omnibus
        assert spec.design_columns == ("Var_1", "Var_2_1", "Var_2_2+", "Var_3")
        assert spec.var_ids == ["age", "parity", "smoker"]
        kinds = [c.kind for c in spec.columns]
        assert kinds == [
            ExposureKind.CONTINUOUS,
            ExposureKind.CATEGORICAL,
            ExposureKind.BINARY,
        ]

    def test_two_dimensional_array_is_a_table(self):
        arr = np.column_stack([np.arange(5.0), np.array([1.0, 0.0, 1.0, 0.0, 1.0])])
        spec = classify_exposure(arr)
        assert spec.kind is ExposureKind.MULTIVARIATE
        assert spec.design_columns == ("Var_1", "Var_2")
        assert spec.var_ids == ["X1", "X2"]


class TestClassifyExposureErrors:
    def test_constant_numeric_is_degenerate(self):
        with pytest.raises(DegenerateExposure, match="two"):
            classify_exposure([1.0, 1.0, 1.0])

    def test_single_level_is_degenerate(self):
        with pytest.raises(DegenerateExposure, match="levels"):
            classify_exposure(["a", "a", "a"])

    def test_missing_values_rejected(self):
        with pytest.raises(InvalidExposureType, match="missing"):
            classify_exposure([0.1, np.nan, 0.3])

    def test_unsupported_container_rejected(self):
        with pytest.raises(InvalidExposureType):
            classify_exposure({"a": [1, 2]})

    def test_mixed_value_types_rejected(self):
        with pytest.raises(InvalidExposureType, match="mixes"):
            classify_exposure(pd.Series(["a", 1, "b"], dtype=object))

    def test_complex_rejected(self):
        with pytest.raises(InvalidExposureType, match="dtype"):
            classify_exposure(np.array([1 + 1j, 2 + 0j, 3 - 1j]))

    def test_is_also_a_type_error(self):
        with pytest.raises(TypeError):
            classify_exposure(3.5)


# ------------------------------------------------------------------ #
# Outcome
# ------------------------------------------------------------------ #


class TestClassifyOutcome:
    def test_logical_is_binary(self):
        spec = classify_outcome(np.array([True, False, True]))
        assert spec.kind is OutcomeKind.BINARY
        np.testing.assert_array_equal(spec.values, [1.0, 0.0, 1.0])

    def test_zero_one_numeric_is_binary(self):
        spec = classify_outcome([0, 1, 1, 0])
        assert spec.kind is OutcomeKind.BINARY
        assert spec.values.dtype == float

    def test_numeric_is_continuous(self):
        spec = classify_outcome(pd.Series([2.5, 3.1, 0.2], name="birth_weight"))
        assert spec.kind is OutcomeKind.CONTINUOUS
        assert spec.name == "birth_weight"

    def test_single_column_matrix(self):
        spec = classify_outcome(np.array([[1.5], [2.0], [0.5]]))
        np.testing.assert_array_equal(spec.values, [1.5, 2.0, 0.5])

    def test_single_column_table(self):
        spec = classify_outcome(pd.DataFrame({"bw": [1.0, 2.0, 3.0]}))
        assert spec.name == "bw"

    def test_strings_rejected(self):
        with pytest.raises(UnsupportedOutcomeType, match="neither numeric nor logical"):
            classify_outcome(["low", "high", "low"])

    def test_two_columns_rejected(self):
        with pytest.raises(UnsupportedOutcomeType, match="single column"):
            classify_outcome(pd.DataFrame({"a": [1.0, 2.0], "b": [0.0, 1.0]}))

    def test_missing_rejected(self):
        with pytest.raises(UnsupportedOutcomeType, match="missing"):
            classify_outcome([1.0, np.nan, 2.0])

    def test_object_logicals_are_binary(self):
        spec = classify_outcome(pd.Series([True, False, True], dtype=object))
        assert spec.kind is OutcomeKind.BINARY
        np.testing.assert_array_equal(spec.values, [1.0, 0.0, 1.0])

    def test_object_floats_are_continuous(self):
        spec = classify_outcome(pd.Series([2.5, 3.1, 0.2], dtype=object))
        assert spec.kind is OutcomeKind.CONTINUOUS
        assert spec.values.dtype == float


# ------------------------------------------------------------------ #
# Mediators, K, covariates
# ------------------------------------------------------------------ #


class TestValidateMediators:
    def test_array_ids(self):
        values, ids = validate_mediators(np.zeros((4, 3)))
        assert values.shape == (4, 3)
        assert ids == ("M1", "M2", "M3")

    def test_dataframe_ids(self):
        df = pd.DataFrame(np.ones((3, 2)), columns=["cg01", "cg02"])
        _, ids = validate_mediators(df)
        assert ids == ("cg01", "cg02")

    def test_non_finite_rejected(self):
        M = np.ones((3, 3))
        M[1, 2] = np.inf
        with pytest.raises(InvalidMediatorMatrix, match="non-finite"):
            validate_mediators(M)

    def test_one_dimensional_rejected(self):
        with pytest.raises(InvalidMediatorMatrix, match="2-D"):
            validate_mediators(np.ones(5))

    def test_non_numeric_column_rejected(self):
        df = pd.DataFrame({"cg01": [0.1, 0.2], "cg02": ["a", "b"]})
        with pytest.raises(InvalidMediatorMatrix, match="cg02"):
            validate_mediators(df)

    def test_duplicated_ids_rejected(self):
        df = pd.DataFrame(np.ones((2, 2)), columns=["cg01", "cg01"])
        with pytest.raises(InvalidMediatorMatrix, match="Duplicated"):
            validate_mediators(df)

    def test_list_rejected(self):
        with pytest.raises(InvalidMediatorMatrix):
            validate_mediators([[1.0, 2.0], [3.0, 4.0]])


class TestResolveK:
    def test_integer(self):
        assert resolve_k(5) == 5

    def test_numpy_integer(self):
        assert resolve_k(np.int64(3)) == 3

    def test_integral_float_is_silent(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert resolve_k(4.0) == 4

    def test_fractional_is_truncated_with_warning(self):
        with pytest.warns(UserWarning, match="truncated to 3"):
            assert resolve_k(3.7) == 3

    def test_missing(self):
        with pytest.raises(MissingLatentFactorCount, match="not provided"):
            resolve_k(None)

    def test_missing_is_an_invalid_count(self):
        assert issubclass(MissingLatentFactorCount, InvalidLatentFactorCount)

    def test_string_rejected(self):
        with pytest.raises(InvalidLatentFactorCount):
            resolve_k("3")

    def test_bool_rejected(self):
        with pytest.raises(InvalidLatentFactorCount):
            resolve_k(True)

    def test_zero_rejected(self):
        with pytest.raises(InvalidLatentFactorCount, match="positive"):
            resolve_k(0)

    def test_below_one_after_truncation_rejected(self):
        with pytest.warns(UserWarning):
            with pytest.raises(InvalidLatentFactorCount):
                resolve_k(0.5)


class TestValidateCovariates:
    def test_array_names(self):
        values, names = validate_covariates(np.ones((3, 2)), name="suppl_covar")
        assert values.shape == (3, 2)
        assert names == ("suppl_covar_1", "suppl_covar_2")

    def test_series_becomes_one_column(self):
        values, names = validate_covariates(pd.Series([1.0, 2.0, 3.0], name="age"))
        assert values.shape == (3, 1)
        assert names == ("age",)

    def test_missing_rejected(self):
        with pytest.raises(InvalidCovariates, match="missing"):
            validate_covariates(np.array([[1.0], [np.nan]]))

    def test_one_dimensional_array_rejected(self):
        with pytest.raises(InvalidCovariates, match="2-D"):
            validate_covariates(np.ones(4))

    def test_non_numeric_rejected(self):
        with pytest.raises(InvalidCovariates, match="sex"):
            validate_covariates(pd.DataFrame({"sex": ["f", "m"]}))


class TestNormalizeInputs:
    def test_valid_inputs(self):
        x, y, M = _make_inputs()
        inputs = normalize_inputs(x, y, M, 2, covar=np.ones((30, 1)))
        assert inputs.n_samples == 30
        assert inputs.n_mediators == 12
        assert inputs.K == 2
        assert inputs.covar_names == ("covar_1",)
        assert inputs.suppl_covar is None
        assert not inputs.per_variable

    def test_outcome_row_mismatch(self):
        x, y, M = _make_inputs()
        with pytest.raises(ShapeMismatch, match="outcome=29"):
            normalize_inputs(x, y[:-1], M, 2)

    def test_mediator_row_mismatch(self):
        x, y, M = _make_inputs()
        with pytest.raises(ShapeMismatch, match="M=29"):
            normalize_inputs(x, y, M[:-1], 2)

    def test_covariate_row_mismatch(self):
        x, y, M = _make_inputs()
        with pytest.raises(ShapeMismatch, match="covar=10"):
            normalize_inputs(x, y, M, 2, covar=np.ones((10, 2)))

    def test_supplementary_row_mismatch(self):
        x, y, M = _make_inputs()
        with pytest.raises(ShapeMismatch, match="suppl_covar=31"):
            normalize_inputs(x, y, M, 2, suppl_covar=np.ones((31, 1)))

    def test_k_not_below_min_dimension(self):
        x, y, M = _make_inputs(n=30, p=12)
        with pytest.raises(InvalidLatentFactorCount, match="min"):
            normalize_inputs(x, y, M, 12)
