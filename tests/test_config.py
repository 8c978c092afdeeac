"""Tests for the backend configuration system."""

import logging
import os

import pytest

from hdmax2._backends import BackendProtocol, resolve_backend
from hdmax2._config import _jax_is_available, get_backend, set_backend


class TestGetBackend:
    """Tests for get_backend() resolution order."""

    def setup_method(self):
        """Reset state before each test."""
        import hdmax2._config as _cfg
        _cfg._backend_override = None
        # Clear the env var if set
        os.environ.pop("HDMAX2_BACKEND", None)

    def teardown_method(self):
        """Reset state after each test."""
        import hdmax2._config as _cfg
        _cfg._backend_override = None
        os.environ.pop("HDMAX2_BACKEND", None)

    def test_auto_detects_installed_backend(self):
        expected = "jax" if _jax_is_available() else "numpy"
        assert get_backend() == expected

    def test_env_var_overrides_auto(self):
        os.environ["HDMAX2_BACKEND"] = "numpy"
        assert get_backend() == "numpy"

    def test_env_var_jax(self):
        os.environ["HDMAX2_BACKEND"] = "jax"
        assert get_backend() == "jax"

    def test_env_var_case_insensitive(self):
        os.environ["HDMAX2_BACKEND"] = "NumPy"
        assert get_backend() == "numpy"

    def test_unrecognised_env_var_is_ignored(self, caplog):
        os.environ["HDMAX2_BACKEND"] = "cupy"
        expected = "jax" if _jax_is_available() else "numpy"
        with caplog.at_level(logging.WARNING, logger="hdmax2._config"):
            assert get_backend() == expected
        assert "HDMAX2_BACKEND='cupy'" in caplog.text

    def test_env_var_auto_is_silent(self, caplog):
        os.environ["HDMAX2_BACKEND"] = "auto"
        expected = "jax" if _jax_is_available() else "numpy"
        with caplog.at_level(logging.WARNING, logger="hdmax2._config"):
            assert get_backend() == expected
        assert caplog.records == []

    def test_programmatic_override_wins_over_env(self):
        os.environ["HDMAX2_BACKEND"] = "jax"
        set_backend("numpy")
        assert get_backend() == "numpy"

    def test_auto_restores_default(self):
        set_backend("numpy")
        assert get_backend() == "numpy"
        set_backend("auto")
        expected = "jax" if _jax_is_available() else "numpy"
        assert get_backend() == expected


class TestSetBackend:
    """Tests for set_backend() validation."""

    def setup_method(self):
        import hdmax2._config as _cfg
        _cfg._backend_override = None

    def teardown_method(self):
        import hdmax2._config as _cfg
        _cfg._backend_override = None

    def test_accepts_valid_names(self):
        for name in ("jax", "numpy", "auto"):
            set_backend(name)  # should not raise

    def test_case_insensitive(self):
        set_backend("NUMPY")
        assert get_backend() == "numpy"

    def test_rejects_invalid_name(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            set_backend("tensorflow")


class TestResolveBackend:
    def setup_method(self):
        import hdmax2._config as _cfg
        _cfg._backend_override = None

    def teardown_method(self):
        import hdmax2._config as _cfg
        _cfg._backend_override = None

    def test_numpy_satisfies_protocol(self):
        backend = resolve_backend("numpy")
        assert isinstance(backend, BackendProtocol)
        assert backend.name == "numpy"
        assert backend.is_available

    def test_instances_are_cached(self):
        assert resolve_backend("numpy") is resolve_backend("NumPy")

    def test_follows_configured_policy(self):
        set_backend("numpy")
        assert resolve_backend().name == "numpy"

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            resolve_backend("tensorflow")

    def test_auto_is_not_a_concrete_backend(self):
        with pytest.raises(ValueError, match="Unknown backend 'auto'"):
            resolve_backend("auto")

    def test_explicit_jax_without_jax_raises(self):
        if _jax_is_available():
            pytest.skip("JAX is installed")
        with pytest.raises(ImportError, match="JAX"):
            resolve_backend("jax")


class TestBackendIntegration:
    """Verify that set_backend('numpy') routes the analysis through NumPy."""

    def setup_method(self):
        import hdmax2._config as _cfg
        _cfg._backend_override = None

    def teardown_method(self):
        import hdmax2._config as _cfg
        _cfg._backend_override = None

    def test_numpy_backend_runs_analysis(self):
        import numpy as np

        from hdmax2 import run_as

        set_backend("numpy")

        rng = np.random.default_rng(42)
        n, p = 60, 40
        x = rng.standard_normal(n)
        M = rng.standard_normal((n, p)) + 0.5 * x[:, None]
        y = rng.standard_normal(n)

        result = run_as(x, y, M, K=2)
        assert result.model.backend == "numpy"
        assert len(result.max2_pvalues) == p

    def test_public_api_exports(self):
        """get_backend and set_backend should be importable from the package."""
        import hdmax2
        assert hasattr(hdmax2, "get_backend")
        assert hasattr(hdmax2, "set_backend")
