"""Backend abstraction layer for the latent factor regression.

Each backend implements the :class:`BackendProtocol` interface, which
defines the two dense linear-algebra kernels the LFMM primitive needs:

* :meth:`~BackendProtocol.lfmm_ridge` — the ridge-penalised latent
  factor decomposition (one SVD of the exposure design, one truncated
  SVD of the rotated mediator matrix).
* :meth:`~BackendProtocol.ols_many` — one shared design matrix, many
  response columns (all mediators solved in a single pseudoinverse
  multiply).

The statistical layer in :mod:`hdmax2.lfmm` dispatches to the active
backend via :func:`resolve_backend` and turns the returned arrays into
test statistics with SciPy distributions, so backends never deal with
p-values or genomic control.

Resolution follows the policy set by :mod:`._config`:

1. Programmatic override via :func:`~hdmax2.set_backend`.
2. ``HDMAX2_BACKEND`` environment variable.
3. Auto-detection: ``"jax"`` if importable, else ``"numpy"``.

When ``"jax"`` is explicitly requested but JAX is not installed, an
:class:`ImportError` is raised; explicit requests are never silently
degraded.  The ``"auto"`` policy is the only mode that falls back from
JAX to NumPy.
"""

from __future__ import annotations

import importlib
import logging
from typing import Protocol, runtime_checkable

import numpy as np

from .._config import get_backend, normalize_backend_name

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# BackendProtocol
# ------------------------------------------------------------------ #


@runtime_checkable
class BackendProtocol(Protocol):
    """Interface that every compute backend must implement.

    All methods accept and return plain NumPy ``float64`` arrays.

    Attributes:
        name: Short identifier (e.g. ``"numpy"``, ``"jax"``).
    """

    @property
    def name(self) -> str: ...

    @property
    def is_available(self) -> bool:
        """Whether the backend's dependencies are importable."""
        ...

    def lfmm_ridge(
        self,
        Y: np.ndarray,
        X: np.ndarray,
        K: int,
        ridge_lambda: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Ridge LFMM decomposition ``Y ≈ X B' + U V'``.

        Args:
            Y: Centred response matrix ``(n, p)``.
            X: Centred explanatory matrix ``(n, d)``.
            K: Number of latent factors.
            ridge_lambda: Ridge penalty on the exposure effects.

        Returns:
            ``(U, V, B)`` with shapes ``(n, K)``, ``(p, K)`` and
            ``(p, d)``.
        """
        ...

    def ols_many(
        self,
        design: np.ndarray,
        Y: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, int]:
        """OLS of every column of *Y* on a shared *design*.

        Args:
            design: Design matrix ``(n, q)`` including any intercept.
            Y: Responses ``(n, p)``.

        Returns:
            ``(coef, se, rss, rank)`` where ``coef`` and ``se`` are
            ``(q, p)``, ``rss`` is ``(p,)`` and ``rank`` is the
            numerical rank of *design*.  Standard errors use
            ``n - rank`` residual degrees of freedom.
        """
        ...


# ------------------------------------------------------------------ #
# Backend resolution
# ------------------------------------------------------------------ #

# Backend name -> (submodule, class name).  Submodules are imported on
# first use so that JAX is only touched when it is asked for.
_REGISTRY: dict[str, tuple[str, str]] = {
    "numpy": ("._numpy", "NumpyBackend"),
    "jax": ("._jax", "JaxBackend"),
}

_BACKEND_CACHE: dict[str, BackendProtocol] = {}


def _instantiate(name: str) -> BackendProtocol:
    module_name, class_name = _REGISTRY[name]
    module = importlib.import_module(module_name, __name__)
    backend: BackendProtocol = getattr(module, class_name)()
    if not backend.is_available:
        raise ImportError(
            f"Backend {name!r} was explicitly requested but JAX is not "
            "installed.  Install JAX (`pip install jax`) or use "
            "set_backend('numpy')."
        )
    return backend


def resolve_backend(name: str | None = None) -> BackendProtocol:
    """Return the (cached) :class:`BackendProtocol` instance for *name*.

    When *name* is ``None`` (the default), the policy from
    :func:`~hdmax2._config.get_backend` is used.

    Args:
        name: ``"numpy"``, ``"jax"``, or ``None`` for policy default.

    Returns:
        A backend instance.

    Raises:
        ImportError: If ``"jax"`` is explicitly requested but JAX
            is not installed.
        ValueError: If *name* is not a recognised backend.
    """
    key = get_backend() if name is None else normalize_backend_name(name, allow_auto=False)
    backend = _BACKEND_CACHE.get(key)
    if backend is None:
        backend = _BACKEND_CACHE[key] = _instantiate(key)
        logger.debug("Using the %s backend for LFMM kernels.", key)
    return backend
