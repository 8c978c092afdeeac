"""JAX-accelerated backend for the latent factor regression.

Mirrors :class:`~._numpy.NumpyBackend` kernel for kernel, running the
SVDs and the batched least-squares solve through ``jax.numpy`` so they
are dispatched to XLA (and to a GPU when one is present).

NumPy ↔ JAX boundary convention
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
All public methods accept NumPy arrays and return NumPy arrays.

* **Inbound:** ``jnp.asarray(X, dtype=jnp.float64)``.
* **Outbound:** ``np.asarray(result)`` — zero-copy on CPU, a
  device-to-host transfer on GPU.

Float64 rationale
~~~~~~~~~~~~~~~~~
Genomic control divides test statistics by the median of their
squared values, and the ridge penalty is of order 1e-5, so the
``sqrt(λ / (λ + s²))`` shrinkage factors fall well below float32
resolution for typical designs.  ``jax_enable_x64`` is switched on
before any array is created.

Graceful degradation
~~~~~~~~~~~~~~~~~~~~
If JAX is not installed, :class:`JaxBackend` can still be
instantiated (for introspection) but ``is_available`` returns
``False`` and :func:`~._backends.resolve_backend` raises
``ImportError`` when this backend is explicitly requested.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

try:
    import jax

    jax.config.update("jax_enable_x64", True)

    import jax.numpy as jnp

    _CAN_IMPORT_JAX = True
except ImportError:
    _CAN_IMPORT_JAX = False


@dataclass(frozen=True)
class JaxBackend:
    """JAX compute backend.

    Stateless, like the NumPy backend; every call converts its inputs
    to float64 JAX arrays and converts the results back.
    """

    @property
    def name(self) -> str:
        return "jax"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return _CAN_IMPORT_JAX

    def lfmm_ridge(
        self,
        Y: np.ndarray,
        X: np.ndarray,
        K: int,
        ridge_lambda: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Ridge LFMM decomposition (see ``NumpyBackend.lfmm_ridge``)."""
        Y_j = jnp.asarray(Y, dtype=jnp.float64)
        X_j = jnp.asarray(X, dtype=jnp.float64)
        n, d = X_j.shape

        Q, s, _ = jnp.linalg.svd(X_j, full_matrices=True)
        d_lambda = jnp.ones(n, dtype=jnp.float64)
        d_lambda = d_lambda.at[: s.shape[0]].set(
            jnp.sqrt(ridge_lambda / (ridge_lambda + s**2))
        )

        rotated = d_lambda[:, None] * (Q.T @ Y_j)
        u, sv, vt = jnp.linalg.svd(rotated, full_matrices=False)

        U = Q @ ((u[:, :K] * sv[:K]) / d_lambda[:, None])
        V = vt[:K].T

        gram = X_j.T @ X_j + ridge_lambda * jnp.eye(d, dtype=jnp.float64)
        B = jnp.linalg.solve(gram, X_j.T @ (Y_j - U @ V.T)).T
        return np.asarray(U), np.asarray(V), np.asarray(B)

    def ols_many(
        self,
        design: np.ndarray,
        Y: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, int]:
        """Batch OLS (see ``NumpyBackend.ols_many``)."""
        Z = jnp.asarray(design, dtype=jnp.float64)
        Y_j = jnp.asarray(Y, dtype=jnp.float64)
        n = Z.shape[0]
        rank = int(jnp.linalg.matrix_rank(Z))

        pinv = jnp.linalg.pinv(Z)
        coef = pinv @ Y_j
        resid = Y_j - Z @ coef
        rss = jnp.sum(resid * resid, axis=0)

        xtx_inv_diag = jnp.sum(pinv * pinv, axis=1)
        df_resid = max(n - rank, 1)
        se = jnp.sqrt(xtx_inv_diag[:, None] * (rss / df_resid)[None, :])
        return np.asarray(coef), np.asarray(se), np.asarray(rss), rank
