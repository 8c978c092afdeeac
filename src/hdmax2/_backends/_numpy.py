"""NumPy backend (always available).

Architecture
~~~~~~~~~~~~
Both kernels are closed-form and fully vectorised over mediators:

1. **Ridge LFMM** (:meth:`NumpyBackend.lfmm_ridge`).  Following
   Caye et al. (2019), the exposure design is decomposed once,
   ``X = Q diag(s) W'`` with ``Q`` a full ``(n, n)`` orthonormal basis.
   The rotated and shrunk matrix ``D Q' Y`` with

       D = diag( sqrt(λ / (λ + s²)),  1, …, 1 )

   down-weights the part of ``Y`` explained by ``X``.  Its rank-K SVD
   ``u σ v'`` gives the loadings ``V = v`` and the latent scores
   ``U = Q D⁻¹ u σ``.  Exposure effects are then the ridge solution on
   the residual ``Y − U V'``.

2. **Shared design, many responses** (:meth:`NumpyBackend.ols_many`).
   Every mediator is regressed on the same design, so the whole batch
   is a single pseudoinverse multiply:

       β̂_all = pinv(Z) @ Y   →  shape (q, p)

   The pseudoinverse is computed once (O(q²n) via SVD) and the matmul
   is O(q·n·p), compared with p separate ``lstsq`` calls.

Reference:
    Caye, K., Jumentier, B., Lepeule, J. & François, O. (2019).
    LFMM 2: fast and accurate inference of gene-environment
    associations in genome-wide studies.  *Molecular Biology and
    Evolution*, 36(4), 852–860.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class NumpyBackend:
    """NumPy compute backend.

    The class is a frozen dataclass with no instance state — it exists
    solely to namespace the kernels behind the :class:`BackendProtocol`
    interface, and is safe to cache as a singleton.
    """

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return True

    def lfmm_ridge(
        self,
        Y: np.ndarray,
        X: np.ndarray,
        K: int,
        ridge_lambda: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Ridge LFMM decomposition via two SVDs.

        Args:
            Y: Centred response matrix ``(n, p)``.
            X: Centred explanatory matrix ``(n, d)``.
            K: Number of latent factors.
            ridge_lambda: Ridge penalty.

        Returns:
            ``(U, V, B)`` with shapes ``(n, K)``, ``(p, K)``, ``(p, d)``.
        """
        n, d = X.shape
        Q, s, _ = np.linalg.svd(X, full_matrices=True)  # Q: (n, n)

        d_lambda = np.ones(n)
        d_lambda[: s.size] = np.sqrt(ridge_lambda / (ridge_lambda + s**2))

        rotated = d_lambda[:, None] * (Q.T @ Y)
        u, sv, vt = np.linalg.svd(rotated, full_matrices=False)

        U = Q @ ((u[:, :K] * sv[:K]) / d_lambda[:, None])
        V = vt[:K].T

        gram = X.T @ X + ridge_lambda * np.eye(d)
        B = np.linalg.solve(gram, X.T @ (Y - U @ V.T)).T
        return U, V, B

    def ols_many(
        self,
        design: np.ndarray,
        Y: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, int]:
        """Batch OLS via a single pseudoinverse multiply.

        Args:
            design: Design matrix ``(n, q)`` including the intercept.
            Y: Responses ``(n, p)``.

        Returns:
            ``(coef, se, rss, rank)``.
        """
        n = design.shape[0]
        rank = int(np.linalg.matrix_rank(design))

        # For full-rank designs pinv(Z) is (Z'Z)⁻¹Z' and
        # pinv(Z) pinv(Z)' is (Z'Z)⁻¹.
        pinv = np.linalg.pinv(design)  # (q, n)
        coef = pinv @ Y  # (q, p)
        resid = Y - design @ coef
        rss = np.einsum("ij,ij->j", resid, resid)

        xtx_inv_diag = np.einsum("ij,ij->i", pinv, pinv)  # (q,)
        df_resid = max(n - rank, 1)
        sigma2 = rss / df_resid
        se = np.sqrt(xtx_inv_diag[:, None] * sigma2[None, :])
        return coef, se, rss, rank
