"""Compute backend selection for the latent factor regression.

The backend runs the two dense kernels of :mod:`hdmax2.lfmm` (the
ridge LFMM decomposition and the batched OLS solve).  The choice never
changes results beyond floating-point rounding, only where the linear
algebra runs.

Resolution order (first match wins):
    1. Programmatic override via :func:`set_backend`.
    2. The ``HDMAX2_BACKEND`` environment variable.
    3. Auto-detection: ``"jax"`` if JAX is importable, else ``"numpy"``.

An unrecognised ``HDMAX2_BACKEND`` value is reported with a logged
warning and auto-detection is used instead; a shell setting must not
abort an analysis.  An unrecognised name passed to :func:`set_backend`
raises ``ValueError``.

Examples:
    Force NumPy from the shell::

        export HDMAX2_BACKEND=numpy

    or programmatically::

        import hdmax2
        hdmax2.set_backend("numpy")
        hdmax2.set_backend("auto")  # back to auto-detection
"""

from __future__ import annotations

import functools
import logging
import os

logger = logging.getLogger(__name__)

ENV_VAR = "HDMAX2_BACKEND"
BACKENDS = ("numpy", "jax")
AUTO = "auto"

_backend_override: str | None = None


def normalize_backend_name(name: str, *, allow_auto: bool = True) -> str:
    """Lower-case and validate a backend name.

    Raises:
        ValueError: If *name* is not ``"numpy"``, ``"jax"`` or (when
            *allow_auto*) ``"auto"``.
    """
    choices = BACKENDS + ((AUTO,) if allow_auto else ())
    normalised = str(name).strip().lower()
    if normalised not in choices:
        raise ValueError(f"Unknown backend {name!r}. Choose from: {list(choices)}")
    return normalised


@functools.lru_cache(maxsize=None)
def _jax_is_available() -> bool:
    """Return ``True`` if JAX can be imported (checked once per process)."""
    try:
        import jax  # noqa: F401
    except ImportError:
        return False
    return True


def _auto_backend() -> str:
    return "jax" if _jax_is_available() else "numpy"


def _backend_from_env() -> str | None:
    raw = os.environ.get(ENV_VAR, "").strip()
    if not raw:
        return None
    try:
        name = normalize_backend_name(raw)
    except ValueError:
        logger.warning(
            "Ignoring %s=%r: expected one of %s; using auto-detection.",
            ENV_VAR,
            raw,
            list(BACKENDS + (AUTO,)),
        )
        return None
    return None if name == AUTO else name


def get_backend() -> str:
    """Return the active backend name, ``"jax"`` or ``"numpy"``."""
    if _backend_override is not None:
        return _backend_override
    return _backend_from_env() or _auto_backend()


def set_backend(name: str) -> None:
    """Select the compute backend for subsequent analyses.

    Args:
        name: ``"jax"``, ``"numpy"`` or ``"auto"`` (case-insensitive).
            ``"auto"`` clears the override so the environment variable
            and auto-detection apply again.

    Raises:
        ValueError: If *name* is not a recognised backend.
    """
    global _backend_override
    normalised = normalize_backend_name(name)
    _backend_override = None if normalised == AUTO else normalised
