"""Exception taxonomy for the mediation analysis pipeline.

Every failure is fatal and surfaced before any partial result is
returned.  All classes derive from :class:`Hdmax2Error`, itself a
``ValueError``, so callers that already guard numerical code with
``except ValueError`` keep working.  Errors that describe an
unsupported *type* of input additionally derive from ``TypeError``.
"""

from __future__ import annotations


class Hdmax2Error(ValueError):
    """Base class for all errors raised by :mod:`hdmax2`."""


class InvalidExposureType(Hdmax2Error, TypeError):
    """Exposure is not a vector, factor or table of supported values."""


class DegenerateExposure(Hdmax2Error):
    """Exposure variable has fewer than two distinct values or levels."""


class UnsupportedOutcomeType(Hdmax2Error, TypeError):
    """Outcome is not a single numeric or logical column."""


class InvalidMediatorMatrix(Hdmax2Error):
    """Mediators are not a 2-D, fully observed numeric matrix."""


class InvalidLatentFactorCount(Hdmax2Error):
    """Number of latent factors does not resolve to a usable integer."""


class MissingLatentFactorCount(InvalidLatentFactorCount):
    """Number of latent factors was not provided."""


class InvalidCovariates(Hdmax2Error):
    """Adjustment factors are not a 2-D, fully observed numeric table."""


class ShapeMismatch(Hdmax2Error):
    """Row counts (or mediator identifiers) disagree between inputs."""


class RegressionFitFailure(Hdmax2Error):
    """The latent factor regression could not be fitted or tested."""
