"""hdmax2 — High-dimensional mediation analysis with latent factors.

Implements the association step of HDMAX2 (Jumentier et al., 2023):
two latent factor mixed model (LFMM2) association studies sharing one
set of estimated latent factors, combined per mediator by the
max-squared test.  Exposures may be continuous, binary, categorical
or multivariate; outcomes binary or continuous.  Linear algebra runs
on NumPy or, optionally, JAX.

Public API:
    .. autosummary::
        run_as
        normalize_inputs
        run_stage1
        run_stage2
        combine_max2
        combine_max2_each
        fit_lfmm
        lfmm_test
        print_step1_summary
        print_association_table
        get_backend
        set_backend
        ExposureKind
        ExposureSpec
        OutcomeKind
        OutcomeSpec
        NormalizedInputs
        LatentFactorModel
        LfmmTestResult
        AssociationResult
        Step1Inputs
        Step1Result
"""

from ._config import get_backend, set_backend
from ._errors import (
    DegenerateExposure,
    Hdmax2Error,
    InvalidCovariates,
    InvalidExposureType,
    InvalidLatentFactorCount,
    InvalidMediatorMatrix,
    MissingLatentFactorCount,
    RegressionFitFailure,
    ShapeMismatch,
    UnsupportedOutcomeType,
)
from ._results import AssociationResult, Step1Inputs, Step1Result
from .core import run_as
from .display import print_association_table, print_step1_summary
from .lfmm import LatentFactorModel, LfmmTestResult, fit_lfmm, lfmm_test
from .normalize import (
    ExposureKind,
    ExposureSpec,
    NormalizedInputs,
    OutcomeKind,
    OutcomeSpec,
    normalize_inputs,
)
from .stages import combine_max2, combine_max2_each, run_stage1, run_stage2

__version__ = "0.1.0"

__all__ = [
    "AssociationResult",
    "Step1Inputs",
    "Step1Result",
    "run_as",
    "normalize_inputs",
    "run_stage1",
    "run_stage2",
    "combine_max2",
    "combine_max2_each",
    "fit_lfmm",
    "lfmm_test",
    "print_association_table",
    "print_step1_summary",
    "get_backend",
    "set_backend",
    "ExposureKind",
    "ExposureSpec",
    "NormalizedInputs",
    "OutcomeKind",
    "OutcomeSpec",
    "LatentFactorModel",
    "LfmmTestResult",
    "Hdmax2Error",
    "InvalidExposureType",
    "DegenerateExposure",
    "UnsupportedOutcomeType",
    "InvalidMediatorMatrix",
    "InvalidLatentFactorCount",
    "MissingLatentFactorCount",
    "InvalidCovariates",
    "ShapeMismatch",
    "RegressionFitFailure",
]
