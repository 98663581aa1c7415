# Database models

from .sample import Sample, SampleStage, SLAType, SLAStatus, TERMINAL_STAGES
from .sample_test import SampleTest
from .result import Result, ResultStatus
from .interpretation import InterpretationRule, AppliedInterpretation, Comparator, Severity

__all__ = [
    # Models
    "Sample",
    "SampleTest",
    "Result",
    "InterpretationRule",
    "AppliedInterpretation",

    # Enums
    "SampleStage",
    "SLAType",
    "SLAStatus",
    "ResultStatus",
    "Comparator",
    "Severity",

    "TERMINAL_STAGES",
]
