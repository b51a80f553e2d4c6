"""tiergen validator -- build, compile and syntax checks for generated projects."""

from .checks import (
    CommandCheck,
    JsonSyntaxCheck,
    ValidationCheck,
    YamlSyntaxCheck,
    default_checks,
)
from .results import CheckResult, CheckStatus, ValidationReport
from .runner import ProjectValidator

__all__ = [
    "CheckResult",
    "CheckStatus",
    "CommandCheck",
    "JsonSyntaxCheck",
    "ProjectValidator",
    "ValidationCheck",
    "ValidationReport",
    "YamlSyntaxCheck",
    "default_checks",
]
