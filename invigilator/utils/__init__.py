"""
Invigilator Utilities Module

Logging and the violation taxonomy.
"""

from invigilator.utils.logger import get_logger, set_level
from invigilator.utils.violations import (
    ProctoringStatus,
    Severity,
    ViolationType,
    get_violation_message,
)

__all__ = [
    "get_logger",
    "set_level",
    "ProctoringStatus",
    "Severity",
    "ViolationType",
    "get_violation_message",
]
