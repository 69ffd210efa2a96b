from __future__ import annotations
"""
Invigilator Service

Proctoring session that wires media, detection, classification and lockdown.
"""

from invigilator.service.proctoring import ProctoringSession, main

__all__ = [
    "ProctoringSession",
    "main",
]
