from __future__ import annotations
"""
Invigilator API

FastAPI server the exam UI talks to.
"""

from invigilator.api.server import app, start_server

__all__ = [
    "app",
    "start_server",
]
