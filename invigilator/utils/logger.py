from __future__ import annotations
"""
Invigilator Logger

Centralized logging configuration.
"""

import logging
import sys
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(
    name: str,
    level: int = logging.INFO,
    format_str: Optional[str] = None,
) -> logging.Logger:
    """
    Get a configured logger.
    
    Args:
        name: Logger name (usually __name__)
        level: Logging level
        format_str: Custom format string
        
    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(format_str or DEFAULT_FORMAT))
        
        logger.addHandler(handler)
        logger.setLevel(level)
    
    return logger


def set_level(level: str) -> None:
    """Apply a level name (DEBUG, INFO, ...) to every invigilator logger."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    
    for name in list(logging.root.manager.loggerDict):
        if name == "invigilator" or name.startswith("invigilator."):
            logging.getLogger(name).setLevel(log_level)
    
    # Reduce noise from other libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
