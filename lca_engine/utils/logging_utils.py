"""
Logging utilities for consistent logging across the engine.

Every engine module logs through ``get_logger(__name__)``. The global level
comes from ``LOG_LEVEL``; ``LOG_LEVELS`` raises or lowers it for individual
modules or packages, so a noisy Monte Carlo run can be traced at DEBUG while
the rest of the engine stays at INFO.
"""

import logging
import sys
from typing import Dict, Optional
from lca_engine.config import Config


def parse_level_overrides(text: str) -> Dict[str, str]:
    """
    Parse a ``"logger.prefix=LEVEL,other.prefix=LEVEL"`` string.

    Raises:
        ValueError: an entry is not of the form ``prefix=LEVEL``
    """
    overrides: Dict[str, str] = {}
    for item in (text or "").split(","):
        item = item.strip()
        if not item:
            continue
        prefix, sep, level = item.partition("=")
        if not sep or not prefix.strip() or not level.strip():
            raise ValueError(f"Invalid LOG_LEVELS entry {item!r}; expected logger.prefix=LEVEL")
        overrides[prefix.strip()] = level.strip().upper()
    return overrides


def level_for(name: str, overrides: Optional[Dict[str, str]] = None) -> str:
    """Level for a logger name: the longest matching dotted-prefix override, else LOG_LEVEL."""
    if overrides is None:
        overrides = parse_level_overrides(Config.LOG_LEVELS)

    best = ""
    for prefix in overrides:
        if (name == prefix or name.startswith(prefix + ".")) and len(prefix) > len(best):
            best = prefix
    return overrides[best] if best else Config.LOG_LEVEL


def setup_logger(
    name: str,
    level: Optional[str] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (typically __name__)
        level: Logging level (defaults to the LOG_LEVELS override for ``name``,
            then Config.LOG_LEVEL)
        format_string: Custom format string (defaults to Config.LOG_FORMAT)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Handlers are attached once per logger name
    if logger.handlers:
        return logger

    level = level or level_for(name)
    format_string = format_string or Config.LOG_FORMAT
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(format_string))

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger, creating it on first use."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        return setup_logger(name)

    return logger
