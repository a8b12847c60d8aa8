"""
Utility modules for the LCA stage engine.
"""

from .logging_utils import setup_logger, get_logger, level_for, parse_level_overrides
from .numbers import coerce_number, is_blank

__all__ = [
    "setup_logger",
    "get_logger",
    "level_for",
    "parse_level_overrides",
    "coerce_number",
    "is_blank",
]
