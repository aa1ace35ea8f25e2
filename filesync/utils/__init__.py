"""Utilities (logging, retry, ignore patterns)"""
from .logging import block, log, vlog, warn, set_verbose
from .retry import retried
from .ignore_patterns import load_ignore_patterns, is_ignored

__all__ = [
    "block", "log", "vlog", "warn", "set_verbose",
    "retried",
    "load_ignore_patterns", "is_ignored",
]
