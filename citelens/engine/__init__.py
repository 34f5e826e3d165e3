"""Citation rendering engines."""

from .base import BaseEngine, EngineSystem
from .builder import build_engine
from .csl import CSLEngine, StyleInfo, load_style, parse_style

__all__ = [
    "BaseEngine",
    "EngineSystem",
    "build_engine",
    "CSLEngine",
    "StyleInfo",
    "load_style",
    "parse_style",
]
