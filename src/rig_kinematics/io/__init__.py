"""I/O utilities for loading rigs from description files.

This module provides functions for parsing XML rig descriptions and
converting them to host joint trees.
"""

from .rig_xml import load_rig, parse_rig

__all__ = ["load_rig", "parse_rig"]
