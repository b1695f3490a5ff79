"""
SWG Combat Analysis Tools

This package provides the command-line analysers built on the combat log engine.
"""

from .combat_analyzer import CombatLogAnalyzer

__all__ = [
    'CombatLogAnalyzer',
]
