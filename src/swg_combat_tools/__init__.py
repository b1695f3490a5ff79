"""
SWG Combat Tools - Python package for Star Wars Galaxies combat log analysis

This package turns raw combat log text into typed events, canonical actor
and ability names, per-second damage and healing series, per-ability and
defensive tables, and encounter segments.
"""

__version__ = '1.0.0'
