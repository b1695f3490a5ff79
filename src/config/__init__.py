# Configuration package initialization
"""
SWG Combat Tools - Configuration System

This package provides a lightweight profile-based configuration system for
the combat log tools.

Quick Usage:
    # Import the pre-configured instance
    from config import config

    idle_gap = config.get('segments.idle_gap')

    # Or create a custom instance
    from config import Config
    raid_config = Config(profile='raid_night')
"""

from config.config import Config, config

# Export the Config class and default instance
__all__ = ['Config', 'config']
