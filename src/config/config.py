"""
Minimal Configuration Reader for SWG Combat Tools

A lightweight configuration system that provides:
- Profile-based configuration management
- JSON-based configuration storage with read-only access
- Built-in engine defaults that profiles override key by key
- Hierarchical configuration with dot-notation access

Usage:
    # Use the default singleton instance
    from config import config
    value = config.get('parser.max_hit')

    # Create a custom instance with specific profile
    from config import Config
    custom_config = Config(profile='raid_night')

The configuration system loads settings in this order (later overrides earlier):
1. Built-in defaults (Config.DEFAULTS)
2. Default or specified profile (profiles/<profile>.json)
"""

import copy
from typing import Dict, Any, List, Optional
from pathlib import Path

from swg_combat_tools.base import JSONTool, logger


class Config(JSONTool):
    """
    A minimal JSON-based configuration reader for the combat log tools.

    Attributes:
        config_dir (str): Directory containing profile JSON files
        profile (str): Currently active profile name
        data (dict): Loaded configuration data (defaults merged with profile)
    """

    DEFAULT_CONFIG_DIR = str(Path(__file__).parent / 'profiles')
    DEFAULT_PROFILE = "default"

    # Engine defaults; any profile value replaces the matching key
    DEFAULTS: Dict[str, Any] = {
        'general': {
            'log_level': 'INFO',
            'log_path': 'logs',
            'output_path': 'output',
        },
        'parser': {
            'max_hit': 60000,
            'progress_interval': 5000,
            'max_unparsed_samples': 50,
        },
        'segments': {
            'idle_gap': 60,
        },
        'insights': {
            'burst_window': 10,
            'decisive_window': 5,
        },
        'canon': {
            'aliases': {},
        },
    }

    def __init__(self, config_dir: str = None, profile: str = None,
                 config: Optional[Dict[str, Any]] = None):
        """
        Initialize the Config instance.

        Args:
            config_dir (str, optional): Directory for config profiles.
                Defaults to 'profiles' subdirectory relative to this file.
            profile (str, optional): Profile name to use. Defaults to 'default'.
            config (dict, optional): Base configuration dictionary for JSONTool compatibility.
        """
        super().__init__(config)

        self.config_dir = config_dir or self.DEFAULT_CONFIG_DIR
        self.profile = profile or self.DEFAULT_PROFILE
        self.data = {}

        Path(self.config_dir).mkdir(parents=True, exist_ok=True)

        self._load()

    def run(self) -> Dict[str, Any]:
        """
        Run the config tool (implementation of abstract method from CombatTool).

        Returns:
            The full configuration dictionary.
        """
        return self.get_full_config()

    def _load(self):
        """
        Load the built-in defaults and merge the profile JSON file over them.

        A missing default profile is created empty; a missing named profile
        leaves only the defaults in place.
        """
        self.data = copy.deepcopy(self.DEFAULTS)
        profile_path = Path(self.config_dir) / f"{self.profile}.json"

        if not profile_path.exists():
            if self.profile == self.DEFAULT_PROFILE:
                self._create_default_profile(str(profile_path))
            else:
                logger.warning(f"Profile '{self.profile}' not found. Using built-in defaults.")
            return

        try:
            profile_data = self.read_json(str(profile_path))
            if isinstance(profile_data, dict):
                self._deep_merge(self.data, profile_data)
            logger.info(f"Loaded configuration from '{self.profile}'")
        except Exception as e:
            logger.error(f"Error loading configuration: {e}")
            self.data = copy.deepcopy(self.DEFAULTS)

    def _create_default_profile(self, profile_path: str):
        """
        Create an empty default profile file.

        Args:
            profile_path (str): Path where the default profile will be created

        Note:
            The documented keys live in default.json.example.
        """
        try:
            self.write_json({}, profile_path)
            logger.info(f"Created default profile at '{profile_path}'")
        except Exception as e:
            logger.error(f"Error creating default configuration: {e}")

    def _deep_merge(self, target: Dict[str, Any], source: Dict[str, Any]):
        """
        Deep merge two dictionaries.

        Args:
            target (dict): The target dictionary to merge into
            source (dict): The source dictionary to merge from

        Note:
            Recursively merges nested dictionaries. Non-dict values in source
            will completely replace values in target.
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    def get(self, path: str = None, default: Any = None) -> Any:
        """
        Get a configuration value by path using dot notation.

        Args:
            path (str, optional): Dot notation path to the value
                (e.g., "segments.idle_gap"). If None, returns the entire
                configuration dictionary.
            default (Any, optional): Value to return if path not found.

        Returns:
            Any: The configuration value at the specified path, or default if not found.

        Examples:
            >>> config.get('parser.max_hit')
            60000
            >>> config.get('canon.aliases')
            {}
        """
        if path is None:
            return self.data

        current = self.data
        if path:
            for key in path.split('.'):
                if isinstance(current, dict) and key in current:
                    current = current[key]
                else:
                    return default

        return current

    def list_profiles(self) -> List[str]:
        """
        List all available profile names.

        Returns:
            List[str]: Profile names (without .json extension) found in the
                config directory.
        """
        config_path = Path(self.config_dir)
        return sorted(f.stem for f in config_path.glob("*.json"))

    def switch_profile(self, profile: str) -> bool:
        """
        Switch to a different profile.

        Args:
            profile (str): Name of profile to switch to (without .json extension).

        Returns:
            bool: True if successful, False if profile not found.
        """
        profile_path = Path(self.config_dir) / f"{profile}.json"
        if profile_path.exists():
            self.profile = profile
            self._load()
            return True
        else:
            logger.warning(f"Profile '{profile}' not found.")
            return False

    def get_full_config(self) -> Dict[str, Any]:
        """Return the full configuration dictionary."""
        return self.data


# Global singleton instance for convenient access throughout the application
# Usage: from config import config; value = config.get('some.key')
config = Config()
