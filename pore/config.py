#!/usr/bin/env python3

import os
import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import logging
import sys

from .exit_codes import ConfigError

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr) # Default to stderr
    ]
)
logger = logging.getLogger("pore")


@dataclass(frozen=True)
class RemoteConfig:
    """A named remote: base URL, manifest project and the depot it caches into."""
    name: str
    url: str
    manifest: str = "platform/manifest"
    depot: str = "default"

    def __post_init__(self):
        if not self.url.endswith('/'):
            object.__setattr__(self, 'url', self.url + '/')

    def project_url(self, project: str) -> str:
        return f"{self.url}{project}.git"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'url': self.url,
            'manifest': self.manifest,
            'depot': self.depot,
        }


@dataclass(frozen=True)
class DepotConfig:
    """A named depot root on the local disk."""
    name: str
    path: str

    def expanded_path(self) -> Path:
        return Path(os.path.expanduser(self.path))

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'path': self.path}


@dataclass
class Config:
    """
    Resolved configuration.

    Remotes and depots are looked up by name; everything else stays in
    ``settings`` as the merged configuration dictionary.
    """
    remotes: List[RemoteConfig] = field(default_factory=list)
    depots: List[DepotConfig] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        try:
            remotes = [RemoteConfig(**remote) for remote in data.get('remotes', [])]
            depots = [DepotConfig(**depot) for depot in data.get('depots', [])]
        except TypeError as e:
            raise ConfigError("invalid remote or depot entry in config") from e

        settings = {k: v for k, v in data.items() if k not in ('remotes', 'depots')}
        return cls(remotes=remotes, depots=depots, settings=settings)

    @classmethod
    def default(cls) -> 'Config':
        return cls.from_dict(get_default_config())

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.settings)
        data['remotes'] = [remote.to_dict() for remote in self.remotes]
        data['depots'] = [depot.to_dict() for depot in self.depots]
        return data

    def find_remote(self, name: str) -> RemoteConfig:
        for remote in self.remotes:
            if remote.name == name:
                return remote
        raise ConfigError(f"unknown remote '{name}'")

    def find_depot(self, name: str):
        """Return a :class:`pore.depot.Depot` for the named depot."""
        from .depot import Depot

        for depot in self.depots:
            if depot.name == name:
                return Depot(depot.name, depot.expanded_path())
        raise ConfigError(f"unknown depot '{name}'")

    @property
    def jobs(self) -> Optional[int]:
        """Configured worker count, or None to let the pool pick."""
        jobs = self.settings.get('general', {}).get('jobs', 0)
        try:
            jobs = int(jobs)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid general.jobs value: {jobs!r}")
            return None
        return jobs if jobs > 0 else None


def get_config_path(override: Optional[str] = None) -> Path:
    """Get the path to the configuration file.

    Checks in order:
    1. Explicit override (the --config option)
    2. PORE_CONFIG environment variable
    3. ~/.pore.toml
    4. ~/.pore/ directory
    """
    if override:
        return Path(os.path.expanduser(override))

    # Check for environment variable override
    if 'PORE_CONFIG' in os.environ:
        return Path(os.path.expanduser(os.environ['PORE_CONFIG']))

    home_config = Path.home() / '.pore.toml'
    if home_config.exists():
        return home_config

    pore_dir = Path.home() / '.pore'
    for filename in ['config.toml', 'config.yaml', 'config.yml', 'config.json']:
        path = pore_dir / filename
        if path.exists():
            return path

    # If no file exists, return default path
    return home_config


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    elif suffix in ['.yaml', '.yml']:
        import yaml
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    else:
        # Default to JSON format
        with open(config_path, 'r') as f:
            return json.load(f)


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file."""
    config_path = get_config_path(path)

    # Start with default config
    config = get_default_config()

    # Load from file if it exists
    if config_path.exists():
        try:
            file_config = _read_config_file(config_path)
            logger.info(f"using config file {config_path}")
            # Merge file config with defaults
            config = merge_configs(config, file_config)
        except Exception as e:
            logger.error(f"Error loading config from {config_path}: {e}")
    else:
        logger.info(f"no config file at {config_path}, using default config")

    # Apply environment variable overrides
    config = apply_env_overrides(config)

    return Config.from_dict(config)


def dump_config(config: Config) -> str:
    """Serialize a configuration as TOML."""
    import toml
    return toml.dumps(config.to_dict())


def get_default_config() -> Dict[str, Any]:
    """Get default configuration."""
    return {
        "general": {
            "jobs": 0,  # 0 = one worker per CPU
        },
        "logging": {
            "level": "WARNING",
            "format": "%(levelname)s: %(message)s"
        },
        "remotes": [
            {
                "name": "aosp",
                "url": "https://android.googlesource.com/",
                "manifest": "platform/manifest",
                "depot": "android",
            }
        ],
        "depots": [
            {
                "name": "android",
                "path": "~/.pore/android",
            }
        ],
    }


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            # Recursively merge nested dictionaries
            merged[key] = merge_configs(merged[key], value)
        else:
            # Override or add new key; lists such as remotes are replaced
            merged[key] = value

    return merged


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: PORE_SECTION_KEY
    For example: PORE_GENERAL_JOBS=8
    """
    env_prefix = "PORE_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix) or env_key == 'PORE_CONFIG':
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        # Convert value
        if value.lower() in ('true', 'yes', 'on'):
            typed_value = True
        elif value.lower() in ('false', 'no', 'off'):
            typed_value = False
        elif value.isdigit():
            typed_value = int(value)
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            # Find the longest key in current_level that is a prefix of the remaining key_parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts_from_key = config_key.split('_')
                if key_parts[i : i + len(config_key_parts_from_key)] == config_key_parts_from_key:
                    if len(config_key_parts_from_key) > best_match_len:
                        best_match_len = len(config_key_parts_from_key)
                        matched_key = config_key

            if matched_key:
                # If we are at the end of the env var, we have found the key to set
                if i + best_match_len == len(key_parts):
                    if not isinstance(current_level[matched_key], (dict, list)):
                        current_level[matched_key] = typed_value
                    break

                # Otherwise, we descend into the dictionary
                if isinstance(current_level[matched_key], dict):
                    current_level = current_level[matched_key]
                    i += best_match_len
                else:
                    # Path conflict, e.g., env var is longer but we found a non-dict value
                    break
            else:
                # No match found
                break

    return config


def configure_logging(config: Config, verbosity: int = 0) -> None:
    """Apply the configured log level, raised by each -v."""
    logging_settings = config.settings.get('logging', {})
    level_name = str(logging_settings.get('level', 'WARNING')).upper()
    level = getattr(logging, level_name, logging.WARNING)

    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = min(level, logging.INFO)

    logger.setLevel(level)

    fmt = logging_settings.get('format')
    if fmt:
        for handler in logging.getLogger().handlers:
            handler.setFormatter(logging.Formatter(fmt))
