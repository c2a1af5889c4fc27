"""YAML configuration loader.

Include Semantics:
    include: base.yaml               # Single file
    include: [base.yaml, other.yaml] # Multiple files (order matters)

Included files are merged depth-first, in order, and the including file is
merged on top of them. Relative include paths are resolved with respect to
the directory of the including file, then through the directories listed in
``$LARRECO_CONFIG_PATH``.

Override Semantics:
    override:
      reco.should_run_slicing: false  # Set value with dot notation
"""

import os
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigCycleError, ConfigIncludeError, ConfigTypeError

__all__ = [
    "load_config_file",
    "resolve_config_path",
    "deep_merge",
    "parse_value",
    "set_nested_value",
    "apply_overrides",
]

INCLUDE_KEY = "include"
OVERRIDE_KEY = "override"
CONFIG_PATH_ENV = "LARRECO_CONFIG_PATH"


def resolve_config_path(
    filename: str, current_dir: str, search_paths: Optional[List[str]] = None
) -> str:
    """Resolve a configuration file path.

    Resolution order:
    1. If absolute path, return as-is
    2. Try relative to current_dir
    3. Search through LARRECO_CONFIG_PATH directories

    Parameters
    ----------
    filename : str
        Config filename or path to resolve
    current_dir : str
        Directory of the config file doing the including
    search_paths : List[str], optional
        List of search paths (defaults to LARRECO_CONFIG_PATH env var)

    Returns
    -------
    str
        Resolved absolute path

    Raises
    ------
    ConfigIncludeError
        If file cannot be found in any location
    """
    if os.path.isabs(filename):
        if os.path.isfile(filename):
            return filename
        raise ConfigIncludeError(f"Absolute path not found: {filename}")

    candidate = os.path.join(current_dir, filename)
    if os.path.isfile(candidate):
        return os.path.abspath(candidate)

    if search_paths is None:
        env = os.environ.get(CONFIG_PATH_ENV, "")
        search_paths = [p for p in env.split(os.pathsep) if p]

    for path in search_paths:
        candidate = os.path.join(path, filename)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)

    raise ConfigIncludeError(
        f"Configuration file '{filename}' not found relative to "
        f"'{current_dir}' or in ${CONFIG_PATH_ENV}."
    )


def deep_merge(
    base_dict: Dict[str, Any], override_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Recursively merge override_dict into base_dict.

    Parameters
    ----------
    base_dict : Dict[str, Any]
        Base dictionary
    override_dict : Dict[str, Any]
        Override dictionary

    Returns
    -------
    Dict[str, Any]
        Merged dictionary (new copy)
    """
    result = deepcopy(base_dict)
    for key, value in override_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def parse_value(value_str: Any) -> Any:
    """Parse a string value into appropriate Python type.

    Parameters
    ----------
    value_str : Any
        Value to parse (if string, attempts YAML parsing)

    Returns
    -------
    Any
        Parsed value
    """
    if not isinstance(value_str, str) or value_str.strip() == "":
        return value_str

    try:
        return yaml.safe_load(value_str)
    except yaml.YAMLError:
        return value_str


def set_nested_value(
    config: Dict[str, Any], key_path: str, value: Any
) -> Dict[str, Any]:
    """Set a nested value using dot notation, creating parents as needed.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary
    key_path : str
        Dot-separated path (e.g., "reco.should_run_slicing")
    value : Any
        Value to set

    Returns
    -------
    Dict[str, Any]
        Modified configuration

    Raises
    ------
    ConfigTypeError
        If path traverses non-dict value
    """
    keys = key_path.split(".")
    current = config
    for key in keys[:-1]:
        if key not in current or current[key] is None:
            current[key] = {}
        elif not isinstance(current[key], dict):
            raise ConfigTypeError(
                f"Cannot set '{key_path}': '{key}' is not a dictionary"
            )
        current = current[key]

    current[keys[-1]] = value

    return config


def apply_overrides(config: Dict[str, Any], overrides: List[str]) -> Dict[str, Any]:
    """Apply a list of ``key.path=value`` overrides to a configuration.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary
    overrides : List[str]
        List of overrides in the form "key.path=value"

    Returns
    -------
    Dict[str, Any]
        Modified configuration
    """
    for override in overrides:
        if "=" not in override:
            raise ValueError(
                f"Invalid --set format: '{override}'. "
                "Expected format: 'key.path=value'"
            )

        key_path, value_str = override.split("=", 1)
        set_nested_value(config, key_path.strip(), parse_value(value_str.strip()))

    return config


def _extract_directives(
    config: Dict[str, Any],
) -> Tuple[Dict[str, Any], List[str], Dict[str, Any]]:
    """Split the include and override directives from the content."""
    config = dict(config)
    includes = config.pop(INCLUDE_KEY, None) or []
    if isinstance(includes, str):
        includes = [includes]
    overrides = config.pop(OVERRIDE_KEY, None) or {}

    return config, list(includes), dict(overrides)


def _load_config_recursive(cfg_path: str, stack: List[str]) -> Dict[str, Any]:
    """Load one configuration file and everything it includes.

    Parameters
    ----------
    cfg_path : str
        Absolute path to the configuration file
    stack : List[str]
        Files currently being loaded, used to detect include cycles

    Returns
    -------
    Dict[str, Any]
        Merged configuration
    """
    if cfg_path in stack:
        raise ConfigCycleError(stack + [cfg_path])

    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as err:
        raise ConfigIncludeError(
            f"Could not load configuration file {cfg_path}: {err}"
        ) from err

    if not isinstance(content, dict):
        raise ConfigIncludeError(
            f"Configuration file {cfg_path} must contain a mapping at the top level."
        )

    content, includes, overrides = _extract_directives(content)

    # Merge included files first, in order, then the file content on top
    config = {}
    current_dir = os.path.dirname(cfg_path)
    for include in includes:
        include_path = resolve_config_path(include, current_dir)
        included = _load_config_recursive(include_path, stack + [cfg_path])
        config = deep_merge(config, included)

    config = deep_merge(config, content)
    for key_path, value in overrides.items():
        set_nested_value(config, key_path, parse_value(value))

    return config


def load_config_file(cfg_path: str) -> Dict[str, Any]:
    """Load a configuration from a file.

    Parameters
    ----------
    cfg_path : str
        Path to configuration file

    Returns
    -------
    Dict[str, Any]
        Loaded and merged configuration

    Raises
    ------
    ConfigCycleError
        If circular include detected
    ConfigIncludeError
        If the file or an included file is not found or can't be loaded
    """
    cfg_path = os.path.abspath(cfg_path)
    if not os.path.isfile(cfg_path):
        raise ConfigIncludeError(f"Configuration file not found: {cfg_path}")

    return _load_config_recursive(cfg_path, [])
