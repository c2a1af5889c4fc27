"""Configuration loading.

Configuration files are YAML documents which may pull in other files with
an ``include`` directive and may be amended from the command line with
dot-notation overrides (``reco.should_run_slicing=false``).

Main Entry Point
----------------
load_config_file : Load a configuration file with its includes resolved
"""

from .errors import ConfigCycleError, ConfigIncludeError, ConfigTypeError
from .loader import (
    apply_overrides,
    deep_merge,
    load_config_file,
    parse_value,
    set_nested_value,
)

__all__ = [
    "load_config_file",
    "apply_overrides",
    "deep_merge",
    "parse_value",
    "set_nested_value",
    "ConfigIncludeError",
    "ConfigCycleError",
    "ConfigTypeError",
]
