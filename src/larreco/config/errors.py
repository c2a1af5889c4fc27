"""Typed exceptions for configuration file loading."""

from typing import List

from larreco.errors import ConfigurationError


class ConfigIncludeError(ConfigurationError):
    """Raised when an included file cannot be found or loaded."""


class ConfigCycleError(ConfigurationError):
    """Raised when a circular include dependency is detected."""

    def __init__(self, cycle_path: List[str]):
        """Initialize with the cycle path.

        Parameters
        ----------
        cycle_path : List[str]
            List of file paths showing the include cycle
        """
        self.cycle_path = cycle_path
        cycle_str = " -> ".join(cycle_path)
        super().__init__(f"Circular include detected: {cycle_str}")


class ConfigTypeError(ConfigurationError):
    """Raised when an override traverses a value which is not a mapping."""
