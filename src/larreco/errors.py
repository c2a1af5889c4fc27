"""Typed exceptions raised by the reconstruction orchestration.

Configuration problems are fatal and raised before any event is processed.
Reconstruction problems are scoped to a single event and are contained by
the pipeline stager and the event loop.
"""

from typing import Optional


class LArRecoError(Exception):
    """Base exception for all orchestration errors."""


class ConfigurationError(LArRecoError):
    """Raised when a mandatory resource is missing or the configuration is
    inconsistent (missing settings file, bad flag/volume combination...)."""


class GeometryError(ConfigurationError):
    """Raised when a drift volume description or geometry file is missing
    or malformed. No context can be built without a valid geometry."""

    def __init__(self, message: str, path: Optional[str] = None):
        """Initialize with the offending file, if known.

        Parameters
        ----------
        message : str
            Description of the problem
        path : str, optional
            Path to the geometry file which could not be interpreted
        """
        self.path = path
        if path is not None:
            message = f"{message} (file: {path})"
        super().__init__(message)


class ReconstructionError(LArRecoError):
    """Raised when a reconstruction stage fails for one event."""

    def __init__(self, message: str, stage=None, event: Optional[int] = None):
        """Initialize with the stage and event that failed.

        Parameters
        ----------
        message : str
            Description of the failure
        stage : StageKind, optional
            Stage being run when the failure occurred
        event : int, optional
            Index of the event in the input stream
        """
        self.stage = stage
        self.event = event
        super().__init__(message)
