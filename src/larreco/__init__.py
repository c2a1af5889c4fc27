"""Top-level module of the LArReco source code."""

# Import main workflow entry points
from .driver import Driver, process_events
from .version import __version__

# Import commonly used data structures
from .data import Event, EventResult, HitSelection, RunSummary
from .errors import ConfigurationError, GeometryError, ReconstructionError
from .parameters import Parameters
