"""Products of the reconstruction stages, per stage, slice, event and run."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from larreco.utils.enums import EventState, StageKind

from .event import HitSelection

__all__ = [
    "StageResult",
    "MergedResult",
    "SliceResult",
    "EventResult",
    "RunSummary",
]


@dataclass(eq=False)
class StageResult:
    """Output of one stage invocation on one context.

    Attributes
    ----------
    stage : StageKind
        Stage which produced the result
    selection : HitSelection, optional
        Hits the stage was run on
    cosmic_tags : np.ndarray, optional
        (M,) Boolean mask aligned with the selection, `True` for hits
        attributed to cosmic rays
    slices : List[np.ndarray], optional
        Indices of the hits in each slice, relative to the selection
    scores : np.ndarray, optional
        (S,) Neutrino score of each slice
    products : dict
        Opaque products of the context (particles, vertices...)
    """

    stage: StageKind
    selection: Optional[HitSelection] = None
    cosmic_tags: Optional[np.ndarray] = None
    slices: Optional[List[np.ndarray]] = None
    scores: Optional[np.ndarray] = None
    products: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class MergedResult:
    """Output of the primary context stitching step.

    Attributes
    ----------
    cosmic_tags : np.ndarray
        (N,) Event-wide cosmic tag mask
    volume_ids : List[int]
        Drift volumes which contributed to the merge, in order
    products : dict
        Products of each contributing volume, keyed by volume ID
    """

    cosmic_tags: np.ndarray
    volume_ids: List[int] = field(default_factory=list)
    products: Dict[int, Any] = field(default_factory=dict)


@dataclass(eq=False)
class SliceResult:
    """Reconstruction outputs of one slice.

    Attributes
    ----------
    index : int
        Slice index
    selection : HitSelection
        Hits which make up the slice
    results : Dict[StageKind, StageResult]
        Output of each hypothesis run on the slice
    score : float, optional
        Neutrino score assigned by the slice identification stage
    interpretation : StageKind, optional
        Hypothesis retained for this slice
    """

    index: int
    selection: HitSelection
    results: Dict[StageKind, StageResult] = field(default_factory=dict)
    score: Optional[float] = None
    interpretation: Optional[StageKind] = None

    @property
    def result(self) -> Optional[StageResult]:
        """Output of the retained hypothesis, if any."""
        if self.interpretation is None:
            return None
        return self.results.get(self.interpretation)


@dataclass(eq=False)
class EventResult:
    """Outcome of the pipeline for one event.

    Attributes
    ----------
    index : int
        Position of the event in the input stream
    state : EventState
        Last state reached by the event
    stages_run : List[StageKind]
        Stages which were run, in order
    cosmic_tags : np.ndarray, optional
        (N,) Event-wide cosmic tag mask, if the all-hits cosmic pass ran
    merged : MergedResult, optional
        Output of the stitching step, if there were daughter contexts
    slices : List[SliceResult]
        Slices, in slice-index order
    neutrino_slice : int, optional
        Index of the slice identified as the neutrino interaction
    error : str, optional
        Failure message, if the event failed
    """

    index: int
    state: EventState = EventState.LOADED
    stages_run: List[StageKind] = field(default_factory=list)
    cosmic_tags: Optional[np.ndarray] = None
    merged: Optional[MergedResult] = None
    slices: List[SliceResult] = field(default_factory=list)
    neutrino_slice: Optional[int] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """Whether the event went through the pipeline without failure."""
        return self.state != EventState.FAILED

    @property
    def num_slices(self) -> int:
        """Number of slices in the event."""
        return len(self.slices)


@dataclass(eq=False)
class RunSummary:
    """Outcome of the event loop.

    Attributes
    ----------
    results : List[EventResult]
        Result of each processed event, in processing order
    """

    results: List[EventResult] = field(default_factory=list)

    def append(self, result: EventResult):
        self.results.append(result)

    @property
    def num_processed(self) -> int:
        """Number of events fed to the pipeline."""
        return len(self.results)

    @property
    def processed_indices(self) -> List[int]:
        """Stream indices of the events fed to the pipeline."""
        return [r.index for r in self.results]

    @property
    def failed_indices(self) -> List[int]:
        """Stream indices of the events which failed."""
        return [r.index for r in self.results if not r.succeeded]

    @property
    def num_failed(self) -> int:
        """Number of events which failed."""
        return len(self.failed_indices)
