"""Input event and the hit selections layered on top of it."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

__all__ = ["Event", "HitSelection"]


@dataclass(frozen=True, eq=False)
class Event:
    """One trigger worth of detector hits.

    The hit array is made read-only: stages never modify an event, they
    produce new selections and products layered on top of it.

    Attributes
    ----------
    index : int
        Position of the event in the input stream
    hits : np.ndarray
        (N, >=3) Hit features, the first three columns being x, y and z
    run : int
        Run ID
    subrun : int
        Sub-run ID
    event : int
        Event ID
    """

    index: int
    hits: np.ndarray
    run: int = -1
    subrun: int = -1
    event: int = -1

    def __post_init__(self):
        hits = np.array(self.hits, dtype=float)
        if hits.ndim == 1 and hits.size == 0:
            hits = hits.reshape(0, 3)
        if hits.ndim != 2 or hits.shape[1] < 3:
            raise ValueError(
                f"Event {self.index} hits must be an (N, >=3) array, "
                f"got shape {hits.shape}."
            )
        hits.flags.writeable = False
        object.__setattr__(self, "hits", hits)

    def __len__(self):
        return len(self.hits)

    @property
    def num_hits(self) -> int:
        """Number of hits in the event."""
        return len(self.hits)

    def select_all(self) -> "HitSelection":
        """Selection of every hit in the event."""
        return HitSelection(self, np.arange(len(self.hits), dtype=np.int64))


@dataclass(frozen=True, eq=False)
class HitSelection:
    """Immutable subset of the hits of an event.

    Attributes
    ----------
    event : Event
        Event the hits belong to
    indices : np.ndarray
        (M,) Indices of the selected hits in the event hit array
    volume_id : int, optional
        Drift volume the selection is scoped to, if any
    """

    event: Event
    indices: np.ndarray
    volume_id: Optional[int] = None

    def __post_init__(self):
        indices = np.array(self.indices, dtype=np.int64).reshape(-1)
        indices.flags.writeable = False
        object.__setattr__(self, "indices", indices)

    def __len__(self):
        return len(self.indices)

    @property
    def size(self) -> int:
        """Number of selected hits."""
        return len(self.indices)

    @property
    def hits(self) -> np.ndarray:
        """(M, >=3) Features of the selected hits."""
        return self.event.hits[self.indices]

    def subset(self, local_indices, volume_id: Optional[int] = None) -> "HitSelection":
        """Select a subset of this selection.

        Parameters
        ----------
        local_indices : np.ndarray
            Indices of the hits to keep, relative to this selection
        volume_id : int, optional
            Drift volume the new selection is scoped to

        Returns
        -------
        HitSelection
            New selection
        """
        local_indices = np.asarray(local_indices, dtype=np.int64).reshape(-1)
        if len(local_indices) and (
            local_indices.min() < 0 or local_indices.max() >= len(self.indices)
        ):
            raise IndexError(
                "Local hit indices out of range for a selection of "
                f"{len(self.indices)} hits."
            )
        if volume_id is None:
            volume_id = self.volume_id

        return HitSelection(self.event, self.indices[local_indices], volume_id)

    def without(self, global_mask: np.ndarray) -> "HitSelection":
        """Remove the hits flagged in an event-wide mask.

        Parameters
        ----------
        global_mask : np.ndarray
            (N,) Boolean mask over all the hits of the event

        Returns
        -------
        HitSelection
            New selection without the flagged hits
        """
        keep = ~np.asarray(global_mask, dtype=bool)[self.indices]
        return HitSelection(self.event, self.indices[keep], self.volume_id)
