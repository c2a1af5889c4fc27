"""Drift volume geometry classes.

A drift volume is a box-shaped region of the detector with its own readout
wire planes and drift direction. Each volume which requires it is
reconstructed by its own context before the outputs are stitched together.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from larreco.errors import GeometryError

__all__ = ["DriftVolume", "DetectorGap", "DriftVolumeList", "VolumeGeometry"]


class BoxMixin:
    """Methods shared by box-shaped detector regions.

    Inheriting classes must provide `lower` and `upper` attributes.
    """

    @property
    def boundaries(self) -> np.ndarray:
        """(3, 2) Lower/upper boundaries along each axis."""
        return np.vstack((self.lower, self.upper)).T

    def contains(self, points: np.ndarray, margin: float = 0.0) -> np.ndarray:
        """Checks which points are inside the box.

        Parameters
        ----------
        points : np.ndarray
            (N, 3) Point coordinates (extra columns are ignored)
        margin : float, default 0.
            Tolerance added to each side of the box

        Returns
        -------
        np.ndarray
            (N,) Boolean mask, `True` for points inside the box
        """
        points = np.atleast_2d(points)[:, :3]
        inside = (points >= self.lower - margin) & (points <= self.upper + margin)

        return np.all(inside, axis=1)

    def overlaps(
        self, lower: np.ndarray, upper: np.ndarray, tolerance: float = 0.0
    ) -> bool:
        """Checks whether a box-shaped region intersects this box.

        Parameters
        ----------
        lower : np.ndarray
            (3,) Lower bounds of the region
        upper : np.ndarray
            (3,) Upper bounds of the region
        tolerance : float, default 0.
            Distance under which a region which only abuts the box is
            considered to overlap it

        Returns
        -------
        bool
            `True` if the region and the box intersect
        """
        lower, upper = np.asarray(lower, dtype=float), np.asarray(upper, dtype=float)
        return bool(
            np.all(lower <= self.upper + tolerance)
            and np.all(upper >= self.lower - tolerance)
        )


@dataclass(frozen=True, eq=False)
class DriftVolume(BoxMixin):
    """Class which holds all properties of an individual drift volume.

    Attributes
    ----------
    volume_id : int
        Unique identifier of the drift volume
    center : np.ndarray
        (3,) Position of the center of the volume
    dimensions : np.ndarray
        (3,) Full widths of the volume
    wire_pitch : Tuple[float, float, float]
        Wire pitch of the U, V and W planes
    wire_angle : Tuple[float, float, float]
        Wire angle (radians, w.r.t. the vertical) of the U, V and W planes
    sigma_uvw : float
        Hit position resolution in the wire planes
    positive_drift : bool
        Whether electrons drift towards increasing x
    distinct_context : bool
        Whether this volume requires its own reconstruction context
    """

    volume_id: int
    center: np.ndarray
    dimensions: np.ndarray
    wire_pitch: Tuple[float, float, float] = (0.3, 0.3, 0.3)
    wire_angle: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    sigma_uvw: float = 1.0
    positive_drift: bool = True
    distinct_context: bool = True

    def __post_init__(self):
        """Check and freeze the geometry arrays."""
        center = np.array(self.center, dtype=float)
        dimensions = np.array(self.dimensions, dtype=float)
        if center.shape != (3,) or dimensions.shape != (3,):
            raise GeometryError(
                f"Drift volume {self.volume_id} must have a 3D center and "
                "3D dimensions."
            )
        if np.any(dimensions <= 0.0):
            raise GeometryError(
                f"Drift volume {self.volume_id} has non-positive "
                f"dimensions: {dimensions.tolist()}"
            )
        if len(self.wire_pitch) != 3 or len(self.wire_angle) != 3:
            raise GeometryError(
                f"Drift volume {self.volume_id} must define the U, V and W "
                "wire pitches and angles."
            )

        center.flags.writeable = False
        dimensions.flags.writeable = False
        object.__setattr__(self, "center", center)
        object.__setattr__(self, "dimensions", dimensions)
        object.__setattr__(
            self, "wire_pitch", tuple(float(p) for p in self.wire_pitch)
        )
        object.__setattr__(
            self, "wire_angle", tuple(float(a) for a in self.wire_angle)
        )

    @property
    def name(self) -> str:
        """Name under which the volume context is registered."""
        return f"driftVolume_{self.volume_id}"

    @property
    def lower(self) -> np.ndarray:
        """(3,) Lower bounds of the volume."""
        return self.center - self.dimensions / 2.0

    @property
    def upper(self) -> np.ndarray:
        """(3,) Upper bounds of the volume."""
        return self.center + self.dimensions / 2.0

    @property
    def drift_axis(self) -> int:
        """Axis along which the electrons drift (always x)."""
        return 0

    @property
    def drift_sign(self) -> int:
        """Sign of the drift w.r.t. the x axis."""
        return 1 if self.positive_drift else -1

    @property
    def anode_pos(self) -> float:
        """Position of the anode (readout planes) along the drift axis."""
        side = self.upper if self.positive_drift else self.lower
        return float(side[self.drift_axis])

    @property
    def cathode_pos(self) -> float:
        """Position of the cathode along the drift axis."""
        side = self.lower if self.positive_drift else self.upper
        return float(side[self.drift_axis])


@dataclass(frozen=True, eq=False)
class DetectorGap(BoxMixin):
    """Inactive region of the detector (dead wires, gaps between volumes).

    Attributes
    ----------
    lower : np.ndarray
        (3,) Lower bounds of the gap
    upper : np.ndarray
        (3,) Upper bounds of the gap
    """

    lower: np.ndarray
    upper: np.ndarray

    def __post_init__(self):
        """Check and freeze the boundaries."""
        lower = np.array(self.lower, dtype=float)
        upper = np.array(self.upper, dtype=float)
        if lower.shape != (3,) or upper.shape != (3,) or np.any(upper < lower):
            raise GeometryError(
                f"Invalid detector gap boundaries: {lower.tolist()}, {upper.tolist()}"
            )

        lower.flags.writeable = False
        upper.flags.writeable = False
        object.__setattr__(self, "lower", lower)
        object.__setattr__(self, "upper", upper)


@dataclass(frozen=True, eq=False)
class VolumeGeometry:
    """Geometry handed to the context of one drift volume.

    Attributes
    ----------
    volume : DriftVolume
        Drift volume the context is scoped to
    gaps : Tuple[DetectorGap, ...]
        Detector gaps which touch the volume
    """

    volume: DriftVolume
    gaps: Tuple[DetectorGap, ...] = ()


class DriftVolumeList:
    """Ordered collection of drift volumes with unique identifiers.

    The order of the volumes is the order in which they were described and
    determines the order in which the daughter contexts are created.
    """

    def __init__(
        self,
        volumes: Sequence[DriftVolume],
        gaps: Optional[Sequence[DetectorGap]] = None,
    ):
        """Initialize the list, check the uniqueness of identifiers.

        Parameters
        ----------
        volumes : List[DriftVolume]
            Drift volumes, in description order
        gaps : List[DetectorGap], optional
            Detector gaps
        """
        ids = [v.volume_id for v in volumes]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise GeometryError(f"Duplicate drift volume identifiers: {duplicates}")

        self._volumes = tuple(volumes)
        self.gaps = tuple(gaps) if gaps is not None else ()

    def __len__(self) -> int:
        return len(self._volumes)

    def __iter__(self) -> Iterator[DriftVolume]:
        return iter(self._volumes)

    def __getitem__(self, idx: int) -> DriftVolume:
        return self._volumes[idx]

    def __repr__(self) -> str:
        return f"DriftVolumeList(ids={self.ids}, num_gaps={len(self.gaps)})"

    @property
    def ids(self) -> List[int]:
        """Identifiers of the volumes, in order."""
        return [v.volume_id for v in self._volumes]

    @property
    def distinct(self) -> List[DriftVolume]:
        """Volumes which require their own reconstruction context."""
        return [v for v in self._volumes if v.distinct_context]

    def get(self, volume_id: int) -> DriftVolume:
        """Fetch a volume from its identifier.

        Parameters
        ----------
        volume_id : int
            Volume identifier

        Returns
        -------
        DriftVolume
            Matching drift volume
        """
        for volume in self._volumes:
            if volume.volume_id == volume_id:
                return volume

        raise KeyError(f"No drift volume with identifier {volume_id}.")

    def volumes_for_region(
        self, lower: np.ndarray, upper: np.ndarray, tolerance: float = 1.0
    ) -> List[DriftVolume]:
        """List the volumes a region maps onto.

        A region maps onto every volume it intersects. A gap which sits in
        between two volumes (within the tolerance) maps onto both.

        Parameters
        ----------
        lower : np.ndarray
            (3,) Lower bounds of the region
        upper : np.ndarray
            (3,) Upper bounds of the region
        tolerance : float, default 1.
            Maximum distance between a region and a volume it abuts

        Returns
        -------
        List[DriftVolume]
            Volumes the region maps onto, in list order
        """
        return [v for v in self._volumes if v.overlaps(lower, upper, tolerance)]

    def gaps_for(
        self, volume: DriftVolume, tolerance: float = 1.0
    ) -> Tuple[DetectorGap, ...]:
        """List the gaps which map onto a volume.

        Parameters
        ----------
        volume : DriftVolume
            Drift volume
        tolerance : float, default 1.
            Maximum distance between a gap and a volume it abuts

        Returns
        -------
        Tuple[DetectorGap, ...]
            Gaps which touch the volume
        """
        return tuple(
            g for g in self.gaps if volume.overlaps(g.lower, g.upper, tolerance)
        )

    def geometry(self, volume: DriftVolume) -> VolumeGeometry:
        """Geometry of one volume, with the gaps that touch it."""
        return VolumeGeometry(volume, self.gaps_for(volume))

    def assign(self, points: np.ndarray) -> np.ndarray:
        """Assign each point to the first volume which contains it.

        Parameters
        ----------
        points : np.ndarray
            (N, 3) Point coordinates (extra columns are ignored)

        Returns
        -------
        np.ndarray
            (N,) Index of the volume in the list, -1 if outside all volumes
        """
        points = np.atleast_2d(points)
        assignment = -np.ones(len(points), dtype=np.int64)
        for i, volume in enumerate(self._volumes):
            mask = (assignment < 0) & volume.contains(points)
            assignment[mask] = i

        return assignment
