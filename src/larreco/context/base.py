"""Reconstruction context base class.

A reconstruction context is an independently configured instance of the
reconstruction software. The orchestration never looks inside it: it only
configures it, asks it to run stages on selections of hits, resets it
between events and, for the primary context, asks it to stitch the outputs
of its daughter contexts together.

To provide a new implementation, inherit from :class:`ReconstructionContext`,
give the class a `name` and define :meth:`ReconstructionContext.process`.
"""

import os
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import numpy as np

from larreco.data import MergedResult, StageResult
from larreco.errors import ConfigurationError, ReconstructionError
from larreco.geo.volume import VolumeGeometry
from larreco.utils.enums import StageKind, enum_factory
from larreco.utils.logger import logger

__all__ = ["ReconstructionContext"]


class ReconstructionContext(ABC):
    """Parent class of all reconstruction context implementations.

    Attributes
    ----------
    name : str
        Name of the implementation, as requested in the configuration
    label : str
        Name of this instance (`primary`, `driftVolume_<id>`...)
    settings_files : List[str]
        Settings files the context was configured with, in order
    geometry : Union[DriftVolumeList, VolumeGeometry]
        Geometry the context is scoped to
    daughters : Dict[str, Tuple[ReconstructionContext, VolumeGeometry]]
        Daughter contexts, keyed by volume name (primary only)
    workers : Dict[StageKind, ReconstructionContext]
        Slice worker contexts, keyed by the stage they run (primary only)
    external_parameters : dict
        Steering parameters forwarded from the application
    output : StageResult
        Output of the last stage run in the current event
    """

    name = ""

    def __init__(self, label: str = "primary"):
        """Initialize the bookkeeping shared by all implementations.

        Parameters
        ----------
        label : str, default 'primary'
            Name of this instance
        """
        self.label = label
        self.settings_files: List[str] = []
        self.geometry = None
        self.daughters = OrderedDict()
        self.workers: Dict[StageKind, "ReconstructionContext"] = {}
        self.external_parameters: Dict[str, Any] = {}
        self.output: Optional[StageResult] = None
        self.closed = False

    def __repr__(self):
        return f"{type(self).__name__}(label={self.label!r})"

    @abstractmethod
    def process(self, kind: StageKind, data) -> StageResult:
        """Run one reconstruction stage.

        Parameters
        ----------
        kind : StageKind
            Stage to run
        data : Union[HitSelection, List[SliceResult]]
            Hits to run on, or the list of reconstructed slices for the
            slice identification stage

        Returns
        -------
        StageResult
            Output of the stage
        """
        raise NotImplementedError

    def read_settings(self, settings_path: str):
        """Hook called for each settings file, after the path is checked.

        Parameters
        ----------
        settings_path : str
            Path to the settings file
        """

    def merge(self, outputs: Dict[int, StageResult]) -> Dict[int, Any]:
        """Hook which combines the daughter products while stitching.

        Parameters
        ----------
        outputs : Dict[int, StageResult]
            Last output of each daughter context, keyed by volume ID

        Returns
        -------
        Dict[int, Any]
            Merged products
        """
        return {volume_id: output.products for volume_id, output in outputs.items()}

    def clear(self):
        """Hook which drops implementation-specific per-event state."""

    def configure(self, settings_path: str):
        """Configure the context with a settings file.

        Parameters
        ----------
        settings_path : str
            Path to the settings file

        Raises
        ------
        ConfigurationError
            If the settings file is not specified or cannot be read
        """
        if not settings_path:
            raise ConfigurationError(
                f"No settings file provided to configure context `{self.label}`."
            )
        if not os.path.isfile(settings_path) or not os.access(settings_path, os.R_OK):
            raise ConfigurationError(
                f"Cannot read settings file for context `{self.label}`: "
                f"{settings_path}"
            )

        self.read_settings(settings_path)
        self.settings_files.append(settings_path)
        logger.debug("Configured context `%s` with %s", self.label, settings_path)

    def set_geometry(self, geometry):
        """Provide the geometry the context is scoped to.

        Parameters
        ----------
        geometry : Union[DriftVolumeList, VolumeGeometry]
            Full detector geometry (primary) or single volume (daughter)
        """
        self.geometry = geometry

    def set_external_parameters(self, parameters: Dict[str, Any]):
        """Provide external steering parameters.

        Parameters
        ----------
        parameters : dict
            Steering parameters
        """
        self.external_parameters = dict(parameters)

    def run_stage(self, kind, data) -> StageResult:
        """Run one reconstruction stage, record its output.

        Parameters
        ----------
        kind : Union[StageKind, str]
            Stage to run
        data : Union[HitSelection, List[SliceResult]]
            Input of the stage

        Returns
        -------
        StageResult
            Output of the stage

        Raises
        ------
        ReconstructionError
            If the stage fails or does not return a stage result
        """
        if self.closed:
            raise ReconstructionError(
                f"Context `{self.label}` has been closed.", stage=kind
            )

        kind = enum_factory(StageKind, kind)
        try:
            result = self.process(kind, data)
        except ReconstructionError:
            raise
        except Exception as err:
            raise ReconstructionError(
                f"Context `{self.label}` failed to run stage `{kind.value}`: {err!r}",
                stage=kind,
            ) from err

        if not isinstance(result, StageResult):
            raise ReconstructionError(
                f"Context `{self.label}` returned {type(result).__name__} "
                f"instead of a StageResult for stage `{kind.value}`.",
                stage=kind,
            )

        self.output = result

        return result

    def reset(self):
        """Drop the per-event transient state."""
        self.output = None
        self.clear()

    def register_daughter(
        self, context: "ReconstructionContext", geometry: VolumeGeometry
    ):
        """Register a daughter context scoped to one drift volume.

        Parameters
        ----------
        context : ReconstructionContext
            Daughter context
        geometry : VolumeGeometry
            Geometry of the volume the daughter is scoped to

        Raises
        ------
        ConfigurationError
            If the daughter is this context or the volume is already taken
        """
        if context is self:
            raise ConfigurationError("A context cannot be its own daughter.")

        key = geometry.volume.name
        if key in self.daughters:
            raise ConfigurationError(
                f"A daughter context is already registered for `{key}`."
            )

        self.daughters[key] = (context, geometry)

    def register_worker(self, kind, context: "ReconstructionContext"):
        """Register a worker context which runs one per-slice stage.

        Parameters
        ----------
        kind : Union[StageKind, str]
            Stage the worker runs
        context : ReconstructionContext
            Worker context
        """
        kind = enum_factory(StageKind, kind)
        if kind in self.workers:
            raise ConfigurationError(
                f"A worker context is already registered for `{kind.value}`."
            )

        self.workers[kind] = context

    @property
    def contexts(self) -> List["ReconstructionContext"]:
        """This context followed by every daughter and worker it owns."""
        return (
            [self]
            + [context for context, _ in self.daughters.values()]
            + list(self.workers.values())
        )

    def stitch(self) -> MergedResult:
        """Merge the last output of every daughter into one event-wide result.

        Returns
        -------
        MergedResult
            Event-wide cosmic tags and the merged daughter products

        Raises
        ------
        ReconstructionError
            If there is no daughter or a daughter has no output to merge
        """
        if not self.daughters:
            raise ReconstructionError(
                f"Context `{self.label}` has no daughter to stitch."
            )

        outputs = OrderedDict()
        for key, (context, geometry) in self.daughters.items():
            if context.output is None or context.output.selection is None:
                raise ReconstructionError(
                    f"Daughter context `{key}` has no output to stitch."
                )
            outputs[geometry.volume.volume_id] = context.output

        # Map the per-volume tags back onto the event-wide hit list
        event = next(iter(outputs.values())).selection.event
        tags = np.zeros(event.num_hits, dtype=bool)
        for volume_id, output in outputs.items():
            if output.cosmic_tags is None:
                continue
            volume_tags = np.asarray(output.cosmic_tags, dtype=bool)
            if volume_tags.shape != output.selection.indices.shape:
                raise ReconstructionError(
                    f"Cosmic tags of volume {volume_id} do not match its hit count."
                )
            tags[output.selection.indices] |= volume_tags

        return MergedResult(
            cosmic_tags=tags,
            volume_ids=list(outputs.keys()),
            products=self.merge(outputs),
        )

    def close(self):
        """Release the context and every context it owns."""
        for context in self.contexts[1:]:
            context.close()
        self.closed = True
