"""Builds the primary reconstruction context and the contexts it owns.

One primary context is created per process. When more than one drift
volume requires its own context, one daughter context is created per such
volume, in description order, and registered with the primary which later
stitches their outputs. One worker context is created per enabled
per-slice hypothesis.
"""

import os
from typing import List, Optional

from larreco.errors import ConfigurationError
from larreco.geo import DriftVolumeList, load_drift_volumes
from larreco.parameters import Parameters
from larreco.utils.enums import StageKind
from larreco.utils.factory import instantiate, module_dict
from larreco.utils.logger import logger

from . import passthrough
from .base import ReconstructionContext

__all__ = [
    "register_context",
    "create_new_pandora",
    "create_primary_pandora_instance",
    "create_daughter_pandora_instances",
    "create_slice_worker_instances",
    "process_external_parameters",
    "create_pandora_instances",
]

# Build a dictionary of available context implementations
CONTEXT_DICT = {}
for module in [passthrough]:
    CONTEXT_DICT.update(**module_dict(module))

# Per-slice hypotheses and the parameter which enables each of them
SLICE_WORKERS = (
    (StageKind.NEUTRINO, "should_run_neutrino_reco_option"),
    (StageKind.COSMIC, "should_run_cosmic_reco_option"),
)


def register_context(cls):
    """Make a context implementation available under its `name`.

    Can be used as a class decorator.

    Parameters
    ----------
    cls : type
        Class which inherits from :class:`ReconstructionContext`

    Returns
    -------
    type
        The class itself
    """
    if not issubclass(cls, ReconstructionContext):
        raise TypeError(f"{cls.__name__} must inherit from ReconstructionContext.")
    if not cls.name:
        raise ValueError(f"{cls.__name__} must define a `name` to be registered.")

    CONTEXT_DICT[cls.name] = cls

    return cls


def create_new_pandora(parameters: Parameters, label: str) -> ReconstructionContext:
    """Create a new reconstruction context of the configured implementation.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    label : str
        Name of the new instance

    Returns
    -------
    ReconstructionContext
        New, unconfigured, context
    """
    cfg = dict(parameters.context_config, name=parameters.context)
    try:
        return instantiate(CONTEXT_DICT, cfg, label=label)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(str(err)) from err


def create_primary_pandora_instance(
    parameters: Parameters, volumes: DriftVolumeList
) -> ReconstructionContext:
    """Create the primary context, aware of the full detector geometry.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    volumes : DriftVolumeList
        Drift volumes

    Returns
    -------
    ReconstructionContext
        Primary context

    Raises
    ------
    ConfigurationError
        If the settings file is not specified or cannot be read
    """
    if not parameters.pandora_settings_file:
        raise ConfigurationError(
            "Missing mandatory parameter: the reconstruction settings file."
        )

    primary = create_new_pandora(parameters, "primary")
    primary.set_geometry(volumes)
    primary.configure(parameters.pandora_settings_file)

    return primary


def create_daughter_pandora_instances(
    parameters: Parameters,
    volumes: DriftVolumeList,
    primary: ReconstructionContext,
) -> List[ReconstructionContext]:
    """Create one daughter context per drift volume which requires one.

    With a single such volume, no daughter is created: the primary
    context reconstructs it directly.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    volumes : DriftVolumeList
        Drift volumes
    primary : ReconstructionContext
        Primary context, which the daughters are registered with

    Returns
    -------
    List[ReconstructionContext]
        Daughter contexts, in drift volume order

    Raises
    ------
    ConfigurationError
        If the stitching settings file is required but cannot be read
    """
    distinct = volumes.distinct
    if len(distinct) < 2:
        logger.debug("Single drift volume: no daughter context needed.")
        return []

    stitching = parameters.stitching_settings_file
    if not stitching or not os.path.isfile(stitching):
        raise ConfigurationError(
            f"{len(distinct)} drift volumes require a distinct context: a "
            f"readable stitching settings file is mandatory (got {stitching!r})."
        )

    daughters = []
    for volume in distinct:
        geometry = volumes.geometry(volume)
        daughter = create_new_pandora(parameters, volume.name)
        daughter.set_geometry(geometry)
        daughter.configure(parameters.pandora_settings_file)
        primary.register_daughter(daughter, geometry)
        daughters.append(daughter)

    primary.configure(stitching)

    return daughters


def create_slice_worker_instances(
    parameters: Parameters, primary: ReconstructionContext
) -> List[ReconstructionContext]:
    """Create one worker context per enabled per-slice hypothesis.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    primary : ReconstructionContext
        Primary context, which the workers are registered with

    Returns
    -------
    List[ReconstructionContext]
        Worker contexts
    """
    workers = []
    for kind, flag in SLICE_WORKERS:
        if not getattr(parameters, flag):
            continue

        worker = create_new_pandora(parameters, f"slice_{kind.value}_worker")
        worker.set_geometry(primary.geometry)
        worker.configure(parameters.pandora_settings_file)
        primary.register_worker(kind, worker)
        workers.append(worker)

    return workers


def process_external_parameters(
    parameters: Parameters, primary: ReconstructionContext
):
    """Forward the steering parameters to the primary context.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    primary : ReconstructionContext
        Primary context
    """
    steering = dict(parameters.stage_flags)
    steering.update(parameters.external_parameters)
    primary.set_external_parameters(steering)


def create_pandora_instances(
    parameters: Parameters, volumes: Optional[DriftVolumeList] = None
) -> ReconstructionContext:
    """Create the primary context and every context it owns.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    volumes : DriftVolumeList, optional
        Drift volumes. If not provided, they are loaded from the files
        referenced by the parameters

    Returns
    -------
    ReconstructionContext
        Primary context

    Raises
    ------
    ConfigurationError
        If a mandatory resource is missing
    """
    parameters.validate()
    if volumes is None:
        volumes = load_drift_volumes(parameters)

    primary = create_primary_pandora_instance(parameters, volumes)
    daughters = create_daughter_pandora_instances(parameters, volumes, primary)
    workers = create_slice_worker_instances(parameters, primary)
    process_external_parameters(parameters, primary)

    logger.info(
        "Created the primary `%s` context with %d daughter(s) and %d slice "
        "worker(s).",
        parameters.context,
        len(daughters),
        len(workers),
    )

    return primary
