"""Definition of the reconstruction pipeline stages.

The pipeline is an ordered list of optional stages. Each stage is enabled by
one parameter flag and may declare the stages it depends on. The active
plan for a run is derived once from the parameters: a stage whose
dependency is disabled cannot do anything useful and is dropped from the
plan (it is reported as a configuration inconsistency, not an error).
"""

from dataclasses import dataclass
from typing import Tuple

from larreco.utils.enums import StageKind
from larreco.utils.logger import logger

__all__ = ["StageDefinition", "PipelinePlan", "STAGES", "build_plan"]


@dataclass(frozen=True)
class StageDefinition:
    """Static description of one pipeline stage.

    Attributes
    ----------
    kind : StageKind
        Stage identifier
    flag : str
        Name of the parameter which enables the stage
    requires : Tuple[StageKind, ...]
        Stages which must be active for this stage to be meaningful
    per_slice : bool
        Whether the stage runs once per slice
    description : str
        Status message printed when the stage runs
    """

    kind: StageKind
    flag: str
    requires: Tuple[StageKind, ...] = ()
    per_slice: bool = False
    description: str = ""


STAGES = (
    StageDefinition(
        StageKind.ALL_HITS_COSMIC,
        "should_run_all_hits_cosmic_reco",
        description="Running all-hits cosmic-ray reconstruction",
    ),
    StageDefinition(
        StageKind.COSMIC_HIT_REMOVAL,
        "should_run_cosmic_hit_removal",
        requires=(StageKind.ALL_HITS_COSMIC,),
        description="Removing hits from tagged cosmic rays",
    ),
    StageDefinition(
        StageKind.SLICING,
        "should_run_slicing",
        description="Running slicing",
    ),
    StageDefinition(
        StageKind.NEUTRINO,
        "should_run_neutrino_reco_option",
        per_slice=True,
        description="Running neutrino reconstruction for each slice",
    ),
    StageDefinition(
        StageKind.COSMIC,
        "should_run_cosmic_reco_option",
        per_slice=True,
        description="Running cosmic-ray reconstruction for each slice",
    ),
    StageDefinition(
        StageKind.SLICE_ID,
        "should_identify_neutrino_slice",
        requires=(StageKind.NEUTRINO,),
        description="Identifying the neutrino slice",
    ),
)


@dataclass(frozen=True)
class PipelinePlan:
    """Stages to run for every event of a run.

    Attributes
    ----------
    stages : Tuple[StageDefinition, ...]
        Active stages, in execution order
    dropped : Tuple[StageDefinition, ...]
        Enabled stages dropped because a dependency is disabled
    """

    stages: Tuple[StageDefinition, ...]
    dropped: Tuple[StageDefinition, ...] = ()

    def __contains__(self, kind) -> bool:
        return any(stage.kind == kind for stage in self.stages)

    def __iter__(self):
        return iter(self.stages)

    def __len__(self):
        return len(self.stages)

    @property
    def kinds(self) -> Tuple[StageKind, ...]:
        """Active stage identifiers, in execution order."""
        return tuple(stage.kind for stage in self.stages)

    @property
    def per_slice(self) -> Tuple[StageKind, ...]:
        """Active per-slice stage identifiers, in execution order."""
        return tuple(stage.kind for stage in self.stages if stage.per_slice)


def build_plan(parameters, stages=STAGES) -> PipelinePlan:
    """Derive the active stages from the parameter flags.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    stages : Tuple[StageDefinition, ...], optional
        Ordered stage definitions

    Returns
    -------
    PipelinePlan
        Active and dropped stages
    """
    active, dropped = [], []
    for stage in stages:
        if not getattr(parameters, stage.flag):
            continue

        active_kinds = [s.kind for s in active]
        missing = [req for req in stage.requires if req not in active_kinds]
        if missing:
            logger.warning(
                "Configuration inconsistency: `%s` is enabled but requires "
                "%s, which is disabled. The stage is skipped.",
                stage.flag,
                ", ".join(f"`{req.value}`" for req in missing),
            )
            dropped.append(stage)
            continue

        active.append(stage)

    return PipelinePlan(tuple(active), tuple(dropped))
