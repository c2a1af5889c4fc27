"""Per-event reconstruction pipeline."""

from .stager import PipelineStager
from .stages import STAGES, PipelinePlan, StageDefinition, build_plan
