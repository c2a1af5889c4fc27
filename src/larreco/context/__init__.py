"""Reconstruction contexts and the factory which wires them together."""

from .base import ReconstructionContext
from .factories import (
    create_daughter_pandora_instances,
    create_new_pandora,
    create_pandora_instances,
    create_primary_pandora_instance,
    create_slice_worker_instances,
    process_external_parameters,
    register_context,
)
from .passthrough import PassthroughContext
