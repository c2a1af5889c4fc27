"""Reconstruction context which reconstructs nothing.

Every hit is left untagged, the whole selection forms a single slice and
the slice with the most hits is identified as the neutrino slice. It is
used to dry-run a configuration (files, geometry, stage toggles, event
bounds) without the reconstruction software.
"""

import numpy as np

from larreco.data import StageResult
from larreco.utils.enums import StageKind

from .base import ReconstructionContext

__all__ = ["PassthroughContext"]


class PassthroughContext(ReconstructionContext):
    """Context which forwards its input untouched.

    .. code-block:: yaml

        context:
          name: passthrough
    """

    name = "passthrough"

    def process(self, kind, data):
        if kind == StageKind.SLICE_ID:
            scores = np.array([s.selection.size for s in data], dtype=float)
            return StageResult(kind, scores=scores)

        result = StageResult(kind, selection=data, products={"num_hits": data.size})
        if kind == StageKind.ALL_HITS_COSMIC:
            result.cosmic_tags = np.zeros(data.size, dtype=bool)
        elif kind == StageKind.SLICING:
            result.slices = [np.arange(data.size, dtype=np.int64)]

        return result
