"""Sets up fixtures general to the entire test suite of this package.

This file is read during the collection phase of pytest when running anything
inside this directory.
"""

import time

import numpy as np
import pytest
import yaml

from larreco.context import ReconstructionContext, register_context
from larreco.data import Event, StageResult
from larreco.parameters import Parameters
from larreco.utils.enums import StageKind


@register_context
class RecordingContext(ReconstructionContext):
    """Context which records every call it receives.

    Hits with `y > cosmic_y` are tagged as cosmic rays, slices are made of
    hits which share the same `z // slice_width` bin and the neutrino score
    of a slice is its number of hits (unless `scores` is provided).
    """

    name = "recording"

    def __init__(
        self,
        label="primary",
        cosmic_y=50.0,
        slice_width=100.0,
        scores=None,
        fail_stage=None,
        fail_events=(),
        delay=0.0,
        bad_output=None,
        fail_reset=False,
    ):
        super().__init__(label)
        self.cosmic_y = cosmic_y
        self.slice_width = slice_width
        self.scores = scores
        self.fail_stage = fail_stage
        self.fail_events = tuple(fail_events)
        self.delay = delay
        self.bad_output = dict(bad_output or {})
        self.fail_reset = fail_reset
        self.calls = []
        self.num_resets = 0

    def clear(self):
        self.num_resets += 1
        if self.fail_reset:
            raise RuntimeError("Requested failure while resetting")

    def process(self, kind, data):
        if kind == StageKind.SLICE_ID:
            event_index = data[0].selection.event.index
            self.calls.append((kind, len(data), None))
        else:
            event_index = data.event.index
            self.calls.append((kind, data.size, data.volume_id))

        targeted = not self.fail_events or event_index in self.fail_events
        if kind.value == self.fail_stage and targeted:
            raise RuntimeError(f"Requested failure in `{kind.value}`")

        result = self.reconstruct(kind, data)
        if kind.value in self.bad_output and targeted:
            attr, value = self.bad_output[kind.value]
            setattr(result, attr, value)

        return result

    def reconstruct(self, kind, data):
        if kind == StageKind.SLICE_ID:
            if self.scores is not None:
                return StageResult(kind, scores=np.asarray(self.scores, dtype=float))
            return StageResult(
                kind, scores=np.array([s.selection.size for s in data], dtype=float)
            )

        result = StageResult(kind, selection=data, products={"num_hits": data.size})
        if kind == StageKind.ALL_HITS_COSMIC:
            result.cosmic_tags = data.hits[:, 1] > self.cosmic_y
        elif kind == StageKind.SLICING:
            bins = np.floor(data.hits[:, 2] / self.slice_width).astype(int)
            result.slices = [np.flatnonzero(bins == b) for b in np.unique(bins)]
        elif kind in (StageKind.NEUTRINO, StageKind.COSMIC) and self.delay:
            # Smaller slices take longer, so that they complete last
            time.sleep(self.delay / max(data.size, 1))

        return result

    def calls_of(self, kind):
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture(name="settings_file")
def fixture_settings_file(tmp_path):
    """Create a dummy reconstruction settings file."""
    path = tmp_path / "PandoraSettings_Master.xml"
    path.write_text("<pandora></pandora>\n")

    return str(path)


@pytest.fixture(name="stitching_file")
def fixture_stitching_file(tmp_path):
    """Create a dummy stitching settings file."""
    path = tmp_path / "PandoraSettings_Stitching.xml"
    path.write_text("<pandora><stitching/></pandora>\n")

    return str(path)


@pytest.fixture(name="write_volumes")
def fixture_write_volumes(tmp_path):
    """Returns a function which writes a YAML drift volume description.

    Each volume is 200 cm wide along x, the i-th one being centered at
    `x = 200 * i`. The drift direction alternates between volumes.
    """

    def write(ids, file_name="drift_volumes.yaml", distinct=None):
        blocks = []
        for i, volume_id in enumerate(ids):
            blocks.append(
                {
                    "volume_id": volume_id,
                    "center": [200.0 * i, 0.0, 0.0],
                    "dimensions": [200.0, 200.0, 400.0],
                    "wire_pitch": [0.3, 0.3, 0.3],
                    "wire_angle": [1.0472, -1.0472, 0.0],
                    "sigma_uvw": 1.0,
                    "positive_drift": bool(i % 2),
                    "distinct_context": True if distinct is None else distinct[i],
                }
            )

        path = tmp_path / file_name
        path.write_text(yaml.safe_dump({"drift_volumes": blocks}))

        return str(path)

    return write


@pytest.fixture(name="make_parameters")
def fixture_make_parameters(settings_file, stitching_file, write_volumes):
    """Returns a function which builds parameters for a set of volumes."""

    def make(volume_ids=(0,), **kwargs):
        values = {
            "pandora_settings_file": settings_file,
            "stitching_settings_file": stitching_file,
            "context": "recording",
        }
        values.update(kwargs)
        if "drift_volume_description_file" not in values:
            values["drift_volume_description_file"] = write_volumes(volume_ids)

        return Parameters(**values)

    return make


@pytest.fixture(name="make_event")
def fixture_make_event():
    """Returns a function which generates a reproducible random event.

    Hits span the first two volumes written by `write_volumes` along x,
    `[-100, 100]` in y and `[-200, 200]` in z.
    """

    def make(index=0, num_hits=50, seed=None):
        rng = np.random.default_rng(index if seed is None else seed)
        hits = np.column_stack(
            [
                rng.uniform(-100.0, 300.0, num_hits),
                rng.uniform(-100.0, 100.0, num_hits),
                rng.uniform(-200.0, 200.0, num_hits),
                rng.uniform(0.0, 1.0, num_hits),
            ]
        )

        return Event(index, hits)

    return make

