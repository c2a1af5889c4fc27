"""Tests for the reconstruction context base class."""

import numpy as np
import pytest

from larreco.context import PassthroughContext, ReconstructionContext
from larreco.data import Event, SliceResult, StageResult
from larreco.errors import ConfigurationError, ReconstructionError
from larreco.geo import DriftVolume, VolumeGeometry
from larreco.utils.enums import StageKind


class BrokenContext(ReconstructionContext):
    """Context which returns whatever it is told to."""

    name = "broken"

    def __init__(self, label="primary", output=None, error=None):
        super().__init__(label)
        self.output_value = output
        self.error = error

    def process(self, kind, data):
        if self.error is not None:
            raise self.error
        return self.output_value


@pytest.fixture(name="event")
def fixture_event():
    """Event with 6 hits, 3 in each of two volumes."""
    hits = np.array(
        [[-50.0, 0, 0], [-50.0, 90, 0], [-50.0, 0, 0], [50.0, 90, 0], [50, 0, 0], [50, 0, 0]]
    )
    return Event(0, hits)


def geometry(volume_id, x):
    return VolumeGeometry(DriftVolume(volume_id, (x, 0.0, 0.0), (100.0, 200.0, 200.0)))


class TestReconstructionContext:
    """Test suite for the bookkeeping shared by all contexts."""

    def test_configure(self, settings_file, tmp_path):
        """Test that settings files are checked and recorded."""
        context = PassthroughContext()
        context.configure(settings_file)

        assert context.settings_files == [settings_file]
        with pytest.raises(ConfigurationError):
            context.configure("")
        with pytest.raises(ConfigurationError):
            context.configure(str(tmp_path / "missing.xml"))

    def test_run_stage(self, event):
        """Test that stage outputs are recorded until the context is reset."""
        context = PassthroughContext()
        result = context.run_stage("slicing", event.select_all())

        assert result.stage == StageKind.SLICING
        assert context.output is result
        np.testing.assert_array_equal(result.slices[0], np.arange(6))

        context.reset()
        assert context.output is None

    def test_wrapped_failure(self, event):
        """Test that any failure of a stage is a reconstruction error."""
        context = BrokenContext(error=ZeroDivisionError("boom"))
        with pytest.raises(ReconstructionError) as excinfo:
            context.run_stage(StageKind.NEUTRINO, event.select_all())

        assert excinfo.value.stage == StageKind.NEUTRINO
        assert isinstance(excinfo.value.__cause__, ZeroDivisionError)

    def test_bad_output(self, event):
        """Test that a stage must return a stage result."""
        context = BrokenContext(output={"num_hits": 6})
        with pytest.raises(ReconstructionError):
            context.run_stage(StageKind.COSMIC, event.select_all())

    def test_closed(self, event):
        """Test that a closed context refuses to run stages."""
        primary, worker = PassthroughContext(), PassthroughContext("worker")
        primary.register_worker("neutrino", worker)
        primary.close()

        assert worker.closed
        with pytest.raises(ReconstructionError):
            primary.run_stage(StageKind.SLICING, event.select_all())

    def test_duplicate_worker(self):
        """Test that a hypothesis can only be given one worker."""
        primary = PassthroughContext()
        primary.register_worker(StageKind.COSMIC, PassthroughContext("a"))
        with pytest.raises(ConfigurationError):
            primary.register_worker("cosmic", PassthroughContext("b"))

    def test_passthrough_slice_id(self, event):
        """Test that the passthrough context scores slices by size."""
        selection = event.select_all()
        slices = [
            SliceResult(0, selection.subset([0, 1])),
            SliceResult(1, selection.subset([2, 3, 4])),
        ]

        result = PassthroughContext().run_stage(StageKind.SLICE_ID, slices)

        np.testing.assert_array_equal(result.scores, [2.0, 3.0])


class TestStitching:
    """Test suite for the merging of the daughter outputs."""

    def test_stitch(self, event):
        """Test that daughter tags are mapped back onto the event hits."""
        primary = PassthroughContext()
        selection = event.select_all()
        for volume_id, x, local in ((3, -50.0, [0, 1, 2]), (8, 50.0, [3, 4, 5])):
            daughter = BrokenContext(f"driftVolume_{volume_id}")
            primary.register_daughter(daughter, geometry(volume_id, x))
            subset = selection.subset(local, volume_id=volume_id)
            daughter.output_value = StageResult(
                StageKind.ALL_HITS_COSMIC,
                selection=subset,
                cosmic_tags=subset.hits[:, 1] > 50.0,
                products={"volume": volume_id},
            )
            daughter.run_stage(StageKind.ALL_HITS_COSMIC, subset)

        merged = primary.stitch()

        np.testing.assert_array_equal(
            merged.cosmic_tags, [False, True, False, True, False, False]
        )
        assert merged.volume_ids == [3, 8]
        assert merged.products == {3: {"volume": 3}, 8: {"volume": 8}}

    def test_stitch_without_daughters(self):
        """Test that stitching requires daughters."""
        with pytest.raises(ReconstructionError):
            PassthroughContext().stitch()

    def test_stitch_without_output(self):
        """Test that stitching requires every daughter to have run."""
        primary = PassthroughContext()
        primary.register_daughter(PassthroughContext("d"), geometry(0, 0.0))
        with pytest.raises(ReconstructionError):
            primary.stitch()

    def test_stitch_bad_tags(self, event):
        """Test that daughter tags must match the daughter hits."""
        primary = PassthroughContext()
        daughter = BrokenContext("d")
        primary.register_daughter(daughter, geometry(0, -50.0))
        subset = event.select_all().subset([0, 1, 2])
        daughter.output_value = StageResult(
            StageKind.ALL_HITS_COSMIC, selection=subset, cosmic_tags=np.zeros(2, bool)
        )
        daughter.run_stage(StageKind.ALL_HITS_COSMIC, subset)

        with pytest.raises(ReconstructionError):
            primary.stitch()
