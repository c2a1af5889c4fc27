"""Tests for the creation of the reconstruction contexts."""

import pytest

from larreco.context import (
    PassthroughContext,
    ReconstructionContext,
    create_pandora_instances,
    register_context,
)
from larreco.errors import ConfigurationError
from larreco.utils.enums import StageKind


class TestContextFactory:
    """Test suite for the context factory."""

    def test_single_volume(self, make_parameters, settings_file):
        """Test that a single volume is reconstructed by the primary context."""
        primary = create_pandora_instances(make_parameters([0]))

        assert primary.label == "primary"
        assert primary.settings_files == [settings_file]
        assert len(primary.daughters) == 0
        assert len(primary.geometry) == 1

    @pytest.mark.parametrize("num_volumes", [2, 3, 4])
    def test_daughter_per_volume(
        self, make_parameters, settings_file, stitching_file, num_volumes
    ):
        """Test that one daughter is created per volume, in order."""
        ids = list(range(10, 10 + num_volumes))[::-1]
        primary = create_pandora_instances(make_parameters(ids))

        assert list(primary.daughters) == [f"driftVolume_{i}" for i in ids]
        for volume_id, (daughter, geometry) in zip(ids, primary.daughters.values()):
            assert daughter.label == f"driftVolume_{volume_id}"
            assert daughter.geometry is geometry
            assert geometry.volume.volume_id == volume_id
            assert daughter.settings_files == [settings_file]

        assert primary.settings_files == [settings_file, stitching_file]

    def test_daughter_gaps(self, make_parameters, tmp_path):
        """Test that each daughter only receives the gaps touching its volume."""
        gaps_path = tmp_path / "gaps.yaml"
        gaps_path.write_text(
            "gaps:\n"
            "  - {lower: [99.5, -100., -200.], upper: [100.5, 100., 200.]}\n"
            "  - {lower: [299.5, -100., -200.], upper: [300.5, 100., 200.]}\n"
        )
        params = make_parameters([0, 1], geometry_file_name=str(gaps_path))

        primary = create_pandora_instances(params)

        daughters = list(primary.daughters.values())
        assert len(daughters[0][1].gaps) == 1
        assert len(daughters[1][1].gaps) == 2

    def test_non_distinct_volumes(self, make_parameters, write_volumes):
        """Test that volumes sharing the primary context get no daughter."""
        path = write_volumes([0, 1, 2], distinct=[True, False, True])
        primary = create_pandora_instances(
            make_parameters(drift_volume_description_file=path)
        )

        assert list(primary.daughters) == ["driftVolume_0", "driftVolume_2"]

        path = write_volumes([0, 1], file_name="one.yaml", distinct=[True, False])
        primary = create_pandora_instances(
            make_parameters(drift_volume_description_file=path)
        )

        assert len(primary.daughters) == 0

    def test_missing_settings(self, make_parameters):
        """Test that an empty settings path is a configuration error."""
        with pytest.raises(ConfigurationError):
            create_pandora_instances(make_parameters([0], pandora_settings_file=""))

    def test_unreadable_settings(self, make_parameters, tmp_path):
        """Test that a settings file which does not exist is rejected."""
        params = make_parameters(
            [0], pandora_settings_file=str(tmp_path / "missing.xml")
        )
        with pytest.raises(ConfigurationError):
            create_pandora_instances(params)

    def test_missing_stitching(self, make_parameters, tmp_path):
        """Test that several volumes require a stitching settings file."""
        with pytest.raises(ConfigurationError):
            create_pandora_instances(
                make_parameters([0, 1], stitching_settings_file="")
            )
        with pytest.raises(ConfigurationError):
            create_pandora_instances(
                make_parameters(
                    [0, 1], stitching_settings_file=str(tmp_path / "missing.xml")
                )
            )

    def test_stitching_not_needed(self, make_parameters):
        """Test that a single volume does not require stitching settings."""
        primary = create_pandora_instances(
            make_parameters([0], stitching_settings_file="")
        )

        assert len(primary.settings_files) == 1

    def test_slice_workers(self, make_parameters):
        """Test that one worker is created per enabled per-slice hypothesis."""
        primary = create_pandora_instances(make_parameters([0]))
        assert set(primary.workers) == {StageKind.NEUTRINO, StageKind.COSMIC}
        assert primary.workers[StageKind.NEUTRINO].label == "slice_neutrino_worker"

        primary = create_pandora_instances(
            make_parameters([0], should_run_cosmic_reco_option=False)
        )
        assert set(primary.workers) == {StageKind.NEUTRINO}

    def test_contexts(self, make_parameters):
        """Test the list of contexts owned by the primary context."""
        primary = create_pandora_instances(make_parameters([0, 1]))

        contexts = primary.contexts
        assert contexts[0] is primary
        assert len(contexts) == 5
        assert len({id(c) for c in contexts}) == 5

    def test_external_parameters(self, make_parameters):
        """Test that the steering parameters reach the primary context."""
        params = make_parameters(
            [0],
            should_run_slicing=False,
            external_parameters={"ShouldPerformVertexing": True},
        )
        primary = create_pandora_instances(params)

        assert primary.external_parameters["should_run_slicing"] is False
        assert primary.external_parameters["ShouldPerformVertexing"] is True

    def test_context_arguments(self, make_parameters):
        """Test that the context block arguments reach every context."""
        primary = create_pandora_instances(
            make_parameters([0, 1], context_config={"cosmic_y": 12.0})
        )

        assert all(c.cosmic_y == 12.0 for c in primary.contexts)

    def test_unknown_context(self, make_parameters):
        """Test that an unknown implementation name is a configuration error."""
        with pytest.raises(ConfigurationError):
            create_pandora_instances(make_parameters([0], context="pandora_v42"))

    def test_bad_context_arguments(self, make_parameters):
        """Test that unexpected context arguments are a configuration error."""
        with pytest.raises(ConfigurationError):
            create_pandora_instances(
                make_parameters([0], context_config={"colour": "blue"})
            )

    def test_passthrough(self, make_parameters):
        """Test that the passthrough implementation is available by name."""
        primary = create_pandora_instances(make_parameters([0], context="passthrough"))

        assert isinstance(primary, PassthroughContext)


class TestContextRegistry:
    """Test suite for the registration of context implementations."""

    def test_register_requires_name(self):
        """Test that an implementation must be named to be registered."""

        class Unnamed(ReconstructionContext):
            def process(self, kind, data):
                return None

        with pytest.raises(ValueError):
            register_context(Unnamed)

    def test_register_requires_base(self):
        """Test that only context implementations can be registered."""

        class NotAContext:
            name = "not_a_context"

        with pytest.raises(TypeError):
            register_context(NotAContext)

    def test_duplicate_daughter(self, make_parameters):
        """Test that a volume cannot be given two daughter contexts."""
        primary = create_pandora_instances(make_parameters([0, 1]))
        daughter, geometry = next(iter(primary.daughters.values()))

        with pytest.raises(ConfigurationError):
            primary.register_daughter(daughter, geometry)
        with pytest.raises(ConfigurationError):
            primary.register_daughter(primary, geometry)
