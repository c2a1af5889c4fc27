"""Tests for the config loader functionality."""

import pytest

from larreco.config import (
    ConfigCycleError,
    ConfigIncludeError,
    ConfigTypeError,
    apply_overrides,
    load_config_file,
    parse_value,
    set_nested_value,
)
from larreco.config.loader import resolve_config_path
from larreco.errors import ConfigurationError


class TestConfigLoader:
    """Test suite for the YAML config loader."""

    def test_basic_load(self, tmp_path):
        """Test basic YAML loading without any special features."""
        config_file = tmp_path / "basic.yaml"
        config_file.write_text("""
base:
  verbosity: debug
events:
  num_events: 10
reco:
  option: Full
""")

        cfg = load_config_file(str(config_file))

        assert cfg["base"]["verbosity"] == "debug"
        assert cfg["events"]["num_events"] == 10
        assert cfg["reco"]["option"] == "Full"

    def test_top_level_include(self, tmp_path):
        """Test including another YAML file at the top level."""
        base_config = tmp_path / "base.yaml"
        base_config.write_text("""
files:
  pandora_settings: settings.xml
  drift_volumes: volumes.yaml
events:
  num_events: 5
  num_skip: 2
""")

        main_config = tmp_path / "main.yaml"
        main_config.write_text("""
include: base.yaml

events:
  num_events: 20
""")

        cfg = load_config_file(str(main_config))

        # Base values should be loaded
        assert cfg["files"]["pandora_settings"] == "settings.xml"
        assert cfg["events"]["num_skip"] == 2

        # Including file wins
        assert cfg["events"]["num_events"] == 20

    def test_multiple_includes(self, tmp_path):
        """Test that later includes win over earlier ones."""
        (tmp_path / "first.yaml").write_text("""
reco:
  option: AllHitsCR
  num_slice_workers: 1
""")
        (tmp_path / "second.yaml").write_text("""
reco:
  option: AllHitsNu
""")
        main_config = tmp_path / "main.yaml"
        main_config.write_text("include: [first.yaml, second.yaml]\n")

        cfg = load_config_file(str(main_config))

        assert cfg["reco"]["option"] == "AllHitsNu"
        assert cfg["reco"]["num_slice_workers"] == 1

    def test_nested_includes(self, tmp_path):
        """Test includes of files which include other files."""
        (tmp_path / "level2.yaml").write_text("base:\n  verbosity: warning\n")
        (tmp_path / "level1.yaml").write_text(
            "include: level2.yaml\nbase:\n  log_dir: logs\n"
        )
        main_config = tmp_path / "main.yaml"
        main_config.write_text("include: level1.yaml\n")

        cfg = load_config_file(str(main_config))

        assert cfg["base"] == {"verbosity": "warning", "log_dir": "logs"}

    def test_relative_include_in_subdirectory(self, tmp_path):
        """Test that include paths are relative to the including file."""
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "common.yaml").write_text("events:\n  num_skip: 3\n")
        (sub / "config.yaml").write_text("include: common.yaml\n")

        cfg = load_config_file(str(sub / "config.yaml"))

        assert cfg["events"]["num_skip"] == 3

    def test_dot_notation_override(self, tmp_path):
        """Test the override directive with dot notation."""
        config_file = tmp_path / "main.yaml"
        config_file.write_text("""
reco:
  should_run_slicing: true
override:
  reco.should_run_slicing: false
  events.num_events: 7
""")

        cfg = load_config_file(str(config_file))

        assert cfg["reco"]["should_run_slicing"] is False
        assert cfg["events"]["num_events"] == 7
        assert "override" not in cfg

    def test_include_file_not_found(self, tmp_path):
        """Test that a missing include raises an error."""
        config_file = tmp_path / "main.yaml"
        config_file.write_text("include: missing.yaml\n")

        with pytest.raises(ConfigIncludeError):
            load_config_file(str(config_file))

    def test_config_file_not_found(self, tmp_path):
        """Test that a missing configuration file raises an error."""
        with pytest.raises(ConfigurationError):
            load_config_file(str(tmp_path / "missing.yaml"))

    def test_circular_include(self, tmp_path):
        """Test that include cycles are detected."""
        (tmp_path / "a.yaml").write_text("include: b.yaml\n")
        (tmp_path / "b.yaml").write_text("include: a.yaml\n")

        with pytest.raises(ConfigCycleError) as excinfo:
            load_config_file(str(tmp_path / "a.yaml"))

        assert len(excinfo.value.cycle_path) == 3

    def test_non_mapping_content(self, tmp_path):
        """Test that a top-level list is rejected."""
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigIncludeError):
            load_config_file(str(config_file))

    def test_config_path_env(self, tmp_path, monkeypatch):
        """Test that includes are searched for in LARRECO_CONFIG_PATH."""
        shared = tmp_path / "shared"
        shared.mkdir()
        (shared / "defaults.yaml").write_text("base:\n  verbosity: error\n")
        work = tmp_path / "work"
        work.mkdir()
        (work / "main.yaml").write_text("include: defaults.yaml\n")

        monkeypatch.setenv("LARRECO_CONFIG_PATH", str(shared))
        cfg = load_config_file(str(work / "main.yaml"))

        assert cfg["base"]["verbosity"] == "error"

    def test_resolve_config_path_precedence(self, tmp_path):
        """Test that the current directory wins over the search paths."""
        local = tmp_path / "local"
        other = tmp_path / "other"
        local.mkdir()
        other.mkdir()
        (local / "cfg.yaml").write_text("a: 1\n")
        (other / "cfg.yaml").write_text("a: 2\n")

        path = resolve_config_path("cfg.yaml", str(local), [str(other)])

        assert path == str(local / "cfg.yaml")


class TestConfigOperations:
    """Test suite for the dot-notation configuration operations."""

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("12", 12), ("1.5", 1.5), ("[1, 2]", [1, 2]), ("abc", "abc")],
    )
    def test_parse_value(self, value, expected):
        """Test that command-line values are parsed as YAML scalars."""
        assert parse_value(value) == expected

    def test_set_nested_value_creates_parents(self):
        """Test that missing parent blocks are created."""
        cfg = set_nested_value({}, "files.stitching_settings", "stitch.xml")

        assert cfg == {"files": {"stitching_settings": "stitch.xml"}}

    def test_set_nested_value_through_scalar(self):
        """Test that traversing a scalar raises an error."""
        with pytest.raises(ConfigTypeError):
            set_nested_value({"reco": "Full"}, "reco.option", "AllHitsNu")

    def test_apply_overrides(self):
        """Test applying a list of key=value overrides."""
        cfg = {"reco": {"num_slice_workers": 1}}
        apply_overrides(cfg, ["reco.num_slice_workers=4", "events.num_skip = 2"])

        assert cfg["reco"]["num_slice_workers"] == 4
        assert cfg["events"]["num_skip"] == 2

    def test_apply_overrides_bad_format(self):
        """Test that an override without a value is rejected."""
        with pytest.raises(ValueError):
            apply_overrides({}, ["reco.num_slice_workers"])
