"""Application parameters.

A single immutable record, built once at startup from the configuration
file (and command-line overrides), then passed by reference to every
component. It takes a configuration dictionary of the form:

.. code-block:: yaml

    base:
      verbosity: info
      log_dir: logs
    files:
      pandora_settings: PandoraSettings_Master.xml
      events: events.npz
      drift_volumes: drift_volumes.yaml
      geometry: geometry.yaml
      stitching_settings: PandoraSettings_Stitching.xml
    events:
      num_events: -1
      num_skip: 0
      display_event_number: false
      print_status: false
    reco:
      option: Full
      should_run_slicing: true
      num_slice_workers: 1
    context:
      name: passthrough
    external:
      <Parameters forwarded to the primary context>
"""

import dataclasses
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from .errors import ConfigurationError

__all__ = ["Parameters", "RECO_OPTIONS", "STAGE_FLAGS", "process_reco_option"]

# Boolean stage toggles, in pipeline order
STAGE_FLAGS = (
    "should_run_all_hits_cosmic_reco",
    "should_run_cosmic_hit_removal",
    "should_run_slicing",
    "should_run_neutrino_reco_option",
    "should_run_cosmic_reco_option",
    "should_identify_neutrino_slice",
)


def _preset(*enabled):
    return {flag: flag in enabled for flag in STAGE_FLAGS}


# High-level steering presets, keyed by lower-case option name
RECO_OPTIONS = {
    "full": _preset(*STAGE_FLAGS),
    "allhitscr": _preset("should_run_all_hits_cosmic_reco"),
    "allhitsnu": _preset("should_run_neutrino_reco_option"),
    "crremhitsslicecr": _preset(
        "should_run_all_hits_cosmic_reco",
        "should_run_cosmic_hit_removal",
        "should_run_slicing",
        "should_run_cosmic_reco_option",
    ),
    "crremhitsslicenu": _preset(
        "should_run_all_hits_cosmic_reco",
        "should_run_cosmic_hit_removal",
        "should_run_slicing",
        "should_run_neutrino_reco_option",
    ),
    "allhitsslicecr": _preset("should_run_slicing", "should_run_cosmic_reco_option"),
    "allhitsslicenu": _preset(
        "should_run_slicing", "should_run_neutrino_reco_option"
    ),
}

# Maps the configuration file layout onto parameter names
_CONFIG_MAP = {
    "base": {"verbosity": "verbosity", "log_dir": "log_dir"},
    "files": {
        "pandora_settings": "pandora_settings_file",
        "events": "event_file_name",
        "drift_volumes": "drift_volume_description_file",
        "geometry": "geometry_file_name",
        "stitching_settings": "stitching_settings_file",
    },
    "events": {
        "num_events": "n_events_to_process",
        "num_skip": "n_events_to_skip",
        "display_event_number": "should_display_event_number",
        "print_status": "print_overall_reco_status",
    },
}

_PATH_FIELDS = (
    "pandora_settings_file",
    "event_file_name",
    "drift_volume_description_file",
    "geometry_file_name",
    "stitching_settings_file",
)


@dataclass(frozen=True)
class Parameters:
    """Application parameters.

    Attributes
    ----------
    pandora_settings_file : str
        Path to the reconstruction settings file (mandatory)
    event_file_name : str
        Path to the file containing the input events
    drift_volume_description_file : str
        Path to the drift volume description file (mandatory)
    geometry_file_name : str
        Path to the file describing detector gaps
    stitching_settings_file : str
        Path to the stitching settings file (mandatory only when there is
        more than one drift volume requiring its own context)
    n_events_to_process : int
        Number of events to process, negative means all events
    n_events_to_skip : int
        Number of events to skip at the beginning of the input
    should_display_event_number : bool
        Whether event numbers should be displayed
    should_run_all_hits_cosmic_reco : bool
        Whether to run the all-hits cosmic-ray reconstruction
    should_run_cosmic_hit_removal : bool
        Whether to remove hits from tagged cosmic-rays
    should_run_slicing : bool
        Whether to slice events into separate regions for processing
    should_run_neutrino_reco_option : bool
        Whether to run neutrino reconstruction for each slice
    should_run_cosmic_reco_option : bool
        Whether to run cosmic-ray reconstruction for each slice
    should_identify_neutrino_slice : bool
        Whether to identify the most appropriate neutrino slice
    print_overall_reco_status : bool
        Whether to print current operation status messages
    context : str
        Name of the reconstruction context implementation
    context_config : dict
        Keyword arguments passed to the context implementation
    num_slice_workers : int
        Number of threads used to reconstruct slices (1: sequential)
    external_parameters : dict
        Free-form parameters forwarded to the primary context
    log_dir : str
        Directory of the per-event CSV log (empty: no CSV log)
    verbosity : str
        Logger verbosity level
    """

    pandora_settings_file: str = ""
    event_file_name: str = ""
    drift_volume_description_file: str = ""
    geometry_file_name: str = ""
    stitching_settings_file: str = ""

    n_events_to_process: int = -1
    n_events_to_skip: int = 0
    should_display_event_number: bool = False

    should_run_all_hits_cosmic_reco: bool = True
    should_run_cosmic_hit_removal: bool = True
    should_run_slicing: bool = True
    should_run_neutrino_reco_option: bool = True
    should_run_cosmic_reco_option: bool = True
    should_identify_neutrino_slice: bool = True
    print_overall_reco_status: bool = False

    context: str = "passthrough"
    context_config: Dict[str, Any] = field(default_factory=dict)
    num_slice_workers: int = 1
    external_parameters: Dict[str, Any] = field(default_factory=dict)
    log_dir: str = ""
    verbosity: str = "info"

    @classmethod
    def from_config(
        cls, cfg: Dict[str, Any], parent_path: Optional[str] = None
    ) -> "Parameters":
        """Build the parameters from a configuration dictionary.

        Parameters
        ----------
        cfg : dict
            Configuration dictionary (see module docstring)
        parent_path : str, optional
            Directory relative file paths are resolved against

        Returns
        -------
        Parameters
            Parameter record
        """
        cfg = cfg or {}
        known = {"base", "files", "events", "reco", "context", "external"}
        unknown = set(cfg) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration block(s): {sorted(unknown)}. "
                f"Expected a subset of {sorted(known)}."
            )

        values = {}
        for block, mapping in _CONFIG_MAP.items():
            block_cfg = dict(cfg.get(block) or {})
            for key, value in block_cfg.items():
                if key not in mapping:
                    raise ConfigurationError(
                        f"Unknown key `{key}` in the `{block}` block. "
                        f"Expected one of {sorted(mapping)}."
                    )
                values[mapping[key]] = value

        # A reco option preset is applied first, explicit toggles win
        reco = dict(cfg.get("reco") or {})
        option = reco.pop("option", None)
        if option is not None:
            values.update(process_reco_option(option))
        for key, value in reco.items():
            if key not in STAGE_FLAGS and key != "num_slice_workers":
                raise ConfigurationError(
                    f"Unknown key `{key}` in the `reco` block. Expected "
                    f"`option`, `num_slice_workers` or one of {list(STAGE_FLAGS)}."
                )
            values[key] = value

        # The context block is either a name or a name + arguments
        context = cfg.get("context")
        if isinstance(context, str):
            values["context"] = context
        elif context is not None:
            context = dict(context)
            if "name" in context:
                values["context"] = context.pop("name")
            values["context_config"] = context

        if cfg.get("external") is not None:
            values["external_parameters"] = dict(cfg["external"])

        # Resolve relative paths with respect to the configuration location
        if parent_path is not None:
            for key in _PATH_FIELDS:
                path = values.get(key)
                if path and not os.path.isabs(path):
                    values[key] = os.path.join(parent_path, path)

        params = cls(**values)
        params.check_types()

        return params

    def check_types(self):
        """Check that every field holds a value of the expected type.

        Raises
        ------
        ConfigurationError
            If a field holds a value of the wrong type
        """
        for f in fields(self):
            value = getattr(self, f.name)
            if f.type is bool:
                ok = isinstance(value, bool)
            elif f.type is int:
                ok = isinstance(value, int) and not isinstance(value, bool)
            elif f.type is str:
                ok = isinstance(value, str)
            else:
                ok = isinstance(value, dict)
            if not ok:
                raise ConfigurationError(
                    f"Parameter `{f.name}` has an invalid value: {value!r}"
                )

        if self.n_events_to_skip < 0:
            raise ConfigurationError(
                f"The number of events to skip must be positive, "
                f"got {self.n_events_to_skip}."
            )
        if self.num_slice_workers < 1:
            raise ConfigurationError(
                f"The number of slice workers must be at least 1, "
                f"got {self.num_slice_workers}."
            )

    def validate(self):
        """Check that the mandatory parameters are provided.

        Raises
        ------
        ConfigurationError
            If the settings file or the drift volume description is missing
        """
        self.check_types()
        if not self.pandora_settings_file:
            raise ConfigurationError(
                "Missing mandatory parameter: the reconstruction settings "
                "file (`files.pandora_settings`, -i)."
            )
        if not self.drift_volume_description_file:
            raise ConfigurationError(
                "Missing mandatory parameter: the drift volume description "
                "file (`files.drift_volumes`, -d)."
            )

    def replace(self, **kwargs) -> "Parameters":
        """Returns a copy of the parameters with some fields replaced."""
        return dataclasses.replace(self, **kwargs)

    @property
    def stage_flags(self) -> Dict[str, bool]:
        """Current value of each pipeline stage toggle."""
        return {flag: getattr(self, flag) for flag in STAGE_FLAGS}


def process_reco_option(reco_option: str) -> Dict[str, bool]:
    """Translate a reco option string into a set of stage toggles.

    Parameters
    ----------
    reco_option : str
        Name of the reco option (case insensitive), one of `Full`,
        `AllHitsCR`, `AllHitsNu`, `CRRemHitsSliceCR`, `CRRemHitsSliceNu`,
        `AllHitsSliceCR` or `AllHitsSliceNu`

    Returns
    -------
    Dict[str, bool]
        Value of each stage toggle

    Raises
    ------
    ConfigurationError
        If the reco option is not recognized
    """
    key = str(reco_option).lower()
    if key not in RECO_OPTIONS:
        raise ConfigurationError(
            f"Unrecognized reco option: {reco_option}. Available options: "
            "Full, AllHitsCR, AllHitsNu, CRRemHitsSliceCR, CRRemHitsSliceNu, "
            "AllHitsSliceCR, AllHitsSliceNu."
        )

    return dict(RECO_OPTIONS[key])
