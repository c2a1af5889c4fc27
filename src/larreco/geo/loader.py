"""Loads the drift volume description and the detector gaps.

Two layouts are supported for both files. The YAML layout is:

.. code-block:: yaml

    drift_volumes:
      - volume_id: 0
        center: [-100., 0., 500.]
        dimensions: [200., 400., 1000.]
        wire_pitch: [0.3, 0.3, 0.3]
        wire_angle: [1.0472, -1.0472, 0.]
        sigma_uvw: 1.
        positive_drift: false
        distinct_context: true

    gaps:
      - lower: [-1., -200., 0.]
        upper: [1., 200., 1000.]

The XML layout uses one ``<LArDriftVolume>`` element per volume (children
``VolumeID``, ``CenterX/Y/Z``, ``WidthX/Y/Z``, ``WirePitchU/V/W``,
``WireAngleU/V/W``, ``SigmaUVW``, ``IsPositiveDrift`` and optionally
``DistinctContext``) and one ``<LArDetectorGap>`` element per gap
(children ``X1/Y1/Z1`` and ``X2/Y2/Z2``).
"""

import os
import xml.etree.ElementTree as ET
from typing import Any, Dict, List

import yaml

from larreco.errors import ConfigurationError, GeometryError
from larreco.utils.logger import logger

from .volume import DetectorGap, DriftVolume, DriftVolumeList

__all__ = ["load_drift_volumes", "parse_drift_volumes", "parse_detector_gaps"]

XML_EXTENSIONS = (".xml", ".gdml")


def load_drift_volumes(parameters) -> DriftVolumeList:
    """Load the drift volume information needed to run the reconstruction.

    Parameters
    ----------
    parameters : Parameters
        Application parameters

    Returns
    -------
    DriftVolumeList
        Drift volumes, in description order, with the detector gaps

    Raises
    ------
    ConfigurationError
        If the drift volume description file is not specified
    GeometryError
        If a file is missing, malformed or describes no drift volume
    """
    path = parameters.drift_volume_description_file
    if not path:
        raise ConfigurationError(
            "Missing mandatory parameter: the drift volume description file."
        )

    volumes = parse_drift_volumes(path)
    if not volumes:
        raise GeometryError("The description does not define any drift volume", path)

    gaps = []
    if parameters.geometry_file_name:
        gaps = parse_detector_gaps(parameters.geometry_file_name)

    volume_list = DriftVolumeList(volumes, gaps)
    for gap in volume_list.gaps:
        if not volume_list.volumes_for_region(gap.lower, gap.upper):
            logger.debug(
                "Detector gap %s -> %s does not touch any drift volume.",
                gap.lower.tolist(),
                gap.upper.tolist(),
            )

    logger.info(
        "Loaded %d drift volume(s) (%d requiring a distinct context) "
        "and %d detector gap(s).",
        len(volume_list),
        len(volume_list.distinct),
        len(volume_list.gaps),
    )

    return volume_list


def parse_drift_volumes(path: str) -> List[DriftVolume]:
    """Parse the drift volumes from a description file.

    Parameters
    ----------
    path : str
        Path to the YAML or XML description file

    Returns
    -------
    List[DriftVolume]
        Drift volumes in file order
    """
    if _is_xml(path):
        root = _read_xml(path)
        return [
            _wrap(path, _volume_from_xml, i, element)
            for i, element in enumerate(root.iter("LArDriftVolume"))
        ]

    cfg = _read_yaml(path)
    blocks = cfg.get("drift_volumes")
    if not isinstance(blocks, list):
        raise GeometryError("Expected a `drift_volumes` list", path)

    return [_wrap(path, _volume_from_dict, i, block) for i, block in enumerate(blocks)]


def parse_detector_gaps(path: str) -> List[DetectorGap]:
    """Parse the detector gaps from a geometry file.

    Parameters
    ----------
    path : str
        Path to the YAML or XML geometry file

    Returns
    -------
    List[DetectorGap]
        Detector gaps in file order
    """
    if _is_xml(path):
        root = _read_xml(path)
        gaps = []
        for i, element in enumerate(root.iter("LArDetectorGap")):
            lower = [_xml_float(element, f"{axis}1") for axis in "XYZ"]
            upper = [_xml_float(element, f"{axis}2") for axis in "XYZ"]
            gaps.append(_wrap(path, DetectorGap, i, lower, upper))
        return gaps

    cfg = _read_yaml(path)
    blocks = cfg.get("gaps") or []
    if not isinstance(blocks, list):
        raise GeometryError("Expected a `gaps` list", path)

    return [
        _wrap(path, lambda b: DetectorGap(b["lower"], b["upper"]), i, block)
        for i, block in enumerate(blocks)
    ]


def _is_xml(path: str) -> bool:
    return os.path.splitext(path)[-1].lower() in XML_EXTENSIONS


def _check_file(path: str):
    if not os.path.isfile(path):
        raise GeometryError("Geometry file not found", path)


def _read_yaml(path: str) -> Dict[str, Any]:
    _check_file(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise GeometryError(f"Could not parse YAML: {err}", path) from err

    if not isinstance(cfg, dict):
        raise GeometryError("Expected a mapping at the top level", path)

    return cfg


def _read_xml(path: str) -> ET.Element:
    _check_file(path)
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as err:
        raise GeometryError(f"Could not parse XML: {err}", path) from err


def _wrap(path, builder, index, *args):
    """Build one geometry element, tagging failures with their origin."""
    try:
        return builder(*args)
    except GeometryError as err:
        raise GeometryError(f"Element {index}: {err}", path) from err
    except (KeyError, TypeError, ValueError) as err:
        raise GeometryError(f"Malformed element {index}: {err!r}", path) from err


def _volume_from_dict(block: Dict[str, Any]) -> DriftVolume:
    known = {
        "volume_id",
        "center",
        "dimensions",
        "wire_pitch",
        "wire_angle",
        "sigma_uvw",
        "positive_drift",
        "distinct_context",
    }
    unknown = set(block) - known
    if unknown:
        raise ValueError(f"unknown drift volume key(s) {sorted(unknown)}")

    kwargs = dict(block)
    kwargs["volume_id"] = int(block["volume_id"])
    if "sigma_uvw" in block:
        kwargs["sigma_uvw"] = float(block["sigma_uvw"])

    return DriftVolume(**kwargs)


def _xml_text(element: ET.Element, tag: str) -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        raise KeyError(tag)
    return child.text.strip()


def _xml_float(element: ET.Element, tag: str) -> float:
    return float(_xml_text(element, tag))


def _xml_bool(element: ET.Element, tag: str, default: bool) -> bool:
    child = element.find(tag)
    if child is None or child.text is None:
        return default
    text = child.text.strip().lower()
    if text in ("1", "true"):
        return True
    if text in ("0", "false"):
        return False
    raise ValueError(f"invalid boolean value for {tag}: {child.text}")


def _volume_from_xml(element: ET.Element) -> DriftVolume:
    return DriftVolume(
        volume_id=int(_xml_text(element, "VolumeID")),
        center=[_xml_float(element, f"Center{axis}") for axis in "XYZ"],
        dimensions=[_xml_float(element, f"Width{axis}") for axis in "XYZ"],
        wire_pitch=[_xml_float(element, f"WirePitch{plane}") for plane in "UVW"],
        wire_angle=[_xml_float(element, f"WireAngle{plane}") for plane in "UVW"],
        sigma_uvw=_xml_float(element, "SigmaUVW"),
        positive_drift=_xml_bool(element, "IsPositiveDrift", True),
        distinct_context=_xml_bool(element, "DistinctContext", True),
    )
