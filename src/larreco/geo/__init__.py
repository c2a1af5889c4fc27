"""Detector geometry: drift volumes, detector gaps and their loader."""

from .loader import load_drift_volumes
from .volume import DetectorGap, DriftVolume, DriftVolumeList, VolumeGeometry

__all__ = [
    "load_drift_volumes",
    "DriftVolume",
    "DriftVolumeList",
    "DetectorGap",
    "VolumeGeometry",
]
