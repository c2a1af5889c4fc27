"""Data structures exchanged between the orchestration components."""

from .event import Event, HitSelection
from .result import EventResult, MergedResult, RunSummary, SliceResult, StageResult
