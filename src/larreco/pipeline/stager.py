"""Runs the reconstruction stages of one event on the contexts.

Per event, the stager goes through the following states:

  1. LOADED: every context is reset, all hits are selected
  2. COSMIC_TAGGED: the all-hits cosmic-ray pass tagged the hits (one pass
     per drift volume, stitched by the primary context, when there are
     daughter contexts), tagged hits are optionally removed
  3. SLICED: the remaining hits are split into slices (a single slice when
     slicing is disabled) and each slice is reconstructed under the
     neutrino and/or cosmic-ray hypotheses
  4. RESOLVED: the neutrino slice is optionally identified and each slice
     is given its final interpretation

A stage failure only abandons the current event.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from threading import Lock
from typing import List, Optional

import numpy as np

from larreco.data import Event, EventResult, HitSelection, SliceResult
from larreco.errors import ConfigurationError, ReconstructionError
from larreco.geo import DriftVolumeList
from larreco.utils.enums import EventState, StageKind
from larreco.utils.logger import logger
from larreco.utils.stopwatch import StopwatchManager

from .stages import build_plan

__all__ = ["PipelineStager"]


@dataclass
class _EventWork:
    """Working state of the event being processed."""

    event: Event
    selection: HitSelection
    result: EventResult
    slices: Optional[List[SliceResult]] = None
    pending: List[StageKind] = field(default_factory=list)


class PipelineStager:
    """Sequences the reconstruction stages of each event.

    Attributes
    ----------
    primary : ReconstructionContext
        Primary context (owns the daughter and worker contexts)
    plan : PipelinePlan
        Stages to run for every event
    num_workers : int
        Number of threads used to reconstruct slices
    watch : StopwatchManager
        Execution time of each stage
    """

    def __init__(self, parameters, primary, volumes=None, watch=None):
        """Derive the stage plan and bind the contexts.

        Parameters
        ----------
        parameters : Parameters
            Application parameters
        primary : ReconstructionContext
            Primary context
        volumes : DriftVolumeList, optional
            Drift volumes. If not specified, uses the primary context geometry
        watch : StopwatchManager, optional
            Stopwatch manager to record the stage times in
        """
        self.primary = primary
        self.plan = build_plan(parameters)
        self.print_status = parameters.print_overall_reco_status
        self.num_workers = parameters.num_slice_workers
        self.watch = watch if watch is not None else StopwatchManager()
        keys = [stage.kind.value for stage in self.plan if not stage.per_slice]
        if self.plan.per_slice:
            keys.append("slice_reco")
        self.watch.initialize(keys + ["event"])
        self._stage_keys = keys

        # Find where each daughter volume sits in the drift volume list
        if volumes is None:
            volumes = primary.geometry
        self._daughters = []
        if primary.daughters:
            if not isinstance(volumes, DriftVolumeList):
                raise ConfigurationError(
                    "The drift volume list is needed to route hits to the "
                    "daughter contexts."
                )
            ids = volumes.ids
            for context, geometry in primary.daughters.values():
                slot = ids.index(geometry.volume.volume_id)
                self._daughters.append((context, slot))
        self.volumes = volumes

        # Context calls are serialized per context, merges are exclusive
        self._locks = {id(c): Lock() for c in primary.contexts}
        self._merge_lock = Lock()
        self._pool = None
        if self.num_workers > 1:
            self._pool = ThreadPoolExecutor(max_workers=self.num_workers)

        self._handlers = {
            StageKind.ALL_HITS_COSMIC: self.run_all_hits_cosmic,
            StageKind.COSMIC_HIT_REMOVAL: self.run_cosmic_hit_removal,
            StageKind.SLICING: self.run_slicing,
            StageKind.SLICE_ID: self.run_slice_id,
        }

        logger.info(
            "Reconstruction stages: %s",
            ", ".join(kind.value for kind in self.plan.kinds) or "none",
        )

    def __call__(self, event: Event) -> EventResult:
        """Run the reconstruction stages on one event.

        Parameters
        ----------
        event : Event
            Event to reconstruct

        Returns
        -------
        EventResult
            Outcome of the pipeline. Stage failures are recorded in it
        """
        result = EventResult(event.index)
        self.watch.start("event")
        work = _EventWork(event, event.select_all(), result)
        try:
            self.reset()
            for stage in self.plan:
                self._status(stage.description)
                if stage.per_slice:
                    work.pending.append(stage.kind)
                    continue

                self._flush(work)
                self.watch.start(stage.kind.value)
                self._handlers[stage.kind](work)
                self.watch.stop(stage.kind.value)
                result.stages_run.append(stage.kind)

            self._flush(work)
            self.resolve(work)

        except ReconstructionError as err:
            self.watch.abort(self._stage_keys)
            err.event = event.index
            result.state = EventState.FAILED
            result.error = str(err)
            logger.error("Event %d failed: %s", event.index, err)

        finally:
            self.watch.stop("event")

        return result

    def reset(self):
        """Drop the per-event state of every context.

        Raises
        ------
        ReconstructionError
            If a context fails to drop its state
        """
        for context in self.primary.contexts:
            try:
                context.reset()
            except Exception as err:
                raise ReconstructionError(
                    f"Context `{context.label}` failed to reset: {err!r}"
                ) from err

    def close(self):
        """Release the slice worker threads."""
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def _status(self, message):
        if message:
            if self.print_status:
                logger.info(message)
            else:
                logger.debug(message)

    def _call(self, context, kind, data):
        with self._locks.setdefault(id(context), Lock()):
            return context.run_stage(kind, data)

    @staticmethod
    def _as_array(values, dtype, stage, what):
        """Convert a context output into an array, as a stage failure if it
        cannot be interpreted."""
        try:
            return np.asarray(values, dtype=dtype)
        except (TypeError, ValueError) as err:
            raise ReconstructionError(f"Invalid {what}: {err}", stage=stage) from err

    def _flush(self, work):
        """Run the per-slice stages accumulated so far."""
        if not work.pending:
            return

        self.ensure_slices(work)
        self.watch.start("slice_reco")
        self.reconstruct_slices(work.slices, work.pending)
        self.watch.stop("slice_reco")
        work.result.stages_run.extend(work.pending)
        work.pending = []

    def run_all_hits_cosmic(self, work):
        """Tag the hits of the whole event which come from cosmic rays.

        Parameters
        ----------
        work : _EventWork
            Working state of the event
        """
        selection, result = work.selection, work.result
        num_hits = work.event.num_hits
        if self._daughters:
            # One pass per drift volume, stitched by the primary context
            assignment = self.volumes.assign(selection.hits)
            for context, slot in self._daughters:
                local = np.flatnonzero(assignment == slot)
                volume_id = self.volumes[slot].volume_id
                self._call(
                    context,
                    StageKind.ALL_HITS_COSMIC,
                    selection.subset(local, volume_id=volume_id),
                )

            with self._merge_lock:
                merged = self._stitch()
            result.merged = merged
            tags = self._as_array(
                merged.cosmic_tags, bool, StageKind.ALL_HITS_COSMIC, "cosmic tags"
            )
            if tags.shape != (num_hits,):
                raise ReconstructionError(
                    "Stitched cosmic tags do not match the event hit count.",
                    stage=StageKind.ALL_HITS_COSMIC,
                )

        else:
            output = self._call(self.primary, StageKind.ALL_HITS_COSMIC, selection)
            tags = np.zeros(num_hits, dtype=bool)
            if output.cosmic_tags is not None:
                local_tags = self._as_array(
                    output.cosmic_tags, bool, StageKind.ALL_HITS_COSMIC, "cosmic tags"
                )
                if local_tags.shape != (selection.size,):
                    raise ReconstructionError(
                        "Cosmic tags do not match the number of input hits.",
                        stage=StageKind.ALL_HITS_COSMIC,
                    )
                tags[selection.indices] = local_tags

        result.cosmic_tags = tags
        result.state = EventState.COSMIC_TAGGED

    def _stitch(self):
        try:
            return self.primary.stitch()
        except ReconstructionError:
            raise
        except Exception as err:
            raise ReconstructionError(
                f"Stitching failed: {err!r}", stage=StageKind.ALL_HITS_COSMIC
            ) from err

    def run_cosmic_hit_removal(self, work):
        """Remove the hits tagged as cosmic rays from the selection.

        Parameters
        ----------
        work : _EventWork
            Working state of the event
        """
        before = work.selection.size
        work.selection = work.selection.without(work.result.cosmic_tags)
        logger.debug(
            "Removed %d cosmic-ray hit(s) out of %d.",
            before - work.selection.size,
            before,
        )

    def run_slicing(self, work):
        """Split the selected hits into slices.

        Parameters
        ----------
        work : _EventWork
            Working state of the event
        """
        output = self._call(self.primary, StageKind.SLICING, work.selection)
        definitions = output.slices if output.slices is not None else []
        try:
            slices = [work.selection.subset(idx) for idx in definitions]
        except (IndexError, TypeError, ValueError) as err:
            raise ReconstructionError(
                f"Invalid slice definition: {err}", stage=StageKind.SLICING
            ) from err

        work.slices = [SliceResult(i, s) for i, s in enumerate(slices)]
        work.result.state = EventState.SLICED

    def ensure_slices(self, work):
        """Treat the whole selection as one slice if it was not sliced.

        Parameters
        ----------
        work : _EventWork
            Working state of the event
        """
        if work.slices is None:
            work.slices = [SliceResult(0, work.selection)]
            work.result.state = EventState.SLICED

    def reconstruct_slices(self, slices, kinds):
        """Run the per-slice hypotheses on every slice.

        Slices are independent. With more than one worker thread they are
        reconstructed concurrently, the outputs are stored in slice order.

        Parameters
        ----------
        slices : List[SliceResult]
            Slices to reconstruct
        kinds : List[StageKind]
            Hypotheses to run on each slice
        """
        tasks = [(s, kind) for s in slices for kind in kinds]
        if self._pool is None or len(tasks) < 2:
            outputs = [self._run_hypothesis(s, kind) for s, kind in tasks]
        else:
            futures = [self._pool.submit(self._run_hypothesis, s, k) for s, k in tasks]
            wait(futures)
            outputs = [future.result() for future in futures]

        for (s, kind), output in zip(tasks, outputs):
            s.results[kind] = output

    def _run_hypothesis(self, slice_result, kind):
        context = self.primary.workers.get(kind, self.primary)
        return self._call(context, kind, slice_result.selection)

    def run_slice_id(self, work):
        """Identify the slice most likely to be the neutrino interaction.

        Parameters
        ----------
        work : _EventWork
            Working state of the event
        """
        candidates = [s for s in work.slices if StageKind.NEUTRINO in s.results]
        if not candidates:
            return

        output = self._call(self.primary, StageKind.SLICE_ID, candidates)
        scores = self._as_array(
            output.scores if output.scores is not None else [],
            float,
            StageKind.SLICE_ID,
            "slice scores",
        )
        if scores.shape != (len(candidates),):
            raise ReconstructionError(
                f"Expected {len(candidates)} slice score(s), got {scores.shape}.",
                stage=StageKind.SLICE_ID,
            )

        for s, score in zip(candidates, scores):
            s.score = float(score)

        finite = np.isfinite(scores)
        if np.any(finite):
            best = int(np.argmax(np.where(finite, scores, -np.inf)))
            work.result.neutrino_slice = candidates[best].index

    def resolve(self, work):
        """Give each slice its final interpretation.

        Parameters
        ----------
        work : _EventWork
            Working state of the event
        """
        self.ensure_slices(work)
        result = work.result
        identified = StageKind.SLICE_ID in result.stages_run
        for s in work.slices:
            has_nu = StageKind.NEUTRINO in s.results
            has_cr = StageKind.COSMIC in s.results
            if identified and s.index == result.neutrino_slice:
                s.interpretation = StageKind.NEUTRINO
            elif has_cr:
                s.interpretation = StageKind.COSMIC
            elif has_nu and not identified:
                s.interpretation = StageKind.NEUTRINO

        result.slices = work.slices
        result.state = EventState.RESOLVED
