"""LArReco driver.

Takes care of everything in one centralized place:
- Parameter processing
- Reconstruction context creation
- Event loading
- Per-event pipeline execution
- Writing the event log to file
"""

import os
from datetime import datetime
from itertools import islice

import psutil

from .context import create_pandora_instances
from .data import EventResult, RunSummary
from .errors import ConfigurationError, ReconstructionError
from .io import CSVWriter, EventReader, NpzEventReader
from .parameters import Parameters
from .pipeline import PipelineStager
from .utils.enums import EventState
from .utils.logger import logger
from .version import __version__

__all__ = ["Driver", "process_events", "select_events"]


def select_events(events, skip, limit):
    """Iterate over the events within the requested bounds.

    Events are only loaded once they are known to be within the bounds.
    When reading from an :class:`EventReader`, the skipped events are not
    loaded at all and an event which cannot be loaded is yielded as the
    :class:`ReconstructionError` which describes the problem.

    Parameters
    ----------
    events : Union[EventReader, Iterable[Event]]
        Stream of events
    skip : int
        Number of events to skip
    limit : int
        Maximum number of events to yield (all of them if negative)

    Yields
    ------
    Tuple[int, Union[Event, ReconstructionError]]
        Position of the event in the stream and the event itself
    """
    stop = None if limit < 0 else skip + limit
    if not isinstance(events, EventReader):
        yield from enumerate(islice(events, skip, stop), start=skip)
        return

    stop = len(events) if stop is None else min(stop, len(events))
    for position in range(skip, stop):
        try:
            event = events[position]
        except ReconstructionError as err:
            err.event = position
            event = err

        yield position, event


def process_events(parameters, primary, events, stager=None, callback=None):
    """Run the reconstruction pipeline on a stream of events.

    The first `n_events_to_skip` events are skipped, then at most
    `n_events_to_process` events are processed (all of them if negative).
    A failed event is recorded and the loop moves on to the next one.

    Parameters
    ----------
    parameters : Parameters
        Application parameters
    primary : ReconstructionContext
        Primary context
    events : Iterable[Event]
        Stream of events
    stager : PipelineStager, optional
        Pipeline to run on each event. If not specified, one is built (and
        released at the end of the loop)
    callback : callable, optional
        Function called with each :class:`EventResult`

    Returns
    -------
    RunSummary
        Result of each processed event
    """
    owns_stager = stager is None
    if owns_stager:
        stager = PipelineStager(parameters, primary)

    summary = RunSummary()
    stream = select_events(
        events, parameters.n_events_to_skip, parameters.n_events_to_process
    )
    try:
        for position, event in stream:
            if isinstance(event, ReconstructionError):
                # The event could not be loaded, it is recorded as failed
                result = EventResult(
                    position, state=EventState.FAILED, error=str(event)
                )
                logger.error("Event %d failed: %s", position, event)

            else:
                if parameters.should_display_event_number:
                    logger.info("Processing event %d", event.index)
                result = stager(event)

            summary.append(result)
            if parameters.print_overall_reco_status:
                logger.info(
                    "Event %d: %s, %d slice(s)",
                    result.index,
                    result.state.name,
                    result.num_slices,
                )

            if callback is not None:
                callback(result)

    finally:
        if owns_stager:
            stager.close()

    logger.info(
        "Processed %d event(s), %d failed.",
        summary.num_processed,
        summary.num_failed,
    )

    return summary


class Driver:
    """Central LArReco driver.

    Processes the global configuration, creates the reconstruction contexts
    and runs the event loop. It takes a configuration dictionary of the form:

    .. code-block:: yaml

        base:
          <Verbosity, log directory>
        files:
          <Settings, event, drift volume, geometry and stitching files>
        events:
          <Event bounds and display options>
        reco:
          <Reco option and stage toggles>
        context:
          <Reconstruction context implementation>
        external:
          <Steering parameters forwarded to the primary context>
    """

    def __init__(self, cfg, parent_path=None):
        """Initializes the class attributes.

        Parameters
        ----------
        cfg : dict
            Global configuration dictionary
        parent_path : str, optional
            Directory relative file paths are resolved against
        """
        # Process the configuration and set the verbosity of the logger
        self.parameters = Parameters.from_config(cfg, parent_path)
        logger.setLevel(self.parameters.verbosity.upper())
        logger.info("LArReco %s", __version__)

        # Create the reconstruction contexts and the pipeline
        self.primary = create_pandora_instances(self.parameters)
        self.stager = None
        self.reader = None
        self.log_writer = None
        try:
            self.stager = PipelineStager(self.parameters, self.primary)
            self.watch = self.stager.watch

            # Open the event file, if provided
            if self.parameters.event_file_name:
                self.reader = NpzEventReader(self.parameters.event_file_name)

        except Exception:
            self.close()
            raise

    def __len__(self):
        """Returns the number of events in the underlying reader object.

        Returns
        -------
        int
            Number of events in the event file
        """
        return len(self.reader) if self.reader is not None else 0

    def initialize_log(self):
        """Initialize the event log for this driver process."""
        log_dir = self.parameters.log_dir
        if not log_dir:
            self.log_writer = None
            return

        if not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        log_path = os.path.join(log_dir, "larreco_log.csv")
        self.log_writer = CSVWriter(log_path, overwrite=True)

    def run(self, events=None):
        """Loop over the events, process them.

        Parameters
        ----------
        events : Iterable[Event], optional
            Stream of events. If not specified, uses the event file

        Returns
        -------
        RunSummary
            Result of each processed event
        """
        if events is None:
            if self.reader is None:
                raise ConfigurationError(
                    "No event file provided (`files.events`, -e)."
                )
            events = self.reader

        self.initialize_log()

        return process_events(
            self.parameters, self.primary, events, self.stager, callback=self.log
        )

    def log(self, result):
        """Log the outcome of one event to the CSV event log.

        Parameters
        ----------
        result : EventResult
            Outcome of the pipeline for one event
        """
        if self.log_writer is None:
            return

        log_dict = {
            "entry": result.index,
            "tstamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "state": result.state.name,
            "num_stages": len(result.stages_run),
            "num_slices": result.num_slices,
            "neutrino_slice": (
                result.neutrino_slice if result.neutrino_slice is not None else -1
            ),
        }

        # Fetch the memory usage (in GB)
        log_dict["cpu_mem"] = psutil.virtual_memory().used / 1.0e9
        log_dict["cpu_mem_perc"] = psutil.virtual_memory().percent

        # Fetch the times
        suff = "_time"
        for key, watch in self.watch.items():
            time, time_sum = watch.time, watch.time_sum
            log_dict[f"{key}{suff}"] = time.wall
            log_dict[f"{key}{suff}_cpu"] = time.cpu
            log_dict[f"{key}{suff}_sum"] = time_sum.wall
            log_dict[f"{key}{suff}_sum_cpu"] = time_sum.cpu

        self.log_writer.append(log_dict)

    def close(self):
        """Release the contexts, the worker threads and the event file."""
        if self.stager is not None:
            self.stager.close()
        self.primary.close()
        if self.reader is not None:
            self.reader.close()
