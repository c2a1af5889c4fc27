"""Wall and CPU time bookkeeping for reconstruction stages."""

import time
from dataclasses import dataclass


@dataclass
class Time:
    """Pair of wall and CPU times.

    Attributes
    ----------
    wall : float, optional
         Wall time
    cpu : float, optional
         CPU time
    """

    wall: float = None
    cpu: float = None

    def __add__(self, other):
        return Time(wall=self.wall + other.wall, cpu=self.cpu + other.cpu)

    def __sub__(self, other):
        return Time(wall=self.wall - other.wall, cpu=self.cpu - other.cpu)

    @classmethod
    def current(cls):
        """Returns the current time (wall and cpu).

        Returns
        -------
        Time
           Current time
        """
        return cls(time.time(), time.process_time())


class Stopwatch:
    """Timing information for one stage, accumulated over events."""

    def __init__(self):
        """Give default values to the underlying class attributes."""
        self._start = None
        self.time = Time(0.0, 0.0)
        self.time_sum = Time(0.0, 0.0)
        self.count = 0

    @property
    def running(self):
        """Whether the stopwatch is currently running."""
        return self._start is not None

    def start(self):
        """Start the clock."""
        if self.running:
            raise ValueError("Cannot restart a watch that has not been stopped.")
        self._start = Time.current()

    def stop(self):
        """Stop the clock, record the elapsed time."""
        if not self.running:
            raise ValueError("Cannot stop a watch that has not been started.")
        self.time = Time.current() - self._start
        self.time_sum = self.time_sum + self.time
        self.count += 1
        self._start = None

    def abort(self):
        """Drop an ongoing measurement without recording it."""
        self._start = None


class StopwatchManager:
    """Holds one :class:`Stopwatch` per named stage."""

    def __init__(self):
        """Initialize an empty set of stopwatches."""
        self._watch = {}

    def __contains__(self, key):
        return key in self._watch

    def __getitem__(self, key):
        return self._watch[key]

    def keys(self):
        """Names of the initialized stopwatches."""
        return self._watch.keys()

    def items(self):
        """(name, stopwatch) pairs."""
        return self._watch.items()

    def initialize(self, key):
        """Initialize one or more stopwatches (resets existing ones).

        Parameters
        ----------
        key : Union[str, List[str]]
            Key or list of keys to initialize a `Stopwatch` for
        """
        keys = [key] if isinstance(key, str) else key
        for k in keys:
            self._watch[k] = Stopwatch()

    def start(self, key):
        """Start the stopwatch of a stage, creating it if needed.

        Parameters
        ----------
        key : str
            Key for which to start the clock
        """
        if key not in self._watch:
            self._watch[key] = Stopwatch()
        self._watch[key].start()

    def stop(self, key):
        """Stop the stopwatch of a stage.

        Parameters
        ----------
        key : str
            Key for which to stop the clock
        """
        if key not in self._watch:
            raise KeyError(f"No stopwatch started under the name: {key}")
        self._watch[key].stop()

    def abort(self, keys=None):
        """Drop the measurements in progress (used after a failed event).

        Parameters
        ----------
        keys : List[str], optional
            Stopwatches to abort. If not specified, aborts all of them
        """
        keys = self._watch.keys() if keys is None else keys
        for key in keys:
            self._watch[key].abort()

    def time(self, key):
        """Time recorded between the last start/stop pair of a stage.

        Parameters
        ----------
        key : str
            Key for which to return the time

        Returns
        -------
        Time
            Execution time of the last call
        """
        if key not in self._watch:
            raise KeyError(f"No stopwatch started under the name: {key}")
        return self._watch[key].time

    def times_sum(self):
        """Accumulated time of every stage.

        Returns
        -------
        Dict[str, Time]
            Execution time of all calls of each stage so far
        """
        return {key: value.time_sum for key, value in self.items()}
