"""Contains the event readers.

Event readers extract the hits of each event from a file and wrap them into
:class:`Event` objects, in file order. Skipping and limiting the number of
processed events is left to the event loop.
"""

import os
import re
import zipfile

import numpy as np

from larreco.data import Event
from larreco.errors import ConfigurationError, ReconstructionError
from larreco.utils.logger import logger

__all__ = ["EventReader", "NpzEventReader"]


class EventReader:
    """Parent reader class which provides common functions between all readers.

    Attributes
    ----------
    name : str
        Name of the reader
    file_path : str
        Path to the file to read events from
    keys : List[str]
        Name of the entry of each event in the file, in order
    """

    name = ""

    def __init__(self, file_path):
        """Check that the event file exists.

        Parameters
        ----------
        file_path : str
            Path to the event file
        """
        if not file_path:
            raise ConfigurationError("No event file provided.")
        if not os.path.isfile(file_path):
            raise ConfigurationError(f"Event file not found: {file_path}")

        self.file_path = file_path
        self.keys = []

    def __len__(self):
        """Returns the number of events in the file.

        Returns
        -------
        int
            Number of events in the file
        """
        return len(self.keys)

    def __getitem__(self, idx):
        """Returns a specific event in the file.

        Parameters
        ----------
        idx : int
            Index of the event in the file

        Returns
        -------
        Event
            Event at this index
        """
        if idx < 0 or idx >= len(self):
            raise IndexError(f"Event index {idx} out of range ({len(self)} events).")

        return self.get(idx)

    def __iter__(self):
        for idx in range(len(self)):
            yield self.get(idx)

    def get(self, idx):
        """Placeholder to be defined by the daughter class."""
        raise NotImplementedError

    def close(self):
        """Placeholder for readers holding an open file."""


class NpzEventReader(EventReader):
    """Reads events stored in a numpy `.npz` archive.

    Each event is an `(N, >=3)` array of hit features (x, y, z first)
    stored under an `event_<n>` key. Events are read in increasing `<n>`.
    """

    name = "npz"

    key_pattern = re.compile(r"^event_(\d+)$")

    def __init__(self, file_path):
        """Open the archive and index its events.

        Parameters
        ----------
        file_path : str
            Path to the `.npz` archive
        """
        super().__init__(file_path)

        try:
            self._archive = np.load(file_path, allow_pickle=False)
        except (OSError, ValueError) as err:
            raise ConfigurationError(
                f"Cannot read event file {file_path}: {err}"
            ) from err

        indexed = []
        for key in self._archive.files:
            match = self.key_pattern.match(key)
            if match is None:
                logger.warning("Ignoring unexpected entry `%s` in %s.", key, file_path)
                continue
            indexed.append((int(match.group(1)), key))

        self.keys = [key for _, key in sorted(indexed)]
        logger.info("Found %d event(s) in %s", len(self.keys), file_path)

    def get(self, idx):
        """Load one event.

        Parameters
        ----------
        idx : int
            Index of the event in the archive

        Returns
        -------
        Event
            Event with its hits

        Raises
        ------
        ReconstructionError
            If the entry cannot be read or does not hold a valid hit array
        """
        key = self.keys[idx]
        number = int(self.key_pattern.match(key).group(1))
        try:
            return Event(idx, self._archive[key], event=number)
        except (OSError, ValueError, zipfile.BadZipFile) as err:
            raise ReconstructionError(
                f"Cannot load `{key}` from {self.file_path}: {err}", event=idx
            ) from err

    def close(self):
        self._archive.close()
