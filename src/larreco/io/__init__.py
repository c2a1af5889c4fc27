"""Event input and event log output."""

from .read import EventReader, NpzEventReader
from .write import CSVWriter
