"""Module which contains enumerated variables shared across the project."""

from enum import Enum, IntEnum

__all__ = ["StageKind", "EventState", "enum_factory"]


class StageKind(Enum):
    """Enumerates the reconstruction stages a context can be asked to run."""

    ALL_HITS_COSMIC = "all_hits_cosmic"
    COSMIC_HIT_REMOVAL = "cosmic_hit_removal"
    SLICING = "slicing"
    NEUTRINO = "neutrino"
    COSMIC = "cosmic"
    SLICE_ID = "slice_id"


class EventState(IntEnum):
    """Enumerates the states an event goes through in the pipeline."""

    FAILED = -1
    LOADED = 0
    COSMIC_TAGGED = 1
    SLICED = 2
    RESOLVED = 3


def enum_factory(enum, value):
    """Parses an enumerated object from its string name or value.

    Parameters
    ----------
    enum : type
        Enumerated type
    value : Union[str, Enum]
        Name or value of the enumerated object (from config)

    Returns
    -------
    Enum
        Enumerated object
    """
    if isinstance(value, enum):
        return value

    for item in enum:
        if str(value).upper() == item.name or value == item.value:
            return item

    raise ValueError(
        f"Enumerated object not recognized: {value}. Must be one "
        f"of {[e.name for e in enum]}."
    )
