# src/photonlib/errors.py
from __future__ import annotations


class PhotonLibError(Exception):
    """Base class for photonlib errors."""


class FatalInputError(PhotonLibError):
    """
    A required input is missing or cannot be opened.

    Raised for the primary event store, the manifest file, and the first
    manifest shard (the output tree is cloned from it). Aborts the run.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class MissingResourceError(PhotonLibError):
    """A backing store, or the tree expected inside it, cannot be found."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class IndexOutOfRangeError(PhotonLibError, IndexError):
    """A hierarchical channel coordinate exceeds its region's cardinality."""


class UnknownAnodeError(PhotonLibError, ValueError):
    """A raw anode id does not map to any readout region."""


class DoubleFinalizeError(PhotonLibError, RuntimeError):
    """finalize was called on a point that is already closed."""
