"""
Exception hierarchy for archivedl.

Per-item failures (one file, one archive) are recovered where they occur;
only the cancellation family and whole-scan failures travel up to the
orchestrator.
"""

from dataclasses import dataclass


class ArchiveDLError(Exception):
    """Base class for all archivedl exceptions."""


class FetchError(ArchiveDLError):
    """Raised when a listing page cannot be retrieved."""


class ScanError(ArchiveDLError):
    """Raised when the pre-transfer scan fails as a whole."""


class TransferError(ArchiveDLError):
    """Raised when a single file transfer fails."""


class ExtractionError(ArchiveDLError):
    """Raised when an archive cannot be opened or extracted."""


@dataclass(frozen=True)
class PartialFile:
    """A part file abandoned by a mid-file cancellation."""

    path: str
    name: str


class OperationCancelled(ArchiveDLError):
    """Base class for cooperative cancellation conditions."""


class ScanCancelled(OperationCancelled):
    def __init__(self):
        super().__init__("scan cancelled")


class CancelledBetweenFiles(OperationCancelled):
    def __init__(self):
        super().__init__("download cancelled between files")


class CancelledMidFile(OperationCancelled):
    """
    Raised when cancellation is observed while a file is streaming.

    Attributes
    ----------
    partial_file : The part file that was being written (already deleted).
    """

    def __init__(self, partial_file):
        self.partial_file = partial_file
        super().__init__("download cancelled during %s" % partial_file.name)
