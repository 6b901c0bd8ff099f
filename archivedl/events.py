"""
Progress events published by the transfer pipeline.

A host subscribes by passing a ProgressListener (or subclass) to the
orchestrator; every method is a no-op by default so a listener only
overrides what it renders.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .errors import PartialFile


@dataclass(frozen=True)
class ScanProgress:
    current: int
    total: int


@dataclass(frozen=True)
class FileProgress:
    name: str
    current: int
    total: int
    file_index: int
    total_files: int


@dataclass(frozen=True)
class OverallProgress:
    current: int
    total: int
    skipped_size: int
    eta: str = '--'
    is_final: bool = False


@dataclass(frozen=True)
class ExtractionProgress:
    archive_index: int
    archive_count: int
    filename: str
    entry_bytes: int
    entry_total: int
    entry_index: int
    entries_in_archive: int
    overall_bytes: int
    overall_total_bytes: int
    overall_entries: int
    overall_total_entries: int
    eta: str = '--'


@dataclass
class TransferSummary:
    skipped_files: List[str] = field(default_factory=list)
    was_cancelled: bool = False
    partial_file: Optional[PartialFile] = None
    message: str = ''
    downloaded: int = 0


class ProgressListener:
    """Observer interface for pipeline progress."""

    def scan_progress(self, event):
        pass

    def file_progress(self, event):
        pass

    def overall_progress(self, event):
        pass

    def extraction_started(self):
        pass

    def extraction_progress(self, event):
        pass

    def extraction_ended(self):
        pass

    def completed(self, summary):
        pass
