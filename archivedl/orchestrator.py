#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Runs one Scan -> Transfer -> Extract pass and reports a single summary.
"""

import os
import enum
import threading

from .utils import info, warn, log_exception, format_bytes
from .api import makeSession
from .cancellation import CancellationToken
from .errors import ArchiveDLError, OperationCancelled, CancelledMidFile
from .events import OverallProgress, ProgressListener, TransferSummary
from .scanner import scan, SkipReason
from .download import TransferEngine
from .extract import ExtractionEngine

MSG_ALL_EXTRACTED = "All files already extracted!"
MSG_ALL_DOWNLOADED = "All files already downloaded!"
MSG_NOTHING_TO_DOWNLOAD = "All matched files already exist locally. Nothing to download."


class State(enum.Enum):
    IDLE = 'idle'
    SCANNING = 'scanning'
    TRANSFERRING = 'transferring'
    EXTRACTING = 'extracting'
    DONE = 'done'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class TransferInProgress(ArchiveDLError):
    """Raised when a run is started while another one is active."""


class TransferOrchestrator:
    """Sequences scan, transfer and extraction for one selection.

    Only one run may be active per process; every run gets a fresh
    CancellationToken so a previous cancel never leaks into the next run.
    ``run`` never raises for per-item or cancellation conditions: the
    outcome is delivered through ``listener.completed`` and returned.
    """

    _active = threading.Lock()

    def __init__(self, session=None, listener=None):
        self.session = session or makeSession()
        self.listener = listener or ProgressListener()
        self.state = State.IDLE
        self.token = CancellationToken()

    def cancel(self):
        """Requests cancellation of the active run (no-op when idle)."""
        if self.state in (State.SCANNING, State.TRANSFERRING, State.EXTRACTING):
            info("cancelling %s" % self.state.value)
        self.token.cancel()

    @property
    def is_running(self):
        return self.state in (State.SCANNING, State.TRANSFERRING, State.EXTRACTING)

    def run(self, items, base_url, target_dir, options):
        """Downloads (and optionally extracts) the selected catalog entries.

        Args:
            items: Selected CatalogEntry objects, files and/or directories.
            base_url: Listing URL the entries were scraped from.
            target_dir: Download root.
            options: TransferOptions for this run.

        Returns:
            TransferSummary, also passed to ``listener.completed``.

        Raises:
            TransferInProgress: If another run is active.
        """
        if not TransferOrchestrator._active.acquire(blocking=False):
            raise TransferInProgress("a transfer is already running")
        try:
            self.token = CancellationToken()
            summary = self._run(items, base_url, target_dir, options)
            self.listener.completed(summary)
            return summary
        finally:
            TransferOrchestrator._active.release()

    def _run(self, items, base_url, target_dir, options):
        summary = TransferSummary()
        scan_result = None
        downloaded_tasks = []

        try:
            options.validate()
            self.state = State.SCANNING
            scan_result = scan(self.session, items, base_url, target_dir, options,
                               self.token, self.listener)
            if self.token.cancelled:
                raise OperationCancelled("cancelled after scan")

            summary.skipped_files.extend(
                t.name for t in scan_result.skipped_tasks if t.skip_reason == SkipReason.ALREADY_EXTRACTED)
            summary.skipped_files.extend(t.skip_marker for t in scan_result.failed_tasks)

            if not scan_result.tasks_to_transfer:
                summary.message = self._nothing_to_do_message(scan_result)
            else:
                self.state = State.TRANSFERRING
                info("downloading %d file(s), %s remaining"
                     % (len(scan_result.tasks_to_transfer),
                        format_bytes(scan_result.total_size - scan_result.skipped_size)))
                self.listener.overall_progress(OverallProgress(
                    current=scan_result.skipped_size, total=scan_result.total_size,
                    skipped_size=scan_result.skipped_size))
                engine = TransferEngine(self.session, self.token, self.listener)
                skipped, downloaded_tasks = engine.transfer(
                    scan_result.tasks_to_transfer, scan_result.total_size, scan_result.skipped_size,
                    options, total_files_overall=scan_result.total_files,
                    initial_skipped_count=len(scan_result.skipped_tasks))
                summary.skipped_files.extend(skipped)
                summary.downloaded = len(downloaded_tasks)
        except OperationCancelled as e:
            summary.was_cancelled = True
            if isinstance(e, CancelledMidFile):
                summary.partial_file = e.partial_file
            info("operation cancelled: %s" % e)
        except Exception as e:
            log_exception("transfer run failed")
            summary.message = "Error: %s" % e
            self.state = State.FAILED
            return summary

        if summary.was_cancelled or self.token.cancelled:
            summary.was_cancelled = True
            summary.message = ''
            self.state = State.CANCELLED
            warn("download cancelled")
            return summary

        info("download complete")
        if summary.message:
            info(summary.message)

        archives = list(downloaded_tasks)
        if options.extract_previously_downloaded and scan_result is not None:
            archives.extend(t for t in scan_result.skipped_tasks
                            if t.skip_reason == SkipReason.ALREADY_DOWNLOADED
                            and t.path and os.path.exists(t.path)
                            and t.name not in summary.skipped_files)

        if options.extract_and_delete and archives:
            self.state = State.EXTRACTING
            try:
                ExtractionEngine(self.token, self.listener).extract(archives, target_dir, options)
            except Exception as e:
                log_exception("extraction failed")
                summary.message = "Error: %s" % e
                self.state = State.FAILED
                return summary
            if self.token.cancelled:
                summary.was_cancelled = True
                self.state = State.CANCELLED
                return summary

        self.state = State.DONE
        return summary

    @staticmethod
    def _nothing_to_do_message(scan_result):
        if not scan_result.total_files:
            return MSG_NOTHING_TO_DOWNLOAD
        if scan_result.skipped_because_extracted_count == scan_result.total_files:
            return MSG_ALL_EXTRACTED
        if scan_result.skipped_because_downloaded_count == scan_result.total_files:
            return MSG_ALL_DOWNLOADED
        return MSG_NOTHING_TO_DOWNLOAD
