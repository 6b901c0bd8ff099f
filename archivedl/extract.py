#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Zip extraction for downloaded archives.

Totals for the whole batch are computed up front in two passes (entry
count, then uncompressed bytes) so progress denominators never grow.
Archives are then extracted one at a time and deleted once every entry
has been written.
"""

import os
import time
import zipfile

from .utils import (
    info, warn, error, debug, safe_remove, calculate_eta, format_bytes,
    CHUNK_SIZE, PROGRESS_INTERVAL, ARCHIVE_EXT,
)
from .errors import ExtractionError
from .events import ExtractionProgress, ProgressListener
from .paths import archive_base_name

ARCHIVE_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError)


def safe_member_path(dest, member_name):
    """Resolves member_name below dest, or returns None if it would escape."""
    clean = os.path.normpath(member_name.replace('\\', '/'))
    if os.path.isabs(clean) or clean == '..' or clean.startswith('..' + os.sep) or clean.startswith('../'):
        return None
    root = os.path.realpath(dest)
    resolved = os.path.realpath(os.path.join(root, clean))
    if resolved != root and not resolved.startswith(root + os.sep):
        return None
    return resolved


def select_archives(tasks):
    """Zip tasks with a path on disk, deduplicated by resolved path, in order."""
    seen = set()
    archives = []
    for task in tasks:
        path = getattr(task, 'path', None)
        if not path or not path.lower().endswith(ARCHIVE_EXT):
            continue
        key = os.path.realpath(path)
        if key in seen:
            debug("ignoring duplicate archive %s" % path)
            continue
        seen.add(key)
        archives.append(task)
    return archives


def count_archive_entries(paths):
    """First pass: number of entries across every readable archive."""
    total = 0
    for path in paths:
        try:
            with zipfile.ZipFile(path) as zf:
                total += len(zf.infolist())
        except ARCHIVE_ERRORS as e:
            debug("could not count entries of %s: %s" % (path, e))
    return total


def sum_uncompressed_sizes(paths):
    """Second pass: uncompressed bytes across every readable archive."""
    total = 0
    for path in paths:
        try:
            with zipfile.ZipFile(path) as zf:
                total += sum(i.file_size for i in zf.infolist())
        except ARCHIVE_ERRORS as e:
            debug("could not size %s: %s" % (path, e))
    return total


def entry_target_name(entry_name, archive_filename, create_subfolder):
    """Entry name relative to the extraction root.

    With create_subfolder the archive already gets its own folder, so a
    leading folder named after the archive is dropped.
    """
    name = entry_name.replace('\\', '/')
    if create_subfolder:
        prefix = archive_base_name(archive_filename) + '/'
        if name.startswith(prefix):
            name = name[len(prefix):]
    return name


class ExtractionEngine:
    """Extracts a batch of zip archives with progress and cancellation.

    A cancelled archive has every file it produced so far removed; archives
    finished earlier in the batch are left in place.
    """

    def __init__(self, token, listener=None, clock=time.monotonic):
        self.token = token
        self.listener = listener or ProgressListener()
        self.clock = clock

        self.archive_count = 0
        self.overall_bytes = 0
        self.overall_total_bytes = 0
        self.overall_entries = 0
        self.overall_total_entries = 0
        self._start_time = None
        self._last_emit = 0.0

    def _emit(self, archive_index, filename, entry_bytes, entry_total, entry_index, entries_in_archive):
        self.listener.extraction_progress(ExtractionProgress(
            archive_index=archive_index, archive_count=self.archive_count, filename=filename,
            entry_bytes=entry_bytes, entry_total=entry_total,
            entry_index=entry_index, entries_in_archive=entries_in_archive,
            overall_bytes=self.overall_bytes, overall_total_bytes=self.overall_total_bytes,
            overall_entries=self.overall_entries, overall_total_entries=self.overall_total_entries,
            eta=calculate_eta(self.overall_bytes, self.overall_total_bytes, self._start_time, self.clock())))
        self._last_emit = self.clock()

    def extract(self, tasks, target_dir, options):
        """Extracts every zip archive among tasks.

        Args:
            tasks: Completed TransferTasks (``path`` set); non-zip files are
                ignored.
            target_dir: Download root, used when a task has no extract_path.
            options: TransferOptions (create_subfolder affects entry names).

        Returns:
            list of archive paths that were fully extracted and deleted.
        """
        archives = select_archives(tasks)
        if not archives:
            return []

        paths = [t.path for t in archives]
        self.archive_count = len(archives)
        self.overall_total_entries = count_archive_entries(paths)
        self.overall_total_bytes = sum_uncompressed_sizes(paths)
        self.overall_bytes = 0
        self.overall_entries = 0
        self._start_time = self.clock()
        info("extracting %d archive(s), %s" % (self.archive_count, format_bytes(self.overall_total_bytes)))

        extracted = []
        self.listener.extraction_started()
        try:
            for index, task in enumerate(archives, 1):
                if self.token.cancelled:
                    break
                root = task.extract_path or target_dir
                try:
                    completed = self._extract_archive(task.path, root, options.create_subfolder, index)
                except ExtractionError as e:
                    error("failed to extract %s" % e)
                    continue
                if not completed:
                    break
                safe_remove(task.path)
                extracted.append(task.path)
                info("extracted and removed %s" % os.path.basename(task.path))
            self._emit(len(extracted), '', 0, 0, 0, 0)
        finally:
            self.listener.extraction_ended()
        return extracted

    def _extract_archive(self, archive_path, root, create_subfolder, archive_index):
        """Returns True if the archive was fully extracted, False if cancelled."""
        archive_filename = os.path.basename(archive_path)
        written = []
        cancelled = False
        try:
            with zipfile.ZipFile(archive_path) as zf:
                entries = zf.infolist()
                for entry_index, entry in enumerate(entries, 1):
                    if self.token.cancelled:
                        cancelled = True
                        break
                    name = entry_target_name(entry.filename, archive_filename, create_subfolder)
                    if not name or name.endswith('/') or entry.is_dir():
                        if name:
                            dest = safe_member_path(root, name)
                            if dest is not None:
                                os.makedirs(dest, exist_ok=True)
                        self.overall_entries += 1
                        continue

                    dest = safe_member_path(root, name)
                    if dest is None:
                        error("refusing to extract %s from %s: path escapes %s" % (entry.filename, archive_filename, root))
                        self.overall_entries += 1
                        continue

                    os.makedirs(os.path.dirname(dest), exist_ok=True)
                    written.append(dest)
                    if not self._copy_entry(zf, entry, dest, archive_index, entry_index, len(entries)):
                        cancelled = True
                        break
                    self.overall_entries += 1
        except ARCHIVE_ERRORS as e:
            for path in written:
                safe_remove(path)
            raise ExtractionError("%s: %s" % (archive_filename, e)) from e

        if cancelled:
            warn("extraction of %s cancelled, removing %d extracted file(s)" % (archive_filename, len(written)))
            for path in written:
                safe_remove(path)
            return False
        return True

    def _copy_entry(self, zf, entry, dest, archive_index, entry_index, entries_in_archive):
        """Streams one entry to dest. Returns False if cancelled mid-entry."""
        entry_bytes = 0
        with zf.open(entry) as src, open(dest, 'wb') as out:
            while True:
                chunk = src.read(CHUNK_SIZE)
                if not chunk:
                    break
                if self.token.cancelled:
                    return False
                out.write(chunk)
                entry_bytes += len(chunk)
                self.overall_bytes += len(chunk)
                if self.clock() - self._last_emit >= PROGRESS_INTERVAL:
                    self._emit(archive_index, entry.filename, entry_bytes, entry.file_size,
                               entry_index, entries_in_archive)
        return True


def extract_archives(tasks, target_dir, options, token, listener=None):
    """Runs a single ExtractionEngine batch. See ExtractionEngine.extract."""
    return ExtractionEngine(token, listener).extract(tasks, target_dir, options)
