#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pre-transfer scan.

Expands the selected directories into files, looks up each file's remote
size and compares it with what is already on disk, deciding per file
whether it is skipped, resumed or downloaded from scratch.
"""

import os
import enum
import posixpath
import requests
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin, urlparse, unquote

from .utils import info, warn, debug, format_bytes
from .api import fetch_page, parse_links, remote_size
from .errors import FetchError, ScanCancelled, ScanError
from .events import ScanProgress
from .paths import calculate_paths, is_already_extracted, part_path


class SkipReason(enum.Enum):
    NONE = 'none'
    ALREADY_EXTRACTED = 'alreadyExtracted'
    ALREADY_DOWNLOADED = 'alreadyDownloaded'
    SCAN_FAILED = 'scanFailed'


@dataclass
class TransferTask:
    """One file to move over the wire.

    Created by the scan, updated by the transfer engine while bytes
    arrive and finalized with ``path`` once the part file is renamed.
    """
    name: str
    url: str
    relative_path: str
    size: int = 0
    downloaded_bytes: int = 0
    skip: bool = False
    skip_reason: SkipReason = SkipReason.NONE
    local_target_path: str = ''
    extract_path: str = ''
    path: Optional[str] = None

    @property
    def part_path(self):
        return part_path(self.local_target_path)

    @property
    def is_resume(self):
        return self.downloaded_bytes > 0

    @property
    def skip_marker(self):
        if self.skip_reason == SkipReason.SCAN_FAILED:
            return '%s (Scan failed)' % self.name
        return self.name


@dataclass
class ScanResult:
    tasks_to_transfer: List[TransferTask] = field(default_factory=list)
    total_size: int = 0
    skipped_size: int = 0
    skipped_tasks: List[TransferTask] = field(default_factory=list)
    skipped_because_extracted_count: int = 0
    skipped_because_downloaded_count: int = 0
    total_files: int = 0

    @property
    def failed_tasks(self):
        return [t for t in self.skipped_tasks if t.skip_reason == SkipReason.SCAN_FAILED]


def listing_name(base_url):
    """Last path segment of a listing URL, decoded ('' for the site root)."""
    path = urlparse(base_url).path.rstrip('/')
    return unquote(posixpath.basename(path))


def _check_cancelled(token):
    if token is not None and token.cancelled:
        raise ScanCancelled()


def expand_directory(session, directory_url, relative_dir, token=None):
    """Flattens a remote directory into tasks, depth-first, one page per level."""
    tasks = []
    for link in parse_links(fetch_page(session, directory_url)):
        _check_cancelled(token)
        full_url = urljoin(directory_url, link.href)
        if link.is_dir:
            tasks.extend(expand_directory(session, full_url,
                                          posixpath.join(relative_dir, link.name), token))
        else:
            tasks.append(TransferTask(name=link.name, url=full_url,
                                      relative_path=posixpath.join(relative_dir, link.name)))
    return tasks


def expand_items(session, items, base_url, token=None):
    """Turns selected catalog entries into a flat, ordered task list."""
    root = listing_name(base_url)
    tasks = []
    for item in items:
        _check_cancelled(token)
        if item.is_dir:
            debug("expanding directory %s" % item.name_raw)
            tasks.extend(expand_directory(session, item.url(base_url),
                                          posixpath.join(root, item.name_raw), token))
        else:
            tasks.append(TransferTask(name=item.name_raw, url=item.url(base_url),
                                      relative_path=posixpath.join(root, unquote(item.href) or item.name_raw)))
    return tasks


def _local_size(path):
    try:
        return os.path.getsize(path)
    except OSError:
        return None


def classify_local_state(task):
    """Decides skip/resume/fresh for a task whose remote size is known.

    Returns the number of bytes that no longer need transferring.
    """
    final_size = _local_size(task.local_target_path)
    if final_size is not None and task.size > 0 and final_size == task.size:
        task.skip = True
        task.skip_reason = SkipReason.ALREADY_DOWNLOADED
        task.path = task.local_target_path
        return task.size

    partial_size = _local_size(task.part_path)
    if partial_size is None and final_size is not None:
        partial_size = final_size
    if partial_size and task.size > 0 and partial_size < task.size:
        task.downloaded_bytes = partial_size
        return partial_size

    task.downloaded_bytes = 0
    return 0


def scan(session, items, base_url, target_dir, options, token=None, listener=None):
    """Classifies every selected file against the local download directory.

    Args:
        session: requests session shared by the run.
        items: Selected catalog entries (files and directories).
        base_url: URL of the listing the entries came from.
        target_dir: Download root.
        options: TransferOptions of the run.
        token: CancellationToken polled before each file.
        listener: ProgressListener receiving scan progress after each file.

    Returns:
        ScanResult

    Raises:
        ScanCancelled: If the token fires during the scan.
        ScanError: If a selected directory cannot be listed.
    """
    try:
        tasks = expand_items(session, items, base_url, token)
    except FetchError as e:
        raise ScanError("could not expand the selection: %s" % e) from e
    result = ScanResult(total_files=len(tasks))

    for i, task in enumerate(tasks):
        _check_cancelled(token)

        task.local_target_path, task.extract_path = calculate_paths(
            target_dir, task.name, task.relative_path,
            options.create_subfolder, options.maintain_folder_structure)

        if is_already_extracted(task.extract_path, task.name):
            task.skip = True
            task.skip_reason = SkipReason.ALREADY_EXTRACTED
            result.skipped_because_extracted_count += 1
            try:
                task.size = remote_size(session, task.url)
            except requests.RequestException as e:
                debug("size lookup failed for extracted %s: %s" % (task.name, e))
            result.total_size += task.size
            result.skipped_size += task.size
            result.skipped_tasks.append(task)
            info("skipping %s (already extracted)" % task.name)
        else:
            try:
                task.size = remote_size(session, task.url)
            except requests.RequestException as e:
                warn("scan failed for %s: %s" % (task.name, e))
                task.skip = True
                task.skip_reason = SkipReason.SCAN_FAILED
                result.skipped_tasks.append(task)
            else:
                result.total_size += task.size
                result.skipped_size += classify_local_state(task)
                if task.skip:
                    result.skipped_because_downloaded_count += 1
                    result.skipped_tasks.append(task)
                    info("skipping %s (already downloaded)" % task.name)
                else:
                    if task.is_resume:
                        debug("%s partially downloaded (%s)" % (task.name, format_bytes(task.downloaded_bytes)))
                    result.tasks_to_transfer.append(task)

        if listener is not None:
            listener.scan_progress(ScanProgress(current=i + 1, total=len(tasks)))

    return result
