#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Sequential, resumable file transfer.

Each pending task is streamed into ``<target>.part`` and renamed to its
final name once the stream completes. A failed file is logged and
skipped; only cancellation stops the batch.
"""

import os
import time
import threading
import requests

from .utils import (
    info, warn, error, debug, log_exception, safe_remove, calculate_eta, format_bytes,
    CHUNK_SIZE, PROGRESS_INTERVAL, HTTP_STALL_TIMEOUT,
)
from .api import request
from .errors import TransferError, CancelledBetweenFiles, CancelledMidFile, PartialFile
from .events import FileProgress, OverallProgress, ProgressListener
from .throttle import make_throttle

# errors a broken or closed stream can surface while iterating
STREAM_ERRORS = (requests.RequestException, OSError, ValueError, AttributeError)
# per-file failures; anything else propagates
FILE_ERRORS = (TransferError, requests.RequestException, OSError)


def killresponse(response):
    """Close a response object (used for stall and cancel handling)."""
    response.close()


class TransferEngine:
    """Streams a batch of TransferTasks to disk one after another.

    Aggregate accounting starts from the bytes the scan found already on
    disk. A failed file takes its bytes back out of the running total and
    its size out of the denominator, so the overall bar never overshoots.
    """

    def __init__(self, session, token, listener=None, clock=time.monotonic,
                 stall_timeout=HTTP_STALL_TIMEOUT):
        self.session = session
        self.token = token
        self.listener = listener or ProgressListener()
        self.clock = clock
        self.stall_timeout = stall_timeout

        self.total_size = 0
        self.skipped_size = 0
        self.total_downloaded = 0
        self.total_failed = 0
        self.file_downloaded = 0
        self._start_time = None
        self._last_emit = 0.0

    def overall_event(self, is_final=False):
        total = self.total_size - self.total_failed
        eta = calculate_eta(self.total_downloaded - self.skipped_size,
                            total - self.skipped_size, self._start_time, self.clock())
        return OverallProgress(current=self.total_downloaded, total=total,
                               skipped_size=self.skipped_size, eta=eta, is_final=is_final)

    def _emit(self, task, file_index, total_files):
        self.listener.file_progress(FileProgress(
            name=task.name, current=self.file_downloaded, total=task.size,
            file_index=file_index, total_files=total_files))
        self.listener.overall_progress(self.overall_event())
        self._last_emit = self.clock()

    def transfer(self, tasks, total_size, initial_skipped_size, options,
                 total_files_overall=None, initial_skipped_count=0):
        """Downloads every non-skipped task in order.

        Args:
            tasks: TransferTasks from the scan, in scan order.
            total_size: Sum of remote sizes of everything in the run.
            initial_skipped_size: Bytes already on disk (skipped or resumed).
            options: TransferOptions of the run (throttle settings).
            total_files_overall: Files in the run including skipped ones.
            initial_skipped_count: Files skipped by the scan, used to offset
                the per-file index in progress events.

        Returns:
            tuple of (skipped_files, downloaded_files): names of files that
            failed and the tasks that completed, each with ``path`` set.

        Raises:
            CancelledBetweenFiles: Cancelled while no stream was open.
            CancelledMidFile: Cancelled during a stream; the part file
                has been deleted.
        """
        pending = [t for t in tasks if not t.skip]
        if total_files_overall is None:
            total_files_overall = initial_skipped_count + len(pending)

        self.total_size = total_size
        self.skipped_size = initial_skipped_size
        self.total_downloaded = initial_skipped_size
        self.total_failed = 0
        self._start_time = self.clock()

        rate = options.throttle_bytes_per_second()
        if rate:
            info("throttling downloads to %s/s" % format_bytes(rate))

        skipped_files = []
        downloaded_files = []

        for i, task in enumerate(pending):
            if self.token.cancelled:
                raise CancelledBetweenFiles()

            # resumed bytes count as this file's until the stream restarts them
            self.file_downloaded = task.downloaded_bytes
            try:
                self._transfer_one(task, rate, initial_skipped_count + i + 1, total_files_overall)
                os.replace(task.part_path, task.local_target_path)
            except CancelledMidFile:
                raise
            except FILE_ERRORS as e:
                error("failed to download %s: %s" % (task.name, e))
                debug("failed url: %s" % task.url)
                skipped_files.append(task.name)
                self.total_downloaded -= self.file_downloaded
                self.total_failed += task.size
                self.listener.overall_progress(self.overall_event())
                safe_remove(task.part_path)
                continue

            task.path = task.local_target_path
            downloaded_files.append(task)
            info("finished %s" % task.name)

        self.listener.overall_progress(self.overall_event(is_final=True))
        return skipped_files, downloaded_files

    def _prepare_part_file(self, task):
        """Makes the part file the resume source and returns the starting offset."""
        target_dir = os.path.dirname(task.local_target_path)
        if target_dir:
            try:
                os.makedirs(target_dir, exist_ok=True)
            except OSError as e:
                error("could not create directory %s: %s" % (target_dir, e))

        if not task.downloaded_bytes:
            return 0
        if not os.path.exists(task.part_path) and os.path.exists(task.local_target_path):
            # older runs wrote partial data under the final name
            os.replace(task.local_target_path, task.part_path)
        if not os.path.exists(task.part_path):
            warn("partial data for %s is gone, starting over" % task.name)
            self.total_downloaded -= task.downloaded_bytes
            return 0
        return task.downloaded_bytes

    def _transfer_one(self, task, rate, file_index, total_files):
        """Streams one task into its part file.

        Raises:
            CancelledMidFile: The token fired while streaming.
            TransferError: The stream ended short of the expected size.
            requests.RequestException, OSError: Network or disk failure.
        """
        offset = self._prepare_part_file(task)
        # resumed bytes were already counted as skipped by the scan
        self.file_downloaded = offset
        headers = {'Range': 'bytes=%d-' % offset} if offset else None
        if offset:
            info("resuming %s from %s" % (task.name, format_bytes(offset)))
        else:
            info("downloading %s" % task.name)

        response = request(self.session, task.url, headers=headers, stream=True, retry=False)
        unregister = self.token.on_cancel(lambda: killresponse(response))
        try:
            if offset and response.status_code != 206:
                warn("server ignored range request for %s, restarting" % task.name)
                self.total_downloaded -= offset
                self.file_downloaded = offset = 0
            self._emit(task, file_index, total_files)

            with open(task.part_path, 'ab' if offset else 'wb') as out:
                self._ioloop(task, response, out, rate, file_index, total_files)
                if self.token.cancelled:
                    out.close()
                    self._abandon(task)
        finally:
            unregister()
            response.close()

        if task.size and self.file_downloaded < task.size:
            raise TransferError("stream ended after %s of %s"
                                % (format_bytes(self.file_downloaded), format_bytes(task.size)))
        self._emit(task, file_index, total_files)

    def _chunks(self, response):
        """Yields the response body; a read broken by cancellation just ends it."""
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                yield chunk
        except STREAM_ERRORS as e:
            # closing the response to cancel or on a stall breaks the read
            if not self.token.cancelled:
                raise TransferError("stream interrupted: %s" % e) from e

    def _ioloop(self, task, response, out, rate, file_index, total_files):
        """Copies response chunks to out until the stream ends or the token fires.

        The stall watchdog only runs while waiting on the server; it is
        stopped while the throttle holds the stream back.
        """
        throttle = make_throttle(rate, sleep=self.token.wait)
        responseTimer = threading.Timer(self.stall_timeout, killresponse, [response])
        responseTimer.daemon = True
        responseTimer.start()
        try:
            for chunk in self._chunks(response):
                responseTimer.cancel()
                if self.token.cancelled:
                    return
                if chunk:
                    out.write(chunk)
                    self.file_downloaded += len(chunk)
                    self.total_downloaded += len(chunk)
                    task.downloaded_bytes = self.file_downloaded
                    if self.clock() - self._last_emit >= PROGRESS_INTERVAL:
                        self._emit(task, file_index, total_files)
                    if throttle is not None:
                        throttle.consume(len(chunk))
                        if self.token.cancelled:
                            return
                responseTimer = threading.Timer(self.stall_timeout, killresponse, [response])
                responseTimer.daemon = True
                responseTimer.start()
        finally:
            responseTimer.cancel()

    def _abandon(self, task):
        safe_remove(task.part_path)
        warn("download of %s cancelled, removed partial file" % task.name)
        raise CancelledMidFile(PartialFile(path=task.part_path, name=task.name))


def transfer_files(session, tasks, total_size, initial_skipped_size, options, token,
                   listener=None, total_files_overall=None, initial_skipped_count=0):
    """Runs a single TransferEngine batch. See TransferEngine.transfer."""
    engine = TransferEngine(session, token, listener)
    try:
        return engine.transfer(tasks, total_size, initial_skipped_size, options,
                               total_files_overall, initial_skipped_count)
    except (CancelledBetweenFiles, CancelledMidFile):
        raise
    except Exception:
        log_exception("unexpected error during transfer")
        raise
