#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sys
import os
import re
import time
import logging
import logging.handlers

# Basic constants
__appname__ = 'archivedl'
__version__ = '0.2.0'
__licence__ = 'GPLv3'

# Logging constants
LOG_FILENAME = 'archivedl.log'
LOG_MAX_MB = 50
LOG_BACKUPS = 5

# HTTP constants
HTTP_CONNECT_TIMEOUT = 15     # seconds
HTTP_READ_TIMEOUT = 30        # seconds
HTTP_STALL_TIMEOUT = 120      # seconds without a chunk before a stream is dropped
HTTP_RETRY_COUNT = 3
HTTP_RETRY_DELAY = 3          # seconds
USER_AGENT = 'Wget/1.21.3 (linux-gnu)'

DEFAULT_BASE_URL = 'https://myrient.erista.me/files/'

# Transfer constants
CHUNK_SIZE = 64 * 1024
PROGRESS_INTERVAL = 0.1       # seconds between progress events
PART_SUFFIX = '.part'
ARCHIVE_EXT = '.zip'

# File constants
CONFIG_FILENAME = 'archivedl.config'

rootLogger = logging.getLogger('archivedl')


def setup_logging(log_file=LOG_FILENAME, debug_enabled=False):
    """Attach console and (optionally) rotating file handlers to the package logger."""
    logFormatter = logging.Formatter("%(asctime)s | %(message)s", datefmt='%H:%M:%S')
    rootLogger.setLevel(logging.DEBUG if debug_enabled else logging.INFO)
    for handler in list(rootLogger.handlers):
        rootLogger.removeHandler(handler)
    consoleHandler = logging.StreamHandler(sys.stdout)
    consoleHandler.setFormatter(logFormatter)
    rootLogger.addHandler(consoleHandler)
    if log_file:
        loggingHandler = logging.handlers.RotatingFileHandler(
            log_file, mode='a+', maxBytes=1024 * 1024 * LOG_MAX_MB,
            backupCount=LOG_BACKUPS, encoding='utf-8', delay=True)
        loggingHandler.setFormatter(logFormatter)
        rootLogger.addHandler(loggingHandler)
    return rootLogger


def log_exception(msg):
    rootLogger.error(msg, exc_info=True)

def info(msg):
    rootLogger.info(msg)

def warn(msg):
    rootLogger.warning(msg)

def error(msg):
    rootLogger.error(msg)

def debug(msg):
    rootLogger.debug(msg)


def format_bytes(b, decimals=2):
    """Returns a human readable size string using 1024-based units."""
    if b <= 0:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB', 'TB', 'PB']
    i = 0
    while i < len(sizes) - 1 and b >= 1024 ** (i + 1):
        i += 1
    value = round(b / float(1024 ** i), max(decimals, 0))
    # 1.50 -> 1.5, 2.00 -> 2
    text = ('%f' % value).rstrip('0').rstrip('.')
    return '%s %s' % (text, sizes[i])


SIZE_UNITS = {
    'B': 1, 'BYTES': 1,
    'K': 1024, 'KB': 1000, 'KIB': 1024,
    'M': 1024**2, 'MB': 1000**2, 'MIB': 1024**2,
    'G': 1024**3, 'GB': 1000**3, 'GIB': 1024**3,
    'T': 1024**4, 'TB': 1000**4, 'TIB': 1024**4,
}

def parse_size(size_string):
    """Parses a scraped size string such as '1.23 MiB' into bytes (0 if unparseable)."""
    if not size_string or not isinstance(size_string, str):
        return 0
    size_string = size_string.strip()
    match = re.match(r'^([\d.]+)\s*([a-zA-Z]+)$', size_string)
    if match:
        unit = match.group(2).upper()
        if unit in SIZE_UNITS:
            try:
                return int(round(float(match.group(1)) * SIZE_UNITS[unit]))
            except ValueError:
                return 0
    try:
        return int(round(float(size_string)))
    except ValueError:
        return 0


def format_time(seconds):
    """Formats seconds as e.g. '1h 2m 3s'."""
    if seconds < 0:
        seconds = 0
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    parts = []
    if h > 0:
        parts.append('%dh' % h)
    if m > 0:
        parts.append('%dm' % m)
    if s > 0 or not parts:
        parts.append('%ds' % s)
    return ' '.join(parts)


def calculate_eta(done, total, start_time, now=None):
    """Estimates remaining time from the average rate since start_time."""
    if now is None:
        now = time.monotonic()
    elapsed = now - start_time
    if done <= 0 or total <= 0 or elapsed <= 0 or done >= total:
        return '--'
    rate = done / elapsed
    return format_time((total - done) / rate)


def safe_remove(path):
    """Best-effort file removal. Returns True if the file is gone afterwards."""
    try:
        if os.path.exists(path):
            os.remove(path)
        return True
    except OSError as e:
        warn("could not remove %s: %s" % (path, e))
        return False
