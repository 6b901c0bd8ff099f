#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Local disk layout for downloads and extractions.
"""

import os
import posixpath

from .utils import info, warn, error, PART_SUFFIX

STRUCTURE_EMPTY = 'empty'
STRUCTURE_FLAT = 'flat'
STRUCTURE_SUBFOLDERS = 'subfolders'
STRUCTURE_MIXED = 'mixed'


def archive_base_name(filename):
    return os.path.splitext(filename)[0]


def part_path(target_path):
    return target_path + PART_SUFFIX


def _relative_dir_parts(relative_path):
    """Directory components of a remote relative path, without traversal."""
    rel_dir = posixpath.dirname(relative_path.replace('\\', '/'))
    return [p for p in rel_dir.split('/') if p and p not in ('.', '..')]


def calculate_paths(target_dir, filename, relative_path='', create_subfolder=False,
                    maintain_folder_structure=False):
    """Computes where a file is downloaded to and where it would be extracted.

    Args:
        target_dir: Download root chosen by the user.
        filename: Remote filename (never altered).
        relative_path: Remote path of the file below the browsed listing,
            '/'-separated, e.g. 'Sub Dir/Game (USA).zip'.
        create_subfolder: Nest the file under a folder named after the
            archive's base name.
        maintain_folder_structure: Mirror relative_path's directories.

    Returns:
        tuple of (target_path, extract_path)
    """
    final_target_dir = target_dir
    if create_subfolder:
        final_target_dir = os.path.join(target_dir, archive_base_name(filename))

    if maintain_folder_structure and relative_path:
        target_path = os.path.join(final_target_dir, *(_relative_dir_parts(relative_path) + [filename]))
    else:
        target_path = os.path.join(final_target_dir, filename)

    if maintain_folder_structure:
        extract_path = os.path.dirname(target_path)
    elif create_subfolder:
        extract_path = os.path.join(target_dir, archive_base_name(filename))
    else:
        extract_path = target_dir

    return target_path, extract_path


def is_already_extracted(extract_path, archive_filename):
    """True if extract_path is a directory holding anything besides the archive itself."""
    if not os.path.isdir(extract_path):
        return False
    own_names = {archive_filename.lower(), (archive_filename + PART_SUFFIX).lower()}
    try:
        names = os.listdir(extract_path)
    except OSError as e:
        warn("could not inspect %s: %s" % (extract_path, e))
        return False
    return any(name.lower() not in own_names for name in names)


def check_download_directory_structure(download_path):
    """Classifies a download directory as empty, flat, subfolders or mixed."""
    try:
        entries = list(os.scandir(download_path))
    except FileNotFoundError:
        return STRUCTURE_EMPTY

    has_files = any(e.is_file() for e in entries)
    has_dirs = any(e.is_dir() for e in entries)
    if has_files and has_dirs:
        return STRUCTURE_MIXED
    if has_dirs:
        return STRUCTURE_SUBFOLDERS
    if has_files:
        return STRUCTURE_FLAT
    return STRUCTURE_EMPTY


def find_partial_downloads(root_dir):
    """Every leftover part file below root_dir, sorted."""
    partials = []
    for dirpath, dirnames, filenames in os.walk(root_dir):
        for f in filenames:
            if f.endswith(PART_SUFFIX):
                partials.append(os.path.join(dirpath, f))
    return sorted(partials)


def clear_partial_downloads(root_dir, dryrun=False):
    """Removes part files left behind by interrupted downloads.

    Args:
        root_dir: Download root to search recursively.
        dryrun: Only report what would be deleted.

    Returns:
        list of part file paths deleted (or that would be deleted).
    """
    if not os.path.isdir(root_dir):
        warn("%s is not a directory" % root_dir)
        return []
    removed = []
    for path in find_partial_downloads(root_dir):
        try:
            if not dryrun:
                os.remove(path)
            info("Deleting " + path)
            removed.append(path)
        except OSError as e:
            error("Failed to delete %s: %s" % (path, e))
    return removed
