#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Filename parsing for archive catalogs.

Turns a free-form release filename such as
``Game Name (USA) (Rev 1).zip`` into a base name, the set of bracketed
tags, per-category tag groups and a signed revision rank used to compare
releases of the same title.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urljoin

from .utils import parse_size

REGION = 'Region'
LANGUAGE = 'Language'
OTHER = 'Other'
TAG_CATEGORIES = (REGION, LANGUAGE, OTHER)

REGION_KEYWORDS = frozenset([
    'usa', 'japan', 'europe', 'world', 'asia', 'australia', 'brazil', 'canada',
    'china', 'denmark', 'finland', 'france', 'germany', 'greece', 'hong kong',
    'israel', 'italy', 'korea', 'netherlands', 'norway', 'poland', 'portugal',
    'russia', 'spain', 'sweden', 'taiwan', 'uk', 'united kingdom',
])

LANGUAGE_KEYWORDS = frozenset([
    'en', 'ja', 'fr', 'de', 'es', 'it', 'nl', 'pt', 'sv', 'no', 'da', 'fi',
    'zh', 'ko', 'pl', 'ru', 'he', 'ca', 'ar', 'tr', 'zh-hant', 'zh-hans',
])

BASE_NAME_SPLIT_RE = re.compile(r'\s*\(|\[')
TAG_RE = re.compile(r'[\[(](.*?)[\])]')
TAG_SPLIT_RE = re.compile(r'[,+]')

VERSION_RE = re.compile(r'(?:\(v|\bver|\bversion|\brev|\brevision)\.?\s*(\d+(?:\.\d+)*)\)')
BETA_NUM_RE = re.compile(r'\(beta\s*(\d+)\)')
ALPHA_NUM_RE = re.compile(r'\(alpha\s*(\d+)\)')
DATE_RE = re.compile(r'(\d{4})-(\d{2})-(\d{2})')


@dataclass
class CatalogEntry:
    """Common shape of one remote listing entry.

    Attributes:
        name_raw: Name exactly as the server listed it; used for display and
            for building local paths.
        base_name: Name with every bracketed tag group removed. Entries
            sharing a base name are releases of the same title.
        href: Link relative to the listing the entry came from.
        tags: Unique tags in first-seen order.
        categorized_tags: Category name -> tags, categories in first-seen order.
        revision: Signed release rank, see parse_revision().
        size: Size text as scraped, or None.
    """
    name_raw: str
    base_name: str
    href: str = ''
    tags: List[str] = field(default_factory=list)
    categorized_tags: Dict[str, List[str]] = field(default_factory=dict)
    revision: float = 0.0
    size: Optional[str] = None

    type = 'file'

    @property
    def is_dir(self):
        return self.type == 'directory'

    @property
    def size_bytes(self):
        return parse_size(self.size)

    def url(self, base_url):
        """Absolute URL of this entry inside the listing at base_url."""
        return urljoin(base_url, self.href)


@dataclass
class FileEntry(CatalogEntry):
    type = 'file'


@dataclass
class DirectoryEntry(CatalogEntry):
    type = 'directory'


def strip_extension(filename):
    return os.path.splitext(filename)[0]


def parse_base_name(name_no_ext):
    base_name = BASE_NAME_SPLIT_RE.split(name_no_ext, maxsplit=1)[0].strip()
    # names that open with a tag, e.g. "[BIOS] Console (USA)"
    return base_name or name_no_ext.strip()


def extract_tags(name_no_ext):
    """Returns the unique trimmed contents of every (...) / [...] group, in order."""
    tags = []
    for match in TAG_RE.finditer(name_no_ext):
        tag = match.group(1).strip()
        if tag not in tags:
            tags.append(tag)
    return tags


def parse_revision(name_no_ext):
    """Ranks a release by its revision markers.

    First matching rule wins (case-insensitive):

    ====================  ==============================
    (v1.2.3) / (Rev 2)    major + minor/1e3 + patch/1e6
    (Beta N)              -1 + N/100
    (Beta)                -2
    (Alpha N)             -3 + N/100
    (Alpha)               -4
    (Proto) + YYYY-MM-DD  -5 + YYYYMMDD/1e8
    (Proto)               -6
    otherwise             0
    ====================  ==============================

    So versioned > unmarked > beta > alpha > proto.
    """
    lower = name_no_ext.lower()

    match = VERSION_RE.search(lower)
    if match:
        parts = [int(p) for p in match.group(1).split('.')]
        num = float(parts[0])
        if len(parts) > 1:
            num += parts[1] / 1000.0
        if len(parts) > 2:
            num += parts[2] / 1000000.0
        return num

    match = BETA_NUM_RE.search(lower)
    if match:
        return -1 + int(match.group(1)) / 100.0
    if '(beta)' in lower:
        return -2.0

    match = ALPHA_NUM_RE.search(lower)
    if match:
        return -3 + int(match.group(1)) / 100.0
    if '(alpha)' in lower:
        return -4.0

    if '(proto)' in lower:
        match = DATE_RE.search(lower)
        if match:
            return -5 + int(''.join(match.groups())) / 100000000.0
        return -6.0

    return 0.0


def categorize_tag(tag):
    """Classifies one tag as Region, Language or Other.

    The tag is split on ',' and '+'; if at least half of the parts are
    region names it is a Region tag, else if at least half are language
    codes it is a Language tag.

    >>> categorize_tag('USA, Europe')
    'Region'
    >>> categorize_tag('En,Fr,De')
    'Language'
    >>> categorize_tag('Rev 1')
    'Other'
    """
    parts = [p.strip().lower() for p in TAG_SPLIT_RE.split(tag.strip())]

    region_count = sum(1 for p in parts if p in REGION_KEYWORDS)
    if region_count > 0 and region_count / float(len(parts)) >= 0.5:
        return REGION

    lang_count = sum(1 for p in parts if p in LANGUAGE_KEYWORDS)
    if lang_count > 0 and lang_count / float(len(parts)) >= 0.5:
        return LANGUAGE

    return OTHER


def categorize_tags(tags):
    categorized = {}
    for tag in tags:
        categorized.setdefault(categorize_tag(tag), []).append(tag)
    return categorized


def parse_filename(filename, href='', size=None):
    """Parses one remote filename into a FileEntry."""
    name_no_ext = strip_extension(filename)
    tags = extract_tags(name_no_ext)
    return FileEntry(
        name_raw=filename,
        base_name=parse_base_name(name_no_ext),
        href=href,
        tags=tags,
        categorized_tags=categorize_tags(tags),
        revision=parse_revision(name_no_ext),
        size=size,
    )


def make_directory_entry(name, href=''):
    return DirectoryEntry(name_raw=name, base_name=name, href=href)
