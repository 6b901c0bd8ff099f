#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Catalog filtering.

Applies the user's tag, substring, revision and deduplication choices to a
parsed catalog. The four stages run in that order, each on the previous
stage's output, and none of them mutates the entries.
"""

import re
from dataclasses import dataclass, field
from typing import List

REV_MODE_ALL = 'all'
REV_MODE_HIGHEST = 'highest'
DEDUPE_MODE_ALL = 'all'
DEDUPE_MODE_PRIORITY = 'priority'

REV_MODES = (REV_MODE_ALL, REV_MODE_HIGHEST)
DEDUPE_MODES = (DEDUPE_MODE_ALL, DEDUPE_MODE_PRIORITY)

MULTI_PART_TAG_RE = re.compile(r'^(Disc|Cart|Side) ')


@dataclass
class FilterSpec:
    """Encapsulates one filter run.

    Attributes:
        include_tags: Keep only entries carrying at least one of these tags.
            Empty list means no tag requirement.
        exclude_tags: Drop entries carrying any of these tags.
        include_strings: Keep only entries whose name contains at least one
            of these substrings (case-insensitive).
        exclude_strings: Drop entries whose name contains any of these
            substrings (case-insensitive).
        rev_mode: 'all' keeps every revision; 'highest' keeps, per base
            name, only the entries with the maximum revision rank.
        dedupe_mode: 'all' keeps every release; 'priority' keeps, per base
            name, the release whose tags score best against priority_list.
        priority_list: Tags ranked highest priority first. The first of N
            tags is worth N points, the last 1 point.

    Examples:
        >>> # Only European releases, newest revision, prefer English
        >>> spec = FilterSpec(include_tags=['Europe'], rev_mode='highest',
        ...                   dedupe_mode='priority', priority_list=['En', 'Fr'])
    """
    include_tags: List[str] = field(default_factory=list)
    exclude_tags: List[str] = field(default_factory=list)
    include_strings: List[str] = field(default_factory=list)
    exclude_strings: List[str] = field(default_factory=list)
    rev_mode: str = REV_MODE_ALL
    dedupe_mode: str = DEDUPE_MODE_ALL
    priority_list: List[str] = field(default_factory=list)

    def validate(self):
        """Raises ValueError for an unknown mode."""
        if self.rev_mode not in REV_MODES:
            raise ValueError("unknown revision mode '%s' (expected one of %s)"
                             % (self.rev_mode, ', '.join(REV_MODES)))
        if self.dedupe_mode not in DEDUPE_MODES:
            raise ValueError("unknown dedupe mode '%s' (expected one of %s)"
                             % (self.dedupe_mode, ', '.join(DEDUPE_MODES)))
        return True


def group_by_base_name(entries):
    """Groups entries by base name, groups and members in input order."""
    groups = {}
    for entry in entries:
        groups.setdefault(entry.base_name, []).append(entry)
    return groups


def apply_tag_filter(entries, include_tags, exclude_tags):
    """Keeps entries with >=1 include tag (if any given) and no exclude tag.

    Examples:
        >>> [e.name_raw for e in apply_tag_filter(entries, ['USA'], [])]
        ['A (USA).zip']
    """
    include = set(include_tags or [])
    exclude = set(exclude_tags or [])
    if not include and not exclude:
        return list(entries)

    result = []
    for entry in entries:
        if include and not include.intersection(entry.tags):
            continue
        if exclude and exclude.intersection(entry.tags):
            continue
        result.append(entry)
    return result


def apply_string_filter(entries, include_strings, exclude_strings):
    """Case-insensitive substring match against the raw name."""
    include = [s.lower() for s in (include_strings or [])]
    exclude = [s.lower() for s in (exclude_strings or [])]
    if not include and not exclude:
        return list(entries)

    result = []
    for entry in entries:
        name = entry.name_raw.lower()
        if include and not any(s in name for s in include):
            continue
        if exclude and any(s in name for s in exclude):
            continue
        result.append(entry)
    return result


def apply_revision_filter(entries, rev_mode):
    """With rev_mode 'highest', keeps only the top revision of each base name.

    Ties at the top revision are all kept. Grouping is by base name only,
    so region variants of one title compete with each other.
    """
    if rev_mode != REV_MODE_HIGHEST:
        return list(entries)

    result = []
    for group in group_by_base_name(entries).values():
        best = max(e.revision for e in group)
        result.extend(e for e in group if e.revision == best)
    return result


def priority_score(entry, priority_weights):
    """Sum of the priority weights of the entry's tags (unlisted tags score 0)."""
    return sum(priority_weights.get(tag, 0) for tag in entry.tags)


def has_multi_part_tag(entry):
    return any(MULTI_PART_TAG_RE.match(tag) for tag in entry.tags)


def apply_dedupe_filter(entries, dedupe_mode, priority_list):
    """With dedupe_mode 'priority', keeps the preferred release of each base name.

    Processing logic per base-name group:
    1. Score every entry against priority_list.
    2. If some top-scoring entries carry a 'Disc N' / 'Cart N' / 'Side N'
       tag, keep all of those (every part of a multi-part release).
    3. Otherwise keep the first top-scoring entry. When nothing matched the
       priority list every score is 0, so this is the group's first entry.

    Examples:
        >>> # priority ['USA', 'Europe']: A (USA)=2, A (Europe)=1, A (Japan)=0
        >>> [e.name_raw for e in apply_dedupe_filter(entries, 'priority', ['USA', 'Europe'])]
        ['A (USA).zip']
    """
    if dedupe_mode != DEDUPE_MODE_PRIORITY:
        return list(entries)

    priority_list = priority_list or []
    top = len(priority_list)
    weights = {}
    for i, tag in enumerate(priority_list):
        weights.setdefault(tag, top - i)

    result = []
    for group in group_by_base_name(entries).values():
        scores = [priority_score(e, weights) for e in group]
        best = max(scores)
        winners = [e for e, s in zip(group, scores) if s == best]
        multi_part = [e for e in winners if has_multi_part_tag(e)]
        if multi_part:
            result.extend(multi_part)
        else:
            result.append(winners[0])

    unique = []
    seen = set()
    for entry in result:
        if id(entry) not in seen:
            seen.add(id(entry))
            unique.append(entry)
    return unique


def apply_filters(entries, spec):
    """Runs the four filter stages over a catalog and returns the survivors.

    Args:
        entries: Parsed catalog entries.
        spec: FilterSpec describing the run.

    Returns:
        New list of entries; the input is left untouched. With an empty
        FilterSpec() the result equals the input, in order.
    """
    spec.validate()
    result = apply_tag_filter(entries, spec.include_tags, spec.exclude_tags)
    result = apply_string_filter(result, spec.include_strings, spec.exclude_strings)
    result = apply_revision_filter(result, spec.rev_mode)
    result = apply_dedupe_filter(result, spec.dedupe_mode, spec.priority_list)
    return result
