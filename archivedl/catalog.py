"""
Catalog building: raw listing links -> parsed entries plus a tag index.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .parser import CatalogEntry, parse_filename, make_directory_entry, TAG_CATEGORIES


@dataclass(frozen=True)
class RemoteLink:
    """One link scraped from a remote directory listing."""
    name: str
    href: str
    is_dir: bool = False
    size: Optional[str] = None


class TagIndex:
    """Unique tags seen across a catalog, grouped by category."""

    def __init__(self):
        self._tags: Dict[str, Set[str]] = {}

    def add_entry(self, entry):
        for category, tags in entry.categorized_tags.items():
            self._tags.setdefault(category, set()).update(tags)

    def categories(self):
        return list(self._tags.keys())

    def tags_for(self, category):
        return sorted(self._tags.get(category, ()), key=str.lower)

    def all_tags(self):
        tags = set()
        for values in self._tags.values():
            tags.update(values)
        return tags

    def unknown_tags(self, tags):
        """Returns the tags from *tags* that never occur in the catalog."""
        known = self.all_tags()
        return [t for t in tags if t not in known]

    def as_sorted(self):
        """Materializes the index as category -> sorted list, in display order."""
        ordered = [c for c in TAG_CATEGORIES if c in self._tags]
        ordered += [c for c in self._tags if c not in ordered]
        return {c: self.tags_for(c) for c in ordered}

    def __contains__(self, tag):
        return any(tag in values for values in self._tags.values())

    def __len__(self):
        return sum(len(values) for values in self._tags.values())


@dataclass
class Catalog:
    entries: List[CatalogEntry] = field(default_factory=list)
    tag_index: TagIndex = field(default_factory=TagIndex)

    @property
    def files(self):
        return [e for e in self.entries if not e.is_dir]

    @property
    def directories(self):
        return [e for e in self.entries if e.is_dir]


def build_catalog(links):
    """Parses every link of a listing, preserving input order.

    Directories pass through untagged with revision 0; files go through
    parse_filename() and feed the tag index.
    """
    catalog = Catalog()
    for link in links:
        if link.is_dir:
            catalog.entries.append(make_directory_entry(link.name, link.href))
        else:
            entry = parse_filename(link.name, href=link.href, size=link.size)
            catalog.entries.append(entry)
            catalog.tag_index.add_entry(entry)
    return catalog
