"""Clustering of near-duplicate copyright statements.

Detectors report the same copyright holder many times with small variations
("Copyright (c) 2010 Foo Inc.", "(C) 2011 Foo, Inc. All rights reserved.").
This module parses statements into prefix, years and owner, groups statements
by a normalized owner key and renders one canonical statement per group.

The result is a partition of the input: it does not depend on input order,
and processing the representatives again yields the same clusters.
"""

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

# (pattern, canonical spelling), longest prefixes first
_PREFIXES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"portions\s+copyright\s*\(c\)", re.IGNORECASE), "Portions Copyright (c)"),
    (re.compile(r"portions\s+copyright\s*©", re.IGNORECASE), "Portions Copyright (c)"),
    (re.compile(r"portions\s+copyright(?![\w'])", re.IGNORECASE), "Portions Copyright"),
    (re.compile(r"portions\s*\(c\)", re.IGNORECASE), "Portions (c)"),
    (re.compile(r"\(c\)\s*copyright(?![\w'])", re.IGNORECASE), "(c) Copyright"),
    (re.compile(r"copyright\s*\(c\)", re.IGNORECASE), "Copyright (c)"),
    (re.compile(r"copyright\s*©", re.IGNORECASE), "Copyright (c)"),
    (re.compile(r"copyright(?![\w'])", re.IGNORECASE), "Copyright"),
    (re.compile(r"\(c\)", re.IGNORECASE), "(c)"),
    (re.compile(r"©"), "(c)"),
]

# Canonical prefixes in order of preference for merged statements.
_PREFIX_PREFERENCE = [
    "Copyright (c)",
    "Copyright",
    "(c) Copyright",
    "(c)",
    "Portions Copyright (c)",
    "Portions Copyright",
    "Portions (c)",
]

_YEAR = r"(?:19|20)\d{2}"
_YEAR_TERM = rf"{_YEAR}(?:\s*-\s*{_YEAR})?"
_YEARS_RE = re.compile(rf"({_YEAR_TERM}(?:\s*,?\s*{_YEAR_TERM})*)(?=[\s,;:.]|$)")
_YEAR_RANGE_RE = re.compile(rf"({_YEAR})(?:\s*-\s*({_YEAR}))?")
_RIGHTS_RESERVED_RE = re.compile(r"[\s,.;]*all\s+rights\s+reserved\.?\s*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[\W_]+")


@dataclass(frozen=True)
class StatementParts:
    """A copyright statement split into its components."""

    prefix: str
    years: frozenset[int]
    owner: str

    @property
    def owner_key(self) -> str:
        return _NON_ALNUM_RE.sub("", self.owner.casefold())


def parse_statement(statement: str) -> Optional[StatementParts]:
    """Split a statement into prefix, years and owner.

    Args:
        statement: Raw copyright statement.

    Returns:
        The parts, or None if the statement has no known prefix or no owner.
    """
    text = _WHITESPACE_RE.sub(" ", statement).strip()

    prefix = None
    for pattern, canonical in _PREFIXES:
        match = pattern.match(text)
        if match:
            prefix = canonical
            text = text[match.end():].lstrip(" ,:")
            break

    if prefix is None:
        return None

    years: set[int] = set()
    match = _YEARS_RE.match(text)
    if match:
        for start, end in _YEAR_RANGE_RE.findall(match.group(1)):
            first, last = int(start), int(end or start)
            years.update(range(min(first, last), max(first, last) + 1))
        text = text[match.end():]

    owner = _RIGHTS_RESERVED_RE.sub("", text).strip(" ,;:")
    if not owner or not _NON_ALNUM_RE.sub("", owner):
        return None

    return StatementParts(prefix=prefix, years=frozenset(years), owner=owner)


def format_years(years: Iterable[int]) -> str:
    """Render years compactly, e.g. {2009, 2010, 2011, 2015} -> "2009-2011, 2015"."""
    ranges: list[list[int]] = []
    for year in sorted(set(years)):
        if ranges and year == ranges[-1][1] + 1:
            ranges[-1][1] = year
        else:
            ranges.append([year, year])

    return ", ".join(str(a) if a == b else f"{a}-{b}" for a, b in ranges)


def _render(parts: list[StatementParts]) -> str:
    prefix = min(
        (p.prefix for p in parts),
        key=lambda prefix: _PREFIX_PREFERENCE.index(prefix),
    )
    years = set().union(*(p.years for p in parts))
    owner = min(p.owner for p in parts)
    return " ".join(s for s in (prefix, format_years(years), owner) if s)


@dataclass(frozen=True)
class ClusteringResult:
    """Clusters of equivalent statements.

    Attributes:
        clusters: Canonical representative to the original statements it stands for.
        unprocessed: Statements that could not be parsed; each is its own cluster.
    """

    clusters: dict[str, frozenset[str]]
    unprocessed: frozenset[str] = frozenset()

    def all_statements(self) -> set[str]:
        return set(self.clusters)

    def representative_of(self, statement: str) -> Optional[str]:
        for representative, members in self.clusters.items():
            if statement in members:
                return representative
        return None


class CopyrightStatementsProcessor:
    """Groups copyright statements that name the same owner."""

    def process(self, statements: Iterable[str]) -> ClusteringResult:
        """Partition statements into clusters of equivalent statements.

        Args:
            statements: Raw statements; duplicates are ignored.

        Returns:
            ClusteringResult keyed by representative statement.
        """
        groups: dict[str, dict[str, StatementParts]] = defaultdict(dict)
        unprocessed: set[str] = set()

        for statement in set(statements):
            parts = parse_statement(statement)
            if parts is None:
                unprocessed.add(statement)
            else:
                groups[parts.owner_key][statement] = parts

        clusters: dict[str, set[str]] = defaultdict(set)
        for members in groups.values():
            if len(members) == 1:
                representative = next(iter(members))
            else:
                representative = _render(list(members.values()))
            clusters[representative].update(members)

        for statement in unprocessed:
            clusters[statement].add(statement)

        return ClusteringResult(
            clusters={rep: frozenset(clusters[rep]) for rep in sorted(clusters)},
            unprocessed=frozenset(unprocessed),
        )


def cluster_statements(statements: Iterable[str]) -> ClusteringResult:
    """Shortcut for ``CopyrightStatementsProcessor().process(statements)``."""
    return CopyrightStatementsProcessor().process(statements)
