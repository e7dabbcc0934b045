"""Resolved license information of a package.

The resolved view is derived data: it is recomputed from the scan results
cache plus the current curations, path excludes and copyright garbage, and is
never persisted.
"""

from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, Mapping, Optional

from license_auditor.config import LicenseFindingCuration, PathExclude
from license_auditor.copyrights import CopyrightStatementsProcessor
from license_auditor.licenses.info import LicenseInfo
from license_auditor.models import (
    CopyrightFinding,
    Issue,
    LicenseSource,
    PackageId,
    Provenance,
    TextLocation,
)


@dataclass(frozen=True)
class ResolvedCopyrightFinding:
    """A copyright finding together with the path excludes matching its location."""

    statement: str
    location: TextLocation
    matching_path_excludes: tuple[PathExclude, ...] = ()


@dataclass(frozen=True)
class ResolvedCopyright:
    """A (possibly clustered) copyright statement and the findings it stands for.

    The statements of the findings can differ from ``statement`` if they were
    merged by the copyright statements processor.
    """

    statement: str
    findings: frozenset[ResolvedCopyrightFinding]


@dataclass(frozen=True)
class ResolvedLicenseLocation:
    """A text location a license was detected at.

    Attributes:
        provenance: Provenance of the scanned source tree.
        location: Location relative to the provenance root.
        applied_curation: The curation that rewrote the finding, if any.
        original_license: The expression detected before curation, if curated.
        matching_path_excludes: All path excludes matching the location.
        copyrights: Copyright findings associated with the location, garbage removed.
    """

    provenance: Provenance
    location: TextLocation
    applied_curation: Optional[LicenseFindingCuration] = None
    original_license: Optional[str] = None
    matching_path_excludes: tuple[PathExclude, ...] = ()
    copyrights: frozenset[ResolvedCopyrightFinding] = frozenset()

    @property
    def is_excluded(self) -> bool:
        return bool(self.matching_path_excludes)


def _to_resolved_copyrights(
    findings: Iterable[ResolvedCopyrightFinding], process: bool
) -> list[ResolvedCopyright]:
    findings = list(findings)
    statements = {finding.statement for finding in findings}

    if process:
        clusters = CopyrightStatementsProcessor().process(statements).clusters
    else:
        clusters = {statement: frozenset([statement]) for statement in statements}

    resolved = []
    for representative in sorted(clusters):
        members = frozenset(f for f in findings if f.statement in clusters[representative])
        if members:
            resolved.append(ResolvedCopyright(representative, members))
    return resolved


@dataclass(frozen=True)
class ResolvedLicense:
    """Everything known about one single license of a package.

    Attributes:
        license: Single license expression, e.g. "MIT" or
            "GPL-2.0-only WITH Classpath-exception-2.0".
        original_declared_licenses: Declared license strings that were mapped
            to this license.
        original_expressions: The original expressions containing this
            license, grouped by license source.
        locations: All locations this license was detected at.
    """

    license: str
    original_declared_licenses: frozenset[str] = frozenset()
    original_expressions: Mapping[LicenseSource, frozenset[str]] = field(
        default_factory=dict, hash=False
    )
    locations: frozenset[ResolvedLicenseLocation] = frozenset()

    @property
    def sources(self) -> frozenset[LicenseSource]:
        return frozenset(self.original_expressions)

    @property
    def is_detected_excluded(self) -> bool:
        """True if the license was detected and every location is excluded."""
        return LicenseSource.DETECTED in self.sources and all(
            location.is_excluded for location in self.locations
        )

    def get_resolved_copyrights(
        self, process: bool = True, omit_excluded: bool = True
    ) -> list[ResolvedCopyright]:
        """Return the copyrights associated with this license.

        Args:
            process: Cluster the statements with the copyright statements processor.
            omit_excluded: Leave out findings matched by a path exclude.
        """
        findings = [
            copyright
            for location in self.locations
            for copyright in location.copyrights
            if not omit_excluded or not copyright.matching_path_excludes
        ]
        return _to_resolved_copyrights(findings, process)

    def get_copyrights(self, process: bool = True, omit_excluded: bool = True) -> set[str]:
        return {c.statement for c in self.get_resolved_copyrights(process, omit_excluded)}

    def filter_excluded_copyrights(self) -> "ResolvedLicense":
        """Return a copy without copyright findings that are matched by a path exclude."""
        return replace(
            self,
            locations=frozenset(
                replace(
                    location,
                    copyrights=frozenset(
                        c for c in location.copyrights if not c.matching_path_excludes
                    ),
                )
                for location in self.locations
            ),
        )


def filter_excluded(licenses: Iterable[ResolvedLicense]) -> list[ResolvedLicense]:
    """Drop excluded licenses and copyrights.

    A license is dropped only if it was solely detected and all of its
    locations are excluded. Declared or concluded licenses always stay.
    Copyright findings matched by a path exclude are dropped from the
    remaining licenses.
    """
    return [
        license.filter_excluded_copyrights()
        for license in licenses
        if license.sources != {LicenseSource.DETECTED}
        or any(not location.is_excluded for location in license.locations)
    ]


@dataclass(frozen=True)
class ResolvedLicenseInfo:
    """The canonical license and copyright picture of one package.

    Attributes:
        id: Package identifier.
        license_info: The unresolved input this was resolved from.
        licenses: One entry per distinct single license, sorted by license.
        copyright_garbage: Findings removed as copyright garbage, per provenance.
        unmatched_copyrights: Findings not associated with any license location,
            per provenance.
        issues: Issues recorded by the detector, unchanged.
    """

    id: PackageId
    license_info: Optional[LicenseInfo] = None
    licenses: tuple[ResolvedLicense, ...] = ()
    copyright_garbage: Mapping[Provenance, frozenset[CopyrightFinding]] = field(
        default_factory=dict, hash=False
    )
    unmatched_copyrights: Mapping[Provenance, frozenset[CopyrightFinding]] = field(
        default_factory=dict, hash=False
    )
    issues: tuple[Issue, ...] = ()

    def __iter__(self) -> Iterator[ResolvedLicense]:
        return iter(self.licenses)

    def __len__(self) -> int:
        return len(self.licenses)

    def get(self, license: str) -> Optional[ResolvedLicense]:
        return next((r for r in self.licenses if r.license == license), None)

    @property
    def license_names(self) -> list[str]:
        return [r.license for r in self.licenses]

    def get_copyrights(self, process: bool = True, omit_excluded: bool = True) -> set[str]:
        """Return all copyright statements of all licenses.

        Args:
            process: Cluster the statements with the copyright statements processor.
            omit_excluded: Leave out findings matched by a path exclude.
        """
        statements = set()
        for license in self.licenses:
            statements |= license.get_copyrights(process=False, omit_excluded=omit_excluded)

        if not process:
            return statements
        return CopyrightStatementsProcessor().process(statements).all_statements()

    def filter(self, provenance: Provenance, path: str) -> list[ResolvedLicense]:
        """Return all licenses detected in the given file of the given provenance."""
        return [
            license
            for license in self.licenses
            if any(
                location.provenance == provenance and location.location.path == path
                for location in license.locations
            )
        ]

    def filter_excluded(self) -> "ResolvedLicenseInfo":
        return replace(self, licenses=tuple(filter_excluded(self.licenses)))

    def apply_view(self, view: "LicenseView", filter_sources: bool = False) -> "ResolvedLicenseInfo":
        return view.filter(self, filter_sources)

    @property
    def garbage_statements(self) -> set[str]:
        return {f.statement for findings in self.copyright_garbage.values() for f in findings}


class LicenseView:
    """Selects which license sources to look at.

    A view is a list of source sets which are tried in order. The first set
    for which at least one license has a matching source determines the
    result; if no set matches, the result has no licenses.
    """

    ALL: "LicenseView"
    ONLY_CONCLUDED: "LicenseView"
    ONLY_DECLARED: "LicenseView"
    ONLY_DETECTED: "LicenseView"
    CONCLUDED_OR_DECLARED_AND_DETECTED: "LicenseView"
    CONCLUDED_OR_DECLARED_OR_DETECTED: "LicenseView"
    CONCLUDED_OR_DETECTED: "LicenseView"

    def __init__(self, *license_sources: Iterable[LicenseSource]) -> None:
        self.license_sources = [frozenset(sources) for sources in license_sources]

    def filter(self, info: ResolvedLicenseInfo, filter_sources: bool = False) -> ResolvedLicenseInfo:
        """Restrict the licenses of a resolved info to this view.

        Args:
            info: The resolved license info.
            filter_sources: Also drop original expressions (and, unless detected
                licenses are in view, locations) of sources outside the view.
        """
        for sources in self.license_sources:
            licenses = [license for license in info.licenses if license.sources & sources]
            if not licenses:
                continue

            if filter_sources:
                licenses = [
                    replace(
                        license,
                        original_expressions={
                            source: expressions
                            for source, expressions in license.original_expressions.items()
                            if source in sources
                        },
                        locations=(
                            license.locations if LicenseSource.DETECTED in sources else frozenset()
                        ),
                    )
                    for license in licenses
                ]
            return replace(info, licenses=tuple(licenses))

        return replace(info, licenses=())


LicenseView.ALL = LicenseView(set(LicenseSource))
LicenseView.ONLY_CONCLUDED = LicenseView({LicenseSource.CONCLUDED})
LicenseView.ONLY_DECLARED = LicenseView({LicenseSource.DECLARED})
LicenseView.ONLY_DETECTED = LicenseView({LicenseSource.DETECTED})
LicenseView.CONCLUDED_OR_DECLARED_AND_DETECTED = LicenseView(
    {LicenseSource.CONCLUDED}, {LicenseSource.DECLARED, LicenseSource.DETECTED}
)
LicenseView.CONCLUDED_OR_DECLARED_OR_DETECTED = LicenseView(
    {LicenseSource.CONCLUDED}, {LicenseSource.DECLARED}, {LicenseSource.DETECTED}
)
LicenseView.CONCLUDED_OR_DETECTED = LicenseView({LicenseSource.CONCLUDED}, {LicenseSource.DETECTED})
