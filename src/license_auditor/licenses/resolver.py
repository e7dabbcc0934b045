"""Resolution of raw license information into the canonical per-package view.

Resolution merges declared, concluded and detected licenses, applies license
finding curations, annotates locations with matching path excludes, removes
copyright garbage, and associates copyright findings with the license
findings they belong to.

Resolution is a pure, synchronous computation over in-memory data. It does
not fail on well-formed input: a package without any findings resolves to an
empty result.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from license_auditor.config import (
    CopyrightGarbage,
    LicenseFindingCuration,
    PathExclude,
)
from license_auditor.licenses.info import LicenseInfo, LicenseInfoProvider
from license_auditor.licenses.resolved import (
    ResolvedCopyrightFinding,
    ResolvedLicense,
    ResolvedLicenseInfo,
    ResolvedLicenseLocation,
)
from license_auditor.models import (
    CopyrightFinding,
    LicenseFinding,
    LicenseSource,
    PackageId,
    Provenance,
    TextLocation,
)
from license_auditor.spdx import NOASSERTION, NONE, decompose, normalize_expression

logger = logging.getLogger(__name__)

_NOT_A_LICENSE = {NONE, NOASSERTION}


@dataclass
class _LicenseBuilder:
    original_declared_licenses: set[str] = field(default_factory=set)
    original_expressions: defaultdict = field(default_factory=lambda: defaultdict(set))
    locations: set[ResolvedLicenseLocation] = field(default_factory=set)

    def build(self, license: str) -> ResolvedLicense:
        return ResolvedLicense(
            license=license,
            original_declared_licenses=frozenset(self.original_declared_licenses),
            original_expressions={
                source: frozenset(expressions)
                for source, expressions in self.original_expressions.items()
            },
            locations=frozenset(self.locations),
        )


@dataclass(frozen=True)
class CuratedFinding:
    """A license finding after curation.

    Attributes:
        finding: The finding with the curated license expression.
        curation: The curation applied, or None.
        original_license: The expression before curation, or None if not curated.
    """

    finding: LicenseFinding
    curation: Optional[LicenseFindingCuration] = None
    original_license: Optional[str] = None


def _licenses_of(expression: str) -> list[str]:
    return [lic for lic in decompose(expression) if lic not in _NOT_A_LICENSE]


def _is_near(license_location: TextLocation, copyright_location: TextLocation, tolerance: int) -> bool:
    unknown = TextLocation.UNKNOWN_LINE
    if license_location.start_line == unknown or copyright_location.start_line == unknown:
        return True
    return (
        license_location.start_line - tolerance <= copyright_location.end_line
        and copyright_location.start_line <= license_location.end_line + tolerance
    )


class LicenseInfoResolver:
    """Resolves LicenseInfo into ResolvedLicenseInfo.

    Attributes:
        curations: License finding curations, applied first match wins.
        path_excludes: Path excludes used to annotate locations.
        copyright_garbage: Copyright statements to discard.
        provider: Optional provider used by ``resolve_license_info``.
        tolerance_lines: If set, a copyright only belongs to the license findings of
            its file within this many lines, unless none is that close. If None,
            it belongs to every license finding of its file.
    """

    def __init__(
        self,
        curations: Iterable[LicenseFindingCuration] = (),
        path_excludes: Iterable[PathExclude] = (),
        copyright_garbage: Optional[CopyrightGarbage] = None,
        provider: Optional[LicenseInfoProvider] = None,
        tolerance_lines: Optional[int] = None,
    ) -> None:
        self.curations = tuple(curations)
        self.path_excludes = tuple(path_excludes)
        self.copyright_garbage = copyright_garbage or CopyrightGarbage()
        self.provider = provider
        self.tolerance_lines = tolerance_lines
        self._resolved: dict[PackageId, ResolvedLicenseInfo] = {}

    def resolve_license_info(self, id: PackageId) -> ResolvedLicenseInfo:
        """Resolve a package using the configured provider, memoized per instance.

        Raises:
            ValueError: If the resolver was created without a provider.
        """
        if self.provider is None:
            raise ValueError("resolve_license_info() requires a LicenseInfoProvider")

        if id not in self._resolved:
            self._resolved[id] = self.resolve(self.provider.get(id))
        return self._resolved[id]

    def matching_path_excludes(self, path: str) -> tuple[PathExclude, ...]:
        return tuple(exclude for exclude in self.path_excludes if exclude.matches(path))

    def curate(self, findings: Iterable[LicenseFinding]) -> list[CuratedFinding]:
        """Apply curations to license findings.

        Findings removed by a curation are dropped; rewritten findings keep
        their original expression.
        """
        curated = []
        for finding in sorted(findings):
            curation = next((c for c in self.curations if c.matches(finding)), None)
            if curation is None:
                curated.append(CuratedFinding(finding))
            elif curation.is_removal:
                logger.debug(
                    "Curation for '%s' removed finding %s at %s",
                    curation.path,
                    finding.license,
                    finding.location,
                )
            else:
                curated.append(
                    CuratedFinding(
                        finding=LicenseFinding(curation.concluded_license, finding.location),
                        curation=curation,
                        original_license=finding.license,
                    )
                )
        return curated

    def associate_copyrights(
        self,
        license_findings: Iterable[LicenseFinding],
        copyright_findings: Iterable[CopyrightFinding],
    ) -> tuple[dict[LicenseFinding, set[CopyrightFinding]], set[CopyrightFinding]]:
        """Associate copyright findings with license findings in the same file.

        A copyright belongs to every license finding of its file. With
        ``tolerance_lines`` set, it only belongs to the findings within that many
        lines of it, or to all findings of its file if none is that close.

        Returns:
            Tuple of (copyrights per license finding, unmatched copyrights).
        """
        by_path: dict[str, list[LicenseFinding]] = defaultdict(list)
        for finding in license_findings:
            by_path[finding.location.path].append(finding)

        associations: dict[LicenseFinding, set[CopyrightFinding]] = defaultdict(set)
        unmatched: set[CopyrightFinding] = set()

        for copyright in copyright_findings:
            candidates = by_path.get(copyright.location.path)
            if not candidates:
                unmatched.add(copyright)
                continue

            near = None
            if self.tolerance_lines is not None:
                near = [
                    finding
                    for finding in candidates
                    if _is_near(finding.location, copyright.location, self.tolerance_lines)
                ]
            for finding in near or candidates:
                associations[finding].add(copyright)

        return associations, unmatched

    def resolve(self, info: LicenseInfo) -> ResolvedLicenseInfo:
        """Resolve the license info of one package.

        Args:
            info: Unresolved license info.

        Returns:
            The canonical view with one ResolvedLicense per single license.
        """
        builders: dict[str, _LicenseBuilder] = defaultdict(_LicenseBuilder)

        concluded = info.concluded.concluded_license
        if concluded:
            for license in _licenses_of(concluded):
                builders[license].original_expressions[LicenseSource.CONCLUDED].add(
                    normalize_expression(concluded)
                )

        processed = info.declared.processed
        if processed.spdx_expression:
            for license in _licenses_of(processed.spdx_expression):
                builder = builders[license]
                builder.original_expressions[LicenseSource.DECLARED].add(processed.spdx_expression)
                builder.original_declared_licenses.update(
                    raw for raw, spdx in processed.mapped.items() if license in decompose(spdx)
                )

        copyright_garbage: dict[Provenance, set[CopyrightFinding]] = defaultdict(set)
        unmatched_copyrights: dict[Provenance, set[CopyrightFinding]] = defaultdict(set)
        issues = []

        for findings in info.detected.findings:
            provenance = findings.provenance
            issues.extend(findings.issues)

            curated = [
                c for c in self.curate(findings.license_findings) if _licenses_of(c.finding.license)
            ]

            copyrights = set()
            for copyright in findings.copyright_findings:
                if copyright.statement in self.copyright_garbage:
                    copyright_garbage[provenance].add(copyright)
                else:
                    copyrights.add(copyright)

            associations, unmatched = self.associate_copyrights(
                (c.finding for c in curated), copyrights
            )
            if unmatched:
                unmatched_copyrights[provenance].update(unmatched)

            for c in curated:
                finding = c.finding
                location = ResolvedLicenseLocation(
                    provenance=provenance,
                    location=finding.location,
                    applied_curation=c.curation,
                    original_license=c.original_license,
                    matching_path_excludes=self.matching_path_excludes(finding.location.path),
                    copyrights=frozenset(
                        ResolvedCopyrightFinding(
                            statement=copyright.statement,
                            location=copyright.location,
                            matching_path_excludes=self.matching_path_excludes(
                                copyright.location.path
                            ),
                        )
                        for copyright in associations.get(finding, ())
                    ),
                )

                expression = normalize_expression(finding.license)
                for license in _licenses_of(finding.license):
                    builder = builders[license]
                    builder.original_expressions[LicenseSource.DETECTED].add(expression)
                    builder.locations.add(location)

        resolved = ResolvedLicenseInfo(
            id=info.id,
            license_info=info,
            licenses=tuple(builders[license].build(license) for license in sorted(builders)),
            copyright_garbage={p: frozenset(f) for p, f in copyright_garbage.items()},
            unmatched_copyrights={p: frozenset(f) for p, f in unmatched_copyrights.items()},
            issues=tuple(issues),
        )

        logger.debug(
            "Resolved %d license(s) for '%s' from %d scan result(s)",
            len(resolved.licenses),
            info.id.to_coordinates(),
            len(info.detected.findings),
        )
        return resolved


def resolve_license_info(
    info: LicenseInfo,
    curations: Iterable[LicenseFindingCuration] = (),
    path_excludes: Iterable[PathExclude] = (),
    copyright_garbage: Optional[CopyrightGarbage] = None,
    tolerance_lines: Optional[int] = None,
) -> ResolvedLicenseInfo:
    """Resolve license info with the given curations, excludes and garbage."""
    return LicenseInfoResolver(
        curations, path_excludes, copyright_garbage, tolerance_lines=tolerance_lines
    ).resolve(info)
