"""Unresolved license information of a package.

A LicenseInfo bundles everything known about the licenses of one package
before resolution: the licenses declared in its metadata, the license
concluded by a reviewer, and the raw findings detected per provenance.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from license_auditor.cache import ScanResultsStorage
from license_auditor.models import (
    CopyrightFinding,
    Issue,
    LicenseFinding,
    PackageId,
    Provenance,
    ScanResultContainer,
)
from license_auditor.result import Success
from license_auditor.spdx import DeclaredLicenseProcessor, ProcessedDeclaredLicense

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeclaredLicenseInfo:
    """Licenses declared in package metadata.

    Attributes:
        licenses: The raw declared license strings.
        processed: The declared licenses mapped to SPDX.
    """

    licenses: frozenset[str] = frozenset()
    processed: ProcessedDeclaredLicense = field(default_factory=ProcessedDeclaredLicense)


@dataclass(frozen=True)
class Findings:
    """Raw findings of one scan of one provenance."""

    provenance: Provenance
    license_findings: frozenset[LicenseFinding] = frozenset()
    copyright_findings: frozenset[CopyrightFinding] = frozenset()
    issues: tuple[Issue, ...] = ()


@dataclass(frozen=True)
class DetectedLicenseInfo:
    findings: tuple[Findings, ...] = ()


@dataclass(frozen=True)
class ConcludedLicenseInfo:
    concluded_license: Optional[str] = None


@dataclass(frozen=True)
class LicenseInfo:
    """All unresolved license information of a package."""

    id: PackageId
    declared: DeclaredLicenseInfo = field(default_factory=DeclaredLicenseInfo)
    detected: DetectedLicenseInfo = field(default_factory=DetectedLicenseInfo)
    concluded: ConcludedLicenseInfo = field(default_factory=ConcludedLicenseInfo)


@dataclass(frozen=True)
class PackageDescription:
    """A package as reported by the dependency analysis.

    Attributes:
        id: Package identifier.
        declared_licenses: Licenses as declared in the package metadata.
        concluded_license: License expression concluded by a reviewer, if any.
    """

    id: PackageId
    declared_licenses: frozenset[str] = frozenset()
    concluded_license: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "PackageDescription":
        return cls(
            id=PackageId.from_coordinates(data["id"]),
            declared_licenses=frozenset(data.get("declared_licenses", [])),
            concluded_license=data.get("concluded_license"),
        )


def detected_info_from_container(container: ScanResultContainer) -> DetectedLicenseInfo:
    """Turn every stored scan result into one Findings entry, oldest first."""
    return DetectedLicenseInfo(
        findings=tuple(
            Findings(
                provenance=result.provenance,
                license_findings=result.summary.license_findings,
                copyright_findings=result.summary.copyright_findings,
                issues=result.summary.issues,
            )
            for result in container.results
        )
    )


class LicenseInfoProvider:
    """Builds LicenseInfo for packages from their description and the scan results cache.

    Attributes:
        storage: The scan results cache.
    """

    def __init__(
        self,
        storage: ScanResultsStorage,
        packages: Iterable[PackageDescription] = (),
        declared_license_processor: Optional[DeclaredLicenseProcessor] = None,
    ) -> None:
        self.storage = storage
        self.packages = {package.id: package for package in packages}
        self.declared_license_processor = declared_license_processor or DeclaredLicenseProcessor()

    def declared_info(self, package: PackageDescription) -> DeclaredLicenseInfo:
        return DeclaredLicenseInfo(
            licenses=package.declared_licenses,
            processed=self.declared_license_processor.process(package.declared_licenses),
        )

    def build(
        self, package: PackageDescription, container: ScanResultContainer
    ) -> LicenseInfo:
        """Combine a package description with already loaded scan results."""
        return LicenseInfo(
            id=package.id,
            declared=self.declared_info(package),
            detected=detected_info_from_container(container),
            concluded=ConcludedLicenseInfo(package.concluded_license),
        )

    def get(self, id: PackageId) -> LicenseInfo:
        """Return the license info of a package.

        If the cache cannot be read, the failure is logged and the package is
        treated as having no detected findings.
        """
        package = self.packages.get(id, PackageDescription(id))

        read_result = self.storage.read(id)
        if isinstance(read_result, Success):
            container = read_result.value
        else:
            logger.warning(
                "Treating '%s' as unscanned: %s", id.to_coordinates(), read_result.message
            )
            container = ScanResultContainer(id)

        return self.build(package, container)
