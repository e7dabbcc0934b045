"""License and copyright resolution.

This module turns the raw findings stored in the scan results cache into one
canonical, curated and de-duplicated license picture per package.
"""

from license_auditor.licenses.info import (
    ConcludedLicenseInfo,
    DeclaredLicenseInfo,
    DetectedLicenseInfo,
    Findings,
    LicenseInfo,
    LicenseInfoProvider,
    PackageDescription,
)
from license_auditor.licenses.resolved import (
    LicenseView,
    ResolvedCopyright,
    ResolvedCopyrightFinding,
    ResolvedLicense,
    ResolvedLicenseInfo,
    ResolvedLicenseLocation,
    filter_excluded,
)
from license_auditor.licenses.resolver import LicenseInfoResolver, resolve_license_info

__all__ = [
    "ConcludedLicenseInfo",
    "DeclaredLicenseInfo",
    "DetectedLicenseInfo",
    "Findings",
    "LicenseInfo",
    "LicenseInfoProvider",
    "LicenseInfoResolver",
    "LicenseView",
    "PackageDescription",
    "ResolvedCopyright",
    "ResolvedCopyrightFinding",
    "ResolvedLicense",
    "ResolvedLicenseInfo",
    "ResolvedLicenseLocation",
    "filter_excluded",
    "resolve_license_info",
]
