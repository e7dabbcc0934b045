"""License Auditor - License and copyright compliance from cached scan results.

This package resolves the licenses and copyrights of packages from declared
metadata, reviewer conclusions and cached detector findings, and evaluates
them against compliance rules.
"""

__version__ = "0.1.0"

from license_auditor.models import (
    CopyrightFinding,
    LicenseFinding,
    LicenseSource,
    PackageId,
    Provenance,
    ScanResult,
    ScanResultContainer,
    ScanSummary,
    Severity,
    TextLocation,
)

__all__ = [
    "__version__",
    "CopyrightFinding",
    "LicenseFinding",
    "LicenseSource",
    "PackageId",
    "Provenance",
    "ScanResult",
    "ScanResultContainer",
    "ScanSummary",
    "Severity",
    "TextLocation",
]
