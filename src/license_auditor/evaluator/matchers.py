"""Built-in matchers over resolved license information.

Each function returns a Matcher bound to its arguments; nothing is evaluated
until the matcher is asked whether it matches.
"""

from typing import Iterable

from license_auditor.evaluator.rules import Matcher
from license_auditor.licenses.resolved import ResolvedLicense, ResolvedLicenseInfo
from license_auditor.models import LicenseSource, Severity


def has_license(info: ResolvedLicenseInfo) -> Matcher:
    return Matcher("has license", lambda: len(info) > 0)


def is_license_in(license: str, licenses: Iterable[str]) -> Matcher:
    """Match if the license is one of the given licenses, ignoring case."""
    names = sorted(set(licenses))
    keys = {name.casefold() for name in names}
    return Matcher(
        f"license in [{', '.join(names)}]",
        lambda: license.casefold() in keys,
    )


def is_detected_excluded(resolved_license: ResolvedLicense) -> Matcher:
    return Matcher("is detected excluded", lambda: resolved_license.is_detected_excluded)


def has_license_source(resolved_license: ResolvedLicense, source: LicenseSource) -> Matcher:
    return Matcher(
        f"has license source {source.value}",
        lambda: source in resolved_license.sources,
    )


def has_issues(info: ResolvedLicenseInfo, min_severity: Severity = Severity.WARNING) -> Matcher:
    """Match if the package has scan issues of at least the given severity."""
    return Matcher(
        f"has issues of severity {min_severity.name} or higher",
        lambda: any(issue.severity >= min_severity for issue in info.issues),
    )


def has_concluded_license(info: ResolvedLicenseInfo) -> Matcher:
    return Matcher(
        "has concluded license",
        lambda: any(LicenseSource.CONCLUDED in license.sources for license in info),
    )


def has_unmatched_copyrights(info: ResolvedLicenseInfo) -> Matcher:
    return Matcher(
        "has unmatched copyrights",
        lambda: any(findings for findings in info.unmatched_copyrights.values()),
    )
