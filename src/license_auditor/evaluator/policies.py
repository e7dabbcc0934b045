"""Built-in compliance policies.

A policy is a callable that receives the RuleSet of an evaluation run and
declares rules on it. Policies only declare checks; the evaluator decides
when they are evaluated.
"""

from typing import Callable, Iterable

from license_auditor.config import PolicyConfig
from license_auditor.evaluator.matchers import (
    has_issues,
    has_license,
    has_unmatched_copyrights,
    is_license_in,
)
from license_auditor.evaluator.rules import RuleSet, negate
from license_auditor.licenses.resolved import ResolvedLicense
from license_auditor.models import LicenseSource, Severity

Policy = Callable[[RuleSet], None]

# The most authoritative source is reported for a license found in several.
_SOURCE_PRIORITY = (LicenseSource.CONCLUDED, LicenseSource.DECLARED, LicenseSource.DETECTED)


def _primary_source(resolved_license: ResolvedLicense) -> LicenseSource:
    return next(
        (s for s in _SOURCE_PRIORITY if s in resolved_license.sources), LicenseSource.DETECTED
    )


def license_list_policy(
    allowed: Iterable[str] = (), forbidden: Iterable[str] = ()
) -> Policy:
    """Check every license of every package against an allow or deny list.

    Licenses that were only detected in excluded locations are skipped.

    Args:
        allowed: If non-empty, every license outside this list is an error.
        forbidden: Every license in this list is an error.

    Raises:
        ValueError: If both lists are given.
    """
    allowed_set = frozenset(allowed)
    forbidden_set = frozenset(forbidden)
    if allowed_set and forbidden_set:
        raise ValueError("Cannot specify both allowed and forbidden licenses")

    def policy(rule_set: RuleSet) -> None:
        for info in rule_set.model.values():
            package_rule = rule_set.package_rule("LICENSE_LIST", info)

            for resolved_license in info:
                if resolved_license.is_detected_excluded:
                    continue

                rule = rule_set.license_rule(
                    "LICENSE_LIST",
                    package_rule,
                    resolved_license,
                    _primary_source(resolved_license),
                )
                name = resolved_license.license

                if forbidden_set:
                    rule.require(
                        negate(is_license_in(name, forbidden_set)),
                        message=f"License {name} of '{info.id.to_coordinates()}' is forbidden.",
                        how_to_fix="Remove the dependency or obtain an exception for its license.",
                    )
                if allowed_set:
                    rule.require(
                        is_license_in(name, allowed_set),
                        message=f"License {name} of '{info.id.to_coordinates()}' is not allowed.",
                        how_to_fix="Remove the dependency or add its license to the allowed list.",
                    )

    return policy


def scan_issues_policy(severity: Severity = Severity.WARNING) -> Policy:
    """Flag packages whose scans recorded issues."""

    def policy(rule_set: RuleSet) -> None:
        for info in rule_set.model.values():
            rule = rule_set.package_rule("SCAN_ISSUES", info)
            rule.require(
                negate(has_issues(info, Severity.HINT)),
                severity=severity,
                message=(
                    f"The scans of '{info.id.to_coordinates()}' recorded "
                    f"{len(info.issues)} issue(s)."
                ),
                how_to_fix="Re-scan the package or review its findings manually.",
            )

    return policy


def unresolved_license_policy(severity: Severity = Severity.ERROR) -> Policy:
    """Flag packages for which no license is known at all."""

    def policy(rule_set: RuleSet) -> None:
        for info in rule_set.model.values():
            rule = rule_set.package_rule("UNRESOLVED_LICENSE", info)
            rule.require(
                has_license(info),
                severity=severity,
                message=f"No license is known for '{info.id.to_coordinates()}'.",
                how_to_fix="Add a concluded license for the package.",
            )

    return policy


def unmatched_copyrights_policy() -> Policy:
    """Hint at packages with copyright statements not tied to any license finding."""

    def policy(rule_set: RuleSet) -> None:
        for info in rule_set.model.values():
            rule = rule_set.package_rule("UNMATCHED_COPYRIGHTS", info)
            if has_unmatched_copyrights(info).matches():
                count = sum(len(findings) for findings in info.unmatched_copyrights.values())
                rule.hint(
                    info.id,
                    None,
                    None,
                    f"'{info.id.to_coordinates()}' has {count} copyright statement(s) "
                    "outside of any licensed file.",
                )

    return policy


def policies_from_config(config: PolicyConfig) -> list[Policy]:
    """Build the list of built-in policies enabled by a policy configuration."""
    policies = []
    if config.allowed or config.forbidden:
        policies.append(license_list_policy(config.allowed, config.forbidden))
    if config.flag_scan_issues:
        policies.append(scan_issues_policy())
    if config.flag_unresolved:
        policies.append(unresolved_license_policy())
    if config.flag_unmatched_copyrights:
        policies.append(unmatched_copyrights_policy())
    return policies
