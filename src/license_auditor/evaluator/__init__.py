"""Rule based evaluation of resolved license information."""

from license_auditor.evaluator.evaluator import Evaluator, EvaluatorRun, sort_violations
from license_auditor.evaluator.matchers import (
    has_concluded_license,
    has_issues,
    has_license,
    has_license_source,
    has_unmatched_copyrights,
    is_detected_excluded,
    is_license_in,
)
from license_auditor.evaluator.policies import (
    Policy,
    license_list_policy,
    policies_from_config,
    scan_issues_policy,
    unmatched_copyrights_policy,
    unresolved_license_policy,
)
from license_auditor.evaluator.rules import (
    Emission,
    LicenseRule,
    Matcher,
    Not,
    PackageRule,
    Requirement,
    Rule,
    RuleMatcher,
    RuleSet,
    RuleViolation,
    negate,
)

__all__ = [
    "Emission",
    "Evaluator",
    "EvaluatorRun",
    "LicenseRule",
    "Matcher",
    "Not",
    "PackageRule",
    "Policy",
    "Requirement",
    "Rule",
    "RuleMatcher",
    "RuleSet",
    "RuleViolation",
    "has_concluded_license",
    "has_issues",
    "has_license",
    "has_license_source",
    "has_unmatched_copyrights",
    "is_detected_excluded",
    "is_license_in",
    "license_list_policy",
    "negate",
    "policies_from_config",
    "scan_issues_policy",
    "sort_violations",
    "unmatched_copyrights_policy",
    "unresolved_license_policy",
]
