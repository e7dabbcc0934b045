"""Runs compliance policies over resolved license information."""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from license_auditor.evaluator.policies import Policy
from license_auditor.evaluator.rules import RuleSet, RuleViolation
from license_auditor.licenses.resolved import ResolvedLicenseInfo
from license_auditor.models import PackageId, Severity

logger = logging.getLogger(__name__)


def sort_violations(violations: Iterable[RuleViolation]) -> list[RuleViolation]:
    """Sort violations by severity, most severe first, then by package and license.

    The sort is stable, so violations with equal keys keep their rule order.
    """
    return sorted(
        violations,
        key=lambda v: (
            -v.severity.value,
            v.pkg.to_coordinates() if v.pkg else "",
            v.license or "",
        ),
    )


@dataclass(frozen=True)
class EvaluatorRun:
    """The violations of one evaluation run, in rule order."""

    violations: tuple[RuleViolation, ...] = ()

    def __len__(self) -> int:
        return len(self.violations)

    def with_severity(self, severity: Severity) -> list[RuleViolation]:
        return [v for v in self.violations if v.severity == severity]

    def for_package(self, id: PackageId) -> list[RuleViolation]:
        return [v for v in self.violations if v.pkg == id]

    @property
    def has_errors(self) -> bool:
        return any(v.severity == Severity.ERROR for v in self.violations)

    def sorted(self) -> list[RuleViolation]:
        return sort_violations(self.violations)


class Evaluator:
    """Applies a list of policies to a resolved model.

    Evaluation is pure: the same model and policies always produce the same
    violations. Exceptions raised by a policy propagate to the caller.
    """

    def __init__(self, policies: Optional[Iterable[Policy]] = None) -> None:
        self.policies = list(policies or [])

    def run(self, model: Mapping[PackageId, ResolvedLicenseInfo]) -> EvaluatorRun:
        """Evaluate all policies.

        Args:
            model: Resolved license info per package.

        Returns:
            EvaluatorRun with the violations of all rules in creation order.
        """
        rule_set = RuleSet(model)
        for policy in self.policies:
            policy(rule_set)

        violations = rule_set.evaluate()

        logger.info(
            "Evaluated %d rule(s) for %d package(s): %d error(s), %d warning(s), %d hint(s)",
            len(rule_set.rules),
            len(model),
            sum(1 for v in violations if v.severity == Severity.ERROR),
            sum(1 for v in violations if v.severity == Severity.WARNING),
            sum(1 for v in violations if v.severity == Severity.HINT),
        )
        return EvaluatorRun(tuple(violations))
