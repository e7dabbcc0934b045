"""Rules, matchers and violations.

A rule is built as data: every call on a rule appends a check to its ordered
``checks`` list. A check either emits a violation directly (``hint``,
``warning``, ``error``) or declares a requirement, a group of matchers that
must all hold. A requirement that does not hold produces one violation when
the rule is evaluated.

Matchers are side-effect free predicates with a human readable description.
Negation is an explicit ``Not`` wrapper created by ``negate``.
"""

from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Protocol, Union, runtime_checkable

from license_auditor.licenses.resolved import ResolvedLicense, ResolvedLicenseInfo
from license_auditor.models import LicenseSource, PackageId, Severity


@dataclass(frozen=True)
class RuleViolation:
    """A policy finding emitted by a rule.

    Attributes:
        rule: Name of the rule that emitted the violation.
        pkg: The package concerned, if any.
        license: The license concerned, if any.
        license_source: Where the license came from, if any.
        severity: Severity of the violation.
        message: Description of the problem.
        how_to_fix: Instructions for resolving the problem.
    """

    rule: str
    pkg: Optional[PackageId]
    license: Optional[str]
    license_source: Optional[LicenseSource]
    severity: Severity
    message: str
    how_to_fix: str = ""


@runtime_checkable
class RuleMatcher(Protocol):
    """A named boolean predicate."""

    @property
    def description(self) -> str: ...

    def matches(self) -> bool: ...


@dataclass(frozen=True)
class Matcher:
    """A matcher evaluating a predicate function."""

    description: str
    predicate: Callable[[], bool] = field(compare=False, repr=False)

    def matches(self) -> bool:
        return bool(self.predicate())


@dataclass(frozen=True)
class Not:
    """Logical negation of another matcher."""

    matcher: RuleMatcher

    @property
    def description(self) -> str:
        return f"!({self.matcher.description})"

    def matches(self) -> bool:
        return not self.matcher.matches()


def negate(matcher: RuleMatcher) -> Not:
    """Return a matcher that holds exactly when the given matcher does not."""
    return Not(matcher)


@dataclass(frozen=True)
class Emission:
    """A check that unconditionally emits a violation."""

    violation: RuleViolation


@dataclass(frozen=True)
class Requirement:
    """A check that emits a violation unless all of its matchers hold."""

    matchers: tuple[RuleMatcher, ...]
    severity: Severity = Severity.ERROR
    message: Optional[str] = None
    how_to_fix: str = ""


Check = Union[Emission, Requirement]


class Rule:
    """A named compliance rule.

    Attributes:
        name: Rule name, copied into every violation.
        pkg: Package the rule is about, used for requirement violations.
        license: License the rule is about, used for requirement violations.
        license_source: Source of that license.
        checks: Ordered checks declared on the rule.
        matchers: All matchers of all requirements, in declaration order.
        violations: Violations emitted so far.
    """

    def __init__(
        self,
        name: str,
        pkg: Optional[PackageId] = None,
        license: Optional[str] = None,
        license_source: Optional[LicenseSource] = None,
    ) -> None:
        self.name = name
        self.pkg = pkg
        self.license = license
        self.license_source = license_source
        self.checks: list[Check] = []
        self.matchers: list[RuleMatcher] = []
        self.violations: list[RuleViolation] = []
        self._evaluated = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, checks={len(self.checks)})"

    def _emit(
        self,
        severity: Severity,
        pkg: Optional[PackageId],
        license: Optional[str],
        license_source: Optional[LicenseSource],
        message: str,
        how_to_fix: str,
    ) -> RuleViolation:
        violation = RuleViolation(
            rule=self.name,
            pkg=pkg,
            license=license,
            license_source=license_source,
            severity=severity,
            message=message,
            how_to_fix=how_to_fix,
        )
        self.checks.append(Emission(violation))
        self.violations.append(violation)
        return violation

    def hint(
        self,
        pkg: Optional[PackageId],
        license: Optional[str],
        license_source: Optional[LicenseSource],
        message: str,
        how_to_fix: str = "",
    ) -> RuleViolation:
        return self._emit(Severity.HINT, pkg, license, license_source, message, how_to_fix)

    def warning(
        self,
        pkg: Optional[PackageId],
        license: Optional[str],
        license_source: Optional[LicenseSource],
        message: str,
        how_to_fix: str = "",
    ) -> RuleViolation:
        return self._emit(Severity.WARNING, pkg, license, license_source, message, how_to_fix)

    def error(
        self,
        pkg: Optional[PackageId],
        license: Optional[str],
        license_source: Optional[LicenseSource],
        message: str,
        how_to_fix: str = "",
    ) -> RuleViolation:
        return self._emit(Severity.ERROR, pkg, license, license_source, message, how_to_fix)

    def require(
        self,
        *matchers: RuleMatcher,
        severity: Severity = Severity.ERROR,
        message: Optional[str] = None,
        how_to_fix: str = "",
    ) -> Requirement:
        """Declare matchers that must all hold.

        Args:
            *matchers: Matchers in declaration order; wrap with ``negate`` for
                conditions that must not hold.
            severity: Severity of the violation if the requirement fails.
            message: Violation message; by default names the failed matchers.
            how_to_fix: Instructions copied into the violation.

        Returns:
            The requirement appended to ``checks``.
        """
        requirement = Requirement(tuple(matchers), severity, message, how_to_fix)
        self.checks.append(requirement)
        self.matchers.extend(matchers)
        return requirement

    def is_satisfied(self) -> bool:
        """Return True if every declared matcher holds. All matchers are evaluated."""
        results = [matcher.matches() for matcher in self.matchers]
        return all(results)

    def evaluate(self) -> list[RuleViolation]:
        """Evaluate all requirements and return every violation of this rule.

        Requirements are evaluated once; later calls return the same violations.
        """
        if self._evaluated:
            return list(self.violations)
        self._evaluated = True

        for check in self.checks:
            if not isinstance(check, Requirement):
                continue

            failed = [m.description for m in check.matchers if not m.matches()]
            if not failed:
                continue

            message = check.message or (
                f"Rule '{self.name}' requires {', '.join(m.description for m in check.matchers)}, "
                f"but {', '.join(failed)} did not hold."
            )
            self.violations.append(
                RuleViolation(
                    rule=self.name,
                    pkg=self.pkg,
                    license=self.license,
                    license_source=self.license_source,
                    severity=check.severity,
                    message=message,
                    how_to_fix=check.how_to_fix,
                )
            )

        return list(self.violations)


class PackageRule(Rule):
    """A rule about one package and its resolved license info."""

    def __init__(self, name: str, resolved_info: ResolvedLicenseInfo) -> None:
        super().__init__(name, pkg=resolved_info.id)
        self.resolved_info = resolved_info


class LicenseRule(Rule):
    """A rule about one resolved license of a package."""

    def __init__(
        self,
        name: str,
        package_rule: PackageRule,
        resolved_license: ResolvedLicense,
        license_source: LicenseSource,
    ) -> None:
        super().__init__(
            name,
            pkg=package_rule.pkg,
            license=resolved_license.license,
            license_source=license_source,
        )
        self.package_rule = package_rule
        self.resolved_license = resolved_license


class RuleSet:
    """Creates the rules of one evaluation run and collects their violations.

    Attributes:
        model: Resolved license info of every package in the run.
        rules: All rules created, in creation order.
    """

    def __init__(self, model: Mapping[PackageId, ResolvedLicenseInfo]) -> None:
        self.model = model
        self.rules: list[Rule] = []

    def rule(self, name: str) -> Rule:
        rule = Rule(name)
        self.rules.append(rule)
        return rule

    def package_rule(self, name: str, resolved_info: ResolvedLicenseInfo) -> PackageRule:
        rule = PackageRule(name, resolved_info)
        self.rules.append(rule)
        return rule

    def license_rule(
        self,
        name: str,
        package_rule: PackageRule,
        resolved_license: ResolvedLicense,
        license_source: LicenseSource,
    ) -> LicenseRule:
        rule = LicenseRule(name, package_rule, resolved_license, license_source)
        self.rules.append(rule)
        return rule

    def evaluate(self) -> list[RuleViolation]:
        """Evaluate all rules and concatenate their violations in rule order."""
        return [violation for rule in self.rules for violation in rule.evaluate()]
