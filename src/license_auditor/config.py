"""Audit configuration: curations, path excludes, copyright garbage and policy.

Configuration is read from a TOML file and validated against pydantic models,
so that a broken curation or exclude pattern, or an unknown key, stops the run
before any package is resolved.
"""

import os
import re
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from license_auditor import spdx
from license_auditor.models import LicenseFinding

CONFIG_ENV_VAR = "LICENSE_AUDITOR_CONFIG"
DEFAULT_MAX_WORKERS = 4


class ConfigurationError(ValueError):
    """Raised when the audit configuration is missing or invalid."""


def compile_glob(pattern: str) -> re.Pattern:
    """Compile a path glob into a regular expression.

    Supported syntax: ``*`` matches within one path segment, ``**`` matches
    across segments (``**/`` also matches no directory at all), ``?`` matches
    one character, and ``[...]`` / ``[!...]`` match character classes.

    Args:
        pattern: Slash separated, relative glob pattern.

    Returns:
        Compiled regular expression that must match the whole path.

    Raises:
        ConfigurationError: If the pattern is empty, absolute or malformed.
    """
    if not pattern or not pattern.strip():
        raise ConfigurationError("Path pattern must not be empty")
    if pattern.startswith("/"):
        raise ConfigurationError(f"Path pattern '{pattern}' must be relative")

    i, n = 0, len(pattern)
    out: list[str] = []
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    i += 1
                    out.append("(?:.*/)?")
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and pattern[j] in "!^":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            j = pattern.find("]", j)
            if j == -1:
                raise ConfigurationError(
                    f"Unterminated character class in path pattern '{pattern}'"
                )
            content = pattern[i + 1 : j].replace("\\", "\\\\")
            if content[0] in "!^":
                content = "^" + content[1:]
            out.append(f"[{content}]")
            i = j + 1
            continue
        else:
            out.append(re.escape(c))
        i += 1

    try:
        return re.compile("".join(out))
    except re.error as e:
        raise ConfigurationError(f"Invalid path pattern '{pattern}': {e}") from e


def _normalize_path(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


class PathExcludeReason(Enum):
    BUILD_TOOL_OF = "BUILD_TOOL_OF"
    DATA_FILE_OF = "DATA_FILE_OF"
    DOCUMENTATION_OF = "DOCUMENTATION_OF"
    EXAMPLE_OF = "EXAMPLE_OF"
    OPTIONAL_COMPONENT_OF = "OPTIONAL_COMPONENT_OF"
    OTHER = "OTHER"
    PROVIDED_BY = "PROVIDED_BY"
    TEST_OF = "TEST_OF"


class CurationReason(Enum):
    CODE = "CODE"
    DATA_OF = "DATA_OF"
    DOCUMENTATION_OF = "DOCUMENTATION_OF"
    INCORRECT = "INCORRECT"
    NOT_DETECTED = "NOT_DETECTED"
    REFERENCE = "REFERENCE"


@dataclass(frozen=True)
class PathExclude:
    """Marks matching paths as not relevant for compliance.

    Attributes:
        pattern: Glob matched against finding paths.
        reason: Why the paths are excluded.
        comment: Free text for reviewers.
    """

    pattern: str
    reason: PathExcludeReason = PathExcludeReason.OTHER
    comment: str = ""
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_glob(self.pattern))

    def matches(self, path: str) -> bool:
        return self._regex.fullmatch(_normalize_path(path)) is not None


@dataclass(frozen=True)
class LicenseFindingCuration:
    """A reviewer's correction of detected license findings.

    A curation applies to a finding when its path glob matches and every
    optional criterion given (original license, start lines, line count)
    matches too.

    Attributes:
        path: Glob matched against the finding path.
        reason: Why the curation was made.
        concluded_license: Replacement expression. None or "NONE" removes the finding.
        detected_license: Only curate findings with this original expression.
        start_lines: Only curate findings starting on one of these lines.
        line_count: Only curate findings spanning this many lines.
        comment: Free text for reviewers.
    """

    path: str
    reason: CurationReason = CurationReason.INCORRECT
    concluded_license: Optional[str] = None
    detected_license: Optional[str] = None
    start_lines: tuple[int, ...] = ()
    line_count: Optional[int] = None
    comment: str = ""
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_glob(self.path))

        for name in ("concluded_license", "detected_license"):
            value = getattr(self, name)
            if value is not None and not spdx.is_valid_expression(value):
                raise ConfigurationError(
                    f"Curation for '{self.path}' has invalid {name} '{value}'"
                )
        if self.line_count is not None and self.line_count < 1:
            raise ConfigurationError(
                f"Curation for '{self.path}' has invalid line_count {self.line_count}"
            )

    @property
    def is_removal(self) -> bool:
        return self.concluded_license is None or self.concluded_license.strip() == spdx.NONE

    def matches(self, finding: LicenseFinding) -> bool:
        location = finding.location
        if self._regex.fullmatch(_normalize_path(location.path)) is None:
            return False
        if self.start_lines and location.start_line not in self.start_lines:
            return False
        if self.line_count is not None and location.line_count != self.line_count:
            return False
        if self.detected_license is not None:
            return spdx.normalize_expression(self.detected_license) == spdx.normalize_expression(
                finding.license
            )
        return True


@dataclass(frozen=True)
class CopyrightGarbage:
    """Copyright statements known to be false positives."""

    items: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", frozenset(item.strip() for item in self.items))

    def __contains__(self, statement: object) -> bool:
        return isinstance(statement, str) and statement.strip() in self.items

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class StorageConfig:
    """Which cache backend to use and where it keeps its data."""

    backend: str = "local"
    path: Path = field(
        default_factory=lambda: Path.home() / ".cache" / "license_auditor" / "scan-results"
    )


@dataclass(frozen=True)
class PolicyConfig:
    """Parameters of the built-in compliance policies.

    Attributes:
        allowed: If non-empty, every license outside this set is a violation.
        forbidden: Licenses that are always a violation.
        flag_scan_issues: Report packages whose scans recorded issues.
        flag_unresolved: Report packages without any resolved license.
        flag_unmatched_copyrights: Hint at packages with copyrights not tied to a license.
    """

    allowed: frozenset[str] = frozenset()
    forbidden: frozenset[str] = frozenset()
    flag_scan_issues: bool = True
    flag_unresolved: bool = False
    flag_unmatched_copyrights: bool = False

    def __post_init__(self) -> None:
        if self.allowed and self.forbidden:
            raise ConfigurationError("Cannot specify both allowed and forbidden licenses")


@dataclass(frozen=True)
class AuditConfig:
    """Complete configuration of an audit run."""

    curations: tuple[LicenseFindingCuration, ...] = ()
    path_excludes: tuple[PathExclude, ...] = ()
    copyright_garbage: CopyrightGarbage = field(default_factory=CopyrightGarbage)
    storage: StorageConfig = field(default_factory=StorageConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    max_workers: int = DEFAULT_MAX_WORKERS
    copyright_tolerance_lines: Optional[int] = None


class _Schema(BaseModel):
    model_config = {"extra": "forbid"}


class CurationEntry(_Schema):
    """One ``[[curations]]`` table."""

    path: str
    reason: CurationReason = CurationReason.INCORRECT
    concluded_license: Optional[str] = None
    detected_license: Optional[str] = None
    start_lines: list[int] = Field(default_factory=list)
    line_count: Optional[int] = Field(default=None, ge=1)
    comment: str = ""

    @field_validator("path")
    @classmethod
    def check_path(cls, value: str) -> str:
        compile_glob(value)
        return value

    @field_validator("concluded_license", "detected_license")
    @classmethod
    def check_expression(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not spdx.is_valid_expression(value):
            raise ValueError(f"Invalid SPDX expression '{value}'")
        return value


class PathExcludeEntry(_Schema):
    """One ``[[path_excludes]]`` table."""

    pattern: str
    reason: PathExcludeReason = PathExcludeReason.OTHER
    comment: str = ""

    @field_validator("pattern")
    @classmethod
    def check_pattern(cls, value: str) -> str:
        compile_glob(value)
        return value


class StorageEntry(_Schema):
    """The ``[storage]`` table."""

    backend: Literal["local", "sqlite"] = "local"
    path: Optional[Path] = None


class PolicyEntry(_Schema):
    """The ``[policy]`` table."""

    allowed: list[str] = Field(default_factory=list)
    forbidden: list[str] = Field(default_factory=list)
    flag_scan_issues: bool = True
    flag_unresolved: bool = False
    flag_unmatched_copyrights: bool = False

    @model_validator(mode="after")
    def check_exclusive(self) -> "PolicyEntry":
        if self.allowed and self.forbidden:
            raise ValueError("Cannot specify both allowed and forbidden licenses")
        return self


class ConfigFile(_Schema):
    """Schema of the TOML configuration file."""

    curations: list[CurationEntry] = Field(default_factory=list)
    path_excludes: list[PathExcludeEntry] = Field(default_factory=list)
    copyright_garbage: list[str] = Field(default_factory=list)
    storage: StorageEntry = Field(default_factory=StorageEntry)
    policy: PolicyEntry = Field(default_factory=PolicyEntry)
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    copyright_tolerance_lines: Optional[int] = Field(default=None, ge=0)

    def to_config(self) -> AuditConfig:
        storage = (
            StorageConfig(self.storage.backend, self.storage.path.expanduser())
            if self.storage.path is not None
            else StorageConfig(self.storage.backend)
        )
        return AuditConfig(
            curations=tuple(
                LicenseFindingCuration(
                    path=entry.path,
                    reason=entry.reason,
                    concluded_license=entry.concluded_license,
                    detected_license=entry.detected_license,
                    start_lines=tuple(entry.start_lines),
                    line_count=entry.line_count,
                    comment=entry.comment,
                )
                for entry in self.curations
            ),
            path_excludes=tuple(
                PathExclude(entry.pattern, entry.reason, entry.comment)
                for entry in self.path_excludes
            ),
            copyright_garbage=CopyrightGarbage(frozenset(self.copyright_garbage)),
            storage=storage,
            policy=PolicyConfig(
                allowed=frozenset(item.strip() for item in self.policy.allowed),
                forbidden=frozenset(item.strip() for item in self.policy.forbidden),
                flag_scan_issues=self.policy.flag_scan_issues,
                flag_unresolved=self.policy.flag_unresolved,
                flag_unmatched_copyrights=self.policy.flag_unmatched_copyrights,
            ),
            max_workers=self.max_workers,
            copyright_tolerance_lines=self.copyright_tolerance_lines,
        )


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc']) or 'config'}: {item['msg']}"
        for item in error.errors()
    )


def parse_config(data: dict[str, Any]) -> AuditConfig:
    """Build an AuditConfig from already parsed TOML data.

    Args:
        data: Mapping as returned by ``tomllib.load``.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If any entry is invalid.
    """
    try:
        return ConfigFile.model_validate(data).to_config()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {_describe(e)}") from e


def load_config(path: Optional[Path] = None) -> AuditConfig:
    """Load the audit configuration from a TOML file.

    Args:
        path: Configuration file. If None, the file named by the
            LICENSE_AUDITOR_CONFIG environment variable is used, and if that is
            unset as well, the default configuration is returned.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return AuditConfig()
        path = Path(env_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e

    return parse_config(data)
