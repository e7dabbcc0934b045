"""Core data models for license_auditor.

This module defines the fundamental data structures shared by all stages:
package identifiers, provenances, raw findings, and the scan summaries that
are persisted in the scan results cache.

All persisted types provide ``to_dict``/``from_dict``. Deserialization ignores
unknown keys so that cache entries written by newer versions remain readable.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from functools import total_ordering
from typing import Any, Optional
from urllib.parse import quote


_RESERVED_PATH_COMPONENTS = frozenset({"unknown", ".", ".."})


def _path_component(value: str) -> str:
    if not value:
        return "unknown"
    if value in _RESERVED_PATH_COMPONENTS:
        return "".join(f"%{ord(c):02X}" for c in value)
    return quote(value, safe="")


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True, order=True)
class PackageId:
    """Immutable identifier of a package.

    Used as the cache key and as the join key between all stages. Components
    must not contain ":" and must not be "-", so that every identifier
    survives a round trip through its coordinates.

    Attributes:
        type: Package type, usually the package manager (e.g., "npm").
        namespace: Namespace or group, may be empty.
        name: Package name.
        version: Package version, may be empty.
    """

    type: str
    namespace: str
    name: str
    version: str

    def __post_init__(self) -> None:
        for component in (self.type, self.namespace, self.name, self.version):
            if ":" in component or component == "-":
                raise ValueError(
                    f"Invalid package identifier component '{component}' in "
                    f"'{self.type}:{self.namespace}:{self.name}:{self.version}'"
                )

    @classmethod
    def from_coordinates(cls, coordinates: str) -> "PackageId":
        """Parse an identifier from ``type:namespace:name:version`` coordinates.

        A component consisting of a single ``-`` is read as empty.

        Args:
            coordinates: Colon separated coordinates.

        Returns:
            The parsed PackageId.

        Raises:
            ValueError: If the coordinates do not have exactly four components
                or a component contains an invalid value.
        """
        parts = coordinates.strip().split(":")
        if len(parts) != 4:
            raise ValueError(
                f"Invalid package coordinates '{coordinates}', "
                "expected 'type:namespace:name:version'"
            )

        parts = ["" if part == "-" else part for part in parts]
        return cls(*parts)

    def to_coordinates(self) -> str:
        """Render the identifier as ``type:namespace:name:version``.

        Empty components stay empty, and ``from_coordinates`` reads the result
        back into an equal identifier.
        """
        return ":".join([self.type, self.namespace, self.name, self.version])

    def to_path(self) -> str:
        """Render a stable, filesystem safe storage path for this identifier.

        Every component is URL-quoted and empty components become "unknown".
        A literal "unknown", "." or ".." is fully percent-encoded, so distinct
        identifiers never share a path and no component escapes its directory.
        """
        components = [self.type, self.namespace, self.name, self.version]
        return "/".join(_path_component(c) for c in components)

    def __str__(self) -> str:
        return self.to_coordinates()


@dataclass(frozen=True)
class VcsInfo:
    """Version control locator of source code."""

    type: str
    url: str
    revision: str
    path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "revision": self.revision,
            "path": self.path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VcsInfo":
        return cls(
            type=data["type"],
            url=data["url"],
            revision=data["revision"],
            path=data.get("path", ""),
        )


@dataclass(frozen=True)
class RemoteArtifact:
    """A downloaded source archive together with its identifying hash."""

    url: str
    hash_value: str
    hash_algorithm: str = "SHA-1"

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "hash_value": self.hash_value,
            "hash_algorithm": self.hash_algorithm,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteArtifact":
        return cls(
            url=data["url"],
            hash_value=data["hash_value"],
            hash_algorithm=data.get("hash_algorithm", "SHA-1"),
        )


@dataclass(frozen=True)
class Provenance:
    """Where the scanned source code was obtained from.

    Either a VCS checkout or a downloaded source artifact. A provenance with
    neither set denotes an unknown origin.
    """

    vcs_info: Optional[VcsInfo] = None
    source_artifact: Optional[RemoteArtifact] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.vcs_info is not None:
            data["vcs_info"] = self.vcs_info.to_dict()
        if self.source_artifact is not None:
            data["source_artifact"] = self.source_artifact.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Provenance":
        vcs = data.get("vcs_info")
        artifact = data.get("source_artifact")
        return cls(
            vcs_info=VcsInfo.from_dict(vcs) if vcs else None,
            source_artifact=RemoteArtifact.from_dict(artifact) if artifact else None,
        )

    def __str__(self) -> str:
        if self.vcs_info is not None:
            return f"{self.vcs_info.url}@{self.vcs_info.revision}"
        if self.source_artifact is not None:
            return self.source_artifact.url
        return "<unknown provenance>"


@dataclass(frozen=True, order=True)
class TextLocation:
    """A line range within a file, relative to the provenance root.

    Attributes:
        path: Slash separated file path.
        start_line: First line, 1-based, or -1 if unknown.
        end_line: Last line (inclusive), or -1 if unknown.
    """

    UNKNOWN_LINE = -1

    path: str
    start_line: int
    end_line: int

    def __post_init__(self) -> None:
        unknown = self.start_line == self.UNKNOWN_LINE and self.end_line == self.UNKNOWN_LINE
        if not unknown and not (1 <= self.start_line <= self.end_line):
            raise ValueError(
                f"Invalid text location {self.path}:{self.start_line}-{self.end_line}"
            )

    @property
    def line_count(self) -> int:
        if self.start_line == self.UNKNOWN_LINE:
            return 0
        return self.end_line - self.start_line + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TextLocation":
        return cls(
            path=data["path"],
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
        )

    def __str__(self) -> str:
        return f"{self.path}:{self.start_line}-{self.end_line}"


@dataclass(frozen=True, order=True)
class LicenseFinding:
    """A license expression detected at a text location."""

    license: str
    location: TextLocation

    def to_dict(self) -> dict[str, Any]:
        return {"license": self.license, "location": self.location.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LicenseFinding":
        return cls(
            license=data["license"],
            location=TextLocation.from_dict(data["location"]),
        )


@dataclass(frozen=True, order=True)
class CopyrightFinding:
    """A copyright statement detected at a text location."""

    statement: str
    location: TextLocation

    def to_dict(self) -> dict[str, Any]:
        return {"statement": self.statement, "location": self.location.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CopyrightFinding":
        return cls(
            statement=data["statement"],
            location=TextLocation.from_dict(data["location"]),
        )


@total_ordering
class Severity(Enum):
    """Severity of issues and rule violations, ordered HINT < WARNING < ERROR."""

    HINT = 1
    WARNING = 2
    ERROR = 3

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.value < other.value


class LicenseSource(Enum):
    """The origin of a license: declared in metadata, concluded by a human, or detected."""

    DECLARED = "declared"
    CONCLUDED = "concluded"
    DETECTED = "detected"


@dataclass(frozen=True)
class Issue:
    """A problem encountered while detecting findings, e.g. a scanner timeout."""

    message: str
    source: str
    severity: Severity = Severity.ERROR
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "source": self.source,
            "severity": self.severity.name,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Issue":
        kwargs: dict[str, Any] = {
            "message": data["message"],
            "source": data.get("source", ""),
            "severity": Severity[data.get("severity", "ERROR")],
        }
        if "timestamp" in data:
            kwargs["timestamp"] = _parse_time(data["timestamp"])
        return cls(**kwargs)


@dataclass(frozen=True)
class ScannerDetails:
    """Name, version and configuration of the detector that produced a summary."""

    name: str
    version: str
    configuration: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "configuration": self.configuration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScannerDetails":
        return cls(
            name=data["name"],
            version=data["version"],
            configuration=data.get("configuration", ""),
        )


@dataclass(frozen=True)
class ScanSummary:
    """Immutable outcome of one detector invocation on one provenance.

    Attributes:
        start_time: When detection started.
        end_time: When detection finished.
        file_count: Number of files that were scanned.
        package_verification_code: Directory verification code of the scanned tree.
        license_findings: All license findings.
        copyright_findings: All copyright findings.
        issues: Problems encountered during detection.
    """

    start_time: datetime
    end_time: datetime
    file_count: int = 0
    package_verification_code: str = ""
    license_findings: frozenset[LicenseFinding] = frozenset()
    copyright_findings: frozenset[CopyrightFinding] = frozenset()
    issues: tuple[Issue, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "file_count": self.file_count,
            "package_verification_code": self.package_verification_code,
            "licenses": [f.to_dict() for f in sorted(self.license_findings)],
            "copyrights": [f.to_dict() for f in sorted(self.copyright_findings)],
            "issues": [issue.to_dict() for issue in self.issues],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanSummary":
        return cls(
            start_time=_parse_time(data["start_time"]),
            end_time=_parse_time(data["end_time"]),
            file_count=int(data.get("file_count", 0)),
            package_verification_code=data.get("package_verification_code", ""),
            license_findings=frozenset(
                LicenseFinding.from_dict(f) for f in data.get("licenses", [])
            ),
            copyright_findings=frozenset(
                CopyrightFinding.from_dict(f) for f in data.get("copyrights", [])
            ),
            issues=tuple(Issue.from_dict(i) for i in data.get("issues", [])),
        )


@dataclass(frozen=True)
class ScanResult:
    """A scan summary attributed to the provenance it was produced for."""

    provenance: Provenance
    scanner: ScannerDetails
    summary: ScanSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "provenance": self.provenance.to_dict(),
            "scanner": self.scanner.to_dict(),
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanResult":
        return cls(
            provenance=Provenance.from_dict(data.get("provenance", {})),
            scanner=ScannerDetails.from_dict(data["scanner"]),
            summary=ScanSummary.from_dict(data["summary"]),
        )


@dataclass(frozen=True)
class ScanResultContainer:
    """All scan results accumulated for one package, oldest first.

    Containers are never overwritten, only extended via ``append``.
    """

    id: PackageId
    results: tuple[ScanResult, ...] = ()

    def append(self, scan_result: ScanResult) -> "ScanResultContainer":
        return ScanResultContainer(self.id, self.results + (scan_result,))

    def __len__(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.to_coordinates(),
            "results": [result.to_dict() for result in self.results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanResultContainer":
        return cls(
            id=PackageId.from_coordinates(data["id"]),
            results=tuple(ScanResult.from_dict(r) for r in data.get("results", [])),
        )
