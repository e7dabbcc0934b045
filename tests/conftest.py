"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime

import pytest

from license_auditor.cache import ScanResultsStorage
from license_auditor.models import (
    CopyrightFinding,
    Issue,
    LicenseFinding,
    PackageId,
    Provenance,
    ScannerDetails,
    ScanResult,
    ScanSummary,
    TextLocation,
    VcsInfo,
)
from license_auditor.storages import LocalFileStorage


@pytest.fixture
def lodash_id() -> PackageId:
    """Return the identifier of a sample npm package."""
    return PackageId("npm", "", "lodash", "4.17.0")


@pytest.fixture
def provenance() -> Provenance:
    """Return a VCS provenance for the sample package."""
    return Provenance(
        vcs_info=VcsInfo(
            type="Git",
            url="https://github.com/lodash/lodash.git",
            revision="4.17.0",
        )
    )


@pytest.fixture
def make_scan_result(provenance):
    """Return a factory for scan results.

    Licenses and copyrights are given as ``(value, path, start_line, end_line)``
    tuples.
    """

    def factory(licenses=(), copyrights=(), issues=(), scanner_version="3.2.0", at=provenance):
        start = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        return ScanResult(
            provenance=at,
            scanner=ScannerDetails(name="ScanCode", version=scanner_version),
            summary=ScanSummary(
                start_time=start,
                end_time=start.replace(minute=5),
                file_count=42,
                license_findings=frozenset(
                    LicenseFinding(license, TextLocation(path, start_line, end_line))
                    for license, path, start_line, end_line in licenses
                ),
                copyright_findings=frozenset(
                    CopyrightFinding(statement, TextLocation(path, start_line, end_line))
                    for statement, path, start_line, end_line in copyrights
                ),
                issues=tuple(Issue(message, source="ScanCode") for message in issues),
            ),
        )

    return factory


@pytest.fixture
def lodash_scan_result(make_scan_result) -> ScanResult:
    """Return a scan result with MIT in LICENSE and in an excluded source file."""
    return make_scan_result(
        licenses=[
            ("MIT", "LICENSE", 1, 20),
            ("MIT", "src/index.js", 1, 1),
        ],
        copyrights=[
            ("Copyright (c) 2012 The Dojo Foundation", "LICENSE", 1, 1),
            ("Copyright 2012-2016 The Dojo Foundation", "src/index.js", 1, 1),
        ],
    )


@pytest.fixture
def backend(tmp_path) -> LocalFileStorage:
    """Return a local file storage below a temporary directory."""
    return LocalFileStorage(tmp_path / "scan-results")


@pytest.fixture
def storage(backend) -> ScanResultsStorage:
    """Return a scan results storage using a temporary local backend."""
    return ScanResultsStorage(backend)
