"""Unit tests for the Auditor orchestration."""

import asyncio
from dataclasses import replace

import pytest

from license_auditor.auditor import Auditor, AuditResult
from license_auditor.config import (
    AuditConfig,
    PathExclude,
    PolicyConfig,
    StorageConfig,
)
from license_auditor.licenses import PackageDescription
from license_auditor.models import LicenseSource, PackageId, Severity
from license_auditor.result import Failure


@pytest.fixture
def config(tmp_path) -> AuditConfig:
    """Return a configuration excluding src/ with a forbidden GPL."""
    return AuditConfig(
        path_excludes=(PathExclude("src/**"),),
        storage=StorageConfig(path=tmp_path / "scan-results"),
        policy=PolicyConfig(forbidden=frozenset({"GPL-3.0-only"})),
        max_workers=2,
    )


@pytest.fixture
def auditor(storage, config) -> Auditor:
    return Auditor(storage, config)


@pytest.fixture
def lodash(lodash_id) -> PackageDescription:
    return PackageDescription(lodash_id, declared_licenses=frozenset({"MIT"}))


class TestResolveBatch:
    """Test concurrent resolution of packages."""

    @pytest.mark.asyncio
    async def test_lodash_end_to_end(self, auditor, storage, lodash, lodash_id, lodash_scan_result):
        storage.add(lodash_id, lodash_scan_result)

        resolved = await auditor.resolve_batch([lodash])

        info = resolved[lodash_id]
        assert info.license_names == ["MIT"]
        mit = info.get("MIT")
        assert mit.sources == {LicenseSource.DECLARED, LicenseSource.DETECTED}
        excluded = {loc.location.path for loc in mit.locations if loc.is_excluded}
        assert excluded == {"src/index.js"}

    @pytest.mark.asyncio
    async def test_every_package_gets_an_entry(self, auditor, lodash):
        other = PackageDescription(PackageId("npm", "", "left-pad", "1.3.0"))

        resolved = await auditor.resolve_batch([lodash, other])

        assert set(resolved) == {lodash.id, other.id}
        assert resolved[lodash.id].license_names == ["MIT"]
        assert resolved[other.id].licenses == ()

    @pytest.mark.asyncio
    async def test_read_failure_is_treated_as_unscanned(self, auditor, storage, lodash, mocker):
        mocker.patch.object(storage, "read", return_value=Failure("disk on fire"))

        resolved = await auditor.resolve_batch([lodash])

        assert resolved[lodash.id].license_names == ["MIT"]
        assert resolved[lodash.id].get("MIT").locations == frozenset()

    @pytest.mark.asyncio
    async def test_unexpected_exception_aborts_batch(self, auditor, storage, lodash, mocker):
        other = PackageDescription(PackageId("npm", "", "left-pad", "1.3.0"), frozenset({"WTFPL"}))
        real_read = storage.read

        def read(id):
            if id == lodash.id:
                raise RuntimeError("boom")
            return real_read(id)

        mocker.patch.object(storage, "read", side_effect=read)

        with pytest.raises(RuntimeError, match="boom"):
            await auditor.resolve_batch([lodash, other])

    @pytest.mark.asyncio
    async def test_reads_are_limited_by_max_workers(self, storage, config, mocker):
        running = 0
        peak = 0
        lock = asyncio.Lock()

        async def tracked_to_thread(func, *args):
            nonlocal running, peak
            async with lock:
                running += 1
                peak = max(peak, running)
            await asyncio.sleep(0.01)
            async with lock:
                running -= 1
            return func(*args)

        mocker.patch("license_auditor.auditor.asyncio.to_thread", side_effect=tracked_to_thread)
        auditor = Auditor(storage, config)
        packages = [
            PackageDescription(PackageId("npm", "", f"pkg-{n}", "1.0.0")) for n in range(6)
        ]

        resolved = await auditor.resolve_batch(packages)

        assert len(resolved) == 6
        assert peak <= config.max_workers


class TestAudit:
    """Test resolution followed by evaluation."""

    @pytest.mark.asyncio
    async def test_forbidden_license_is_an_error(
        self, auditor, storage, make_scan_result, lodash, lodash_id
    ):
        storage.add(lodash_id, make_scan_result(licenses=[("GPL-3.0-only", "COPYING", 1, 600)]))

        result = await auditor.audit([lodash])

        assert isinstance(result, AuditResult)
        assert result.has_errors
        errors = result.violations.with_severity(Severity.ERROR)
        assert [(v.pkg, v.license) for v in errors] == [(lodash_id, "GPL-3.0-only")]

    @pytest.mark.asyncio
    async def test_excluded_license_is_not_reported(
        self, auditor, storage, make_scan_result, lodash, lodash_id
    ):
        storage.add(lodash_id, make_scan_result(licenses=[("GPL-3.0-only", "src/x.c", 1, 10)]))

        result = await auditor.audit([lodash])

        assert not result.has_errors
        assert result.resolved[lodash_id].license_names == ["MIT"]

    @pytest.mark.asyncio
    async def test_backend_outage_fails_the_audit(
        self, auditor, storage, make_scan_result, lodash, lodash_id, mocker
    ):
        storage.add(lodash_id, make_scan_result(licenses=[("GPL-3.0-only", "COPYING", 1, 600)]))
        mocker.patch.object(storage.backend, "read", side_effect=RuntimeError("backend outage"))

        with pytest.raises(RuntimeError, match="backend outage"):
            await auditor.audit([lodash])

    @pytest.mark.asyncio
    async def test_copyright_tolerance_is_applied(
        self, storage, config, make_scan_result, lodash, lodash_id
    ):
        storage.add(
            lodash_id,
            make_scan_result(
                licenses=[("MIT", "lib.js", 1, 3), ("Apache-2.0", "lib.js", 100, 110)],
                copyrights=[("Copyright 2020 Jane Doe", "lib.js", 98, 98)],
            ),
        )
        auditor = Auditor(storage, replace(config, copyright_tolerance_lines=5))

        result = await auditor.audit([lodash])

        info = result.resolved[lodash_id]
        assert info.get("Apache-2.0").get_copyrights() == {"Copyright 2020 Jane Doe"}
        assert info.get("MIT").get_copyrights() == set()

    @pytest.mark.asyncio
    async def test_scan_issues_are_warnings(self, auditor, storage, make_scan_result, lodash, lodash_id):
        storage.add(lodash_id, make_scan_result(issues=["Timeout after 300 seconds"]))

        result = await auditor.audit([lodash])

        assert not result.has_errors
        assert [v.rule for v in result.violations.with_severity(Severity.WARNING)] == [
            "SCAN_ISSUES"
        ]

    @pytest.mark.asyncio
    async def test_explicit_policies_replace_configured_ones(self, storage, config, lodash):
        auditor = Auditor(storage, config, policies=[])

        result = await auditor.audit([lodash])

        assert len(result.violations) == 0


class TestStore:
    @pytest.mark.asyncio
    async def test_store_writes_through(self, auditor, storage, lodash_id, lodash_scan_result):
        result = await auditor.store(lodash_id, lodash_scan_result)

        assert result.is_success
        assert len(storage.read(lodash_id).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_stores_keep_all_results(
        self, auditor, storage, lodash_id, make_scan_result
    ):
        results = [make_scan_result(scanner_version=f"3.{n}.0") for n in range(5)]

        await asyncio.gather(*(auditor.store(lodash_id, r) for r in results))

        assert len(storage.read(lodash_id).unwrap()) == 5

    @pytest.mark.asyncio
    async def test_context_manager_closes_storage(self, storage, config, mocker):
        close = mocker.spy(storage, "close")

        async with Auditor(storage, config):
            pass

        close.assert_called_once()

    def test_from_config_uses_configured_backend(self, config):
        auditor = Auditor.from_config(config)
        assert auditor.storage.backend.directory == config.storage.path
