"""Unit tests for the scan results cache."""

import json
import threading

import pytest

from license_auditor.cache import SCAN_RESULTS_FILE_NAME, ForeignEntryError, ScanResultsStorage
from license_auditor.models import PackageId, ScanResultContainer
from license_auditor.result import Failure, Success
from license_auditor.storages import SQLiteStorage


class TestStoragePath:
    def test_path_layout(self, lodash_id):
        assert ScanResultsStorage.storage_path(lodash_id) == (
            f"npm/unknown/lodash/4.17.0/{SCAN_RESULTS_FILE_NAME}"
        )


class TestRead:
    """Test reading stored scan results."""

    def test_absent_entry_is_empty_success(self, storage, lodash_id):
        result = storage.read(lodash_id)

        assert isinstance(result, Success)
        assert result.value == ScanResultContainer(lodash_id)

    def test_corrupt_entry_is_failure(self, storage, backend, lodash_id):
        backend.write(storage.storage_path(lodash_id), b"{not json")

        result = storage.read(lodash_id)

        assert isinstance(result, Failure)
        assert "Could not decode" in result.message
        assert result.cause is not None

    def test_wrong_structure_is_failure(self, storage, backend, lodash_id):
        backend.write(storage.storage_path(lodash_id), b'{"results": []}')
        assert isinstance(storage.read(lodash_id), Failure)

    def test_entry_of_other_package_is_failure(self, storage, backend, lodash_id):
        other = PackageId("npm", "", "underscore", "1.0.0")
        data = json.dumps(ScanResultContainer(other).to_dict()).encode()
        backend.write(storage.storage_path(lodash_id), data)

        result = storage.read(lodash_id)

        assert isinstance(result, Failure)
        assert "belong to" in result.message
        assert isinstance(result.cause, ForeignEntryError)

    def test_io_error_is_failure(self, storage, backend, lodash_id, mocker):
        mocker.patch.object(backend, "read", side_effect=PermissionError("denied"))

        result = storage.read(lodash_id)

        assert isinstance(result, Failure)
        assert isinstance(result.cause, PermissionError)

    def test_invalid_backend_path_is_failure(self, storage, backend, lodash_id, mocker):
        mocker.patch.object(backend, "read", side_effect=ValueError("Invalid storage path"))

        result = storage.read(lodash_id)

        assert isinstance(result, Failure)
        assert "Invalid storage path" in result.message

    def test_dot_components_stay_inside_the_cache(self, storage, lodash_scan_result):
        id = PackageId("npm", "", "x", "..")

        assert storage.read(id) == Success(ScanResultContainer(id))
        assert storage.add(id, lodash_scan_result).is_success
        assert storage.read(id).unwrap().results == (lodash_scan_result,)


class TestAdd:
    """Test appending scan results."""

    def test_add_to_absent_entry(self, storage, lodash_id, lodash_scan_result):
        assert storage.add(lodash_id, lodash_scan_result) == Success(None)

        container = storage.read(lodash_id).unwrap()
        assert container.results == (lodash_scan_result,)

    def test_add_appends_in_order(self, storage, lodash_id, make_scan_result):
        first = make_scan_result(licenses=[("MIT", "LICENSE", 1, 20)], scanner_version="3.0.0")
        second = make_scan_result(licenses=[("MIT", "LICENSE", 1, 20)], scanner_version="3.1.0")

        storage.add(lodash_id, first)
        storage.add(lodash_id, second)

        container = storage.read(lodash_id).unwrap()
        assert container.results == (first, second)

    def test_identical_results_are_kept_twice(self, storage, lodash_id, lodash_scan_result):
        storage.add(lodash_id, lodash_scan_result)
        storage.add(lodash_id, lodash_scan_result)

        assert len(storage.read(lodash_id).unwrap()) == 2

    def test_add_replaces_corrupt_entry(self, storage, backend, lodash_id, lodash_scan_result):
        backend.write(storage.storage_path(lodash_id), b"garbage")

        assert storage.add(lodash_id, lodash_scan_result).is_success
        assert storage.read(lodash_id).unwrap().results == (lodash_scan_result,)

    def test_entry_of_other_package_is_not_overwritten(
        self, storage, backend, lodash_id, lodash_scan_result, make_scan_result
    ):
        other = PackageId("npm", "", "underscore", "1.0.0")
        data = json.dumps(ScanResultContainer(other).to_dict()).encode()
        backend.write(storage.storage_path(lodash_id), data)

        result = storage.add(lodash_id, lodash_scan_result)

        assert isinstance(result, Failure)
        assert isinstance(result.cause, ForeignEntryError)
        assert backend.read(storage.storage_path(lodash_id)) == data

    def test_empty_and_literal_unknown_components_do_not_collide(self, storage, make_scan_result):
        empty = PackageId("maven", "", "lib", "1.0")
        literal = PackageId("maven", "unknown", "lib", "1.0")
        mit = make_scan_result(licenses=[("MIT", "LICENSE", 1, 20)])
        gpl = make_scan_result(licenses=[("GPL-3.0-only", "COPYING", 1, 600)])

        assert storage.add(empty, mit).is_success
        assert storage.add(literal, gpl).is_success

        assert storage.read(empty).unwrap().results == (mit,)
        assert storage.read(literal).unwrap().results == (gpl,)

    def test_lock_is_released_after_add(self, storage, lodash_id, lodash_scan_result):
        storage.add(lodash_id, lodash_scan_result)

        assert storage.storage_path(lodash_id) not in storage._locks

    def test_write_error_is_failure(self, storage, backend, lodash_id, lodash_scan_result, mocker):
        mocker.patch.object(backend, "write", side_effect=OSError("read-only file system"))

        result = storage.add(lodash_id, lodash_scan_result)

        assert isinstance(result, Failure)
        assert "read-only" in result.message

    def test_write_alias(self, storage, lodash_id, lodash_scan_result):
        assert storage.write(lodash_id, lodash_scan_result).is_success
        assert len(storage.read(lodash_id).unwrap()) == 1

    def test_concurrent_adds_to_one_key_are_not_lost(self, storage, lodash_id, make_scan_result):
        results = [make_scan_result(scanner_version=f"3.{n}.0") for n in range(10)]
        threads = [
            threading.Thread(target=storage.add, args=(lodash_id, result)) for result in results
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stored = storage.read(lodash_id).unwrap().results
        assert sorted(r.scanner.version for r in stored) == sorted(
            r.scanner.version for r in results
        )


class TestMaintenance:
    def test_delete(self, storage, lodash_id, lodash_scan_result):
        storage.add(lodash_id, lodash_scan_result)

        assert storage.delete(lodash_id) is True
        assert len(storage.read(lodash_id).unwrap()) == 0

    def test_list_ids_and_clear(self, storage, lodash_id, lodash_scan_result):
        other = PackageId("Maven", "org.example", "lib", "1.0")
        storage.add(lodash_id, lodash_scan_result)
        storage.add(other, lodash_scan_result)

        assert sorted(storage.list_ids()) == sorted([lodash_id, other])
        assert storage.clear() == 2
        assert storage.list_ids() == []

    def test_sqlite_backend(self, tmp_path, lodash_id, lodash_scan_result):
        with ScanResultsStorage(SQLiteStorage(tmp_path / "storage.db")) as storage:
            storage.add(lodash_id, lodash_scan_result)
            assert storage.read(lodash_id).unwrap().results == (lodash_scan_result,)

    @pytest.mark.parametrize("namespace", ["@scope", "a/b", "", "unknown", ".", "..", "%2E"])
    def test_unusual_ids_round_trip(self, storage, lodash_scan_result, namespace):
        id = PackageId("npm", namespace, "pkg", "1.0.0")
        storage.add(id, lodash_scan_result)
        assert storage.list_ids() == [id]
