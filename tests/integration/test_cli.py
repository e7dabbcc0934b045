import json

import pytest
from typer.testing import CliRunner

from license_auditor.cache import ScanResultsStorage
from license_auditor.cli import app
from license_auditor.config import CONFIG_ENV_VAR
from license_auditor.storages import LocalFileStorage

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_config_from_environment(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "scan-results"


@pytest.fixture
def config_file(tmp_path, cache_dir):
    """Write a configuration using a temporary cache that excludes src/."""
    path = tmp_path / "audit.toml"
    path.write_text(
        f"""
[storage]
path = "{cache_dir.as_posix()}"

[[path_excludes]]
pattern = "src/**"
reason = "BUILD_TOOL_OF"
"""
    )
    return path


@pytest.fixture
def packages_file(tmp_path):
    path = tmp_path / "packages.json"
    path.write_text(
        json.dumps([{"id": "npm::lodash:4.17.0", "declared_licenses": ["MIT"]}])
    )
    return path


@pytest.fixture
def cached_storage(cache_dir):
    """Return a storage over the cache directory used by the CLI."""
    return ScanResultsStorage(LocalFileStorage(cache_dir))


def test_resolve_command(config_file, packages_file, cached_storage, lodash_id, lodash_scan_result):
    """Test resolving a package with cached findings."""
    cached_storage.add(lodash_id, lodash_scan_result)

    result = runner.invoke(
        app, ["resolve", "--packages", str(packages_file), "--config", str(config_file)]
    )

    assert result.exit_code == 0
    assert "MIT" in result.stdout
    assert "Resolved licenses for 1/1 packages" in result.stdout


def test_resolve_command_with_invalid_packages_file(tmp_path, config_file):
    packages = tmp_path / "packages.json"
    packages.write_text('{"id": "npm::lodash:4.17.0"}')

    result = runner.invoke(
        app, ["resolve", "--packages", str(packages), "--config", str(config_file)]
    )

    assert result.exit_code == 1
    assert "Error reading packages" in result.output


def test_resolve_command_with_invalid_config(tmp_path, packages_file):
    config = tmp_path / "broken.toml"
    config.write_text("[[path_excludes]]\npattern = '/absolute/**'\n")

    result = runner.invoke(
        app, ["resolve", "--packages", str(packages_file), "--config", str(config)]
    )

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_check_command_with_forbidden_license(
    config_file, packages_file, cached_storage, lodash_id, make_scan_result
):
    """Test the check command with a forbidden license."""
    cached_storage.add(
        lodash_id, make_scan_result(licenses=[("GPL-3.0-only", "COPYING", 1, 600)])
    )

    result = runner.invoke(
        app,
        [
            "check",
            "--packages",
            str(packages_file),
            "--config",
            str(config_file),
            "--forbidden",
            "GPL-3.0-only",
        ],
    )

    assert result.exit_code == 1
    assert "Violations" in result.stdout
    assert "npm::lodash:4.17.0: GPL-3.0-only" in result.stdout


def test_check_command_with_allowed_license(
    config_file, packages_file, cached_storage, lodash_id, lodash_scan_result
):
    """Test the check command with an allowed license."""
    cached_storage.add(lodash_id, lodash_scan_result)

    result = runner.invoke(
        app,
        [
            "check",
            "--packages",
            str(packages_file),
            "--config",
            str(config_file),
            "--allowed",
            "MIT,Apache-2.0",
        ],
    )

    assert result.exit_code == 0
    assert "All" in result.stdout
    assert "packages are compliant" in result.stdout


def test_check_command_ignores_excluded_findings(
    config_file, packages_file, cached_storage, lodash_id, make_scan_result
):
    cached_storage.add(
        lodash_id, make_scan_result(licenses=[("GPL-3.0-only", "src/vendor.c", 1, 10)])
    )

    result = runner.invoke(
        app,
        [
            "check",
            "--packages",
            str(packages_file),
            "--config",
            str(config_file),
            "--forbidden",
            "GPL-3.0-only",
        ],
    )

    assert result.exit_code == 0
    assert "packages are compliant" in result.stdout


def test_check_command_fails_when_backend_breaks(
    config_file, packages_file, cached_storage, lodash_id, make_scan_result, mocker
):
    cached_storage.add(
        lodash_id, make_scan_result(licenses=[("GPL-3.0-only", "COPYING", 1, 600)])
    )
    mocker.patch.object(LocalFileStorage, "read", side_effect=RuntimeError("backend outage"))

    result = runner.invoke(
        app,
        [
            "check",
            "--packages",
            str(packages_file),
            "--config",
            str(config_file),
            "--forbidden",
            "GPL-3.0-only",
        ],
    )

    assert result.exit_code != 0
    assert isinstance(result.exception, RuntimeError)
    assert "packages are compliant" not in result.stdout


def test_check_command_rejects_both_lists(packages_file):
    result = runner.invoke(
        app,
        ["check", "--packages", str(packages_file), "--forbidden", "GPL-3.0-only", "--allowed", "MIT"],
    )

    assert result.exit_code == 1
    assert "Cannot specify both" in result.output


@pytest.fixture
def mock_backend(mocker):
    """Mock the storage backend created by the cache command."""
    backend = mocker.MagicMock()
    backend.info.return_value = {
        "path": "/fake/path",
        "count": 10,
        "size_bytes": 1024,
    }
    mocker.patch("license_auditor.cli.create_storage", return_value=backend)
    return backend


def test_cache_command_show(mock_backend):
    """Test the cache show command."""
    result = runner.invoke(app, ["cache", "show"])

    assert result.exit_code == 0
    assert "Cache Location:" in result.stdout
    assert "Entries: 10" in result.stdout
    mock_backend.info.assert_called_once()
    mock_backend.close.assert_called_once()


def test_cache_command_add_and_show_package(tmp_path, config_file, cached_storage, lodash_id, lodash_scan_result):
    scan_file = tmp_path / "scan-result.json"
    scan_file.write_text(json.dumps(lodash_scan_result.to_dict()))

    result = runner.invoke(
        app, ["cache", "add", "npm::lodash:4.17.0", str(scan_file), "--config", str(config_file)]
    )

    assert result.exit_code == 0
    assert "Stored scan result for:" in result.stdout
    assert cached_storage.read(lodash_id).unwrap().results == (lodash_scan_result,)

    result = runner.invoke(
        app, ["cache", "show", "npm::lodash:4.17.0", "--config", str(config_file)]
    )

    assert result.exit_code == 0
    assert "No scan results stored" not in result.stdout


def test_cache_command_show_unknown_package(config_file):
    result = runner.invoke(app, ["cache", "show", "npm::left-pad:1.3.0", "--config", str(config_file)])

    assert result.exit_code == 0
    assert "No scan results stored for:" in result.stdout


def test_cache_command_clear(config_file, cached_storage, lodash_id, lodash_scan_result):
    """Test the cache clear command."""
    cached_storage.add(lodash_id, lodash_scan_result)

    result = runner.invoke(app, ["cache", "clear", "--config", str(config_file)])

    assert result.exit_code == 0
    assert "Cache cleared" in result.stdout
    assert cached_storage.list_ids() == []


def test_cache_command_clear_package(config_file, cached_storage, lodash_id, lodash_scan_result):
    cached_storage.add(lodash_id, lodash_scan_result)

    result = runner.invoke(app, ["cache", "clear", "npm::lodash:4.17.0", "--config", str(config_file)])

    assert result.exit_code == 0
    assert "Cleared cache for:" in result.stdout
    assert len(cached_storage.read(lodash_id).unwrap()) == 0


def test_cache_command_add_requires_package(config_file):
    result = runner.invoke(app, ["cache", "add", "--config", str(config_file)])

    assert result.exit_code == 1
    assert "requires a package ID" in result.output


def test_cache_command_unknown_action():
    result = runner.invoke(app, ["cache", "purge"])

    assert result.exit_code == 1
    assert "Unknown action" in result.output
