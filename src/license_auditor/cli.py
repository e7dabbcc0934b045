"""Command-line interface for license_auditor.

Provides the main entry point and subcommands for resolving the licenses of
packages from cached scan results, checking them against compliance
policies, and managing the scan results cache.
"""

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from license_auditor.auditor import Auditor, AuditResult
from license_auditor.cache import ScanResultsStorage
from license_auditor.config import AuditConfig, ConfigurationError, load_config
from license_auditor.evaluator import sort_violations
from license_auditor.licenses import PackageDescription, ResolvedLicenseInfo
from license_auditor.models import PackageId, ScanResult, Severity
from license_auditor.storages import create_storage

app = typer.Typer(
    name="license-auditor",
    help="License and copyright compliance auditing from cached scan results.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger("license_auditor")

_SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.HINT: "cyan",
}

PackagesOption = Annotated[
    Path,
    typer.Option(
        "--packages",
        "-p",
        help="JSON file listing packages with their declared and concluded licenses",
        exists=True,
        readable=True,
    ),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="TOML configuration file (default: $LICENSE_AUDITOR_CONFIG)",
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option(
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
]


def _setup_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("license_auditor").setLevel(level)


def _load_config(path: Optional[Path]) -> AuditConfig:
    try:
        return load_config(path)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1)


def _load_packages(path: Path) -> list[PackageDescription]:
    """Read a packages file.

    The file holds a JSON list of objects with an ``id`` in
    ``type:namespace:name:version`` form and optional ``declared_licenses``
    and ``concluded_license`` keys.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError("expected a JSON list of packages")
        return [PackageDescription.from_dict(entry) for entry in data]
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        err_console.print(f"[red]Error reading packages from {path}:[/red] {e}")
        raise typer.Exit(code=1)


def _split_licenses(value: Optional[str]) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def _license_table(resolved: dict[PackageId, ResolvedLicenseInfo], raw: bool) -> Table:
    table = Table(title="Resolved licenses")
    table.add_column("Package", style="bold")
    table.add_column("License")
    table.add_column("Sources")
    table.add_column("Copyrights")

    for id in sorted(resolved):
        info = resolved[id]
        if not info.licenses:
            table.add_row(id.to_coordinates(), "[yellow]unknown[/yellow]", "", "")
            continue

        for index, license in enumerate(info):
            name = license.license
            if raw and license.is_detected_excluded:
                name = f"{name} [dim](excluded)[/dim]"
            copyrights = license.get_copyrights(process=not raw, omit_excluded=not raw)
            table.add_row(
                id.to_coordinates() if index == 0 else "",
                name,
                ", ".join(sorted(source.value for source in license.sources)),
                "\n".join(escape(statement) for statement in sorted(copyrights)),
            )

    return table


async def _run_resolve(
    config: AuditConfig, packages: list[PackageDescription]
) -> dict[PackageId, ResolvedLicenseInfo]:
    async with Auditor.from_config(config) as auditor:
        return await auditor.resolve_batch(packages)


async def _run_check(config: AuditConfig, packages: list[PackageDescription]) -> AuditResult:
    async with Auditor.from_config(config) as auditor:
        return await auditor.audit(packages)


@app.command()
def resolve(
    packages: PackagesOption,
    config: ConfigOption = None,
    raw: Annotated[
        bool,
        typer.Option(
            "--raw",
            help="Keep excluded findings and show copyright statements unprocessed",
        ),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Resolve the licenses and copyrights of packages.

    Combines declared and concluded licenses from the packages file with the
    findings stored in the scan results cache.
    """
    _setup_logging(verbose)
    audit_config = _load_config(config)
    descriptions = _load_packages(packages)

    if not descriptions:
        console.print("[yellow]No packages to resolve[/yellow]")
        raise typer.Exit(code=0)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Resolving licenses...", total=None)
        try:
            resolved = asyncio.run(_run_resolve(audit_config, descriptions))
        except (OSError, ConfigurationError) as e:
            err_console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=1)

    if not raw:
        resolved = {id: info.filter_excluded() for id, info in resolved.items()}

    console.print(_license_table(resolved, raw))

    resolved_count = sum(1 for info in resolved.values() if info.licenses)
    console.print(
        f"Resolved licenses for [bold]{resolved_count}[/bold]/{len(resolved)} packages"
    )


@app.command()
def check(
    packages: PackagesOption,
    config: ConfigOption = None,
    forbidden: Annotated[
        Optional[str],
        typer.Option(
            "--forbidden",
            "-f",
            help="Comma-separated list of forbidden SPDX license IDs",
        ),
    ] = None,
    allowed: Annotated[
        Optional[str],
        typer.Option(
            "--allowed",
            "-a",
            help="Comma-separated list of allowed SPDX license IDs (whitelist mode)",
        ),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Check license compliance against the configured policies.

    License lists given on the command line replace the ones from the
    configuration file.

    Exit codes:
        0 - No error violations
        1 - Error violations found or error occurred
    """
    _setup_logging(verbose)

    if forbidden and allowed:
        err_console.print(
            "[red]Error:[/red] Cannot specify both --forbidden and --allowed"
        )
        raise typer.Exit(code=1)

    audit_config = _load_config(config)
    if forbidden or allowed:
        audit_config = replace(
            audit_config,
            policy=replace(
                audit_config.policy,
                allowed=_split_licenses(allowed),
                forbidden=_split_licenses(forbidden),
            ),
        )

    descriptions = _load_packages(packages)
    if not descriptions:
        console.print("[green]No packages to check[/green]")
        raise typer.Exit(code=0)

    console.print(f"Checking [bold]{len(descriptions)}[/bold] packages...")

    try:
        result = asyncio.run(_run_check(audit_config, descriptions))
    except (OSError, ConfigurationError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    violations = sort_violations(result.violations.violations)
    if violations:
        console.print(f"\n[bold]Violations ({len(violations)}):[/bold]")
        for violation in violations:
            style = _SEVERITY_STYLES[violation.severity]
            subject = violation.pkg.to_coordinates() if violation.pkg else "-"
            if violation.license:
                subject = f"{subject}: {violation.license}"
            console.print(
                f"  - [{style}]{violation.severity.name}[/{style}] "
                f"[dim]{violation.rule}[/dim] {escape(subject)}: {escape(violation.message)}"
            )
            if violation.how_to_fix and verbose:
                console.print(f"    [dim]{escape(violation.how_to_fix)}[/dim]")

    if result.has_errors:
        raise typer.Exit(code=1)

    console.print(f"\n[green]All {len(descriptions)} packages are compliant![/green]")
    raise typer.Exit(code=0)


def _parse_package_id(package: Optional[str], action: str) -> PackageId:
    if not package:
        err_console.print(f"[red]Error:[/red] '{action}' requires a package ID")
        raise typer.Exit(code=1)
    try:
        return PackageId.from_coordinates(package)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


def _show(storage: ScanResultsStorage, package: Optional[str]) -> None:
    if not package:
        info = storage.backend.info()
        console.print(f"[bold]Cache Location:[/bold] {info.get('path', storage.backend.name)}")
        console.print(f"[bold]Entries:[/bold] {info['count']}")
        if "size_bytes" in info:
            console.print(f"[bold]Size:[/bold] {info['size_bytes'] / 1024:.1f} KB")
        return

    id = _parse_package_id(package, "show")
    read_result = storage.read(id)
    if not read_result.is_success:
        err_console.print(f"[red]Error:[/red] {read_result.message}")
        raise typer.Exit(code=1)

    container = read_result.value
    if not container.results:
        console.print(f"[yellow]No scan results stored for:[/yellow] {package}")
        return

    table = Table(title=f"Scan results for {id.to_coordinates()}")
    table.add_column("Provenance")
    table.add_column("Scanner")
    table.add_column("Finished")
    table.add_column("Licenses", justify="right")
    table.add_column("Copyrights", justify="right")
    table.add_column("Issues", justify="right")
    for scan_result in container.results:
        summary = scan_result.summary
        table.add_row(
            str(scan_result.provenance),
            f"{scan_result.scanner.name} {scan_result.scanner.version}",
            summary.end_time.isoformat(timespec="seconds"),
            str(len(summary.license_findings)),
            str(len(summary.copyright_findings)),
            str(len(summary.issues)),
        )
    console.print(table)


def _add(storage: ScanResultsStorage, package: Optional[str], file: Optional[Path]) -> None:
    id = _parse_package_id(package, "add")
    if file is None:
        err_console.print("[red]Error:[/red] 'add' requires a scan result file")
        raise typer.Exit(code=1)

    try:
        scan_result = ScanResult.from_dict(json.loads(file.read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        err_console.print(f"[red]Error reading scan result from {file}:[/red] {e}")
        raise typer.Exit(code=1)

    add_result = storage.add(id, scan_result)
    if not add_result.is_success:
        err_console.print(f"[red]Error:[/red] {add_result.message}")
        raise typer.Exit(code=1)

    console.print(f"[green]Stored scan result for:[/green] {id.to_coordinates()}")


@app.command()
def cache(
    action: Annotated[
        str,
        typer.Argument(help="Cache action: 'show', 'clear' or 'add'"),
    ],
    package: Annotated[
        Optional[str],
        typer.Argument(help="Package ID as type:namespace:name:version"),
    ] = None,
    file: Annotated[
        Optional[Path],
        typer.Argument(help="Scan result JSON file to store (for 'add')"),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Manage the scan results cache.

    Actions:
        show  - Display cache location, entry count and size, or the
                stored results of one package
        clear - Remove all stored results (or those of one package)
        add   - Append a scan result read from a JSON file to a package
    """
    _setup_logging(verbose)
    audit_config = _load_config(config)

    if action not in ("show", "clear", "add"):
        err_console.print(f"[red]Unknown action:[/red] {action}")
        err_console.print("Valid actions: show, clear, add")
        raise typer.Exit(code=1)

    try:
        storage = ScanResultsStorage(create_storage(audit_config.storage))
    except (OSError, ConfigurationError) as e:
        err_console.print(f"[red]Error opening cache:[/red] {e}")
        raise typer.Exit(code=1)

    with storage:
        if action == "show":
            _show(storage, package)

        elif action == "clear":
            if package:
                id = _parse_package_id(package, "clear")
                if storage.delete(id):
                    console.print(f"[green]Cleared cache for:[/green] {id.to_coordinates()}")
                else:
                    console.print(f"[yellow]Nothing cached for:[/yellow] {id.to_coordinates()}")
            else:
                removed = storage.clear()
                console.print(f"[green]Cache cleared[/green] ({removed} entries)")

        else:
            _add(storage, package, file)


if __name__ == "__main__":
    app()
