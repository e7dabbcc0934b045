"""Concurrent audit of many packages against the scan results cache.

The Auditor reads cached scan results for a batch of packages in worker
threads, resolves their license information and evaluates the configured
policies on the result. Resolution and evaluation are synchronous and pure;
only cache access is blocking I/O.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from license_auditor.cache import ScanResultsStorage
from license_auditor.config import AuditConfig
from license_auditor.evaluator import Evaluator, EvaluatorRun, Policy, policies_from_config
from license_auditor.licenses import (
    LicenseInfoProvider,
    LicenseInfoResolver,
    PackageDescription,
    ResolvedLicenseInfo,
)
from license_auditor.models import PackageId, ScanResult, ScanResultContainer
from license_auditor.result import Result, Success
from license_auditor.storages import create_storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditResult:
    """Outcome of auditing a batch of packages.

    Attributes:
        resolved: Resolved license info per package, with excluded licenses
            and copyrights removed.
        violations: The evaluation run over ``resolved``.
    """

    resolved: dict[PackageId, ResolvedLicenseInfo] = field(default_factory=dict)
    violations: EvaluatorRun = field(default_factory=EvaluatorRun)

    @property
    def has_errors(self) -> bool:
        return self.violations.has_errors


class Auditor:
    """Resolves and evaluates packages using the scan results cache.

    Attributes:
        storage: The scan results cache.
        config: Audit configuration.
        policies: Policies evaluated by ``audit``.
    """

    def __init__(
        self,
        storage: ScanResultsStorage,
        config: Optional[AuditConfig] = None,
        policies: Optional[Iterable[Policy]] = None,
    ) -> None:
        """Initialize the Auditor.

        Args:
            storage: The scan results cache to read from and write to.
            config: Audit configuration. Defaults to an empty configuration.
            policies: Policies to evaluate. Defaults to the built-in policies
                enabled by ``config.policy``.
        """
        self.storage = storage
        self.config = config or AuditConfig()
        self.policies = (
            list(policies) if policies is not None else policies_from_config(self.config.policy)
        )
        self.provider = LicenseInfoProvider(storage)
        self.resolver = LicenseInfoResolver(
            curations=self.config.curations,
            path_excludes=self.config.path_excludes,
            copyright_garbage=self.config.copyright_garbage,
            tolerance_lines=self.config.copyright_tolerance_lines,
        )
        self._semaphore = asyncio.Semaphore(self.config.max_workers)

    @classmethod
    def from_config(cls, config: AuditConfig) -> "Auditor":
        """Create an Auditor with the storage backend named in the configuration."""
        return cls(ScanResultsStorage(create_storage(config.storage)), config)

    async def _read(self, id: PackageId) -> ScanResultContainer:
        async with self._semaphore:
            result = await asyncio.to_thread(self.storage.read, id)

        if isinstance(result, Success):
            return result.value

        logger.warning("Treating '%s' as unscanned: %s", id.to_coordinates(), result.message)
        return ScanResultContainer(id)

    def _resolve_container(
        self, package: PackageDescription, container: ScanResultContainer
    ) -> ResolvedLicenseInfo:
        return self.resolver.resolve(self.provider.build(package, container))

    async def resolve(self, package: PackageDescription) -> ResolvedLicenseInfo:
        """Resolve the license info of one package."""
        container = await self._read(package.id)
        return self._resolve_container(package, container)

    async def resolve_batch(
        self, packages: Iterable[PackageDescription]
    ) -> dict[PackageId, ResolvedLicenseInfo]:
        """Resolve multiple packages concurrently.

        Cache reads run in worker threads, at most ``max_workers`` at a time.
        A package whose cache entry cannot be read is resolved as if it had no
        cached scan results. Any other exception aborts the whole batch.

        Args:
            packages: Packages to resolve.

        Returns:
            Dictionary mapping every package ID to its resolved license info.

        Raises:
            Exception: Whatever a cache backend or the resolver raised for any
                of the packages.
        """
        packages = list(packages)
        logger.info("Starting batch resolution of %d packages", len(packages))

        try:
            results = await asyncio.gather(*(self.resolve(package) for package in packages))
        except Exception:
            logger.exception("Batch resolution of %d packages aborted", len(packages))
            raise

        logger.info("Batch resolution complete: %d packages", len(packages))
        return {package.id: result for package, result in zip(packages, results)}

    async def audit(self, packages: Iterable[PackageDescription]) -> AuditResult:
        """Resolve packages, drop excluded findings and evaluate the policies."""
        resolved = await self.resolve_batch(packages)
        filtered = {id: info.filter_excluded() for id, info in resolved.items()}
        return AuditResult(resolved=filtered, violations=Evaluator(self.policies).run(filtered))

    async def store(self, id: PackageId, scan_result: ScanResult) -> Result[None]:
        """Append a scan result to the cache."""
        async with self._semaphore:
            return await asyncio.to_thread(self.storage.add, id, scan_result)

    async def close(self) -> None:
        self.storage.close()

    async def __aenter__(self) -> "Auditor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
