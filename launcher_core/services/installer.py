"""Resource installation: resolve, download, verify, then commit cache state."""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ..models import DownloadProgress, GameInstance, MissingDependency, RelationKind, RemoteFile, RemoteVersion
from .cancellation import CancellationToken
from .content_cache import ContentCache, InstalledHashIndex
from .dependency_resolver import DependencyResolver
from .download_manager import BatchReport, DownloadManagerService, DownloadRequest
from .errors import DownloadError, OperationCancelledError, ResourceError
from .filesystem import FileSystemService
from .instances import InstanceService
from .limiter import ConcurrencyLimiter
from .registry import RegistryClient

log = structlog.stdlib.get_logger()


@dataclass
class InstallResult:
    """Outcome of installing one project into an instance."""
    project_id: str
    version_id: str
    report: BatchReport
    unresolved: list[MissingDependency] = field(default_factory=list)  # Required deps with no candidate
    installed_files: list[Path] = field(default_factory=list)
    new_cache_hashes: list[str] = field(default_factory=list)  # Cache entries this install created

    @property
    def success(self) -> bool:
        return not self.unresolved and self.report.success

    def raise_for_failure(self) -> None:
        """Raise DownloadError naming every failed or unresolved required item."""
        if self.success:
            return
        failed = [task.request.label for task in self.report.failed_required]
        failed += [item.dependency.project_id for item in self.unresolved]
        raise DownloadError(f"Could not install {self.project_id}", failed_items=failed)


def metadata_blob(version: RemoteVersion, filename: str) -> bytes:
    """Canonical JSON metadata stored in the content cache for an installed file."""
    return json.dumps(
        {
            "project_id": version.project_id,
            "version_id": version.id,
            "version_number": version.version_number,
            "filename": filename,
        },
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")


class ResourceInstallService:
    """Installs a project and its missing direct dependencies into an instance.

    Dependencies and the main file download concurrently; nothing is
    recorded in the content cache or the installed-hash index unless every
    required item succeeded. A failed or cancelled batch has the files it
    wrote removed again.
    """

    def __init__(
        self,
        registry: RegistryClient,
        resolver: DependencyResolver,
        downloads: DownloadManagerService,
        cache: ContentCache,
        installed_hashes: InstalledHashIndex,
        filesystem: FileSystemService,
        limiter: ConcurrencyLimiter,
        instances: InstanceService | None = None,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._downloads = downloads
        self._cache = cache
        self._installed_hashes = installed_hashes
        self._filesystem = filesystem
        self._limiter = limiter
        self._instances = instances

    async def _choose_version(
        self,
        project_id: str,
        instance: GameInstance,
        version_id: str | None,
        cancel_token: CancellationToken | None,
    ) -> tuple[RemoteVersion, RemoteFile]:
        """The pinned version if compatible, otherwise the newest, with its primary file."""
        async with self._limiter:
            versions = await self._registry.list_versions(
                project_id, instance.game_version, instance.loader.value, cancel_token
            )
        chosen = versions[0] if versions else None
        if version_id is not None:
            pinned = next((v for v in versions if v.id == version_id), None)
            if pinned is None and chosen is not None:
                log.warning(
                    "Pinned version not compatible, using newest",
                    project_id=project_id,
                    version_id=version_id,
                    fallback=chosen.id,
                )
            chosen = pinned or chosen
        primary = chosen.primary_file if chosen is not None else None
        if chosen is None or primary is None:
            raise ResourceError(
                f"No compatible version of {project_id} for {instance.game_version} ({instance.loader.value})",
                resource_id=project_id,
            )
        return chosen, primary

    async def install(
        self,
        instance: GameInstance,
        project_id: str,
        version_id: str | None = None,
        target_directory: str = "mods",
        include_optional: bool = False,
        cancel_token: CancellationToken | None = None,
        on_progress: Callable[[DownloadProgress], None] | None = None,
    ) -> InstallResult:
        """Install the project (and missing dependencies) into the instance.

        Raises:
            ResourceError: If the project has no compatible version
            OperationCancelledError: If cancelled; partial files are removed first
        """
        installed = self._installed_hashes.hashes(instance.id)
        version, main_file = await self._choose_version(project_id, instance, version_id, cancel_token)
        missing = await self._resolver.resolve_missing(
            project_id, instance.game_version, instance.loader.value, installed, cancel_token
        )

        destination_dir = instance.game_directory / target_directory
        self._filesystem.ensure_directory(destination_dir)

        unresolved: list[MissingDependency] = []
        planned: list[tuple[DownloadRequest, RemoteVersion]] = []
        for item in missing:
            required = item.dependency.relation is RelationKind.REQUIRED
            if not required and not include_optional:
                continue
            candidate = item.candidates[0] if item.candidates else None
            primary = candidate.primary_file if candidate is not None else None
            if candidate is None or primary is None:
                if required:
                    log.warning("Required dependency has no installable version", project_id=item.dependency.project_id)
                    unresolved.append(item)
                continue
            planned.append((
                DownloadRequest(
                    url=primary.url,
                    sha1=primary.sha1,
                    destination=destination_dir / primary.filename,
                    required=required,
                    label=item.dependency.project_id,
                ),
                candidate,
            ))

        planned.append((
            DownloadRequest(
                url=main_file.url,
                sha1=main_file.sha1,
                destination=destination_dir / main_file.filename,
                required=True,
                label=project_id,
            ),
            version,
        ))

        report = await self._downloads.download_batch([r for r, _ in planned], cancel_token, on_progress)
        result = InstallResult(project_id=project_id, version_id=version.id, report=report, unresolved=unresolved)

        if report.cancelled or (cancel_token is not None and cancel_token.cancelled):
            self._rollback(report)
            raise OperationCancelledError(operation=f"install {project_id}")

        if not result.success:
            self._rollback(report)
            log.warning(
                "Install failed",
                project_id=project_id,
                instance_id=instance.id,
                failed=[t.request.label for t in report.failed_required],
                unresolved=[m.dependency.project_id for m in unresolved],
            )
            return result

        # Commit: no awaits from here on, so cancellation cannot interleave
        blobs: dict[str, bytes] = {}
        for task, (_, remote_version) in zip(report.tasks, planned):
            if task.succeeded:
                blobs[task.request.sha1] = metadata_blob(remote_version, task.request.destination.name)
                result.installed_files.append(task.request.destination)
        already_cached = self._cache.has_many(list(blobs))
        result.new_cache_hashes = [h for h, present in already_cached.items() if not present]
        self._cache.put_many(blobs)
        self._installed_hashes.add(instance.id, list(blobs))

        log.info(
            "Install complete",
            project_id=project_id,
            version_id=version.id,
            instance_id=instance.id,
            files=len(result.installed_files),
        )
        return result

    def _rollback(self, report: BatchReport) -> None:
        written = report.written_files
        if not written:
            return
        leftovers = self._filesystem.remove_files(written)
        log.info("Rolled back downloaded files", removed=len(written) - len(leftovers), failed=len(leftovers))

    async def create_with_resources(
        self,
        instance: GameInstance,
        project_ids: list[str],
        cancel_token: CancellationToken | None = None,
    ) -> list[InstallResult]:
        """Create an instance and install projects into it.

        On cancellation the just-created instance (directory, record and
        installed hashes) is discarded before the error propagates.
        """
        if self._instances is None:
            raise RuntimeError("create_with_resources requires an InstanceService")

        self._instances.create(instance, cancel_token)
        results: list[InstallResult] = []
        try:
            for project_id in project_ids:
                results.append(await self.install(instance, project_id, cancel_token=cancel_token))
        except OperationCancelledError:
            self._cache.delete_many([h for result in results for h in result.new_cache_hashes])
            self._instances.discard_partial(instance)
            raise
        return results
