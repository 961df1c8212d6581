"""One-hop resolution of a project's dependencies that are not installed locally."""

import asyncio

import structlog

from ..models import DependencyRef, MissingDependency, RelationKind, RemoteVersion, ResourceDependency
from .cancellation import CancellationToken
from .errors import AppError, ErrorHandlingService, OperationCancelledError
from .limiter import ConcurrencyLimiter
from .registry import RegistryClient

log = structlog.stdlib.get_logger()

SKIPPED_RELATIONS = (RelationKind.EMBEDDED, RelationKind.INCOMPATIBLE)


class DependencyResolver:
    """Finds direct dependencies of a project that still need installing.

    Resolution is one hop: dependencies of dependencies are not expanded.
    """

    def __init__(
        self,
        registry: RegistryClient,
        limiter: ConcurrencyLimiter,
        error_service: ErrorHandlingService | None = None,
    ) -> None:
        self._registry = registry
        self._limiter = limiter
        self._errors = error_service or ErrorHandlingService()

    async def resolve_missing(
        self,
        project_id: str,
        game_version: str,
        loader: str,
        installed_hashes: set[str],
        cancel_token: CancellationToken | None = None,
    ) -> list[MissingDependency]:
        """Direct dependencies of the project with their candidate versions.

        A dependency is omitted when any candidate's primary-file hash is in
        ``installed_hashes``, and when fetching its candidates fails (the
        failure is logged; sibling dependencies are unaffected).

        Raises:
            AppError: If the project's own dependency list cannot be fetched
        """
        installed = {h.lower() for h in installed_hashes}

        async with self._limiter:
            refs = await self._registry.list_dependencies(project_id, game_version, loader, cancel_token)

        wanted: list[DependencyRef] = []
        seen: set[str] = set()
        for ref in refs:
            if ref.relation in SKIPPED_RELATIONS or ref.project_id in seen:
                continue
            seen.add(ref.project_id)
            wanted.append(ref)

        log.info(
            "Resolving dependencies",
            project_id=project_id,
            declared=len(refs),
            to_check=len(wanted),
        )

        results = await asyncio.gather(
            *(self._resolve_one(ref, game_version, loader, installed, cancel_token) for ref in wanted)
        )
        missing = [result for result in results if result is not None]

        log.info(
            "Dependency resolution finished",
            project_id=project_id,
            missing=[m.dependency.project_id for m in missing],
        )
        return missing

    async def _resolve_one(
        self,
        ref: DependencyRef,
        game_version: str,
        loader: str,
        installed: set[str],
        cancel_token: CancellationToken | None,
    ) -> MissingDependency | None:
        try:
            async with self._limiter:
                candidates = await self._registry.list_versions(ref.project_id, game_version, loader, cancel_token)
        except OperationCancelledError:
            raise
        except AppError as e:
            self._errors.handle_error(
                e, "resolve_dependency", "dependency_resolver", {"resource_id": ref.project_id}
            )
            return None

        if ref.version_id:
            pinned = [c for c in candidates if c.id == ref.version_id]
            candidates = pinned or candidates

        if self._is_satisfied(candidates, installed):
            log.debug("Dependency already installed", project_id=ref.project_id)
            return None

        return MissingDependency(
            dependency=ResourceDependency(
                project_id=ref.project_id,
                relation=ref.relation,
                version_id=candidates[0].id if candidates else ref.version_id,
            ),
            candidates=candidates,
        )

    @staticmethod
    def _is_satisfied(candidates: list[RemoteVersion], installed: set[str]) -> bool:
        for candidate in candidates:
            primary = candidate.primary_file
            if primary is not None and primary.sha1.lower() in installed:
                return True
        return False
