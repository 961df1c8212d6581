"""Remote project registry contract and its Modrinth-backed implementation."""

import json
from typing import Any, Protocol

import httpx
import structlog

from ..models import DependencyRef, RelationKind, RemoteFile, RemoteVersion
from .cancellation import CancellationToken
from .errors import ErrorHandlingService, ValidationError
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()


class RegistryClient(Protocol):
    """Queries a remote registry for versions and dependencies of a project."""

    async def list_versions(
        self,
        project_id: str,
        game_version: str,
        loader: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[RemoteVersion]: ...

    async def list_dependencies(
        self,
        project_id: str,
        game_version: str,
        loader: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[DependencyRef]: ...


def parse_version(raw: dict[str, Any]) -> RemoteVersion:
    """Decode one Modrinth version object, keeping only the consumed fields."""
    try:
        files = [
            RemoteFile(
                url=f["url"],
                sha1=f["hashes"]["sha1"],
                filename=f["filename"],
                primary=bool(f.get("primary", False)),
                size=int(f.get("size", 0)),
            )
            for f in raw.get("files", [])
        ]
        dependencies = []
        for dep in raw.get("dependencies", []):
            if not dep.get("project_id"):
                continue
            try:
                relation = RelationKind(dep.get("dependency_type", "required"))
            except ValueError:
                log.debug("Skipping dependency with unknown relation", relation=dep.get("dependency_type"))
                continue
            dependencies.append(DependencyRef(
                project_id=dep["project_id"],
                relation=relation,
                version_id=dep.get("version_id"),
            ))
        return RemoteVersion(
            id=raw["id"],
            project_id=raw["project_id"],
            version_number=raw.get("version_number", ""),
            files=files,
            game_versions=list(raw.get("game_versions", [])),
            loaders=list(raw.get("loaders", [])),
            dependencies=dependencies,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(
            f"Malformed version object from registry: {e}",
            field="version",
            value=raw.get("id") if isinstance(raw, dict) else raw,
        ) from e


class ModrinthRegistryClient:
    """RegistryClient over the Modrinth v2 REST API."""

    def __init__(
        self,
        http_client: HttpClientService,
        base_url: str = "https://api.modrinth.com",
        error_service: ErrorHandlingService | None = None,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._errors = error_service or ErrorHandlingService()

    async def list_versions(
        self,
        project_id: str,
        game_version: str,
        loader: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[RemoteVersion]:
        """Versions of the project compatible with the game version and loader, newest first.

        Raises:
            ResourceError: If the project does not exist
            NetworkError: On transport failure
            ValidationError: On a malformed response
        """
        url = f"{self._base_url}/v2/project/{project_id}/version"
        params = {
            "game_versions": json.dumps([game_version]),
            "loaders": json.dumps([loader]),
        }
        try:
            data = await self._http.get_json(url, params=params, cancel_token=cancel_token)
        except (httpx.HTTPError, ValueError) as e:
            raise self._errors.to_app_error(
                e, "list_versions", "registry", {"url": url, "resource_id": project_id, "field": "versions"}
            ) from e

        if not isinstance(data, list):
            raise ValidationError("Registry returned a non-list version response", field="versions", value=project_id)

        versions = [parse_version(raw) for raw in data]
        log.debug("Registry versions fetched", project_id=project_id, count=len(versions))
        return versions

    async def list_dependencies(
        self,
        project_id: str,
        game_version: str,
        loader: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[DependencyRef]:
        """Direct dependencies declared by the newest compatible version."""
        versions = await self.list_versions(project_id, game_version, loader, cancel_token)
        if not versions:
            log.info("No compatible versions for project", project_id=project_id, game_version=game_version, loader=loader)
            return []
        return list(versions[0].dependencies)
