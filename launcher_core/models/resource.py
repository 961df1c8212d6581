"""Remote resource and cache data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RelationKind(Enum):
    """Classification of a dependency edge."""
    REQUIRED = "required"
    OPTIONAL = "optional"
    EMBEDDED = "embedded"
    INCOMPATIBLE = "incompatible"


@dataclass(frozen=True)
class RemoteFile:
    """A downloadable file attached to a remote version."""
    url: str
    sha1: str
    filename: str
    primary: bool = False
    size: int = 0


@dataclass(frozen=True)
class RemoteVersion:
    """A published version of a remote project."""
    id: str
    project_id: str
    version_number: str = ""
    files: list[RemoteFile] = field(default_factory=list)
    game_versions: list[str] = field(default_factory=list)
    loaders: list[str] = field(default_factory=list)
    dependencies: list["DependencyRef"] = field(default_factory=list)

    @property
    def primary_file(self) -> RemoteFile | None:
        """The file flagged primary, else the first file."""
        for remote_file in self.files:
            if remote_file.primary:
                return remote_file
        return self.files[0] if self.files else None


@dataclass(frozen=True)
class DependencyRef:
    """A declared dependency edge as reported by the registry."""
    project_id: str
    relation: RelationKind
    version_id: str | None = None


@dataclass(frozen=True)
class ResourceDependency:
    """A dependency under resolution, with its chosen version once picked."""
    project_id: str
    relation: RelationKind
    version_id: str | None = None


@dataclass(frozen=True)
class MissingDependency:
    """A dependency not satisfied locally, with its candidate versions."""
    dependency: ResourceDependency
    candidates: list[RemoteVersion]


@dataclass(frozen=True)
class CacheEntry:
    """Metadata blob stored under a content hash."""
    content_hash: str
    blob: bytes
    created_at: datetime
    updated_at: datetime
