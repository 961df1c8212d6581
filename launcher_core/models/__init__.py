"""Data models for the launcher core."""

from .config import AppConfig
from .instance import GameInstance, LoaderKind
from .manifest import (
    ArgumentEntry,
    LibraryDescriptor,
    OsConstraint,
    Rule,
    RuleAction,
    VersionManifest,
)
from .process import ExitClassification, ExitOutcome, ProcessRecord, ProcessState
from .progress import DownloadProgress
from .resource import (
    CacheEntry,
    DependencyRef,
    MissingDependency,
    RelationKind,
    RemoteFile,
    RemoteVersion,
    ResourceDependency,
)

__all__ = [
    "AppConfig",
    "ArgumentEntry",
    "CacheEntry",
    "DependencyRef",
    "DownloadProgress",
    "ExitClassification",
    "ExitOutcome",
    "GameInstance",
    "LibraryDescriptor",
    "LoaderKind",
    "MissingDependency",
    "OsConstraint",
    "ProcessRecord",
    "ProcessState",
    "RelationKind",
    "RemoteFile",
    "RemoteVersion",
    "ResourceDependency",
    "Rule",
    "RuleAction",
    "VersionManifest",
]
