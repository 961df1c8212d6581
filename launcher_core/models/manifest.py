"""Version manifest data models."""

from dataclasses import dataclass, field
from enum import Enum


class RuleAction(Enum):
    """Verdict a matching rule applies."""
    ALLOW = "allow"
    DISALLOW = "disallow"


@dataclass(frozen=True)
class OsConstraint:
    """Operating-system predicate of a rule; unset fields match anything."""
    name: str | None = None
    version: str | None = None  # Regular expression searched in the OS version
    arch: str | None = None


@dataclass(frozen=True)
class Rule:
    """Single allow/disallow rule from a manifest."""
    action: RuleAction
    os: OsConstraint | None = None
    features: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class LibraryDescriptor:
    """Library declared by a version manifest."""
    name: str  # Maven coordinate, group:artifact:version[:classifier][@ext]
    path: str | None = None
    url: str | None = None
    sha1: str | None = None
    size: int = 0
    rules: list[Rule] = field(default_factory=list)
    downloadable: bool = True
    include_in_classpath: bool = True


@dataclass(frozen=True)
class ArgumentEntry:
    """One manifest argument, optionally conditioned on rules."""
    values: list[str]
    rules: list[Rule] = field(default_factory=list)


@dataclass(frozen=True)
class VersionManifest:
    """Declarative description of a runnable version."""
    id: str
    main_class: str
    libraries: list[LibraryDescriptor] = field(default_factory=list)
    jvm_arguments: list[ArgumentEntry] = field(default_factory=list)
    game_arguments: list[ArgumentEntry] = field(default_factory=list)
    asset_index: str = ""
    type: str = "release"
