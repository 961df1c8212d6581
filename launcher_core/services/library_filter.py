"""Platform applicability of manifest libraries and argument entries."""

import platform as _platform
import re
import sys
from dataclasses import dataclass, field

import structlog

from ..models import LibraryDescriptor, Rule, RuleAction

log = structlog.stdlib.get_logger()

# Game versions before 1.19 ship no generic osx natives for arm64
ARM64_GENERIC_OSX_SINCE = (1, 19)


@dataclass(frozen=True)
class PlatformInfo:
    """The host facts rules are evaluated against."""
    os_name: str  # "osx" | "linux" | "windows"
    arch: str  # "x86_64" | "arm64" | "x86"
    os_version: str = ""
    features: dict[str, bool] = field(default_factory=dict)

    @property
    def is_macos(self) -> bool:
        return self.os_name == "osx"

    @classmethod
    def current(cls, features: dict[str, bool] | None = None) -> "PlatformInfo":
        """Describe the running host."""
        if sys.platform == "darwin":
            os_name = "osx"
        elif sys.platform.startswith("win"):
            os_name = "windows"
        else:
            os_name = "linux"

        machine = _platform.machine().lower()
        if machine in ("arm64", "aarch64"):
            arch = "arm64"
        elif machine in ("x86_64", "amd64"):
            arch = "x86_64"
        elif machine in ("i386", "i686", "x86"):
            arch = "x86"
        else:
            arch = machine

        return cls(
            os_name=os_name,
            arch=arch,
            os_version=_platform.release(),
            features=dict(features or {}),
        )

    def identifiers(self, game_version: str | None = None) -> list[str]:
        """OS names a rule may use to target this host, most specific first."""
        if not self.is_macos:
            return [self.os_name]
        if self.arch == "arm64":
            ids = ["osx-arm64", "macos-arm64"]
            if game_version is None or not is_legacy_version(game_version):
                ids += ["osx", "macos"]
            return ids
        return ["osx", "macos", "osx-x86_64"]


def is_legacy_version(game_version: str) -> bool:
    """True for release versions below 1.19; snapshots and unparsable ids are not legacy."""
    parts = []
    for piece in game_version.split("."):
        if not piece.isdigit():
            break
        parts.append(int(piece))
    if len(parts) < 2:
        return False
    return tuple(parts[:2]) < ARM64_GENERIC_OSX_SINCE


def rule_matches(rule: Rule, platform: PlatformInfo, game_version: str | None = None) -> bool:
    """Whether every predicate of the rule holds on the given platform."""
    if rule.os is not None:
        if rule.os.name is not None and rule.os.name not in platform.identifiers(game_version):
            return False
        if rule.os.arch is not None and rule.os.arch != platform.arch:
            return False
        if rule.os.version is not None:
            try:
                if re.search(rule.os.version, platform.os_version) is None:
                    return False
            except re.error:
                log.warning("Invalid os.version pattern in rule", pattern=rule.os.version)
                return False

    for feature, expected in rule.features.items():
        if platform.features.get(feature, False) != expected:
            return False
    return True


def evaluate_rules(rules: list[Rule], platform: PlatformInfo, game_version: str | None = None) -> bool:
    """Apply an allow/disallow rule list; later matching rules override earlier ones.

    An empty list allows. A non-empty list starts from "disallowed", so a
    list whose rules all target other platforms excludes the item.
    """
    if not rules:
        return True

    allowed = False
    for rule in rules:
        if rule_matches(rule, platform, game_version):
            allowed = rule.action is RuleAction.ALLOW
    return allowed


def should_download_library(
    library: LibraryDescriptor,
    platform: PlatformInfo,
    game_version: str | None = None,
) -> bool:
    """Whether the library must be present on disk for this platform."""
    if not library.downloadable:
        return False
    return evaluate_rules(library.rules, platform, game_version)


def is_library_included(
    library: LibraryDescriptor,
    platform: PlatformInfo,
    game_version: str | None = None,
) -> bool:
    """Whether the library belongs on the classpath for this platform."""
    if not library.include_in_classpath:
        return False
    return should_download_library(library, platform, game_version)
