"""Classpath composition from manifest libraries, the runtime jar and extra entries."""

import os
from pathlib import Path, PurePosixPath

import structlog

from ..models import LibraryDescriptor
from .library_filter import PlatformInfo, is_library_included

log = structlog.stdlib.get_logger()


def maven_coordinate_to_relative_path(coordinate: str) -> str | None:
    """Map a maven coordinate to its repository-relative path.

    Supported forms::

        group:artifact:version
        group:artifact:version:classifier
        group:artifact:packaging:classifier:version
        any of the above with a trailing @extension

    Returns None for coordinates with fewer than three parts.
    """
    extension = "jar"
    if "@" in coordinate:
        coordinate, extension = coordinate.rsplit("@", 1)

    parts = coordinate.split(":")
    if len(parts) < 3 or not all(parts[:3]):
        return None

    group, artifact = parts[0].replace(".", "/"), parts[1]
    classifier: str | None = None
    if len(parts) == 3:
        version = parts[2]
    elif len(parts) == 4:
        version, classifier = parts[2], parts[3]
    else:
        version, classifier = parts[4], parts[3]

    file_name = f"{artifact}-{version}-{classifier}.{extension}" if classifier else f"{artifact}-{version}.{extension}"
    return f"{group}/{artifact}/{version}/{file_name}"


def base_path(relative_path: str) -> str | None:
    """All segments except the last two (version dir and file name), or None if too short."""
    segments = PurePosixPath(relative_path).parts
    if len(segments) < 2:
        return None
    return "/".join(segments[:-2])


def dedupe_paths(paths: list[str]) -> list[str]:
    """Drop blank and exact-duplicate entries, keeping first-seen order."""
    seen: set[str] = set()
    unique: list[str] = []
    for path in paths:
        normalized = path.strip()
        if not normalized:
            continue
        if normalized in seen:
            log.debug("Duplicate classpath entry skipped", path=normalized)
            continue
        seen.add(normalized)
        unique.append(normalized)
    return unique


class ClasspathBuilder:
    """Builds the ordered, de-duplicated classpath for a launch."""

    def __init__(self, libraries_dir: Path, platform: PlatformInfo) -> None:
        self.libraries_dir = libraries_dir
        self.platform = platform

    def library_relative_path(self, library: LibraryDescriptor) -> str | None:
        """Explicit artifact path if present, else derived from the coordinate."""
        if library.path:
            return library.path
        relative = maven_coordinate_to_relative_path(library.name)
        if relative is None:
            log.warning("Library has neither a path nor a valid coordinate", library=library.name)
        return relative

    def _extra_base_paths(self, extra_entries: list[str]) -> set[str]:
        bases: set[str] = set()
        for entry in extra_entries:
            path = Path(entry.strip())
            if not path.is_absolute():
                continue
            try:
                relative = path.relative_to(self.libraries_dir)
            except ValueError:
                continue
            base = base_path(relative.as_posix())
            if base is not None:
                bases.add(base)
        return bases

    def entries(
        self,
        libraries: list[LibraryDescriptor],
        runtime_jar_path: Path | str,
        extra_entries: list[str] | None = None,
        game_version: str | None = None,
    ) -> list[str]:
        """Ordered classpath entries: manifest libraries, runtime jar, extras."""
        extra_entries = list(extra_entries or [])
        overridden = self._extra_base_paths(extra_entries)

        manifest_entries: list[str] = []
        for library in libraries:
            if not is_library_included(library, self.platform, game_version):
                continue
            relative = self.library_relative_path(library)
            if relative is None:
                continue
            if base_path(relative) in overridden:
                log.debug("Library overridden by extra classpath entry", library=library.name)
                continue
            manifest_entries.append(str(self.libraries_dir / relative))

        return dedupe_paths(manifest_entries + [str(runtime_jar_path)] + extra_entries)

    def build(
        self,
        libraries: list[LibraryDescriptor],
        runtime_jar_path: Path | str,
        extra_entries: list[str] | None = None,
        game_version: str | None = None,
    ) -> str:
        """Join the classpath entries with the platform path-list separator."""
        entries = self.entries(libraries, runtime_jar_path, extra_entries, game_version)
        log.debug("Classpath built", entries=len(entries))
        return os.pathsep.join(entries)
