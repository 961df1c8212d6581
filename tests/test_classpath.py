"""Tests for maven paths and classpath composition."""

import os
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from launcher_core.models import LibraryDescriptor, OsConstraint, Rule, RuleAction
from launcher_core.services.classpath import (
    ClasspathBuilder,
    base_path,
    dedupe_paths,
    maven_coordinate_to_relative_path,
)
from launcher_core.services.library_filter import PlatformInfo

LINUX = PlatformInfo(os_name="linux", arch="x86_64")
LIBRARIES = Path("/games/libraries")

path_segment = st.text(alphabet="abcdefghij", min_size=1, max_size=4)
entries_strategy = st.lists(
    st.builds(lambda parts: "/" + "/".join(parts), st.lists(path_segment, min_size=1, max_size=3)),
    max_size=20,
)


class TestMavenPaths:
    """Coordinate to repository-relative path mapping."""

    @pytest.mark.parametrize(
        ("coordinate", "expected"),
        [
            ("org.lwjgl:lwjgl:3.3.1", "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1.jar"),
            ("org.lwjgl:lwjgl:3.3.1:natives-linux", "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar"),
            ("net.minecraftforge:forge:jar:universal:1.20.1-47.2.0",
             "net/minecraftforge/forge/1.20.1-47.2.0/forge-1.20.1-47.2.0-universal.jar"),
            ("de.oceanlabs.mcp:mcp_config:1.20.1@zip", "de/oceanlabs/mcp/mcp_config/1.20.1/mcp_config-1.20.1.zip"),
        ],
    )
    def test_coordinate_forms(self, coordinate: str, expected: str) -> None:
        assert maven_coordinate_to_relative_path(coordinate) == expected

    @pytest.mark.parametrize("coordinate", ["", "group", "group:artifact", "group::1.0"])
    def test_invalid_coordinates(self, coordinate: str) -> None:
        assert maven_coordinate_to_relative_path(coordinate) is None

    def test_base_path_drops_version_and_file(self) -> None:
        assert base_path("org/ow2/asm/asm/9.5/asm-9.5.jar") == "org/ow2/asm/asm"
        assert base_path("asm-9.5.jar") is None


class TestDedupe:
    """Blank and duplicate entry removal."""

    def test_first_occurrence_wins(self) -> None:
        assert dedupe_paths(["/a", " /b ", "", "/a", "  ", "/b"]) == ["/a", "/b"]

    @given(entries_strategy)
    def test_no_duplicates_and_order_kept(self, entries: list[str]) -> None:
        result = dedupe_paths(entries)
        assert len(result) == len(set(result))
        assert result == sorted(set(entries), key=entries.index)


class TestClasspathBuilder:
    """Ordering, filtering and override behaviour of the classpath."""

    def test_order_libraries_then_jar_then_extras(self) -> None:
        builder = ClasspathBuilder(LIBRARIES, LINUX)
        libraries = [
            LibraryDescriptor(name="com.mojang:brigadier:1.0.18"),
            LibraryDescriptor(name="org.lwjgl:lwjgl:3.3.1", path="org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1.jar"),
        ]
        entries = builder.entries(libraries, "/games/versions/1.20.1/1.20.1.jar", ["/mods/extra.jar"])
        assert entries == [
            str(LIBRARIES / "com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar"),
            str(LIBRARIES / "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1.jar"),
            "/games/versions/1.20.1/1.20.1.jar",
            "/mods/extra.jar",
        ]

    def test_excluded_libraries_are_skipped(self) -> None:
        builder = ClasspathBuilder(LIBRARIES, LINUX)
        osx_only = LibraryDescriptor(
            name="ca.weblite:java-objc-bridge:1.1",
            rules=[Rule(action=RuleAction.ALLOW, os=OsConstraint(name="osx"))],
        )
        entries = builder.entries([osx_only], "/jar")
        assert entries == ["/jar"]

    def test_extra_entry_overrides_library_with_same_base(self) -> None:
        builder = ClasspathBuilder(LIBRARIES, LINUX)
        libraries = [LibraryDescriptor(name="org.ow2.asm:asm:9.3"), LibraryDescriptor(name="org.ow2.asm:asm-tree:9.3")]
        newer = str(LIBRARIES / "org/ow2/asm/asm/9.5/asm-9.5.jar")
        entries = builder.entries(libraries, "/jar", [newer])
        assert str(LIBRARIES / "org/ow2/asm/asm/9.3/asm-9.3.jar") not in entries
        assert str(LIBRARIES / "org/ow2/asm/asm-tree/9.3/asm-tree-9.3.jar") in entries
        assert entries[-1] == newer

    def test_extra_outside_libraries_dir_does_not_override(self) -> None:
        builder = ClasspathBuilder(LIBRARIES, LINUX)
        libraries = [LibraryDescriptor(name="org.ow2.asm:asm:9.3")]
        entries = builder.entries(libraries, "/jar", ["/elsewhere/org/ow2/asm/asm/9.5/asm-9.5.jar"])
        assert str(LIBRARIES / "org/ow2/asm/asm/9.3/asm-9.3.jar") in entries

    def test_build_joins_with_path_separator(self) -> None:
        builder = ClasspathBuilder(LIBRARIES, LINUX)
        assert builder.build([], "/jar", ["/x.jar", "/jar"]) == os.pathsep.join(["/jar", "/x.jar"])

    @given(entries_strategy)
    @settings(deadline=2000)
    def test_no_duplicate_entries(self, extras: list[str]) -> None:
        builder = ClasspathBuilder(LIBRARIES, LINUX)
        libraries = [LibraryDescriptor(name="a:b:1"), LibraryDescriptor(name="a:b:1")]
        entries = builder.entries(libraries, "/jar", extras)
        assert len(entries) == len(set(entries))
        assert "" not in entries
