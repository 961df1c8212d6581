"""Tests for launch argument synthesis."""

import os
from pathlib import Path

import pytest

from launcher_core.models import (
    ArgumentEntry,
    GameInstance,
    LibraryDescriptor,
    LoaderKind,
    OsConstraint,
    Rule,
    RuleAction,
    VersionManifest,
)
from launcher_core.services.errors import ConfigurationError
from launcher_core.services.launch_command import LaunchCommandBuilder, split_jvm_arguments
from launcher_core.services.library_filter import PlatformInfo

LINUX = PlatformInfo(os_name="linux", arch="x86_64")
MAC = PlatformInfo(os_name="osx", arch="arm64")


def make_manifest() -> VersionManifest:
    return VersionManifest(
        id="1.20.1",
        main_class="net.minecraft.client.main.Main",
        libraries=[LibraryDescriptor(name="com.mojang:brigadier:1.0.18")],
        jvm_arguments=[
            ArgumentEntry(values=["-Djava.library.path=${natives_directory}"]),
            ArgumentEntry(
                values=["-XstartOnFirstThread"],
                rules=[Rule(action=RuleAction.ALLOW, os=OsConstraint(name="osx"))],
            ),
            ArgumentEntry(values=["-cp", "${classpath}"]),
        ],
        game_arguments=[
            ArgumentEntry(values=["--username", "${auth_player_name}"]),
            ArgumentEntry(values=["--version", "${version_name}"]),
            ArgumentEntry(values=["--accessToken", "${auth_access_token}"]),
            ArgumentEntry(
                values=["--demo"],
                rules=[Rule(action=RuleAction.ALLOW, features={"is_demo_user": True})],
            ),
        ],
        asset_index="5",
    )


def make_instance(working_directory: Path, **overrides) -> GameInstance:
    fields = dict(
        id="inst-1",
        name="survival",
        game_version="1.20.1",
        loader=LoaderKind.VANILLA,
        main_class="net.minecraft.client.main.Main",
        working_directory=working_directory,
        java_path="/usr/bin/java",
    )
    fields.update(overrides)
    return GameInstance(**fields)


def make_builder(working_directory: Path, platform: PlatformInfo = LINUX) -> LaunchCommandBuilder:
    return LaunchCommandBuilder(
        working_directory=working_directory,
        platform=platform,
        launcher_name="launcher-core",
        launcher_version="0.1.0",
        default_xms=512,
        default_xmx=4096,
    )


@pytest.fixture
def working_directory(tmp_path: Path) -> Path:
    jar = tmp_path / "versions" / "1.20.1" / "1.20.1.jar"
    jar.parent.mkdir(parents=True)
    jar.write_bytes(b"jar")
    return tmp_path


class TestLaunchCommandBuilder:
    """Shape and content of the generated argument vector."""

    def test_argument_vector_shape(self, working_directory: Path) -> None:
        argv = make_builder(working_directory).build(make_manifest(), make_instance(working_directory))

        main_index = argv.index("net.minecraft.client.main.Main")
        jvm, game = argv[:main_index], argv[main_index + 1:]
        assert jvm[:2] == ["-Xms512M", "-Xmx4096M"]
        assert f"-Djava.library.path={working_directory / 'natives'}" in jvm
        assert "-XstartOnFirstThread" not in jvm
        assert game[:4] == ["--username", "${auth_player_name}", "--version", "1.20.1"]
        assert "--demo" not in game

        classpath = jvm[jvm.index("-cp") + 1].split(os.pathsep)
        assert classpath[0] == str(working_directory / "libraries/com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar")
        assert classpath[-1] == str(working_directory / "versions/1.20.1/1.20.1.jar")

    def test_auth_placeholders_survive_for_later_resolution(self, working_directory: Path) -> None:
        argv = make_builder(working_directory).build(make_manifest(), make_instance(working_directory))
        assert "${auth_access_token}" in argv

    def test_instance_memory_overrides_defaults(self, working_directory: Path) -> None:
        instance = make_instance(working_directory, xms=1024, xmx=2048)
        argv = make_builder(working_directory).build(make_manifest(), instance)
        assert argv[:2] == ["-Xms1024M", "-Xmx2048M"]

    def test_custom_jvm_arguments_deduplicated(self, working_directory: Path) -> None:
        instance = make_instance(
            working_directory,
            jvm_arguments="-XX:+UseG1GC -Xms512M -XX:+UseG1GC -Dfoo=1",
        )
        argv = make_builder(working_directory).build(make_manifest(), instance)
        assert argv.count("-XX:+UseG1GC") == 1
        assert argv.count("-Xms512M") == 1
        assert argv[2:4] == ["-XX:+UseG1GC", "-Dfoo=1"]

    def test_macos_flags_not_repeated(self, working_directory: Path) -> None:
        argv = make_builder(working_directory, MAC).build(make_manifest(), make_instance(working_directory))
        assert argv.count("-XstartOnFirstThread") == 1
        assert argv[2] == "-XstartOnFirstThread"

    def test_instance_game_arguments_appended(self, working_directory: Path) -> None:
        instance = make_instance(working_directory, game_arguments=["--quickPlaySingleplayer", "${version_name}"])
        argv = make_builder(working_directory).build(make_manifest(), instance)
        assert argv[-2:] == ["--quickPlaySingleplayer", "1.20.1"]

    def test_missing_runtime_jar(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            make_builder(tmp_path).build(make_manifest(), make_instance(tmp_path))

    def test_missing_java_path(self, working_directory: Path) -> None:
        instance = make_instance(working_directory, java_path="")
        with pytest.raises(ConfigurationError):
            make_builder(working_directory).build(make_manifest(), instance)

    def test_default_java_path_used(self, working_directory: Path) -> None:
        builder = make_builder(working_directory)
        builder.default_java_path = "/opt/java/bin/java"
        assert builder.resolve_java_path(make_instance(working_directory, java_path="")) == "/opt/java/bin/java"


def test_split_jvm_arguments() -> None:
    assert split_jvm_arguments("  -Da=1   -Db=2 -Da=1\n") == ["-Da=1", "-Db=2"]
    assert split_jvm_arguments("") == []
