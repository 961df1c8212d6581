"""Synthesis of the launch argument vector for a game instance."""

import os
from pathlib import Path

import structlog

from ..models import ArgumentEntry, GameInstance, VersionManifest
from .classpath import ClasspathBuilder
from .errors import ConfigurationError
from .library_filter import PlatformInfo, evaluate_rules
from .templates import substitute, substitute_all

log = structlog.stdlib.get_logger()

# Resolved by the caller just before spawn
AUTH_PLACEHOLDERS = ("auth_player_name", "auth_uuid", "auth_access_token", "auth_xuid")

MACOS_JVM_FLAGS = ["-XstartOnFirstThread"]
DEFAULT_RESOLUTION = ("854", "480")


def split_jvm_arguments(raw: str) -> list[str]:
    """Split custom JVM arguments on whitespace, dropping repeats after the first."""
    seen: set[str] = set()
    unique: list[str] = []
    for argument in raw.split():
        if argument in seen:
            continue
        seen.add(argument)
        unique.append(argument)
    return unique


class LaunchCommandBuilder:
    """Turns a version manifest and an instance into the argv passed to Java.

    Directory layout under the working directory::

        versions/<id>/<id>.jar   runtime jar
        libraries/               maven-style library tree
        assets/                  asset objects and indexes
        natives/                 extracted native libraries
    """

    def __init__(
        self,
        working_directory: Path,
        platform: PlatformInfo,
        launcher_name: str,
        launcher_version: str,
        default_xms: int,
        default_xmx: int,
        default_java_path: str = "",
        client_id: str = "",
    ) -> None:
        self.working_directory = working_directory
        self.platform = platform
        self.launcher_name = launcher_name
        self.launcher_version = launcher_version
        self.default_xms = default_xms
        self.default_xmx = default_xmx
        self.default_java_path = default_java_path
        self.client_id = client_id
        self.classpath_builder = ClasspathBuilder(self.libraries_directory, platform)

    @property
    def libraries_directory(self) -> Path:
        return self.working_directory / "libraries"

    @property
    def assets_directory(self) -> Path:
        return self.working_directory / "assets"

    @property
    def natives_directory(self) -> Path:
        return self.working_directory / "natives"

    def runtime_jar_path(self, version_id: str) -> Path:
        return self.working_directory / "versions" / version_id / f"{version_id}.jar"

    def memory_bounds(self, instance: GameInstance) -> tuple[int, int]:
        """Instance memory in MB, falling back to configured defaults when unset."""
        xms = instance.xms if instance.xms > 0 else self.default_xms
        xmx = instance.xmx if instance.xmx > 0 else self.default_xmx
        return xms, xmx

    def resolve_java_path(self, instance: GameInstance) -> str:
        """The Java executable for the instance.

        Raises:
            ConfigurationError: If neither the instance nor the configuration sets one
        """
        java_path = instance.java_path or self.default_java_path
        if not java_path:
            raise ConfigurationError(
                "Java executable path is not set",
                setting="java_path",
                expected="path to a java executable",
            )
        return java_path

    def variables(self, manifest: VersionManifest, instance: GameInstance, classpath: str) -> dict[str, str]:
        """Variable map for argument templates; auth placeholders map to themselves."""
        xms, xmx = self.memory_bounds(instance)
        width, height = DEFAULT_RESOLUTION
        variables = {name: "${" + name + "}" for name in AUTH_PLACEHOLDERS}
        variables.update({
            "version_name": instance.game_version,
            "game_directory": str(instance.game_directory),
            "assets_root": str(self.assets_directory),
            "assets_index_name": instance.asset_index or manifest.asset_index,
            "clientid": self.client_id,
            "user_type": "msa",
            "version_type": self.launcher_name,
            "natives_directory": str(self.natives_directory),
            "library_directory": str(self.libraries_directory),
            "classpath_separator": os.pathsep,
            "launcher_name": self.launcher_name,
            "launcher_version": self.launcher_version,
            "classpath": classpath,
            "resolution_width": width,
            "resolution_height": height,
            "xms": str(xms),
            "xmx": str(xmx),
        })
        return variables

    def applicable_arguments(self, entries: list[ArgumentEntry], game_version: str) -> list[str]:
        """Flatten argument entries whose rules hold on this platform."""
        arguments: list[str] = []
        for entry in entries:
            if evaluate_rules(entry.rules, self.platform, game_version):
                arguments.extend(entry.values)
        return arguments

    def build(self, manifest: VersionManifest, instance: GameInstance) -> list[str]:
        """Build ``jvm args + [main class] + game args`` for the instance.

        The executable itself is not part of the result; see resolve_java_path.

        Raises:
            ConfigurationError: If the runtime jar is missing or no Java path is set
        """
        runtime_jar = self.runtime_jar_path(manifest.id)
        if not runtime_jar.is_file():
            raise ConfigurationError(
                f"Runtime jar not found: {runtime_jar}",
                setting="runtime_jar",
                current_value=str(runtime_jar),
                expected="an installed game version",
            )
        self.resolve_java_path(instance)

        classpath = self.classpath_builder.build(
            manifest.libraries,
            runtime_jar,
            instance.extra_classpath,
            game_version=manifest.id,
        )
        variables = self.variables(manifest, instance, classpath)

        manifest_jvm = substitute_all(self.applicable_arguments(manifest.jvm_arguments, manifest.id), variables)
        manifest_game = substitute_all(self.applicable_arguments(manifest.game_arguments, manifest.id), variables)

        xms, xmx = self.memory_bounds(instance)
        fixed = [f"-Xms{xms}M", f"-Xmx{xmx}M"]
        if self.platform.is_macos:
            fixed += MACOS_JVM_FLAGS

        manifest_jvm = [arg for arg in manifest_jvm if arg not in fixed]
        already_present = set(fixed) | set(manifest_jvm)
        custom_jvm = [arg for arg in split_jvm_arguments(instance.jvm_arguments) if arg not in already_present]
        extra_game = [substitute(arg, variables) for arg in instance.game_arguments]

        jvm_arguments = fixed + custom_jvm + manifest_jvm
        game_arguments = manifest_game + extra_game
        main_class = instance.main_class or manifest.main_class

        log.info(
            "Launch command built",
            instance_id=instance.id,
            version=manifest.id,
            main_class=main_class,
            jvm_arguments=len(jvm_arguments),
            game_arguments=len(game_arguments),
        )
        return jvm_arguments + [main_class] + game_arguments
