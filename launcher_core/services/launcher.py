"""Game launch orchestration: command, credentials, environment and spawn."""

import asyncio
import hashlib
import os
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from ..models import GameInstance, VersionManifest
from .crash_detection import collect_crash_logs
from .filesystem import FileSystemService
from .instances import InstanceService
from .launch_command import LaunchCommandBuilder
from .logging import REDACTED
from .manifest import parse_manifest
from .process_supervisor import ProcessSupervisor
from .templates import substitute

log = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class PlayerSession:
    """Credentials substituted into the auth placeholders just before spawn."""
    name: str
    uuid: str
    access_token: str
    xuid: str = ""

    @classmethod
    def offline(cls, name: str = "Player") -> "PlayerSession":
        """Offline session with the name-derived UUID the game itself uses."""
        digest = bytearray(hashlib.md5(f"OfflinePlayer:{name}".encode("utf-8")).digest())
        digest[6] = (digest[6] & 0x0F) | 0x30  # version 3
        digest[8] = (digest[8] & 0x3F) | 0x80  # RFC 4122 variant
        return cls(name=name, uuid=uuid.UUID(bytes=bytes(digest)).hex, access_token="0")

    def variables(self) -> dict[str, str]:
        return {
            "auth_player_name": self.name,
            "auth_uuid": self.uuid,
            "auth_access_token": self.access_token,
            "auth_xuid": self.xuid,
        }


def resolve_auth_placeholders(argv: list[str], session: PlayerSession) -> list[str]:
    variables = session.variables()
    return [substitute(argument, variables) for argument in argv]


def mask_secrets(argv: list[str], session: PlayerSession) -> list[str]:
    """Copy of argv safe to log: arguments equal to the access token are replaced."""
    return [REDACTED if argument == session.access_token else argument for argument in argv]


def parse_environment_overlay(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines; the first ``=`` splits, later keys win.

    Lines without ``=`` or with an empty key are ignored.
    """
    overlay: dict[str, str] = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        overlay[key] = value
    return overlay


def build_environment(overlay_text: str, base: Mapping[str, str] | None = None) -> dict[str, str]:
    """The inherited environment with the instance overlay applied on top."""
    environment = dict(os.environ if base is None else base)
    environment.update(parse_environment_overlay(overlay_text))
    return environment


class CrashReporter:
    """Crash hook: gathers crash logs and hands them to a notifier."""

    def __init__(self, instances: InstanceService, notify: Callable[[str, int, list[Path]], None] | None = None) -> None:
        self._instances = instances
        self._notify = notify

    def __call__(self, instance_id: str, exit_code: int, crash_reports_dir: Path | None) -> None:
        instance = self._instances.get(instance_id)
        logs = collect_crash_logs(instance.game_directory) if instance is not None else []
        log.error(
            "Game crashed",
            instance_id=instance_id,
            exit_code=exit_code,
            crash_logs=[str(p) for p in logs],
        )
        if self._notify is not None:
            self._notify(instance_id, exit_code, logs)


class GameLauncherService:
    """Builds and spawns the runtime for an instance."""

    def __init__(
        self,
        builder: LaunchCommandBuilder,
        supervisor: ProcessSupervisor,
        instances: InstanceService,
        filesystem: FileSystemService,
    ) -> None:
        self._builder = builder
        self._supervisor = supervisor
        self._instances = instances
        self._filesystem = filesystem

    def manifest_path(self, version_id: str) -> Path:
        return self._builder.working_directory / "versions" / version_id / f"{version_id}.json"

    async def load_manifest(self, version_id: str) -> VersionManifest:
        data = await self._filesystem.load_json(self.manifest_path(version_id))
        return parse_manifest(data)

    async def prepare(
        self,
        instance: GameInstance,
        session: PlayerSession | None = None,
    ) -> tuple[str, list[str], dict[str, str]]:
        """Executable, resolved argv and environment for the instance.

        Raises:
            ConfigurationError: On a missing runtime jar or Java path
            FileSystemError / ValidationError: On an unreadable manifest
        """
        manifest = await self.load_manifest(instance.game_version)
        argv = self._builder.build(manifest, instance)
        executable = self._builder.resolve_java_path(instance)
        session = session or PlayerSession.offline()
        resolved = resolve_auth_placeholders(argv, session)
        log.debug("Resolved launch command", instance_id=instance.id, argv=mask_secrets(resolved, session))
        return executable, resolved, build_environment(instance.environment_variables)

    async def launch(self, instance_id: str, session: PlayerSession | None = None) -> asyncio.subprocess.Process:
        """Launch the instance; command construction errors abort before any spawn."""
        instance = self._instances.require(instance_id)
        executable, argv, environment = await self.prepare(instance, session)
        self._filesystem.ensure_directory(instance.game_directory)

        process = await self._supervisor.spawn(
            instance.id,
            executable,
            argv,
            env=environment,
            cwd=instance.game_directory,
            crash_reports_dir=instance.crash_reports_directory,
        )
        self._instances.record_last_played(instance.id)
        return process

    def stop(self, instance_id: str) -> bool:
        return self._supervisor.stop(instance_id)
