"""Tests for launch orchestration: credentials, environment and spawning."""

import json
import uuid
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from launcher_core.models import GameInstance, LoaderKind
from launcher_core.services.content_cache import InstalledHashIndex
from launcher_core.services.errors import ConfigurationError, FileSystemError
from launcher_core.services.filesystem import FileSystemService
from launcher_core.services.instances import InstanceService
from launcher_core.services.launch_command import LaunchCommandBuilder
from launcher_core.services.launcher import (
    CrashReporter,
    GameLauncherService,
    PlayerSession,
    build_environment,
    mask_secrets,
    parse_environment_overlay,
    resolve_auth_placeholders,
)
from launcher_core.services.library_filter import PlatformInfo
from launcher_core.services.logging import REDACTED
from launcher_core.services.process_supervisor import ProcessSupervisor
from launcher_core.services.storage import InMemoryStore

MANIFEST = {
    "id": "1.20.1",
    "mainClass": "net.minecraft.client.main.Main",
    "assetIndex": {"id": "5"},
    "arguments": {
        "jvm": ["-cp", "${classpath}"],
        "game": ["--username", "${auth_player_name}", "--uuid", "${auth_uuid}", "--accessToken", "${auth_access_token}"],
    },
    "libraries": [],
}


class TestPlayerSession:
    """Offline sessions and placeholder resolution."""

    def test_offline_uuid_is_name_based_v3(self) -> None:
        session = PlayerSession.offline("Steve")
        parsed = uuid.UUID(session.uuid)
        assert parsed.version == 3
        assert parsed.variant == uuid.RFC_4122
        assert PlayerSession.offline("Steve").uuid == session.uuid
        assert PlayerSession.offline("Alex").uuid != session.uuid
        assert session.access_token == "0"

    def test_resolve_auth_placeholders(self) -> None:
        session = PlayerSession(name="Steve", uuid="abc", access_token="tok", xuid="x1")
        argv = ["--username", "${auth_player_name}", "--accessToken", "${auth_access_token}", "${other}"]
        assert resolve_auth_placeholders(argv, session) == ["--username", "Steve", "--accessToken", "tok", "${other}"]

    def test_mask_secrets_replaces_only_exact_token(self) -> None:
        session = PlayerSession(name="Steve", uuid="abc", access_token="0")
        masked = mask_secrets(["--accessToken", "0", "-Xmx4096M"], session)
        assert masked == ["--accessToken", REDACTED, "-Xmx4096M"]


class TestEnvironment:
    """Instance environment overlay parsing."""

    def test_parse_overlay(self) -> None:
        text = "JAVA_TOOL_OPTIONS=-Dfoo=bar\n  no equals here\n=empty key\n MESA_GL_VERSION_OVERRIDE = 4.5\nA=1\nA=2"
        assert parse_environment_overlay(text) == {
            "JAVA_TOOL_OPTIONS": "-Dfoo=bar",
            "MESA_GL_VERSION_OVERRIDE": " 4.5",
            "A": "2",
        }

    def test_build_environment_overlays_base(self) -> None:
        environment = build_environment("PATH=/custom\nNEW=1", base={"PATH": "/usr/bin", "HOME": "/home/steve"})
        assert environment == {"PATH": "/custom", "HOME": "/home/steve", "NEW": "1"}


@pytest.fixture
def harness(tmp_path: Path):
    jar = tmp_path / "versions" / "1.20.1" / "1.20.1.jar"
    jar.parent.mkdir(parents=True)
    jar.write_bytes(b"jar")
    (tmp_path / "versions" / "1.20.1" / "1.20.1.json").write_text(json.dumps(MANIFEST), encoding="utf-8")

    store = InMemoryStore()
    filesystem = FileSystemService(tmp_path)
    supervisor = MagicMock(spec=ProcessSupervisor)
    supervisor.spawn = AsyncMock(return_value=MagicMock(pid=4242))
    instances = InstanceService(tmp_path, store, filesystem, InstalledHashIndex(store), ProcessSupervisor())
    builder = LaunchCommandBuilder(
        working_directory=tmp_path,
        platform=PlatformInfo(os_name="linux", arch="x86_64"),
        launcher_name="launcher-core",
        launcher_version="0.1.0",
        default_xms=512,
        default_xmx=4096,
        default_java_path="/usr/bin/java",
    )
    instance = GameInstance(
        id="inst-1",
        name="survival",
        game_version="1.20.1",
        loader=LoaderKind.VANILLA,
        main_class="",
        working_directory=tmp_path,
        environment_variables="GAME_MODE=1",
    )
    instances.save(instance)
    return GameLauncherService(builder, supervisor, instances, filesystem), supervisor, instances, instance


class TestGameLauncherService:
    """Command preparation and spawn hand-off."""

    @pytest.mark.asyncio
    async def test_launch_spawns_with_resolved_credentials(self, harness) -> None:
        launcher, supervisor, instances, instance = harness
        session = PlayerSession(name="Steve", uuid="uuid-1", access_token="secret")

        process = await launcher.launch("inst-1", session)

        assert process.pid == 4242
        call = supervisor.spawn.await_args
        instance_id, executable, argv = call.args
        assert instance_id == "inst-1"
        assert executable == "/usr/bin/java"
        assert argv[-6:] == ["--username", "Steve", "--uuid", "uuid-1", "--accessToken", "secret"]
        assert "net.minecraft.client.main.Main" in argv
        assert call.kwargs["env"]["GAME_MODE"] == "1"
        assert call.kwargs["cwd"] == instance.game_directory
        assert call.kwargs["crash_reports_dir"] == instance.crash_reports_directory
        assert instance.game_directory.is_dir()
        assert instances.get("inst-1").last_played is not None

    @pytest.mark.asyncio
    async def test_offline_session_by_default(self, harness) -> None:
        launcher, supervisor, _, instance = harness

        _, argv, _ = await launcher.prepare(instance)

        assert argv[argv.index("--username") + 1] == "Player"
        assert argv[argv.index("--accessToken") + 1] == "0"

    @pytest.mark.asyncio
    async def test_missing_manifest_aborts_before_spawn(self, harness, tmp_path: Path) -> None:
        launcher, supervisor, instances, instance = harness
        (tmp_path / "versions" / "1.20.1" / "1.20.1.json").unlink()

        with pytest.raises(FileSystemError):
            await launcher.launch("inst-1")
        supervisor.spawn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_jar_aborts_before_spawn(self, harness, tmp_path: Path) -> None:
        launcher, supervisor, _, _ = harness
        (tmp_path / "versions" / "1.20.1" / "1.20.1.jar").unlink()

        with pytest.raises(ConfigurationError):
            await launcher.launch("inst-1")
        supervisor.spawn.assert_not_awaited()

    def test_stop_delegates_to_supervisor(self, harness) -> None:
        launcher, supervisor, _, _ = harness
        supervisor.stop.return_value = True
        assert launcher.stop("inst-1") is True
        supervisor.stop.assert_called_once_with("inst-1")


def test_crash_reporter_collects_logs(tmp_path: Path) -> None:
    store = InMemoryStore()
    instances = InstanceService(tmp_path, store, FileSystemService(tmp_path), InstalledHashIndex(store), ProcessSupervisor())
    instance = GameInstance(
        id="inst-1",
        name="survival",
        game_version="1.20.1",
        loader=LoaderKind.VANILLA,
        main_class="net.minecraft.client.main.Main",
        working_directory=tmp_path,
    )
    instances.create(instance)
    report = instance.crash_reports_directory / "crash-1.txt"
    report.write_text("boom")
    notifications: list[tuple[str, int, list[Path]]] = []

    CrashReporter(instances, lambda *args: notifications.append(args))("inst-1", 1, instance.crash_reports_directory)

    assert notifications == [("inst-1", 1, [report])]
