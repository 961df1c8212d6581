"""Tests for instance persistence, creation and cascading delete."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

from launcher_core.models import GameInstance, LoaderKind
from launcher_core.services.cancellation import CancellationToken
from launcher_core.services.content_cache import InstalledHashIndex
from launcher_core.services.errors import OperationCancelledError, ValidationError
from launcher_core.services.filesystem import FileSystemService
from launcher_core.services.instances import INSTANCE_SUBDIRECTORIES, InstanceService, instance_to_record, record_to_instance
from launcher_core.services.process_supervisor import ProcessSupervisor
from launcher_core.services.storage import InMemoryStore


def make_instance(working_directory: Path, instance_id: str = "inst-1", name: str = "survival") -> GameInstance:
    return GameInstance(
        id=instance_id,
        name=name,
        game_version="1.20.1",
        loader=LoaderKind.FABRIC,
        loader_version="0.15.0",
        main_class="net.fabricmc.loader.impl.launch.knot.KnotClient",
        working_directory=working_directory,
        extra_classpath=["/x.jar"],
        jvm_arguments="-XX:+UseG1GC",
        environment_variables="A=1",
        xmx=2048,
        created_at=datetime(2024, 5, 1, 12, 0, 0),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def supervisor() -> ProcessSupervisor:
    return ProcessSupervisor()


@pytest.fixture
def service(tmp_path: Path, store: InMemoryStore, supervisor: ProcessSupervisor) -> InstanceService:
    return InstanceService(
        working_directory=tmp_path,
        store=store,
        filesystem=FileSystemService(tmp_path),
        installed_hashes=InstalledHashIndex(store),
        supervisor=supervisor,
    )


class TestInstanceRecords:
    """Record conversion and lookup."""

    def test_record_round_trip(self, tmp_path: Path) -> None:
        instance = make_instance(tmp_path)
        assert record_to_instance(instance_to_record(instance)) == instance

    def test_malformed_record(self) -> None:
        with pytest.raises(ValidationError):
            record_to_instance({"id": "x"})

    def test_list_skips_malformed_records(self, service: InstanceService, store: InMemoryStore, tmp_path: Path) -> None:
        service.save(make_instance(tmp_path))
        store.put(service.partition, "broken", {"id": "broken"})
        assert [i.id for i in service.list()] == ["inst-1"]

    def test_partition_is_scoped_to_working_directory(self, store: InMemoryStore, tmp_path: Path) -> None:
        def service_for(directory: Path) -> InstanceService:
            return InstanceService(directory, store, FileSystemService(directory), InstalledHashIndex(store), ProcessSupervisor())

        service_for(tmp_path / "one").save(make_instance(tmp_path / "one"))
        assert service_for(tmp_path / "two").list() == []

    def test_require_unknown(self, service: InstanceService) -> None:
        with pytest.raises(ValidationError):
            service.require("ghost")

    def test_record_last_played(self, service: InstanceService, tmp_path: Path) -> None:
        service.save(make_instance(tmp_path))
        when = datetime(2024, 6, 1, 8, 30)
        assert service.record_last_played("inst-1", when).last_played == when
        assert service.get("inst-1").last_played == when


class TestInstanceCreation:
    """Directory materialization and cancellation cleanup."""

    def test_create_materializes_directories(self, service: InstanceService, tmp_path: Path) -> None:
        instance = service.create(make_instance(tmp_path))

        assert instance.game_directory == tmp_path / "profiles" / "survival"
        for subdirectory in INSTANCE_SUBDIRECTORIES:
            assert (instance.game_directory / subdirectory).is_dir()
        assert service.get("inst-1") == instance

    def test_duplicate_id_rejected(self, service: InstanceService, tmp_path: Path) -> None:
        service.create(make_instance(tmp_path))
        with pytest.raises(ValidationError):
            service.create(make_instance(tmp_path, name="other"))

    def test_same_name_rejected(self, service: InstanceService, tmp_path: Path) -> None:
        first = service.create(make_instance(tmp_path))
        save_file = first.game_directory / "saves" / "world" / "level.dat"
        save_file.parent.mkdir(parents=True)
        save_file.write_bytes(b"world")

        with pytest.raises(ValidationError, match="already in use"):
            service.create(make_instance(tmp_path, instance_id="inst-2"))

        assert service.get("inst-2") is None
        assert service.delete("inst-2") is False
        assert save_file.read_bytes() == b"world"

    @pytest.mark.parametrize("name", ["", "   ", ".", "..", "a/b", "../escape", "a\\b"])
    def test_invalid_name_rejected(self, service: InstanceService, tmp_path: Path, name: str) -> None:
        with pytest.raises(ValidationError):
            service.create(make_instance(tmp_path, name=name))
        assert service.get("inst-1") is None
        assert not (tmp_path / "profiles").exists()

    def test_cancelled_create_leaves_nothing(self, service: InstanceService, tmp_path: Path) -> None:
        token = CancellationToken("create")
        token.cancel()

        with pytest.raises(OperationCancelledError):
            service.create(make_instance(tmp_path), token)

        assert service.get("inst-1") is None
        assert not (tmp_path / "profiles" / "survival").exists()

    def test_discard_partial(self, service: InstanceService, store: InMemoryStore, tmp_path: Path) -> None:
        instance = service.create(make_instance(tmp_path))
        InstalledHashIndex(store).add(instance.id, ["aaa"])

        service.discard_partial(instance)

        assert service.get(instance.id) is None
        assert InstalledHashIndex(store).hashes(instance.id) == set()
        assert not instance.game_directory.exists()


class TestInstanceDeletion:
    """Cascading delete and the running-instance guard."""

    def test_delete_cascades(self, service: InstanceService, store: InMemoryStore, tmp_path: Path) -> None:
        instance = service.create(make_instance(tmp_path))
        InstalledHashIndex(store).add(instance.id, ["aaa", "bbb"])

        assert service.delete(instance.id) is True

        assert service.get(instance.id) is None
        assert InstalledHashIndex(store).hashes(instance.id) == set()
        assert not instance.game_directory.exists()

    def test_delete_keep_files(self, service: InstanceService, tmp_path: Path) -> None:
        instance = service.create(make_instance(tmp_path))
        assert service.delete(instance.id, remove_files=False) is True
        assert instance.game_directory.exists()

    def test_delete_leaves_other_instances(self, service: InstanceService, tmp_path: Path) -> None:
        doomed = service.create(make_instance(tmp_path))
        kept = service.create(make_instance(tmp_path, instance_id="inst-2", name="creative"))

        assert service.delete(doomed.id) is True

        assert not doomed.game_directory.exists()
        for subdirectory in INSTANCE_SUBDIRECTORIES:
            assert (kept.game_directory / subdirectory).is_dir()

    def test_delete_never_removes_outside_profiles(self, service: InstanceService, tmp_path: Path) -> None:
        marker = tmp_path / "keep.txt"
        marker.write_text("x")
        service.save(make_instance(tmp_path, name=".."))

        assert service.delete("inst-1") is True

        assert service.get("inst-1") is None
        assert marker.exists()

    def test_delete_unknown(self, service: InstanceService) -> None:
        assert service.delete("ghost") is False

    @pytest.mark.asyncio
    async def test_running_instance_cannot_be_deleted(
        self,
        service: InstanceService,
        supervisor: ProcessSupervisor,
        tmp_path: Path,
    ) -> None:
        instance = service.create(make_instance(tmp_path))
        await supervisor.spawn(instance.id, sys.executable, ["-c", "import time; time.sleep(30)"])

        with pytest.raises(ValidationError):
            service.delete(instance.id)
        assert service.get(instance.id) is not None

        supervisor.stop(instance.id)
        await supervisor.wait(instance.id)
        assert service.delete(instance.id) is True
