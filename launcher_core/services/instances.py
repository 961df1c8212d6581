"""Instance records: persistence, directory materialization and cascading delete."""

import os
from datetime import datetime
from pathlib import Path

import structlog

from ..models import GameInstance, LoaderKind
from .cancellation import CancellationToken
from .content_cache import InstalledHashIndex
from .errors import AppError, ValidationError
from .filesystem import FileSystemService
from .process_supervisor import ProcessSupervisor
from .storage import KeyValueStore, Record

log = structlog.stdlib.get_logger()

INSTANCE_SUBDIRECTORIES = ("mods", "resourcepacks", "shaderpacks", "saves", "logs", "crash-reports")


def validate_instance_name(name: str) -> None:
    """Require a name that maps to exactly one directory below ``profiles/``.

    Raises:
        ValidationError: For an empty name, ``.``, ``..`` or a name containing a path separator
    """
    separators = {"/", "\\", os.sep} | ({os.altsep} if os.altsep else set())
    if not name.strip() or name in (".", "..") or "\0" in name or any(s in name for s in separators):
        raise ValidationError(
            f"Invalid instance name: {name!r}",
            field="name",
            value=name,
            constraints=["non-empty", "no path separators", "not . or .."],
        )


def _owns_directory(instance: GameInstance) -> bool:
    try:
        validate_instance_name(instance.name)
    except ValidationError:
        return False
    return True

def instance_to_record(instance: GameInstance) -> Record:
    return {
        "id": instance.id,
        "name": instance.name,
        "game_version": instance.game_version,
        "loader": instance.loader.value,
        "loader_version": instance.loader_version,
        "main_class": instance.main_class,
        "working_directory": str(instance.working_directory),
        "asset_index": instance.asset_index,
        "extra_classpath": list(instance.extra_classpath),
        "jvm_arguments": instance.jvm_arguments,
        "game_arguments": list(instance.game_arguments),
        "environment_variables": instance.environment_variables,
        "xms": instance.xms,
        "xmx": instance.xmx,
        "java_path": instance.java_path,
        "created_at": instance.created_at.isoformat(),
        "last_played": instance.last_played.isoformat() if instance.last_played else None,
    }


def record_to_instance(record: Record) -> GameInstance:
    """Rebuild an instance; raises ValidationError on a malformed record."""
    try:
        return GameInstance(
            id=record["id"],
            name=record["name"],
            game_version=record["game_version"],
            loader=LoaderKind(record.get("loader", "vanilla")),
            loader_version=record.get("loader_version", ""),
            main_class=record["main_class"],
            working_directory=Path(record["working_directory"]),
            asset_index=record.get("asset_index", ""),
            extra_classpath=list(record.get("extra_classpath", [])),
            jvm_arguments=record.get("jvm_arguments", ""),
            game_arguments=list(record.get("game_arguments", [])),
            environment_variables=record.get("environment_variables", ""),
            xms=int(record.get("xms", 0)),
            xmx=int(record.get("xmx", 0)),
            java_path=record.get("java_path", ""),
            created_at=datetime.fromisoformat(record["created_at"]) if record.get("created_at") else datetime.now(),
            last_played=datetime.fromisoformat(record["last_played"]) if record.get("last_played") else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed instance record: {e}", field="instance", value=record.get("id")) from e


class InstanceService:
    """Owns the instance records stored under one working path."""

    def __init__(
        self,
        working_directory: Path,
        store: KeyValueStore,
        filesystem: FileSystemService,
        installed_hashes: InstalledHashIndex,
        supervisor: ProcessSupervisor,
    ) -> None:
        self.working_directory = working_directory
        self._store = store
        self._filesystem = filesystem
        self._installed_hashes = installed_hashes
        self._supervisor = supervisor

    @property
    def partition(self) -> str:
        return f"instances:{self.working_directory}"

    def get(self, instance_id: str) -> GameInstance | None:
        record = self._store.get(self.partition, instance_id)
        return record_to_instance(record) if record is not None else None

    def require(self, instance_id: str) -> GameInstance:
        """Like get, but raises ValidationError for an unknown id."""
        instance = self.get(instance_id)
        if instance is None:
            raise ValidationError(f"Unknown instance: {instance_id}", field="instance_id", value=instance_id)
        return instance

    def list(self) -> list[GameInstance]:
        """All instances under this working path; malformed records are skipped."""
        instances = []
        for instance_id, record in self._store.all(self.partition).items():
            try:
                instances.append(record_to_instance(record))
            except ValidationError as e:
                log.warning("Skipping malformed instance record", instance_id=instance_id, error=e.message)
        return sorted(instances, key=lambda i: i.created_at)

    def save(self, instance: GameInstance) -> None:
        self._store.put(self.partition, instance.id, instance_to_record(instance))

    def create(self, instance: GameInstance, cancel_token: CancellationToken | None = None) -> GameInstance:
        """Materialize the instance directory tree and persist the record.

        If creation fails or is cancelled, a directory created here is
        removed before the error propagates.
        """
        if self.get(instance.id) is not None:
            raise ValidationError(f"Instance already exists: {instance.id}", field="instance_id", value=instance.id)
        validate_instance_name(instance.name)
        if instance.game_directory.exists():
            raise ValidationError(
                f"Instance name already in use: {instance.name}",
                field="name",
                value=instance.name,
            )

        created_root = False
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            created_root = self._filesystem.ensure_directory(instance.game_directory)
            for subdirectory in INSTANCE_SUBDIRECTORIES:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                self._filesystem.ensure_directory(instance.game_directory / subdirectory)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self.save(instance)
        except AppError:
            if created_root:
                self._filesystem.remove_tree(instance.game_directory)
            raise

        log.info("Instance created", instance_id=instance.id, name=instance.name, game_version=instance.game_version)
        return instance

    def discard_partial(self, instance: GameInstance) -> None:
        """Undo a create whose follow-up work (e.g. an install) was cancelled."""
        self._store.delete(self.partition, instance.id)
        self._installed_hashes.clear(instance.id)
        if _owns_directory(instance):
            self._filesystem.remove_tree(instance.game_directory)
        log.info("Partially created instance discarded", instance_id=instance.id)

    def record_last_played(self, instance_id: str, when: datetime | None = None) -> GameInstance:
        instance = self.require(instance_id)
        record = instance_to_record(instance)
        record["last_played"] = (when or datetime.now()).isoformat()
        self._store.put(self.partition, instance_id, record)
        return record_to_instance(record)

    def delete(self, instance_id: str, remove_files: bool = True) -> bool:
        """Delete an instance and every record keyed by its id.

        Raises:
            ValidationError: If the instance is currently running
        """
        if self._supervisor.is_running(instance_id):
            raise ValidationError(
                "Cannot delete a running instance; stop it first",
                field="instance_id",
                value=instance_id,
            )

        instance = self.get(instance_id)
        if instance is None:
            return False

        self._store.delete(self.partition, instance_id)
        self._installed_hashes.clear(instance_id)
        self._supervisor.forget(instance_id)
        if remove_files and not _owns_directory(instance):
            log.warning("Not removing files for instance with invalid name", instance_id=instance_id, name=instance.name)
        elif remove_files and not self._filesystem.remove_tree(instance.game_directory):
            log.warning("Instance files could not be fully removed", instance_id=instance_id)

        log.info("Instance deleted", instance_id=instance_id)
        return True
