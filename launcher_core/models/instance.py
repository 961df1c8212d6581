"""Game instance data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class LoaderKind(Enum):
    """Runtime-modification framework an instance is built on."""
    VANILLA = "vanilla"
    FABRIC = "fabric"
    FORGE = "forge"
    QUILT = "quilt"
    NEOFORGE = "neoforge"


@dataclass(frozen=True)
class GameInstance:
    """A configured, launchable game instance."""
    id: str
    name: str
    game_version: str
    loader: LoaderKind
    main_class: str
    working_directory: Path
    loader_version: str = ""
    asset_index: str = ""
    extra_classpath: list[str] = field(default_factory=list)
    jvm_arguments: str = ""
    game_arguments: list[str] = field(default_factory=list)
    environment_variables: str = ""
    xms: int = 0  # 0 falls back to the configured default
    xmx: int = 0
    java_path: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_played: datetime | None = None

    @property
    def game_directory(self) -> Path:
        """Per-instance game directory (saves, mods, crash reports)."""
        return self.working_directory / "profiles" / self.name

    @property
    def crash_reports_directory(self) -> Path:
        """Directory the runtime writes crash reports into."""
        return self.game_directory / "crash-reports"
