"""Process lifecycle data models."""

import asyncio
from dataclasses import dataclass
from enum import Enum


class ProcessState(Enum):
    """Lifecycle state of an instance's runtime process."""
    NOT_RUNNING = "not_running"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING_MANUAL = "stopping_manual"
    EXITING_NATURAL = "exiting_natural"


class ExitClassification(Enum):
    """How a finished process is classified."""
    NORMAL = "normal"
    CRASHED = "crashed"
    STOPPED_BY_USER = "stopped_by_user"


@dataclass
class ProcessRecord:
    """Registry entry for one instance id."""
    instance_id: str
    state: ProcessState = ProcessState.STARTING
    handle: asyncio.subprocess.Process | None = None
    running: bool = False
    manually_stopped: bool = False
    pid: int | None = None


@dataclass(frozen=True)
class ExitOutcome:
    """Result delivered once a supervised process has exited."""
    instance_id: str
    exit_code: int
    classification: ExitClassification
    pid: int | None = None
