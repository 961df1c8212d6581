"""Spawns, tracks and terminates game runtime processes and classifies their exits."""

import asyncio
import inspect
import subprocess
import threading
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import psutil
import structlog

from ..models import ExitClassification, ExitOutcome, ProcessRecord, ProcessState
from .crash_detection import is_crash
from .errors import LaunchError

log = structlog.stdlib.get_logger()

CrashHook = Callable[[str, int, Path | None], Awaitable[None] | None]
ExitCallback = Callable[[ExitOutcome], None]

DEFAULT_STOP_TIMEOUT = 10.0


class ProcessSupervisor:
    """Single source of truth for "is this instance running".

    One supervisor is constructed at start-up and passed to every caller.
    Its registry (records keyed by instance id, each carrying the handle,
    the running flag and the manually-stopped flag) is guarded by one lock
    that is never held across an ``await``, so ``is_running`` and ``stop``
    are safe to call from any thread.

    Exit handling runs once per process in a watcher task created in the
    same synchronous step that registers the process, so no exit can be
    missed. The watcher reads the manually-stopped flag: if set, the exit
    is STOPPED_BY_USER and crash analysis is skipped; otherwise the crash
    heuristic decides between CRASHED and NORMAL and a crash invokes the
    crash hook, whose failures are logged and never change the outcome.
    With ``enable_crash_analysis`` off the classification is unchanged and
    only the crash hook is skipped.
    """

    def __init__(
        self,
        crash_hook: CrashHook | None = None,
        on_exit: ExitCallback | None = None,
        enable_crash_analysis: bool = True,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
    ) -> None:
        self._crash_hook = crash_hook
        self._on_exit = on_exit
        self._enable_crash_analysis = enable_crash_analysis
        self._stop_timeout = stop_timeout
        self._lock = threading.Lock()
        self._records: dict[str, ProcessRecord] = {}
        self._watchers: dict[str, asyncio.Task[ExitOutcome]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    async def spawn(
        self,
        instance_id: str,
        executable: str,
        argv: list[str],
        env: dict[str, str] | None = None,
        cwd: Path | None = None,
        crash_reports_dir: Path | None = None,
        stdout: int | None = None,
        stderr: int | None = None,
    ) -> asyncio.subprocess.Process:
        """Start the runtime for an instance and register it as RUNNING.

        Raises:
            LaunchError: If the instance already has a live process, or the
                process cannot be created (the STARTING record is rolled back)
        """
        self._loop = asyncio.get_running_loop()
        record = ProcessRecord(instance_id=instance_id, state=ProcessState.STARTING)
        with self._lock:
            if instance_id in self._records:
                raise LaunchError(
                    "The instance is already running",
                    instance_id=instance_id,
                    executable=executable,
                )
            self._records[instance_id] = record

        log.info("Spawning process", instance_id=instance_id, executable=executable, cwd=str(cwd) if cwd else None)
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *argv,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdout=stdout,
                stderr=stderr,
            )
        except BaseException as e:
            with self._lock:
                if self._records.get(instance_id) is record:
                    del self._records[instance_id]
            if isinstance(e, (OSError, ValueError, subprocess.SubprocessError)):
                log.error("Failed to spawn process", instance_id=instance_id, error=str(e))
                raise LaunchError(
                    f"Failed to start the game process: {e}",
                    instance_id=instance_id,
                    executable=executable,
                    original_error=e,
                ) from e
            raise

        # No await between creation and watcher registration
        watcher = asyncio.create_task(self._watch(record, process, crash_reports_dir))
        with self._lock:
            record.handle = process
            record.pid = process.pid
            record.running = True
            self._watchers[instance_id] = watcher
            stop_requested = record.manually_stopped
            record.state = ProcessState.STOPPING_MANUAL if stop_requested else ProcessState.RUNNING

        log.info("Process started", instance_id=instance_id, pid=process.pid)
        if stop_requested:
            log.info("Honouring stop requested during start-up", instance_id=instance_id)
            self._signal_termination(instance_id, process)
        return process

    def stop(self, instance_id: str) -> bool:
        """Request termination without waiting for the exit.

        The manually-stopped flag is set before the signal is sent. A stop
        during STARTING is honoured as soon as the process is registered.
        Returns False if nothing is registered for the id.
        """
        with self._lock:
            record = self._records.get(instance_id)
            if record is None:
                return False
            record.manually_stopped = True
            if record.handle is None:
                log.info("Stop requested while starting", instance_id=instance_id)
                return True
            record.state = ProcessState.STOPPING_MANUAL
            process = record.handle

        log.info("Stopping process", instance_id=instance_id, pid=process.pid)
        self._signal_termination(instance_id, process)
        return True

    def _signal_termination(self, instance_id: str, process: asyncio.subprocess.Process) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            log.debug("Process already exited before terminate", instance_id=instance_id)
            return
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._schedule_kill, instance_id, process)

    def _schedule_kill(self, instance_id: str, process: asyncio.subprocess.Process) -> None:
        task = asyncio.get_running_loop().create_task(self._kill_after_timeout(instance_id, process))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _kill_after_timeout(self, instance_id: str, process: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(process.wait()), timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            log.warning("Process ignored terminate, killing", instance_id=instance_id, pid=process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass

    async def _watch(
        self,
        record: ProcessRecord,
        process: asyncio.subprocess.Process,
        crash_reports_dir: Path | None,
    ) -> ExitOutcome:
        exit_code = await process.wait()
        instance_id = record.instance_id

        with self._lock:
            manually_stopped = record.manually_stopped
            if not manually_stopped:
                record.state = ProcessState.EXITING_NATURAL

        if manually_stopped:
            classification = ExitClassification.STOPPED_BY_USER
        else:
            crashed = await asyncio.to_thread(is_crash, exit_code, crash_reports_dir)
            classification = ExitClassification.CRASHED if crashed else ExitClassification.NORMAL
            # The setting only controls crash log collection
            if crashed and self._enable_crash_analysis:
                await self._run_crash_hook(instance_id, exit_code, crash_reports_dir)

        with self._lock:
            record.running = False
            record.handle = None
            record.manually_stopped = False
            record.state = ProcessState.NOT_RUNNING
            if self._records.get(instance_id) is record:
                del self._records[instance_id]

        outcome = ExitOutcome(
            instance_id=instance_id,
            exit_code=exit_code,
            classification=classification,
            pid=process.pid,
        )
        log.info(
            "Process exited",
            instance_id=instance_id,
            exit_code=exit_code,
            classification=classification.value,
        )
        if self._on_exit is not None:
            try:
                self._on_exit(outcome)
            except Exception as e:
                log.error("Exit callback failed", instance_id=instance_id, error=str(e), exc_info=True)
        return outcome

    async def _run_crash_hook(self, instance_id: str, exit_code: int, crash_reports_dir: Path | None) -> None:
        if self._crash_hook is None:
            return
        try:
            result = self._crash_hook(instance_id, exit_code, crash_reports_dir)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log.error("Crash hook failed", instance_id=instance_id, error=str(e), exc_info=True)

    async def wait(self, instance_id: str) -> ExitOutcome | None:
        """Wait for the instance's current (or most recent) process to exit."""
        with self._lock:
            watcher = self._watchers.get(instance_id)
        if watcher is None:
            return None
        return await asyncio.shield(watcher)

    def is_running(self, instance_id: str) -> bool:
        with self._lock:
            record = self._records.get(instance_id)
            return record is not None and record.running

    def is_manually_stopped(self, instance_id: str) -> bool:
        with self._lock:
            record = self._records.get(instance_id)
            return record is not None and record.manually_stopped

    def state(self, instance_id: str) -> ProcessState:
        with self._lock:
            record = self._records.get(instance_id)
            return record.state if record is not None else ProcessState.NOT_RUNNING

    def handle(self, instance_id: str) -> asyncio.subprocess.Process | None:
        with self._lock:
            record = self._records.get(instance_id)
            return record.handle if record is not None else None

    def running_instances(self) -> list[str]:
        with self._lock:
            return [instance_id for instance_id, record in self._records.items() if record.running]

    def forget(self, instance_id: str) -> bool:
        """Drop bookkeeping for an instance that has no live process."""
        with self._lock:
            record = self._records.get(instance_id)
            if record is not None and (record.running or record.state == ProcessState.STARTING):
                return False
            self._records.pop(instance_id, None)
            self._watchers.pop(instance_id, None)
            return True

    @staticmethod
    def _pid_alive(pid: int) -> bool:
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def sweep(self) -> list[str]:
        """Reconcile the registry with OS-level liveness.

        Recovers from missed exit callbacks; returns the ids whose records
        were cleared because their process no longer exists.
        """
        with self._lock:
            candidates = [(instance_id, record.pid) for instance_id, record in self._records.items()
                          if record.running and record.pid is not None]

        dead = [instance_id for instance_id, pid in candidates if not self._pid_alive(pid)]
        cleared: list[str] = []
        with self._lock:
            for instance_id in dead:
                record = self._records.get(instance_id)
                if record is None or not record.running:
                    continue
                record.running = False
                record.handle = None
                record.manually_stopped = False
                record.state = ProcessState.NOT_RUNNING
                del self._records[instance_id]
                cleared.append(instance_id)

        if cleared:
            log.warning("Swept stale process records", instance_ids=cleared)
        return cleared
