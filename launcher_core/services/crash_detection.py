"""Crash classification of a finished runtime process."""

import os
import time
from pathlib import Path

import structlog

log = structlog.stdlib.get_logger()

CRASH_ARTIFACT_WINDOW_SECONDS = 300
CRASH_REPORTS_DIRNAME = "crash-reports"


def _created_at(stat_result: os.stat_result) -> float:
    # st_birthtime exists on macOS and BSD; elsewhere mtime is the closest proxy
    return getattr(stat_result, "st_birthtime", stat_result.st_mtime)


def has_recent_crash_artifact(
    crash_reports_dir: Path | None,
    now: float | None = None,
    window_seconds: float = CRASH_ARTIFACT_WINDOW_SECONDS,
) -> bool:
    """Whether the directory holds a regular, non-hidden file created within the window.

    A missing or unreadable directory counts as having no artifact.
    """
    if crash_reports_dir is None:
        return False
    now = time.time() if now is None else now

    try:
        with os.scandir(crash_reports_dir) as entries:
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    created = _created_at(entry.stat(follow_symlinks=False))
                except OSError:
                    continue
                if now - created <= window_seconds:
                    return True
    except OSError as e:
        log.debug("Crash reports directory not readable", path=str(crash_reports_dir), error=str(e))
    return False


def is_crash(exit_code: int, crash_reports_dir: Path | None, now: float | None = None) -> bool:
    """Non-zero exit, or a clean exit with a fresh crash report, is a crash."""
    if exit_code != 0:
        return True
    return has_recent_crash_artifact(crash_reports_dir, now=now)


def collect_crash_logs(game_directory: Path, now: float | None = None) -> list[Path]:
    """Log files worth attaching to a crash notification.

    Recent crash reports if any exist, otherwise ``logs/latest.log``.
    """
    now = time.time() if now is None else now
    reports_dir = game_directory / CRASH_REPORTS_DIRNAME
    reports: list[Path] = []
    try:
        for path in reports_dir.iterdir():
            if path.name.startswith(".") or not path.is_file():
                continue
            if now - _created_at(path.stat()) <= CRASH_ARTIFACT_WINDOW_SECONDS:
                reports.append(path)
    except OSError:
        pass
    if reports:
        return sorted(reports)

    latest = game_directory / "logs" / "latest.log"
    return [latest] if latest.is_file() else []
