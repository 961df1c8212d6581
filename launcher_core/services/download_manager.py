"""Download manager: verified, concurrency-bounded fetches and batch aggregation."""

import asyncio
import hashlib
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
import structlog

from ..models import DownloadProgress
from .cancellation import CancellationToken
from .errors import (
    AppError,
    ErrorHandlingService,
    FileSystemError,
    OperationCancelledError,
    ValidationError,
)
from .http_client import HttpClientService
from .limiter import ConcurrencyLimiter

log = structlog.stdlib.get_logger()

ProgressCallback = Callable[[DownloadProgress], None]


class DownloadStatus(Enum):
    """Status of a download task."""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DownloadRequest:
    """One file to fetch as part of a batch."""
    url: str
    sha1: str
    destination: Path
    required: bool = True
    label: str = ""


@dataclass
class DownloadTask:
    """Tracks a single download of a batch."""
    request: DownloadRequest
    task_id: str
    status: DownloadStatus = DownloadStatus.PENDING
    reused: bool = False  # File was already present with the expected hash
    error: AppError | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == DownloadStatus.COMPLETED


@dataclass
class BatchReport:
    """Per-item outcome of a batch and its aggregate verdict."""
    tasks: list[DownloadTask] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """True iff not cancelled and every required item completed."""
        return not self.cancelled and all(t.succeeded for t in self.tasks if t.request.required)

    @property
    def failed_required(self) -> list[DownloadTask]:
        return [t for t in self.tasks if t.request.required and not t.succeeded]

    @property
    def failed_optional(self) -> list[DownloadTask]:
        return [t for t in self.tasks if not t.request.required and not t.succeeded]

    @property
    def written_files(self) -> list[Path]:
        """Files this batch created (excludes files that were already in place)."""
        return [t.request.destination for t in self.tasks if t.succeeded and not t.reused]


def calculate_file_hash(path: Path, algorithm: str = "sha1", chunk_size: int = 65536) -> str:
    """Hex digest of a file's bytes."""
    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


class DownloadManagerService:
    """Fetches files under the concurrency limiter and verifies them by SHA-1."""

    def __init__(
        self,
        http_client: HttpClientService,
        limiter: ConcurrencyLimiter,
        error_service: ErrorHandlingService | None = None,
    ) -> None:
        self._http_client = http_client
        self._limiter = limiter
        self._errors = error_service or ErrorHandlingService()
        log.info("Download manager service initialized", concurrency=limiter.bound)

    async def _matches(self, path: Path, expected_hash: str) -> bool:
        if not path.is_file():
            return False
        actual = await asyncio.to_thread(calculate_file_hash, path)
        return actual == expected_hash.lower()

    async def fetch(
        self,
        url: str,
        expected_hash: str,
        destination: Path,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Download ``url`` to ``destination`` and verify its SHA-1.

        An existing destination with the expected hash is reused without
        network I/O. The body is streamed to a temporary sibling file and
        moved into place only after verification.

        Raises:
            ValidationError: On hash mismatch (the partial file is removed)
            ResourceError: If the server reports the file missing
            NetworkError: On transport failure
            FileSystemError: If the file cannot be written
            OperationCancelledError: If the token is cancelled
        """
        path, _ = await self._fetch(url, expected_hash, destination, cancel_token)
        return path

    async def _fetch(
        self,
        url: str,
        expected_hash: str,
        destination: Path,
        cancel_token: CancellationToken | None,
    ) -> tuple[Path, bool]:
        async with self._limiter:
            if await self._matches(destination, expected_hash):
                log.debug("Existing file matches hash, skipping download", path=str(destination))
                return destination, True

            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            part_path = destination.with_name(f".{destination.name}.{uuid.uuid4().hex[:8]}.part")
            try:
                size = await self._http_client.download_file(url, part_path, cancel_token)
                actual = await asyncio.to_thread(calculate_file_hash, part_path)
                if actual != expected_hash.lower():
                    raise ValidationError(
                        f"SHA-1 mismatch for {destination.name}",
                        field="sha1",
                        value=actual,
                        constraints=[f"sha1 == {expected_hash.lower()}"],
                    )
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                part_path.replace(destination)
            except (httpx.HTTPError, OSError) as e:
                raise self._errors.to_app_error(
                    e, "fetch", "download_manager", {"url": url, "path": str(destination)}
                ) from e
            finally:
                part_path.unlink(missing_ok=True)

        log.info("Download verified", url=url, path=str(destination), size=size)
        return destination, False

    async def download_batch(
        self,
        requests: list[DownloadRequest],
        cancel_token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchReport:
        """Run all requests concurrently and aggregate their outcomes.

        Cancelling the token stops in-flight transfers promptly; their tasks
        are reported as cancelled. The caller owns rollback of files listed
        in ``report.written_files``.
        """
        report = BatchReport(tasks=[DownloadTask(request=r, task_id=str(uuid.uuid4())) for r in requests])
        completed = failed = 0

        def _report_progress(task: DownloadTask) -> None:
            nonlocal completed, failed
            if task.succeeded:
                completed += 1
            else:
                failed += 1
            if on_progress is not None:
                on_progress(DownloadProgress(
                    completed=completed,
                    failed=failed,
                    total=len(report.tasks),
                    current_file=task.request.destination.name,
                ))

        async def _run(task: DownloadTask) -> None:
            task.status = DownloadStatus.DOWNLOADING
            try:
                _, task.reused = await self._fetch(
                    task.request.url, task.request.sha1, task.request.destination, cancel_token
                )
                task.status = DownloadStatus.COMPLETED
            except OperationCancelledError as e:
                task.status = DownloadStatus.CANCELLED
                task.error = e
            except asyncio.CancelledError:
                task.status = DownloadStatus.CANCELLED
                task.error = OperationCancelledError(operation="download")
                raise
            except AppError as e:
                task.status = DownloadStatus.FAILED
                task.error = e
                log.warning(
                    "Download failed",
                    url=task.request.url,
                    required=task.request.required,
                    category=e.category.value,
                    error=e.message,
                )
            finally:
                _report_progress(task)

        runners = [asyncio.create_task(_run(task)) for task in report.tasks]
        watcher = asyncio.create_task(cancel_token.wait()) if cancel_token is not None else None
        try:
            if watcher is not None:
                pending = set(runners)
                while pending:
                    done, pending = await asyncio.wait(pending | {watcher}, return_when=asyncio.FIRST_COMPLETED)
                    if watcher in done:
                        pending.discard(watcher)
                        for runner in pending:
                            runner.cancel()
                        break
                    pending.discard(watcher)
            await asyncio.gather(*runners, return_exceptions=True)
        finally:
            if watcher is not None and not watcher.done():
                watcher.cancel()

        report.cancelled = cancel_token is not None and cancel_token.cancelled
        for task in report.tasks:
            # Runners cancelled before their first step never recorded a status
            if task.status in (DownloadStatus.PENDING, DownloadStatus.DOWNLOADING):
                task.status = DownloadStatus.CANCELLED
        log.info(
            "Download batch finished",
            total=len(report.tasks),
            success=report.success,
            failed_required=len(report.failed_required),
            failed_optional=len(report.failed_optional),
            cancelled=report.cancelled,
        )
        return report
