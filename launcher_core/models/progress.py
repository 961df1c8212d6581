"""Progress tracking data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class DownloadProgress:
    """Progress information for a batch of downloads."""
    completed: int
    failed: int
    total: int
    current_file: str = ""

    @property
    def finished(self) -> bool:
        return self.completed + self.failed >= self.total
