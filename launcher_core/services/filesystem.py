"""File system service for directory management, JSON documents and cleanup."""

import json
import shutil
from pathlib import Path
from typing import Any

import structlog

from .errors import FileSystemError, ValidationError

log = structlog.stdlib.get_logger()


class FileSystemService:
    """File operations with the launcher's error taxonomy.

    Operations on required output raise FileSystemError; cleanup
    operations are best-effort and report failures only through the log.
    """

    def __init__(self, base_path: Path | None = None) -> None:
        self.base_path = base_path or Path.cwd()
        log.info("File system service initialized", base_path=str(self.base_path))

    async def load_json(self, path: Path) -> dict[str, Any]:
        """Load a JSON object from the given path.

        Raises:
            FileSystemError: If the file is missing or unreadable
            ValidationError: If the file is not a JSON object
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            log.error("Invalid JSON in file", path=str(path), error=str(e))
            raise ValidationError(f"Invalid JSON in file {path.name}: {e}", field=str(path)) from e
        except OSError as e:
            log.error("Failed to read JSON file", path=str(path), error=str(e))
            raise FileSystemError(f"Cannot read {path.name}", original_error=e, path=str(path), operation="read") from e

        if not isinstance(data, dict):
            raise ValidationError(f"Expected JSON object in {path.name}, got {type(data).__name__}", field=str(path))
        log.debug("JSON data loaded", path=str(path))
        return data

    async def save_json(self, data: dict[str, Any], path: Path) -> None:
        """Write JSON atomically via a temporary file and replace."""
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self.ensure_directory(path.parent)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            temp_path.replace(path)
            log.debug("JSON data saved", path=str(path))
        except (TypeError, ValueError) as e:
            temp_path.unlink(missing_ok=True)
            raise ValidationError(f"Cannot serialize data to JSON: {e}", field=str(path)) from e
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise FileSystemError(f"Cannot write {path.name}", original_error=e, path=str(path), operation="write") from e

    def ensure_directory(self, path: Path) -> bool:
        """Create the directory if needed; returns True if it was created.

        Raises:
            FileSystemError: If the path is not a directory or cannot be created
        """
        if path.is_dir():
            return False
        if path.exists():
            raise FileSystemError(
                f"Path exists but is not a directory: {path}",
                path=str(path),
                operation="mkdir",
            )
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error("Failed to create directory", path=str(path), error=str(e))
            raise FileSystemError(
                f"Cannot create directory {path}",
                original_error=e,
                path=str(path),
                operation="mkdir",
            ) from e
        log.debug("Directory created", path=str(path))
        return True

    def remove_tree(self, path: Path) -> bool:
        """Best-effort recursive delete; returns False if anything could not be removed."""
        if not path.exists():
            return True
        try:
            shutil.rmtree(path)
        except OSError as e:
            log.warning("Failed to remove directory", path=str(path), error=str(e))
            return False
        log.info("Directory removed", path=str(path))
        return True

    def remove_files(self, paths: list[Path]) -> list[Path]:
        """Best-effort delete of files; returns the paths that could not be removed."""
        failed: list[Path] = []
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.warning("Failed to remove file", path=str(path), error=str(e))
                failed.append(path)
        return failed
