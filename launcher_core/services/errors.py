"""Error taxonomy and centralized error handling for the launcher core.

This module provides:
- One exception class per failure category, each carrying a stable
  category, a human-readable message and suggested actions
- User-friendly error snapshots for display
- An error handling service that maps httpx, OS and value errors onto the
  taxonomy and keeps a bounded history
"""

import json
import time
from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""
    NETWORK = "network"
    FILE_SYSTEM = "file_system"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    DOWNLOAD = "download"
    LAUNCH = "launch"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Where an unclassified error was caught."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class UserFriendlyError:
    """User-friendly error representation with suggested actions."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True


HTTP_STATUS_MESSAGES = {
    400: "The registry rejected the request.",
    403: "The registry refused access to this resource.",
    404: "The requested resource was not found.",
    408: "The registry timed out handling the request.",
    410: "The requested resource has been removed.",
    429: "The registry is rate limiting requests.",
    500: "The registry encountered an internal error.",
    502: "The registry or CDN is temporarily unreachable.",
    503: "The registry is temporarily unavailable.",
    504: "The registry or CDN took too long to respond.",
}


def _describe(original_error: Exception | None) -> str | None:
    if original_error is None:
        return None
    return f"{type(original_error).__name__}: {original_error}"


def _details(**fields: Any) -> str | None:
    """Render ``Label: value`` lines for the fields that are set."""
    lines = [
        f"{name.replace('_', ' ').capitalize()}: {value}"
        for name, value in fields.items()
        if value is not None and value != ""
    ]
    return "\n".join(lines) or None


class AppError(Exception):
    """Base exception class for launcher errors.

    Subclasses set the class-level defaults; constructor arguments override
    them per instance.
    """
    category = ErrorCategory.UNEXPECTED
    severity = ErrorSeverity.ERROR
    recoverable = True
    default_actions: tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category
        if severity is not None:
            self.severity = severity
        if recoverable is not None:
            self.recoverable = recoverable
        self.suggested_actions = suggested_actions if suggested_actions is not None else list(self.default_actions)
        self.technical_details = technical_details
        self.context = context

    def to_user_friendly(self) -> UserFriendlyError:
        return UserFriendlyError(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=self.suggested_actions,
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


class NetworkError(AppError):
    """Timeout or transport failure of a single fetch."""
    category = ErrorCategory.NETWORK
    default_actions = ("Check your internet connection", "Try again in a few moments")

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        actions = None
        if status_code == 429:
            actions = ["Wait a few minutes before retrying", "Lower concurrent_downloads in the configuration"]
        elif status_code is not None and status_code >= 500:
            actions = ["The registry is having problems, try again later"]

        super().__init__(
            message,
            suggested_actions=actions,
            technical_details=_details(status=status_code, url=url, error=_describe(original_error)),
        )
        self.original_error = original_error
        self.url = url
        self.status_code = status_code


class ResourceError(AppError):
    """A remote project, version or file does not exist."""
    category = ErrorCategory.RESOURCE
    severity = ErrorSeverity.WARNING
    default_actions = (
        "Check the project id",
        "Check that the project supports this game version and loader",
    )

    def __init__(
        self,
        message: str,
        resource_id: str | None = None,
        url: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            technical_details=_details(resource=resource_id, url=url, error=_describe(original_error)),
        )
        self.resource_id = resource_id
        self.url = url
        self.original_error = original_error


class FileSystemError(AppError):
    """Directory creation, copy or delete failure."""
    category = ErrorCategory.FILE_SYSTEM
    default_actions = ("Check the path and its permissions", "Ensure there is enough disk space")

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        path: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message,
            suggested_actions=self._actions_for(original_error),
            technical_details=_details(path=path, error=_describe(original_error)),
        )
        self.original_error = original_error
        self.path = path
        self.operation = operation

    @classmethod
    def _actions_for(cls, original_error: Exception | None) -> list[str] | None:
        if isinstance(original_error, PermissionError):
            return ["Check file and directory permissions", "Choose a different working directory"]
        if isinstance(original_error, FileNotFoundError):
            return ["Check that the file was not moved or deleted", "Reinstall the affected game version"]
        text = str(original_error).lower() if original_error else ""
        if "no space" in text or "disk full" in text:
            return ["Free up disk space", "Choose a different working directory"]
        if "read-only" in text:
            return ["The file system is read-only", "Choose a different working directory"]
        return None


class ValidationError(AppError):
    """Hash mismatch, malformed response, or encode/decode failure."""
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING
    default_actions = ("Check the input or retry the download",)

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        actions = list(self.default_actions) + [f"Ensure: {c}" for c in constraints or []]
        shown = str(value)[:100] if value is not None else None
        super().__init__(message, suggested_actions=actions, technical_details=_details(field=field, value=shown))
        self.field = field
        self.value = value
        self.constraints = constraints or []


class ConfigurationError(AppError):
    """Missing executable or jar path, or an unset required field."""
    category = ErrorCategory.CONFIGURATION
    recoverable = False
    default_actions = (
        "Check the instance and launcher settings",
        "Reinstall the game version if files are missing",
    )

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        current_value: Any = None,
        expected: str | None = None,
    ) -> None:
        actions = list(self.default_actions)
        if expected:
            actions.append(f"Expected: {expected}")
        super().__init__(message, suggested_actions=actions, technical_details=_details(setting=setting, current=current_value))
        self.setting = setting
        self.current_value = current_value
        self.expected = expected


class DownloadError(AppError):
    """A required item of a download batch failed."""
    category = ErrorCategory.DOWNLOAD
    default_actions = (
        "Check your internet connection",
        "Verify sufficient disk space",
        "Retry the installation",
    )

    def __init__(
        self,
        message: str,
        file_name: str | None = None,
        url: str | None = None,
        failed_items: list[str] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            technical_details=_details(
                file=file_name,
                url=url,
                failed=", ".join(failed_items) if failed_items else None,
                error=_describe(original_error),
            ),
        )
        self.file_name = file_name
        self.url = url
        self.failed_items = failed_items or []
        self.original_error = original_error


class LaunchError(AppError):
    """The runtime process could not be spawned."""
    category = ErrorCategory.LAUNCH
    default_actions = (
        "Check that the Java executable exists and is runnable",
        "Verify the instance working directory",
    )

    def __init__(
        self,
        message: str,
        instance_id: str | None = None,
        executable: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            technical_details=_details(instance=instance_id, executable=executable, error=_describe(original_error)),
        )
        self.instance_id = instance_id
        self.executable = executable
        self.original_error = original_error


class OperationCancelledError(AppError):
    """A cancellable operation was cancelled by its caller."""
    category = ErrorCategory.CANCELLED
    severity = ErrorSeverity.WARNING

    def __init__(self, message: str = "The operation was cancelled.", operation: str | None = None) -> None:
        super().__init__(message, technical_details=_details(operation=operation))
        self.operation = operation


class ErrorHandlingService:
    """Classifies exceptions into the launcher taxonomy and keeps a bounded history.

    Components catch failures at their boundary, hand them to this service
    and surface the returned UserFriendlyError to the caller.
    """

    def __init__(self, max_history_size: int = 100) -> None:
        self._error_history: deque[tuple[float, AppError]] = deque(maxlen=max_history_size)
        log.info("Error handling service initialized", max_history_size=max_history_size)

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> UserFriendlyError:
        """Classify, log and record an error.

        Args:
            error: The exception that occurred
            operation: The operation being performed
            component: The component where the error occurred
            context: Additional context (url, path, field, value, resource_id)

        Returns:
            User-friendly error representation
        """
        app_error = self.to_app_error(error, operation, component, context)
        self._log_error(app_error, operation, component, context)
        self._error_history.append((time.time(), app_error))
        return app_error.to_user_friendly()

    def to_app_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> AppError:
        """Convert a standard exception to an AppError; AppErrors pass through."""
        if isinstance(error, AppError):
            return error
        context = context or {}

        if isinstance(error, httpx.HTTPError):
            return self._from_http(error, context)
        if isinstance(error, OSError):
            return self._from_os(error, operation, context)
        # JSONDecodeError is a ValueError subclass
        if isinstance(error, json.JSONDecodeError):
            return ValidationError(
                "Invalid JSON. The data could not be parsed.",
                field=context.get("field", "json_content"),
            )
        if isinstance(error, (ValueError, KeyError, TypeError)):
            return ValidationError(str(error), field=context.get("field"), value=context.get("value"))

        return AppError(
            "An unexpected error occurred.",
            technical_details=_describe(error),
            context=ErrorContext(operation=operation, component=component, details=context),
        )

    @staticmethod
    def _from_http(error: httpx.HTTPError, context: dict[str, Any]) -> AppError:
        url = context.get("url")
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            message = HTTP_STATUS_MESSAGES.get(status_code, f"HTTP error {status_code}.")
            request_url = str(error.request.url)
            if status_code in (404, 410):
                return ResourceError(message, resource_id=context.get("resource_id"), url=request_url, original_error=error)
            return NetworkError(message, original_error=error, url=request_url, status_code=status_code)
        if isinstance(error, httpx.ConnectError):
            return NetworkError("Unable to connect to the server.", original_error=error, url=url)
        if isinstance(error, httpx.TimeoutException):
            return NetworkError("The request timed out.", original_error=error, url=url)
        return NetworkError("A network error occurred.", original_error=error, url=url)

    @staticmethod
    def _from_os(error: OSError, operation: str, context: dict[str, Any]) -> FileSystemError:
        if isinstance(error, PermissionError):
            message = "Permission denied."
        elif isinstance(error, FileNotFoundError):
            message = "The file or directory was not found."
        else:
            message = f"A file system error occurred: {error}"
        return FileSystemError(message, original_error=error, path=context.get("path"), operation=operation)

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        log_method = log.warning if error.severity == ErrorSeverity.WARNING else log.error
        log_method(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_recent_errors(self, count: int = 10) -> list[AppError]:
        """The most recent errors, oldest first."""
        return [error for _, error in list(self._error_history)[-count:]]

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        return dict(Counter(error.category for _, error in self._error_history))

    def create_user_message(
        self,
        error: UserFriendlyError,
        include_suggestions: bool = True,
    ) -> str:
        """Format an error for the terminal: category, message, then up to three actions."""
        parts = [f"[{error.category.value}] {error.message}"]
        if include_suggestions and error.suggested_actions:
            parts.append("\nSuggested actions:")
            parts.extend(f"  • {action}" for action in error.suggested_actions[:3])
        return "\n".join(parts)
