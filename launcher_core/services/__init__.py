"""Service layer: launch synthesis, resource installation and process supervision."""

from .cancellation import CancellationToken
from .classpath import ClasspathBuilder, maven_coordinate_to_relative_path
from .config import ConfigurationService, ValidationResult
from .content_cache import ContentCache, InstalledHashIndex
from .crash_detection import collect_crash_logs, is_crash
from .dependency_resolver import DependencyResolver
from .download_manager import (
    BatchReport,
    DownloadManagerService,
    DownloadRequest,
    DownloadStatus,
    DownloadTask,
)
from .errors import (
    AppError,
    ConfigurationError,
    DownloadError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    FileSystemError,
    LaunchError,
    NetworkError,
    OperationCancelledError,
    ResourceError,
    UserFriendlyError,
    ValidationError,
)
from .filesystem import FileSystemService
from .http_client import HttpClientService
from .installer import InstallResult, ResourceInstallService
from .instances import InstanceService
from .launch_command import LaunchCommandBuilder
from .launcher import (
    CrashReporter,
    GameLauncherService,
    PlayerSession,
    parse_environment_overlay,
    resolve_auth_placeholders,
)
from .library_filter import PlatformInfo, is_library_included
from .limiter import ConcurrencyLimiter
from .manifest import parse_manifest
from .process_supervisor import ProcessSupervisor
from .registry import ModrinthRegistryClient, RegistryClient
from .storage import InMemoryStore, JsonFileStore, KeyValueStore
from .templates import substitute

__all__ = [
    "AppError",
    "BatchReport",
    "CancellationToken",
    "ClasspathBuilder",
    "ConcurrencyLimiter",
    "ConfigurationError",
    "ConfigurationService",
    "ContentCache",
    "CrashReporter",
    "DependencyResolver",
    "DownloadError",
    "DownloadManagerService",
    "DownloadRequest",
    "DownloadStatus",
    "DownloadTask",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "FileSystemError",
    "FileSystemService",
    "GameLauncherService",
    "HttpClientService",
    "InMemoryStore",
    "InstallResult",
    "InstalledHashIndex",
    "InstanceService",
    "JsonFileStore",
    "KeyValueStore",
    "LaunchCommandBuilder",
    "LaunchError",
    "ModrinthRegistryClient",
    "NetworkError",
    "OperationCancelledError",
    "PlatformInfo",
    "PlayerSession",
    "ProcessSupervisor",
    "RegistryClient",
    "ResourceError",
    "ResourceInstallService",
    "UserFriendlyError",
    "ValidationError",
    "ValidationResult",
    "collect_crash_logs",
    "is_crash",
    "is_library_included",
    "maven_coordinate_to_relative_path",
    "parse_environment_overlay",
    "parse_manifest",
    "resolve_auth_placeholders",
    "substitute",
]
