"""Configuration service for managing launcher settings."""

import json
from pathlib import Path
from typing import Any

import structlog

from ..models import AppConfig

log = structlog.stdlib.get_logger()

MAX_CONCURRENT_DOWNLOADS = 64
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


class ConfigurationService:
    """Loads, validates and persists the launcher configuration as JSON."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path: Path = config_path or Path.home() / ".config" / "launcher-core" / "config.json"
        log.info("Configuration service initialized", config_path=str(self.config_path))

    def load_config(self) -> AppConfig:
        """Load configuration from file or return the default configuration."""
        if not self.config_path.exists():
            log.info("Configuration file not found, using defaults")
            return self.default_config()

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data: dict[str, Any] = json.load(f)

            config = self._dict_to_config(data)
            validation_result = self.validate_config(config)

            if not validation_result.is_valid:
                log.warning("Invalid configuration loaded, using defaults", errors=validation_result.errors)
                return self.default_config()

            log.info("Configuration loaded successfully")
            return config

        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("Failed to load configuration, using defaults", error=str(e))
            return self.default_config()

    def save_config(self, config: AppConfig) -> None:
        """Save configuration to file.

        Raises:
            ValueError: If the configuration does not validate
            OSError: If the file cannot be written
        """
        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ValueError(f"Invalid configuration: {', '.join(validation_result.errors)}")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self._config_to_dict(config), f, indent=2, ensure_ascii=False)

            log.info("Configuration saved successfully")

        except OSError as e:
            log.error("Failed to save configuration", error=str(e))
            raise

    def validate_config(self, config: AppConfig) -> ValidationResult:
        """Validate configuration settings."""
        errors = []

        if not isinstance(config.working_directory, Path):
            errors.append("working_directory must be a Path object")
        elif not config.working_directory.is_absolute():
            errors.append("working_directory must be an absolute path")

        if not isinstance(config.java_path, str):
            errors.append("java_path must be a string")

        if not isinstance(config.concurrent_downloads, int) or config.concurrent_downloads < 1:
            errors.append("concurrent_downloads must be a positive integer")
        elif config.concurrent_downloads > MAX_CONCURRENT_DOWNLOADS:
            errors.append(f"concurrent_downloads should not exceed {MAX_CONCURRENT_DOWNLOADS}")

        if not isinstance(config.default_xms, int) or config.default_xms < 1:
            errors.append("default_xms must be a positive integer (MB)")
        if not isinstance(config.default_xmx, int) or config.default_xmx < 1:
            errors.append("default_xmx must be a positive integer (MB)")
        elif isinstance(config.default_xms, int) and config.default_xms > config.default_xmx:
            errors.append("default_xms must not exceed default_xmx")

        if not isinstance(config.request_timeout, (int, float)) or config.request_timeout <= 0:
            errors.append("request_timeout must be a positive number")

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        if not config.launcher_name:
            errors.append("launcher_name cannot be empty")

        if not config.registry_base_url.startswith(("http://", "https://")):
            errors.append("registry_base_url must be an http(s) URL")

        return ValidationResult(len(errors) == 0, errors)

    def default_config(self) -> AppConfig:
        """Get the default configuration."""
        return AppConfig(
            working_directory=Path.home() / ".local" / "share" / "launcher-core",
            java_path="",
            concurrent_downloads=4,
            default_xms=512,
            default_xmx=4096,
            request_timeout=30.0,
            log_level="INFO",
        )

    def _config_to_dict(self, config: AppConfig) -> dict[str, Any]:
        """Convert AppConfig to a dictionary for JSON serialization."""
        return {
            "working_directory": str(config.working_directory),
            "java_path": config.java_path,
            "concurrent_downloads": config.concurrent_downloads,
            "default_xms": config.default_xms,
            "default_xmx": config.default_xmx,
            "request_timeout": config.request_timeout,
            "log_level": config.log_level,
            "launcher_name": config.launcher_name,
            "launcher_version": config.launcher_version,
            "registry_base_url": config.registry_base_url,
            "enable_crash_analysis": config.enable_crash_analysis,
            "demo_user": config.demo_user,
            "custom_resolution": config.custom_resolution,
        }

    def _dict_to_config(self, data: dict[str, Any]) -> AppConfig:
        """Convert a dictionary to AppConfig; missing optional keys take defaults."""
        defaults = self.default_config()

        def _bool(key: str, default: bool) -> bool:
            value = data.get(key, default)
            return value if isinstance(value, bool) else default

        return AppConfig(
            working_directory=Path(str(data["working_directory"])),
            java_path=str(data.get("java_path", "")),
            concurrent_downloads=int(data.get("concurrent_downloads", defaults.concurrent_downloads)),
            default_xms=int(data.get("default_xms", defaults.default_xms)),
            default_xmx=int(data.get("default_xmx", defaults.default_xmx)),
            request_timeout=float(data.get("request_timeout", defaults.request_timeout)),
            log_level=str(data.get("log_level", defaults.log_level)),
            launcher_name=str(data.get("launcher_name", defaults.launcher_name)),
            launcher_version=str(data.get("launcher_version", defaults.launcher_version)),
            registry_base_url=str(data.get("registry_base_url", defaults.registry_base_url)),
            enable_crash_analysis=_bool("enable_crash_analysis", defaults.enable_crash_analysis),
            demo_user=_bool("demo_user", defaults.demo_user),
            custom_resolution=_bool("custom_resolution", defaults.custom_resolution),
        )
