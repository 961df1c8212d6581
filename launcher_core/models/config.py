"""Configuration data models."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    """Application configuration settings."""
    working_directory: Path
    java_path: str
    concurrent_downloads: int
    default_xms: int
    default_xmx: int
    request_timeout: float
    log_level: str
    launcher_name: str = "launcher-core"
    launcher_version: str = "0.1.0"
    registry_base_url: str = "https://api.modrinth.com"
    enable_crash_analysis: bool = True  # Gates crash log collection, not classification
    demo_user: bool = False
    custom_resolution: bool = False  # Enables ${resolution_width}/${resolution_height} argument entries
