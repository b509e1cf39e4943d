"""
Configuration management for Music Catalog
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from loguru import logger

DEFAULT_SUPPORTED_FORMATS = [".mp3", ".m4a", ".wav", ".aac", ".aiff", ".flac"]


@dataclass
class LibraryConfig:
    """Configuration for folder scanning and batch processing."""

    supported_formats: List[str] = field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_FORMATS)
    )
    batch_size: int = 50
    large_batch_size: int = 100  # Used when a folder holds more than the threshold
    large_folder_threshold: int = 1000
    extraction_timeout: float = 30.0  # Seconds a batch waits for metadata, per round of workers
    max_workers: Optional[int] = None  # Defaults to the batch size

    def validate(self) -> None:
        """Validate library configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.batch_size < 1 or self.large_batch_size < 1:
            raise ValueError("Batch sizes must be at least 1")
        if self.extraction_timeout <= 0:
            raise ValueError(
                f"extraction_timeout must be positive, got {self.extraction_timeout}"
            )
        bad_formats = [f for f in self.supported_formats if not f.startswith(".")]
        if bad_formats:
            raise ValueError(
                f"Invalid supported formats: {bad_formats}. "
                "Formats must be file extensions such as '.mp3'"
            )


@dataclass
class DuplicatesConfig:
    """Configuration for duplicate track detection."""

    enabled: bool = True
    duration_tolerance: float = 2.0  # Seconds
    prefer_higher_bitrate: bool = True


@dataclass
class SearchConfig:
    """Configuration for full-text search."""

    result_limit: int = 500
    playlist_result_limit: int = 200


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/music-catalog/music-catalog.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of rotated files to keep
    console_output: bool = False  # Also output to stderr (for debugging)


@dataclass
class Config:
    """Main configuration object."""

    library: LibraryConfig = field(default_factory=LibraryConfig)
    duplicates: DuplicatesConfig = field(default_factory=DuplicatesConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "music-catalog"
    return Path.home() / ".config" / "music-catalog"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Current working directory
    2. XDG_CONFIG_HOME/music-catalog (or ~/.config/music-catalog)
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "music-catalog"
    return Path.home() / ".local" / "share" / "music-catalog"


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Music Catalog Configuration

[library]
# Audio file extensions picked up by folder scans
supported_formats = [".mp3", ".m4a", ".wav", ".aac", ".aiff", ".flac"]

# Files per write transaction
batch_size = 50

# Files per write transaction for folders larger than large_folder_threshold
large_batch_size = 100
large_folder_threshold = 1000

# Seconds a batch waits for metadata (per round of workers) before giving up
extraction_timeout = 30.0

[duplicates]
# Flag tracks with the same title, artist and (roughly) the same duration
enabled = true

# Maximum duration difference, in seconds, between two duplicates
duration_tolerance = 2.0

# Keep the highest bitrate copy as the canonical track
prefer_higher_bitrate = true

[search]
result_limit = 500
playlist_result_limit = 200

[logging]
# DEBUG, INFO, WARNING, ERROR, CRITICAL
level = "INFO"
max_file_size_mb = 10
backup_count = 5
console_output = false
""".strip()


def _parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML, falling back to defaults per key."""
    config = Config()

    if "library" in toml_data:
        library_data = toml_data["library"]
        defaults = config.library
        config.library = LibraryConfig(
            supported_formats=[
                f.lower()
                for f in library_data.get(
                    "supported_formats", defaults.supported_formats
                )
            ],
            batch_size=library_data.get("batch_size", defaults.batch_size),
            large_batch_size=library_data.get(
                "large_batch_size", defaults.large_batch_size
            ),
            large_folder_threshold=library_data.get(
                "large_folder_threshold", defaults.large_folder_threshold
            ),
            extraction_timeout=float(
                library_data.get("extraction_timeout", defaults.extraction_timeout)
            ),
            max_workers=library_data.get("max_workers", defaults.max_workers),
        )
        config.library.validate()

    if "duplicates" in toml_data:
        dup_data = toml_data["duplicates"]
        config.duplicates = DuplicatesConfig(
            enabled=dup_data.get("enabled", config.duplicates.enabled),
            duration_tolerance=float(
                dup_data.get("duration_tolerance", config.duplicates.duration_tolerance)
            ),
            prefer_higher_bitrate=dup_data.get(
                "prefer_higher_bitrate", config.duplicates.prefer_higher_bitrate
            ),
        )

    if "search" in toml_data:
        search_data = toml_data["search"]
        config.search = SearchConfig(
            result_limit=search_data.get("result_limit", config.search.result_limit),
            playlist_result_limit=search_data.get(
                "playlist_result_limit", config.search.playlist_result_limit
            ),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level),
            log_file=logging_data.get("log_file"),
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get(
                "backup_count", config.logging.backup_count
            ),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Args:
        config_path: Explicit config file (default: see get_config_path)

    Returns:
        Parsed configuration

    Raises:
        ValueError: If the file contains invalid values
    """
    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
        return Config()

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Invalid TOML in {config_path}: {e}")
        logger.warning("Using default configuration")
        return Config()

    return _parse_config(toml_data)


def save_config(config: Config, config_path: Optional[Path] = None) -> bool:
    """Save configuration to file."""
    config_path = config_path or get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        formats = ", ".join(f'"{f}"' for f in config.library.supported_formats)
        toml_content = f"""# Music Catalog Configuration

[library]
supported_formats = [{formats}]
batch_size = {config.library.batch_size}
large_batch_size = {config.library.large_batch_size}
large_folder_threshold = {config.library.large_folder_threshold}
extraction_timeout = {float(config.library.extraction_timeout)}"""

        if config.library.max_workers:
            toml_content += f"\nmax_workers = {config.library.max_workers}"

        toml_content += f"""

[duplicates]
enabled = {_toml_bool(config.duplicates.enabled)}
duration_tolerance = {float(config.duplicates.duration_tolerance)}
prefer_higher_bitrate = {_toml_bool(config.duplicates.prefer_higher_bitrate)}

[search]
result_limit = {config.search.result_limit}
playlist_result_limit = {config.search.playlist_result_limit}

[logging]
level = "{config.logging.level}"
max_file_size_mb = {config.logging.max_file_size_mb}
backup_count = {config.logging.backup_count}
console_output = {_toml_bool(config.logging.console_output)}"""

        if config.logging.log_file:
            toml_content += f'\nlog_file = "{config.logging.log_file}"'

        toml_content += "\n"

        with open(config_path, "w", encoding="utf-8") as f:
            f.write(toml_content)

        return True

    except OSError as e:
        logger.error(f"Error saving configuration to {config_path}: {e}")
        return False


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
