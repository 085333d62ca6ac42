"""Configuration schema dataclasses for gguf-pack.

These settings govern how the tool runs (logging and output handling), not
what it packs; the latter lives in the manifest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(levelname)s - %(name)s - %(message)s"
    file: Optional[str] = None
    console: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        self.level = str(self.level).upper()
        if self.level not in LogLevel.__members__:
            raise ValueError(
                f"level must be one of {list(LogLevel.__members__)}, got {self.level}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level,
            "format": self.format,
            "file": self.file,
            "console": self.console,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingConfig:
        """Create from dictionary."""
        return cls(
            level=data.get("level", "INFO"),
            format=data.get("format", "%(levelname)s - %(name)s - %(message)s"),
            file=data.get("file"),
            console=data.get("console", True),
        )


@dataclass
class OutputConfig:
    """Output file handling."""

    # Write to a temporary file and rename it into place on success
    atomic_write: bool = True
    overwrite: bool = True
    show_progress: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in ("atomic_write", "overwrite", "show_progress"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be a boolean")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "atomic_write": self.atomic_write,
            "overwrite": self.overwrite,
            "show_progress": self.show_progress,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutputConfig:
        """Create from dictionary."""
        return cls(
            atomic_write=data.get("atomic_write", True),
            overwrite=data.get("overwrite", True),
            show_progress=data.get("show_progress", False),
        )


@dataclass
class PackConfig:
    """Main configuration container for gguf-pack.

    Configuration is loaded from multiple sources with the following priority:
    1. Environment Variables (highest) - GGUF_PACK_* prefixed
    2. User Config - ~/.config/gguf-pack/config.toml
    3. Defaults (lowest) - Built-in defaults
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "logging": self.logging.to_dict(),
            "output": self.output.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackConfig:
        """Create configuration from dictionary."""
        return cls(
            logging=LoggingConfig.from_dict(data.get("logging", {})),
            output=OutputConfig.from_dict(data.get("output", {})),
        )
