"""
Configuration for the filesystem core.

Settings are read from ``PHOUNDATION_FS_*`` environment variables by
default and can also be loaded from a YAML or JSON file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _parse_mode(v):
    """Accept integer modes as well as octal strings like ``"0750"``."""
    if isinstance(v, str):
        return int(v, 8)
    return v


class MountDeclaration(BaseModel):
    """
    A declared mount point.

    Declared mounts are used by auto-mounting: when a path below
    ``target_path`` is accessed while nothing is mounted there, the
    source is mounted first.

    Example:
        ```yaml
        mounts:
          - source_path: /dev/sdb1
            target_path: /mnt/backups
            filesystem: ext4
            options: [ro]
            auto_mount: true
        ```
    """

    model_config = {"extra": "forbid"}

    source_path: str = Field(description="Device, remote share or directory to mount")
    target_path: str = Field(description="Directory the source is mounted on")
    filesystem: Optional[str] = Field(
        default=None,
        description="Filesystem type passed to mount -t (None = let mount detect)",
    )
    options: list[str] = Field(
        default_factory=list,
        description="Mount options passed to mount -o",
    )
    auto_mount: bool = Field(
        default=False,
        description="Mount automatically when a path below target_path is accessed",
    )
    timeout: float = Field(
        default=10.0,
        ge=0.0,
        description="Timeout for the mount command (seconds)",
    )

    @field_validator("target_path", "source_path")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Remove trailing slashes, except for the root directory."""
        stripped = v.rstrip("/")
        return stripped or "/"


class FileSystemConfig(BaseSettings):
    """
    Configuration for the filesystem core.

    Example:
        ```python
        config = FileSystemConfig(
            system_directories=["/var/lib/app"],
            directory_mode="0750",
            buffer_size=65536,
        )
        configure(config)
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="PHOUNDATION_FS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    system_directories: list[Path] = Field(
        default_factory=list,
        description="Directory prefixes covered by the system restrictions",
    )
    system_writable: bool = Field(
        default=False,
        description="Whether the system restrictions allow write access",
    )
    system_label: str = Field(
        default="system",
        description="Label of the system restrictions, used in error messages",
    )
    directory_mode: int = Field(
        default=0o750,
        ge=0,
        le=0o7777,
        description="Default mode for created directories",
    )
    file_mode: int = Field(
        default=0o640,
        ge=0,
        le=0o7777,
        description="Default mode for created files",
    )
    buffer_size: int = Field(
        default=1_048_576,  # 1 MB
        ge=1,
        description="Default buffer size for streamed reads (bytes)",
    )
    target_directory_length: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of hex characters in generated target directories",
    )
    target_directory_single: bool = Field(
        default=False,
        description="Generate flat (abcd/) instead of nested (a/b/c/d/) target directories",
    )
    stat_cache_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="How long cached stat data stays valid (0 = always re-stat)",
    )
    mount_table: Path = Field(
        default=Path("/proc/self/mounts"),
        description="OS mount table to query for mount points",
    )
    automounts_enabled: bool = Field(
        default=False,
        description="Enable auto-mounting of declared mount points",
    )
    mounts: list[MountDeclaration] = Field(
        default_factory=list,
        description="Declared mount points",
    )
    command_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Timeout for external commands (seconds)",
    )
    shred_passes: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Number of overwrite passes for secure deletion",
    )
    run_file_directory: Optional[Path] = Field(
        default=None,
        description="Directory for run file markers (None = parent of the target)",
    )

    @field_validator("directory_mode", "file_mode", mode="before")
    @classmethod
    def parse_mode(cls, v):
        """Convert octal strings to integers."""
        return _parse_mode(v)

    @field_validator("system_directories", mode="before")
    @classmethod
    def resolve_directories(cls, v):
        """Expand user directories."""
        if not v:
            return []
        if isinstance(v, (str, Path)):
            v = [v]
        return [Path(p).expanduser() for p in v]

    def __repr__(self) -> str:
        return (
            f"FileSystemConfig(system_directories={[str(d) for d in self.system_directories]}, "
            f"directory_mode={self.directory_mode:o}, mounts={len(self.mounts)})"
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FileSystemConfig":
        """
        Load configuration from a YAML or JSON file.

        File format (YAML):
            ```yaml
            system_directories:
              - /var/lib/app
            system_writable: false
            directory_mode: "0750"
            buffer_size: 1048576
            automounts_enabled: true
            mounts:
              - source_path: /dev/sdb1
                target_path: /mnt/backups
                auto_mount: true
            ```

        Args:
            path: Path to configuration file

        Returns:
            Loaded FileSystemConfig instance

        Raises:
            FileNotFoundError: If the config file doesn't exist
        """
        path = Path(path).expanduser().resolve()

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            # Try YAML first, then JSON
            try:
                data = yaml.safe_load(content)
            except yaml.YAMLError:
                data = json.loads(content)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict) -> "FileSystemConfig":
        """Create configuration from a dictionary."""
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary suitable for YAML/JSON output."""
        return self.model_dump(mode="json")

    def save(self, path: Union[str, Path]) -> None:
        """
        Save configuration to a YAML or JSON file.

        Args:
            path: Target file, format chosen by suffix (default YAML)
        """
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()

        if path.suffix == ".json":
            path.write_text(json.dumps(data, indent=2))
        else:
            path.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

        logger.info(f"Saved filesystem configuration to {path}")


_config: Optional[FileSystemConfig] = None


def get_config() -> FileSystemConfig:
    """Return the process wide configuration, building it from the environment on first use."""
    global _config
    if _config is None:
        _config = FileSystemConfig()
    return _config


def configure(config: Optional[FileSystemConfig] = None) -> FileSystemConfig:
    """
    Replace the process wide configuration.

    Args:
        config: New configuration (None = reload from the environment)

    Returns:
        The active configuration
    """
    global _config
    _config = config if config is not None else FileSystemConfig()
    return _config
