"""Configuration models describing imgaudit settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditBaseModel(BaseModel):
    """Shared configuration for imgaudit Pydantic settings models."""

    model_config = ConfigDict(extra="forbid")


class DatabaseSettings(AuditBaseModel):
    """Control-plane database connection options.

    Attributes:
        enabled: Whether to query the control-plane database at all.
        host: Database host name or address.
        port: Database TCP port.
        user: Account used for the read-only queries.
        password: Password for ``user``; passed to the client through the environment.
        name: Schema holding the control-plane tables.
        timeout_seconds: Upper bound for a single query.
    """

    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    enabled: bool = True
    host: str = "localhost"
    port: int = 3306
    user: str = "cloud"
    password: Optional[str] = None
    name: str = "cloud"
    timeout_seconds: int = 30


class ToolSettings(AuditBaseModel):
    """External executables consulted while gathering facts.

    Attributes:
        qemu_img: Executable used to inspect image headers.
        virsh: Executable used to list hypervisor domains.
        mysql: Executable used to query the control-plane database.
        timeout_seconds: Upper bound for a single qemu-img or virsh call.
    """

    qemu_img: str = "qemu-img"
    virsh: str = "virsh"
    mysql: str = "mysql"
    timeout_seconds: int = 30


class ScanOptions(AuditBaseModel):
    """Options governing the directory scan.

    Attributes:
        show_non_uuid: Whether files without an identifier-shaped name are listed.
        workers: Number of worker threads used for inspection and classification.
        inspect_images: Whether to run the image inspector on each file.
        use_hypervisor: Whether to consult the hypervisor for domain names.
    """

    show_non_uuid: bool = False
    workers: int = Field(default=1, ge=1)
    inspect_images: bool = True
    use_hypervisor: bool = True


class LoggingSettings(AuditBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; enables a rotating file handler.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(AuditBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
        sort: Row ordering of the scan table.
    """

    quiet_default: bool = False
    summary_default: bool = False
    sort: Literal["file", "name"] = "name"


class AuditConfig(AuditBaseModel):
    """Top-level configuration struct for imgaudit.

    Attributes:
        database: Control-plane database settings.
        tools: External executable settings.
        scan: Directory scan settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    scan: ScanOptions = Field(default_factory=ScanOptions)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "AuditBaseModel",
    "DatabaseSettings",
    "ToolSettings",
    "ScanOptions",
    "LoggingSettings",
    "CLIOptions",
    "AuditConfig",
]
