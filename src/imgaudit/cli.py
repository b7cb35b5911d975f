"""Command line interface for imgaudit."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, NoReturn

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from imgaudit.audit import AuditError, AuditPipeline, AuditReport, gather_knowledge
from imgaudit.classification import (
    REMEDIATION_STEPS,
    ClassificationResult,
    FlattenPolicy,
    StatusCategory,
)
from imgaudit.collectors import (
    ControlPlaneLoader,
    DirectoryScanner,
    MySQLClient,
    NullInspector,
    PoolResolver,
    QemuImgInspector,
    VirshDomainMapper,
    detect_host,
)
from imgaudit.collectors.commands import have
from imgaudit.config import AuditConfig, ConfigError, ConfigManager
from imgaudit.config.models import LoggingSettings
from imgaudit.facts import PoolIdentity

console = Console()
LOGGER = logging.getLogger(__name__)

STATUS_ICONS = {
    StatusCategory.RUNNING: "[green]■[/green]",
    StatusCategory.STOPPED: "[red]■[/red]",
    StatusCategory.IDLE_KNOWN: "[bright_black]■[/bright_black]",
    StatusCategory.IDLE_UNKNOWN: "□",
    StatusCategory.MISSING: "[yellow]■[/yellow]",
}

LEGEND = (
    "Legend: D=Data  T=Template  I=Image  R=Root  S=Snapshot  "
    "(?=unknown to control plane, !=missing on disk)  "
    "Parent=base image of a snapshot"
)


def _configure_logging(settings: LoggingSettings, *, verbose: bool = False) -> None:
    """Attach handlers to the package logger according to configuration.

    Args:
        settings: Logging section of the effective configuration.
        verbose: Force DEBUG verbosity regardless of configuration.
    """

    logger = logging.getLogger("imgaudit")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.WARNING)
    logger.setLevel(level)
    logger.propagate = False

    stream_handler = RichHandler(
        console=Console(stderr=True), show_path=False, show_time=False, markup=False
    )
    stream_handler.setLevel(level)
    logger.addHandler(stream_handler)

    if settings.file:
        log_path = Path(settings.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        file_handler.setLevel(level)
        logger.addHandler(file_handler)


@dataclass(frozen=True)
class OutputMode:
    """How much of the scan report reaches stdout.

    Attributes:
        json: The report is printed as a single JSON document.
        quiet: Nothing but errors is printed.
        summary_only: Only the summary line and flatten warnings are printed.
    """

    json: bool = False
    quiet: bool = False
    summary_only: bool = False

    @classmethod
    def resolve(
        cls,
        ctx: click.Context,
        config: AuditConfig,
        *,
        json_output: bool,
        quiet: bool,
        summary: bool,
    ) -> "OutputMode":
        """Combine explicit flags with the configured defaults.

        Raises:
            click.ClickException: If the requested modes contradict each other.
        """
        quiet_given = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
        summary_given = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE
        if json_output:
            if quiet_given and quiet:
                raise click.ClickException("--json cannot be combined with --quiet.")
            if summary_given and summary:
                raise click.ClickException("--json cannot be combined with --summary.")
            return cls(json=True)

        quiet = quiet if quiet_given else config.cli.quiet_default
        summary = summary if summary_given else config.cli.summary_default
        if quiet and summary:
            raise click.ClickException(
                "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
            )
        return cls(quiet=quiet, summary_only=summary)

    def emit(self, message: Any, *, important: bool = False) -> None:
        if self.quiet or (self.summary_only and not important):
            return
        console.print(message)


def _fail(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    cause: Exception | None = None,
) -> NoReturn:
    """Abort the command, as a JSON error document when JSON output was requested."""
    if json_output:
        error: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            error["details"] = details
        console.print_json(data={"error": error})
        raise SystemExit(1)
    if isinstance(cause, click.ClickException):
        raise cause
    raise click.ClickException(message) from cause


def _host_line(report: AuditReport) -> str:
    host = report.host
    return (
        f"Host: {host.hostname} (IP: {host.address or 'unknown'}, pool: {report.pool.name}, "
        f"pool_id: {report.pool.pool_id or 'unknown'})"
    )


def _ordered_rows(
    results: Iterable[ClassificationResult], sort: str
) -> list[ClassificationResult]:
    rows = list(results)
    if sort == "name":
        rows.sort(key=lambda row: row.name.casefold())
    return rows


def _build_table(report: AuditReport, *, sort: str) -> Table:
    table = Table(title=escape(_host_line(report)))
    table.add_column("Filename", no_wrap=True)
    table.add_column("Size (GB)", justify="right")
    table.add_column("Base Image")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Status", justify="center")
    table.add_column("Notes")
    for row in _ordered_rows(report.results, sort):
        table.add_row(
            escape(row.filename),
            row.size_display,
            escape(row.base_display),
            escape(row.type_code.value),
            escape(row.name),
            STATUS_ICONS[row.status],
            escape(row.notes_display),
        )
    return table


def _legend_icons() -> str:
    return (
        f"        {STATUS_ICONS[StatusCategory.RUNNING]}=Running  "
        f"{STATUS_ICONS[StatusCategory.STOPPED]}=Stopped  "
        f"{STATUS_ICONS[StatusCategory.MISSING]}=Missing  "
        f"{STATUS_ICONS[StatusCategory.IDLE_KNOWN]}=Idle  "
        f"{STATUS_ICONS[StatusCategory.IDLE_UNKNOWN]}=Unknown"
    )


def _scan_overrides(
    ctx: click.Context,
    *,
    show_nonuuid: bool,
    workers: int | None,
    no_db: bool,
    no_virsh: bool,
    no_inspect: bool,
    sort: str | None,
) -> dict[str, Any]:
    """Translate explicitly supplied scan flags into dotted config overrides."""

    overrides: dict[str, Any] = {}
    if ctx.get_parameter_source("show_nonuuid") == ParameterSource.COMMANDLINE:
        overrides["scan.show_non_uuid"] = show_nonuuid
    if workers is not None:
        overrides["scan.workers"] = workers
    if no_db:
        overrides["database.enabled"] = False
    if no_virsh:
        overrides["scan.use_hypervisor"] = False
    if no_inspect:
        overrides["scan.inspect_images"] = False
    if sort is not None:
        overrides["cli.sort"] = sort
    return overrides


def _run_audit(config: AuditConfig, root: Path) -> AuditReport:
    """Gather facts from the configured collaborators and audit ``root``."""

    host = detect_host()

    client: MySQLClient | None = None
    if config.database.enabled:
        client = MySQLClient(
            host=config.database.host,
            port=config.database.port,
            user=config.database.user,
            password=config.database.password,
            database=config.database.name,
            executable=config.tools.mysql,
            timeout=config.database.timeout_seconds,
        )

    loader = ControlPlaneLoader(client.query) if client else None
    pool = (
        PoolResolver(client.query).resolve(host.address, root)
        if client
        else PoolIdentity(name=root.name or str(root))
    )
    mapper = (
        VirshDomainMapper(config.tools.virsh, timeout=config.tools.timeout_seconds)
        if config.scan.use_hypervisor
        else None
    )
    knowledge = gather_knowledge(loader, mapper)

    if config.scan.inspect_images:
        if not have(config.tools.qemu_img):
            LOGGER.warning(
                "%s not found; sizes, formats and backing files will be unknown.",
                config.tools.qemu_img,
            )
        inspector = QemuImgInspector(config.tools.qemu_img, timeout=config.tools.timeout_seconds)
    else:
        inspector = NullInspector()

    pipeline = AuditPipeline(
        DirectoryScanner(),
        inspector,
        knowledge,
        include_foreign=config.scan.show_non_uuid,
        workers=config.scan.workers,
        flatten_policy=FlattenPolicy(config.tools.qemu_img),
    )
    return pipeline.run(root, host=host, pool=pool)


def _summary_table(report: AuditReport) -> Table:
    counts = report.counts
    table = Table(title="Summary", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Host", escape(_host_line(report)))
    table.add_row("Scanned directory", escape(str(report.root)))
    table.add_row("Files scanned", str(counts.files_scanned))
    table.add_row("UUID files scanned", str(counts.well_formed))
    table.add_row("Snapshots", str(counts.snapshots))
    table.add_row("Flatten candidates", str(counts.flatten_candidates))
    return table


def _render_report(report: AuditReport, mode: OutputMode, *, sort: str) -> None:
    """Print the table, legend, summary, flatten proposals and the closing line.

    Flatten proposals and the closing summary line survive ``--summary``.
    """
    mode.emit(_build_table(report, sort=sort))
    mode.emit(LEGEND)
    mode.emit(_legend_icons())
    mode.emit(_summary_table(report))

    if report.flatten_candidates:
        mode.emit(
            "[yellow]Flattening candidates (caution): the following snapshots can likely "
            "be safely flattened:[/yellow]",
            important=True,
        )
        for candidate in report.flatten_candidates:
            mode.emit(f"   {escape(candidate.command)}", important=True)
        mode.emit("Steps:")
        for index, step in enumerate(REMEDIATION_STEPS, start=1):
            mode.emit(f"  {index}. {step}")

    counts = report.counts
    metrics = {
        "files": counts.files_scanned,
        "uuid_files": counts.well_formed,
        "snapshots": counts.snapshots,
        "flatten_candidates": counts.flatten_candidates,
    }
    rendered = ", ".join(f"{key}={value}" for key, value in metrics.items())
    mode.emit(
        f"[green]Scan summary for {escape(str(report.root))}: {rendered}.[/green]", important=True
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="imgaudit")
def cli() -> None:
    """imgaudit cross-checks KVM image storage against the control-plane database."""


@cli.command()
@click.argument(
    "directory",
    required=False,
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=str),
)
@click.option(
    "-n",
    "--show-nonuuid",
    "show_nonuuid",
    is_flag=True,
    help="Show non-UUID files (e.g. .bak, ISOs).",
)
@click.option("--workers", type=click.IntRange(min=1), help="Worker threads for inspection.")
@click.option("--no-db", is_flag=True, help="Skip the control-plane database.")
@click.option("--no-virsh", is_flag=True, help="Skip hypervisor domain lookups.")
@click.option("--no-inspect", is_flag=True, help="Skip qemu-img inspection.")
@click.option("--sort", type=click.Choice(["file", "name"]), help="Row ordering of the table.")
@click.option("--json", "json_output", is_flag=True, help="Emit the audit report as JSON.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def scan(
    ctx: click.Context,
    directory: str,
    show_nonuuid: bool,
    workers: int | None,
    no_db: bool,
    no_virsh: bool,
    no_inspect: bool,
    sort: str | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Audit the images in DIRECTORY (default: current directory).

    Args:
        ctx: Click context for parameter source inspection.
        directory: Image directory to scan (non-recursive).
        show_nonuuid: Include files whose names are not UUID-shaped.
        workers: Optional worker thread override.
        no_db: Disable control-plane queries.
        no_virsh: Disable hypervisor domain lookups.
        no_inspect: Disable qemu-img inspection.
        sort: Optional row ordering override.
        json_output: When True, emit JSON instead of textual output.
        summary_mode: When True, restrict output to summary lines and warnings.
        quiet: When True, suppress non-error output entirely.
        verbose: When True, log at DEBUG level.
    """

    try:
        overrides = _scan_overrides(
            ctx,
            show_nonuuid=show_nonuuid,
            workers=workers,
            no_db=no_db,
            no_virsh=no_virsh,
            no_inspect=no_inspect,
            sort=sort,
        )
        config = ConfigManager().load(cli_overrides=overrides)
        _configure_logging(config.logging, verbose=verbose)
        mode = OutputMode.resolve(
            ctx, config, json_output=json_output, quiet=quiet, summary=summary_mode
        )

        report = _run_audit(config, Path(directory).expanduser().absolute())
        if mode.json:
            console.print_json(data=report.json_payload)
        else:
            _render_report(report, mode, sort=config.cli.sort)
    except ConfigError as exc:
        _fail(str(exc), code="config_error", json_output=json_output, cause=exc)
    except AuditError as exc:
        _fail(str(exc), code="audit_error", json_output=json_output, cause=exc)
    except click.ClickException as exc:
        _fail(exc.format_message(), code="cli_error", json_output=json_output, cause=exc)
    except Exception as exc:
        _fail(
            f"Unexpected error while auditing images: {exc}",
            code="internal_error",
            json_output=json_output,
            details={"exception": type(exc).__name__},
            cause=exc,
        )


@cli.group()
def config() -> None:
    """Manage imgaudit configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        config = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    data = config.model_dump(mode="python")
    if data["database"].get("password"):
        data["database"]["password"] = "********"
    yaml_text = yaml.safe_dump(data, sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'database.host'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        manager.update({".".join(segments): parsed_value})
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    after = manager.read_text().splitlines()

    # The timestamp line always changes; ignore it when deciding if anything moved.
    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    changed = [
        line
        for line in diff
        if line[:1] in {"+", "-"}
        and not line.startswith(("+++", "---"))
        and "Last updated:" not in line
    ]

    if not changed:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
