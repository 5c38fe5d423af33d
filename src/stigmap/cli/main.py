"""stigmap command line interface."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()


def _fail(message: str, code: int = 1) -> None:
    from ..utils.text import redact_home

    console.print(f"  [red]ERROR[/red] {escape(redact_home(message))}")
    sys.exit(code)


def _open_store(ctx: click.Context):
    from ..core.config import database_url
    from ..core.store import FindingStore

    store = FindingStore(database_url(ctx.obj["config"]))
    ctx.call_on_close(store.close)
    return store


@click.group()
@click.pass_context
@click.option("--workspace", "-w", type=click.Path(file_okay=False), default=".", help="Workspace directory")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--include-na", is_flag=True, help="Count Not_Applicable as compliant")
def stigmap_cli(ctx: click.Context, workspace: str, verbose: bool, include_na: bool) -> None:
    """stigmap - map STIG checklist findings to NIST 800-53 compliance."""
    from ..core.config import get_effective_config, resolve_path
    from ..utils.logger import setup_logger

    overrides = {}
    if include_na:
        overrides["compliance"] = {"include_not_applicable_as_compliant": True}

    config = get_effective_config(Path(workspace), cli_overrides=overrides)
    log_file = config["logging"].get("file")
    setup_logger(
        level=config["logging"].get("level", "INFO"),
        log_file=resolve_path(config, log_file) if log_file else None,
        verbose=verbose,
    )
    ctx.obj = {"config": config}


@stigmap_cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize a stigmap workspace."""
    from ..core.config import initialize_workspace

    workspace = Path(ctx.obj["config"]["_workspace"])
    config_path = initialize_workspace(workspace)
    console.print(f"  [green]Initialized[/green] {config_path.parent} in {workspace.resolve().name}")


@stigmap_cli.command("import-catalog")
@click.pass_context
@click.argument("catalog_file", type=click.Path(exists=True, dir_okay=False))
def import_catalog_cmd(ctx: click.Context, catalog_file: str) -> None:
    """Load a CCI list (U_CCI_List.xml), replacing the current catalog.

    Findings already imported are re-mapped to the new catalog.
    """
    from ..core.errors import StigmapError
    from ..core.pipeline import import_catalog

    try:
        store = _open_store(ctx)
        catalog = import_catalog(Path(catalog_file), store, ctx.obj["config"])
    except StigmapError as e:
        _fail(str(e))
    console.print(f"  [green]OK[/green] {len(catalog)} CCI mappings loaded from {Path(catalog_file).name}")


@stigmap_cli.command("import")
@click.pass_context
@click.argument("checklists", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def import_cmd(ctx: click.Context, checklists: tuple[str, ...]) -> None:
    """Import one or more .ckl/.cklb checklists.

    Each file is imported on its own; a failing file is reported and the
    rest continue.
    """
    from ..core.errors import StigmapError
    from ..core.pipeline import import_checklist
    from ..utils.text import redact_home

    config = ctx.obj["config"]
    try:
        store = _open_store(ctx)
        catalog = store.load_catalog(config["catalog"]["reference_title"])
    except StigmapError as e:
        _fail(str(e))
    if len(catalog) == 0:
        console.print("  [yellow]WARN[/yellow] No CCI catalog loaded; findings will have no NIST mapping.")

    failures = 0
    for name in checklists:
        path = Path(name)
        with console.status(f"Importing {path.name}...") as status:
            def progress(done: int, total: int) -> None:
                status.update(f"Importing {path.name}... {done}/{total}")

            try:
                result = import_checklist(path, store, catalog, config, progress=progress)
            except StigmapError as e:
                failures += 1
                console.print(f"  [red]FAILED[/red] {escape(redact_home(str(e)))}")
                continue

        line = f"  [green]OK[/green] {result.file_name}: {result.finding_count} findings (file_id={result.file_id})"
        if result.missing_ccis:
            line += f", {len(result.missing_ccis)} unmapped CCIs"
        if result.skipped:
            line += f", {result.skipped} malformed entries skipped"
        console.print(line)

    if failures:
        sys.exit(1)


@stigmap_cli.command()
@click.pass_context
def files(ctx: click.Context) -> None:
    """List imported checklists."""
    from ..core.errors import StigmapError

    try:
        records = _open_store(ctx).list_files()
    except StigmapError as e:
        _fail(str(e))

    table = Table(title="Imported checklists")
    for col in ("ID", "File", "Type", "STIG", "Findings", "Status", "Imported"):
        table.add_column(col, no_wrap=col in ("ID", "File"))
    for rec in records:
        stig = f"{rec.stig_title} V{rec.stig_version}" if rec.stig_version else rec.stig_title
        table.add_row(
            str(rec.file_id), rec.file_name, rec.file_type, stig,
            str(rec.record_count), rec.processing_status,
            rec.import_date.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@stigmap_cli.command()
@click.pass_context
@click.option("--file-id", type=int, help="Restrict to one imported checklist")
def analyze(ctx: click.Context, file_id: Optional[int]) -> None:
    """Compute compliance statistics and recommendations."""
    from ..compliance.families import family_name
    from ..core.errors import StigmapError
    from ..core.pipeline import analyze as run_analysis

    try:
        store = _open_store(ctx)
        result = run_analysis(store, ctx.obj["config"], file_id=file_id)
    except StigmapError as e:
        _fail(str(e))

    overall = result.overall
    console.print(
        f"  Findings: {overall.total}  Open: {overall.open}  Compliant: {overall.compliant}  "
        f"Not Reviewed: {overall.not_reviewed}  Compliance: [bold]{overall.compliance_percentage}%[/bold]"
    )

    table = Table(title="Control families")
    for col in ("Family", "Name", "Total", "Open", "Compliant", "Compliance"):
        table.add_column(col)
    for code, stat in result.by_family.items():
        table.add_row(
            code, family_name(code), str(stat.total), str(stat.open),
            str(stat.compliant), f"{stat.compliance_percentage}%",
        )
    console.print(table)

    colors = {"Critical": "red", "High": "yellow", "Medium": "cyan"}
    for rec in result.recommendations:
        color = colors.get(rec.priority.value, "white")
        console.print(f"  [{color}]{rec.priority.value}[/{color}] {rec.message}")


@stigmap_cli.command()
@click.pass_context
@click.option("--output-format", "-f", type=click.Choice(["markdown", "json", "excel"]), default=None)
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file")
@click.option("--file-id", type=int, help="Restrict to one imported checklist")
def report(ctx: click.Context, output_format: Optional[str], output: Optional[str], file_id: Optional[int]) -> None:
    """Write a compliance report (Markdown, JSON or Excel)."""
    from ..core.errors import StigmapError
    from ..core.pipeline import analyze as run_analysis
    from ..core.pipeline import default_report_path, export_report

    config = ctx.obj["config"]
    fmt = output_format or config["output"].get("format", "markdown")
    out_path = Path(output) if output else default_report_path(config, fmt)
    scope = f"file_id {file_id}" if file_id is not None else "all checklists"

    try:
        store = _open_store(ctx)
        result = run_analysis(store, config, file_id=file_id)
        export_report(result, store, fmt, out_path, title=scope)
    except StigmapError as e:
        _fail(str(e))

    console.print(f"  [green]Wrote[/green] {out_path}")


@stigmap_cli.command()
@click.pass_context
def exports(ctx: click.Context) -> None:
    """Show the report export history."""
    from ..core.errors import StigmapError

    try:
        records = _open_store(ctx).list_exports()
    except StigmapError as e:
        _fail(str(e))

    table = Table(title="Report exports")
    for col in ("ID", "Date", "Type", "Status", "Findings", "Path"):
        table.add_column(col, no_wrap=col in ("ID", "Status"))
    for rec in records:
        status = rec.export_status if rec.export_status == "Success" else f"[red]{rec.export_status}[/red]"
        path = rec.file_path if not rec.error_message else f"{rec.file_path} ({rec.error_message})"
        table.add_row(
            str(rec.export_id), rec.export_date.strftime("%Y-%m-%d %H:%M"), rec.export_type,
            status, str(rec.record_count), path,
        )
    console.print(table)


def main() -> None:
    stigmap_cli()


if __name__ == "__main__":
    main()
