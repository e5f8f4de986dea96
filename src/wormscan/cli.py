from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console

from wormscan import __version__
from wormscan.analysis import resolve_targets, scan
from wormscan.intel import load_configured_database
from wormscan.iocdb import LoadError
from wormscan.logs import LOG_LEVELS, configure_logging
from wormscan.models import ScanOptions
from wormscan.render import render_result
from wormscan.report import REPORT_FORMATS, create_report, save_reports
from wormscan.rules import load_compiled_builtin_rulepack, load_rulepack_file
from wormscan.system import check_credential_files, check_running_processes

app = typer.Typer(help="wormscan: Shai-Hulud 2 supply-chain compromise scanner")
console = Console()

REPORT_BASENAME = "wormscan-report"


@app.command("version")
def version() -> None:
    console.print(f"wormscan {__version__}")


@app.command("scan")
def scan_cmd(
    targets: list[Path] | None = typer.Argument(None, help="Directories to scan (default: current directory)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Include parse/read diagnostics"),
    json_output: bool = typer.Option(False, "--json", help="Print findings as JSON only"),
    scan_all: bool = typer.Option(False, "--all", help="Scan common project directories under home"),
    processes: bool = typer.Option(False, "--processes", help="Check for suspicious running processes"),
    credentials: bool = typer.Option(False, "--credentials", help="List credential files worth rotating"),
    full: bool = typer.Option(False, "--full", help="Enable --processes and --credentials"),
    report: bool = typer.Option(False, "--report", "-r", help="Write JSON, Markdown and HTML reports"),
    markdown: bool = typer.Option(False, "--markdown", "--md", help="Write a Markdown report"),
    html_report: bool = typer.Option(False, "--html", help="Write an HTML report"),
    output: Path = typer.Option(Path("."), "--output", "-o", help="Directory for written reports"),
    ioc_db: Path | None = typer.Option(None, "--ioc-db", help="IOC database (Markdown table or TSV)"),
    rules_file: Path | None = typer.Option(None, "--rules", help="Custom rule pack YAML"),
    check_hashes: bool = typer.Option(False, "--check-hashes", help="Hash matched artifacts"),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    if log_level.upper() not in LOG_LEVELS:
        console.print(f"[bold red]Invalid --log-level:[/] expected one of {', '.join(LOG_LEVELS)}")
        raise typer.Exit(2)
    configure_logging("INFO" if verbose and log_level.upper() == "WARNING" else log_level)

    try:
        rules = load_rulepack_file(rules_file) if rules_file else load_compiled_builtin_rulepack()
        database, database_path = load_configured_database(ioc_db)
    except LoadError as exc:
        if json_output:
            typer.echo(json.dumps({"error": str(exc)}))
        else:
            console.print(f"[bold red]Fatal:[/] {exc}")
        raise typer.Exit(2)

    directories = resolve_targets(targets or [], scan_all=scan_all, rules=rules)
    if not json_output:
        stats = database.stats()
        console.print(
            f"Loaded {stats['unique_packages']} infected packages "
            f"({stats['total_versions']} versions) from {database_path}"
        )
        noun = "directory" if len(directories) == 1 else "directories"
        console.print(f"Scanning {len(directories)} {noun}...")

    result = scan(directories, database, verbose=verbose, rules=rules, check_hashes=check_hashes)

    if processes or full:
        result.extend(check_running_processes(rules))
    if credentials or full:
        result.extend(check_credential_files(rules=rules))

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        render_result(result, console=console)

    requested = {"json": report, "markdown": report or markdown, "html": report or html_report}
    formats = [fmt for fmt in REPORT_FORMATS if requested[fmt]]
    if formats:
        options = ScanOptions(
            verbose=verbose,
            check_processes=processes or full,
            check_credentials=credentials or full,
            check_hashes=check_hashes,
        )
        written = save_reports(create_report(result, directories, options), output / REPORT_BASENAME, formats)
        if not json_output:
            for fmt, path in written.items():
                console.print(f"[cyan]Saved {fmt} report:[/] {path}")

    if result.infected:
        raise typer.Exit(1)


@app.command("iocs")
def iocs_cmd(
    path: Path | None = typer.Argument(None, help="IOC database (default: configured database)"),
) -> None:
    try:
        database, database_path = load_configured_database(path)
    except LoadError as exc:
        console.print(f"[bold red]Fatal:[/] {exc}")
        raise typer.Exit(2)
    stats = database.stats()
    console.print(f"IOC database: {database_path}")
    console.print(f"Packages: {stats['unique_packages']}")
    console.print(f"Versions: {stats['total_versions']}")


if __name__ == "__main__":
    app()
