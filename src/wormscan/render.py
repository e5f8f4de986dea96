from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from wormscan.models import Finding, FindingType, ScanResult
from wormscan.report import RECOMMENDED_ACTIONS, finding_details


def _findings_table(title: str, findings: list[Finding], style: str) -> Table:
    table = Table(title=title, show_lines=True, title_style=style)
    table.add_column("Type", style="cyan")
    table.add_column("Details")
    for finding in findings:
        details = "\n".join(f"{label}: {value}" for label, value in finding_details(finding))
        table.add_row(finding.type.value, Text(details))
    return table


def render_result(result: ScanResult, console: Console | None = None) -> None:
    console = console or Console()

    known_targets = [f for f in result.warning if f.type == FindingType.KNOWN_TARGET]
    other_warnings = [f for f in result.warning if f.type != FindingType.KNOWN_TARGET]

    if result.critical:
        status, style = "INFECTED", "bold red"
    elif other_warnings:
        status, style = "SUSPICIOUS", "bold yellow"
    else:
        status, style = "CLEAN", "bold green"

    summary = (
        f"[bold]Infected:[/bold] {len(result.critical)}\n"
        f"[bold]Warnings:[/bold] {len(other_warnings)}\n"
        f"[bold]Targeted packages:[/bold] {len(known_targets)}\n"
        f"[bold]Info:[/bold] {len(result.info)}"
    )
    console.print(Panel(summary, title=f"Status: [{style}]{status}[/]", border_style=style))

    if not result.critical and not other_warnings:
        if known_targets:
            console.print("[green]No infected packages found.[/green]")
        else:
            console.print("[green]No infected packages or malicious artifacts found.[/green]")

    if result.critical:
        console.print(_findings_table("Critical Findings", result.critical, "bold red"))
    if other_warnings:
        console.print(_findings_table("Warnings", other_warnings, "bold yellow"))
    if known_targets:
        console.print(
            "[yellow]These packages were targeted in the attack. The declared versions are not "
            "on the infected list, but be careful when updating them.[/yellow]"
        )
        console.print(_findings_table("Targeted Packages", known_targets, "yellow"))
    if result.info:
        console.print(_findings_table("Informational", result.info, "blue"))

    if result.critical:
        actions = "\n".join(f"{i}. {action}" for i, action in enumerate(RECOMMENDED_ACTIONS, 1))
        console.print(Panel(actions, title="Recommended Actions", border_style="red"))
