from __future__ import annotations

import html
import platform
import socket
from collections.abc import Sequence
from pathlib import Path

from wormscan import __version__
from wormscan.models import (
    Finding,
    FindingType,
    ReportMeta,
    ReportSummary,
    ScanOptions,
    ScanReport,
    ScanResult,
)

REPORT_FORMATS = ("json", "markdown", "html")
REPORT_SUFFIX = {"json": ".json", "markdown": ".md", "html": ".html"}

RECOMMENDED_ACTIONS = [
    "DO NOT run `npm install` in affected projects",
    "Remove infected packages from `package.json`",
    "Delete `node_modules` and `package-lock.json`",
    "Check `.github/workflows` for suspicious files (especially `discussion.yaml`)",
    "Rotate ALL credentials immediately: AWS, Azure, Google Cloud, GitHub tokens, npm tokens",
    "Review GitHub Actions for unauthorized workflows and self-hosted runners named `SHA1HULUD`",
    "Check for the Bun runtime: `which bun`",
    'Review GitHub for repositories with descriptions containing "Shai-Hulud"',
]

REFERENCES = [
    ("Wiz Research", "https://www.wiz.io/blog/shai-hulud-2-0-ongoing-supply-chain-attack"),
    ("Datadog Security Labs", "https://securitylabs.datadoghq.com/articles/shai-hulud-2.0-npm-worm/"),
    ("Check Point Research", "https://blog.checkpoint.com/research/shai-hulud-2-0-inside-the-second-coming"),
]


def create_report(result: ScanResult, directories: Sequence[Path | str], options: ScanOptions) -> ScanReport:
    return ScanReport(
        meta=ReportMeta(
            version=__version__,
            hostname=socket.gethostname(),
            platform=platform.system().lower(),
            python_version=platform.python_version(),
        ),
        directories=[str(d) for d in directories],
        options=options,
        summary=ReportSummary(
            critical=len(result.critical),
            warning=len(result.warning),
            info=len(result.info),
            status="INFECTED" if result.infected else "CLEAN",
        ),
        findings=result,
    )


def finding_details(finding: Finding) -> list[tuple[str, str]]:
    """Label/value pairs for the fields a finding actually carries."""
    details: list[tuple[str, str]] = []
    if finding.package:
        details.append(("Package", f"{finding.package}@{finding.version}"))
        if finding.dep_type:
            details.append(("Dependency Type", finding.dep_type))
        if finding.infected_versions:
            details.append(("Known infected versions", ", ".join(finding.infected_versions)))
    if finding.file:
        details.append(("File", finding.file))
    if finding.path and not finding.file:
        details.append(("Path", finding.path))
    if finding.artifact:
        details.append(("Artifact", finding.artifact))
    if finding.sha256:
        verdict = "known payload" if finding.hash_match else "unknown hash"
        details.append(("SHA-256", f"{finding.sha256} ({verdict})"))
    if finding.process:
        details.append(("Process", finding.process))
    if finding.script:
        details.append(("Script", finding.script))
        details.append(("Content", finding.content or ""))
    if finding.message:
        details.append(("Message", finding.message))
    if finding.note:
        details.append(("Note", finding.note))
    return details


def generate_markdown(report: ScanReport) -> str:
    lines = [
        "# wormscan Scan Report",
        "## Shai-Hulud 2 Malware Detection Results",
        "",
        "## Summary",
        "",
        f"**Status:** {report.summary.status}",
        "",
        "| Severity | Count |",
        "|----------|-------|",
        f"| Critical | {report.summary.critical} |",
        f"| Warning | {report.summary.warning} |",
        f"| Info | {report.summary.info} |",
        "",
        "## Scan Details",
        "",
        f"- **Date:** {report.meta.scan_date}",
        f"- **Hostname:** {report.meta.hostname}",
        f"- **Platform:** {report.meta.platform}",
        f"- **Python Version:** {report.meta.python_version}",
        "",
        "### Scanned Directories",
        "",
    ]
    lines.extend(f"- `{d}`" for d in report.directories)
    lines.append("")

    sections = (
        ("Critical Findings", report.findings.critical),
        ("Warnings", report.findings.warning),
    )
    for title, findings in sections:
        if not findings:
            continue
        lines.extend([f"## {title}", ""])
        if title == "Critical Findings":
            lines.extend(["> **IMMEDIATE ACTION REQUIRED**", ""])
        for index, finding in enumerate(findings, 1):
            lines.extend([f"### {index}. {finding.type.value}", ""])
            lines.extend(f"- **{label}:** `{value}`" for label, value in finding_details(finding))
            lines.append("")

    if report.findings.info:
        lines.extend(
            [
                "## Informational",
                "",
                "These items are not necessarily compromised but should be reviewed if malware was detected.",
                "",
            ]
        )
        for finding in report.findings.info:
            if finding.type == FindingType.CREDENTIAL_FILE_EXISTS:
                lines.append(f"- `{finding.file}` - {finding.note}")
            else:
                lines.append(f"- {finding.type.value}: `{finding.file or finding.path}` - {finding.message}")
        lines.append("")

    if report.summary.critical:
        lines.extend(["## Recommended Actions", ""])
        lines.extend(f"{i}. {action}" for i, action in enumerate(RECOMMENDED_ACTIONS, 1))
        lines.append("")

    lines.extend(["## References", ""])
    lines.extend(f"- [{name}]({url})" for name, url in REFERENCES)
    lines.extend(["", "---", f"*Generated by wormscan v{report.meta.version}*", ""])
    return "\n".join(lines)


def _html_findings(title: str, css_class: str, findings: list[Finding]) -> str:
    if not findings:
        return ""
    items = []
    for finding in findings:
        rows = "".join(
            f"<tr><th>{html.escape(label)}</th><td><code>{html.escape(value)}</code></td></tr>"
            for label, value in finding_details(finding)
        )
        items.append(
            f'<div class="finding {css_class}"><h3>{html.escape(finding.type.value)}</h3>'
            f"<table>{rows}</table></div>"
        )
    return f"<h2>{html.escape(title)} ({len(findings)})</h2>\n" + "\n".join(items)


def generate_html(report: ScanReport) -> str:
    status_class = "clean" if report.summary.status == "CLEAN" else "infected"
    directories = "".join(f"<li><code>{html.escape(d)}</code></li>" for d in report.directories)
    actions = ""
    if report.summary.critical:
        actions = "<h2>Recommended Actions</h2><ol>" + "".join(
            f"<li>{html.escape(a)}</li>" for a in RECOMMENDED_ACTIONS
        ) + "</ol>"
    references = "".join(
        f'<li><a href="{html.escape(url)}">{html.escape(name)}</a></li>' for name, url in REFERENCES
    )
    body = "\n".join(
        part
        for part in (
            _html_findings("Critical Findings", "critical", report.findings.critical),
            _html_findings("Warnings", "warning", report.findings.warning),
            _html_findings("Informational", "info", report.findings.info),
        )
        if part
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>wormscan Scan Report</title>
  <style>
    body {{ font-family: system-ui, sans-serif; max-width: 960px; margin: 2rem auto; color: #1f2937; }}
    .status {{ padding: 1rem; border-radius: 6px; font-weight: bold; color: #fff; }}
    .status.clean {{ background: #16a34a; }}
    .status.infected {{ background: #dc2626; }}
    .finding {{ border-left: 4px solid #9ca3af; padding: 0.5rem 1rem; margin: 1rem 0; }}
    .finding.critical {{ border-color: #dc2626; }}
    .finding.warning {{ border-color: #f59e0b; }}
    .finding.info {{ border-color: #3b82f6; }}
    th {{ text-align: left; padding-right: 1rem; }}
  </style>
</head>
<body>
  <h1>wormscan Scan Report</h1>
  <div class="status {status_class}">Status: {html.escape(report.summary.status)}</div>
  <p>Critical: {report.summary.critical} | Warning: {report.summary.warning} | Info: {report.summary.info}</p>
  <p>Date: {html.escape(report.meta.scan_date)} | Host: {html.escape(report.meta.hostname)}</p>
  <h2>Scanned Directories</h2>
  <ul>{directories}</ul>
{body}
{actions}
  <h2>References</h2>
  <ul>{references}</ul>
  <footer><em>Generated by wormscan v{html.escape(report.meta.version)}</em></footer>
</body>
</html>
"""


def save_reports(report: ScanReport, base_path: Path, formats: Sequence[str]) -> dict[str, Path]:
    writers = {
        "json": report.to_json,
        "markdown": lambda: generate_markdown(report),
        "html": lambda: generate_html(report),
    }
    base_path.parent.mkdir(parents=True, exist_ok=True)
    written: dict[str, Path] = {}
    for fmt in formats:
        if fmt not in writers:
            raise ValueError(f"Unknown report format: {fmt}")
        target = base_path.with_name(base_path.name + REPORT_SUFFIX[fmt])
        target.write_text(writers[fmt](), encoding="utf-8")
        written[fmt] = target
    return written
