from __future__ import annotations

import json
from pathlib import Path

import pytest

from wormscan.models import Finding, FindingType, ScanOptions, ScanResult, Severity
from wormscan.report import create_report, generate_html, generate_markdown, save_reports


def _infected_result() -> ScanResult:
    result = ScanResult()
    result.extend(
        [
            Finding(
                type=FindingType.INFECTED_PACKAGE,
                severity=Severity.CRITICAL,
                package="bad-package",
                version="1.0.0",
                declared_version="^1.0.0",
                dep_type="dependencies",
                file="/p/package.json",
            ),
            Finding(
                type=FindingType.MALICIOUS_ARTIFACT,
                severity=Severity.CRITICAL,
                artifact="setup_bun.js",
                path="/p/<setup_bun.js>",
            ),
            Finding(
                type=FindingType.CREDENTIAL_FILE_EXISTS,
                severity=Severity.INFO,
                file="/home/dev/.npmrc",
                note="If malware was active, rotate these credentials",
            ),
        ]
    )
    return result


def test_finding_serialization_omits_missing_fields() -> None:
    finding = _infected_result().critical[0]
    assert finding.to_dict() == {
        "type": "INFECTED_PACKAGE",
        "severity": "CRITICAL",
        "package": "bad-package",
        "version": "1.0.0",
        "declaredVersion": "^1.0.0",
        "depType": "dependencies",
        "file": "/p/package.json",
    }


def test_create_report_summary() -> None:
    report = create_report(_infected_result(), [Path("/p")], ScanOptions(verbose=True))
    assert report.summary.status == "INFECTED"
    assert (report.summary.critical, report.summary.warning, report.summary.info) == (2, 0, 1)
    assert report.directories == [str(Path("/p"))]
    payload = json.loads(report.to_json())
    assert payload["meta"]["tool"] == "wormscan"
    assert payload["options"]["verbose"] is True
    assert payload["findings"]["critical"][1]["artifact"] == "setup_bun.js"


def test_clean_report_status() -> None:
    report = create_report(ScanResult(), ["/p"], ScanOptions())
    assert report.summary.status == "CLEAN"
    markdown = generate_markdown(report)
    assert "**Status:** CLEAN" in markdown
    assert "## Recommended Actions" not in markdown
    assert "## References" in markdown


def test_markdown_report_sections() -> None:
    markdown = generate_markdown(create_report(_infected_result(), ["/p"], ScanOptions()))
    assert markdown.startswith("# wormscan Scan Report")
    assert "## Critical Findings" in markdown
    assert "### 1. INFECTED_PACKAGE" in markdown
    assert "- **Package:** `bad-package@1.0.0`" in markdown
    assert "## Informational" in markdown
    assert "`/home/dev/.npmrc`" in markdown
    assert "## Recommended Actions" in markdown


def test_html_report_escapes_values() -> None:
    html = generate_html(create_report(_infected_result(), ["/p"], ScanOptions()))
    assert 'class="status infected"' in html
    assert "/p/&lt;setup_bun.js&gt;" in html
    assert "<setup_bun.js>" not in html


def test_save_reports(tmp_path: Path) -> None:
    report = create_report(_infected_result(), ["/p"], ScanOptions())
    written = save_reports(report, tmp_path / "out" / "wormscan-report", ["json", "markdown", "html"])
    assert {fmt: path.name for fmt, path in written.items()} == {
        "json": "wormscan-report.json",
        "markdown": "wormscan-report.md",
        "html": "wormscan-report.html",
    }
    assert json.loads(written["json"].read_text(encoding="utf-8"))["summary"]["status"] == "INFECTED"


def test_save_reports_rejects_unknown_format(tmp_path: Path) -> None:
    report = create_report(ScanResult(), ["/p"], ScanOptions())
    with pytest.raises(ValueError):
        save_reports(report, tmp_path / "r", ["pdf"])
