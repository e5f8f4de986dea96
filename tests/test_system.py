from __future__ import annotations

import subprocess
from pathlib import Path

import wormscan.system as system
from wormscan.models import FindingType, Severity


def test_process_check_flags_matching_lines(monkeypatch) -> None:
    lines = [
        "USER PID COMMAND",
        "dev 101 node server.js",
        "dev 202 bun run bun_environment.js",
        "dev 303 /tmp/setup_bun --detach",
    ]
    monkeypatch.setattr(system, "list_processes", lambda: lines)
    findings = system.check_running_processes()
    assert [f.process for f in findings] == [
        "dev 202 bun run bun_environment.js",
        "dev 303 /tmp/setup_bun --detach",
    ]
    assert all(f.type == FindingType.SUSPICIOUS_PROCESS for f in findings)
    assert all(f.severity == Severity.CRITICAL for f in findings)


def test_process_check_survives_missing_ps(monkeypatch) -> None:
    def boom() -> list[str]:
        raise FileNotFoundError("ps")

    monkeypatch.setattr(system, "list_processes", boom)
    assert system.check_running_processes() == []

    def timeout() -> list[str]:
        raise subprocess.TimeoutExpired(["ps"], 10)

    monkeypatch.setattr(system, "list_processes", timeout)
    assert system.check_running_processes() == []


def test_credential_files(tmp_path: Path) -> None:
    (tmp_path / ".aws").mkdir()
    (tmp_path / ".aws" / "credentials").write_text("[default]\n", encoding="utf-8")
    (tmp_path / ".npmrc").write_text("//registry.npmjs.org/:_authToken=x\n", encoding="utf-8")

    findings = system.check_credential_files(home=tmp_path)
    assert [f.file for f in findings] == [
        str(tmp_path / ".aws" / "credentials"),
        str(tmp_path / ".npmrc"),
    ]
    assert all(f.type == FindingType.CREDENTIAL_FILE_EXISTS for f in findings)
    assert all(f.severity == Severity.INFO for f in findings)
    assert all("rotate" in (f.note or "") for f in findings)


def test_no_credential_files(tmp_path: Path) -> None:
    assert system.check_credential_files(home=tmp_path) == []
