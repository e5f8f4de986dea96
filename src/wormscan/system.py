from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

from wormscan.models import Finding, FindingType, Severity
from wormscan.rules import CompiledRulePack, load_compiled_builtin_rulepack

LOGGER = logging.getLogger("wormscan.system")

PROCESS_LIST_TIMEOUT = 10


def _process_list_command() -> list[str]:
    if sys.platform.startswith("win"):
        return ["tasklist"]
    return ["ps", "aux"]


def list_processes() -> list[str]:
    completed = subprocess.run(
        _process_list_command(),
        capture_output=True,
        text=True,
        timeout=PROCESS_LIST_TIMEOUT,
        check=True,
    )
    return completed.stdout.splitlines()


def check_running_processes(rules: CompiledRulePack | None = None) -> list[Finding]:
    rules = rules or load_compiled_builtin_rulepack()
    try:
        lines = list_processes()
    except (OSError, subprocess.SubprocessError) as exc:
        # Restricted systems and containers often lack ps.
        LOGGER.warning("Process check skipped: %s", exc)
        return []

    findings: list[Finding] = []
    for line in lines:
        for pattern in rules.process_patterns:
            if pattern.search(line):
                findings.append(
                    Finding(
                        type=FindingType.SUSPICIOUS_PROCESS,
                        severity=Severity.CRITICAL,
                        process=line.strip(),
                    )
                )
                break
    return findings


def check_credential_files(home: Path | None = None, rules: CompiledRulePack | None = None) -> list[Finding]:
    rules = rules or load_compiled_builtin_rulepack()
    home = home or Path.home()
    findings: list[Finding] = []
    for relative in rules.credential_files:
        path = home / relative
        if path.exists():
            findings.append(
                Finding(
                    type=FindingType.CREDENTIAL_FILE_EXISTS,
                    severity=Severity.INFO,
                    file=str(path),
                    note="If malware was active, rotate these credentials",
                )
            )
    return findings
