from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from wormscan.analyzer import check_installed_packages, check_lockfile, check_manifest
from wormscan.iocdb import IOCDatabase
from wormscan.models import ArtifactMatch, CandidateKind, Finding, FindingType, ScanResult, Severity
from wormscan.rules import CompiledRulePack, load_compiled_builtin_rulepack
from wormscan.scanner import ErrorCallback, find_malicious_artifacts, find_package_files

LOGGER = logging.getLogger("wormscan.analysis")


def artifact_finding(match: ArtifactMatch) -> Finding:
    return Finding(
        type=FindingType.MALICIOUS_ARTIFACT,
        severity=Severity.CRITICAL,
        artifact=match.artifact,
        path=str(match.path),
        sha256=match.sha256,
        hash_match=match.hash_match,
    )


def scan_directory(
    root: Path,
    ioc_db: IOCDatabase,
    *,
    verbose: bool = False,
    rules: CompiledRulePack | None = None,
    check_hashes: bool = False,
    on_error: ErrorCallback | None = None,
) -> list[Finding]:
    rules = rules or load_compiled_builtin_rulepack()
    unreadable: dict[Path, OSError] = {}

    def record_error(path: Path, exc: OSError) -> None:
        unreadable.setdefault(path, exc)
        if on_error is not None:
            on_error(path, exc)

    candidates = find_package_files(root, on_error=record_error)
    by_kind: dict[CandidateKind, list[Path]] = {kind: [] for kind in CandidateKind}
    for candidate in candidates:
        by_kind[candidate.kind].append(candidate.path)
    LOGGER.info(
        "Found %d package.json, %d lock files, %d node_modules in %s",
        len(by_kind[CandidateKind.MANIFEST]),
        len(by_kind[CandidateKind.LOCKFILE]),
        len(by_kind[CandidateKind.DEPENDENCY_ROOT]),
        root,
    )

    findings: list[Finding] = []
    for path in by_kind[CandidateKind.MANIFEST]:
        findings.extend(check_manifest(path, ioc_db, verbose=verbose, rules=rules))
    for path in by_kind[CandidateKind.LOCKFILE]:
        findings.extend(check_lockfile(path, ioc_db, verbose=verbose))
    for path in by_kind[CandidateKind.DEPENDENCY_ROOT]:
        findings.extend(check_installed_packages(path, ioc_db, verbose=verbose))

    artifacts = find_malicious_artifacts(root, rules=rules, on_error=record_error, check_hashes=check_hashes)
    findings.extend(artifact_finding(match) for match in artifacts)

    if verbose:
        for path, exc in unreadable.items():
            findings.append(
                Finding(
                    type=FindingType.READ_ERROR,
                    severity=Severity.INFO,
                    path=str(path),
                    message=f"Failed to read: {exc}",
                )
            )
    return findings


def scan(
    targets: Sequence[Path | str],
    ioc_db: IOCDatabase,
    *,
    verbose: bool = False,
    rules: CompiledRulePack | None = None,
    check_hashes: bool = False,
    on_error: ErrorCallback | None = None,
) -> ScanResult:
    rules = rules or load_compiled_builtin_rulepack()
    result = ScanResult()
    for target in targets:
        root = Path(target).expanduser().absolute()
        if not root.is_dir():
            LOGGER.warning("Directory not found: %s", root)
            continue
        LOGGER.info("Scanning %s", root)
        result.extend(
            scan_directory(
                root,
                ioc_db,
                verbose=verbose,
                rules=rules,
                check_hashes=check_hashes,
                on_error=on_error,
            )
        )
    return result


def resolve_targets(
    paths: Sequence[Path],
    scan_all: bool = False,
    rules: CompiledRulePack | None = None,
    home: Path | None = None,
) -> list[Path]:
    if paths:
        return [Path(p).expanduser().absolute() for p in paths]
    if scan_all:
        rules = rules or load_compiled_builtin_rulepack()
        home = home or Path.home()
        existing = [home / d for d in rules.common_project_dirs if (home / d).is_dir()]
        return existing or [home]
    return [Path.cwd()]
