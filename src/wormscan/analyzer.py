from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from wormscan.iocdb import IOCDatabase
from wormscan.models import Finding, FindingType, Severity
from wormscan.rules import CompiledRulePack, load_compiled_builtin_rulepack

LOGGER = logging.getLogger("wormscan.analyzer")

RANGE_OPERATORS = "^~>=<"
NODE_MODULES_PREFIX = "node_modules/"


def reduce_version_spec(spec: str) -> str:
    """Reduce a declared range to the literal it starts from.

    ``^1.2.3`` and ``>=1.0.0 <2.0.0`` become ``1.2.3`` and ``1.0.0``. This only
    looks at the lower bound; it does not work out which versions the whole
    range admits. Only the operators are stripped, so ``>= 1.0.0`` reduces to
    an empty string.
    """
    return spec.lstrip(RANGE_OPERATORS).split(" ")[0]


def lockfile_package_name(install_path: str) -> str:
    return install_path.removeprefix(NODE_MODULES_PREFIX).split(NODE_MODULES_PREFIX)[-1]


def _read_json(path: Path) -> object:
    text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except RecursionError as exc:
        raise ValueError("document nested too deeply") from exc


def _parse_error(exc: Exception, *, file: Path | None = None, path: Path | None = None) -> Finding:
    return Finding(
        type=FindingType.PARSE_ERROR,
        severity=Severity.INFO,
        file=str(file) if file is not None else None,
        path=str(path) if path is not None else None,
        message=f"Failed to parse: {exc}",
    )


def _dependency_findings(
    path: Path,
    section: str,
    declared: dict[str, object],
    ioc_db: IOCDatabase,
) -> list[Finding]:
    findings: list[Finding] = []
    for name, spec in declared.items():
        if not ioc_db.has(name) or not isinstance(spec, str):
            continue
        version = reduce_version_spec(spec)
        infected = ioc_db[name]
        if version in infected:
            findings.append(
                Finding(
                    type=FindingType.INFECTED_PACKAGE,
                    severity=Severity.CRITICAL,
                    package=name,
                    version=version,
                    declared_version=spec,
                    dep_type=section,
                    file=str(path),
                )
            )
            continue
        blocked = sorted(infected)
        findings.append(
            Finding(
                type=FindingType.KNOWN_TARGET,
                severity=Severity.WARNING,
                package=name,
                version=version,
                declared_version=spec,
                dep_type=section,
                file=str(path),
                infected_versions=blocked,
                note=(
                    "This package was compromised in the Shai-Hulud 2 attack but a different "
                    f"version is declared. Do NOT upgrade to: {', '.join(blocked)}"
                ),
            )
        )
    return findings


def _script_findings(path: Path, scripts: dict[str, object], rules: CompiledRulePack) -> list[Finding]:
    findings: list[Finding] = []
    for hook in rules.lifecycle_scripts:
        content = scripts.get(hook)
        if not isinstance(content, str) or not content:
            continue
        if any(marker in content for marker in rules.script_markers):
            findings.append(
                Finding(
                    type=FindingType.SUSPICIOUS_SCRIPT,
                    severity=Severity.WARNING,
                    script=hook,
                    content=content,
                    file=str(path),
                )
            )
    return findings


def check_manifest(
    path: Path,
    ioc_db: IOCDatabase,
    verbose: bool = False,
    rules: CompiledRulePack | None = None,
) -> list[Finding]:
    rules = rules or load_compiled_builtin_rulepack()
    try:
        data = _read_json(path)
    except (OSError, ValueError) as exc:
        LOGGER.debug("Failed to parse manifest %s: %s", path, exc)
        return [_parse_error(exc, file=path)] if verbose else []
    if not isinstance(data, dict):
        return []

    findings: list[Finding] = []
    for section in rules.dependency_sections:
        declared = data.get(section)
        if isinstance(declared, dict):
            findings.extend(_dependency_findings(path, section, declared, ioc_db))

    scripts = data.get("scripts")
    if isinstance(scripts, dict):
        findings.extend(_script_findings(path, scripts, rules))
    return findings


def _locked_finding(path: Path, name: str, version: str) -> Finding:
    return Finding(
        type=FindingType.INFECTED_LOCKED_PACKAGE,
        severity=Severity.CRITICAL,
        package=name,
        version=version,
        file=str(path),
    )


def _walk_v1_dependencies(
    path: Path,
    deps: dict[str, object],
    ioc_db: IOCDatabase,
    findings: list[Finding],
) -> None:
    stack = [iter(deps.items())]
    while stack:
        item = next(stack[-1], None)
        if item is None:
            stack.pop()
            continue
        name, info = item
        if not isinstance(info, dict):
            continue
        version = info.get("version")
        if ioc_db.is_infected(name, version):
            findings.append(_locked_finding(path, name, str(version)))
        nested = info.get("dependencies")
        if isinstance(nested, dict):
            stack.append(iter(nested.items()))


def check_lockfile(path: Path, ioc_db: IOCDatabase, verbose: bool = False) -> list[Finding]:
    try:
        data = _read_json(path)
    except (OSError, ValueError) as exc:
        LOGGER.debug("Failed to parse lockfile %s: %s", path, exc)
        return [_parse_error(exc, file=path)] if verbose else []
    if not isinstance(data, dict):
        return []

    findings: list[Finding] = []

    # lockfileVersion 2/3
    packages = data.get("packages")
    if isinstance(packages, dict):
        for install_path, info in packages.items():
            if not install_path or not isinstance(info, dict):
                continue
            name = lockfile_package_name(install_path)
            version = info.get("version")
            if ioc_db.is_infected(name, version):
                findings.append(_locked_finding(path, name, str(version)))

    # lockfileVersion 1
    dependencies = data.get("dependencies")
    if isinstance(dependencies, dict):
        _walk_v1_dependencies(path, dependencies, ioc_db, findings)

    return findings


def _installed_package_dirs(node_modules: Path) -> list[tuple[str, Path]]:
    packages: list[tuple[str, Path]] = []
    with os.scandir(node_modules) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if not entry.is_dir():
            continue
        if not entry.name.startswith("@"):
            packages.append((entry.name, Path(entry.path)))
            continue
        try:
            with os.scandir(entry.path) as scoped_it:
                scoped = sorted(scoped_it, key=lambda e: e.name)
        except OSError as exc:
            LOGGER.debug("Unable to read scope directory %s: %s", entry.path, exc)
            continue
        for scoped_entry in scoped:
            if scoped_entry.is_dir():
                packages.append((f"{entry.name}/{scoped_entry.name}", Path(scoped_entry.path)))
    return packages


def check_installed_packages(node_modules: Path, ioc_db: IOCDatabase, verbose: bool = False) -> list[Finding]:
    try:
        installed = _installed_package_dirs(node_modules)
    except OSError as exc:
        LOGGER.debug("Unable to read %s: %s", node_modules, exc)
        if not verbose:
            return []
        return [
            Finding(
                type=FindingType.READ_ERROR,
                severity=Severity.INFO,
                path=str(node_modules),
                message=f"Failed to read: {exc}",
            )
        ]

    findings: list[Finding] = []
    for name, package_dir in installed:
        if not ioc_db.has(name):
            continue
        manifest = package_dir / "package.json"
        if not manifest.is_file():
            continue
        try:
            data = _read_json(manifest)
        except (OSError, ValueError) as exc:
            LOGGER.debug("Skipping unreadable installed manifest %s: %s", manifest, exc)
            if verbose:
                findings.append(_parse_error(exc, path=manifest))
            continue
        version = data.get("version") if isinstance(data, dict) else None
        if ioc_db.is_infected(name, version):
            findings.append(
                Finding(
                    type=FindingType.INSTALLED_INFECTED_PACKAGE,
                    severity=Severity.CRITICAL,
                    package=name,
                    version=str(version),
                    path=str(package_dir),
                )
            )
    return findings
