from __future__ import annotations

import json
from pathlib import Path

from wormscan.analysis import resolve_targets, scan, scan_directory
from wormscan.iocdb import IOCDatabase
from wormscan.models import FindingType
from wormscan.rules import load_compiled_builtin_rulepack

DB = IOCDatabase({"bad-package": {"1.0.0"}})


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_clean_directory_has_no_findings(tmp_path: Path) -> None:
    result = scan([tmp_path], DB)
    assert result.to_dict() == {"critical": [], "warning": [], "info": []}
    assert not result.infected


def test_infected_project_is_reported_per_source(tmp_path: Path) -> None:
    _write(tmp_path / "package.json", json.dumps({"dependencies": {"bad-package": "1.0.0"}}))
    _write(
        tmp_path / "package-lock.json",
        json.dumps({"packages": {"node_modules/bad-package": {"version": "1.0.0"}}}),
    )
    _write(tmp_path / "node_modules" / "bad-package" / "package.json", json.dumps({"version": "1.0.0"}))
    _write(tmp_path / "node_modules" / "bad-package" / "bun_environment.js", "")

    result = scan([tmp_path], DB)
    assert result.infected
    assert [f.type for f in result.critical] == [
        FindingType.INFECTED_PACKAGE,
        FindingType.INFECTED_LOCKED_PACKAGE,
        FindingType.INSTALLED_INFECTED_PACKAGE,
    ]
    assert result.warning == []


def test_artifacts_are_critical(tmp_path: Path) -> None:
    _write(tmp_path / ".github" / "workflows" / "discussion.yml", "on: discussion")
    result = scan([tmp_path], DB)
    assert [(f.type, f.artifact) for f in result.critical] == [
        (FindingType.MALICIOUS_ARTIFACT, ".github/workflows/discussion.yml")
    ]


def test_known_target_and_script_are_warnings(tmp_path: Path) -> None:
    _write(
        tmp_path / "package.json",
        json.dumps({"dependencies": {"bad-package": "^0.5.0"}, "scripts": {"postinstall": "node setup_bun.js"}}),
    )
    result = scan([tmp_path], DB)
    assert not result.infected
    assert sorted(f.type for f in result.warning) == [FindingType.KNOWN_TARGET, FindingType.SUSPICIOUS_SCRIPT]


def test_parse_errors_are_info_when_verbose(tmp_path: Path) -> None:
    _write(tmp_path / "package.json", "{broken")
    assert scan([tmp_path], DB).info == []
    info = scan([tmp_path], DB, verbose=True).info
    assert [f.type for f in info] == [FindingType.PARSE_ERROR]


def test_missing_target_is_skipped(tmp_path: Path) -> None:
    result = scan([tmp_path / "nope"], DB)
    assert result.to_dict() == {"critical": [], "warning": [], "info": []}


def test_multiple_targets_accumulate(tmp_path: Path) -> None:
    first = tmp_path / "a"
    second = tmp_path / "b"
    _write(first / "cloud.json", "{}")
    _write(second / "contents.json", "{}")
    result = scan([first, second], DB)
    assert [f.artifact for f in result.critical] == ["cloud.json", "contents.json"]


def test_scan_directory_reports_callback(tmp_path: Path) -> None:
    seen: list[Path] = []
    findings = scan_directory(
        tmp_path / "gone",
        DB,
        verbose=True,
        rules=load_compiled_builtin_rulepack(),
        on_error=lambda path, exc: seen.append(path),
    )
    assert [f.type for f in findings] == [FindingType.READ_ERROR]
    assert seen and all(p == tmp_path / "gone" for p in seen)


def test_resolve_targets(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert resolve_targets([]) == [tmp_path]
    assert resolve_targets([Path("x")]) == [tmp_path / "x"]

    home = tmp_path / "home"
    home.mkdir()
    assert resolve_targets([], scan_all=True, home=home) == [home]
    (home / "code").mkdir()
    (home / "repos").mkdir()
    assert resolve_targets([], scan_all=True, home=home) == [home / "code", home / "repos"]


def test_deeply_nested_manifest_does_not_abort_scan(tmp_path: Path) -> None:
    _write(tmp_path / "package.json", '{"a":' * 100000)
    _write(tmp_path / "cloud.json", "{}")
    result = scan([tmp_path], DB, verbose=True)
    assert [f.artifact for f in result.critical] == ["cloud.json"]
    assert [f.type for f in result.info] == [FindingType.PARSE_ERROR]


def test_very_deep_tree_is_scanned(tmp_path: Path) -> None:
    _write(tmp_path / "cloud.json", "{}")
    levels = []
    current = tmp_path
    for _ in range(1100):
        current = current / "d"
        current.mkdir()
        levels.append(current)
    _write(current / "contents.json", "{}")
    try:
        result = scan([tmp_path], DB)
        assert [f.artifact for f in result.critical] == ["cloud.json", "contents.json"]
    finally:
        (current / "contents.json").unlink()
        for level in reversed(levels):
            level.rmdir()
