from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path, PurePath

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError

from wormscan.iocdb import LoadError

WORKFLOWS_SEGMENT = ".github/workflows/"
SUSPICIOUS_WORKFLOW = "suspicious_workflow"


class RulePack(BaseModel):
    version: str
    artifacts: list[str] = Field(default_factory=list)
    workflow_pattern: str | None = None
    artifact_hashes: dict[str, list[str]] = Field(default_factory=dict)
    dependency_sections: list[str] = Field(
        default_factory=lambda: [
            "dependencies",
            "devDependencies",
            "peerDependencies",
            "optionalDependencies",
        ]
    )
    lifecycle_scripts: list[str] = Field(default_factory=lambda: ["preinstall", "postinstall", "prepare"])
    script_markers: list[str] = Field(default_factory=list)
    process_patterns: list[str] = Field(default_factory=list)
    credential_files: list[str] = Field(default_factory=list)
    common_project_dirs: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class PathSuffixRule:
    artifact: str

    def matches(self, full_path: str, name: str) -> bool:
        return full_path.endswith(self.artifact)


@dataclass(frozen=True)
class BasenameRule:
    artifact: str

    def matches(self, full_path: str, name: str) -> bool:
        return name == self.artifact


ArtifactRule = PathSuffixRule | BasenameRule


@dataclass(frozen=True)
class WorkflowPatternRule:
    pattern: re.Pattern[str]
    artifact: str = SUSPICIOUS_WORKFLOW

    def matches(self, full_path: str, name: str) -> bool:
        return WORKFLOWS_SEGMENT in full_path and self.pattern.search(name) is not None


@dataclass(frozen=True)
class CompiledRulePack:
    version: str
    artifact_rules: tuple[ArtifactRule, ...]
    workflow_rule: WorkflowPatternRule | None
    artifact_hashes: dict[str, frozenset[str]]
    dependency_sections: tuple[str, ...]
    lifecycle_scripts: tuple[str, ...]
    script_markers: tuple[str, ...]
    process_patterns: tuple[re.Pattern[str], ...]
    credential_files: tuple[str, ...]
    common_project_dirs: tuple[str, ...]


def compile_artifact_rule(artifact: str) -> ArtifactRule:
    if "/" in artifact:
        return PathSuffixRule(artifact)
    return BasenameRule(artifact)


def posix_path(path: Path | str) -> str:
    return PurePath(path).as_posix()


def compile_rulepack(rp: RulePack) -> CompiledRulePack:
    try:
        workflow_rule = (
            WorkflowPatternRule(re.compile(rp.workflow_pattern)) if rp.workflow_pattern else None
        )
        process_patterns = tuple(re.compile(p, re.IGNORECASE) for p in rp.process_patterns)
    except re.error as exc:
        raise LoadError(f"Invalid pattern in rule pack {rp.version}: {exc}") from exc
    return CompiledRulePack(
        version=rp.version,
        artifact_rules=tuple(compile_artifact_rule(a) for a in rp.artifacts),
        workflow_rule=workflow_rule,
        artifact_hashes={
            name: frozenset(h.lower() for h in hashes) for name, hashes in rp.artifact_hashes.items()
        },
        dependency_sections=tuple(rp.dependency_sections),
        lifecycle_scripts=tuple(rp.lifecycle_scripts),
        script_markers=tuple(rp.script_markers),
        process_patterns=process_patterns,
        credential_files=tuple(rp.credential_files),
        common_project_dirs=tuple(rp.common_project_dirs),
    )


def _load_yaml_rule_file(raw: str, origin: str) -> RulePack:
    try:
        parsed = yaml.safe_load(raw)
        return RulePack.model_validate(parsed)
    except (yaml.YAMLError, ValidationError) as exc:
        raise LoadError(f"Invalid rule pack {origin}: {exc}") from exc


def load_builtin_rulepack() -> RulePack:
    raw = resources.files("wormscan").joinpath("data/rules/shai_hulud_2.yaml").read_text(encoding="utf-8")
    return _load_yaml_rule_file(raw, "builtin:shai_hulud_2")


@lru_cache(maxsize=1)
def load_compiled_builtin_rulepack() -> CompiledRulePack:
    return compile_rulepack(load_builtin_rulepack())


def load_rulepack_file(path: Path) -> CompiledRulePack:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"Cannot read rule pack {path}: {exc}") from exc
    return compile_rulepack(_load_yaml_rule_file(raw, str(path)))
