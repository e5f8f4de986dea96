from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Severity(StrEnum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class FindingType(StrEnum):
    INFECTED_PACKAGE = "INFECTED_PACKAGE"
    KNOWN_TARGET = "KNOWN_TARGET"
    SUSPICIOUS_SCRIPT = "SUSPICIOUS_SCRIPT"
    INFECTED_LOCKED_PACKAGE = "INFECTED_LOCKED_PACKAGE"
    INSTALLED_INFECTED_PACKAGE = "INSTALLED_INFECTED_PACKAGE"
    MALICIOUS_ARTIFACT = "MALICIOUS_ARTIFACT"
    SUSPICIOUS_PROCESS = "SUSPICIOUS_PROCESS"
    CREDENTIAL_FILE_EXISTS = "CREDENTIAL_FILE_EXISTS"
    PARSE_ERROR = "PARSE_ERROR"
    READ_ERROR = "READ_ERROR"


class CandidateKind(StrEnum):
    MANIFEST = "manifest"
    LOCKFILE = "lockfile"
    DEPENDENCY_ROOT = "dependency-root"


class Finding(BaseModel):
    """One classified detection result.

    Only ``type`` and ``severity`` are always present; every other field is
    filled in for the finding types that have that piece of context and is
    dropped from the serialized form otherwise.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: FindingType
    severity: Severity
    package: str | None = None
    version: str | None = None
    declared_version: str | None = None
    dep_type: str | None = None
    file: str | None = None
    path: str | None = None
    artifact: str | None = None
    script: str | None = None
    content: str | None = None
    note: str | None = None
    message: str | None = None
    infected_versions: list[str] | None = None
    sha256: str | None = None
    hash_match: bool | None = None
    process: str | None = None

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScanCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CandidateKind
    path: Path


class ArtifactMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact: str
    path: Path
    sha256: str | None = None
    hash_match: bool | None = None


class ScanResult(BaseModel):
    critical: list[Finding] = Field(default_factory=list)
    warning: list[Finding] = Field(default_factory=list)
    info: list[Finding] = Field(default_factory=list)

    def add(self, finding: Finding) -> None:
        if finding.severity == Severity.CRITICAL:
            self.critical.append(finding)
        elif finding.severity == Severity.WARNING:
            self.warning.append(finding)
        else:
            self.info.append(finding)

    def extend(self, findings: list[Finding]) -> None:
        for finding in findings:
            self.add(finding)

    @property
    def infected(self) -> bool:
        return bool(self.critical)

    def to_dict(self) -> dict[str, list[dict[str, object]]]:
        return {
            "critical": [f.to_dict() for f in self.critical],
            "warning": [f.to_dict() for f in self.warning],
            "info": [f.to_dict() for f in self.info],
        }


class ReportMeta(BaseModel):
    tool: str = "wormscan"
    version: str
    description: str = "Shai-Hulud 2 supply-chain compromise scanner"
    scan_date: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    hostname: str
    platform: str
    python_version: str


class ScanOptions(BaseModel):
    verbose: bool = False
    check_processes: bool = False
    check_credentials: bool = False
    check_hashes: bool = False


class ReportSummary(BaseModel):
    critical: int
    warning: int
    info: int
    status: str


class ScanReport(BaseModel):
    meta: ReportMeta
    directories: list[str]
    options: ScanOptions
    summary: ReportSummary
    findings: ScanResult

    def to_json(self) -> str:
        payload = self.model_dump(mode="json", exclude={"findings"})
        payload["findings"] = self.findings.to_dict()
        return json.dumps(payload, indent=2)
