from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

from wormscan.models import ArtifactMatch, CandidateKind, ScanCandidate
from wormscan.rules import CompiledRulePack, load_compiled_builtin_rulepack, posix_path

LOGGER = logging.getLogger("wormscan.scanner")

NODE_MODULES = "node_modules"
KEPT_HIDDEN_DIRS = {".github"}
CANDIDATE_FILES = {
    "package.json": CandidateKind.MANIFEST,
    "package-lock.json": CandidateKind.LOCKFILE,
}
MAX_HASH_FILE_SIZE = 10 * 1024 * 1024

ErrorCallback = Callable[[Path, OSError], None]
# Traversal is an explicit stack of open directories; depth is not bounded
# by the recursion limit.
DirFrame = tuple[Path, Iterator[os.DirEntry[str]]]


def _list_dir(directory: Path, on_error: ErrorCallback | None) -> list[os.DirEntry[str]]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda e: e.name)
    except OSError as exc:
        LOGGER.debug("Unable to read directory %s: %s", directory, exc)
        if on_error is not None:
            on_error(directory, exc)
        return []


def _open_dir(directory: Path, on_error: ErrorCallback | None) -> DirFrame:
    return directory, iter(_list_dir(directory, on_error))


def _is_real_dir(entry: os.DirEntry[str]) -> bool:
    # Symlinked directories are never descended into.
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False


def _is_symlinked_dir(entry: os.DirEntry[str]) -> bool:
    try:
        return entry.is_symlink() and entry.is_dir()
    except OSError:
        return False


def find_package_files(root: Path, on_error: ErrorCallback | None = None) -> list[ScanCandidate]:
    results: list[ScanCandidate] = []
    stack = [_open_dir(Path(root).absolute(), on_error)]
    while stack:
        current, entries = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue
        full_path = current / entry.name
        if entry.name == NODE_MODULES:
            if full_path.is_dir():
                results.append(ScanCandidate(kind=CandidateKind.DEPENDENCY_ROOT, path=full_path))
            continue
        if entry.name.startswith(".") and entry.name not in KEPT_HIDDEN_DIRS:
            continue
        if _is_real_dir(entry):
            stack.append(_open_dir(full_path, on_error))
        elif entry.name in CANDIDATE_FILES and not _is_symlinked_dir(entry):
            results.append(ScanCandidate(kind=CANDIDATE_FILES[entry.name], path=full_path))
    return results


def compute_file_hash(path: Path) -> str | None:
    try:
        if path.stat().st_size > MAX_HASH_FILE_SIZE:
            LOGGER.debug("File %s exceeds size limit for hashing", path)
            return None
        digest = hashlib.sha256()
        with path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(8192), b""):
                digest.update(chunk)
        return digest.hexdigest()
    except OSError as exc:
        LOGGER.debug("Unable to hash file %s: %s", path, exc)
        return None


def _hashed_match(artifact: str, path: Path, known: frozenset[str] | None) -> ArtifactMatch:
    if not known:
        return ArtifactMatch(artifact=artifact, path=path)
    digest = compute_file_hash(path)
    if digest is None:
        return ArtifactMatch(artifact=artifact, path=path)
    return ArtifactMatch(artifact=artifact, path=path, sha256=digest, hash_match=digest in known)


def find_malicious_artifacts(
    root: Path,
    rules: CompiledRulePack | None = None,
    on_error: ErrorCallback | None = None,
    check_hashes: bool = False,
) -> list[ArtifactMatch]:
    rules = rules or load_compiled_builtin_rulepack()
    results: list[ArtifactMatch] = []
    stack = [_open_dir(Path(root).absolute(), on_error)]
    while stack:
        current, entries = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue
        if entry.name == NODE_MODULES:
            continue
        full_path = current / entry.name
        if _is_real_dir(entry):
            stack.append(_open_dir(full_path, on_error))
            continue
        if _is_symlinked_dir(entry):
            continue
        path_text = posix_path(full_path)
        for rule in rules.artifact_rules:
            if not rule.matches(path_text, entry.name):
                continue
            if check_hashes:
                known = rules.artifact_hashes.get(entry.name)
                results.append(_hashed_match(rule.artifact, full_path, known))
            else:
                results.append(ArtifactMatch(artifact=rule.artifact, path=full_path))
        workflow_rule = rules.workflow_rule
        if workflow_rule is not None and workflow_rule.matches(path_text, entry.name):
            results.append(ArtifactMatch(artifact=workflow_rule.artifact, path=full_path))
    return results
