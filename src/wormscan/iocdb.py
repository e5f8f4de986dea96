from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import TypedDict

LOGGER = logging.getLogger("wormscan.iocdb")

TABLE_MARKERS = ("| Package", "|---")


class LoadError(Exception):
    pass


class IOCStats(TypedDict):
    unique_packages: int
    total_versions: int


class IOCDatabase(Mapping[str, frozenset[str]]):
    """Read-only mapping of package name to its infected versions."""

    def __init__(self, entries: Mapping[str, set[str] | frozenset[str]] | None = None) -> None:
        self._entries: dict[str, frozenset[str]] = {
            name: frozenset(versions) for name, versions in (entries or {}).items() if versions
        }

    def __getitem__(self, name: str) -> frozenset[str]:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, IOCDatabase):
            return self._entries == other._entries
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._entries.items()))

    def __repr__(self) -> str:
        return f"IOCDatabase({len(self)} packages)"

    def has(self, name: str) -> bool:
        return name in self._entries

    def is_infected(self, name: str, version: object) -> bool:
        return isinstance(version, str) and version in self._entries.get(name, frozenset())

    def stats(self) -> IOCStats:
        return {
            "unique_packages": len(self._entries),
            "total_versions": sum(len(v) for v in self._entries.values()),
        }


def add_package(packages: dict[str, set[str]], name: str, version: str) -> None:
    packages.setdefault(name, set()).add(version)


def _parse_table_row(line: str) -> tuple[str, str] | None:
    cells = [cell.strip() for cell in line.split("|")]
    cells = [cell for cell in cells if cell]
    if len(cells) < 2:
        return None
    name, version = cells[0], cells[1]
    # A repeated header row inside the table.
    if "Package" in name:
        return None
    return name, version


def _parse_tab_row(line: str) -> tuple[str, str] | None:
    fields = line.strip().split("\t")
    if len(fields) < 2:
        return None
    name, version = fields[0].strip(), fields[1].strip()
    if not name or not version:
        return None
    return name, version


def parse_ioc_text(text: str) -> IOCDatabase:
    packages: dict[str, set[str]] = {}
    in_table = False
    for line in text.split("\n"):
        if any(marker in line for marker in TABLE_MARKERS):
            in_table = True
            continue
        if in_table and line.startswith("|"):
            row = _parse_table_row(line)
        elif "\t" in line:
            row = _parse_tab_row(line)
        else:
            row = None
        if row is not None:
            add_package(packages, *row)
    return IOCDatabase(packages)


def load_ioc_database(path: Path) -> IOCDatabase:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(f"Cannot read IOC database {path}: {exc}") from exc
    database = parse_ioc_text(text)
    stats = database.stats()
    LOGGER.info(
        "Loaded %d infected packages (%d versions) from %s",
        stats["unique_packages"],
        stats["total_versions"],
        path,
    )
    return database
