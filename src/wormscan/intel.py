from __future__ import annotations

import logging
import os
from pathlib import Path

from wormscan.iocdb import IOCDatabase, LoadError, load_ioc_database

LOGGER = logging.getLogger("wormscan.intel")

ENV_HOME = "WORMSCAN_HOME"
ENV_IOC_DB = "WORMSCAN_IOC_DB"
DEFAULT_IOC_FILENAME = "worm.md"


def data_dir() -> Path:
    root = os.getenv(ENV_HOME)
    if root:
        return Path(root).expanduser()
    return Path.home() / ".wormscan"


def ioc_database_candidates() -> list[Path]:
    candidates: list[Path] = []
    env_value = os.getenv(ENV_IOC_DB)
    if env_value:
        candidates.append(Path(env_value))
    candidates.append(data_dir() / DEFAULT_IOC_FILENAME)
    return [c.expanduser() for c in candidates]


def resolve_ioc_database(cli_path: Path | None = None) -> Path:
    """Pick the IOC database for this run.

    An explicitly requested file must exist; it never falls back to the
    environment or home-directory copy, so a typo cannot silently scan
    against a different list.
    """
    if cli_path:
        path = Path(cli_path).expanduser()
        if not path.is_file():
            raise LoadError(f"IOC database not found: {path}")
        return path
    for candidate in ioc_database_candidates():
        if candidate.is_file():
            LOGGER.debug("Using IOC database at %s", candidate)
            return candidate
        LOGGER.debug("IOC database candidate %s not found", candidate)
    raise LoadError(
        f"No IOC database found. Pass --ioc-db, set {ENV_IOC_DB}, "
        f"or place {DEFAULT_IOC_FILENAME} in {data_dir()}"
    )


def load_configured_database(cli_path: Path | None = None) -> tuple[IOCDatabase, Path]:
    path = resolve_ioc_database(cli_path)
    return load_ioc_database(path), path
