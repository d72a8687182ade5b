"""Provider folders: a read plan plus the fact builder script that consumes it."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from factfinder.core.errors import ProviderLoadError
from factfinder.core.model import ReadPlan
from factfinder.core.readplan import load_read_plan

READ_PLAN_FILE = "readplan.yml"
SCRIPT_FILE = "factbuilder.py"
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provider:
    path: Path
    name: str
    plan: ReadPlan

    @property
    def script_path(self) -> Path:
        return self.path / SCRIPT_FILE


def default_provider_root() -> Path:
    override = os.environ.get("FACTFINDER_PROVIDERS")
    if override:
        return Path(override)
    return Path.home() / "FactFinder" / "Providers"


def _is_provider_dir(path: Path) -> bool:
    return (path / READ_PLAN_FILE).is_file() and (path / SCRIPT_FILE).is_file()


def load_provider(path: Path) -> Provider:
    if not path.is_dir():
        raise ProviderLoadError(f"Provider folder {path} does not exist")
    if not _is_provider_dir(path):
        raise ProviderLoadError(
            f"Provider folder {path} must contain both {READ_PLAN_FILE} and {SCRIPT_FILE}"
        )
    plan = load_read_plan(path / READ_PLAN_FILE)
    return Provider(path=path.resolve(), name=plan.name, plan=plan)


def scan_providers(root: Path | None = None) -> list[Provider]:
    folder = root or default_provider_root()
    try:
        entries = sorted(folder.iterdir())
    except OSError as exc:
        raise ProviderLoadError(f"Could not read providers folder {folder}: {exc}") from exc

    providers: list[Provider] = []
    for entry in entries:
        if not entry.is_dir():
            continue
        if not _is_provider_dir(entry):
            LOGGER.debug("Skipping %s: missing %s or %s", entry, READ_PLAN_FILE, SCRIPT_FILE)
            continue
        providers.append(load_provider(entry))
    return providers
