import json
import logging
import os
from typing import Any, Iterable, List, Optional, Protocol, Tuple

from models import AnalysisError, ErrorKind, ManagedApplication, SourceManager, lookup_field
from utils import unique_casefold

logger = logging.getLogger(__name__)

APPLICATIONS_DIR = "Applications"
GAME_MANAGERS_DIR = "GameManagers"

APPLICATION_EXPORTS: List[Tuple[str, SourceManager]] = [
    ("store-applications.json", SourceManager.STORE),
    ("scoop-applications.json", SourceManager.SCOOP),
    ("chocolatey-applications.json", SourceManager.CHOCOLATEY),
    ("winget-applications.json", SourceManager.WINGET),
]

GAME_EXPORTS: List[Tuple[str, SourceManager]] = [
    ("steam-games.json", SourceManager.STEAM),
    ("epic-games.json", SourceManager.EPIC),
    ("gog-games.json", SourceManager.GOG),
    ("ea-games.json", SourceManager.EA),
    ("ubisoft-games.json", SourceManager.UBISOFT),
    ("xbox-games.json", SourceManager.XBOX),
]

# Wrapper keys seen in exports that hold the actual item list.
LIST_KEYS = ("apps", "applications", "games", "packages")


class ManagedAppSource(Protocol):
    errors: List[AnalysisError]

    def read_managed(self) -> List[ManagedApplication]:  # pragma: no cover - protocol
        ...


def first_existing_dir(candidates: Iterable[str]) -> Optional[str]:
    for path in candidates:
        if path and os.path.isdir(path):
            return path
    return None


def _name_from_identifier(identifier: str) -> str:
    # winget ids look like "Publisher.Product"; the product part is the readable name.
    return identifier.rsplit(".", 1)[-1].strip()


def _item_name(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if not isinstance(item, dict):
        return ""
    name = lookup_field(item, "Name")
    if name:
        return name
    for key in ("PackageIdentifier", "Id"):
        identifier = lookup_field(item, key)
        if identifier:
            return _name_from_identifier(identifier)
    return ""


def _winget_packages(payload: dict) -> List[Any]:
    packages: List[Any] = []
    for source in payload.get("Sources") or []:
        if isinstance(source, dict):
            packages.extend(source.get("Packages") or [])
    return packages


def _payload_items(payload: Any) -> List[Any]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("Sources"), list):
            return _winget_packages(payload)
        for key, value in payload.items():
            if isinstance(key, str) and key.casefold() in LIST_KEYS and isinstance(value, list):
                return value
        # ConvertTo-Json writes a lone object when the list has one element.
        return [payload]
    raise ValueError(f"unsupported export payload of type {type(payload).__name__}")


def parse_export_payload(payload: Any, source: SourceManager) -> List[ManagedApplication]:
    names = unique_casefold(_item_name(item) for item in _payload_items(payload))
    return [ManagedApplication(name=name, source=source) for name in names]


def load_export_file(path: str, source: SourceManager) -> List[ManagedApplication]:
    # PowerShell's Out-File writes a BOM.
    with open(path, "r", encoding="utf-8-sig") as fh:
        text = fh.read()
    if not text.strip():
        return []
    return parse_export_payload(json.loads(text), source)


class BackupManagedAppSource:
    """Reads package-manager and game-launcher exports from a backup tree.

    Each export directory is looked up in the machine backup first and the
    shared backup second; the first directory that exists is used.
    """

    def __init__(self, machine_backup: str, shared_backup: str) -> None:
        self.machine_backup = machine_backup
        self.shared_backup = shared_backup
        self.errors: List[AnalysisError] = []

    def read_managed(self) -> List[ManagedApplication]:
        self.errors = []
        managed: List[ManagedApplication] = []
        managed.extend(self._read_group(APPLICATIONS_DIR, APPLICATION_EXPORTS))
        managed.extend(self._read_group(GAME_MANAGERS_DIR, GAME_EXPORTS))
        logger.info("Loaded %d managed applications", len(managed))
        return managed

    def _candidates(self, subdir: str) -> List[str]:
        return [os.path.join(root, subdir) for root in (self.machine_backup, self.shared_backup) if root]

    def _read_group(self, subdir: str, exports: List[Tuple[str, SourceManager]]) -> List[ManagedApplication]:
        directory = first_existing_dir(self._candidates(subdir))
        if directory is None:
            self._record(ErrorKind.MISSING_SOURCE, subdir, "no backup directory found")
            return []
        results: List[ManagedApplication] = []
        for filename, source in exports:
            path = os.path.join(directory, filename)
            if not os.path.isfile(path):
                self._record(ErrorKind.MISSING_SOURCE, path, f"{source.value} export not found")
                continue
            try:
                apps = load_export_file(path, source)
            except (OSError, ValueError) as exc:
                # json.JSONDecodeError is a ValueError.
                self._record(ErrorKind.PARSE_FAILURE, path, f"failed to read {source.value} export: {exc}")
                continue
            logger.debug("%s: %d entries", path, len(apps))
            results.extend(apps)
        return results

    def _record(self, kind: ErrorKind, source: str, message: str) -> None:
        logger.warning("%s: %s", source, message)
        self.errors.append(AnalysisError(kind, source, message))
