import fnmatch
import logging
import re
from typing import Dict, List, Optional, Protocol, Tuple

from models import AnalysisError, ErrorKind, InstalledApplication
from utils import casefold_key, normalize_date

try:  # Windows-only dependency, optional for test doubles
    import winreg  # type: ignore
except ImportError:  # pragma: no cover - not available on Linux runners
    winreg = None  # type: ignore

logger = logging.getLogger(__name__)

UNINSTALL_PATH = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
UNINSTALL_PATH_WOW64 = r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"

EXCLUDED_PUBLISHERS = {
    "microsoft windows",
    "microsoft windows publisher",
}

# Glob patterns matched against the display name, case-insensitive.
EXCLUDED_NAME_PATTERNS = [
    "Windows *Runtime*",
    "Microsoft .NET*",
    "Microsoft Visual C++*",
    "Microsoft Edge*",
    "Microsoft Defender*",
    "Microsoft Office*",
    "Microsoft Teams*",
    "Microsoft Update Health Tools*",
    "Windows SDK*",
    "Windows Software Development Kit*",
    "Windows DDK*",
    "Windows Driver Kit*",
    "Update for *",
    "Security Update for *",
    "Hotfix for *",
]

_EXCLUDED_NAME_RE = re.compile(
    "|".join(f"(?:{fnmatch.translate(pattern)})" for pattern in EXCLUDED_NAME_PATTERNS),
    re.IGNORECASE,
)


def is_system_component(app: InstalledApplication) -> bool:
    if casefold_key(app.publisher) in EXCLUDED_PUBLISHERS:
        return True
    return bool(_EXCLUDED_NAME_RE.match(app.name or ""))


class InventoryReader(Protocol):
    errors: List[AnalysisError]

    def read_installed(self) -> List[InstalledApplication]:  # pragma: no cover - protocol
        ...


def _registry_views():
    # KEY_WOW64_* flags target the desired registry view without needing elevation.
    return [
        (winreg.HKEY_LOCAL_MACHINE, UNINSTALL_PATH, winreg.KEY_WOW64_64KEY),
        (winreg.HKEY_LOCAL_MACHINE, UNINSTALL_PATH_WOW64, winreg.KEY_WOW64_32KEY),
        (winreg.HKEY_CURRENT_USER, UNINSTALL_PATH, winreg.KEY_WOW64_64KEY),
        (winreg.HKEY_CURRENT_USER, UNINSTALL_PATH, winreg.KEY_WOW64_32KEY),
    ]


class RegistryInventoryReader:
    """Enumerates Win32 uninstall entries across 32/64-bit registry views."""

    VALUE_MAP = {
        "DisplayName": "name",
        "DisplayVersion": "version",
        "Publisher": "publisher",
        "InstallDate": "install_date",
        "UninstallString": "uninstall_command",
    }

    def __init__(self) -> None:
        if winreg is None:
            raise RuntimeError("winreg not available on this platform")
        self.errors: List[AnalysisError] = []

    def read_installed(self) -> List[InstalledApplication]:
        self.errors = []
        raw_entries: Dict[Tuple[str, str], Tuple[InstalledApplication, bool]] = {}
        skipped = 0
        for hive, path, view in _registry_views():
            access = winreg.KEY_READ | view
            try:
                base = winreg.OpenKey(hive, path, 0, access)
            except FileNotFoundError:
                logger.debug("Uninstall key not present: %s", path)
                continue
            except OSError as exc:
                self._record(path, f"cannot open uninstall key: {exc}")
                continue
            is_64 = view == winreg.KEY_WOW64_64KEY
            with base:
                for idx in range(self._subkey_count(base)):
                    try:
                        sub_name = winreg.EnumKey(base, idx)
                        sub_key = winreg.OpenKey(base, sub_name)
                    except OSError:
                        continue
                    with sub_key:
                        values = self._read_values(sub_key)
                    app = self._entry_from_values(values)
                    if app is None:
                        continue
                    if self._is_hidden(values) or is_system_component(app):
                        skipped += 1
                        continue
                    key = (app.name, app.version)
                    # Prefer 64-bit entries over 32-bit duplicates.
                    existing = raw_entries.get(key)
                    if existing is not None and existing[1] and not is_64:
                        continue
                    raw_entries[key] = (app, is_64)
        apps = sorted((app for app, _ in raw_entries.values()), key=lambda x: (x.name or "").lower())
        logger.info("Registry scan found %d applications (%d system components skipped)", len(apps), skipped)
        return apps

    def _record(self, source: str, message: str) -> None:
        logger.warning("%s: %s", source, message)
        self.errors.append(AnalysisError(ErrorKind.SCAN_FAILURE, source, message))

    @staticmethod
    def _subkey_count(key) -> int:
        try:
            info = winreg.QueryInfoKey(key)
            return info[0]
        except OSError:
            return 0

    def _read_values(self, handle) -> Dict[str, object]:
        values: Dict[str, object] = {}
        for value_name in list(self.VALUE_MAP) + ["SystemComponent", "ParentKeyName"]:
            try:
                value, _ = winreg.QueryValueEx(handle, value_name)
            except OSError:
                continue
            values[value_name] = value
        return values

    @classmethod
    def _entry_from_values(cls, values: Dict[str, object]) -> Optional[InstalledApplication]:
        fields = {target: str(values.get(source) or "").strip() for source, target in cls.VALUE_MAP.items()}
        if not fields["name"]:
            return None
        fields["install_date"] = normalize_date(fields["install_date"])
        return InstalledApplication(**fields)

    @staticmethod
    def _is_hidden(values: Dict[str, object]) -> bool:
        if values.get("ParentKeyName"):
            return True
        try:
            return int(values.get("SystemComponent") or 0) == 1
        except (TypeError, ValueError):
            return False
