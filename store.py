import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

APP_NAME = "WindowsMelodyRecovery"
CONFIG_FILENAME = "wmr_config.json"
ENV_BACKUP_ROOT = "WMR_BACKUP_ROOT"
ENV_MACHINE_BACKUP = "WMR_MACHINE_BACKUP"
ENV_SHARED_BACKUP = "WMR_SHARED_BACKUP"
CONFIG_KEYS = {
    "backup_root": ENV_BACKUP_ROOT,
    "machine_backup": ENV_MACHINE_BACKUP,
    "shared_backup": ENV_SHARED_BACKUP,
}
SHARED_DIRNAME = "shared"

logger = logging.getLogger(__name__)


class BackupPathNotFoundError(FileNotFoundError):
    pass


@dataclass(frozen=True)
class BackupPaths:
    backup_root: str
    machine_backup: str
    shared_backup: str

    @property
    def output_roots(self) -> List[str]:
        roots = [self.machine_backup]
        if os.path.normcase(os.path.abspath(self.shared_backup)) != os.path.normcase(os.path.abspath(self.machine_backup)):
            roots.append(self.shared_backup)
        return roots

    def to_dict(self) -> Dict[str, str]:
        return {
            "backup_root": self.backup_root,
            "machine_backup": self.machine_backup,
            "shared_backup": self.shared_backup,
        }


def app_data_dir(app_name: str = APP_NAME) -> str:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA")
    else:
        base = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    if not base:
        base = os.path.expanduser("~")
    return os.path.join(base, app_name)


def config_path() -> str:
    return os.path.join(app_data_dir(), CONFIG_FILENAME)


def load_config(path: Optional[str] = None) -> Dict[str, str]:
    path = path or config_path()
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        return {}
    config: Dict[str, str] = {}
    for key, value in payload.items():
        if not isinstance(key, str):
            continue
        if isinstance(value, str) and value.strip():
            config[key] = value.strip()
    return config


def save_config(paths: BackupPaths, path: Optional[str] = None) -> None:
    path = path or config_path()
    config = load_config(path)
    config.update(paths.to_dict())
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2)


def _machine_name() -> str:
    return os.getenv("COMPUTERNAME") or os.getenv("HOSTNAME") or "machine"


def resolve_backup_paths(
    backup_root: Optional[str] = None,
    machine_backup: Optional[str] = None,
    shared_backup: Optional[str] = None,
    config: Optional[Dict[str, str]] = None,
) -> BackupPaths:
    """Resolve paths: explicit argument, then environment, then config file, then defaults."""
    config = load_config() if config is None else config
    explicit = {
        "backup_root": backup_root,
        "machine_backup": machine_backup,
        "shared_backup": shared_backup,
    }
    resolved: Dict[str, str] = {}
    for key, env_name in CONFIG_KEYS.items():
        value = explicit[key] or os.getenv(env_name) or config.get(key) or ""
        resolved[key] = value.strip()
    root = resolved["backup_root"]
    if not root:
        raise BackupPathNotFoundError("No backup root configured; pass --backup-root or set " + ENV_BACKUP_ROOT)
    return BackupPaths(
        backup_root=root,
        machine_backup=resolved["machine_backup"] or os.path.join(root, _machine_name()),
        shared_backup=resolved["shared_backup"] or os.path.join(root, SHARED_DIRNAME),
    )


def validate_paths(paths: BackupPaths, create_missing: bool = False) -> None:
    """Check that the backup directories exist.

    With ``create_missing`` the machine and shared directories are created when
    absent; the backup root itself must always exist.
    """
    if not os.path.isdir(paths.backup_root):
        raise BackupPathNotFoundError(f"Backup root directory not found: {paths.backup_root}")
    for label, value in (("Machine backup", paths.machine_backup), ("Shared backup", paths.shared_backup)):
        if os.path.isdir(value):
            continue
        if not create_missing:
            raise BackupPathNotFoundError(f"{label} directory not found: {value}")
        logger.info("Creating %s directory %s", label.lower(), value)
        os.makedirs(value, exist_ok=True)
