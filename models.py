from dataclasses import dataclass, field
import datetime as _dt
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class Category(str, Enum):
    CREATIVE = "Creative"
    DEVELOPMENT = "Development"
    WEB_BROWSER = "Web Browser"
    DRIVERS = "Drivers"
    MICROSOFT = "Microsoft"
    PRODUCTIVITY = "Productivity"
    GAMING = "Gaming"
    THIRD_PARTY = "Third-party"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: object) -> "Category":
        text = str(raw or "").strip().casefold()
        for member in cls:
            if member.value.casefold() == text:
                return member
        return cls.UNKNOWN


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: object) -> "Priority":
        text = str(raw or "").strip().casefold()
        for member in cls:
            if member.value == text:
                return member
        return cls.UNKNOWN


class SourceManager(str, Enum):
    STORE = "Store"
    SCOOP = "Scoop"
    CHOCOLATEY = "Chocolatey"
    WINGET = "Winget"
    STEAM = "Steam"
    EPIC = "Epic"
    GOG = "GOG"
    EA = "EA"
    UBISOFT = "Ubisoft"
    XBOX = "Xbox"


class ErrorKind(str, Enum):
    MISSING_SOURCE = "missing_source"
    PARSE_FAILURE = "parse_failure"
    SCAN_FAILURE = "scan_failure"
    WRITE_FAILURE = "write_failure"
    PRIOR_REPORT = "prior_report"


def lookup_field(item: Mapping[str, Any], key: str) -> str:
    """Look up ``key`` ignoring case (PowerShell exports use PascalCase)."""
    wanted = key.casefold()
    for name, value in item.items():
        if isinstance(name, str) and name.casefold() == wanted:
            return "" if value is None else str(value).strip()
    return ""


@dataclass(frozen=True)
class InstalledApplication:
    name: str
    version: str = ""
    publisher: str = ""
    install_date: str = ""
    uninstall_command: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "Version": self.version,
            "Publisher": self.publisher,
            "InstallDate": self.install_date,
            "UninstallString": self.uninstall_command,
        }

    @classmethod
    def from_dict(cls, item: Mapping[str, Any]) -> "InstalledApplication":
        return cls(
            name=lookup_field(item, "Name"),
            version=lookup_field(item, "Version"),
            publisher=lookup_field(item, "Publisher"),
            install_date=lookup_field(item, "InstallDate"),
            uninstall_command=lookup_field(item, "UninstallString"),
        )


@dataclass(frozen=True)
class ManagedApplication:
    name: str
    source: SourceManager

    def to_dict(self) -> Dict[str, Any]:
        return {"ManagedName": self.name, "SourceManager": self.source.value}


@dataclass(frozen=True)
class UnmanagedApplication:
    app: InstalledApplication
    category: Category = Category.UNKNOWN
    priority: Priority = Priority.UNKNOWN

    @property
    def name(self) -> str:
        return self.app.name

    @property
    def publisher(self) -> str:
        return self.app.publisher

    def sort_key(self):
        # Priority sorts by its string value, so "high" < "low" < "medium" < "unknown".
        return (
            self.priority.value.casefold(),
            self.category.value.casefold(),
            self.app.name.casefold(),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = self.app.to_dict()
        payload["Category"] = self.category.value
        payload["Priority"] = self.priority.value
        return payload

    def to_user_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.app.name,
            "Publisher": self.app.publisher,
            "Category": self.category.value,
            "Priority": self.priority.value,
            "Version": self.app.version,
            "InstallDate": self.app.install_date,
        }

    @classmethod
    def from_dict(cls, item: Mapping[str, Any]) -> "UnmanagedApplication":
        return cls(
            app=InstalledApplication.from_dict(item),
            category=Category.parse(lookup_field(item, "Category")),
            priority=Priority.parse(lookup_field(item, "Priority")),
        )


@dataclass(frozen=True)
class MatchedApplication:
    installed: InstalledApplication
    managed: ManagedApplication

    def to_dict(self) -> Dict[str, Any]:
        payload = self.installed.to_dict()
        payload.update(self.managed.to_dict())
        return payload


@dataclass(frozen=True)
class RestoredApplication:
    original: UnmanagedApplication
    current: InstalledApplication

    def to_dict(self) -> Dict[str, Any]:
        payload = self.original.to_user_dict()
        payload["CurrentName"] = self.current.name
        payload["CurrentVersion"] = self.current.version
        return payload


@dataclass(frozen=True)
class AnalysisError:
    kind: ErrorKind
    source: str
    message: str

    def __str__(self) -> str:
        return f"{self.source}: {self.message}" if self.source else self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"Kind": self.kind.value, "Source": self.source, "Message": self.message}


@dataclass(frozen=True)
class AnalysisSummary:
    total_installed: int
    total_managed: int
    total_unmanaged: int
    managed_percentage: float
    managed_by_source: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "TotalInstalled": self.total_installed,
            "TotalManaged": self.total_managed,
            "TotalUnmanaged": self.total_unmanaged,
            "ManagedPercentage": self.managed_percentage,
            "ManagedBySource": dict(self.managed_by_source),
        }


@dataclass(frozen=True)
class CategoryGroup:
    category: Category
    applications: List[UnmanagedApplication]

    @property
    def count(self) -> int:
        return len(self.applications)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Count": self.count,
            "Applications": [app.to_user_dict() for app in self.applications],
        }


def _timestamp() -> str:
    return _dt.datetime.now().isoformat(timespec="seconds")


@dataclass(frozen=True)
class AnalysisReport:
    summary: AnalysisSummary
    categories: Dict[Category, CategoryGroup]
    unmanaged: List[UnmanagedApplication]
    managed: List[MatchedApplication]
    errors: List[AnalysisError] = field(default_factory=list)
    timestamp: str = field(default_factory=_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Timestamp": self.timestamp,
            "Summary": self.summary.to_dict(),
            "Categories": {cat.value: group.to_dict() for cat, group in self.categories.items()},
            "UnmanagedApplications": [app.to_dict() for app in self.unmanaged],
            "ManagedApplications": [app.to_dict() for app in self.managed],
            "Errors": [err.to_dict() for err in self.errors],
        }

    def with_errors(self, errors: List[AnalysisError]) -> "AnalysisReport":
        return AnalysisReport(
            summary=self.summary,
            categories=self.categories,
            unmanaged=self.unmanaged,
            managed=self.managed,
            errors=list(self.errors) + list(errors),
            timestamp=self.timestamp,
        )


@dataclass(frozen=True)
class PostRestoreReport:
    original: List[UnmanagedApplication]
    restored: List[RestoredApplication]
    still_unmanaged: List[UnmanagedApplication]
    restore_success_rate: float
    errors: List[AnalysisError] = field(default_factory=list)
    timestamp: str = field(default_factory=_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Timestamp": self.timestamp,
            "Summary": {
                "OriginalUnmanagedCount": len(self.original),
                "RestoredCount": len(self.restored),
                "StillUnmanagedCount": len(self.still_unmanaged),
                "RestoreSuccessRate": self.restore_success_rate,
            },
            "RestoredApplications": [app.to_dict() for app in self.restored],
            "StillUnmanagedApplications": [app.to_user_dict() for app in self.still_unmanaged],
            "Errors": [err.to_dict() for err in self.errors],
        }

    def with_errors(self, errors: List[AnalysisError]) -> "PostRestoreReport":
        return PostRestoreReport(
            original=self.original,
            restored=self.restored,
            still_unmanaged=self.still_unmanaged,
            restore_success_rate=self.restore_success_rate,
            errors=list(self.errors) + list(errors),
            timestamp=self.timestamp,
        )


@dataclass
class AnalysisResult:
    success: bool
    report: Optional[Any] = None
    errors: List[AnalysisError] = field(default_factory=list)
    written: List[str] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)
