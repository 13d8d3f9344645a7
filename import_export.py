import csv
import json
import logging
import os
from typing import Any, Callable, Dict, Iterable, List, Optional

from openpyxl import Workbook

from models import (
    AnalysisError,
    AnalysisReport,
    AnalysisSummary,
    Category,
    CategoryGroup,
    ErrorKind,
    PostRestoreReport,
    UnmanagedApplication,
)

logger = logging.getLogger(__name__)

UNMANAGED_DIR = "UnmanagedApps"
ANALYSIS_FILENAME = "unmanaged-analysis.json"
UNMANAGED_JSON_FILENAME = "unmanaged-apps.json"
UNMANAGED_CSV_FILENAME = "unmanaged-apps.csv"
UNMANAGED_XLSX_FILENAME = "unmanaged-apps.xlsx"

POST_RESTORE_DIR = "PostRestoreAnalysis"
POST_RESTORE_FILENAME = "post-restore-analysis.json"
STILL_UNMANAGED_JSON_FILENAME = "still-unmanaged-apps.json"
STILL_UNMANAGED_CSV_FILENAME = "still-unmanaged-apps.csv"
STILL_UNMANAGED_XLSX_FILENAME = "still-unmanaged-apps.xlsx"
RESTORED_JSON_FILENAME = "restored-apps.json"

CSV_HEADERS = [
    "Name",
    "Publisher",
    "Category",
    "Priority",
    "Version",
    "InstallDate",
]


def save_json(file_path: str, payload: Any) -> None:
    with open(file_path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)


def export_csv(file_path: str, entries: Iterable[UnmanagedApplication]) -> None:
    with open(file_path, "w", newline="", encoding="utf-8") as csv_file:
        writer = csv.writer(csv_file)
        writer.writerow(CSV_HEADERS)
        for app in entries:
            row = app.to_user_dict()
            writer.writerow([row[header] for header in CSV_HEADERS])


def export_xlsx(file_path: str, entries: Iterable[UnmanagedApplication]) -> None:
    book = Workbook(write_only=True)
    sheet = book.create_sheet("Unmanaged Apps")
    sheet.append(CSV_HEADERS)
    for app in entries:
        row = app.to_user_dict()
        sheet.append([row[header] for header in CSV_HEADERS])
    book.save(file_path)


class ArtifactWriter:
    """Writes report files, replacing any earlier copy, unless in dry-run mode.

    Failures never raise; they are collected in ``errors`` so the run can
    carry on with the remaining artifacts.
    """

    def __init__(self, dry_run: bool = False, xlsx: bool = False) -> None:
        self.dry_run = dry_run
        self.xlsx = xlsx
        self.errors: List[AnalysisError] = []
        self.written: List[str] = []
        self.notices: List[str] = []

    def write(self, file_path: str, producer: Callable[[str], None]) -> bool:
        if self.dry_run:
            notice = f"Would write {file_path}"
            logger.info(notice)
            self.notices.append(notice)
            return False
        try:
            os.makedirs(os.path.dirname(file_path), exist_ok=True)
            producer(file_path)
        except (OSError, csv.Error, ValueError) as exc:
            self._record(file_path, f"write failed: {exc}")
            return False
        logger.debug("Wrote %s", file_path)
        self.written.append(file_path)
        return True

    def write_json(self, file_path: str, payload: Any) -> bool:
        return self.write(file_path, lambda path: save_json(path, payload))

    def _record(self, file_path: str, message: str) -> None:
        logger.warning("%s: %s", file_path, message)
        self.errors.append(AnalysisError(ErrorKind.WRITE_FAILURE, file_path, message))


def write_analysis_artifacts(writer: ArtifactWriter, report: AnalysisReport, roots: Iterable[str]) -> None:
    full = report.to_dict()
    reduced = [app.to_user_dict() for app in report.unmanaged]
    for root in roots:
        out_dir = os.path.join(root, UNMANAGED_DIR)
        writer.write_json(os.path.join(out_dir, ANALYSIS_FILENAME), full)
        writer.write_json(os.path.join(out_dir, UNMANAGED_JSON_FILENAME), reduced)
        writer.write(os.path.join(out_dir, UNMANAGED_CSV_FILENAME), lambda path: export_csv(path, report.unmanaged))
        if writer.xlsx:
            writer.write(os.path.join(out_dir, UNMANAGED_XLSX_FILENAME), lambda path: export_xlsx(path, report.unmanaged))


def write_post_restore_artifacts(writer: ArtifactWriter, report: PostRestoreReport, roots: Iterable[str]) -> None:
    full = report.to_dict()
    still = [app.to_user_dict() for app in report.still_unmanaged]
    restored = [app.to_dict() for app in report.restored]
    for root in roots:
        out_dir = os.path.join(root, POST_RESTORE_DIR)
        writer.write_json(os.path.join(out_dir, POST_RESTORE_FILENAME), full)
        writer.write_json(os.path.join(out_dir, STILL_UNMANAGED_JSON_FILENAME), still)
        writer.write(
            os.path.join(out_dir, STILL_UNMANAGED_CSV_FILENAME),
            lambda path: export_csv(path, report.still_unmanaged),
        )
        if writer.xlsx:
            writer.write(
                os.path.join(out_dir, STILL_UNMANAGED_XLSX_FILENAME),
                lambda path: export_xlsx(path, report.still_unmanaged),
            )
        writer.write_json(os.path.join(out_dir, RESTORED_JSON_FILENAME), restored)


def analysis_report_paths(roots: Iterable[str]) -> List[str]:
    return [os.path.join(root, UNMANAGED_DIR, ANALYSIS_FILENAME) for root in roots if root]


def find_prior_report(roots: Iterable[str]) -> Optional[str]:
    for path in analysis_report_paths(roots):
        if os.path.isfile(path):
            return path
    return None


def _summary_from_json(raw: Any) -> AnalysisSummary:
    raw = raw if isinstance(raw, dict) else {}

    def number(key: str, default: float = 0) -> float:
        value = raw.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return value

    by_source = raw.get("ManagedBySource")
    return AnalysisSummary(
        total_installed=int(number("TotalInstalled")),
        total_managed=int(number("TotalManaged")),
        total_unmanaged=int(number("TotalUnmanaged")),
        managed_percentage=float(number("ManagedPercentage")),
        managed_by_source=dict(by_source) if isinstance(by_source, dict) else {},
    )


def _apps_from_json(items: Any) -> List[UnmanagedApplication]:
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        return []
    apps: List[UnmanagedApplication] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        app = UnmanagedApplication.from_dict(item)
        if app.name:
            apps.append(app)
    return apps


def report_from_dict(data: Dict[str, Any]) -> AnalysisReport:
    if not isinstance(data, dict):
        raise ValueError("JSON file does not contain an analysis report.")
    if "UnmanagedApplications" not in data:
        raise ValueError("Analysis report has no UnmanagedApplications section.")
    categories: Dict[Category, CategoryGroup] = {}
    raw_categories = data.get("Categories")
    if isinstance(raw_categories, dict):
        for name, group in raw_categories.items():
            members = group.get("Applications") if isinstance(group, dict) else None
            category = Category.parse(name)
            categories[category] = CategoryGroup(category, _apps_from_json(members))
    return AnalysisReport(
        summary=_summary_from_json(data.get("Summary")),
        categories=categories,
        unmanaged=_apps_from_json(data.get("UnmanagedApplications")),
        managed=[],
        timestamp=str(data.get("Timestamp") or ""),
    )


def load_analysis_report(file_path: str) -> AnalysisReport:
    with open(file_path, "r", encoding="utf-8-sig") as fh:
        data = json.load(fh)
    return report_from_dict(data)
