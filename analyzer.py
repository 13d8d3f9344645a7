"""Partition installed applications into managed and unmanaged sets."""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from import_export import ArtifactWriter, write_analysis_artifacts
from models import (
    AnalysisError,
    AnalysisReport,
    AnalysisResult,
    AnalysisSummary,
    Category,
    CategoryGroup,
    ErrorKind,
    InstalledApplication,
    ManagedApplication,
    MatchedApplication,
    Priority,
    UnmanagedApplication,
)
from reconciler import find_match
from scanner import InventoryReader
from sources import ManagedAppSource
from utils import percentage

logger = logging.getLogger(__name__)

# Evaluated in order against the publisher; the first hit wins.
PUBLISHER_RULES: List[Tuple[Tuple[str, ...], Category, Priority]] = [
    (("adobe",), Category.CREATIVE, Priority.HIGH),
    (("jetbrains", "visual studio", "github"), Category.DEVELOPMENT, Priority.HIGH),
    (("google", "mozilla", "opera"), Category.WEB_BROWSER, Priority.HIGH),
    (("nvidia", "amd", "intel"), Category.DRIVERS, Priority.MEDIUM),
    (("microsoft",), Category.MICROSOFT, Priority.LOW),
]
DEFAULT_CLASSIFICATION = (Category.THIRD_PARTY, Priority.MEDIUM)

# Evaluated after the publisher rules; every hit overrides the category.
# A priority of None leaves the publisher-derived priority alone.
NAME_RULES: List[Tuple[Tuple[str, ...], Category, Optional[Priority]]] = [
    (("game", "launcher"), Category.GAMING, None),
    (("driver", "codec"), Category.DRIVERS, None),
    (("office", "word", "excel"), Category.PRODUCTIVITY, Priority.HIGH),
]


def _contains_any(text: str, needles: Sequence[str]) -> bool:
    return any(needle in text for needle in needles)


def classify(app: InstalledApplication) -> Tuple[Category, Priority]:
    publisher = (app.publisher or "").casefold()
    name = (app.name or "").casefold()
    category, priority = DEFAULT_CLASSIFICATION
    for needles, rule_category, rule_priority in PUBLISHER_RULES:
        if _contains_any(publisher, needles):
            category, priority = rule_category, rule_priority
            break
    for needles, rule_category, rule_priority in NAME_RULES:
        if _contains_any(name, needles):
            category = rule_category
            if rule_priority is not None:
                priority = rule_priority
    return category, priority


def partition(
    installed: Iterable[InstalledApplication],
    managed: Sequence[ManagedApplication],
) -> Tuple[List[MatchedApplication], List[UnmanagedApplication]]:
    matched: List[MatchedApplication] = []
    unmanaged: List[UnmanagedApplication] = []
    for app in installed:
        hit = find_match(app.name, managed, lambda item: item.name, app.publisher)
        if hit is None:
            unmanaged.append(UnmanagedApplication(app))
        else:
            matched.append(MatchedApplication(app, hit))
    return matched, unmanaged


def classify_unmanaged(apps: Iterable[UnmanagedApplication]) -> List[UnmanagedApplication]:
    results: List[UnmanagedApplication] = []
    for item in apps:
        category, priority = classify(item.app)
        results.append(UnmanagedApplication(item.app, category, priority))
    return results


def sort_unmanaged(apps: Iterable[UnmanagedApplication]) -> List[UnmanagedApplication]:
    return sorted(apps, key=lambda app: app.sort_key())


def group_by_category(apps: Iterable[UnmanagedApplication]) -> Dict[Category, CategoryGroup]:
    buckets: Dict[Category, List[UnmanagedApplication]] = {}
    for app in apps:
        buckets.setdefault(app.category, []).append(app)
    return {
        category: CategoryGroup(category, members)
        for category, members in sorted(buckets.items(), key=lambda kv: kv[0].value.casefold())
    }


def summarize(installed_count: int, matched: Sequence[MatchedApplication], unmanaged_count: int) -> AnalysisSummary:
    by_source: Dict[str, int] = {}
    for item in matched:
        by_source[item.managed.source.value] = by_source.get(item.managed.source.value, 0) + 1
    return AnalysisSummary(
        total_installed=installed_count,
        total_managed=len(matched),
        total_unmanaged=unmanaged_count,
        managed_percentage=percentage(len(matched), installed_count),
        managed_by_source=by_source,
    )


def analyze(
    installed: Sequence[InstalledApplication],
    managed: Sequence[ManagedApplication],
    errors: Optional[Sequence[AnalysisError]] = None,
) -> AnalysisReport:
    matched, unmanaged = partition(installed, managed)
    ordered = sort_unmanaged(classify_unmanaged(unmanaged))
    return AnalysisReport(
        summary=summarize(len(installed), matched, len(ordered)),
        categories=group_by_category(ordered),
        unmanaged=ordered,
        managed=matched,
        errors=list(errors or []),
    )


class UnmanagedAnalyzer:
    def __init__(
        self,
        inventory: Optional[InventoryReader],
        managed_source: ManagedAppSource,
        output_roots: Sequence[str],
        writer: Optional[ArtifactWriter] = None,
    ) -> None:
        self._inventory = inventory
        self._managed_source = managed_source
        self._output_roots = list(output_roots)
        self._writer = writer or ArtifactWriter()

    @property
    def dry_run(self) -> bool:
        return self._writer.dry_run

    def collect_installed(self, errors: List[AnalysisError], notices: List[str]) -> List[InstalledApplication]:
        if self.dry_run or self._inventory is None:
            notice = "Would scan installed applications from the registry"
            logger.info(notice)
            notices.append(notice)
            return []
        try:
            installed = self._inventory.read_installed()
        except OSError as exc:
            logger.warning("Installed application scan failed: %s", exc)
            errors.append(AnalysisError(ErrorKind.SCAN_FAILURE, "registry", f"scan failed: {exc}"))
            return []
        errors.extend(self._inventory.errors)
        return installed

    def collect_managed(self, errors: List[AnalysisError]) -> List[ManagedApplication]:
        managed = self._managed_source.read_managed()
        errors.extend(self._managed_source.errors)
        return managed

    def run(self) -> AnalysisResult:
        errors: List[AnalysisError] = []
        notices: List[str] = []
        installed = self.collect_installed(errors, notices)
        managed = self.collect_managed(errors)
        report = analyze(installed, managed, errors)
        logger.info(
            "Analysis: %d installed, %d managed, %d unmanaged (%.2f%% managed)",
            report.summary.total_installed,
            report.summary.total_managed,
            report.summary.total_unmanaged,
            report.summary.managed_percentage,
        )
        write_analysis_artifacts(self._writer, report, self._output_roots)
        report = report.with_errors(self._writer.errors)
        return AnalysisResult(
            success=True,
            report=report,
            errors=list(report.errors),
            written=list(self._writer.written),
            notices=notices + self._writer.notices,
        )
