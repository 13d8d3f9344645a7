import logging
from typing import List, Optional, Sequence

from analyzer import UnmanagedAnalyzer
from import_export import ArtifactWriter, find_prior_report, load_analysis_report, write_post_restore_artifacts
from models import (
    AnalysisError,
    AnalysisReport,
    AnalysisResult,
    ErrorKind,
    InstalledApplication,
    PostRestoreReport,
    RestoredApplication,
    UnmanagedApplication,
)
from reconciler import find_match
from utils import percentage

logger = logging.getLogger(__name__)


def compare_after_restore(prior: AnalysisReport, installed_now: Sequence[InstalledApplication]) -> PostRestoreReport:
    original = list(prior.unmanaged)
    restored: List[RestoredApplication] = []
    still_unmanaged: List[UnmanagedApplication] = []
    for app in original:
        hit = find_match(app.name, installed_now, lambda item: item.name, app.publisher)
        if hit is None:
            still_unmanaged.append(app)
        else:
            restored.append(RestoredApplication(app, hit))
    return PostRestoreReport(
        original=original,
        restored=restored,
        still_unmanaged=still_unmanaged,
        restore_success_rate=percentage(len(restored), len(original), empty=100.0),
    )


class PostRestoreComparator:
    """Measures how many previously unmanaged applications are back after a restore.

    Without a prior analysis report the comparator has nothing to compare
    against, so it runs a fresh analysis instead.
    """

    def __init__(
        self,
        analyzer: UnmanagedAnalyzer,
        report_roots: Sequence[str],
        output_roots: Sequence[str],
        writer: Optional[ArtifactWriter] = None,
    ) -> None:
        self._analyzer = analyzer
        self._report_roots = list(report_roots)
        self._output_roots = list(output_roots)
        self._writer = writer or ArtifactWriter()

    def run(self) -> AnalysisResult:
        prior_path = find_prior_report(self._report_roots)
        if prior_path is None:
            logger.info("No prior unmanaged analysis found; running a fresh analysis")
            result = self._analyzer.run()
            result.notices.insert(0, "No prior analysis found; ran a fresh unmanaged analysis")
            return result
        try:
            prior = load_analysis_report(prior_path)
        except (OSError, ValueError) as exc:
            error = AnalysisError(ErrorKind.PRIOR_REPORT, prior_path, f"cannot load prior analysis: {exc}")
            logger.error(str(error))
            return AnalysisResult(success=False, errors=[error])
        logger.info("Comparing against %s (%d unmanaged)", prior_path, len(prior.unmanaged))

        errors: List[AnalysisError] = []
        notices: List[str] = []
        installed_now = self._analyzer.collect_installed(errors, notices)
        report = compare_after_restore(prior, installed_now).with_errors(errors)
        logger.info(
            "Post-restore: %d restored, %d still unmanaged (%.2f%%)",
            len(report.restored),
            len(report.still_unmanaged),
            report.restore_success_rate,
        )
        write_post_restore_artifacts(self._writer, report, self._output_roots)
        report = report.with_errors(self._writer.errors)
        return AnalysisResult(
            success=True,
            report=report,
            errors=list(report.errors),
            written=list(self._writer.written),
            notices=notices + self._writer.notices,
        )
