"""Turn curated periods into merged PDFs, one independent job at a time."""

from __future__ import annotations

import concurrent.futures
import logging
import os
from typing import Iterable, List, Optional

from ..adapters.base import DocumentMerger
from ..domain import constants
from ..domain import naming
from ..domain.errors import InvoiceMergerError, OutputExistsError, TemplateError
from ..domain.files import ensure_dir
from ..domain.pdf import PdfMerger
from ..domain.records import MergeJob, MergeRequest, MergeResult, PeriodRecord

logger = logging.getLogger(__name__)

MAX_PUBLISH_ATTEMPTS = 5


def jobs_from_periods(periods: Iterable[PeriodRecord]) -> List[MergeJob]:
    """One job per period that has an invoice, with all of its backups."""
    jobs: List[MergeJob] = []
    for period in periods:
        if period.invoice_file is None:
            continue
        jobs.append(
            MergeJob(
                client_name=period.client_name,
                client_path=period.client_path,
                fiscal_year=period.fiscal_year,
                month=period.month,
                invoice_path=period.invoice_file.path,
                backup_paths=tuple(f.path for f in period.backup_files),
            )
        )
    return jobs


def check_request(request: MergeRequest) -> None:
    """Raise TemplateError for settings that would fail every job."""
    if request.output_mode not in constants.OUTPUT_MODES:
        raise TemplateError(f"Unknown output mode: {request.output_mode}")
    if request.output_mode == constants.OUTPUT_MODE_CUSTOM and not request.custom_output_dir:
        raise TemplateError("custom-folder output mode needs a custom output directory")
    naming.validate_template(request.filename_template)


def output_dir_for(job: MergeJob, request: MergeRequest) -> str:
    if request.output_mode == constants.OUTPUT_MODE_CUSTOM:
        return ensure_dir(request.custom_output_dir)
    return os.path.dirname(os.path.abspath(job.invoice_path))


def resolve_output_path(job: MergeJob, request: MergeRequest) -> str:
    base_name = naming.format_output_name(
        request.filename_template,
        month=job.month,
        invoice_name=naming.invoice_stem(job.invoice_path),
        client=job.client_name,
        fiscal_year=job.fiscal_year,
    )
    return str(naming.unique_output_path(output_dir_for(job, request), base_name))


def run_job(job: MergeJob, request: MergeRequest, merger: DocumentMerger) -> MergeResult:
    try:
        attempts = 1 if job.output_path else MAX_PUBLISH_ATTEMPTS
        for attempt in range(1, attempts + 1):
            output_path = job.output_path or resolve_output_path(job, request)
            try:
                report = merger.merge(job.invoice_path, job.backup_paths, output_path)
            except OutputExistsError:
                if attempt == attempts:
                    raise
                logger.info("%s appeared while merging; picking the next free name", output_path)
                continue
            return MergeResult(
                client_name=job.client_name,
                success=True,
                output_path=report.output_path,
                page_count=report.page_count,
                skipped=list(report.skipped),
            )
    except InvoiceMergerError as exc:
        error = str(exc)
    except Exception as exc:
        logger.exception("Unexpected failure merging %s", job.invoice_path)
        error = f"{type(exc).__name__}: {exc}"
    logger.warning("Merge failed for %s (%s): %s", job.client_name, job.month, error)
    return MergeResult(client_name=job.client_name, success=False, error=error)


def run_batch(
    request: MergeRequest,
    merger: Optional[DocumentMerger] = None,
    workers: int = 1,
) -> List[MergeResult]:
    """Run every job; failures are reported per job and never stop the batch."""
    jobs = list(request.jobs)
    try:
        check_request(request)
    except TemplateError as exc:
        logger.error("Merge request rejected: %s", exc)
        return [MergeResult(client_name=j.client_name, success=False, error=str(exc)) for j in jobs]

    merger = merger or PdfMerger()
    if workers > 1 and len(jobs) > 1:
        # PyMuPDF documents must not be shared across threads
        with concurrent.futures.ProcessPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(run_job, job, request, merger) for job in jobs]
            return [_collect(f, job) for f, job in zip(futures, jobs)]
    return [run_job(job, request, merger) for job in jobs]


def _collect(future: concurrent.futures.Future, job: MergeJob) -> MergeResult:
    try:
        return future.result()
    except Exception as exc:
        logger.warning("Worker failed for %s: %s", job.client_name, exc)
        return MergeResult(client_name=job.client_name, success=False, error=str(exc))
