"""Discover client periods under a base directory.

Expected layout::

    <base>/<Client>/Invoices/FY<NN>/<MM>-<YY>/Invoice/*.pdf
    <base>/<Client>/Invoices/FY<NN>/<MM>-<YY>/Expense Backup/**/*.{pdf,png,jpg,jpeg}

Only an unreadable base directory fails the scan. Anything else that cannot
be read is logged, recorded in ``ScanResult.skipped`` and contributes nothing.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Tuple

from ..domain import constants
from ..domain import files as domain_files
from ..domain.errors import ScanError
from ..domain.filters import compile_filter
from ..domain.records import (
    FileRecord,
    Filters,
    PeriodRecord,
    ScanRequest,
    ScanResult,
    Skipped,
)

logger = logging.getLogger(__name__)


def period_dir(client_path: str, fiscal_year: str, month: str) -> str:
    return os.path.join(client_path, constants.INVOICES_DIR, f"FY{fiscal_year}", month)


def _subdirs(path: str) -> List[Tuple[str, str]]:
    """(name, path) of the directories inside path, sorted by name. Raises OSError."""
    with os.scandir(path) as it:
        found = [(e.name, e.path) for e in it if e.is_dir()]
    return sorted(found)


def find_newest_invoice(invoice_dir: str) -> Tuple[Optional[FileRecord], List[Skipped]]:
    try:
        pdfs = domain_files.list_files(invoice_dir, constants.INVOICE_EXTS)
    except OSError as exc:
        logger.warning("Cannot read invoice folder %s: %s", invoice_dir, exc)
        return None, [Skipped(invoice_dir, f"cannot read invoice folder: {exc}")]
    if not pdfs:
        return None, []
    return domain_files.newest_first(pdfs)[0], []


def find_backup_files(backup_dir: str) -> Tuple[List[FileRecord], List[Skipped]]:
    found, skipped = domain_files.walk_files(backup_dir, constants.BACKUP_EXTS)
    return domain_files.newest_first(found), skipped


def list_invoice_candidates(client_path: str, fiscal_year: str, month: str) -> List[FileRecord]:
    """All invoice PDFs of one period, newest first. Never raises."""
    invoice_dir = os.path.join(period_dir(client_path, fiscal_year, month), constants.INVOICE_DIR)
    try:
        pdfs = domain_files.list_files(invoice_dir, constants.INVOICE_EXTS)
    except OSError as exc:
        logger.debug("No invoice candidates in %s: %s", invoice_dir, exc)
        return []
    return domain_files.newest_first(pdfs)


def _scan_month(
    client_name: str,
    client_path: str,
    fiscal_year: str,
    month: str,
    month_path: str,
    filters: Filters,
    result: ScanResult,
) -> None:
    invoice_path = os.path.join(month_path, constants.INVOICE_DIR)
    backup_path = os.path.join(month_path, constants.BACKUP_DIR)
    if not os.path.isdir(invoice_path):
        logger.debug(
            "Skip %s FY%s %s: no %s folder",
            client_name,
            fiscal_year,
            month,
            constants.INVOICE_DIR,
        )
        result.skipped.append(Skipped(month_path, f"missing {constants.INVOICE_DIR} folder"))
        return

    invoice_file, skipped = find_newest_invoice(invoice_path)
    result.skipped.extend(skipped)
    invoice_filter = compile_filter(filters.invoice_filter)
    if invoice_file is not None and not invoice_filter.matches(invoice_file.name):
        logger.debug(
            "Skip %s FY%s %s: invoice %s filtered out",
            client_name,
            fiscal_year,
            month,
            invoice_file.name,
        )
        return

    backup_files: List[FileRecord] = []
    if os.path.isdir(backup_path):
        backup_files, skipped = find_backup_files(backup_path)
        result.skipped.extend(skipped)
        expense_filter = compile_filter(filters.expense_filter)
        backup_files = [f for f in backup_files if expense_filter.matches(f.name)]

    result.periods.append(
        PeriodRecord(
            client_name=client_name,
            client_path=client_path,
            fiscal_year=fiscal_year,
            month=month,
            invoice_path=invoice_path,
            backup_path=backup_path,
            invoice_file=invoice_file,
            backup_files=backup_files,
        )
    )


def _scan_client(client_name: str, client_path: str, request: ScanRequest, result: ScanResult) -> None:
    invoices_dir = os.path.join(client_path, constants.INVOICES_DIR)
    try:
        fy_dirs = _subdirs(invoices_dir)
    except FileNotFoundError:
        logger.debug("Skip client %s: no %s folder", client_name, constants.INVOICES_DIR)
        result.skipped.append(Skipped(client_path, f"missing {constants.INVOICES_DIR} folder"))
        return
    except OSError as exc:
        logger.warning("Cannot read %s: %s", invoices_dir, exc)
        result.skipped.append(Skipped(invoices_dir, f"cannot read directory: {exc}"))
        return

    for fy_name, fy_path in fy_dirs:
        fy_match = constants.FY_DIR_RE.fullmatch(fy_name)
        if not fy_match:
            continue
        fiscal_year = fy_match.group(1)
        if request.fiscal_year and fiscal_year != request.fiscal_year:
            continue
        try:
            month_dirs = _subdirs(fy_path)
        except OSError as exc:
            logger.warning("Cannot read %s: %s", fy_path, exc)
            result.skipped.append(Skipped(fy_path, f"cannot read directory: {exc}"))
            continue
        for month, month_path in month_dirs:
            if not constants.MONTH_DIR_RE.fullmatch(month):
                continue
            if request.month and month != request.month:
                continue
            _scan_month(client_name, client_path, fiscal_year, month, month_path, request.filters, result)


def scan_periods(request: ScanRequest) -> ScanResult:
    base = request.base_path
    try:
        clients = _subdirs(base)
    except OSError as exc:
        raise ScanError(f"Cannot scan base path {base}: {exc}") from exc

    client_filter = compile_filter(request.filters.client_filter)
    result = ScanResult()
    for client_name, client_path in clients:
        if not client_filter.matches(client_name):
            continue
        _scan_client(client_name, os.path.abspath(client_path), request, result)
    logger.debug("Scanned %s: %d period(s), %d skipped", base, len(result.periods), len(result.skipped))
    return result


def scan(
    base_path: str,
    fiscal_year: Optional[str] = None,
    month: Optional[str] = None,
    filters: Optional[Filters] = None,
) -> List[PeriodRecord]:
    request = ScanRequest(
        base_path=base_path,
        fiscal_year=fiscal_year,
        month=month,
        filters=filters or Filters(),
    )
    return scan_periods(request).periods
