#!/usr/bin/env python3
"""
invoice_merger.py
-----------------

Merge client invoices with their expense backups.

Reads a base folder laid out as::

    <base>/<Client>/Invoices/FY<NN>/<MM>-<YY>/Invoice/*.pdf
    <base>/<Client>/Invoices/FY<NN>/<MM>-<YY>/Expense Backup/**/*.{pdf,png,jpg,jpeg}

Subcommands:
- scan: list client periods matching the filters.
- candidates: list every invoice PDF of one client period, newest first.
- merge: merge one client's newest (or chosen) invoice with its backups.
- batch: merge every matching period that has an invoice.

Every subcommand accepts --json to print a single JSON line instead of text.
Exit codes: 0 ok, 2 scan failed, 3 nothing found, 4 merge/unexpected failure.

Examples:
    python -m invmerge.cli.invoice_merger scan --base ~/Clients --fy 25 --month 04-25
    python -m invmerge.cli.invoice_merger merge --base ~/Clients --client Acme \\
        --fy 25 --month 04-25 --out merged --template "{client} {month}"
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
from typing import Dict, List, Optional, Sequence

from invmerge.domain import backups as domain_backups
from invmerge.domain import constants
from invmerge.domain.errors import ScanError
from invmerge.domain.pdf import configure_mupdf_messages
from invmerge.domain.records import Filters, MergeJob, MergeRequest, MergeResult, ScanRequest
from invmerge.usecases import merge_batch
from invmerge.usecases import scan_periods as scan_uc

EXIT_OK = 0
EXIT_SCAN_FAILED = 2
EXIT_NOT_FOUND = 3
EXIT_FAILED = 4


def emit(payload: Dict, as_json: bool, lines: Sequence[str] = (), error: bool = False) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
        return
    stream = sys.stderr if error else sys.stdout
    for line in lines:
        print(line, file=stream)


def fail(message: str, as_json: bool, code: int) -> int:
    emit({"success": False, "error": message}, as_json, [f"Error: {message}"], error=True)
    return code


def build_filters(args: argparse.Namespace, client_filter: Optional[str] = None) -> Filters:
    return Filters(
        client_filter=client_filter if client_filter is not None else args.client_filter,
        invoice_filter=args.invoice_filter,
        expense_filter=args.expense_filter,
    )


def exact_client_filter(client: str) -> str:
    return f"^{re.escape(client)}$"


def format_backup_tree(period) -> List[str]:
    lines: List[str] = []
    for folder in domain_backups.organize_by_folder(period.backup_files, period.backup_path):
        indent = "      " + "  " * folder.depth
        lines.append(f"      {domain_backups.display_name(folder)}/")
        lines.extend(f"{indent}  {record.name}" for record in folder.files)
    return lines


def cmd_scan(args: argparse.Namespace) -> int:
    request = ScanRequest(
        base_path=args.base,
        fiscal_year=args.fy,
        month=args.month,
        filters=build_filters(args),
    )
    try:
        result = scan_uc.scan_periods(request)
    except ScanError as exc:
        return fail(str(exc), args.json, EXIT_SCAN_FAILED)

    periods = [p for p in result.periods if args.all or p.has_invoice]
    payload = {
        "count": len(periods),
        "clients": [
            {
                "name": p.client_name,
                "fiscal_year": p.fiscal_year,
                "month": p.month,
                "has_invoice": p.has_invoice,
                "invoice_file": p.invoice_file.name if p.invoice_file else None,
                "backup_count": len(p.backup_files),
            }
            for p in periods
        ],
        "skipped": len(result.skipped),
    }
    lines = [f"Found {len(periods)} client(s):", ""]
    for p in periods:
        lines.append(f"  {p.client_name} - {p.label}")
        lines.append(f"    Invoice: {p.invoice_file.name if p.invoice_file else 'N/A'}")
        lines.append(f"    Backups: {len(p.backup_files)} file(s)")
        if args.backups and p.backup_files:
            lines.extend(format_backup_tree(p))
    if result.skipped:
        lines.append("")
        lines.append(f"Skipped {len(result.skipped)} folder(s); rerun with --debug for details.")
    emit(payload, args.json, lines)
    return EXIT_OK


def cmd_candidates(args: argparse.Namespace) -> int:
    client_path = os.path.join(args.base, args.client)
    candidates = scan_uc.list_invoice_candidates(client_path, args.fy, args.month)
    if not candidates:
        return fail(
            f"No invoice candidates for {args.client} (FY{args.fy} {args.month})",
            args.json,
            EXIT_NOT_FOUND,
        )
    payload = {"count": len(candidates), "candidates": [c.to_dict() for c in candidates]}
    lines = [f"{len(candidates)} invoice candidate(s) for {args.client} (FY{args.fy} {args.month}):"]
    lines.extend(f"  {c.name}  ({c.size} bytes)" for c in candidates)
    emit(payload, args.json, lines)
    return EXIT_OK


def make_request(jobs: List[MergeJob], args: argparse.Namespace) -> MergeRequest:
    if args.out:
        return MergeRequest(
            jobs=tuple(jobs),
            output_mode=constants.OUTPUT_MODE_CUSTOM,
            custom_output_dir=os.path.expanduser(args.out),
            filename_template=args.template,
        )
    return MergeRequest(jobs=tuple(jobs), filename_template=args.template)


def result_lines(result: MergeResult) -> List[str]:
    if not result.success:
        return [f"✗ {result.client_name}: {result.error}"]
    lines = [f"✓ {result.client_name}: {result.output_path} ({result.page_count} page(s))"]
    lines.extend(f"    skipped {s.path}: {s.reason}" for s in result.skipped)
    return lines


def cmd_merge(args: argparse.Namespace) -> int:
    period_label = f"FY{args.fy} {args.month}"
    if not args.json:
        print(f"Scanning for client: {args.client} ({period_label})")
    request = ScanRequest(
        base_path=args.base,
        fiscal_year=args.fy,
        month=args.month,
        filters=build_filters(args, client_filter=exact_client_filter(args.client)),
    )
    try:
        periods = scan_uc.scan_periods(request).periods
    except ScanError as exc:
        return fail(str(exc), args.json, EXIT_FAILED)
    if not periods:
        return fail(f"Client not found: {args.client} ({period_label})", args.json, EXIT_NOT_FOUND)
    period = periods[0]

    invoice = period.invoice_file
    if args.invoice:
        candidates = scan_uc.list_invoice_candidates(period.client_path, period.fiscal_year, period.month)
        invoice = next((c for c in candidates if c.name == args.invoice), None)
        if invoice is None:
            return fail(f"Invoice {args.invoice} not found for {args.client}", args.json, EXIT_NOT_FOUND)
    if invoice is None:
        return fail(f"No invoice found for {args.client}", args.json, EXIT_NOT_FOUND)

    excluded = {key.strip("/").replace(os.sep, "/") for key in args.exclude_folder or []}
    backups = [
        f.path
        for f in period.backup_files
        if domain_backups.folder_key(f, period.backup_path) not in excluded
    ]
    job = MergeJob(
        client_name=period.client_name,
        client_path=period.client_path,
        fiscal_year=period.fiscal_year,
        month=period.month,
        invoice_path=invoice.path,
        backup_paths=tuple(backups),
    )
    if not args.json:
        print(f"Invoice: {invoice.name}")
        print(f"Backups: {len(backups)} file(s)")
        print("Merging...")

    result = merge_batch.run_batch(make_request([job], args))[0]
    if not result.success:
        return fail(result.error or "merge failed", args.json, EXIT_FAILED)
    payload = {
        "success": True,
        "client": period.client_name,
        "period": period_label,
        "output_path": result.output_path,
        "invoice_file": invoice.name,
        "backup_count": len(backups),
        "page_count": result.page_count,
        "skipped": [s.to_dict() for s in result.skipped],
    }
    lines = ["✓ Merge completed successfully!", f"Output saved to: {result.output_path}"]
    lines.extend(f"  skipped {s.path}: {s.reason}" for s in result.skipped)
    emit(payload, args.json, lines)
    return EXIT_OK


def cmd_batch(args: argparse.Namespace) -> int:
    request = ScanRequest(
        base_path=args.base,
        fiscal_year=args.fy,
        month=args.month,
        filters=build_filters(args),
    )
    try:
        periods = scan_uc.scan_periods(request).periods
    except ScanError as exc:
        return fail(str(exc), args.json, EXIT_SCAN_FAILED)
    jobs = merge_batch.jobs_from_periods(periods)
    if not jobs:
        return fail("No periods with an invoice matched the filters", args.json, EXIT_NOT_FOUND)

    results = merge_batch.run_batch(make_request(jobs, args), workers=args.workers)
    ok = all(r.success for r in results)
    payload = {
        "success": ok,
        "count": len(results),
        "failed": sum(1 for r in results if not r.success),
        "results": [r.to_dict() for r in results],
    }
    lines: List[str] = []
    for result in results:
        lines.extend(result_lines(result))
    lines.append(f"Merged {payload['count'] - payload['failed']}/{payload['count']} job(s).")
    emit(payload, args.json, lines)
    return EXIT_OK if ok else EXIT_FAILED


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    env_base = os.environ.get("INVOICE_MERGER_BASE")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--base",
        default=env_base,
        required=env_base is None,
        help="Base directory holding one folder per client (env: INVOICE_MERGER_BASE).",
    )
    common.add_argument("--json", action="store_true", help="Print a single JSON line.")
    common.add_argument("--debug", action="store_true", help="Verbose logging.")

    filters = argparse.ArgumentParser(add_help=False)
    filters.add_argument("--client-filter", help="Client name regex or text.")
    filters.add_argument("--invoice-filter", help="Invoice file name regex or text.")
    filters.add_argument("--expense-filter", help="Backup file name regex or text.")

    output = argparse.ArgumentParser(add_help=False)
    output.add_argument(
        "--out",
        default=os.environ.get("INVOICE_MERGER_OUT"),
        help="Write merged PDFs here instead of each client's Invoice folder "
        "(env: INVOICE_MERGER_OUT).",
    )
    output.add_argument(
        "--template",
        default=os.environ.get("INVOICE_MERGER_TEMPLATE"),
        help="Output file name template. Placeholders: {month} {invoiceName} {client} "
        "{fy} {year} {monthNum}. Default: '%s' (env: INVOICE_MERGER_TEMPLATE)."
        % constants.DEFAULT_FILENAME_TEMPLATE.replace("%", "%%"),
    )

    ap = argparse.ArgumentParser(
        prog="invoice-merger",
        description="Merge client invoices with their expense backup PDFs and images.",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    p_scan = sub.add_parser("scan", parents=[common, filters], help="List client periods.")
    p_scan.add_argument("--fy", help="Fiscal year, two digits (e.g. 25 for FY25).")
    p_scan.add_argument("--month", help="Month folder, MM-YY (e.g. 04-25).")
    p_scan.add_argument("--all", action="store_true", help="Include periods without an invoice.")
    p_scan.add_argument("--backups", action="store_true", help="List backups grouped by folder.")
    p_scan.set_defaults(func=cmd_scan)

    p_cand = sub.add_parser("candidates", parents=[common], help="List invoice PDFs of one period.")
    p_cand.add_argument("--client", required=True, help="Client folder name.")
    p_cand.add_argument("--fy", required=True, help="Fiscal year, two digits.")
    p_cand.add_argument("--month", required=True, help="Month folder, MM-YY.")
    p_cand.set_defaults(func=cmd_candidates)

    p_merge = sub.add_parser(
        "merge", parents=[common, output], help="Merge one client's invoice with its backups."
    )
    p_merge.add_argument("--client", required=True, help="Client folder name (exact).")
    p_merge.add_argument("--fy", required=True, help="Fiscal year, two digits.")
    p_merge.add_argument("--month", required=True, help="Month folder, MM-YY.")
    p_merge.add_argument("--invoice", help="Invoice file name to use instead of the newest one.")
    p_merge.add_argument(
        "--exclude-folder",
        action="append",
        help="Backup sub-folder (relative to Expense Backup, '(root)' for top level) to leave out. "
        "Repeatable.",
    )
    p_merge.add_argument("--invoice-filter", help="Invoice file name regex or text.")
    p_merge.add_argument("--expense-filter", help="Backup file name regex or text.")
    p_merge.set_defaults(func=cmd_merge, client_filter=None)

    p_batch = sub.add_parser(
        "batch", parents=[common, filters, output], help="Merge every matching period."
    )
    p_batch.add_argument("--fy", help="Fiscal year, two digits.")
    p_batch.add_argument("--month", help="Month folder, MM-YY.")
    p_batch.add_argument(
        "--workers",
        type=int,
        default=_env_int("INVOICE_MERGER_WORKERS", 1),
        help="Parallel merge processes (env: INVOICE_MERGER_WORKERS). Default: 1.",
    )
    p_batch.set_defaults(func=cmd_batch)

    return ap.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format="%(message)s")
    configure_mupdf_messages(args.debug)
    args.base = os.path.expanduser(args.base)
    try:
        return args.func(args)
    except Exception as exc:  # pragma: no cover - last-resort guard
        logging.debug("Unhandled error", exc_info=True)
        return fail(f"{type(exc).__name__}: {exc}", args.json, EXIT_FAILED)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
