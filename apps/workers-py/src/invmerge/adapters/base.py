from __future__ import annotations

from typing import Iterable, Protocol

from ..domain.records import MergeReport


class DocumentMerger(Protocol):
    """Contract for anything that can assemble an invoice with its backups."""

    def merge(
        self, invoice_path: str, backup_paths: Iterable[str], output_path: str
    ) -> MergeReport: ...
