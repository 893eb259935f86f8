"""Plain records passed between the scanner, the merger and their callers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from . import constants


@dataclass(frozen=True)
class FileRecord:
    path: str
    name: str
    size: int
    modified_time: float

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class Skipped:
    """Something a scan or merge passed over, and why."""

    path: str
    reason: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class Filters:
    client_filter: Optional[str] = None
    invoice_filter: Optional[str] = None
    expense_filter: Optional[str] = None


@dataclass(frozen=True)
class ScanRequest:
    base_path: str
    fiscal_year: Optional[str] = None
    month: Optional[str] = None
    filters: Filters = field(default_factory=Filters)


@dataclass
class PeriodRecord:
    client_name: str
    client_path: str
    fiscal_year: str
    month: str
    invoice_path: str
    backup_path: str
    invoice_file: Optional[FileRecord] = None
    backup_files: List[FileRecord] = field(default_factory=list)

    @property
    def has_invoice(self) -> bool:
        return self.invoice_file is not None

    @property
    def label(self) -> str:
        return f"FY{self.fiscal_year} {self.month}"

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ScanResult:
    periods: List[PeriodRecord] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "periods": [p.to_dict() for p in self.periods],
            "skipped": [s.to_dict() for s in self.skipped],
        }


@dataclass(frozen=True)
class MergeJob:
    client_name: str
    fiscal_year: str
    month: str
    invoice_path: str
    backup_paths: Tuple[str, ...] = ()
    output_path: Optional[str] = None
    client_path: Optional[str] = None


@dataclass(frozen=True)
class MergeRequest:
    jobs: Tuple[MergeJob, ...]
    output_mode: str = constants.OUTPUT_MODE_CLIENT
    custom_output_dir: Optional[str] = None
    filename_template: Optional[str] = None


@dataclass
class MergeReport:
    output_path: str
    page_count: int
    appended: List[str] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)


@dataclass
class MergeResult:
    client_name: str
    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    page_count: Optional[int] = None
    skipped: List[Skipped] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)
