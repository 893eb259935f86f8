import os
import sys
import warnings
from pathlib import Path
from typing import Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "apps" / "workers-py" / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
# batch worker processes need to import the package as well
os.environ["PYTHONPATH"] = os.pathsep.join(
    [str(SRC_DIR)]
    + [p for p in os.environ.get("PYTHONPATH", "").split(os.pathsep) if p and p != str(SRC_DIR)]
)

import fitz  # noqa: E402

warnings.filterwarnings(
    "ignore",
    message=r"builtin type .* has no __module__ attribute",
    category=DeprecationWarning,
)


def write_pdf(path: Path, pages: int = 1, label: str = "doc") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), f"{label} page {i + 1}")
    doc.save(str(path))
    doc.close()
    return path


def write_image(path: Path, width: int = 100, height: int = 200) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.clear_with(180)
    fmt = path.suffix.lower().lstrip(".").replace("jpeg", "jpg")
    pix.save(str(path), output=fmt)
    return path


def set_mtime(path: Path, ts: float) -> Path:
    os.utime(path, (ts, ts))
    return path


def page_count(path) -> int:
    with fitz.open(str(path)) as doc:
        return doc.page_count


class ClientTree:
    """Builds <base>/<client>/Invoices/FY<fy>/<month>/... folders for tests."""

    def __init__(self, base: Path):
        self.base = base
        base.mkdir(parents=True, exist_ok=True)

    def month_dir(self, client: str, fy: str, month: str) -> Path:
        return self.base / client / "Invoices" / f"FY{fy}" / month

    def invoice_dir(self, client: str, fy: str, month: str) -> Path:
        path = self.month_dir(client, fy, month) / "Invoice"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def invoice(
        self,
        client: str,
        fy: str,
        month: str,
        name: str = "invoice.pdf",
        pages: int = 1,
        mtime: Optional[float] = None,
    ) -> Path:
        path = write_pdf(self.invoice_dir(client, fy, month) / name, pages=pages, label=name)
        if mtime is not None:
            set_mtime(path, mtime)
        return path

    def backup(
        self,
        client: str,
        fy: str,
        month: str,
        rel: str,
        pages: int = 1,
        mtime: Optional[float] = None,
    ) -> Path:
        path = self.month_dir(client, fy, month) / "Expense Backup" / rel
        if path.suffix.lower() == ".pdf":
            write_pdf(path, pages=pages, label=rel)
        elif path.suffix.lower() in (".png", ".jpg", ".jpeg"):
            write_image(path)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("notes")
        if mtime is not None:
            set_mtime(path, mtime)
        return path


@pytest.fixture
def tree(tmp_path) -> ClientTree:
    return ClientTree(tmp_path / "base")


def write_empty_pdf(path: Path) -> Path:
    """A well-formed PDF whose page tree has no pages."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        b"%PDF-1.4\n"
        b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
        b"2 0 obj\n<< /Type /Pages /Kids [] /Count 0 >>\nendobj\n"
        b"trailer\n<< /Root 1 0 R /Size 3 >>\n%%EOF\n"
    )
    return path
