"""PDF assembly: invoice pages first, then backup PDF pages and image pages."""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Iterable, Tuple

import fitz  # PyMuPDF

from . import constants
from .errors import MergeError, OutputExistsError
from .files import publish_exclusive
from .records import MergeReport, Skipped

logger = logging.getLogger(__name__)


def configure_mupdf_messages(debug: bool) -> None:
    """MuPDF prints repair errors to stderr by itself; show them with --debug only."""
    fitz.TOOLS.mupdf_display_errors(debug)


def fit_image_rect(
    image_width: float,
    image_height: float,
    page_width: float = constants.CANVAS_WIDTH,
    page_height: float = constants.CANVAS_HEIGHT,
    fill: float = constants.IMAGE_FILL,
) -> Tuple[float, float, float, float]:
    """Return (x0, y0, x1, y1) of the image scaled to fill and centred on the page."""
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"invalid image size {image_width}x{image_height}")
    image_aspect = image_width / image_height
    page_aspect = page_width / page_height
    if image_aspect > page_aspect:
        draw_width = page_width * fill
        draw_height = draw_width / image_aspect
    else:
        draw_height = page_height * fill
        draw_width = draw_height * image_aspect
    x0 = (page_width - draw_width) / 2
    y0 = (page_height - draw_height) / 2
    return x0, y0, x0 + draw_width, y0 + draw_height


def append_pdf(doc: fitz.Document, path: str) -> int:
    src = fitz.open(path, filetype="pdf")
    try:
        if src.page_count == 0:
            raise ValueError("document has no pages")
        doc.insert_pdf(src)
        return src.page_count
    finally:
        src.close()


def append_image_page(doc: fitz.Document, path: str) -> None:
    pix = fitz.Pixmap(path)
    rect = fitz.Rect(*fit_image_rect(pix.width, pix.height))
    page = doc.new_page(width=constants.CANVAS_WIDTH, height=constants.CANVAS_HEIGHT)
    try:
        page.insert_image(rect, filename=path)
    except Exception:
        doc.delete_page(page.number)
        raise


def merge_documents(invoice_path: str, backup_paths: Iterable[str], output_path: str) -> MergeReport:
    """Write invoice + backups to output_path and report what went in."""
    try:
        doc = fitz.open(invoice_path, filetype="pdf")
    except Exception as exc:
        raise MergeError(f"Cannot open invoice {invoice_path}: {exc}") from exc
    appended = []
    skipped = []
    try:
        for path in backup_paths:
            ext = os.path.splitext(path)[1].lower()
            if ext == ".pdf":
                try:
                    pages = append_pdf(doc, path)
                except Exception as exc:
                    logger.warning("Failed to merge PDF %s: %s", path, exc)
                    skipped.append(Skipped(path, f"cannot merge PDF: {exc}"))
                    continue
                logger.debug("Appended %d page(s) from %s", pages, path)
            elif ext in constants.IMAGE_EXTS:
                try:
                    append_image_page(doc, path)
                except Exception as exc:
                    logger.warning("Failed to embed image %s: %s", path, exc)
                    skipped.append(Skipped(path, f"cannot embed image: {exc}"))
                    continue
                logger.debug("Appended image page from %s", path)
            else:
                logger.debug("Skip unsupported backup %s", path)
                skipped.append(Skipped(path, f"unsupported file type {ext or '(none)'}"))
                continue
            appended.append(path)
        page_count = doc.page_count
        if page_count == 0:
            # MuPDF cannot save a document without pages
            raise MergeError(f"Nothing to write for {invoice_path}: merged document has no pages")
        save_atomic(doc, output_path)
    finally:
        doc.close()
    logger.info("Merged %d page(s) into %s", page_count, output_path)
    return MergeReport(
        output_path=output_path,
        page_count=page_count,
        appended=appended,
        skipped=skipped,
    )


def save_atomic(doc: fitz.Document, output_path: str) -> None:
    out_dir = os.path.dirname(os.path.abspath(output_path))
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".merge-", suffix=".pdf.part", dir=out_dir)
    except OSError as exc:
        raise MergeError(f"Cannot write to {out_dir}: {exc}") from exc
    os.close(fd)
    try:
        doc.save(tmp_path, garbage=3, deflate=True)
        publish_exclusive(tmp_path, output_path)
    except FileExistsError as exc:
        raise OutputExistsError(f"Output already exists: {output_path}") from exc
    except Exception as exc:
        raise MergeError(f"Cannot write {output_path}: {exc}") from exc
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class PdfMerger:
    """Default DocumentMerger backed by PyMuPDF."""

    def merge(self, invoice_path: str, backup_paths: Iterable[str], output_path: str) -> MergeReport:
        return merge_documents(invoice_path, backup_paths, output_path)
