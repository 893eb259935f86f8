import sys
from pathlib import Path

import fitz
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "apps" / "workers-py" / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from invmerge.domain import pdf as domain_pdf  # noqa: E402
from invmerge.domain.errors import MergeError, OutputExistsError  # noqa: E402

from conftest import page_count, write_empty_pdf, write_image, write_pdf  # noqa: E402


def _leftovers(directory: Path):
    return [p.name for p in directory.iterdir() if p.name.endswith(".part")]


def test_fit_image_rect_tall_image_fills_height():
    x0, y0, x1, y1 = domain_pdf.fit_image_rect(100, 400)
    height = y1 - y0
    width = x1 - x0
    assert height == pytest.approx(842 * 0.9)
    assert width == pytest.approx(height * 100 / 400)
    assert x0 == pytest.approx((595 - width) / 2)
    assert y0 == pytest.approx((842 - height) / 2)


def test_fit_image_rect_wide_image_fills_width():
    x0, y0, x1, y1 = domain_pdf.fit_image_rect(400, 100)
    assert x1 - x0 == pytest.approx(595 * 0.9)
    assert y1 - y0 == pytest.approx(595 * 0.9 / 4)
    assert x0 + x1 == pytest.approx(595)
    assert y0 + y1 == pytest.approx(842)


def test_fit_image_rect_rejects_empty_image():
    with pytest.raises(ValueError):
        domain_pdf.fit_image_rect(0, 10)


def test_zero_backups_keeps_invoice_pages(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=3)
    out = tmp_path / "out.pdf"
    report = domain_pdf.merge_documents(str(invoice), [], str(out))
    assert report.page_count == 3
    assert page_count(out) == 3
    assert report.appended == []
    assert report.skipped == []


def test_invoice_without_pages_is_filled_by_backups(tmp_path):
    invoice = write_empty_pdf(tmp_path / "inv.pdf")
    backup = write_pdf(tmp_path / "b.pdf", pages=2, label="receipt")
    out = tmp_path / "out.pdf"

    report = domain_pdf.merge_documents(str(invoice), [str(backup)], str(out))

    assert report.page_count == 2
    assert page_count(out) == 2
    assert report.appended == [str(backup)]


def test_nothing_to_write_is_fatal(tmp_path):
    invoice = write_empty_pdf(tmp_path / "inv.pdf")
    out = tmp_path / "out.pdf"
    with pytest.raises(MergeError, match="no pages"):
        domain_pdf.merge_documents(str(invoice), [], str(out))
    assert not out.exists()
    assert _leftovers(tmp_path) == []


def test_page_count_law(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=2, label="invoice")
    backup_pdf = write_pdf(tmp_path / "b" / "receipts.pdf", pages=3, label="receipt")
    backup_img = write_image(tmp_path / "b" / "photo.jpg", width=300, height=200)
    out = tmp_path / "out.pdf"

    report = domain_pdf.merge_documents(str(invoice), [str(backup_pdf), str(backup_img)], str(out))

    assert report.page_count == 2 + 3 + 1
    assert page_count(out) == 6
    assert report.appended == [str(backup_pdf), str(backup_img)]


def test_pages_keep_their_order(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=1, label="invoice")
    first = write_pdf(tmp_path / "first.pdf", pages=2, label="first")
    second = write_pdf(tmp_path / "second.pdf", pages=1, label="second")
    out = tmp_path / "out.pdf"

    domain_pdf.merge_documents(str(invoice), [str(second), str(first)], str(out))

    with fitz.open(str(out)) as doc:
        texts = [page.get_text("text").strip() for page in doc]
    assert texts == [
        "invoice page 1",
        "second page 1",
        "first page 1",
        "first page 2",
    ]


def test_tall_image_page_layout(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf")
    image = write_image(tmp_path / "tall.png", width=100, height=400)
    out = tmp_path / "out.pdf"

    domain_pdf.merge_documents(str(invoice), [str(image)], str(out))

    with fitz.open(str(out)) as doc:
        page = doc[1]
        assert page.rect.width == pytest.approx(595)
        assert page.rect.height == pytest.approx(842)
        infos = page.get_image_info()
        assert len(infos) == 1
        x0, y0, x1, y1 = infos[0]["bbox"]
    assert y1 - y0 == pytest.approx(842 * 0.9, abs=0.5)
    assert x1 - x0 == pytest.approx(842 * 0.9 / 4, abs=0.5)
    assert x0 + x1 == pytest.approx(595, abs=0.5)
    assert y0 + y1 == pytest.approx(842, abs=0.5)


def test_corrupt_backups_are_skipped(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=1)
    good_pdf = write_pdf(tmp_path / "good.pdf", pages=2)
    bad_pdf = tmp_path / "bad.pdf"
    bad_pdf.write_bytes(b"this is not a pdf at all")
    bad_png = tmp_path / "bad.png"
    bad_png.write_bytes(b"\x89PNG but truncated")
    good_png = write_image(tmp_path / "good.png")
    out = tmp_path / "out.pdf"

    report = domain_pdf.merge_documents(
        str(invoice),
        [str(bad_pdf), str(good_pdf), str(bad_png), str(good_png)],
        str(out),
    )

    assert page_count(out) == 1 + 2 + 1
    assert report.page_count == 4
    assert report.appended == [str(good_pdf), str(good_png)]
    assert [s.path for s in report.skipped] == [str(bad_pdf), str(bad_png)]
    assert "cannot merge PDF" in report.skipped[0].reason
    assert "cannot embed image" in report.skipped[1].reason


def test_missing_backup_is_skipped(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf")
    out = tmp_path / "out.pdf"
    report = domain_pdf.merge_documents(str(invoice), [str(tmp_path / "gone.pdf")], str(out))
    assert report.page_count == 1
    assert len(report.skipped) == 1


def test_unsupported_extension_is_ignored(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf")
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")
    out = tmp_path / "out.pdf"
    report = domain_pdf.merge_documents(str(invoice), [str(notes)], str(out))
    assert page_count(out) == 1
    assert report.skipped[0].reason.startswith("unsupported file type")


def test_unreadable_invoice_is_fatal(tmp_path):
    bad = tmp_path / "inv.pdf"
    bad.write_bytes(b"garbage")
    out = tmp_path / "out.pdf"
    with pytest.raises(MergeError):
        domain_pdf.merge_documents(str(bad), [], str(out))
    with pytest.raises(MergeError):
        domain_pdf.merge_documents(str(tmp_path / "missing.pdf"), [], str(out))
    assert not out.exists()


def test_sources_are_not_modified(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=2)
    backup = write_pdf(tmp_path / "b.pdf", pages=1)
    before = (invoice.read_bytes(), backup.read_bytes())
    domain_pdf.merge_documents(str(invoice), [str(backup)], str(tmp_path / "out.pdf"))
    assert (invoice.read_bytes(), backup.read_bytes()) == before


def test_existing_output_is_never_overwritten(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=2)
    out = tmp_path / "out.pdf"
    out.write_bytes(b"keep me")
    with pytest.raises(OutputExistsError):
        domain_pdf.merge_documents(str(invoice), [], str(out))
    assert out.read_bytes() == b"keep me"
    assert _leftovers(tmp_path) == []


def test_failed_write_leaves_no_output(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf")
    out = tmp_path / "no-such-dir" / "out.pdf"
    with pytest.raises(MergeError):
        domain_pdf.merge_documents(str(invoice), [], str(out))
    assert not out.exists()


def test_save_failure_cleans_temp_file(tmp_path, monkeypatch):
    invoice = write_pdf(tmp_path / "inv.pdf")
    out_dir = tmp_path / "out"
    out_dir.mkdir()

    def broken_publish(tmp, target):
        raise OSError("disk full")

    monkeypatch.setattr(domain_pdf, "publish_exclusive", broken_publish)
    with pytest.raises(MergeError, match="disk full"):
        domain_pdf.merge_documents(str(invoice), [], str(out_dir / "out.pdf"))
    assert list(out_dir.iterdir()) == []


def test_pdf_merger_satisfies_protocol(tmp_path):
    invoice = write_pdf(tmp_path / "inv.pdf", pages=2)
    report = domain_pdf.PdfMerger().merge(str(invoice), (), str(tmp_path / "out.pdf"))
    assert report.page_count == 2
    assert _leftovers(tmp_path) == []
