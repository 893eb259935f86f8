"""Output file naming: filename templates and collision-free paths."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from . import constants
from .errors import TemplateError
from .files import sanitize_filename

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")


def validate_template(template: Optional[str]) -> str:
    """Return the template to use, or raise TemplateError if it cannot produce a name."""
    if template is None:
        return constants.DEFAULT_FILENAME_TEMPLATE
    if not template.strip():
        raise TemplateError("Filename template is empty")
    if "/" in template or "\\" in template:
        raise TemplateError(f"Filename template must not contain path separators: {template!r}")
    unknown = [
        name for name in _PLACEHOLDER_RE.findall(template)
        if name not in constants.TEMPLATE_PLACEHOLDERS
    ]
    if unknown:
        allowed = ", ".join("{%s}" % p for p in constants.TEMPLATE_PLACEHOLDERS)
        raise TemplateError(
            f"Unknown placeholder(s) {', '.join('{%s}' % u for u in unknown)} "
            f"in filename template; allowed: {allowed}"
        )
    return template


def format_output_name(
    template: Optional[str],
    month: str,
    invoice_name: str,
    client: str = "",
    fiscal_year: str = "",
) -> str:
    template = validate_template(template)
    month_num, _, year = month.partition("-")
    values = {
        "month": month,
        "invoiceName": invoice_name,
        "client": client,
        "fy": fiscal_year,
        "year": year,
        "monthNum": month_num,
    }
    name = _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)
    name = sanitize_filename(name).strip()
    if not name:
        raise TemplateError(f"Filename template {template!r} produced an empty name")
    return name


def invoice_stem(invoice_path: str) -> str:
    """File name without its extension; ``INV.PDF`` and ``inv.pdf`` both lose the suffix."""
    return os.path.splitext(os.path.basename(invoice_path))[0]


def unique_output_path(output_dir: str, base_name: str) -> Path:
    """First of base.pdf, base (1).pdf, base (2).pdf, ... that does not exist yet."""
    out = Path(output_dir)
    candidate = out / f"{base_name}{constants.OUTPUT_EXT}"
    counter = 1
    while candidate.exists():
        candidate = out / f"{base_name} ({counter}){constants.OUTPUT_EXT}"
        counter += 1
    return candidate
