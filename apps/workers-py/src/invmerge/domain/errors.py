"""Exceptions raised by the scan and merge flows."""

from __future__ import annotations


class InvoiceMergerError(Exception):
    """Base class for errors surfaced to callers."""


class ScanError(InvoiceMergerError):
    """The base directory of a scan could not be read."""


class TemplateError(InvoiceMergerError):
    """A filename template is empty or malformed."""


class MergeError(InvoiceMergerError):
    """The invoice could not be loaded or the merged output could not be written."""


class OutputExistsError(MergeError):
    """Another writer published a file under the wanted output name first."""
