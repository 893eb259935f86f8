"""Folder names, extensions and page geometry shared across scan and merge flows."""

import re

INVOICES_DIR = "Invoices"
INVOICE_DIR = "Invoice"
BACKUP_DIR = "Expense Backup"

FY_DIR_RE = re.compile(r"FY([0-9]{2})")
MONTH_DIR_RE = re.compile(r"([0-9]{2})-([0-9]{2})")

INVOICE_EXTS = (".pdf",)
IMAGE_EXTS = (".png", ".jpg", ".jpeg")
BACKUP_EXTS = (".pdf",) + IMAGE_EXTS

# ISO A4 at 72 dpi
CANVAS_WIDTH = 595
CANVAS_HEIGHT = 842
IMAGE_FILL = 0.9

OUTPUT_EXT = ".pdf"
DEFAULT_FILENAME_TEMPLATE = "{month} - {invoiceName} + Backup"
TEMPLATE_PLACEHOLDERS = ("month", "invoiceName", "client", "fy", "year", "monthNum")
UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"|?*]')

ROOT_FOLDER_KEY = "(root)"
ROOT_FOLDER_NAME = "Expense Backup (Root)"

OUTPUT_MODE_CLIENT = "client-folder"
OUTPUT_MODE_CUSTOM = "custom-folder"
OUTPUT_MODES = (OUTPUT_MODE_CLIENT, OUTPUT_MODE_CUSTOM)
