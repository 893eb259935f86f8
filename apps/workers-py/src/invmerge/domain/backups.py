"""Group expense backups by the sub-folder of Expense Backup they live in."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from . import constants
from .records import FileRecord


@dataclass
class BackupFolder:
    key: str
    name: str
    full_path: str
    depth: int
    parent: Optional[str] = None
    files: List[FileRecord] = field(default_factory=list)


def folder_key(record: FileRecord, backup_base: str) -> str:
    rel = os.path.relpath(os.path.dirname(record.path), backup_base)
    if rel in ("", "."):
        return constants.ROOT_FOLDER_KEY
    return rel.replace(os.sep, "/")


def organize_by_folder(backup_files: Iterable[FileRecord], backup_base: str) -> List[BackupFolder]:
    folders: Dict[str, BackupFolder] = {}
    for record in backup_files:
        key = folder_key(record, backup_base)
        folder = folders.get(key)
        if folder is None:
            if key == constants.ROOT_FOLDER_KEY:
                folder = BackupFolder(
                    key=key,
                    name=constants.ROOT_FOLDER_NAME,
                    full_path=os.path.dirname(record.path),
                    depth=0,
                )
            else:
                parts = key.split("/")
                parent = None
                if len(parts) > 1:
                    parent = "/".join(parts[:-1])
                folder = BackupFolder(
                    key=key,
                    name=parts[-1],
                    full_path=os.path.dirname(record.path),
                    depth=len(parts),
                    parent=parent,
                )
            folders[key] = folder
        folder.files.append(record)
    return sorted(folders.values(), key=lambda f: f.key)


def display_name(folder: BackupFolder) -> str:
    return "  " * folder.depth + folder.name


def subfolders(folders: Iterable[BackupFolder], parent_key: str) -> List[BackupFolder]:
    return [f for f in folders if f.parent == parent_key]


def selected_paths(folders: Iterable[BackupFolder], selected_keys: Set[str]) -> List[str]:
    paths: List[str] = []
    for folder in folders:
        if folder.key in selected_keys:
            paths.extend(r.path for r in folder.files)
    return paths
