# -*- coding: utf-8 -*-

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional


def safe_filename_component(name: str, default: str) -> str:
    """Make ``name`` usable as a single path component.

    Characters that are invalid on common filesystems become ``_``; leading and
    trailing spaces or dots are stripped and the result is capped at 80 chars.
    """
    s = (name or "").strip()
    if not s:
        return default
    forbidden = '<>:"/\\|?*'
    s = "".join("_" if (ch in forbidden or ord(ch) < 32) else ch for ch in s)
    s = s.strip(" .")
    if not s:
        return default
    if len(s) > 80:
        s = s[:80]
    return s


def document_base_name(name: str) -> str:
    """Document name up to its first dot: ``cover.final.psd`` -> ``cover``."""
    match = re.search(r"[^.]+", name or "")
    base = match.group(0) if match else ""
    return safe_filename_component(base, default="document")


def output_dir_for(document_path: Optional[Path], document_name: str, output_root: Optional[Path] = None) -> Path:
    """Folder receiving the exported layers: ``<output_root>/<base name>/``.

    ``output_root`` defaults to the folder of the source document, or the
    current directory for documents that were never saved.
    """
    if output_root is None:
        output_root = Path(document_path).parent if document_path is not None else Path.cwd()
    return Path(output_root) / document_base_name(document_name)
