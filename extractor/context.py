# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from rich.console import Console

from extractor.host import Document
from extractor.staging import StagingLog
from utils.console_util import console as default_console


@dataclass
class ExtractContext:
    """State shared by every stage of one extraction run."""

    document: Document
    output_dir: Path
    log: StagingLog = field(default_factory=StagingLog)
    console: Console = default_console
    verbose: bool = False
    dpi: float = 144.0
    mode: str = "RGBA"

    @property
    def canvas_size(self) -> Tuple[int, int]:
        return (self.document.width, self.document.height)

    def debug(self, msg: str) -> None:
        if self.verbose:
            self.console.print(msg)
