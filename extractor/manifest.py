# -*- coding: utf-8 -*-

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from extractor.errors import ExtractorError
from extractor.geometry import LayerGeometry
from extractor.staging import StagingLog

FOREGROUND = "foreground"
BACKGROUND = "background"


@dataclass
class ManifestEntry:
    snap: str
    width: int
    height: int
    from_left: int
    from_top: int
    from_right: int
    from_bottom: int
    ratio: Optional[float] = None
    file: str = ""

    @classmethod
    def from_geometry(cls, geometry: LayerGeometry) -> "ManifestEntry":
        return cls(
            snap=geometry.snap,
            width=geometry.width,
            height=geometry.height,
            from_left=geometry.from_left,
            from_top=geometry.from_top,
            from_right=geometry.from_right,
            from_bottom=geometry.from_bottom,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "snap": self.snap,
            "width": self.width,
            "height": self.height,
            "fromLeft": self.from_left,
            "fromTop": self.from_top,
            "fromRight": self.from_right,
            "fromBottom": self.from_bottom,
        }
        if self.ratio is not None:
            data["ratio"] = self.ratio
        data["file"] = self.file
        return data


@dataclass
class Manifest:
    """Document level description of every exported layer.

    ``named`` holds the buckets created on the fly (one list per ``Border*``
    layer name) and single entries such as ``blurred``, in the order they were
    first added.
    """

    width: int
    height: int
    crop: Dict[str, str] = field(default_factory=lambda: {"horizontal": "center", "vertical": "center"})
    foreground: List[ManifestEntry] = field(default_factory=list)
    background: List[ManifestEntry] = field(default_factory=list)
    named: Dict[str, Union[List[ManifestEntry], ManifestEntry]] = field(default_factory=dict)

    def bucket(self, key: str) -> List[ManifestEntry]:
        if key == FOREGROUND:
            return self.foreground
        if key == BACKGROUND:
            return self.background
        bucket = self.named.setdefault(key, [])
        if not isinstance(bucket, list):
            raise ExtractorError(f"Manifest key {key!r} holds a single entry, not a list")
        return bucket

    def set_single(self, key: str, entry: ManifestEntry) -> None:
        if key in (FOREGROUND, BACKGROUND) or isinstance(self.named.get(key), list):
            raise ExtractorError(f"Manifest key {key!r} holds a list, not a single entry")
        self.named[key] = entry

    @property
    def blurred(self) -> Optional[ManifestEntry]:
        entry = self.named.get("blurred")
        return entry if isinstance(entry, ManifestEntry) else None

    def iter_entries(self) -> Iterator[Tuple[str, ManifestEntry]]:
        for entry in self.foreground:
            yield FOREGROUND, entry
        for entry in self.background:
            yield BACKGROUND, entry
        for key, value in self.named.items():
            if isinstance(value, list):
                for entry in value:
                    yield key, entry
            else:
                yield key, value

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "crop": dict(self.crop),
            "dimensions": {"width": self.width, "height": self.height},
            "foreground": [e.to_dict() for e in self.foreground],
            "background": [e.to_dict() for e in self.background],
        }
        for key, value in self.named.items():
            if isinstance(value, list):
                data[key] = [e.to_dict() for e in value]
            else:
                data[key] = value.to_dict()
        return data


def manifest_json(manifest: Manifest, indent: Union[str, int] = "\t") -> str:
    return json.dumps(manifest.to_dict(), indent=indent, ensure_ascii=False)


def write_manifest(
    manifest: Manifest,
    output_dir: Path,
    filename: str = "info.json",
    indent: Union[str, int] = "\t",
    log: Optional[StagingLog] = None,
) -> Path:
    """Write the manifest as pretty printed JSON, replacing an existing file."""
    path = Path(output_dir) / filename
    if log is not None:
        log.record_file(path)
    with open(path, "w", encoding="utf-8") as f:
        f.write(manifest_json(manifest, indent=indent))
        f.write("\n")
    return path
