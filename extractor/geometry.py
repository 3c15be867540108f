# -*- coding: utf-8 -*-
"""Canvas-relative geometry of layer bounding boxes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple, Union

Bounds = Tuple[int, int, int, int]
Number = Union[int, float]

SNAP_TO_MIDDLE = "snapToMiddle"
SNAP_HORIZONTAL_MIDDLE = "snapHorizontalMiddle"
SNAP_VERTICAL_MIDDLE = "snapVerticalMiddle"
SNAP_TO_CORNERS = "snapToCorners"


@dataclass(frozen=True)
class LayerGeometry:
    width: int
    height: int
    from_left: int
    from_top: int
    from_right: int
    from_bottom: int

    @property
    def snap(self) -> str:
        return snap_location(
            self.width, self.height, self.from_left, self.from_top, self.from_right, self.from_bottom
        )


def is_empty(bounds: Bounds) -> bool:
    return all(v == 0 for v in bounds)


def layer_geometry(bounds: Bounds, canvas_size: Tuple[int, int]) -> LayerGeometry:
    """Size of ``bounds`` and the room left between it and each canvas edge."""
    left, top, right, bottom = bounds
    canvas_w, canvas_h = canvas_size
    return LayerGeometry(
        width=right - left,
        height=bottom - top,
        from_left=left,
        from_top=top,
        from_right=canvas_w - right,
        from_bottom=canvas_h - bottom,
    )


def snap_location(
    width: Number,
    height: Number,
    from_left: Number,
    from_top: Number,
    from_right: Number,
    from_bottom: Number,
) -> str:
    """Coarse placement label.

    A layer counts as centered on an axis when the difference between its two
    edge offsets is at most half its own extent on that axis. Both axes win
    over horizontal only, which wins over vertical only.
    """
    left_right = abs(from_right - from_left)
    top_bottom = abs(from_bottom - from_top)
    row_middle = left_right <= width / 2
    col_middle = top_bottom <= height / 2
    if row_middle and col_middle:
        return SNAP_TO_MIDDLE
    if row_middle:
        return SNAP_HORIZONTAL_MIDDLE
    if col_middle:
        return SNAP_VERTICAL_MIDDLE
    return SNAP_TO_CORNERS


def format_percent(value: float) -> str:
    # integral values print without a fraction: 50.0 -> "50%"
    if float(value).is_integer():
        return f"{int(value)}%"
    return f"{value!r}%"


def determine_crop(bounds: Bounds, canvas_size: Tuple[int, int]) -> Dict[str, str]:
    """Crop focus at the center of ``bounds``, as percentages of the canvas."""
    geometry = layer_geometry(bounds, canvas_size)
    center_x = geometry.width / 2 + geometry.from_left
    center_y = geometry.height / 2 + geometry.from_top
    canvas_w, canvas_h = canvas_size
    return {
        "horizontal": format_percent(center_x / canvas_w * 100),
        "vertical": format_percent(center_y / canvas_h * 100),
    }
