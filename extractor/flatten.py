# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import List

from extractor.context import ExtractContext
from extractor.host import Layer


def rasterize_and_crop(ctx: ExtractContext, container=None, recursive: bool = True) -> int:
    """Rasterize every visible leaf layer, cropping the canvas after each one.

    The crop to ``(0, 0, width, height)`` runs right after every
    rasterization, so no layer keeps content outside the canvas.

    Returns:
        Number of layers rasterized.
    """
    document = ctx.document
    container = container if container is not None else document
    count = 0
    for layer in list(container.layers):
        if not layer.visible:
            continue
        if layer.is_group:
            if recursive:
                count += rasterize_and_crop(ctx, layer, recursive=True)
            continue
        document.set_active_layer(layer)
        document.rasterize(layer)
        document.crop((0, 0, document.width, document.height))
        count += 1
    return count


def collect_visible_leaves(container, recursive: bool = True) -> List[Layer]:
    """Visible leaf layers in document order, pulled out of their groups.

    Invisible layers and invisible groups are skipped entirely. Without
    ``recursive`` only the container's direct leaves are returned.
    """
    leaves: List[Layer] = []

    def walk(layers) -> None:
        for layer in layers:
            if not layer.visible:
                continue
            if layer.is_group:
                if recursive:
                    walk(layer.layers)
            else:
                leaves.append(layer)

    walk(container.layers)
    return leaves
