# -*- coding: utf-8 -*-

from __future__ import annotations

from collections import deque
from typing import Deque, List, Set

from extractor.context import ExtractContext
from extractor.host import Layer


def _unmerged_partners(members: List[Layer], seen: Set[int]) -> List[Layer]:
    partners: List[Layer] = []
    for member in members:
        for partner in member.linked_layers:
            if id(partner) in seen or any(partner is m for m in members):
                continue
            if partner.parent is None or any(partner is p for p in partners):
                continue
            partners.append(partner)
    return partners


def merge_linked(
    ctx: ExtractContext,
    container=None,
    recursive: bool = True,
    transitive: bool = False,
) -> int:
    """Collapse each set of linked layers into a single raster layer.

    Layers are visited in document order from a worklist. A visible group is
    expanded in place when ``recursive`` is set, so its children are handled
    before the group's later siblings. For a layer with link partners, every
    partner is moved into a new group created where the layer sits, the layer
    itself is moved in last, and the group is merged. The merged layer keeps
    the originating layer's name.

    A layer whose partners include one that an earlier merge already consumed
    is left alone. With ``transitive`` the merged layer inherits the remaining
    partners of its members and is visited again, so chained link sets end up
    as one layer.

    Returns:
        Number of merges performed.
    """
    document = ctx.document
    container = container if container is not None else document
    seen: Set[int] = set()
    merges = 0

    worklist: Deque[Layer] = deque(container.layers)
    while worklist:
        layer = worklist.popleft()
        if layer.parent is None or id(layer) in seen:
            continue

        if layer.is_group:
            if recursive and layer.visible:
                worklist.extendleft(reversed(layer.layers))
            continue

        partners = layer.linked_layers
        if not partners:
            continue

        if any(id(p) in seen or p.parent is None for p in partners):
            ctx.debug(f"[yellow]Skipping link set of {layer.name!r}: partner already merged[/yellow]")
            continue

        members = partners + [layer]
        inherited = _unmerged_partners(members, seen) if transitive else []
        for member in members:
            seen.add(id(member))

        parent = layer.parent
        group = document.add_group(parent, index=parent.index(layer), name=layer.name)
        for partner in partners:
            document.move_layer(partner, group)
        document.move_layer(layer, group)
        merged = document.merge_group(group, visible=layer.visible)
        merges += 1
        ctx.debug(f"Merged {len(members)} linked layers into {merged.name!r}")

        if inherited:
            merged.link(*inherited)
            worklist.appendleft(merged)

    return merges


def linked_sets(container) -> List[List[Layer]]:
    """Connected sets of linked layers below ``container``, in document order."""
    sets: List[List[Layer]] = []
    visited: Set[int] = set()
    for layer in container.descendants():
        if id(layer) in visited or not layer.linked_layers:
            continue
        component: List[Layer] = []
        stack = [layer]
        while stack:
            node = stack.pop()
            if id(node) in visited:
                continue
            visited.add(id(node))
            component.append(node)
            stack.extend(node.linked_layers)
        sets.append(component)
    return sets
