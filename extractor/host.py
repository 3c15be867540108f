# -*- coding: utf-8 -*-
"""In-memory host for layered documents.

The extraction pipeline only talks to :class:`Host` and :class:`Document`.
Documents are opened from PSD/PSB files with psd-tools; raster content lives
in RGBA Pillow images placed at a canvas offset. Layer order follows a layer
panel: index 0 is the topmost layer of its container.
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from extractor.errors import HostError, NoDocumentError
from extractor.staging import StagingLog

try:
    from psd_tools import PSDImage
    from psd_tools.constants import Resource
except Exception as e:  # pragma: no cover
    PSDImage = None  # type: ignore
    Resource = None  # type: ignore
    _PSD_IMPORT_ERROR = e
else:
    _PSD_IMPORT_ERROR = None

Bounds = Tuple[int, int, int, int]
EMPTY_BOUNDS: Bounds = (0, 0, 0, 0)


def _ensure_psd_tools_available() -> None:
    if PSDImage is None:
        raise RuntimeError(
            "psd-tools is not available. Please install dependencies first (pip install -e .). "
            f"Import error: {_PSD_IMPORT_ERROR}"
        )


def _to_rgba(image: Optional[Image.Image]) -> Optional[Image.Image]:
    if image is None:
        return None
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return image


def _source_bbox(layer) -> Bounds:
    bbox = getattr(layer, "bbox", None)
    if bbox is None:
        return EMPTY_BOUNDS
    try:
        x1, y1, x2, y2 = (int(round(float(v))) for v in bbox)
    except (TypeError, ValueError):
        return EMPTY_BOUNDS
    return (x1, y1, x2, y2)


def _own_visibility(layer) -> bool:
    return bool(getattr(layer, "visible", True))


def alpha_bounds(image: Optional[Image.Image], offset: Tuple[int, int] = (0, 0)) -> Bounds:
    """Bounding box of the non-transparent pixels of ``image`` in canvas coordinates.

    A missing or fully transparent image has bounds ``(0, 0, 0, 0)``.
    """
    if image is None:
        return EMPTY_BOUNDS
    alpha = np.asarray(_to_rgba(image).getchannel("A"))
    ys, xs = np.nonzero(alpha)
    if xs.size == 0:
        return EMPTY_BOUNDS
    x0, y0 = offset
    return (
        x0 + int(xs.min()),
        y0 + int(ys.min()),
        x0 + int(xs.max()) + 1,
        y0 + int(ys.max()) + 1,
    )


def _clip_to_canvas(
    image: Image.Image, offset: Tuple[int, int], canvas_size: Tuple[int, int]
) -> Tuple[Optional[Image.Image], Tuple[int, int]]:
    ox, oy = offset
    x1, y1 = max(ox, 0), max(oy, 0)
    x2, y2 = min(ox + image.width, canvas_size[0]), min(oy + image.height, canvas_size[1])
    if x2 <= x1 or y2 <= y1:
        return None, (0, 0)
    if (x1, y1, x2, y2) == (ox, oy, ox + image.width, oy + image.height):
        return image, offset
    return image.crop((x1 - ox, y1 - oy, x2 - ox, y2 - oy)), (x1, y1)


class Layer:
    """A node of the layer tree."""

    is_group = False

    def __init__(self, name: str, visible: bool = True) -> None:
        self.name = name
        self.visible = visible
        self.parent = None
        self._links: List["Layer"] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    @property
    def linked_layers(self) -> List["Layer"]:
        return list(self._links)

    def link(self, *others: "Layer") -> None:
        """Link this layer with ``others``; the relation is symmetric."""
        for other in others:
            if other is self:
                continue
            if not any(l is other for l in self._links):
                self._links.append(other)
            if not any(l is self for l in other._links):
                other._links.append(self)

    @property
    def document(self) -> Optional["Document"]:
        node = self.parent
        while node is not None and not isinstance(node, Document):
            node = node.parent
        return node

    def is_inside(self, container) -> bool:
        node = self.parent
        while node is not None:
            if node is container:
                return True
            node = node.parent
        return False

    @property
    def bounds(self) -> Bounds:
        raise NotImplementedError


class _Container:
    """Ordered child collection shared by documents and groups."""

    layers: List[Layer]

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def index(self, layer: Layer) -> int:
        for i, child in enumerate(self.layers):
            if child is layer:
                return i
        raise HostError(f"{layer!r} is not a child of {self!r}")

    def insert(self, index: int, layer: Layer) -> Layer:
        layer.parent = self
        self.layers.insert(index, layer)
        return layer

    def append(self, layer: Layer) -> Layer:
        return self.insert(len(self.layers), layer)

    def detach(self, layer: Layer) -> int:
        index = self.index(layer)
        del self.layers[index]
        layer.parent = None
        return index

    def descendants(self) -> Iterator[Layer]:
        for layer in self.layers:
            yield layer
            if layer.is_group:
                yield from layer.descendants()


class PixelLayer(Layer):
    """Leaf layer holding raster content, or a not yet rasterized source layer."""

    def __init__(
        self,
        name: str,
        image: Optional[Image.Image] = None,
        offset: Tuple[int, int] = (0, 0),
        visible: bool = True,
        source=None,
        is_background: bool = False,
    ) -> None:
        super().__init__(name, visible)
        self.image = _to_rgba(image)
        self.offset = (int(offset[0]), int(offset[1]))
        self.source = source
        self.is_background = is_background

    @property
    def rasterized(self) -> bool:
        return self.source is None

    @property
    def bounds(self) -> Bounds:
        if self.source is not None:
            x1, y1, x2, y2 = _source_bbox(self.source)
            if (x1, y1, x2, y2) == EMPTY_BOUNDS:
                return EMPTY_BOUNDS
            ox, oy = self.offset
            return (ox, oy, ox + x2 - x1, oy + y2 - y1)
        return alpha_bounds(self.image, self.offset)

    def render(self) -> Optional[Image.Image]:
        """Pixel content at ``offset``, compositing the source layer when needed."""
        if self.source is not None:
            return _to_rgba(self.source.composite(layer_filter=_own_visibility))
        return self.image


class GroupLayer(_Container, Layer):
    is_group = True

    def __init__(self, name: str, layers: Optional[Sequence[Layer]] = None, visible: bool = True) -> None:
        Layer.__init__(self, name, visible)
        self.layers = []
        for layer in layers or []:
            self.append(layer)

    @property
    def bounds(self) -> Bounds:
        boxes = [l.bounds for l in self.layers if l.visible]
        boxes = [b for b in boxes if b != EMPTY_BOUNDS]
        if not boxes:
            return EMPTY_BOUNDS
        return (
            min(b[0] for b in boxes),
            min(b[1] for b in boxes),
            max(b[2] for b in boxes),
            max(b[3] for b in boxes),
        )


def _visible_pixels(layers: Sequence[Layer]) -> List[Tuple[Image.Image, Tuple[int, int]]]:
    # bottom-most first, in compositing order
    pieces: List[Tuple[Image.Image, Tuple[int, int]]] = []
    for layer in reversed(layers):
        if not layer.visible:
            continue
        if layer.is_group:
            pieces.extend(_visible_pixels(layer.layers))
            continue
        image = layer.render()
        if image is not None:
            pieces.append((image, layer.offset))
    return pieces


def _composite(
    pieces: Sequence[Tuple[Image.Image, Tuple[int, int]]]
) -> Tuple[Optional[Image.Image], Tuple[int, int]]:
    if not pieces:
        return None, (0, 0)
    left = min(o[0] for _, o in pieces)
    top = min(o[1] for _, o in pieces)
    right = max(o[0] + img.width for img, o in pieces)
    bottom = max(o[1] + img.height for img, o in pieces)
    base = Image.new("RGBA", (right - left, bottom - top), (0, 0, 0, 0))
    for img, (x, y) in pieces:
        base.alpha_composite(img, dest=(x - left, y - top))
    return base, (left, top)


class Document(_Container):
    """Editable layered document.

    Mutations are recorded on ``history`` (when set) so they can be undone.
    """

    parent = None

    def __init__(
        self,
        width: int,
        height: int,
        name: str = "Untitled",
        path: Optional[Path] = None,
        resolution: float = 72.0,
    ) -> None:
        self.width = int(width)
        self.height = int(height)
        self.name = name
        self.path = Path(path) if path is not None else None
        self.resolution = float(resolution)
        self.layers: List[Layer] = []
        self.active_layer: Optional[Layer] = None
        self.selection: Optional[Bounds] = None
        self.history: Optional[StagingLog] = None
        self.host: Optional["Host"] = None
        self.closed = False
        self._group_counter = 0

    def __repr__(self) -> str:
        return f"<Document {self.name!r} {self.width}x{self.height}>"

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def _record(self, action: str, undo) -> None:
        if self.history is not None:
            self.history.record(action, undo)

    def _require_member(self, layer: Layer) -> None:
        if layer.document is not self:
            raise HostError(f"{layer!r} does not belong to {self!r}")

    def set_active_layer(self, layer: Layer) -> None:
        self._require_member(layer)
        previous = self.active_layer
        self.active_layer = layer
        self._record(f"activate {layer.name}", lambda: setattr(self, "active_layer", previous))

    def rasterize(self, layer: Optional[Layer] = None) -> Layer:
        """Rasterize the entire content of ``layer`` (default: the active layer) in place."""
        layer = layer if layer is not None else self.active_layer
        if layer is None:
            raise HostError("No active layer to rasterize")
        self._require_member(layer)
        if layer.is_group:
            raise HostError(f"Cannot rasterize group {layer.name!r}")
        if layer.rasterized:
            return layer

        source, image = layer.source, layer.image
        layer.image = _to_rgba(source.composite(layer_filter=_own_visibility))
        layer.source = None

        def undo() -> None:
            layer.image = image
            layer.source = source

        self._record(f"rasterize {layer.name}", undo)
        return layer

    def crop(self, box: Bounds) -> None:
        """Crop the canvas to ``box``, clipping every raster layer to the new canvas."""
        left, top, right, bottom = (int(v) for v in box)
        if right <= left or bottom <= top:
            raise HostError(f"Invalid crop rectangle: {box}")
        canvas_size = (right - left, bottom - top)
        leaves = [l for l in self.descendants() if not l.is_group]
        snapshot = [(l, l.image, l.offset) for l in leaves]
        previous_size = self.size

        for layer in leaves:
            ox, oy = layer.offset[0] - left, layer.offset[1] - top
            if layer.image is not None:
                layer.image, layer.offset = _clip_to_canvas(layer.image, (ox, oy), canvas_size)
            else:
                layer.offset = (ox, oy)
        self.width, self.height = canvas_size

        def undo() -> None:
            for layer, image, offset in snapshot:
                layer.image, layer.offset = image, offset
            self.width, self.height = previous_size

        self._record(f"crop {left},{top},{right},{bottom}", undo)

    def add_group(self, container: Optional[_Container] = None, index: int = 0, name: Optional[str] = None) -> GroupLayer:
        container = container if container is not None else self
        if container is not self:
            self._require_member(container)
        if name is None:
            self._group_counter += 1
            name = f"Group {self._group_counter}"
        group = GroupLayer(name)
        container.insert(index, group)
        self._record(f"add group {name}", lambda: container.detach(group))
        return group

    def move_layer(self, layer: Layer, target: _Container, index: int = 0) -> None:
        """Move ``layer`` inside ``target`` (a group or the document)."""
        self._require_member(layer)
        if target is not self:
            self._require_member(target)
        if target is layer or (layer.is_group and isinstance(target, Layer) and target.is_inside(layer)):
            raise HostError(f"Cannot move {layer!r} into itself")
        old_parent = layer.parent
        old_index = old_parent.detach(layer)
        target.insert(index, layer)

        def undo() -> None:
            target.detach(layer)
            old_parent.insert(old_index, layer)

        self._record(f"move {layer.name}", undo)

    def merge_group(self, group: GroupLayer, visible: Optional[bool] = None) -> PixelLayer:
        """Merge ``group`` into a single raster layer that keeps the group's name and place.

        The merged layer takes the group's visibility unless ``visible`` is given.
        Former children are left detached.
        """
        self._require_member(group)
        if not group.is_group:
            raise HostError(f"{group!r} is not a group")
        image, offset = _composite(_visible_pixels(group.layers))
        visible = group.visible if visible is None else visible
        merged = PixelLayer(group.name, image=image, offset=offset, visible=visible)
        parent = group.parent
        index = parent.detach(group)
        parent.insert(index, merged)
        for child in group.layers:
            child.parent = None
        previous_active = self.active_layer
        self.active_layer = merged

        def undo() -> None:
            parent.detach(merged)
            for child in group.layers:
                child.parent = group
            parent.insert(index, group)
            self.active_layer = previous_active

        self._record(f"merge {group.name}", undo)
        return merged

    def remove_layer(self, layer: Layer) -> None:
        self._require_member(layer)
        parent = layer.parent
        index = parent.detach(layer)
        previous_active = self.active_layer
        if self.active_layer is layer:
            self.active_layer = None

        def undo() -> None:
            parent.insert(index, layer)
            self.active_layer = previous_active

        self._record(f"remove {layer.name}", undo)

    def select(self, box: Bounds) -> None:
        previous = self.selection
        self.selection = tuple(int(v) for v in box)  # type: ignore[assignment]
        self._record("select", lambda: setattr(self, "selection", previous))

    def copy(self) -> Image.Image:
        """Copy the active layer's pixels inside the selection to the host clipboard."""
        if self.host is None:
            raise HostError("Document is not attached to a host")
        if self.selection is None:
            raise HostError("Nothing is selected")
        layer = self.active_layer
        if layer is None or layer.is_group:
            raise HostError("Copy needs an active pixel layer")
        left, top, right, bottom = self.selection
        if right <= left or bottom <= top:
            raise HostError(f"Selection is empty: {self.selection}")

        clip = Image.new("RGBA", (right - left, bottom - top), (0, 0, 0, 0))
        image = layer.render()
        if image is not None:
            clip.paste(image, (layer.offset[0] - left, layer.offset[1] - top))
        self.host.clipboard = clip
        return clip

    def paste(self) -> PixelLayer:
        """Paste the clipboard as a new top layer, centered on the canvas."""
        if self.host is None or self.host.clipboard is None:
            raise HostError("Clipboard is empty")
        clip = self.host.clipboard
        offset = ((self.width - clip.width) // 2, (self.height - clip.height) // 2)
        layer = PixelLayer(f"Layer {len(self.layers)}", image=clip.copy(), offset=offset)
        self.insert(0, layer)
        self.active_layer = layer
        self._record(f"paste {layer.name}", lambda: self.detach(layer))
        return layer

    @property
    def background_layer(self) -> Optional[PixelLayer]:
        for layer in self.layers:
            if getattr(layer, "is_background", False):
                return layer  # type: ignore[return-value]
        return None

    def remove_background(self) -> None:
        background = self.background_layer
        if background is None:
            raise HostError(f"{self!r} has no background layer")
        self.remove_layer(background)

    def export_png(self, path: Path, mode: str = "RGBA") -> Path:
        """Write the document's single visible layer to ``path`` as PNG."""
        leaves = [l for l in self.descendants() if not l.is_group and l.visible]
        if len(leaves) != 1:
            raise HostError(f"Export expects a single layer, found {len(leaves)}")
        layer = leaves[0]
        canvas = Image.new("RGBA", self.size, (0, 0, 0, 0))
        image = layer.render()
        if image is not None:
            canvas.paste(image, layer.offset)
        if canvas.mode != mode:
            canvas = canvas.convert(mode)
        path = Path(path)
        canvas.save(path, format="PNG", dpi=(self.resolution, self.resolution))
        return path

    def close(self, save: bool = False) -> None:
        if save:
            raise HostError("Saving documents back is not supported")
        if self.host is not None:
            self.host.detach(self)
        self.closed = True


class Host:
    """Set of open documents plus the clipboard they share."""

    def __init__(self) -> None:
        self.documents: List[Document] = []
        self.clipboard: Optional[Image.Image] = None
        self._active: Optional[Document] = None

    @property
    def active_document(self) -> Optional[Document]:
        return self._active

    @active_document.setter
    def active_document(self, document: Document) -> None:
        if not any(d is document for d in self.documents):
            raise HostError(f"{document!r} is not open")
        self._active = document

    def require_document(self) -> Document:
        if self._active is None:
            raise NoDocumentError()
        return self._active

    def attach(self, document: Document) -> Document:
        document.host = self
        self.documents.append(document)
        self._active = document
        return document

    def detach(self, document: Document) -> None:
        self.documents = [d for d in self.documents if d is not document]
        document.host = None
        if self._active is document:
            self._active = self.documents[-1] if self.documents else None

    def open(self, path: Path) -> Document:
        return self.attach(open_psd(path))

    def add_document(
        self,
        width: int,
        height: int,
        resolution: float = 72.0,
        name: str = "Untitled",
        background: bool = True,
    ) -> Document:
        """Create a new document, with a white background layer by default."""
        document = Document(width, height, name=name, resolution=resolution)
        if background:
            fill = Image.new("RGBA", (int(width), int(height)), (255, 255, 255, 255))
            document.append(PixelLayer("Background", image=fill, is_background=True))
        return self.attach(document)

    def new_document_from_clipboard(self, resolution: float = 72.0, name: str = "Untitled") -> Document:
        """New document sized to the clipboard, with the clipboard pasted over its background."""
        if self.clipboard is None:
            raise HostError("Clipboard is empty")
        width, height = self.clipboard.size
        document = self.add_document(width, height, resolution=resolution, name=name)
        document.paste()
        return document


def _layer_group_ids(psd) -> Dict[int, int]:
    """Map layer record ids to the link group ids of image resource 1026.

    Layers sharing a non-zero id are linked.
    """
    try:
        data = psd.image_resources.get_data(Resource.LAYER_GROUP_INFO)
        records = psd._record.layer_and_mask_information.layer_info.layer_records
    except (AttributeError, KeyError):
        return {}
    if data is None or records is None:
        return {}
    if isinstance(data, (bytes, bytearray)):
        count = len(data) // 2
        ids = struct.unpack(f">{count}H", bytes(data[: count * 2]))
    else:
        ids = tuple(int(v) for v in data)
    return {id(record): gid for record, gid in zip(records, ids) if gid}


def open_psd(path: Path) -> Document:
    """Open a PSD/PSB file as a host document.

    Leaf layers stay unrasterized until :meth:`Document.rasterize` is called.
    """
    _ensure_psd_tools_available()
    path = Path(path)
    if not path.is_file():
        raise NoDocumentError(f"Document not found: {path}")

    psd = PSDImage.open(path)
    document = Document(int(psd.width), int(psd.height), name=path.name, path=path)
    group_ids = _layer_group_ids(psd)
    linked: Dict[int, List[Layer]] = {}

    def walk(container: _Container, psd_group) -> None:
        # psd-tools iterates bottom to top
        for psd_layer in reversed(list(psd_group)):
            name = str(getattr(psd_layer, "name", ""))
            visible = _own_visibility(psd_layer)
            if psd_layer.is_group():
                node: Layer = container.append(GroupLayer(name, visible=visible))
                walk(node, psd_layer)  # type: ignore[arg-type]
            else:
                x1, y1, _, _ = _source_bbox(psd_layer)
                node = container.append(PixelLayer(name, offset=(x1, y1), visible=visible, source=psd_layer))
            gid = group_ids.get(id(getattr(psd_layer, "_record", None)))
            if gid:
                linked.setdefault(gid, []).append(node)

    walk(document, psd)
    for members in linked.values():
        for i, layer in enumerate(members):
            layer.link(*members[i + 1 :])
    return document
