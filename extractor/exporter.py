# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

from config.config import DEFAULT_CROP, DEFAULT_EXPORT
from extractor.context import ExtractContext
from extractor.flatten import collect_visible_leaves, rasterize_and_crop
from extractor.geometry import determine_crop, is_empty, layer_geometry
from extractor.host import Host, Layer
from extractor.manifest import Manifest, ManifestEntry, write_manifest
from extractor.merger import linked_sets, merge_linked
from extractor.rules import (
    CROP_FOCUS,
    SINGLE,
    Classification,
    ClassificationRule,
    RuleProfile,
    classify,
    get_profile,
)
from utils.console_util import console as default_console
from utils.path_util import output_dir_for, safe_filename_component


@dataclass(frozen=True)
class LayerPlan:
    """What happens to one leaf layer: its rule, file stem and manifest entry."""

    index: int
    layer: Layer
    classification: Classification
    filename: Optional[str] = None
    entry: Optional[ManifestEntry] = None


def plan_layer(
    ctx: ExtractContext, layer: Layer, index: int, rules: Sequence[ClassificationRule]
) -> Optional[LayerPlan]:
    """Classify ``layer``; ``None`` when it is empty or hidden and gets skipped."""
    bounds = layer.bounds
    if is_empty(bounds) or not layer.visible:
        return None

    classification = classify(layer.name, index, rules)
    if not classification.rule.exports:
        return LayerPlan(index, layer, classification)

    entry = ManifestEntry.from_geometry(layer_geometry(bounds, ctx.canvas_size))
    if classification.rule.ratio:
        entry.ratio = entry.width / entry.height
    filename = safe_filename_component(classification.filename, default=f"layer{index}")
    entry.file = filename + ".png"
    return LayerPlan(index, layer, classification, filename, entry)


def classify_layers(
    ctx: ExtractContext, layers: Sequence[Layer], rules: Sequence[ClassificationRule]
) -> List[LayerPlan]:
    """Plans for every exportable layer; indices refer to the full ``layers`` sequence."""
    plans: List[LayerPlan] = []
    for index, layer in enumerate(layers):
        plan = plan_layer(ctx, layer, index, rules)
        if plan is not None:
            plans.append(plan)
    return plans


def apply_plan(ctx: ExtractContext, manifest: Manifest, plan: LayerPlan) -> None:
    rule = plan.classification.rule
    if rule.placement == CROP_FOCUS:
        manifest.crop = determine_crop(plan.layer.bounds, ctx.canvas_size)
        ctx.debug(f"Crop focus from {plan.layer.name!r}: {manifest.crop}")
    elif rule.placement == SINGLE:
        manifest.set_single(plan.classification.bucket, plan.entry)
    else:
        manifest.bucket(plan.classification.bucket).append(plan.entry)


def save_layer(ctx: ExtractContext, layer: Layer, filename: str) -> Path:
    """Export ``layer`` to ``<output_dir>/<filename>.png`` through a temporary document.

    The layer's bounds are selected and copied, pasted into a new document of
    the same size whose default background is removed, and that document is
    exported and closed without saving.
    """
    document = ctx.document
    host = document.host
    host.active_document = document
    document.set_active_layer(layer)
    document.select(layer.bounds)
    document.copy()

    temp = host.new_document_from_clipboard(resolution=ctx.dpi, name="tempDoc")
    try:
        temp.remove_background()
        path = ctx.output_dir / f"{filename}.png"
        ctx.log.record_file(path)
        temp.export_png(path, mode=ctx.mode)
    finally:
        temp.close(save=False)
    return path


def extract_layers(
    ctx: ExtractContext,
    layers: Sequence[Layer],
    rules: Sequence[ClassificationRule],
    manifest: Manifest,
) -> Manifest:
    """Classify, export and record every layer of ``layers`` in order."""
    written: Dict[str, str] = {}
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=ctx.console,
        transient=True,
    ) as progress:
        task = progress.add_task("[cyan]Exporting layers...", total=len(layers))
        for index, layer in enumerate(layers):
            plan = plan_layer(ctx, layer, index, rules)
            if plan is None:
                ctx.debug(f"Skipping empty or hidden layer [{index}] {layer.name!r}")
            elif plan.entry is None:
                apply_plan(ctx, manifest, plan)
            else:
                if plan.entry.file in written:
                    # same file name as an earlier layer, the later export wins
                    ctx.debug(
                        f"[yellow][{index}] {layer.name!r} overwrites {plan.entry.file} "
                        f"written for {written[plan.entry.file]!r}[/yellow]"
                    )
                path = save_layer(ctx, layer, plan.filename)
                written[plan.entry.file] = layer.name
                ctx.debug(f"[{index}] {layer.name!r} -> {plan.classification.bucket} ({path.name})")
                apply_plan(ctx, manifest, plan)
            progress.advance(task)
    return manifest


def run_pipeline(
    ctx: ExtractContext,
    profile: RuleProfile,
    transitive_links: bool = False,
    crop: Optional[Dict[str, str]] = None,
    manifest_name: str = "info.json",
    indent: Union[str, int] = "\t",
) -> Manifest:
    """Merge linked layers, rasterize, collect leaves, export them and write the manifest."""
    document = ctx.document
    manifest = Manifest(document.width, document.height, crop=dict(crop or DEFAULT_CROP))

    ctx.debug(f"Link sets found: {len(linked_sets(document))}")
    merges = merge_linked(ctx, recursive=profile.recursive, transitive=transitive_links)
    rasterized = rasterize_and_crop(ctx, recursive=profile.recursive)
    leaves = collect_visible_leaves(document, recursive=profile.recursive)
    ctx.console.print(
        f"[cyan]{document.name}[/cyan]: merged {merges} link set(s), "
        f"rasterized {rasterized} layer(s), {len(leaves)} visible leaf layer(s)"
    )

    extract_layers(ctx, leaves, profile.rules, manifest)
    path = write_manifest(manifest, ctx.output_dir, filename=manifest_name, indent=indent, log=ctx.log)
    ctx.console.print(f"[green]Manifest written:[/green] {path}")
    return manifest


def extract_document(
    host: Host,
    output_root: Optional[Path] = None,
    profile: str = "full",
    transitive_links: bool = False,
    keep_changes: bool = False,
    verbose: bool = False,
    crop: Optional[Dict[str, str]] = None,
    manifest_name: str = DEFAULT_EXPORT["manifest_name"],
    indent: Union[str, int] = DEFAULT_EXPORT["indent"],
    dpi: float = DEFAULT_EXPORT["dpi"],
    mode: str = DEFAULT_EXPORT["mode"],
    console: Optional[Console] = None,
) -> Manifest:
    """Export the layers of the host's active document.

    Every mutation of the document is staged. If any step fails, the staged
    changes (document edits and written files) are undone newest first before
    the error propagates. After a successful run the document edits are undone
    as well unless ``keep_changes`` is set; exported files stay on disk.

    Raises:
        NoDocumentError: no document is open, nothing has been touched.
    """
    document = host.require_document()
    rule_profile = get_profile(profile)
    output_dir = output_dir_for(document.path, document.name, output_root)
    output_dir.mkdir(parents=True, exist_ok=True)

    ctx = ExtractContext(
        document=document,
        output_dir=output_dir,
        console=console or default_console,
        verbose=verbose,
        dpi=float(dpi),
        mode=mode,
    )
    document.history = ctx.log
    try:
        manifest = run_pipeline(
            ctx,
            rule_profile,
            transitive_links=transitive_links,
            crop=crop,
            manifest_name=manifest_name,
            indent=indent,
        )
    except BaseException:
        undone = ctx.log.rollback(include_files=True)
        ctx.console.print(f"[red]Extraction of {document.name} failed, reverted {undone} staged change(s)[/red]")
        raise
    else:
        if keep_changes:
            ctx.log.clear()
        else:
            ctx.log.rollback(include_files=False)
    finally:
        document.history = None
    return manifest
