# -*- coding: utf-8 -*-
"""Export the layers of a PSD document as PNG files plus an info.json manifest."""

from __future__ import annotations

import argparse
from pathlib import Path

from config import config
from extractor.errors import NoDocumentError
from extractor.exporter import extract_document
from extractor.host import Host
from utils.console_util import console, print_manifest_summary, print_notice


def setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rasterize, merge linked layers and export every layer of a PSD with an info.json manifest"
    )
    parser.add_argument("document", nargs="?", default="", help="Path to .psd/.psb")
    parser.add_argument(
        "--output-root",
        type=str,
        default="",
        help="Root output directory (default: folder of the document)",
    )
    parser.add_argument("--config", type=str, default="", help="Path to a TOML config (default: config/config.toml)")
    parser.add_argument(
        "--profile",
        type=str,
        choices=config.RULE_PROFILES,
        default=None,
        help="Classification profile (default from config)",
    )
    parser.add_argument(
        "--transitive-links",
        action="store_true",
        help="Keep merging until chained link sets collapse into one layer",
    )
    parser.add_argument(
        "--keep-changes",
        action="store_true",
        help="Keep the rasterized/merged state of the working document after the run",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    return parser


def main(argv=None) -> int:
    args = setup_parser().parse_args(argv)
    config.load_config(args.config or None)

    if args.document and Path(args.document).suffix not in config.DOCUMENT_EXTENSIONS:
        print_notice(
            f"Unsupported document type: {args.document} (expected {', '.join(config.DOCUMENT_EXTENSIONS)})",
            console=console,
        )
        return 1

    host = Host()
    try:
        if args.document:
            host.open(Path(args.document))
        output_root = args.output_root or config.EXPORT.get("output_root", "")
        manifest = extract_document(
            host,
            output_root=Path(output_root) if output_root else None,
            profile=args.profile or config.RULES["profile"],
            transitive_links=args.transitive_links or bool(config.RULES.get("transitive_links", False)),
            keep_changes=args.keep_changes,
            verbose=args.verbose,
            crop=config.CROP,
            manifest_name=config.EXPORT["manifest_name"],
            indent=config.EXPORT["indent"],
            dpi=config.EXPORT["dpi"],
            mode=config.EXPORT["mode"],
            console=console,
        )
    except NoDocumentError as e:
        print_notice(str(e), console=console)
        return 1

    print_manifest_summary(manifest, console=console)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
