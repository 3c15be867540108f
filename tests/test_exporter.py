import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from PIL import Image
from rich.console import Console

from extractor.context import ExtractContext
from extractor.errors import NoDocumentError
from extractor.exporter import classify_layers, extract_document, extract_layers
from extractor.host import Document, GroupLayer, Host, PixelLayer
from extractor.manifest import Manifest
from extractor.rules import FULL_RULES


def layer_at(name, box, color=(255, 0, 0, 255), visible=True):
    left, top, right, bottom = box
    image = Image.new("RGBA", (right - left, bottom - top), color)
    return PixelLayer(name, image=image, offset=(left, top), visible=visible)


def empty_layer(name):
    return PixelLayer(name, image=Image.new("RGBA", (10, 10), (0, 0, 0, 0)), offset=(0, 0))


class ExporterTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.console = Console(file=io.StringIO())
        self.host = Host()
        self.doc = self.host.attach(Document(400, 200, name="poster.final.psd"))

    def tearDown(self):
        self.tmp.cleanup()

    def run_extraction(self, **kwargs):
        return extract_document(self.host, output_root=self.root, console=self.console, **kwargs)

    @property
    def out_dir(self):
        return self.root / "poster"

    def read_info(self):
        return json.loads((self.out_dir / "info.json").read_text(encoding="utf-8"))


class TestExtractLayers(ExporterTestCase):

    def make_ctx(self):
        self.out_dir.mkdir(parents=True, exist_ok=True)
        return ExtractContext(document=self.doc, output_dir=self.out_dir, console=self.console)

    def test_foreground_indices_follow_the_leaf_sequence(self):
        a = self.doc.append(layer_at("A", (0, 0, 10, 10)))
        b = self.doc.append(layer_at("B", (20, 20, 30, 30), visible=False))
        c = self.doc.append(layer_at("C", (40, 40, 50, 50)))
        ctx = self.make_ctx()
        manifest = extract_layers(ctx, [a, b, c], FULL_RULES, Manifest(400, 200))

        self.assertEqual([e.file for e in manifest.foreground], ["foreground0.png", "foreground2.png"])
        self.assertTrue((self.out_dir / "foreground0.png").exists())
        self.assertFalse((self.out_dir / "foreground1.png").exists())
        self.assertTrue((self.out_dir / "foreground2.png").exists())

    def test_classification_is_repeatable(self):
        layers = [
            self.doc.append(layer_at("BorderTop", (0, 0, 400, 10))),
            self.doc.append(layer_at("logo", (10, 10, 30, 30))),
            self.doc.append(layer_at("backgroundSky", (0, 0, 400, 200))),
        ]
        ctx = self.make_ctx()

        def snapshot():
            return [
                (p.index, p.classification.bucket, p.filename, p.entry.to_dict())
                for p in classify_layers(ctx, layers, FULL_RULES)
            ]

        first = snapshot()
        self.assertEqual(first, snapshot())
        self.assertEqual([b for _, b, _, _ in first], ["BorderTop", "foreground", "background"])


class TestExtractDocument(ExporterTestCase):

    def test_no_document_aborts_before_anything_happens(self):
        with self.assertRaises(NoDocumentError):
            extract_document(Host(), output_root=self.root, console=self.console)
        self.assertEqual(list(self.root.iterdir()), [])

    def test_manifest_shape(self):
        self.doc.append(layer_at("BorderTop", (0, 0, 400, 10)))
        self.doc.append(layer_at("logo", (150, 50, 250, 150)))
        self.doc.append(layer_at("BorderBottom", (0, 190, 400, 200)))
        self.doc.append(layer_at("blurred", (0, 0, 400, 200), color=(9, 9, 9, 255)))
        self.doc.append(layer_at("backgroundMain", (0, 0, 200, 100)))

        self.run_extraction()
        info = self.read_info()

        self.assertEqual(
            list(info),
            ["crop", "dimensions", "foreground", "background", "BorderTop", "BorderBottom", "blurred"],
        )
        self.assertEqual(info["crop"], {"horizontal": "center", "vertical": "center"})
        self.assertEqual(info["dimensions"], {"width": 400, "height": 200})
        self.assertEqual(len(info["BorderTop"]), 1)
        self.assertEqual(len(info["BorderBottom"]), 1)
        self.assertEqual(info["BorderBottom"][0]["fromBottom"], 0)
        self.assertEqual(info["blurred"]["file"], "blurred.png")

        logo = info["foreground"][0]
        self.assertEqual(logo, {
            "snap": "snapToMiddle",
            "width": 100,
            "height": 100,
            "fromLeft": 150,
            "fromTop": 50,
            "fromRight": 150,
            "fromBottom": 50,
            "file": "foreground1.png",
        })

        background = info["background"][0]
        self.assertEqual(background["ratio"], 2.0)
        self.assertEqual(list(background)[-2:], ["ratio", "file"])
        self.assertEqual(background["file"], "backgroundMain.png")

        text = (self.out_dir / "info.json").read_text(encoding="utf-8")
        self.assertIn('\n\t"crop": {', text)

    def test_exported_png_matches_layer_bounds(self):
        self.doc.append(layer_at("logo", (150, 50, 250, 110), color=(0, 255, 0, 255)))
        self.run_extraction()

        with Image.open(self.out_dir / "foreground0.png") as im:
            self.assertEqual(im.size, (100, 60))
            self.assertEqual(im.mode, "RGBA")
            self.assertEqual(im.getpixel((50, 30)), (0, 255, 0, 255))

    def test_important_layer_sets_crop_only(self):
        self.doc.append(layer_at("important", (0, 0, 100, 100)))
        self.doc.append(layer_at("logo", (10, 10, 20, 20)))
        manifest = self.run_extraction()

        self.assertEqual(manifest.crop, {"horizontal": "12.5%", "vertical": "25%"})
        self.assertFalse((self.out_dir / "important.png").exists())
        self.assertEqual([e.file for e in manifest.foreground], ["foreground1.png"])

    def test_empty_and_overflowing_layers(self):
        self.doc.append(empty_layer("backgroundEmpty"))
        self.doc.append(layer_at("wide", (-50, 0, 450, 20)))
        manifest = self.run_extraction()

        self.assertEqual(manifest.background, [])
        entry = manifest.foreground[0]
        self.assertEqual(entry.file, "foreground1.png")
        self.assertEqual((entry.from_left, entry.from_right, entry.width), (0, 0, 400))

    def test_groups_are_flattened(self):
        self.doc.append(GroupLayer("frame", [
            layer_at("BorderLeft", (0, 0, 10, 200)),
            GroupLayer("inner", [layer_at("logo", (50, 50, 60, 60))]),
        ]))
        manifest = self.run_extraction()
        self.assertIn("BorderLeft", manifest.named)
        self.assertEqual([e.file for e in manifest.foreground], ["foreground1.png"])

    def test_simple_profile(self):
        self.doc.append(layer_at("backgroundMain", (0, 0, 100, 100)))
        self.doc.append(layer_at("background", (0, 0, 400, 200)))
        self.doc.append(GroupLayer("group", [layer_at("nested", (0, 0, 5, 5))]))
        self.doc.append(layer_at("important", (0, 0, 10, 10)))
        manifest = self.run_extraction(profile="simple")

        self.assertEqual([e.file for e in manifest.foreground], ["foreground0.png", "foreground2.png"])
        self.assertEqual([e.file for e in manifest.background], ["background.png"])
        self.assertEqual(manifest.crop, {"horizontal": "center", "vertical": "center"})

    def test_linked_layers_export_once(self):
        title = self.doc.append(layer_at("title", (10, 10, 60, 30)))
        subtitle = self.doc.append(layer_at("subtitle", (10, 40, 60, 50)))
        title.link(subtitle)
        manifest = self.run_extraction()

        self.assertEqual(len(manifest.foreground), 1)
        entry = manifest.foreground[0]
        self.assertEqual((entry.width, entry.height), (50, 40))
        self.assertEqual(sorted(p.name for p in self.out_dir.iterdir()), ["foreground0.png", "info.json"])

    def test_same_name_layers_share_one_file(self):
        self.doc.append(layer_at("BorderTop", (0, 0, 400, 10)))
        self.doc.append(layer_at("BorderTop", (0, 20, 200, 25)))
        manifest = self.run_extraction(verbose=True)

        self.assertEqual([e.file for e in manifest.named["BorderTop"]], ["BorderTop.png", "BorderTop.png"])
        with Image.open(self.out_dir / "BorderTop.png") as im:
            self.assertEqual(im.size, (200, 5))
        self.assertIn("overwrites BorderTop.png", self.console.file.getvalue())

    def test_document_is_restored_after_success(self):
        title = self.doc.append(layer_at("title", (10, 10, 60, 30)))
        subtitle = self.doc.append(layer_at("subtitle", (10, 40, 60, 50)))
        title.link(subtitle)
        self.run_extraction()

        self.assertEqual(self.doc.layers, [title, subtitle])
        self.assertIsNone(self.doc.history)
        self.assertIs(self.host.active_document, self.doc)
        self.assertEqual(self.host.documents, [self.doc])

    def test_keep_changes(self):
        title = self.doc.append(layer_at("title", (10, 10, 60, 30)))
        title.link(self.doc.append(layer_at("subtitle", (10, 40, 60, 50))))
        self.run_extraction(keep_changes=True)

        self.assertEqual(len(self.doc.layers), 1)
        self.assertIsNot(self.doc.layers[0], title)

    def test_failure_rolls_back_files_and_document(self):
        title = self.doc.append(layer_at("title", (10, 10, 60, 30)))
        subtitle = self.doc.append(layer_at("subtitle", (10, 40, 60, 50)))
        logo = self.doc.append(layer_at("logo", (100, 100, 120, 120)))
        title.link(subtitle)
        (self.root / "poster").mkdir()
        (self.out_dir / "info.json").write_text("previous run")

        original_export = Document.export_png
        calls = []

        def flaky_export(document, path, mode="RGBA"):
            calls.append(path)
            if len(calls) > 1:
                raise OSError("disk full")
            return original_export(document, path, mode=mode)

        with patch.object(Document, "export_png", flaky_export):
            with self.assertRaises(OSError):
                self.run_extraction()

        self.assertEqual(len(calls), 2)
        self.assertEqual(sorted(p.name for p in self.out_dir.iterdir()), ["info.json"])
        self.assertEqual((self.out_dir / "info.json").read_text(), "previous run")
        self.assertEqual(self.doc.layers, [title, subtitle, logo])
        self.assertEqual(self.host.documents, [self.doc])


if __name__ == '__main__':
    unittest.main()
