import unittest

from marginalia.assets import asset_kind, classify_assets
from marginalia.diagnostics import RecordingDiagnostics
from marginalia.models import ManifestItem, RawArchive


class AssetKindTests(unittest.TestCase):
    def test_media_type_decides_first(self) -> None:
        self.assertEqual(asset_kind("image/png", "file.bin"), "image")
        self.assertEqual(asset_kind("text/css", "style"), "stylesheet")
        self.assertEqual(asset_kind("application/vnd.ms-opentype", "f"), "font")

    def test_extension_fallback(self) -> None:
        self.assertEqual(asset_kind("application/octet-stream", "fonts/Serif.OTF"), "font")
        self.assertEqual(asset_kind("", "img/pic.jpeg"), "image")

    def test_other(self) -> None:
        self.assertEqual(asset_kind("application/x-dtbncx+xml", "toc.ncx"), "other")


class ClassifyAssetsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.manifest = [
            ManifestItem("nav", "nav.xhtml", "application/xhtml+xml", ("nav",), is_navigation_document=True),
            ManifestItem("c1", "Text/ch1.xhtml", "application/xhtml+xml"),
            ManifestItem("ncx", "toc.ncx", "application/x-dtbncx+xml"),
            ManifestItem("css", "Styles/main.css", "text/css"),
            ManifestItem("img", "Images/pic.png", "image/png"),
        ]
        self.archive = RawArchive(
            {
                "OEBPS/nav.xhtml": b"<html/>",
                "OEBPS/Text/ch1.xhtml": b"<html/>",
                "OEBPS/toc.ncx": b"<ncx/>",
                "OEBPS/Styles/main.css": b"body{}",
                "OEBPS/Images/pic.png": b"\x89PNG\r\n\x1a\n",
            }
        )

    def test_keys_are_manifest_hrefs(self) -> None:
        assets = classify_assets(self.manifest, "OEBPS", self.archive)
        self.assertEqual(set(assets), {"toc.ncx", "Styles/main.css", "Images/pic.png"})
        self.assertEqual(assets["Images/pic.png"].raw_bytes, b"\x89PNG\r\n\x1a\n")
        self.assertEqual(assets["Images/pic.png"].kind, "image")
        self.assertEqual(assets["Styles/main.css"].media_type, "text/css")
        self.assertEqual(assets["toc.ncx"].kind, "other")

    def test_markup_documents_are_not_assets(self) -> None:
        assets = classify_assets(self.manifest, "OEBPS", self.archive)
        self.assertNotIn("nav.xhtml", assets)
        self.assertNotIn("Text/ch1.xhtml", assets)

    def test_missing_file_is_skipped(self) -> None:
        manifest = self.manifest + [ManifestItem("font", "Fonts/missing.ttf", "font/ttf")]
        diagnostics = RecordingDiagnostics()
        assets = classify_assets(manifest, "OEBPS", self.archive, diagnostics)
        self.assertNotIn("Fonts/missing.ttf", assets)
        self.assertEqual(len(assets), 3)
        self.assertEqual(len(diagnostics.warnings), 1)

    def test_root_level_package(self) -> None:
        archive = RawArchive({"Images/pic.png": b"png"})
        assets = classify_assets([ManifestItem("img", "Images/pic.png", "image/png")], "", archive)
        self.assertEqual(assets["Images/pic.png"].original_path, "Images/pic.png")


if __name__ == "__main__":
    unittest.main()
