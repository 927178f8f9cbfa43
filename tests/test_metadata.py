import unittest

from marginalia.metadata import as_list, node_text, normalize_metadata
from marginalia.models import RawArchive
from marginalia.package import parse_package

from epub_fixtures import package_opf


class NodeShapeTests(unittest.TestCase):
    def test_as_list(self) -> None:
        self.assertEqual(as_list(None), [])
        self.assertEqual(as_list("a"), ["a"])
        self.assertEqual(as_list(["a", "b"]), ["a", "b"])

    def test_node_text_accepts_both_shapes(self) -> None:
        self.assertEqual(node_text("  plain "), "plain")
        self.assertEqual(node_text({"id": "x", "_text": "parsed"}), "parsed")
        self.assertEqual(node_text({"id": "x", "_": "legacy"}), "legacy")
        self.assertEqual(node_text({"_text": "preferred", "_": "legacy"}), "preferred")

    def test_node_text_without_text_is_none(self) -> None:
        self.assertIsNone(node_text(None))
        self.assertIsNone(node_text("   "))
        self.assertIsNone(node_text({"id": "x"}))
        self.assertIsNone(node_text(["a"]))


class NormalizeMetadataTests(unittest.TestCase):
    def test_full_record(self) -> None:
        raw = {
            "dc:title": "Middlemarch",
            "dc:creator": [{"opf:role": "aut", "_text": "George Eliot"}, "Second Author"],
            "dc:publisher": "Blackwood",
            "dc:language": "en",
            "dc:identifier": {"id": "BookId", "_text": "9780141439549"},
            "dc:description": "A study of provincial life.",
            "dc:subject": ["Fiction", {"_text": "England"}],
            "dc:date": "1871",
            "dc:rights": "Public domain",
            "meta": [{"property": "dcterms:modified", "_text": "2020-01-01"}, {"name": "cover", "content": "img-cover"}],
        }
        metadata = normalize_metadata(raw, "3.0")
        self.assertEqual(metadata.title, "Middlemarch")
        self.assertEqual(metadata.authors, ["George Eliot", "Second Author"])
        self.assertEqual(metadata.author, "George Eliot")
        self.assertEqual(metadata.publisher, "Blackwood")
        self.assertEqual(metadata.language, "en")
        self.assertEqual(metadata.isbn, "9780141439549")
        self.assertEqual(metadata.description, "A study of provincial life.")
        self.assertEqual(metadata.subjects, ["Fiction", "England"])
        self.assertEqual(metadata.date, "1871")
        self.assertEqual(metadata.rights, "Public domain")
        self.assertEqual(metadata.cover_image_id, "img-cover")
        self.assertEqual(metadata.format_version, "3.0")

    def test_title_defaults_to_untitled(self) -> None:
        self.assertEqual(normalize_metadata({}, "3.0").title, "Untitled")
        self.assertEqual(normalize_metadata({"dc:title": "   "}, "3.0").title, "Untitled")
        self.assertEqual(normalize_metadata({"dc:title": {"id": "t"}}, "3.0").title, "Untitled")
        self.assertEqual(normalize_metadata(None, "").title, "Untitled")

    def test_first_title_wins(self) -> None:
        metadata = normalize_metadata({"dc:title": ["Main", "Subtitle"]}, "3.0")
        self.assertEqual(metadata.title, "Main")

    def test_no_creators(self) -> None:
        metadata = normalize_metadata({"dc:title": "T"}, "2.0")
        self.assertIsNone(metadata.author)
        self.assertIsNone(metadata.authors)
        self.assertIsNone(metadata.subjects)

    def test_repeated_values_keep_order_and_duplicates(self) -> None:
        metadata = normalize_metadata({"dc:subject": ["b", "a", "b"], "dc:creator": ["Z", "Z"]}, "3.0")
        self.assertEqual(metadata.subjects, ["b", "a", "b"])
        self.assertEqual(metadata.authors, ["Z", "Z"])

    def test_cover_from_epub3_property(self) -> None:
        raw = {"meta": {"property": "cover-image", "_text": "cover-id"}}
        self.assertEqual(normalize_metadata(raw, "3.0").cover_image_id, "cover-id")

    def test_missing_cover_is_not_an_error(self) -> None:
        raw = {"meta": {"name": "generator", "content": "tool"}}
        self.assertIsNone(normalize_metadata(raw, "3.0").cover_image_id)

    def test_unprefixed_elements(self) -> None:
        metadata = normalize_metadata({"title": "Bare", "creator": "Someone"}, "2.0")
        self.assertEqual(metadata.title, "Bare")
        self.assertEqual(metadata.author, "Someone")

    def test_from_parsed_package(self) -> None:
        opf = package_opf(
            [],
            [],
            metadata=(
                "<dc:title>Parsed</dc:title>"
                "<dc:creator opf:role=\"aut\" opf:file-as=\"Doe, Jane\">Jane Doe</dc:creator>"
                "<dc:creator>John Roe</dc:creator>"
                "<dc:subject>Poetry</dc:subject>"
                "<meta name=\"cover\" content=\"cover-image\"/>"
            ),
            version="2.0",
        )
        document = parse_package(RawArchive({"content.opf": opf.encode("utf-8")}), "content.opf")
        metadata = normalize_metadata(document.metadata, document.format_version)
        self.assertEqual(metadata.title, "Parsed")
        self.assertEqual(metadata.authors, ["Jane Doe", "John Roe"])
        self.assertEqual(metadata.subjects, ["Poetry"])
        self.assertEqual(metadata.cover_image_id, "cover-image")
        self.assertEqual(metadata.format_version, "2.0")


if __name__ == "__main__":
    unittest.main()
