import os
import sqlite3
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from marginalia import ingest
from marginalia.db import db_path, get_asset, get_book, get_chapter, init_db, list_books, list_chapters, save_ingestion
from marginalia.diagnostics import RecordingDiagnostics
from marginalia.storage import store_ingestion

from epub_fixtures import build_epub, chapter_html, item, itemref, package_opf


def _two_chapter_epub() -> bytes:
    return build_epub(
        {
            "OEBPS/content.opf": package_opf(
                [
                    item("c1", "Text/ch1.xhtml"),
                    item("c2", "Text/ch2.xhtml"),
                    item("css", "Styles/book.css", "text/css"),
                    item("img", "Images/front.png", "image/png"),
                ],
                [itemref("c1"), itemref("c2")],
                metadata=(
                    "<dc:title>Stored Book</dc:title>"
                    "<dc:creator>First</dc:creator><dc:creator>Second</dc:creator>"
                    "<dc:subject>Essays</dc:subject><dc:date>2001</dc:date>"
                ),
            ),
            "OEBPS/Text/ch1.xhtml": chapter_html("<img src=\"../Images/front.png\"/><p>One two</p>", title="First"),
            "OEBPS/Text/ch2.xhtml": chapter_html("<p>Three four five</p>", title="Second"),
            "OEBPS/Styles/book.css": "p { margin: 0; }",
            "OEBPS/Images/front.png": b"\x89PNG\r\n\x1a\nimage",
        }
    )


class DbTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._previous = {name: os.environ.get(name) for name in ("MARGINALIA_DB_PATH", "MARGINALIA_STORAGE_DIR")}
        os.environ["MARGINALIA_STORAGE_DIR"] = self._tmp.name
        os.environ["MARGINALIA_DB_PATH"] = os.path.join(self._tmp.name, "marginalia.db")
        init_db()

    def tearDown(self) -> None:
        for name, value in self._previous.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value
        self._tmp.cleanup()

    def _save(self, book_id: str = "b" * 32) -> dict:
        result = ingest(_two_chapter_epub(), RecordingDiagnostics())
        return save_ingestion(book_id, result, store_ingestion(book_id, result))

    def test_db_path_follows_env(self) -> None:
        self.assertEqual(str(db_path()), os.path.join(self._tmp.name, "marginalia.db"))

    def test_book_roundtrip(self) -> None:
        book = self._save()
        self.assertEqual(book["id"], "b" * 32)
        self.assertEqual(book["title"], "Stored Book")
        self.assertEqual(book["author"], "First")
        self.assertEqual(book["authors"], ["First", "Second"])
        self.assertEqual(book["subjects"], ["Essays"])
        self.assertEqual(book["published"], "2001")
        self.assertEqual(book["epubVersion"], "3.0")
        self.assertEqual(book["coverImageKey"], f"books/{'b' * 32}/cover.png")
        self.assertEqual(get_book("b" * 32), book)
        self.assertEqual([entry["id"] for entry in list_books()], ["b" * 32])

    def test_chapters_roundtrip(self) -> None:
        self._save()
        chapters = list_chapters("b" * 32)
        self.assertEqual([chapter["spineIndex"] for chapter in chapters], [0, 1])
        self.assertEqual([chapter["title"] for chapter in chapters], ["First", "Second"])
        self.assertEqual([chapter["wordCount"] for chapter in chapters], [2, 3])
        chapter = get_chapter("b" * 32, 1)
        self.assertEqual(chapter["chapterNumber"], 2)
        self.assertEqual(chapter["href"], "Text/ch2.xhtml")
        self.assertIn("Three four five", chapter["htmlContent"])
        self.assertIsNone(get_chapter("b" * 32, 7))

    def test_assets_roundtrip(self) -> None:
        self._save()
        asset = get_asset("b" * 32, "Styles/book.css")
        self.assertEqual(asset["mimeType"], "text/css")
        self.assertEqual(asset["kind"], "stylesheet")
        self.assertEqual(asset["fileSize"], len(b"p { margin: 0; }"))
        self.assertEqual(asset["s3Key"], f"books/{'b' * 32}/assets/Styles/book.css")
        self.assertIsNone(get_asset("b" * 32, "Styles/missing.css"))

    def test_init_db_closes_connection_on_failure(self) -> None:
        conn = MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
        with patch("marginalia.db.connect", return_value=conn):
            with self.assertRaises(sqlite3.OperationalError):
                init_db()
        conn.close.assert_called_once()

    def test_unknown_book(self) -> None:
        self.assertIsNone(get_book("c" * 32))
        self.assertEqual(list_chapters("c" * 32), [])


if __name__ == "__main__":
    unittest.main()
