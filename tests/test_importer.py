"""Tests for the local data importer."""

import tempfile
import unittest
import zipfile
from pathlib import Path

from search_indexer.importer import ARCHIVE_NAME, import_local_data, read_documents
from search_indexer.models import Collection
from search_indexer.storage import MemoryStore

SUGGESTS = '[{"_id": {"$oid": "64b7f0c2a1b2c3d4e5f60718"}, "suggest": "python"}, {"suggest": "rust"}]'
WEBSITES = (
    '[{"url": "https://a.test/", "title": "A", "createdAt": {"$date": "2023-07-19T10:00:00Z"}},'
    ' {"url": "https://a.test/", "title": "dup"}]'
)


class TestImportLocalData(unittest.TestCase):
    """Verify archive extraction and batched insertion."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write_archive(self):
        with zipfile.ZipFile(self.data_dir / ARCHIVE_NAME, "w") as zf:
            zf.writestr("opensearch@suggest.json", SUGGESTS)
            zf.writestr("opensearch@website.json", WEBSITES)

    def test_extracts_archive_and_imports(self):
        """The archive is unpacked and each export inserted without duplicates."""
        self._write_archive()
        store = MemoryStore()
        inserted = import_local_data(store, self.data_dir, batch_size=1, progress=False)
        self.assertEqual(inserted, {"suggests": 2, "websites": 1})
        self.assertTrue((self.data_dir / "opensearch@website.json").exists())
        website = store.documents(Collection.WEBSITE)[0]
        self.assertEqual(website["title"], "A")
        self.assertEqual(website["createdAt"].year, 2023)

    def test_rerun_inserts_nothing(self):
        """Importing twice is harmless."""
        self._write_archive()
        store = MemoryStore()
        import_local_data(store, self.data_dir, progress=False)
        self.assertEqual(import_local_data(store, self.data_dir, progress=False), {"suggests": 0, "websites": 0})

    def test_missing_archive(self):
        """Without exports or archive the import fails loudly."""
        with self.assertRaises(FileNotFoundError):
            import_local_data(MemoryStore(), self.data_dir, progress=False)

    def test_export_must_be_an_array(self):
        """A non-array export is rejected."""
        (self.data_dir / "opensearch@suggest.json").write_text('{"suggest": "x"}', encoding="utf-8")
        with self.assertRaises(ValueError):
            read_documents(self.data_dir, "suggest")


if __name__ == "__main__":
    unittest.main()
