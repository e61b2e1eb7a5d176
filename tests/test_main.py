"""Tests for the command-line entry point."""

import json
import signal
import tempfile
import unittest
from contextlib import redirect_stdout
from io import StringIO
from unittest import mock

import main
from search_indexer.storage import DataStoreError, MemoryStore


class TestMain(unittest.TestCase):
    """Verify exit codes and summary output."""

    def _run(self, *argv):
        out = StringIO()
        with redirect_stdout(out):
            code = main.main(["--env-file", "", *argv])
        return code, out.getvalue()

    def test_dry_run_on_empty_store_prints_summary(self):
        """An empty in-memory store completes with zero batches."""
        code, out = self._run("--dry-run", "improve", "website", "hyperlinkBased")
        self.assertEqual(code, 0)
        summary = json.loads(out.splitlines()[0])
        self.assertEqual(summary["method"], "hyperlinkBased")
        self.assertEqual(summary["total_batches"], 0)

    def test_both_sweeps_print_two_summaries(self):
        """--sweep both reports one summary per direction."""
        code, out = self._run("--dry-run", "improve", "image", "contentBased", "--sweep", "both")
        self.assertEqual(code, 0)
        methods = [json.loads(line)["method"] for line in out.splitlines()]
        self.assertEqual(methods, ["contentBased:newest", "contentBased:oldest"])

    def test_unknown_method_exits_2(self):
        """An unknown improvement is a usage error."""
        code, _ = self._run("--dry-run", "improve", "website", "noSuchMethod")
        self.assertEqual(code, 2)

    def test_missing_import_data_exits_2(self):
        """Importing from an empty directory fails with exit code 2."""
        with tempfile.TemporaryDirectory() as tmp:
            code, _ = self._run("--dry-run", "import-local", "--data-dir", tmp, "--no-progress")
        self.assertEqual(code, 2)

    def test_setup_failure_releases_store_and_signal_handler(self):
        """A rejected option after the store opens still closes it and restores SIGINT."""
        store = mock.MagicMock(wraps=MemoryStore())
        handler = signal.getsignal(signal.SIGINT)
        with mock.patch.object(main, "_open_store", return_value=store):
            code, _ = self._run("improve", "website", "hyperlinkBased", "--scraper-concurrency", "0")
        self.assertEqual(code, 2)
        store.close.assert_called_once_with()
        self.assertIs(signal.getsignal(signal.SIGINT), handler)

    def test_index_failure_closes_client(self):
        """A failed index build closes the Mongo client before the error surfaces."""
        mongo = mock.MagicMock()
        mongo.ensure_indexes.side_effect = DataStoreError("not primary")
        with mock.patch.object(main, "MongoStore", return_value=mongo):
            code, _ = self._run("improve", "website", "hyperlinkBased")
        self.assertEqual(code, 1)
        mongo.close.assert_called_once_with()

    def test_store_failure_exits_1(self):
        """An unreachable store exits with code 1."""
        with mock.patch.object(main, "_open_store", side_effect=DataStoreError("down")):
            code, _ = self._run("improve", "website", "hyperlinkBased")
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
