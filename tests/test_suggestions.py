"""Tests for n-gram mining and suggestion providers."""

import threading
import unittest
from unittest import mock

from search_indexer.suggestions import (
    DuckDuckGoProvider,
    SuggestionMiner,
    SuggestionProvider,
    calculate_frequencies,
    generate_ngrams,
    normalize_suggestions,
    top_ngrams,
)


class EchoProvider(SuggestionProvider):
    def __init__(self, failing=()):
        self.failing = set(failing)

    def suggest(self, query):
        if query in self.failing:
            raise TimeoutError(query)
        return [query, query.title()]

    def search(self, query):
        return []


class TestNgrams(unittest.TestCase):
    """Verify n-gram generation and ranking."""

    def test_sliding_window_of_four(self):
        """Five tokens produce two four-token windows."""
        self.assertEqual(
            generate_ngrams("The quick brown fox jumps"),
            ["the quick brown fox", "quick brown fox jumps"],
        )

    def test_long_tokens_are_dropped(self):
        """Tokens longer than the limit are removed before windowing."""
        content = "a b supercalifragilistic c d"
        self.assertEqual(generate_ngrams(content), ["a b c d"])

    def test_short_content_has_no_ngrams(self):
        """Fewer tokens than the window size yields nothing."""
        self.assertEqual(generate_ngrams("only three words"), [])

    def test_top_ngrams_by_frequency(self):
        """The most frequent n-grams come first, ties in first-seen order."""
        freqs = calculate_frequencies(["x", "y", "y", "z", "x", "y"])
        self.assertEqual(top_ngrams(freqs, 2), ["y", "x"])

    def test_normalize_suggestions(self):
        """Phrases are lowercased, trimmed, deduplicated and non-strings skipped."""
        self.assertEqual(
            normalize_suggestions(["  Hello   World ", "hello world", None, "", 3, "Other"]),
            ["hello world", "other"],
        )


class TestSuggestionMiner(unittest.TestCase):
    """Verify settle-all lookup fan-out."""

    def test_failed_lookups_are_skipped(self):
        """One failing lookup loses only its own phrases."""
        miner = SuggestionMiner(EchoProvider(failing={"b"}), max_workers=2)
        try:
            self.assertEqual(miner.fetch_suggestions(["a", "b", "c"]), ["a", "A", "c", "C"])
        finally:
            miner.close()

    def test_suggestions_from_content(self):
        """Content is mined into normalized, deduplicated suggestions."""
        miner = SuggestionMiner(EchoProvider(), max_workers=2)
        try:
            result = miner.suggestions_from_content("one two three four one two three four", max_suggestions=1)
        finally:
            miner.close()
        self.assertEqual(result, ["one two three four"])


class TestDuckDuckGoProvider(unittest.TestCase):
    """Verify response parsing with a mocked session."""

    def setUp(self):
        self.session = mock.MagicMock()
        self.session.headers = {}
        self.provider = DuckDuckGoProvider(session_factory=lambda: self.session, timeout=3)

    def test_suggest_list_shape(self):
        """The list response shape yields its phrase array."""
        self.session.get.return_value.json.return_value = ["py", ["python", "pytorch"]]
        self.assertEqual(self.provider.suggest("py"), ["python", "pytorch"])
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["params"], {"q": "py", "type": "list"})
        self.assertEqual(kwargs["timeout"], 3)

    def test_suggest_phrase_objects(self):
        """The object response shape yields each phrase."""
        self.session.get.return_value.json.return_value = [{"phrase": "python"}, {"other": 1}]
        self.assertEqual(self.provider.suggest("py"), ["python"])

    def test_search_unwraps_redirects(self):
        """Result links are unwrapped from the redirect and deduplicated."""
        self.session.post.return_value.text = """
            <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fa.test%2Fx&rut=1">A</a>
            <a class="result__a" href="https://b.test/">B</a>
            <a class="result__a" href="https://b.test/">B again</a>
            <a class="result__a" href="/relative">skip</a>
            <a class="other" href="https://c.test/">C</a>
        """
        self.assertEqual(self.provider.search("q"), ["https://a.test/x", "https://b.test/"])

    def test_each_thread_gets_its_own_session(self):
        """Sessions are created once per thread and carry browser headers."""
        created = []

        def factory():
            session = mock.MagicMock()
            session.headers = {}
            session.get.return_value.json.return_value = []
            created.append(session)
            return session

        provider = DuckDuckGoProvider(session_factory=factory)
        provider.suggest("a")
        provider.suggest("b")
        worker = threading.Thread(target=provider.suggest, args=("c",))
        worker.start()
        worker.join()
        self.assertEqual(len(created), 2)
        self.assertEqual(created[0].get.call_count, 2)
        self.assertIn("User-Agent", created[1].headers)

    def test_http_errors_propagate(self):
        """HTTP errors are raised for the caller to settle."""
        self.session.get.return_value.raise_for_status.side_effect = RuntimeError("500")
        with self.assertRaises(RuntimeError):
            self.provider.suggest("py")


if __name__ == "__main__":
    unittest.main()
