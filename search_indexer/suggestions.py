from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import parse_qs, urlparse

import requests
from bs4 import BeautifulSoup

from .fetcher import DEFAULT_HEADERS

logger = logging.getLogger(__name__)

NGRAM_SIZE = 4
MAX_TOKEN_LENGTH = 16


def generate_ngrams(content: str, max_length: int = MAX_TOKEN_LENGTH, size: int = NGRAM_SIZE) -> List[str]:
    """Lowercase ``content``, drop tokens longer than ``max_length`` and slide a ``size``-token window."""
    tokens = [token for token in content.lower().split() if len(token) <= max_length]
    return [" ".join(tokens[i : i + size]) for i in range(len(tokens) - size + 1)]


def calculate_frequencies(ngrams: Iterable[str]) -> Counter:
    return Counter(ngrams)


def top_ngrams(frequencies: Counter, max_suggestions: int) -> List[str]:
    # most_common keeps first-seen order among equal counts
    return [ngram for ngram, _ in frequencies.most_common(max_suggestions)]


def normalize_suggestions(values: Iterable[Any]) -> List[str]:
    """Lowercase, trim and deduplicate, preserving first occurrence."""
    seen: Dict[str, None] = {}
    for value in values:
        if not isinstance(value, str):
            continue
        phrase = " ".join(value.lower().split())
        if phrase:
            seen.setdefault(phrase, None)
    return list(seen)


class SuggestionProvider(ABC):
    """External source of query suggestions and web search results."""

    @abstractmethod
    def suggest(self, query: str) -> List[str]:
        """Return autocomplete phrases for ``query``."""

    @abstractmethod
    def search(self, query: str) -> List[str]:
        """Return result links for ``query``."""


class DuckDuckGoProvider(SuggestionProvider):
    """Suggestion and search lookups against DuckDuckGo's public endpoints.

    Lookups come from the miner's pool and from concurrent batch threads,
    so each thread gets its own session."""

    SUGGEST_URL = "https://duckduckgo.com/ac/"
    SEARCH_URL = "https://html.duckduckgo.com/html/"

    def __init__(
        self, session_factory: Optional[Callable[[], requests.Session]] = None, timeout: float = 10.0
    ) -> None:
        self._session_factory = session_factory or requests.Session
        self._timeout = timeout
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update(DEFAULT_HEADERS)
            self._local.session = session
        return session

    def suggest(self, query: str) -> List[str]:
        resp = self._session().get(self.SUGGEST_URL, params={"q": query, "type": "list"}, timeout=self._timeout)
        resp.raise_for_status()
        payload = resp.json()
        # type=list answers [query, [phrases...]]; the default shape is [{"phrase": ...}]
        if isinstance(payload, list) and len(payload) == 2 and isinstance(payload[1], list):
            return [p for p in payload[1] if isinstance(p, str)]
        if isinstance(payload, list):
            return [item.get("phrase") for item in payload if isinstance(item, dict) and item.get("phrase")]
        return []

    def search(self, query: str) -> List[str]:
        resp = self._session().post(self.SEARCH_URL, data={"q": query}, timeout=self._timeout)
        resp.raise_for_status()
        soup = BeautifulSoup(resp.text, "html.parser")
        links: List[str] = []
        for anchor in soup.select("a.result__a[href]"):
            link = _unwrap_redirect(anchor["href"])
            if link and link not in links:
                links.append(link)
        return links


class SuggestionMiner:
    """Mines frequent n-grams from page text and expands them through a provider.

    Lookups run on a small dedicated pool; a failed lookup only loses the
    phrases of that n-gram."""

    def __init__(self, provider: SuggestionProvider, max_workers: int = 5) -> None:
        self._provider = provider
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="suggest")

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def fetch_suggestions(self, ngrams: List[str]) -> List[str]:
        futures = [(ngram, self._executor.submit(self._provider.suggest, ngram)) for ngram in ngrams]
        results: List[str] = []
        for ngram, future in futures:
            try:
                results.extend(future.result())
            except Exception as exc:  # noqa: BLE001
                logger.debug("suggestion lookup failed ngram=%r error=%s", ngram, exc)
        return results

    def suggestions_from_content(self, content: str, max_suggestions: int = 5) -> List[str]:
        frequencies = calculate_frequencies(generate_ngrams(content))
        return normalize_suggestions(self.fetch_suggestions(top_ngrams(frequencies, max_suggestions)))


def _unwrap_redirect(href: str) -> Optional[str]:
    if href.startswith("//"):
        href = "https:" + href
    try:
        parsed = urlparse(href)
    except ValueError:
        return None
    if parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        return target[0] if target else None
    if parsed.scheme in ("http", "https"):
        return href
    return None
