"""Tests for the WebScraper class."""

import threading
import time
import unittest

from search_indexer.models import AssetType
from search_indexer.scraper import WebScraper


def _page(title="", description=None, body=""):
    desc = f'<meta name="description" content="{description}">' if description is not None else ""
    return f"<html><head><title>{title}</title>{desc}</head><body>{body}</body></html>"


class FakeFetcher:
    """Serves canned HTML per URL; a stored exception is raised instead."""

    def __init__(self, pages):
        self._pages = pages
        self.requested = []
        self._lock = threading.Lock()

    def fetch_html(self, url):
        with self._lock:
            self.requested.append(url)
        page = self._pages.get(url, "")
        if isinstance(page, Exception):
            raise page
        return page


class TestScrapeSite(unittest.TestCase):
    """Verify scrape_site validity filtering."""

    def test_valid_page_returns_record(self):
        """A page with title and description yields a record."""
        fetcher = FakeFetcher({"https://a.test/": _page("A", "about a")})
        with WebScraper(fetcher, max_concurrency=2) as scraper:
            record = scraper.scrape_site("https://a.test/")
        self.assertEqual(record.url, "https://a.test/")
        self.assertEqual(record.title, "A")
        self.assertEqual(record.description, "about a")
        self.assertEqual(record.meta_data, {"description": "about a"})

    def test_missing_title_or_description_returns_none(self):
        """Pages without a title or a description are discarded."""
        fetcher = FakeFetcher({
            "https://a.test/no-title": _page("", "desc"),
            "https://a.test/no-desc": _page("Title"),
            "https://a.test/empty-desc": _page("Title", ""),
            "https://a.test/unreachable": "",
        })
        with WebScraper(fetcher, max_concurrency=2) as scraper:
            for url in fetcher._pages:
                self.assertIsNone(scraper.scrape_site(url), url)

    def test_fetch_exception_returns_none(self):
        """An exception raised while fetching is converted to None."""
        fetcher = FakeFetcher({"https://a.test/": RuntimeError("boom")})
        with WebScraper(fetcher, max_concurrency=1) as scraper:
            self.assertIsNone(scraper.scrape_site("https://a.test/"))


class TestGetScrapedWebsites(unittest.TestCase):
    """Verify partial-failure tolerance of batch scraping."""

    def test_one_failure_does_not_cancel_siblings(self):
        """Only the successful, valid URL produces a record."""
        fetcher = FakeFetcher({
            "https://a.test/ok": _page("OK", "fine"),
            "https://a.test/fail": ConnectionError("refused"),
        })
        with WebScraper(fetcher, max_concurrency=4) as scraper:
            records = scraper.get_scraped_websites(["https://a.test/ok", "https://a.test/fail"])
        self.assertEqual([r.url for r in records], ["https://a.test/ok"])

    def test_duplicate_urls_are_fetched_once(self):
        """Repeated URLs in one batch are scraped once."""
        fetcher = FakeFetcher({"https://a.test/ok": _page("OK", "fine")})
        with WebScraper(fetcher, max_concurrency=4) as scraper:
            records = scraper.get_scraped_websites(["https://a.test/ok"] * 3)
        self.assertEqual(len(records), 1)
        self.assertEqual(fetcher.requested, ["https://a.test/ok"])

    def test_repeats_and_failures_yield_one_record_per_distinct_success(self):
        """Distinct successful URLs each give one record, whatever the repeats and failures."""
        fetcher = FakeFetcher({
            "https://a.test/ok": _page("OK", "fine"),
            "https://a.test/other": _page("Other", "also fine"),
            "https://a.test/fail": ConnectionError("refused"),
        })
        urls = ["https://a.test/ok", "https://a.test/fail", "https://a.test/other", "https://a.test/ok"]
        with WebScraper(fetcher, max_concurrency=4) as scraper:
            records = scraper.get_scraped_websites(urls)
        self.assertEqual([r.url for r in records], ["https://a.test/ok", "https://a.test/other"])

    def test_concurrency_is_bounded(self):
        """No more than max_concurrency fetches run at the same time."""
        active = []
        peak = []
        lock = threading.Lock()

        class SlowFetcher:
            def fetch_html(self, url):
                with lock:
                    active.append(url)
                    peak.append(len(active))
                time.sleep(0.02)
                with lock:
                    active.remove(url)
                return _page("T", "d")

        urls = [f"https://a.test/{i}" for i in range(12)]
        with WebScraper(SlowFetcher(), max_concurrency=3) as scraper:
            records = scraper.get_scraped_websites(urls)
        self.assertEqual(len(records), 12)
        self.assertLessEqual(max(peak), 3)


class TestExtractionFanOut(unittest.TestCase):
    """Verify links, assets and images are flattened across seeds."""

    def setUp(self):
        self.fetcher = FakeFetcher({
            "https://a.test/": _page(body='<a href="https://b.test/x">x</a><a href="https://a.test/in">in</a>'
                                          '<img src="/logo.png"><script src="/app.js"></script>'),
            "https://c.test/": _page(body='<a href="https://d.test/y">y</a>'),
            "https://down.test/": "",
        })
        self.seeds = [{"url": "https://a.test/"}, {"url": "https://c.test/"}, {"url": "https://down.test/"}, {}]

    def test_get_extracted_urls(self):
        """Outgoing links of every reachable seed are returned in seed order."""
        with WebScraper(self.fetcher, max_concurrency=2) as scraper:
            urls = scraper.get_extracted_urls(self.seeds)
        self.assertEqual(urls, ["https://b.test/x", "https://d.test/y"])

    def test_get_extracted_urls_same_domain(self):
        """include_same_domain adds the seed's own links."""
        with WebScraper(self.fetcher, max_concurrency=2) as scraper:
            urls = scraper.get_extracted_urls(self.seeds, include_same_domain=True)
        self.assertIn("https://a.test/in", urls)

    def test_get_extracted_assets_and_images(self):
        """Assets and images are resolved against each seed URL."""
        with WebScraper(self.fetcher, max_concurrency=2) as scraper:
            assets = scraper.get_extracted_assets(self.seeds)
            images = scraper.get_extracted_images(self.seeds)
        self.assertEqual([(a.type, a.url) for a in assets], [(AssetType.SCRIPT, "https://a.test/app.js")])
        self.assertEqual([i.src for i in images], ["https://a.test/logo.png"])

    def test_get_website_content(self):
        """Body text is returned for content mining."""
        fetcher = FakeFetcher({"https://a.test/": _page(body="<p>some text</p>")})
        with WebScraper(fetcher, max_concurrency=1) as scraper:
            self.assertEqual(scraper.get_website_content("https://a.test/"), "some text")


class TestMapSettled(unittest.TestCase):
    """Verify settle-all fan-out semantics."""

    def test_failures_are_skipped_and_order_kept(self):
        """Failed items are dropped; the rest keep input order."""

        def work(n):
            if n % 2:
                raise ValueError(n)
            return n * 10

        with WebScraper(FakeFetcher({}), max_concurrency=3) as scraper:
            self.assertEqual(scraper.map_settled(work, range(6)), [0, 20, 40])


if __name__ == "__main__":
    unittest.main()
