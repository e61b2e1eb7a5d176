from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, TypeVar

from .extractor import HtmlDataExtractor
from .fetcher import Fetcher
from .models import ScrapedAsset, ScrapedImage, ScrapedRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class WebScraper:
    """Composes the Fetcher and the HTML extractor into crawl operations.

    All per-URL fan-out runs on one shared thread pool of
    ``max_concurrency`` workers, which caps in-flight fetches across every
    caller using this scraper. Fan-out waits for every item; a failed item
    contributes nothing and never cancels its siblings.
    """

    def __init__(self, fetcher: Optional[Fetcher] = None, max_concurrency: int = 100) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._fetcher = fetcher or Fetcher()
        self._executor = ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix="scraper")

    def __enter__(self) -> "WebScraper":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def map_settled(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        """Run ``fn`` over ``items`` concurrently and keep only the successes, in input order."""
        futures = [(item, self._executor.submit(fn, item)) for item in items]
        results: List[R] = []
        for item, future in futures:
            try:
                results.append(future.result())
            except Exception as exc:  # noqa: BLE001
                logger.debug("fan-out item failed item=%r error=%s", item, exc)
        return results

    def extract_data(self, html: str, url: str) -> ScrapedRecord:
        extractor = HtmlDataExtractor(html, url)
        return ScrapedRecord(
            url=url,
            title=extractor.extract_title(),
            description=extractor.extract_description(),
            meta_data=extractor.extract_meta_data(),
        )

    def scrape_site(self, url: str) -> Optional[ScrapedRecord]:
        """Fetch and extract one page; ``None`` unless it has a title and a description."""
        try:
            record = self.extract_data(self._fetcher.fetch_html(url), url)
        except Exception as exc:  # noqa: BLE001
            logger.debug("scrape failed url=%s error=%s", url, exc)
            return None
        return record if record.is_valid() else None

    def get_website_content(self, url: str) -> str:
        return HtmlDataExtractor(self._fetcher.fetch_html(url), url).extract_website_content()

    def extract_hyperlinks(
        self, url: str, include_same_domain: bool = False, restrict_third_party_domains: bool = False
    ) -> List[str]:
        html = self._fetcher.fetch_html(url)
        if not html:
            return []
        return HtmlDataExtractor(html, url).extract_links(include_same_domain, restrict_third_party_domains)

    def get_extracted_urls(
        self,
        seeds: Sequence[Mapping[str, Any]],
        include_same_domain: bool = False,
        restrict_third_party_domains: bool = False,
    ) -> List[str]:
        per_seed = self.map_settled(
            lambda url: self.extract_hyperlinks(url, include_same_domain, restrict_third_party_domains),
            _seed_urls(seeds),
        )
        return _flatten(per_seed)

    def get_extracted_assets(self, seeds: Sequence[Mapping[str, Any]]) -> List[ScrapedAsset]:
        def extract(url: str) -> List[ScrapedAsset]:
            html = self._fetcher.fetch_html(url)
            return HtmlDataExtractor(html, url).extract_assets() if html else []

        return _flatten(self.map_settled(extract, _seed_urls(seeds)))

    def get_extracted_images(self, seeds: Sequence[Mapping[str, Any]]) -> List[ScrapedImage]:
        def extract(url: str) -> List[ScrapedImage]:
            html = self._fetcher.fetch_html(url)
            return HtmlDataExtractor(html, url).extract_all_images() if html else []

        return _flatten(self.map_settled(extract, _seed_urls(seeds)))

    def get_scraped_websites(self, urls: Iterable[str]) -> List[ScrapedRecord]:
        """Scrape each distinct URL once and return the valid records in first-seen order.

        Repeated URLs are collapsed before fetching, so the result holds at
        most one record per distinct URL; failed or invalid pages are left out."""
        unique_urls = list(dict.fromkeys(urls))
        return [record for record in self.map_settled(self.scrape_site, unique_urls) if record is not None]


def _seed_urls(seeds: Iterable[Mapping[str, Any]]) -> List[str]:
    return [seed["url"] for seed in seeds if seed.get("url")]


def _flatten(groups: Iterable[List[T]]) -> List[T]:
    return [item for group in groups for item in group]
