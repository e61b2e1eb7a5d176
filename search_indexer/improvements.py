"""Per-collection improvement strategies.

Each builder returns an ``ImprovementJob``: the strategy triple handed to the
engine plus the batch size and the total estimate read at build time. The
total is read from the store before the run starts, so a store that cannot be
reached fails the whole run here instead of inside a batch.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .engine import ImprovementEngine, ImprovementStrategy
from .models import Collection, RunSummary, ScrapedAsset, ScrapedImage, ScrapedRecord, UpsertOperation
from .scraper import WebScraper
from .storage import DataStore
from .suggestions import SuggestionMiner, SuggestionProvider, normalize_suggestions

logger = logging.getLogger(__name__)

SORT_NEWEST = -1
SORT_OLDEST = 1

_URL_PROJECTION = {"_id": 0, "url": 1}


@dataclass(frozen=True)
class ImprovementJob:
    strategy: ImprovementStrategy
    batch_size: int
    total_estimate: int

    def run(self, engine: ImprovementEngine, cancel_event: Optional[threading.Event] = None) -> RunSummary:
        return engine.process_improvement(self.strategy, self.batch_size, self.total_estimate, cancel_event)


def website_ops(record: ScrapedRecord) -> List[UpsertOperation]:
    return [
        UpsertOperation(
            filter={"url": record.url},
            set_on_insert={
                "url": record.url,
                "title": record.title,
                "description": record.description,
                "metaData": dict(record.meta_data),
            },
        )
    ]


def suggest_ops(phrase: str) -> List[UpsertOperation]:
    normalized = normalize_suggestions([phrase])
    return [UpsertOperation(filter={"suggest": s}, set_on_insert={"suggest": s}) for s in normalized]


def image_ops(image: ScrapedImage) -> List[UpsertOperation]:
    return [
        UpsertOperation(
            filter={"src": image.src},
            set_on_insert={"src": image.src, "alt": image.alt, "width": image.width, "height": image.height},
        )
    ]


def asset_ops(asset: ScrapedAsset) -> List[UpsertOperation]:
    return [
        UpsertOperation(
            filter={"url": asset.url},
            set_on_insert={"url": asset.url, "parentUrl": asset.parent_url, "type": asset.type.value},
        )
    ]


def first_keyword(document: Mapping[str, Any]) -> Optional[str]:
    """First comma-separated entry of a site's keywords, lowercased and trimmed."""
    keywords = document.get("keywords")
    if not isinstance(keywords, str):
        keywords = (document.get("metaData") or {}).get("keywords")
    if not isinstance(keywords, str):
        return None
    keyword = keywords.split(",")[0].strip().lower()
    return keyword or None


class Improvements:
    """Builds improvement jobs for every collection over one store and scraper."""

    def __init__(
        self,
        store: DataStore,
        scraper: WebScraper,
        provider: Optional[SuggestionProvider] = None,
        miner: Optional[SuggestionMiner] = None,
        targets: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self._store = store
        self._scraper = scraper
        self._provider = provider
        self._owns_miner = miner is None and provider is not None
        self._miner = miner or (SuggestionMiner(provider) if provider is not None else None)
        self._targets = targets or {}

    def close(self) -> None:
        if self._owns_miner and self._miner is not None:
            self._miner.close()

    # -- website -----------------------------------------------------------

    def hyperlink_based(
        self, batch_size: int = 5, include_same_domain: bool = False, sort_direction: int = SORT_NEWEST
    ) -> ImprovementJob:
        def produce(skip: int) -> List[ScrapedRecord]:
            seeds = self._seeds(skip, batch_size, sort_direction)
            urls = self._scraper.get_extracted_urls(
                seeds, include_same_domain=include_same_domain, restrict_third_party_domains=False
            )
            logger.debug("hyperlinkBased skip=%d seeds=%d urls=%d", skip, len(seeds), len(urls))
            return self._scraper.get_scraped_websites(urls)

        return self._job("hyperlinkBased", produce, website_ops, Collection.WEBSITE, batch_size,
                         self._store.count(Collection.WEBSITE))

    def suggests_based(self, batch_size: int = 5, sort_direction: int = SORT_NEWEST) -> ImprovementJob:
        provider = self._require_provider()

        def produce(skip: int) -> List[ScrapedRecord]:
            rows = self._store.page(Collection.SUGGEST, skip, batch_size, sort_direction, {"_id": 0, "suggest": 1})
            records: List[ScrapedRecord] = []
            for row in rows:
                suggest = row.get("suggest")
                if not suggest:
                    continue
                try:
                    links = provider.search(suggest)
                except Exception as exc:  # noqa: BLE001
                    logger.debug("search failed suggest=%r error=%s", suggest, exc)
                    continue
                records.extend(self._scraper.get_scraped_websites(links))
            return records

        return self._job("suggestsBased", produce, website_ops, Collection.WEBSITE, batch_size,
                         self._store.count(Collection.SUGGEST))

    def list_based(self, urls: Sequence[str], batch_size: int = 5, include_same_domain: bool = False) -> ImprovementJob:
        urls = list(urls)

        def produce(skip: int) -> List[ScrapedRecord]:
            seeds = [{"url": url} for url in urls[skip : skip + batch_size]]
            extracted = self._scraper.get_extracted_urls(
                seeds, include_same_domain=include_same_domain, restrict_third_party_domains=False
            )
            return self._scraper.get_scraped_websites(extracted)

        return self._job("listBased", produce, website_ops, Collection.WEBSITE, batch_size, len(urls))

    # -- suggest -----------------------------------------------------------

    def suggest_content_based(
        self, batch_size: int = 5, max_suggestions: int = 5, sort_direction: int = SORT_NEWEST
    ) -> ImprovementJob:
        if self._miner is None:
            raise ValueError("a suggestion provider is required for contentBased suggestions")
        miner = self._miner

        def produce(skip: int) -> List[str]:
            urls = [seed["url"] for seed in self._seeds(skip, batch_size, sort_direction) if seed.get("url")]
            contents = self._scraper.map_settled(self._scraper.get_website_content, urls)
            phrases: List[str] = []
            for content in contents:
                if content:
                    phrases.extend(miner.suggestions_from_content(content, max_suggestions))
            return normalize_suggestions(phrases)

        return self._job("contentBased", produce, suggest_ops, Collection.SUGGEST, batch_size,
                         self._store.count(Collection.WEBSITE))

    def keyword_based(self, batch_size: int = 100, sort_direction: int = SORT_NEWEST) -> ImprovementJob:
        def produce(skip: int) -> List[str]:
            rows = self._store.page(
                Collection.WEBSITE, skip, batch_size, sort_direction, {"_id": 0, "keywords": 1, "metaData": 1}
            )
            return normalize_suggestions(kw for kw in map(first_keyword, rows) if kw)

        return self._job("keywordBased", produce, suggest_ops, Collection.SUGGEST, batch_size,
                         self._store.count(Collection.WEBSITE))

    # -- image / asset -----------------------------------------------------

    def image_content_based(self, batch_size: int = 5, sort_direction: int = SORT_NEWEST) -> ImprovementJob:
        def produce(skip: int) -> List[ScrapedImage]:
            return self._scraper.get_extracted_images(self._seeds(skip, batch_size, sort_direction))

        return self._job("contentBased", produce, image_ops, Collection.IMAGE, batch_size,
                         self._store.count(Collection.WEBSITE))

    def asset_content_based(self, batch_size: int = 5, sort_direction: int = SORT_NEWEST) -> ImprovementJob:
        def produce(skip: int) -> List[ScrapedAsset]:
            return self._scraper.get_extracted_assets(self._seeds(skip, batch_size, sort_direction))

        return self._job("contentBased", produce, asset_ops, Collection.ASSET, batch_size,
                         self._store.count(Collection.WEBSITE))

    # -- news / shopping ---------------------------------------------------

    def secure_providers_based(self, collection: Collection, batch_size: int = 1) -> ImprovementJob:
        """Scrape a static provider list plus the same-site pages each provider links to."""
        group = {Collection.NEWS: "news", Collection.SHOPPING: "shopping"}.get(collection)
        if group is None:
            raise ValueError(f"no provider list for collection {collection.value}")
        providers = list(self._targets.get(group, []))

        def produce(skip: int) -> List[ScrapedRecord]:
            seeds = [{"url": url} for url in providers[skip : skip + batch_size]]
            internal = self._scraper.get_extracted_urls(
                seeds, include_same_domain=True, restrict_third_party_domains=True
            )
            return self._scraper.get_scraped_websites([s["url"] for s in seeds] + internal)

        return self._job("secureProviders", produce, website_ops, collection, batch_size, len(providers))

    # -- helpers -----------------------------------------------------------

    def _seeds(self, skip: int, limit: int, sort_direction: int) -> List[Dict[str, Any]]:
        return self._store.page(Collection.WEBSITE, skip, limit, sort_direction, _URL_PROJECTION)

    def _sink(self, collection: Collection) -> Callable[[List[UpsertOperation]], int]:
        def perform_bulk_write(ops: List[UpsertOperation]) -> int:
            created = self._store.bulk_write(collection, ops)
            logger.debug("bulk write collection=%s ops=%d created=%d", collection.value, len(ops), created)
            return created

        return perform_bulk_write

    def _job(
        self,
        method: str,
        produce: Callable[[int], Sequence[Any]],
        get_bulk_ops: Callable[[Any], List[UpsertOperation]],
        collection: Collection,
        batch_size: int,
        total_estimate: int,
    ) -> ImprovementJob:
        strategy = ImprovementStrategy(
            method=method,
            produce=produce,
            get_bulk_ops=get_bulk_ops,
            perform_bulk_write=self._sink(collection),
        )
        return ImprovementJob(strategy=strategy, batch_size=batch_size, total_estimate=total_estimate)

    def _require_provider(self) -> SuggestionProvider:
        if self._provider is None:
            raise ValueError("a suggestion provider is required for suggestsBased improvement")
        return self._provider


def run_sweeps(
    engine: ImprovementEngine,
    build: Callable[[int], ImprovementJob],
    cancel_event: Optional[threading.Event] = None,
) -> List[RunSummary]:
    """Run a newest-first and an oldest-first sweep of the same job side by side."""
    jobs = []
    for direction, label in ((SORT_NEWEST, "newest"), (SORT_OLDEST, "oldest")):
        job = build(direction)
        strategy = dataclasses.replace(job.strategy, method=f"{job.strategy.method}:{label}")
        jobs.append(dataclasses.replace(job, strategy=strategy))
    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="sweep") as pool:
        futures = [pool.submit(job.run, engine, cancel_event) for job in jobs]
        return [future.result() for future in futures]
