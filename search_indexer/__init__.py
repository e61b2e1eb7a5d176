"""Incremental search-index builder.

Crawls known sites, extracts titles, descriptions, metadata, links, assets
and images, and fills the search collections through idempotent upserts.

Key modules:
    extractor    -- HtmlDataExtractor, pure reads over one HTML document
    fetcher      -- Fetcher, bounded-timeout HTML retrieval that never raises
    scraper      -- WebScraper, fetch + extract with bounded fan-out
    suggestions  -- n-gram mining and the suggestion/search provider
    controller   -- ThreadPoolController for batch-task admission
    engine       -- ImprovementEngine and the ImprovementStrategy triple
    improvements -- per-collection strategies and sweep runner
    factory      -- ImprovementFactory mapping CLI names to jobs
    storage      -- DataStore, MongoStore and MemoryStore
    metrics      -- lifecycle listeners (JSON log, metrics, progress bar)
    config       -- IndexerConfig loaded from the environment
    importer     -- one-shot import of the bundled data dump
    targets      -- bundled provider and seed URL lists
"""
