from __future__ import annotations

import json
from importlib import resources
from typing import Dict, List

TARGET_GROUPS = ("devs", "news", "shopping", "wikipedia")


def load_scraping_targets() -> Dict[str, List[str]]:
    """Load the bundled provider lists keyed by group name."""
    raw = resources.files("search_indexer").joinpath("data/scraping_targets.json").read_text(encoding="utf-8")
    data = json.loads(raw)
    return {group: [url for url in data.get(group, []) if isinstance(url, str)] for group in TARGET_GROUPS}


def all_targets(targets: Dict[str, List[str]]) -> List[str]:
    return list(dict.fromkeys(url for group in TARGET_GROUPS for url in targets.get(group, [])))
