from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from .improvements import SORT_NEWEST, ImprovementJob, Improvements
from .models import Collection
from .targets import all_targets

DEFAULT_BATCH_SIZES: Dict[Tuple[str, str], int] = {
    ("website", "hyperlinkBased"): 5,
    ("website", "suggestsBased"): 5,
    ("website", "listBased"): 5,
    ("suggest", "contentBased"): 5,
    ("suggest", "keywordBased"): 100,
    ("image", "contentBased"): 5,
    ("asset", "contentBased"): 5,
    ("news", "secureProviders"): 1,
    ("shopping", "secureProviders"): 1,
}


class ImprovementFactory:
    """Creates improvement jobs from ``(engine, method)`` names used by the CLI.

    Static lists (``listBased`` and the provider-based methods) are always
    walked in list order, so ``sort_direction`` only affects store sweeps.
    """

    def __init__(self, improvements: Improvements, targets: Optional[Dict[str, List[str]]] = None) -> None:
        self._improvements = improvements
        self._targets = targets or {}

    @staticmethod
    def available() -> List[Tuple[str, str]]:
        return list(DEFAULT_BATCH_SIZES)

    def is_sweepable(self, engine: str, method: str) -> bool:
        return (engine, method) not in {
            ("website", "listBased"),
            ("news", "secureProviders"),
            ("shopping", "secureProviders"),
        }

    def create_job(
        self,
        engine: str,
        method: str,
        batch_size: Optional[int] = None,
        sort_direction: int = SORT_NEWEST,
        include_same_domain: bool = False,
    ) -> ImprovementJob:
        key = (engine, method)
        if key not in DEFAULT_BATCH_SIZES:
            raise ValueError(f"Unknown improvement: {engine}.{method}")
        size = batch_size or DEFAULT_BATCH_SIZES[key]
        imp = self._improvements

        builders: Dict[Tuple[str, str], Callable[[], ImprovementJob]] = {
            ("website", "hyperlinkBased"): lambda: imp.hyperlink_based(size, include_same_domain, sort_direction),
            ("website", "suggestsBased"): lambda: imp.suggests_based(size, sort_direction),
            ("website", "listBased"): lambda: imp.list_based(all_targets(self._targets), size, include_same_domain),
            ("suggest", "contentBased"): lambda: imp.suggest_content_based(size, sort_direction=sort_direction),
            ("suggest", "keywordBased"): lambda: imp.keyword_based(size, sort_direction),
            ("image", "contentBased"): lambda: imp.image_content_based(size, sort_direction),
            ("asset", "contentBased"): lambda: imp.asset_content_based(size, sort_direction),
            ("news", "secureProviders"): lambda: imp.secure_providers_based(Collection.NEWS, size),
            ("shopping", "secureProviders"): lambda: imp.secure_providers_based(Collection.SHOPPING, size),
        }
        return builders[key]()
