from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Collection(str, Enum):
    WEBSITE = "websites"
    SUGGEST = "suggests"
    IMAGE = "images"
    ASSET = "assets"
    NEWS = "news"
    SHOPPING = "shoppings"


NATURAL_KEYS: Dict[Collection, str] = {
    Collection.WEBSITE: "url",
    Collection.SUGGEST: "suggest",
    Collection.IMAGE: "src",
    Collection.ASSET: "url",
    Collection.NEWS: "url",
    Collection.SHOPPING: "url",
}


class AssetType(str, Enum):
    PDF = "pdf"
    DOC = "doc"
    DOCX = "docx"
    XLS = "xls"
    XLSX = "xlsx"
    PPT = "ppt"
    PPTX = "pptx"
    SCRIPT = "script"
    STYLESHEET = "stylesheet"
    FONT = "font"


class EventKind(str, Enum):
    START = "improvementStart"
    BATCH_PROCESSED = "batchProcessed"
    END = "improvementEnd"


@dataclass(frozen=True)
class ScrapedRecord:
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    meta_data: Dict[str, Any] = field(default_factory=dict)

    def is_valid(self) -> bool:
        """A record is usable only with a title and a description meta tag."""
        return bool(self.title) and bool(self.meta_data.get("description"))


@dataclass(frozen=True)
class ScrapedAsset:
    type: AssetType
    url: str
    parent_url: str


@dataclass(frozen=True)
class ScrapedImage:
    src: str
    alt: str = ""
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class UpsertOperation:
    """Insert-if-absent write keyed by a collection's natural key."""

    filter: Dict[str, Any]
    set_on_insert: Dict[str, Any]
    upsert: bool = True


@dataclass(frozen=True)
class BatchDescriptor:
    index: int
    skip: int
    batch_size: int


@dataclass(frozen=True)
class ImprovementEvent:
    kind: EventKind
    method: str
    data: Tuple[UpsertOperation, ...] = ()
    # set on start events only
    total_batches: Optional[int] = None


@dataclass(frozen=True)
class RunSummary:
    method: str
    total_batches: int
    processed: int
    failed: int
    skipped: int
    operations: int

    @property
    def cancelled(self) -> bool:
        return self.skipped > 0
