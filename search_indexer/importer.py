from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any, Dict, List

from bson import json_util
from tqdm import tqdm

from .models import Collection
from .storage import DataStore, iter_batches

logger = logging.getLogger(__name__)

BATCH_SIZE = 25000
ARCHIVE_NAME = "opensearch@records.zip"
IMPORTED_MODELS = (("suggest", Collection.SUGGEST), ("website", Collection.WEBSITE))


def migration_file(data_dir: Path, model: str) -> Path:
    return data_dir / f"opensearch@{model}.json"


def migration_files_exist(data_dir: Path) -> bool:
    return all(migration_file(data_dir, model).exists() for model, _ in IMPORTED_MODELS)


def unzip_data(data_dir: Path) -> None:
    archive = data_dir / ARCHIVE_NAME
    if not archive.exists():
        raise FileNotFoundError(f'The "{archive}" migration file was not found.')
    logger.info("Extracting %s into %s", archive, data_dir)
    with zipfile.ZipFile(archive) as zf:
        zf.extractall(data_dir)


def read_documents(data_dir: Path, model: str) -> List[Dict[str, Any]]:
    """Parse a MongoDB extended-JSON export ($oid, $date) into documents."""
    documents = json_util.loads(migration_file(data_dir, model).read_text(encoding="utf-8"))
    if not isinstance(documents, list):
        raise ValueError(f"{model} export must be a JSON array")
    return documents


def import_local_data(
    store: DataStore, data_dir: str | Path, batch_size: int = BATCH_SIZE, progress: bool = True
) -> Dict[str, int]:
    """One-shot import of the bundled suggest and website dumps.

    Existing documents (same natural key) are skipped, so re-running the
    import is harmless. Returns inserted counts per collection."""
    data_dir = Path(data_dir)
    if not migration_files_exist(data_dir):
        unzip_data(data_dir)

    inserted: Dict[str, int] = {}
    for model, collection in IMPORTED_MODELS:
        documents = read_documents(data_dir, model)
        batches = list(iter_batches(documents, batch_size))
        logger.info("Importing %d %s documents in %d batches", len(documents), model, len(batches))
        total = 0
        for batch in tqdm(batches, desc=f"import:{model}", unit="batch", disable=not progress):
            total += store.insert_many(collection, batch)
        inserted[collection.value] = total
    return inserted
