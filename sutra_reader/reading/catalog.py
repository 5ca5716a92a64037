from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .indexing import Indexer, NoopIndexer
from .models import FilteredSutra, Sutra, paragraph_key

logger = logging.getLogger(__name__)

SutraSource = Callable[[int, int], List[Sutra]]

DEMO_ID_PREFIX = "sutra_"
_DEMO_ID_RE = re.compile(rf"{DEMO_ID_PREFIX}(\d+)")


def generate_demo_sutras(start_index: int, count: int, rng: Optional[random.Random] = None) -> List[Sutra]:
    """
    Placeholder texts used until a real catalog is imported. Each sutra gets
    between five and eight numbered paragraphs.
    """
    rng = rng or random.Random()
    sutras: List[Sutra] = []
    for i in range(count):
        number = start_index + i
        paragraph_count = 5 + rng.randint(0, 3)
        content = [
            f"第 {p + 1} 段示例文字：这是演示用的阿含经段落内容（编号 {number}-{p + 1}），可通过导入真实 JSON 数据替换。"
            for p in range(paragraph_count)
        ]
        sutras.append(Sutra(id=f"{DEMO_ID_PREFIX}{number}", title=f"示例经文 {number}", content=content))
    return sutras


def validate_catalog_entries(raw: Sequence[Any]) -> List[Sutra]:
    validated: List[Sutra] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        if not item.get("id") or not item.get("title") or not isinstance(item.get("content"), list):
            continue
        validated.append(
            Sutra(id=str(item["id"]), title=str(item["title"]), content=[str(p) for p in item["content"]])
        )
    return validated


class ContentCatalog:
    """
    In-memory list of texts with load-more pagination, client-side filtering
    and wholesale JSON import. The optional indexer mirrors the catalog for
    ranked full-text search.
    """

    def __init__(
        self,
        texts: Optional[Sequence[Sutra]] = None,
        batch_size: int = 5,
        load_delay: float = 0.7,
        indexer: Optional[Indexer] = None,
        source: Optional[SutraSource] = None,
    ):
        self.batch_size = batch_size
        self.load_delay = load_delay
        self.indexer = indexer or NoopIndexer()
        self._source = source or generate_demo_sutras
        self.texts: List[Sutra] = list(texts) if texts is not None else self._source(1, batch_size)
        self.loading_more = False
        self.importing = False
        self.indexer.index_sutras(self.texts, replace=True)

    def get(self, sutra_id: str) -> Optional[Sutra]:
        for sutra in self.texts:
            if sutra.id == sutra_id:
                return sutra
        return None

    async def load_more(self) -> List[Sutra]:
        if self.loading_more:
            return []
        self.loading_more = True
        try:
            await asyncio.sleep(self.load_delay)
            known = {sutra.id for sutra in self.texts}
            batch = []
            for sutra in self._source(self._next_index(), self.batch_size):
                if sutra.id in known:
                    logger.warning("Skipping loaded sutra with duplicate id %s", sutra.id)
                    continue
                known.add(sutra.id)
                batch.append(sutra)
            self.texts = [*self.texts, *batch]
            self.indexer.index_sutras(batch)
        finally:
            self.loading_more = False
        logger.debug("Loaded %d more sutras (%d total)", len(batch), len(self.texts))
        return batch

    def _next_index(self) -> int:
        """Next demo number: past both the catalog length and any numbered id already present."""
        highest = len(self.texts)
        for sutra in self.texts:
            match = _DEMO_ID_RE.fullmatch(sutra.id)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest + 1

    def filter(
        self,
        search: str = "",
        unread_only: bool = False,
        progress: Optional[Mapping[str, bool]] = None,
    ) -> List[FilteredSutra]:
        term = (search or "").strip()
        progress = progress or {}
        if not term and not unread_only:
            return [FilteredSutra(s.id, s.title, list(enumerate(s.content))) for s in self.texts]

        results: List[FilteredSutra] = []
        for sutra in self.texts:
            kept = []
            for idx, text in enumerate(sutra.content):
                if unread_only and progress.get(paragraph_key(sutra.id, idx)):
                    continue
                if term and term not in text and term not in sutra.title:
                    continue
                kept.append((idx, text))
            if kept:
                results.append(FilteredSutra(sutra.id, sutra.title, kept))
        return results

    def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        if not query or not query.strip():
            return []
        return self.indexer.search(query, limit=limit)

    def import_catalog(self, raw: Union[str, bytes, Sequence[Any]]) -> Optional[int]:
        """
        Replace the catalog with externally supplied texts. Returns the number
        of accepted entries, or None when the payload is not a JSON array and
        the catalog was left untouched.
        """
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring malformed catalog JSON")
                return None
        if not isinstance(raw, list):
            logger.debug("Ignoring catalog payload of type %s", type(raw).__name__)
            return None
        validated = validate_catalog_entries(raw)
        dropped = len(raw) - len(validated)
        if dropped:
            logger.debug("Dropped %d malformed catalog entries", dropped)
        self.texts = validated
        self.indexer.index_sutras(self.texts, replace=True)
        return len(validated)

    def import_catalog_file(self, path: Path) -> Optional[int]:
        self.importing = True
        try:
            try:
                payload = Path(path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                logger.warning("Could not read catalog file %s", path)
                return None
            return self.import_catalog(payload)
        finally:
            self.importing = False


def visible_paragraph_keys(filtered: Sequence[FilteredSutra]) -> List[str]:
    keys: List[str] = []
    for sutra in filtered:
        keys.extend(sutra.paragraph_keys())
    return keys
