from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol

from whoosh import index
from whoosh.analysis import NgramWordAnalyzer
from whoosh.fields import ID, NUMERIC, TEXT, Schema
from whoosh.qparser import MultifieldParser
from whoosh.writing import CLEAR

from .models import Sutra, paragraph_key

# Unigrams and bigrams per word run, so unsegmented CJK text is searchable.
PARAGRAPH_ANALYZER = NgramWordAnalyzer(minsize=1, maxsize=2)


class Indexer(Protocol):
    def index_sutras(self, sutras: Iterable[Sutra], replace: bool = False) -> None:
        ...

    def search(self, query_str: str, limit: int = 10) -> List[Dict[str, Any]]:
        ...


class NoopIndexer:
    """
    Default indexer stub. Keeps the catalog wired without pulling in Whoosh.
    """

    def index_sutras(self, sutras: Iterable[Sutra], replace: bool = False) -> None:
        return None

    def search(self, query_str: str, limit: int = 10) -> List[Dict[str, Any]]:
        return []


class WhooshIndexer:
    """
    File-system backed Whoosh index with one document per paragraph. A
    replacing import clears every segment; appended batches re-index their
    sutras by deleting existing docs first.
    """

    def __init__(self, index_dir: Path):
        self.index_dir = index_dir
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.schema = Schema(
            sutra_id=ID(stored=True),
            paragraph_key=ID(stored=True, unique=True),
            paragraph_index=NUMERIC(stored=True, sortable=True),
            title=TEXT(stored=True, analyzer=PARAGRAPH_ANALYZER),
            text=TEXT(stored=True, analyzer=PARAGRAPH_ANALYZER),
        )
        if index.exists_in(self.index_dir):
            self.ix = index.open_dir(self.index_dir)
        else:
            self.ix = index.create_in(self.index_dir, self.schema)

    def index_sutras(self, sutras: Iterable[Sutra], replace: bool = False) -> None:
        writer = self.ix.writer()
        for sutra in sutras:
            if not replace:
                writer.delete_by_term("sutra_id", sutra.id)
            for idx, text in enumerate(sutra.content):
                writer.add_document(
                    sutra_id=sutra.id,
                    paragraph_key=paragraph_key(sutra.id, idx),
                    paragraph_index=idx,
                    title=sutra.title,
                    text=text or "",
                )
        if replace:
            writer.commit(mergetype=CLEAR)
        else:
            writer.commit()

    def search(self, query_str: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Return a list of plain dicts so callers are safe after the searcher closes.
        """
        qp = MultifieldParser(["title", "text"], schema=self.ix.schema)
        q = qp.parse(query_str)
        with self.ix.searcher() as searcher:
            results = searcher.search(q, limit=limit)
            hits = []
            for hit in results:
                fields = hit.fields()
                hits.append(
                    {
                        "sutra_id": fields.get("sutra_id"),
                        "paragraph_key": fields.get("paragraph_key"),
                        "paragraph_index": fields.get("paragraph_index"),
                        "title": fields.get("title"),
                        "text": fields.get("text"),
                    }
                )
            return hits
