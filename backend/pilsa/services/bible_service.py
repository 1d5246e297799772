"""
Pilsa Backend — Bible Content Service
======================================

What:  Serves chapters, single verses and substring search over a JSON
       corpus of Bible text.
How:   The corpus file is read once with aiofiles on first use and cached in
       memory for the life of the process.
Who:   Public Bible routes (no token required).

Corpus layout (pilsa/data/bible.json unless BIBLE_DATA_PATH is set):
    {
      "<translation>": {
        "<book>": {
          "<chapter>": {"<verse>": "<text>", ...}
        }
      }
    }
JSON object keys are strings; chapter and verse numbers are converted to
int at the API boundary.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from pilsa.config import settings
from pilsa.exceptions import NotFoundError, PilsaError, ValidationError
from pilsa.schemas.bible import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_DATA_PATH = Path(__file__).resolve().parent.parent / "data" / "bible.json"

# Upper bound on search hits returned in one response
MAX_SEARCH_RESULTS = 100

Corpus = Dict[str, Dict[str, Dict[str, Dict[str, str]]]]


class BibleService:
    """Read-only access to the bundled corpus."""

    def __init__(self, data_path: Optional[str] = None):
        self.data_path = Path(data_path or settings.bible_data_path or DEFAULT_DATA_PATH)
        self._corpus: Optional[Corpus] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Corpus:
        if self._corpus is not None:
            return self._corpus

        async with self._lock:
            if self._corpus is None:
                try:
                    async with aiofiles.open(self.data_path, "r", encoding="utf-8") as f:
                        raw = await f.read()
                    corpus = json.loads(raw)
                except (OSError, ValueError) as e:
                    logger.error("Failed to load Bible corpus from %s: %s", self.data_path, str(e))
                    raise PilsaError(
                        message="Bible content is temporarily unavailable.",
                        context={"path": str(self.data_path), "error_type": type(e).__name__},
                    )
                if not isinstance(corpus, dict):
                    raise PilsaError(
                        message="Bible content is temporarily unavailable.",
                        context={"path": str(self.data_path), "reason": "corpus root is not an object"},
                    )
                self._corpus = corpus
                logger.info(
                    "Bible corpus loaded from %s (translations: %s)",
                    self.data_path,
                    ", ".join(sorted(corpus)),
                )
        return self._corpus

    async def translations(self) -> List[str]:
        return sorted(await self._load())

    async def _books(self, translation: Optional[str]) -> Dict[str, Any]:
        name = (translation or settings.default_translation).lower()
        corpus = await self._load()
        if name not in corpus:
            raise ValidationError(
                message=f"Unknown translation '{name}'. Available: {', '.join(sorted(corpus))}",
                field="translation",
            )
        return corpus[name]

    async def get_chapter(self, book: str, chapter: int, translation: Optional[str] = None) -> Dict[int, str]:
        books = await self._books(translation)
        verses = books.get(book, {}).get(str(chapter))
        if not verses:
            raise NotFoundError(resource="chapter", resource_id=f"{book} {chapter}", message="Not found")
        return {int(number): text for number, text in sorted(verses.items(), key=lambda item: int(item[0]))}

    async def get_verse(
        self,
        book: str,
        chapter: int,
        verse: int,
        translation: Optional[str] = None,
    ) -> str:
        books = await self._books(translation)
        text = books.get(book, {}).get(str(chapter), {}).get(str(verse))
        if not text:
            raise NotFoundError(resource="verse", resource_id=f"{book} {chapter}:{verse}", message="Not found")
        return text

    async def search(self, query: str, translation: Optional[str] = None) -> List[SearchResult]:
        """Verses whose text contains `query`, in canonical corpus order."""
        term = query.strip()
        books = await self._books(translation)
        if not term:
            return []

        results: List[SearchResult] = []
        for book, chapters in books.items():
            for chapter, verses in chapters.items():
                for verse, text in verses.items():
                    if isinstance(text, str) and term in text:
                        results.append(
                            SearchResult(book=book, chapter=int(chapter), verse=int(verse), text=text)
                        )
                        if len(results) >= MAX_SEARCH_RESULTS:
                            return results
        return results


bible_service = BibleService()
