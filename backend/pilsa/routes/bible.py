"""
Pilsa Backend — Bible Content Routes
=====================================

Public (no token). `translation` defaults to DEFAULT_TRANSLATION (nkrv).
"""

from typing import Optional

from fastapi import APIRouter, Query

from pilsa.config import settings
from pilsa.schemas.bible import ChapterResponse, SearchResponse, VerseResponse
from pilsa.schemas.common import ErrorResponse
from pilsa.services.bible_service import bible_service

router = APIRouter(prefix=f"{settings.api_prefix}/bible", tags=["Bible"])

_errors = {
    400: {"description": "Unknown translation", "model": ErrorResponse},
    404: {"description": "Not found", "model": ErrorResponse},
}

_translation = Query(default=None, max_length=10, description="nkrv, krv or kor")


@router.get(
    "/book/{book}/chapter/{chapter}",
    response_model=ChapterResponse,
    responses=_errors,
    summary="All verses of a chapter",
)
async def get_chapter(book: str, chapter: int, translation: Optional[str] = _translation) -> ChapterResponse:
    verses = await bible_service.get_chapter(book, chapter, translation)
    return ChapterResponse(book=book, chapter=chapter, verses=verses)


@router.get(
    "/book/{book}/chapter/{chapter}/verse/{verse}",
    response_model=VerseResponse,
    responses=_errors,
    summary="A single verse",
)
async def get_verse(
    book: str,
    chapter: int,
    verse: int,
    translation: Optional[str] = _translation,
) -> VerseResponse:
    text = await bible_service.get_verse(book, chapter, verse, translation)
    return VerseResponse(book=book, chapter=chapter, verse=verse, text=text)


@router.get("/search", response_model=SearchResponse, responses=_errors, summary="Substring search")
async def search(
    q: str = Query(default="", max_length=100),
    translation: Optional[str] = _translation,
) -> SearchResponse:
    results = await bible_service.search(q, translation)
    return SearchResponse(results=results)
