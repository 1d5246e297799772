"""Pilsa Backend — Bible content schemas."""

from typing import Dict, List

from pydantic import BaseModel


class ChapterResponse(BaseModel):
    book: str
    chapter: int
    verses: Dict[int, str]


class VerseResponse(BaseModel):
    book: str
    chapter: int
    verse: int
    text: str


class SearchResult(BaseModel):
    book: str
    chapter: int
    verse: int
    text: str


class SearchResponse(BaseModel):
    results: List[SearchResult]
