"""
Pilsa Backend — Bible Content Service Unit Tests
=================================================

What we test:
    ✅ Bundled corpus loads and serves the default translation
    ✅ Chapter ordering by verse number, missing chapter/verse → 404
    ✅ Unknown translation → 400
    ✅ Substring search, empty query, result cap
    ✅ Unreadable corpus file → PilsaError (500)
"""

import json

import pytest

from pilsa.exceptions import NotFoundError, PilsaError, ValidationError
from pilsa.services import bible_service as bible_module
from pilsa.services.bible_service import BibleService


@pytest.fixture
def corpus_file(tmp_path):
    corpus = {
        "nkrv": {
            "요한복음": {
                "3": {
                    "16": "하나님이 세상을 이처럼 사랑하사",
                    "2": "그가 밤에 예수께 와서",
                    "10": "너는 이스라엘의 선생으로서",
                }
            }
        },
        "krv": {},
    }
    path = tmp_path / "bible.json"
    path.write_text(json.dumps(corpus, ensure_ascii=False), encoding="utf-8")
    return path


class TestBundledCorpus:
    @pytest.mark.asyncio
    async def test_default_translation(self):
        service = BibleService()
        assert "nkrv" in await service.translations()
        assert await service.get_verse("창세기", 1, 1) == "태초에 하나님이 천지를 창조하시니라"


class TestChaptersAndVerses:
    @pytest.mark.asyncio
    async def test_chapter_is_ordered_numerically(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        chapter = await service.get_chapter("요한복음", 3)
        assert list(chapter) == [2, 10, 16]

    @pytest.mark.asyncio
    async def test_missing_chapter_and_verse(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        with pytest.raises(NotFoundError):
            await service.get_chapter("요한복음", 4)
        with pytest.raises(NotFoundError):
            await service.get_verse("요한복음", 3, 17)
        with pytest.raises(NotFoundError):
            await service.get_chapter("요한복음", 3, translation="krv")

    @pytest.mark.asyncio
    async def test_translation_name_is_case_insensitive(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        assert await service.get_verse("요한복음", 3, 2, translation="NKRV") == "그가 밤에 예수께 와서"

    @pytest.mark.asyncio
    async def test_unknown_translation(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        with pytest.raises(ValidationError) as exc_info:
            await service.get_chapter("요한복음", 3, translation="kjv")
        assert exc_info.value.field == "translation"


class TestSearch:
    @pytest.mark.asyncio
    async def test_substring_match(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        results = await service.search(" 사랑 ")
        assert [(r.book, r.chapter, r.verse) for r in results] == [("요한복음", 3, 16)]

    @pytest.mark.asyncio
    async def test_blank_query(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        assert await service.search("   ") == []
        with pytest.raises(ValidationError):
            await service.search("", translation="kjv")

    @pytest.mark.asyncio
    async def test_results_are_capped(self, tmp_path, monkeypatch):
        verses = {str(n): "은혜" for n in range(1, 11)}
        path = tmp_path / "bible.json"
        path.write_text(json.dumps({"nkrv": {"시편": {"1": verses}}}), encoding="utf-8")
        monkeypatch.setattr(bible_module, "MAX_SEARCH_RESULTS", 4)

        results = await BibleService(data_path=str(path)).search("은혜")
        assert len(results) == 4


class TestLoading:
    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        service = BibleService(data_path=str(tmp_path / "absent.json"))
        with pytest.raises(PilsaError) as exc_info:
            await service.translations()
        assert exc_info.value.message == "Bible content is temporarily unavailable."

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path):
        path = tmp_path / "bible.json"
        path.write_text("[not json", encoding="utf-8")
        with pytest.raises(PilsaError):
            await BibleService(data_path=str(path)).translations()

    @pytest.mark.asyncio
    async def test_corpus_is_read_once(self, corpus_file):
        service = BibleService(data_path=str(corpus_file))
        await service.translations()
        corpus_file.unlink()
        assert await service.translations() == ["krv", "nkrv"]
