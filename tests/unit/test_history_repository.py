"""
Unit tests for the in-memory scan history store.
"""

import random
import re

import pytest

from linkscope.repositories.history_repository import (
    InMemoryHistoryRepository, create_history_repository, generate_scan_id
)
from linkscope.config.settings import Settings
from linkscope.services.annotator import template_annotation


class TestScanIds:

    def test_format(self):
        scan_id = generate_scan_id(clock=lambda: 1700000000.123, rng=random.Random(1))

        assert re.fullmatch(r"1700000000123-[0-9a-z]{9}", scan_id)

    def test_unique(self):
        assert len({generate_scan_id() for _ in range(200)}) == 200


class TestInMemoryHistoryRepository:
    """Test suite for the reference history store."""

    @pytest.fixture
    def repository(self):
        return InMemoryHistoryRepository(max_items=3)

    @pytest.mark.asyncio
    async def test_save_and_get(self, repository, secure_result):
        scan_id = await repository.save_scan(secure_result)

        record = await repository.get_scan(scan_id)

        assert record.id == scan_id
        assert record.url == secure_result.requested_url
        assert record.analysis_result is secure_result
        assert record.annotation is None
        assert record.favorite is False

    @pytest.mark.asyncio
    async def test_newest_first_and_capped(self, repository, make_result):
        ids = []
        for index in range(5):
            ids.append(await repository.save_scan(make_result([f"https://example.com/{index}"])))

        history = await repository.get_history()

        assert [record.id for record in history] == [ids[4], ids[3], ids[2]]
        assert await repository.get_scan(ids[0]) is None

    @pytest.mark.asyncio
    async def test_attach_annotation_without_reanalysis(self, repository, risky_result):
        scan_id = await repository.save_scan(risky_result)
        annotation = template_annotation(risky_result, "en")

        assert await repository.attach_annotation(scan_id, annotation) is True
        assert (await repository.get_scan(scan_id)).annotation == annotation
        assert await repository.attach_annotation("missing", annotation) is False

    @pytest.mark.asyncio
    async def test_toggle_favorite(self, repository, secure_result):
        scan_id = await repository.save_scan(secure_result)

        assert await repository.toggle_favorite(scan_id) is True
        assert await repository.toggle_favorite(scan_id) is False
        assert await repository.toggle_favorite("missing") is None

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, repository, secure_result, risky_result):
        first = await repository.save_scan(secure_result)
        await repository.save_scan(risky_result)

        assert await repository.delete_scan(first) is True
        assert await repository.delete_scan(first) is False
        assert len(await repository.get_history()) == 1

        await repository.clear()

        assert await repository.get_history() == []

    @pytest.mark.asyncio
    async def test_stats(self, repository, secure_result, risky_result):
        await repository.save_scan(secure_result)
        favorite = await repository.save_scan(risky_result)
        await repository.toggle_favorite(favorite)

        stats = await repository.get_stats()

        assert stats.total_scans == 2
        assert stats.risk_distribution == {"secure": 1, "caution": 0, "danger": 0, "critical": 1}
        assert stats.favorite_scans == 1

    @pytest.mark.asyncio
    async def test_record_to_dict(self, repository, secure_result):
        scan_id = await repository.save_scan(secure_result, template_annotation(secure_result))

        data = (await repository.get_scan(scan_id)).to_dict()

        assert data["id"] == scan_id
        assert data["analysis_result"]["risk_level"] == "secure"
        assert data["annotation"]["confidence"] == 85
        assert data["favorite"] is False

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            InMemoryHistoryRepository(max_items=0)


class TestHistoryRepositoryFactory:

    @pytest.mark.asyncio
    async def test_capacity_comes_from_settings(self, make_result):
        settings = Settings(_env_file=None).model_copy(update={"HISTORY_MAX_ITEMS": 2})

        repository = create_history_repository(settings)
        for url in ("https://a.example.com/", "https://b.example.com/", "https://c.example.com/"):
            await repository.save_scan(make_result([url]))

        assert repository.max_items == 2
        assert [record.url for record in await repository.get_history()] == [
            "https://c.example.com/", "https://b.example.com/"
        ]

    def test_default_capacity(self):
        assert create_history_repository(Settings(_env_file=None)).max_items == 50
