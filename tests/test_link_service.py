"""Unit tests for the link service against a SQLite session."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import LinkConflictError, LinkNotFoundError
from app.link_service import LinkService
from app.models import ShortLink

# ============================================================================
# TEST FIXTURES AND UTILITIES
# ============================================================================


@pytest_asyncio.fixture
async def service(db_session: AsyncSession, mock_logger: MagicMock) -> LinkService:
    return LinkService(db_session, mock_logger)


async def _stored_count(db_session: AsyncSession, name: str) -> int:
    db_session.expire_all()
    return await db_session.scalar(select(ShortLink.count_access).where(ShortLink.name == name))


# ============================================================================
# CREATE
# ============================================================================


class TestCreateLink:
    @pytest.mark.asyncio
    async def test_create_starts_with_zero_count(self, service: LinkService) -> None:
        link = await service.create_link("guide", "https://example.com/guide")

        assert link.id
        assert link.name == "guide"
        assert link.url == "https://example.com/guide"
        assert link.count_access == 0
        assert link.created_at is not None

    @pytest.mark.asyncio
    async def test_create_assigns_distinct_ids(self, service: LinkService) -> None:
        first = await service.create_link("one", "https://example.com/1")
        second = await service.create_link("two", "https://example.com/2")
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_create_duplicate_name(self, service: LinkService) -> None:
        await service.create_link("guide", "https://example.com/guide")

        with pytest.raises(LinkConflictError, match="'guide' is already in use"):
            await service.create_link("guide", "https://example.org")

    @pytest.mark.asyncio
    async def test_create_unique_violation_maps_to_conflict(self, mock_logger: MagicMock) -> None:
        db = AsyncMock(spec=AsyncSession)
        db.add = MagicMock()
        db.scalar.return_value = None
        db.commit.side_effect = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        service = LinkService(db, mock_logger)

        with pytest.raises(LinkConflictError):
            await service.create_link("raced", "https://example.com")

        db.rollback.assert_awaited_once()


# ============================================================================
# UPDATE / DELETE
# ============================================================================


class TestUpdateLink:
    @pytest.mark.asyncio
    async def test_update_overwrites_name_and_url(self, service: LinkService) -> None:
        link = await service.create_link("before", "https://example.com/before")
        created_at = link.created_at
        await service.resolve_and_increment("before")

        updated = await service.update_link(link.id, "after", "https://example.com/after")

        assert updated.id == link.id
        assert updated.name == "after"
        assert updated.url == "https://example.com/after"
        assert updated.created_at == created_at
        assert updated.count_access == 1

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, service: LinkService) -> None:
        with pytest.raises(LinkNotFoundError):
            await service.update_link("missing", "name", "https://example.com")

    @pytest.mark.asyncio
    async def test_update_to_other_links_name(self, service: LinkService) -> None:
        await service.create_link("alpha", "https://example.com/a")
        beta = await service.create_link("beta", "https://example.com/b")

        with pytest.raises(LinkConflictError):
            await service.update_link(beta.id, "alpha", "https://example.com/b")

    @pytest.mark.asyncio
    async def test_update_to_own_name(self, service: LinkService) -> None:
        link = await service.create_link("same", "https://example.com/v1")
        updated = await service.update_link(link.id, "same", "https://example.com/v2")
        assert updated.url == "https://example.com/v2"


class TestDeleteLink:
    @pytest.mark.asyncio
    async def test_delete_removes_link(self, service: LinkService) -> None:
        link = await service.create_link("gone", "https://example.com")

        await service.delete_link(link.id)

        page = await service.list_links(None, 1, 20)
        assert page.total == 0
        assert page.items == []

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, service: LinkService) -> None:
        with pytest.raises(LinkNotFoundError):
            await service.delete_link("missing")


# ============================================================================
# RESOLVE
# ============================================================================


class TestResolveAndIncrement:
    @pytest.mark.asyncio
    async def test_resolve_returns_url_and_next_count(self, service: LinkService, db_session: AsyncSession) -> None:
        await service.create_link("guide", "https://example.com/guide")

        first = await service.resolve_and_increment("guide")
        assert first.url == "https://example.com/guide"
        assert first.count_access == 1
        assert await _stored_count(db_session, "guide") == 1

        second = await service.resolve_and_increment("guide")
        assert second.count_access == 2
        assert await _stored_count(db_session, "guide") == 2

    @pytest.mark.asyncio
    async def test_resolve_unknown_name(self, service: LinkService) -> None:
        with pytest.raises(LinkNotFoundError) as exc_info:
            await service.resolve_and_increment("missing")
        assert exc_info.value.field == "name"

    @pytest.mark.asyncio
    async def test_resolve_only_touches_matching_link(self, service: LinkService, db_session: AsyncSession) -> None:
        await service.create_link("hit", "https://example.com/hit")
        await service.create_link("miss", "https://example.com/miss")

        await service.resolve_and_increment("hit")

        assert await _stored_count(db_session, "miss") == 0


# ============================================================================
# LIST
# ============================================================================


class TestListLinks:
    @pytest.mark.asyncio
    async def test_list_orders_newest_first(self, service: LinkService) -> None:
        for name in ("a", "b", "c"):
            await service.create_link(name, "https://example.com")

        page = await service.list_links(None, 1, 20)

        assert [link.name for link in page.items] == ["c", "b", "a"]
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_list_paginates_with_offset(self, service: LinkService) -> None:
        for index in range(5):
            await service.create_link(f"link-{index}", "https://example.com")

        page = await service.list_links(None, 2, 2)

        assert [link.name for link in page.items] == ["link-2", "link-1"]
        assert page.total == 5
        assert page.page == 2
        assert page.page_size == 2

    @pytest.mark.asyncio
    async def test_list_search_is_case_insensitive_substring(self, service: LinkService) -> None:
        for name in ("Promo-Summer", "promo-winter", "blog"):
            await service.create_link(name, "https://example.com")

        page = await service.list_links("PROMO", 1, 20)

        assert {link.name for link in page.items} == {"Promo-Summer", "promo-winter"}
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_list_search_treats_wildcards_literally(self, service: LinkService) -> None:
        await service.create_link("under_score", "https://example.com")
        await service.create_link("underXscore", "https://example.com")

        page = await service.list_links("under_", 1, 20)

        assert [link.name for link in page.items] == ["under_score"]
