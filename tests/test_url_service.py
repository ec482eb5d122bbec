"""Resolution service tests: creation, cache-aside resolve, deletion and analytics.

The service runs against SQLite and the in-memory Redis from ``conftest``,
with the click recorder worker running, so these double as integration tests
for the whole core.
"""

import datetime
from typing import Iterator
from unittest.mock import AsyncMock

import pytest

from shortlink.codes import SeededSource, ShortCodeGenerator
from shortlink.enums import DeviceType
from shortlink.errors import (
    ConflictError,
    ExpiredError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from shortlink.schemas import ClickContext
from shortlink.url_service import ResolutionService

# ============================================================================
# TEST FIXTURES AND UTILITIES
# ============================================================================


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ScriptedSource:
    """Random source that replays fixed candidates, repeating the last one."""

    def __init__(self, *codes: str) -> None:
        self._codes: Iterator[str] = iter(codes)
        self._last = codes[-1]
        self.calls = 0

    def __call__(self, alphabet: str, size: int) -> str:
        self.calls += 1
        self._last = next(self._codes, self._last)
        return self._last


def build_service(manager, generator=None, clock=None) -> ResolutionService:
    return ResolutionService(
        url_store=manager.url_store,
        cache=manager.cache,
        recorder=manager.recorder,
        aggregator=manager.aggregator,
        generator=generator or ShortCodeGenerator(7, source=SeededSource(99)),
        settings=manager.settings,
        clock=clock or _utcnow,
    )


# ============================================================================
# LINK CREATION
# ============================================================================


class TestCreateLink:
    @pytest.mark.asyncio
    async def test_create_sanitizes_and_generates_code(self, service):
        link = await service.create_link("https://example.com/path/")

        assert link.original_url == "https://example.com/path"
        assert len(link.short_code) == 7
        assert link.short_code.isalnum()
        assert link.short_url == f"http://sho.rt/{link.short_code}"
        assert link.created_at.tzinfo is not None
        assert link.expires_at is None

    @pytest.mark.asyncio
    async def test_create_warms_cache(self, service, redis_client):
        link = await service.create_link("https://example.com")
        assert redis_client.data[f"url:{link.short_code}"] == "https://example.com"
        assert redis_client.ttls[f"url:{link.short_code}"] == 3600

    @pytest.mark.asyncio
    async def test_generated_codes_are_distinct(self, service):
        codes = {(await service.create_link(f"https://example.com/{i}")).short_code for i in range(20)}
        assert len(codes) == 20

    @pytest.mark.asyncio
    async def test_custom_alias_is_used_as_code(self, service):
        link = await service.create_link("https://example.com", custom_alias="my-link")
        assert link.short_code == "my-link"
        assert link.short_url == "http://sho.rt/my-link"

    @pytest.mark.asyncio
    async def test_duplicate_alias_conflicts(self, service):
        await service.create_link("https://example.com", custom_alias="my-link")
        with pytest.raises(ConflictError, match="Custom alias already exists"):
            await service.create_link("https://example.org", custom_alias="my-link")

    @pytest.mark.asyncio
    async def test_alias_lost_insert_race_conflicts(self, service, manager, monkeypatch):
        # The pre-check sees nothing; the unique index rejects the insert.
        await manager.url_store.create("my-link", "https://example.com", custom_alias="my-link")
        monkeypatch.setattr(manager.url_store, "exists_active", AsyncMock(return_value=False))

        with pytest.raises(ConflictError, match="Custom alias already exists"):
            await service.create_link("https://example.org", custom_alias="my-link")

    @pytest.mark.parametrize("alias", ["ab", "my link", "x" * 51, "bad!alias"])
    @pytest.mark.asyncio
    async def test_invalid_alias_rejected(self, service, alias):
        with pytest.raises(ValidationError, match="Invalid custom alias"):
            await service.create_link("https://example.com", custom_alias=alias)

    @pytest.mark.parametrize("url", ["not-a-url", "ftp://example.com", ""])
    @pytest.mark.asyncio
    async def test_invalid_url_rejected(self, service, url):
        with pytest.raises(ValidationError):
            await service.create_link(url)

    @pytest.mark.asyncio
    async def test_suspicious_url_rejected(self, service):
        with pytest.raises(ValidationError, match="suspicious"):
            await service.create_link("https://example.com/?next=javascript:alert(1)")

    @pytest.mark.asyncio
    async def test_past_expiry_rejected(self, service):
        with pytest.raises(ValidationError, match="expires_at must be in the future"):
            await service.create_link("https://example.com", expires_at=_utcnow() - datetime.timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_naive_expiry_is_utc(self, service):
        naive = (_utcnow() + datetime.timedelta(days=1)).replace(tzinfo=None, microsecond=0)
        link = await service.create_link("https://example.com", expires_at=naive)
        assert link.expires_at == naive.replace(tzinfo=datetime.timezone.utc)

    @pytest.mark.asyncio
    async def test_cache_ttl_capped_by_expiry(self, service, redis_client):
        link = await service.create_link("https://example.com", expires_at=_utcnow() + datetime.timedelta(minutes=10))
        ttl = redis_client.ttls[f"url:{link.short_code}"]
        assert 0 < ttl <= 600

    @pytest.mark.asyncio
    async def test_owner_is_recorded(self, service, manager):
        link = await service.create_link("https://example.com", owner_id="owner-1")
        stored = await manager.url_store.find_active_by_code(link.short_code)
        assert stored.user_id == "owner-1"

    @pytest.mark.asyncio
    async def test_store_failure_is_internal_error(self, service, manager, monkeypatch):
        monkeypatch.setattr(manager.url_store, "create", AsyncMock(side_effect=RuntimeError("db down")))
        with pytest.raises(InternalError, match="Failed to create short URL"):
            await service.create_link("https://example.com")


class TestCollisionHandling:
    @pytest.mark.asyncio
    async def test_collision_retries_with_new_candidate(self, manager):
        await manager.url_store.create("aaaaaaa", "https://taken.example.com")
        source = ScriptedSource("aaaaaaa", "bbbbbbb")
        service = build_service(manager, generator=ShortCodeGenerator(7, source=source))

        link = await service.create_link("https://example.com")

        assert link.short_code == "bbbbbbb"
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_five_attempts(self, manager):
        await manager.url_store.create("aaaaaaa", "https://taken.example.com")
        source = ScriptedSource("aaaaaaa")
        service = build_service(manager, generator=ShortCodeGenerator(7, source=source))

        with pytest.raises(InternalError, match="Failed to generate unique short code"):
            await service.create_link("https://example.com")
        assert source.calls == 5

    @pytest.mark.asyncio
    async def test_lost_insert_race_counts_as_attempt(self, manager, monkeypatch):
        await manager.url_store.create("aaaaaaa", "https://taken.example.com")
        monkeypatch.setattr(manager.url_store, "exists_active", AsyncMock(return_value=False))
        source = ScriptedSource("aaaaaaa", "ccccccc")
        service = build_service(manager, generator=ShortCodeGenerator(7, source=source))

        link = await service.create_link("https://example.com")

        assert link.short_code == "ccccccc"

    @pytest.mark.asyncio
    async def test_alias_held_code_is_a_collision(self, manager):
        await manager.url_store.create("abcdefg", "https://taken.example.com", custom_alias="abcdefg")
        source = ScriptedSource("abcdefg", "hijklmn")
        service = build_service(manager, generator=ShortCodeGenerator(7, source=source))

        link = await service.create_link("https://example.com")

        assert link.short_code == "hijklmn"


# ============================================================================
# RESOLVE
# ============================================================================


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolve_from_cache(self, service):
        link = await service.create_link("https://example.com/path/")
        assert await service.resolve(link.short_code) == "https://example.com/path"

    @pytest.mark.asyncio
    async def test_resolve_miss_repopulates_cache(self, service, redis_client):
        link = await service.create_link("https://example.com")
        redis_client.data.clear()

        assert await service.resolve(link.short_code) == "https://example.com"
        assert redis_client.data[f"url:{link.short_code}"] == "https://example.com"

    @pytest.mark.parametrize("url", ["https://example.com/a path/", "http://my_host.example.com/docs"])
    @pytest.mark.asyncio
    async def test_resolve_returns_sanitized_url(self, service, redis_client, url):
        link = await service.create_link(url)
        redis_client.data.clear()
        assert await service.resolve(link.short_code) == url.rstrip("/")

    @pytest.mark.asyncio
    async def test_resolve_alias(self, service):
        await service.create_link("https://example.com", custom_alias="my-link")
        assert await service.resolve("my-link") == "https://example.com"

    @pytest.mark.asyncio
    async def test_unknown_code_not_found(self, service):
        with pytest.raises(NotFoundError, match="Short URL not found"):
            await service.resolve("zzzzzzz")

    @pytest.mark.parametrize("code", ["ab", "has space", "x" * 51, "bad;code", ""])
    @pytest.mark.asyncio
    async def test_malformed_code_rejected_before_lookup(self, service, manager, monkeypatch, code):
        lookup = AsyncMock()
        monkeypatch.setattr(manager.url_store, "find_active_by_code", lookup)
        with pytest.raises(ValidationError, match="Invalid short code format"):
            await service.resolve(code)
        lookup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_link(self, manager):
        now = _utcnow()
        await manager.url_store.create("abc1234", "https://example.com", expires_at=now + datetime.timedelta(hours=1))
        later = build_service(manager, clock=lambda: now + datetime.timedelta(hours=2))

        with pytest.raises(ExpiredError, match="This short URL has expired"):
            await later.resolve("abc1234")

    @pytest.mark.asyncio
    async def test_unexpired_link_resolves(self, manager):
        now = _utcnow()
        await manager.url_store.create("abc1234", "https://example.com", expires_at=now + datetime.timedelta(hours=1))
        service = build_service(manager, clock=lambda: now)

        assert await service.resolve("abc1234") == "https://example.com"

    @pytest.mark.asyncio
    async def test_deleted_link_not_found(self, service):
        link = await service.create_link("https://example.com", owner_id="owner-1")
        await service.delete_link(link.short_code, "owner-1")

        with pytest.raises(NotFoundError):
            await service.resolve(link.short_code)

    @pytest.mark.asyncio
    async def test_cache_outage_falls_back_to_store(self, service, redis_client):
        redis_client.fail = True
        link = await service.create_link("https://example.com")

        assert await service.resolve(link.short_code) == "https://example.com"

    @pytest.mark.asyncio
    async def test_store_failure_is_internal_error(self, service, manager, monkeypatch):
        monkeypatch.setattr(
            manager.url_store, "find_active_by_code", AsyncMock(side_effect=RuntimeError("connection refused"))
        )
        with pytest.raises(InternalError):
            await service.resolve("abc1234")

    @pytest.mark.asyncio
    async def test_resolve_records_click(self, service, manager):
        link = await service.create_link("https://example.com")
        stored = await manager.url_store.find_active_by_code(link.short_code)

        await service.resolve(link.short_code, click=ClickContext(country="US", device_type=DeviceType.MOBILE))
        await manager.recorder.drain()

        assert await manager.click_store.total_clicks(stored.id) == 1

    @pytest.mark.asyncio
    async def test_resolve_without_click_records_nothing(self, service, manager):
        link = await service.create_link("https://example.com")
        stored = await manager.url_store.find_active_by_code(link.short_code)

        await service.resolve(link.short_code)
        await manager.recorder.drain()

        assert await manager.click_store.total_clicks(stored.id) == 0

    @pytest.mark.asyncio
    async def test_recording_failure_does_not_affect_resolve(self, service, manager, monkeypatch):
        monkeypatch.setattr(manager.click_store, "record", AsyncMock(side_effect=RuntimeError("insert failed")))
        link = await service.create_link("https://example.com")

        assert await service.resolve(link.short_code, click=ClickContext()) == "https://example.com"
        await manager.recorder.drain()
        assert manager.recorder.running


# ============================================================================
# DELETION
# ============================================================================


class TestDeleteLink:
    @pytest.mark.asyncio
    async def test_owner_can_delete(self, service, redis_client):
        link = await service.create_link("https://example.com", owner_id="owner-1")

        await service.delete_link(link.short_code, "owner-1")

        assert f"url:{link.short_code}" not in redis_client.data
        with pytest.raises(NotFoundError):
            await service.get_link_details(link.short_code)

    @pytest.mark.asyncio
    async def test_other_owner_denied(self, service):
        link = await service.create_link("https://example.com", owner_id="owner-1")

        with pytest.raises(PermissionDeniedError, match="You do not have permission"):
            await service.delete_link(link.short_code, "owner-2")
        assert await service.resolve(link.short_code) == "https://example.com"

    @pytest.mark.asyncio
    async def test_anonymous_link_cannot_be_deleted(self, service):
        link = await service.create_link("https://example.com")
        with pytest.raises(PermissionDeniedError):
            await service.delete_link(link.short_code, "owner-1")

    @pytest.mark.asyncio
    async def test_delete_unknown_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.delete_link("zzzzzzz", "owner-1")

    @pytest.mark.asyncio
    async def test_deleted_alias_can_be_reused(self, service):
        await service.create_link("https://example.com", custom_alias="my-link", owner_id="owner-1")
        await service.delete_link("my-link", "owner-1")

        link = await service.create_link("https://example.org", custom_alias="my-link")

        assert await service.resolve(link.short_code) == "https://example.org"


# ============================================================================
# DETAILS, LISTING AND ANALYTICS
# ============================================================================


class TestReadOperations:
    @pytest.mark.asyncio
    async def test_details_record_no_click(self, service, manager):
        link = await service.create_link("https://example.com")
        stored = await manager.url_store.find_active_by_code(link.short_code)

        details = await service.get_link_details(link.short_code)
        await manager.recorder.drain()

        assert details == link
        assert await manager.click_store.total_clicks(stored.id) == 0

    @pytest.mark.asyncio
    async def test_list_owner_links(self, service):
        first = await service.create_link("https://a.example.com", owner_id="owner-1")
        second = await service.create_link("https://b.example.com", owner_id="owner-1")
        await service.create_link("https://c.example.com", owner_id="owner-2")

        links = await service.list_owner_links("owner-1")

        assert [link.short_code for link in links] == [second.short_code, first.short_code]

    @pytest.mark.asyncio
    async def test_analytics_device_buckets_sum_to_total(self, service, manager):
        link = await service.create_link("https://example.com")
        for device in [DeviceType.MOBILE, DeviceType.DESKTOP, DeviceType.TABLET, DeviceType.UNKNOWN, None]:
            await service.resolve(link.short_code, click=ClickContext(device_type=device))
        await manager.recorder.drain()

        analytics = await service.get_analytics(link.short_code)

        assert analytics.total_clicks == 5
        devices = analytics.clicks_by_device
        assert devices.mobile + devices.desktop + devices.tablet + devices.other == analytics.total_clicks
        assert devices.other == 2
        assert analytics.recent_clicks is None

    @pytest.mark.asyncio
    async def test_analytics_include_recent(self, service, manager):
        link = await service.create_link("https://example.com")
        await service.resolve(link.short_code, click=ClickContext(referrer="https://news.example.com"))
        await manager.recorder.drain()

        analytics = await service.get_analytics(link.short_code, include_recent=True)

        assert [click.referrer for click in analytics.recent_clicks] == ["https://news.example.com"]

    @pytest.mark.asyncio
    async def test_analytics_unknown_code(self, service):
        with pytest.raises(NotFoundError):
            await service.get_analytics("zzzzzzz")

    @pytest.mark.asyncio
    async def test_analytics_store_failure_is_internal_error(self, service, manager, monkeypatch):
        link = await service.create_link("https://example.com")
        monkeypatch.setattr(manager.click_store, "total_clicks", AsyncMock(side_effect=RuntimeError("timeout")))

        with pytest.raises(InternalError):
            await service.get_analytics(link.short_code)
