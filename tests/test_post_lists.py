"""Tests for the publication cache and the operator post list."""

import asyncio
from types import SimpleNamespace

import pytest

from blogdesk.errors import ValidationError
from blogdesk.infrastructure.change_transport import POSTS_TOPIC
from blogdesk.services.post_lists import OperatorPostList, PublicationListCache


async def _seed(repository, make_fields, published=5, drafts=0):
    created = []
    for n in range(published):
        created.append(await repository.create(make_fields(title=f"post {n}", published=True)))
    for n in range(drafts):
        created.append(await repository.create(make_fields(title=f"draft {n}", published=False)))
    return created


class TestPaging:
    async def test_pages_cover_every_published_post(self, repository, make_fields):
        await _seed(repository, make_fields, published=7, drafts=2)
        cache = PublicationListCache(repository, page_size=3)
        await cache.refresh()

        assert cache.total == 7
        assert cache.page_count() == 3
        lengths = [len(cache.page(n)) for n in range(1, cache.page_count() + 1)]
        assert lengths == [3, 3, 1]
        assert sum(lengths) == cache.total

    async def test_page_beyond_last_is_empty(self, repository, make_fields):
        await _seed(repository, make_fields, published=2)
        cache = PublicationListCache(repository, page_size=6)
        await cache.refresh()

        assert cache.page(2) == []
        assert cache.page(99) == []

    async def test_short_list_fits_first_page(self, repository, make_fields):
        await _seed(repository, make_fields, published=4)
        cache = PublicationListCache(repository)
        await cache.refresh()

        assert [p.id for p in cache.page(1, 6)] == [p.id for p in cache.posts]

    async def test_empty_collection(self, repository):
        cache = PublicationListCache(repository)
        await cache.refresh()
        assert cache.page_count() == 0
        assert cache.page(1) == []

    async def test_page_is_deterministic_between_refreshes(self, repository, make_fields):
        await _seed(repository, make_fields, published=5)
        cache = PublicationListCache(repository, page_size=2)
        await cache.refresh()
        assert cache.page(2) == cache.page(2)

    @pytest.mark.parametrize("page, size", [(0, 6), (-1, 6), (1, 0)])
    async def test_invalid_arguments(self, repository, page, size):
        cache = PublicationListCache(repository)
        with pytest.raises(ValidationError):
            cache.page(page, size)

    async def test_current_page_is_not_clamped(self, repository, make_fields):
        posts = await _seed(repository, make_fields, published=4)
        cache = PublicationListCache(repository, page_size=2)
        await cache.refresh()
        cache.current_page = 2
        assert len(cache.current()) == 2

        for post in posts[:3]:
            await repository.delete(post.id)
        await cache.refresh()

        assert cache.current_page == 2
        assert cache.current() == []


class TestPublishedOnly:
    async def test_drafts_never_leak(self, repository, make_fields):
        await _seed(repository, make_fields, published=2, drafts=3)
        cache = PublicationListCache(repository)
        await cache.refresh()
        assert all(p.published for p in cache.posts)
        assert cache.total == 2

    async def test_filters_even_if_store_returns_drafts(self, repository, make_fields):
        await _seed(repository, make_fields, published=1, drafts=1)
        everything = await repository.list_all()

        class Leaky:
            async def list_published(self):
                return everything

        cache = PublicationListCache(Leaky())
        await cache.refresh()
        assert cache.total == 1


class TestLiveRefresh:
    async def test_follows_change_feed(self, repository, transport, make_fields):
        cache = PublicationListCache(repository, transport)
        await cache.activate()
        assert cache.total == 0

        await repository.create(make_fields(published=True))
        await cache.listener.wait_idle()

        assert cache.total == 1
        await cache.deactivate()

    async def test_refresh_replaces_snapshot_and_bumps_version(self, repository, make_fields):
        cache = PublicationListCache(repository)
        await cache.refresh()
        before = cache.posts
        await repository.create(make_fields(published=True))
        await cache.refresh()

        assert cache.version == 2
        assert before == ()
        assert len(cache.posts) == 1

    async def test_late_refresh_after_deactivate_is_dropped(self, repository, make_fields):
        gate = asyncio.Event()

        class Slow:
            async def list_published(self):
                await gate.wait()
                return await repository.list_published()

        await repository.create(make_fields(published=True))
        cache = PublicationListCache(Slow())
        pending = asyncio.create_task(cache.refresh())
        await asyncio.sleep(0)
        await cache.deactivate()
        gate.set()
        await pending

        assert cache.posts == ()
        assert cache.version == 0

    async def test_slow_first_load_does_not_overwrite_newer_snapshot(self, transport):
        gate = asyncio.Event()
        titles = ["old"]

        class SlowFirstRead:
            calls = 0

            async def list_published(self):
                self.calls += 1
                seen = list(titles)
                if self.calls == 1:
                    await gate.wait()
                return [SimpleNamespace(title=t, published=True) for t in seen]

        cache = PublicationListCache(SlowFirstRead(), transport)
        activation = asyncio.create_task(cache.activate())
        for _ in range(5):
            await asyncio.sleep(0)

        titles[:] = ["new"]
        await transport.publish(POSTS_TOPIC)
        await cache.listener.wait_idle()
        assert [p.title for p in cache.posts] == ["new"]

        gate.set()
        await activation

        assert [p.title for p in cache.posts] == ["new"]
        assert cache.version == 1
        await cache.deactivate()

    async def test_views_do_not_share_state(self, repository, make_fields):
        await _seed(repository, make_fields, published=2)
        first = PublicationListCache(repository)
        second = PublicationListCache(repository)
        await first.refresh()
        assert first.total == 2
        assert second.total == 0

    async def test_on_refresh_callbacks(self, repository):
        seen = []

        async def record(view):
            seen.append(view.version)

        cache = PublicationListCache(repository)
        cache.on_refresh(record)
        await cache.refresh()
        await cache.refresh()
        assert seen == [1, 2]


class TestOperatorPostList:
    async def test_holds_everything_newest_first(self, repository, make_fields):
        await _seed(repository, make_fields, published=2, drafts=2)
        posts = OperatorPostList(repository)
        await posts.refresh()

        assert posts.total == 4
        stamps = [p.created_at for p in posts.posts]
        assert stamps == sorted(stamps, reverse=True)

    async def test_stats(self, repository, make_fields):
        await _seed(repository, make_fields, published=3, drafts=1)
        posts = OperatorPostList(repository)
        await posts.refresh()

        stats = posts.stats()
        assert (stats.total, stats.published, stats.drafts) == (4, 3, 1)

    async def test_get_from_snapshot(self, repository, make_fields):
        created = await _seed(repository, make_fields, published=1)
        posts = OperatorPostList(repository)
        assert posts.get(created[0].id) is None
        await posts.refresh()
        assert posts.get(created[0].id).title == "post 0"
