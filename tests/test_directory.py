"""
コンテンツタイプ・タクソノミー一覧キャッシュのテスト
"""

import json
import os

import pytest

from wp_directory import (
    DiscoveryCache,
    read_cache_file,
    summarize_directory,
    write_cache_file,
)

HOUR_MS = 3600000


class CountingFetch:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def _cache(tmp_path, fetch, clock, duration=HOUR_MS, site_id="blog"):
    return DiscoveryCache(
        site_id,
        "content-types",
        fetch,
        cache_dir=str(tmp_path),
        cache_duration_ms=duration,
        clock=clock,
    )


# =============================================================================
# DiscoveryCache（メモリ → ディスク → API）
# =============================================================================

class TestDiscoveryCache:

    @pytest.mark.asyncio
    async def test_memory_hit_skips_fetch(self, tmp_path, clock):
        fetch = CountingFetch({"post": {"rest_base": "posts"}})
        cache = _cache(tmp_path, fetch, clock)
        await cache.get()
        clock.advance(60)
        assert await cache.get() == {"post": {"rest_base": "posts"}}
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_fetch_writes_disk_with_millis_timestamp(self, tmp_path, clock):
        cache = _cache(tmp_path, CountingFetch({"book": {"rest_base": "books"}}), clock)
        await cache.get()
        with open(cache.cache_file, encoding="utf-8") as f:
            stored = json.load(f)
        assert stored == {"data": {"book": {"rest_base": "books"}}, "timestamp": int(clock.now * 1000)}

    @pytest.mark.asyncio
    async def test_fresh_disk_cache_is_adopted(self, tmp_path, clock):
        first = _cache(tmp_path, CountingFetch({"book": {"rest_base": "books"}}), clock)
        await first.get()

        fetch = CountingFetch({"other": {}})
        second = _cache(tmp_path, fetch, clock)
        clock.advance(10)
        assert await second.get() == {"book": {"rest_base": "books"}}
        assert fetch.calls == 0

    @pytest.mark.asyncio
    async def test_stale_snapshot_is_refetched(self, tmp_path, clock):
        fetch = CountingFetch({"v": 1}, {"v": 2})
        cache = _cache(tmp_path, fetch, clock)
        await cache.get()
        clock.advance(3600)
        assert await cache.get() == {"v": 2}
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_stale_disk_cache_is_ignored(self, tmp_path, clock):
        await _cache(tmp_path, CountingFetch({"v": 1}), clock).get()
        clock.advance(7200)
        fetch = CountingFetch({"v": 2})
        assert await _cache(tmp_path, fetch, clock).get() == {"v": 2}
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_future_disk_timestamp_is_stale(self, tmp_path, clock):
        future_ms = int(clock.now * 1000) + 60000
        cache = _cache(tmp_path, CountingFetch({"v": 2}), clock)
        write_cache_file(cache.cache_file, {"v": 1}, future_ms)

        assert await cache.get() == {"v": 2}
        assert read_cache_file(cache.cache_file)["timestamp"] == int(clock.now * 1000)

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_both_tiers(self, tmp_path, clock):
        fetch = CountingFetch({"v": 1}, {"v": 2})
        cache = _cache(tmp_path, fetch, clock)
        await cache.get()
        assert await cache.get(force_refresh=True) == {"v": 2}
        assert read_cache_file(cache.cache_file)["data"] == {"v": 2}

    @pytest.mark.asyncio
    async def test_corrupt_disk_cache_is_a_miss(self, tmp_path, clock):
        fetch = CountingFetch({"v": 1})
        cache = _cache(tmp_path, fetch, clock)
        with open(cache.cache_file, "w", encoding="utf-8") as f:
            f.write("{not json")
        assert await cache.get() == {"v": 1}
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_disk_write_failure_is_not_fatal(self, tmp_path, clock):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        cache = DiscoveryCache(
            "blog", "content-types", CountingFetch({"v": 1}),
            cache_dir=str(blocker / "cache"), cache_duration_ms=HOUR_MS, clock=clock,
        )
        assert await cache.get() == {"v": 1}
        assert await cache.get() == {"v": 1}

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self, tmp_path, clock):
        cache = _cache(tmp_path, CountingFetch(RuntimeError("down")), clock)
        with pytest.raises(RuntimeError, match="down"):
            await cache.get()

    def test_cache_file_is_per_site(self, tmp_path, clock):
        a = _cache(tmp_path, CountingFetch({}), clock, site_id="blog")
        b = _cache(tmp_path, CountingFetch({}), clock, site_id="shop")
        assert a.cache_file != b.cache_file
        assert os.path.basename(a.cache_file) == "content-types-blog.json"


class TestCacheFile:

    def test_missing_file(self, tmp_path):
        assert read_cache_file(str(tmp_path / "missing.json")) is None

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"data": [], "timestamp": "yesterday"}))
        assert read_cache_file(str(path)) is None

    def test_write_then_read(self, tmp_path):
        path = str(tmp_path / "nested" / "cache.json")
        write_cache_file(path, {"post": {"rest_base": "posts"}}, 123)
        assert read_cache_file(path) == {"data": {"post": {"rest_base": "posts"}}, "timestamp": 123}
        assert os.listdir(tmp_path / "nested") == ["cache.json"]


# =============================================================================
# エンドポイント解決
# =============================================================================

class TestSiteDirectory:

    @pytest.mark.asyncio
    async def test_builtin_types_need_no_network(self, directories, fake_wp):
        directory = directories.for_site()
        assert await directory.get_content_endpoint("post") == "posts"
        assert await directory.get_content_endpoint("page") == "pages"
        assert fake_wp.requests == []

    @pytest.mark.asyncio
    async def test_custom_type_uses_rest_base(self, directories, fake_wp):
        directory = directories.for_site()
        assert await directory.get_content_endpoint("documentation") == "docs-api"
        assert await directory.get_content_endpoint("product") == "products"
        assert fake_wp.count("types") == 1

    @pytest.mark.asyncio
    async def test_unknown_type_falls_back_to_slug(self, directories):
        assert await directories.for_site().get_content_endpoint("recipe") == "recipe"

    @pytest.mark.asyncio
    async def test_discovery_failure_falls_back_to_slug(self, directories, fake_wp):
        fake_wp.failing_routes.add("types")
        assert await directories.for_site().get_content_endpoint("documentation") == "documentation"

    @pytest.mark.asyncio
    async def test_non_json_discovery_falls_back_to_slug(self, directories, fake_wp):
        fake_wp.html_routes.add("types")
        assert await directories.for_site().get_content_endpoint("documentation") == "documentation"

    @pytest.mark.asyncio
    async def test_taxonomy_endpoints(self, directories, fake_wp):
        directory = directories.for_site()
        assert await directory.get_taxonomy_endpoint("category") == "categories"
        assert await directory.get_taxonomy_endpoint("post_tag") == "tags"
        assert fake_wp.count("taxonomies") == 0
        assert await directory.get_taxonomy_endpoint("doc_category") == "doc-categories"
        assert await directory.get_taxonomy_endpoint("genre") == "genre"

    @pytest.mark.asyncio
    async def test_directories_are_per_site(self, directories, fake_wp):
        blog = directories.for_site("blog")
        assert directories.for_site() is blog
        shop = directories.for_site("shop")
        assert shop is not blog

        await blog.get_content_types()
        await shop.get_content_types()
        assert fake_wp.count("types", host="blog.example.com") == 1
        assert fake_wp.count("types", host="shop.example.org") == 1
        assert blog.content_types.cache_file != shop.content_types.cache_file


def test_summarize_directory():
    summary = summarize_directory(
        {"book": {"name": "Books", "rest_base": "books", "extra": 1}},
        ("name", "rest_base", "hierarchical"),
    )
    assert summary == [{"slug": "book", "name": "Books", "rest_base": "books", "hierarchical": None}]
