"""
テスト用の共通フィクスチャ

WordPress REST API は httpx.MockTransport で再現する（ネットワーク接続なし）。
"""

import asyncio
import json

import httpx
import pytest

from settings import Settings
from wp_directory import DirectoryRegistry
from wp_sites import SiteClientManager, SiteRegistry

REST_PREFIX = "/wp-json/wp/v2/"

DEFAULT_TYPES = {
    "post": {"name": "Posts", "description": "", "rest_base": "posts", "hierarchical": False,
             "supports": {}, "taxonomies": ["category", "post_tag"]},
    "page": {"name": "Pages", "description": "", "rest_base": "pages", "hierarchical": True,
             "supports": {}, "taxonomies": []},
    "attachment": {"name": "Media", "description": "", "rest_base": "media", "hierarchical": False,
                   "supports": {}, "taxonomies": []},
    "wp_block": {"name": "Patterns", "description": "", "rest_base": "blocks", "hierarchical": False,
                 "supports": {}, "taxonomies": []},
    "documentation": {"name": "Docs", "description": "Product docs", "rest_base": "docs-api",
                      "hierarchical": True, "supports": {}, "taxonomies": ["doc_category"]},
    "product": {"name": "Products", "description": "", "rest_base": "products", "hierarchical": False,
                "supports": {}, "taxonomies": []},
}

DEFAULT_TAXONOMIES = {
    "category": {"name": "Categories", "description": "", "rest_base": "categories",
                 "hierarchical": True, "types": ["post"]},
    "post_tag": {"name": "Tags", "description": "", "rest_base": "tags",
                 "hierarchical": False, "types": ["post"]},
    "doc_category": {"name": "Doc Categories", "description": "", "rest_base": "doc-categories",
                     "hierarchical": True, "types": ["documentation"]},
}


# =============================================================================
# 偽の WordPress サーバー
# =============================================================================

class FakeWordPress:
    """
    /wp-json/wp/v2/ 以下のルートを辞書で再現する。

    items: rest_base → コンテンツのリスト
    delays: rest_base → 応答までの秒数（並列検索の順序確認用）
    """

    def __init__(self, types=None, taxonomies=None, items=None, probe_status=200, delays=None):
        self.types = DEFAULT_TYPES if types is None else types
        self.taxonomies = DEFAULT_TAXONOMIES if taxonomies is None else taxonomies
        self.items = items or {}
        self.probe_status = probe_status
        self.delays = delays or {}
        self.requests: list[httpx.Request] = []
        self.failing_routes: set[str] = set()
        self.html_routes: set[str] = set()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, route: str, method: str = "GET", host: str | None = None) -> int:
        return sum(
            1 for request in self.requests
            if request.method == method
            and request.url.path == REST_PREFIX + route
            and (host is None or request.url.host == host)
        )

    def last_request(self, method: str = "POST") -> httpx.Request:
        return [request for request in self.requests if request.method == method][-1]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if not path.startswith(REST_PREFIX) and path != REST_PREFIX.rstrip("/"):
            return httpx.Response(404, json={"code": "rest_no_route", "message": "No route"})
        route = path[len(REST_PREFIX):]

        base = route.split("/")[0]
        if base in self.delays:
            await asyncio.sleep(self.delays[base])
        if base in self.failing_routes:
            return httpx.Response(500, json={"code": "internal", "message": "boom"})
        if base in self.html_routes:
            return httpx.Response(200, text="<html><body>Not JSON</body></html>", headers={"content-type": "text/html"})

        if route == "":
            return httpx.Response(self.probe_status, json={"namespace": "wp/v2", "routes": {}})
        if route == "types":
            return httpx.Response(200, json=self.types)
        if route == "taxonomies":
            return httpx.Response(200, json=self.taxonomies)

        if base not in self.items:
            return httpx.Response(
                404,
                json={"code": "rest_no_route", "message": "No route was found matching the URL and request method."},
            )

        records = self.items[base]
        if request.method == "GET":
            if "/" in route:
                item_id = int(route.split("/")[1])
                for record in records:
                    if record.get("id") == item_id:
                        return httpx.Response(200, json=record)
                return httpx.Response(404, json={"code": "rest_post_invalid_id", "message": "Invalid post ID."})
            slug = request.url.params.get("slug")
            matched = [record for record in records if slug is None or record.get("slug") == slug]
            per_page = int(request.url.params.get("per_page", 10))
            return httpx.Response(200, json=matched[:per_page])

        if request.method == "POST":
            body = json.loads(request.content or b"{}")
            if "/" in route:
                return httpx.Response(200, json={"id": int(route.split("/")[1]), **body})
            return httpx.Response(201, json={"id": 100, **body})

        if request.method == "DELETE":
            return httpx.Response(200, json={"deleted": True, "previous": {"id": int(route.split("/")[1])}})

        return httpx.Response(405, json={"message": "Method not allowed"})


class FakeClock:
    """time.time の代わり（秒）"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# フィクスチャ
# =============================================================================

@pytest.fixture
def site_env():
    return {
        "WORDPRESS_1_URL": "https://blog.example.com",
        "WORDPRESS_1_USERNAME": "editor",
        "WORDPRESS_1_PASSWORD": "app pass one",
        "WORDPRESS_1_ID": "blog",
        "WORDPRESS_1_ALIASES": "main blog, company blog",
        "WORDPRESS_2_URL": "https://shop.example.org/wp-json/wp/v2",
        "WORDPRESS_2_USERNAME": "admin",
        "WORDPRESS_2_PASSWORD": "app pass two",
        "WORDPRESS_2_ID": "shop",
        "WORDPRESS_2_ALIASES": "store",
    }


@pytest.fixture
def registry(site_env):
    return SiteRegistry(site_env)


@pytest.fixture
def fake_wp():
    return FakeWordPress()


@pytest.fixture
def manager(registry, fake_wp):
    return SiteClientManager(registry, transport=fake_wp.transport)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        cache_duration_ms=3600000,
        parallel_search=True,
        cache_dir=str(tmp_path / "cache"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def directories(manager, test_settings, clock):
    return DirectoryRegistry(manager, test_settings, clock)
