# wp_directory.py
# コンテンツタイプ・タクソノミー一覧のキャッシュ（メモリ → ディスク → API）

import asyncio
import json
import logging
import os
import re
import tempfile
import time
from typing import Any, Awaitable, Callable

import httpx

from settings import Settings
from wp_sites import SiteClientManager, WordPressMCPError

logger = logging.getLogger(__name__)

# 検索せずに解決できる組み込みタイプ
BUILTIN_CONTENT_ENDPOINTS = {
    "post": "posts",
    "page": "pages",
}
BUILTIN_TAXONOMY_ENDPOINTS = {
    "category": "categories",
    "post_tag": "tags",
}

# 一覧取得時に表示するフィールド
CONTENT_TYPE_FIELDS = ("name", "description", "rest_base", "hierarchical", "supports", "taxonomies")
TAXONOMY_FIELDS = ("name", "description", "rest_base", "hierarchical", "types")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ディスクキャッシュ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _safe_name(value: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]', '_', value)


def read_cache_file(path: str) -> dict | None:
    """
    キャッシュファイルを読み込む。
    {"data": {...}, "timestamp": エポックミリ秒} の形式でなければ None。
    """
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        cache = json.load(f)
    if not isinstance(cache, dict):
        return None
    if not isinstance(cache.get("data"), dict) or not isinstance(cache.get("timestamp"), (int, float)):
        return None
    return cache


def write_cache_file(path: str, data: dict, timestamp: int) -> None:
    """一時ファイルに書いてから置き換える（途中で読まれても壊れない）"""
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump({"data": data, "timestamp": timestamp}, f, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class DiscoveryCache:
    """
    1サイト・1種類（types / taxonomies）の一覧キャッシュ。

    参照順: メモリ → ディスク → API。
    API から取得できたらメモリとディスクの両方を更新する。
    ディスクの読み書きに失敗してもログを出すだけで処理は続ける。
    """

    def __init__(
        self,
        site_id: str,
        resource: str,
        fetch: Callable[[], Awaitable[dict]],
        *,
        cache_dir: str,
        cache_duration_ms: int,
        clock: Callable[[], float] = time.time,
    ):
        self.site_id = site_id
        self.resource = resource
        self.cache_file = os.path.join(cache_dir, f"{resource}-{_safe_name(site_id)}.json")
        self._fetch = fetch
        self._duration_ms = cache_duration_ms
        self._clock = clock
        self._data: dict | None = None
        self._timestamp = 0

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_fresh(self, timestamp: float, now: int) -> bool:
        # 未来の時刻は期限切れ扱い
        return 0 <= (now - timestamp) < self._duration_ms

    async def _load_from_disk(self) -> dict | None:
        try:
            return await asyncio.to_thread(read_cache_file, self.cache_file)
        except (OSError, ValueError) as exc:
            logger.warning(f"Failed to load {self.resource} cache from disk ({self.cache_file}): {exc}")
            return None

    async def _save_to_disk(self, data: dict, timestamp: int) -> None:
        try:
            await asyncio.to_thread(write_cache_file, self.cache_file, data, timestamp)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning(f"Failed to save {self.resource} cache to disk ({self.cache_file}): {exc}")

    async def get(self, force_refresh: bool = False) -> dict:
        now = self._now_ms()

        if not force_refresh and self._data is not None and self._is_fresh(self._timestamp, now):
            logger.debug(f"[{self.site_id}] Using memory-cached {self.resource}")
            return self._data

        if not force_refresh:
            disk_cache = await self._load_from_disk()
            if disk_cache and self._is_fresh(disk_cache["timestamp"], now):
                logger.debug(f"[{self.site_id}] Using disk-cached {self.resource}")
                self._data = disk_cache["data"]
                self._timestamp = int(disk_cache["timestamp"])
                return self._data

        logger.info(f"[{self.site_id}] Fetching {self.resource} from API")
        data = await self._fetch()
        self._data = data
        self._timestamp = now
        await self._save_to_disk(data, now)
        return data


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# サイトごとのディレクトリ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
class SiteDirectory:
    """
    1サイト分のコンテンツタイプ・タクソノミー情報。
    content_type / taxonomy のスラッグを REST のエンドポイントに変換する。
    """

    def __init__(
        self,
        site_id: str,
        clients: SiteClientManager,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self.site_id = site_id
        self._clients = clients
        self.content_types = DiscoveryCache(
            site_id,
            "content-types",
            lambda: self._fetch("types"),
            cache_dir=settings.cache_dir,
            cache_duration_ms=settings.cache_duration_ms,
            clock=clock,
        )
        self.taxonomies = DiscoveryCache(
            site_id,
            "taxonomies",
            lambda: self._fetch("taxonomies"),
            cache_dir=settings.cache_dir,
            cache_duration_ms=settings.cache_duration_ms,
            clock=clock,
        )

    async def _fetch(self, endpoint: str) -> dict:
        client = await self._clients.get_client(self.site_id)
        data = await client.get(endpoint)
        if not isinstance(data, dict):
            raise RuntimeError(f"Unexpected response format from '{endpoint}': {type(data).__name__}")
        return data

    async def get_content_types(self, force_refresh: bool = False) -> dict:
        return await self.content_types.get(force_refresh)

    async def get_taxonomies(self, force_refresh: bool = False) -> dict:
        return await self.taxonomies.get(force_refresh)

    async def _resolve(self, slug: str, builtin: dict, cache: DiscoveryCache) -> str:
        if slug in builtin:
            return builtin[slug]

        try:
            directory = await cache.get()
        except (WordPressMCPError, RuntimeError, httpx.HTTPError, ValueError) as exc:
            logger.warning(f"[{self.site_id}] Failed to get rest_base for '{slug}': {exc}")
            directory = {}

        entry = directory.get(slug)
        if isinstance(entry, dict) and entry.get("rest_base"):
            return entry["rest_base"]

        # カスタム投稿タイプの多くはスラッグ = エンドポイントなのでそのまま使う
        logger.warning(f"[{self.site_id}] No rest_base found for '{slug}', using as-is")
        return slug

    async def get_content_endpoint(self, content_type: str) -> str:
        return await self._resolve(content_type, BUILTIN_CONTENT_ENDPOINTS, self.content_types)

    async def get_taxonomy_endpoint(self, taxonomy: str) -> str:
        return await self._resolve(taxonomy, BUILTIN_TAXONOMY_ENDPOINTS, self.taxonomies)


def summarize_directory(directory: dict, fields: tuple[str, ...]) -> list[dict]:
    """一覧をスラッグ付きのリストに整形する"""
    summary = []
    for slug, entry in directory.items():
        entry = entry if isinstance(entry, dict) else {}
        item: dict[str, Any] = {"slug": slug}
        for field in fields:
            item[field] = entry.get(field)
        summary.append(item)
    return summary


class DirectoryRegistry:
    """サイトIDごとに SiteDirectory を1つずつ保持する"""

    def __init__(
        self,
        clients: SiteClientManager,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self._clients = clients
        self._settings = settings
        self._clock = clock
        self._directories: dict[str, SiteDirectory] = {}

    def for_site(self, site_id: str | None = None) -> SiteDirectory:
        site = self._clients.registry.get_site(site_id)
        directory = self._directories.get(site.id)
        if directory is None:
            directory = SiteDirectory(site.id, self._clients, self._settings, self._clock)
            self._directories[site.id] = directory
        return directory
