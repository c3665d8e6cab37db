# wp_sites.py
# 複数WordPressサイトの設定読み込み・クライアント管理・サイト推定

import asyncio
import base64
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlsplit

import httpx

from settings import DEFAULT_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

MAX_SITE_SLOTS = 10
REST_API_ROOT = 'wp-json/wp/v2/'
LEGACY_SITE_ID = 'default'


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# エラー定義
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
class WordPressMCPError(Exception):
    """このサーバー固有のエラーの基底クラス"""


class ConfigurationError(WordPressMCPError):
    """サイト設定が不足・不正な場合"""


class UnknownSiteError(ConfigurationError):
    def __init__(self, site_id: str, available: list[str]):
        self.site_id = site_id
        self.available = available
        super().__init__(
            f"Site '{site_id}' not found. Available sites: {', '.join(available)}"
        )


class NoDefaultSiteError(ConfigurationError):
    def __init__(self):
        super().__init__('No site specified and no default site configured')


class SiteConnectionError(WordPressMCPError):
    def __init__(self, site_id: str, message: str):
        self.site_id = site_id
        self.message = message
        super().__init__(f"Failed to connect to site '{site_id}': {message}")


class WordPressAPIError(RuntimeError):
    """WordPress REST API が 2xx 以外を返した場合"""

    def __init__(self, status_code: int, message: str, data: Any = None):
        self.status_code = status_code
        self.message = message
        self.data = data
        super().__init__(f"WordPress APIエラー (HTTP {status_code}): {message}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# サイト設定
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@dataclass(frozen=True)
class SiteConfig:
    id: str
    url: str
    username: str
    password: str
    aliases: tuple[str, ...] = ()
    default: bool = False

    def to_public_dict(self) -> dict:
        """パスワードを除いた表示用の辞書"""
        return {
            "id": self.id,
            "url": self.url,
            "username": self.username,
            "aliases": list(self.aliases),
            "isDefault": self.default,
        }


def _parse_aliases(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(alias.strip() for alias in raw.split(",") if alias.strip())


def load_sites_from_environment(environ: Mapping[str, str]) -> list[SiteConfig]:
    """
    環境変数からサイト設定を読み込む。

    WORDPRESS_1_URL 〜 WORDPRESS_10_URL の番号付きスロットを順に見て、
    URL・ユーザー名・パスワードの3つが揃っているスロットだけを採用する。
    番号付きスロットが1つもなければ WORDPRESS_API_URL 系（旧形式）を使う。

    デフォルトサイトは「明示的に DEFAULT=true を指定した最初のスロット」、
    指定がなければ「最初に採用されたスロット」。必ず1つだけになる。

    Raises:
        ConfigurationError: サイトが1つも見つからない場合
    """
    slots: list[dict] = []
    seen_ids: set[str] = set()

    for i in range(1, MAX_SITE_SLOTS + 1):
        url = environ.get(f"WORDPRESS_{i}_URL")
        username = environ.get(f"WORDPRESS_{i}_USERNAME")
        password = environ.get(f"WORDPRESS_{i}_PASSWORD")
        if not (url and username and password):
            continue

        site_id = environ.get(f"WORDPRESS_{i}_ID") or f"site{i}"
        if site_id in seen_ids:
            logger.warning(f"Duplicate site id '{site_id}' in slot {i}, skipping")
            continue
        seen_ids.add(site_id)

        slots.append({
            "id": site_id,
            "url": url,
            "username": username,
            "password": password,
            "aliases": _parse_aliases(environ.get(f"WORDPRESS_{i}_ALIASES")),
            "explicit_default": environ.get(f"WORDPRESS_{i}_DEFAULT", "").strip().lower() == "true",
        })

    if slots:
        default_index = next(
            (index for index, slot in enumerate(slots) if slot["explicit_default"]),
            0,
        )
        sites = [
            SiteConfig(
                id=slot["id"],
                url=slot["url"],
                username=slot["username"],
                password=slot["password"],
                aliases=slot["aliases"],
                default=(index == default_index),
            )
            for index, slot in enumerate(slots)
        ]
        logger.info(f"Loaded {len(sites)} WordPress site(s) from environment variables")
        return sites

    url = environ.get("WORDPRESS_API_URL")
    username = environ.get("WORDPRESS_USERNAME")
    password = environ.get("WORDPRESS_PASSWORD")
    if url and username and password:
        logger.info("Loaded single site configuration from legacy environment variables")
        return [SiteConfig(id=LEGACY_SITE_ID, url=url, username=username, password=password, default=True)]

    raise ConfigurationError(
        "No WordPress configuration found. Set WORDPRESS_1_URL, WORDPRESS_1_USERNAME, "
        "WORDPRESS_1_PASSWORD (and optionally WORDPRESS_2_*, etc.) or use legacy "
        "WORDPRESS_API_URL variables."
    )


def detect_site_from_context(text: str, sites: list[SiteConfig]) -> str | None:
    """
    テキスト中の言及からサイトを推定する（I/Oなし・状態変更なし）。

    優先順位: ホスト名 → エイリアス → サイトID（大文字小文字を区別しない部分一致）
    """
    if not text:
        return None

    lowered = text.lower()

    for site in sites:
        try:
            hostname = urlsplit(site.url).hostname
        except ValueError:
            continue
        if hostname and hostname in lowered:
            logger.debug(f"Detected site '{site.id}' from domain mention: {hostname}")
            return site.id

    for site in sites:
        for alias in site.aliases:
            if alias.lower() in lowered:
                logger.debug(f"Detected site '{site.id}' from alias mention: {alias}")
                return site.id

    for site in sites:
        if site.id.lower() in lowered:
            logger.debug(f"Detected site '{site.id}' from ID mention")
            return site.id

    return None


class SiteRegistry:
    """
    サイト設定の一覧。最初にアクセスされた時点で環境変数から読み込む。
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ
        self._sites: dict[str, SiteConfig] | None = None
        self._default_site_id: str | None = None

    def _ensure_loaded(self) -> dict[str, SiteConfig]:
        # 読み込みは同期処理なのでイベントループ上で競合しない
        if self._sites is None:
            environ = os.environ if self._environ is None else self._environ
            sites = load_sites_from_environment(environ)
            self._sites = {site.id: site for site in sites}
            self._default_site_id = next((site.id for site in sites if site.default), None)
            if self._default_site_id:
                logger.info(f"Default site: {self._default_site_id}")
        return self._sites

    def get_site(self, site_id: str | None = None) -> SiteConfig:
        sites = self._ensure_loaded()
        target = site_id or self._default_site_id
        if not target:
            raise NoDefaultSiteError()
        site = sites.get(target)
        if site is None:
            raise UnknownSiteError(target, list(sites))
        return site

    def get_all_sites(self) -> list[SiteConfig]:
        return list(self._ensure_loaded().values())

    def get_default_site_id(self) -> str | None:
        self._ensure_loaded()
        return self._default_site_id

    def detect_site_from_context(self, text: str) -> str | None:
        return detect_site_from_context(text, self.get_all_sites())


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# サイトごとのHTTPクライアント
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def normalize_base_url(url: str) -> str:
    """
    REST API のベースURLに正規化する。
    例: https://example.com → https://example.com/wp-json/wp/v2/
    """
    base_url = url if url.endswith('/') else f"{url}/"
    if '/wp-json/wp/v2' not in base_url:
        base_url = base_url + REST_API_ROOT
    return base_url


def get_auth_headers(username: str, password: str) -> dict:
    """
    WordPress REST API用のBasic認証ヘッダーを生成
    参考: https://developer.wordpress.org/rest-api/using-the-rest-api/authentication/
    """
    credentials = f"{username}:{password}"
    token = base64.b64encode(credentials.encode()).decode('utf-8')
    return {
        "Authorization": f"Basic {token}",
        "Content-Type": "application/json"
    }


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        data = response.json() if response.text else {}
    except json.JSONDecodeError:
        return response.text or f"HTTP {response.status_code}", None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"]), data
    return json.dumps(data, ensure_ascii=False) if data else f"HTTP {response.status_code}", data


class SiteClient:
    """1サイト分の認証済みクライアント"""

    def __init__(self, site_id: str, base_url: str, http: httpx.AsyncClient):
        self.site_id = site_id
        self.base_url = base_url
        self._http = http

    async def request(self, method: str, endpoint: str, data: dict | None = None) -> Any:
        """
        WordPress REST API にリクエストを送信する。

        Args:
            method: HTTPメソッド
            endpoint: ベースURLからの相対パス（例: "posts", "pages/12"）
            data: GET/DELETE ではクエリパラメータ、それ以外では JSON ボディ

        Raises:
            WordPressAPIError: 2xx 以外のレスポンス
        """
        method = method.upper()
        path = endpoint.lstrip('/')
        logger.debug(f"[{self.site_id}] {method} {self.base_url}{path}")

        if method in ("GET", "DELETE"):
            response = await self._http.request(method, path, params=data)
        else:
            response = await self._http.request(method, path, json=data)

        logger.debug(f"[{self.site_id}] Response status: {response.status_code}")

        if response.status_code >= 400:
            message, error_data = _error_message(response)
            logger.error(f"[{self.site_id}] API Error: {response.status_code} - {message}")
            raise WordPressAPIError(response.status_code, message, error_data)

        if not response.content:
            return None
        return response.json()

    async def get(self, endpoint: str, params: dict | None = None) -> Any:
        return await self.request("GET", endpoint, params)

    async def probe(self) -> None:
        """サイトのルートに GET を送り、2xx 以外なら例外を投げる"""
        await self.request("GET", "")

    async def aclose(self) -> None:
        await self._http.aclose()


class SiteClientManager:
    """
    サイトIDごとに SiteClient を遅延生成してキャッシュする。
    接続確認に成功したクライアントだけをキャッシュする。
    """

    def __init__(
        self,
        registry: SiteRegistry,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.registry = registry
        self._timeout = timeout
        self._transport = transport
        self._clients: dict[str, SiteClient] = {}

    def _build_client(self, site: SiteConfig) -> SiteClient:
        base_url = normalize_base_url(site.url)
        http = httpx.AsyncClient(
            base_url=base_url,
            headers=get_auth_headers(site.username, site.password),
            timeout=self._timeout,
            transport=self._transport,
        )
        return SiteClient(site.id, base_url, http)

    async def get_client(self, site_id: str | None = None) -> SiteClient:
        site = self.registry.get_site(site_id)

        cached = self._clients.get(site.id)
        if cached is not None:
            return cached

        try:
            client = self._build_client(site)
        except httpx.InvalidURL as exc:
            logger.error(f"Invalid URL for site '{site.id}': {exc}")
            raise SiteConnectionError(site.id, str(exc)) from exc

        try:
            await client.probe()
        except (httpx.HTTPError, httpx.InvalidURL, WordPressAPIError, ValueError) as exc:
            await client.aclose()
            logger.error(f"Failed to connect to site '{site.id}': {exc}")
            raise SiteConnectionError(site.id, str(exc)) from exc

        # 同時に生成された場合は先に登録されたものを使う
        existing = self._clients.get(site.id)
        if existing is not None:
            await client.aclose()
            return existing

        self._clients[site.id] = client
        logger.info(f"Successfully connected to site '{site.id}' at {client.base_url}")
        return client

    async def test_site(self, site_id: str | None = None) -> dict:
        """接続テスト。例外は投げず結果の辞書を返す。"""
        try:
            client = await self.get_client(site_id)
            await client.probe()
            return {"success": True, "error": None}
        except Exception as exc:
            logger.warning(f"Connection test failed: {exc}")
            return {"success": False, "error": str(exc)}

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        await asyncio.gather(*(client.aclose() for client in clients))
