# wp_resolver.py
# スラッグ・URL から複数のコンテンツタイプを横断してコンテンツを探す

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from wp_directory import SiteDirectory
from wp_sites import SiteClientManager, WordPressAPIError, WordPressMCPError

logger = logging.getLogger(__name__)

# 横断検索の対象にしない組み込みタイプ
EXCLUDED_SEARCH_TYPES = ("attachment", "wp_block")

# URL のパス要素 → 優先して探すコンテンツタイプ
PATH_TYPE_HINTS = {
    "documentation": ["documentation", "docs", "doc"],
    "docs": ["documentation", "docs", "doc"],
    "products": ["product"],
    "portfolio": ["portfolio", "project"],
    "services": ["service"],
    "testimonials": ["testimonial"],
    "team": ["team_member", "staff"],
    "events": ["event"],
    "courses": ["course", "lesson"],
}
FALLBACK_TYPES = ("post", "page")


@dataclass
class ResolvedContent:
    content: dict
    content_type: str


def parse_url(url: str) -> tuple[str, list[str]]:
    """
    URL からスラッグとパスのヒントを取り出す。

    例: "https://site.com/documentation/api-guide/" → ("api-guide", ["documentation"])
    URL として解釈できない場合は ("", [])。
    """
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        logger.warning(f"Error parsing URL {url}: {exc}")
        return "", []
    if not parts.scheme or not parts.netloc:
        logger.warning(f"Error parsing URL {url}: not an absolute URL")
        return "", []

    segments = [segment for segment in parts.path.rstrip('/').split('/') if segment]
    if not segments:
        return "", []
    return segments[-1], [segment.lower() for segment in segments[:-1]]


def prioritized_types(path_hints: list[str]) -> list[str]:
    """
    パスのヒントから検索順を決める。最後に必ず post, page を入れる。重複は除く。
    """
    candidates: list[str] = []
    for hint in path_hints:
        candidates.extend(PATH_TYPE_HINTS.get(hint.lower(), []))
    candidates.extend(FALLBACK_TYPES)

    ordered_unique: list[str] = []
    for content_type in candidates:
        if content_type not in ordered_unique:
            ordered_unique.append(content_type)
    return ordered_unique


class ContentResolver:
    """1サイトを対象にした横断検索"""

    def __init__(self, directory: SiteDirectory, clients: SiteClientManager, parallel_search: bool = True):
        self.directory = directory
        self._clients = clients
        self.parallel_search = parallel_search

    async def searchable_types(self) -> list[str]:
        content_types = await self.directory.get_content_types()
        return [slug for slug in content_types if slug not in EXCLUDED_SEARCH_TYPES]

    async def _lookup(self, slug: str, content_type: str) -> ResolvedContent | None:
        try:
            endpoint = await self.directory.get_content_endpoint(content_type)
            client = await self._clients.get_client(self.directory.site_id)
            response = await client.get(endpoint, {"slug": slug, "per_page": 1})
        except (WordPressMCPError, WordPressAPIError, httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Error searching {content_type}: {exc}")
            return None

        if isinstance(response, list) and response:
            logger.info(f'Found content with slug "{slug}" in content type "{content_type}"')
            return ResolvedContent(content=response[0], content_type=content_type)
        return None

    async def find_content_across_types(
        self,
        slug: str,
        content_types: list[str] | None = None,
    ) -> ResolvedContent | None:
        types_to_search = list(content_types) if content_types else await self.searchable_types()
        logger.info(f'Searching for slug "{slug}" across content types: {", ".join(types_to_search)}')

        if self.parallel_search and len(types_to_search) > 1:
            results = await asyncio.gather(
                *(self._lookup(slug, content_type) for content_type in types_to_search)
            )
            # 完了順ではなくリスト順で決める
            return next((result for result in results if result is not None), None)

        for content_type in types_to_search:
            result = await self._lookup(slug, content_type)
            if result is not None:
                return result
        return None

    async def find_content_by_url(self, url: str) -> ResolvedContent | None:
        """
        URL のパスから候補タイプを絞って探し、見つからなければ全タイプで探す。

        Raises:
            ValueError: URL からスラッグが取り出せない場合
        """
        slug, path_hints = parse_url(url)
        if not slug:
            raise ValueError(f"Could not extract slug from URL: {url}")

        logger.info(f"Searching for content with slug: {slug}, path hints: {'/'.join(path_hints)}")

        result = await self.find_content_across_types(slug, prioritized_types(path_hints))
        if result is None:
            result = await self.find_content_across_types(slug)
        return result
