# server.py
# 複数WordPressサイト対応 MCPサーバー

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from settings import configure_logging, load_settings
from wp_directory import (
    CONTENT_TYPE_FIELDS,
    TAXONOMY_FIELDS,
    DirectoryRegistry,
    summarize_directory,
)
from wp_resolver import ContentResolver, parse_url, prioritized_types
from wp_sites import (
    ConfigurationError,
    SiteClientManager,
    SiteRegistry,
    WordPressAPIError,
)

# .env を最初に読み込む
load_dotenv()

logger = logging.getLogger(__name__)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 設定とサイト管理
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
settings = load_settings()
sites = SiteRegistry()
clients = SiteClientManager(sites, timeout=settings.request_timeout)
directories = DirectoryRegistry(clients, settings)


@asynccontextmanager
async def lifespan(server: FastMCP):
    try:
        yield {}
    finally:
        await clients.aclose()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MCPサーバー作成
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
mcp = FastMCP("wordpress-mcp-server", lifespan=lifespan)

ALLOWED_UPDATE_FIELDS = ("title", "content", "status", "meta", "custom_fields")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ヘルパー関数
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _site(site_id: str) -> str | None:
    """空文字はデフォルトサイト扱い"""
    return (site_id or "").strip() or None


def _to_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def _format_error(action: str, exc: Exception, hint: str = "") -> str:
    message = f"❌ {action}に失敗しました: {exc}"
    if hint and isinstance(exc, WordPressAPIError) and exc.status_code == 404:
        message += f"\nヒント: {hint}"
    return message


def _parse_fields_json(raw: str) -> tuple[dict | None, str | None]:
    """JSON文字列をパース"""
    if not raw or not raw.strip():
        return None, None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return None, f"❌ JSONの形式が正しくありません: {exc}"
    if not isinstance(data, dict):
        return None, "❌ JSONはオブジェクト（Key/Value形式）で指定してください。"
    return data, None


def _parse_id_list(raw: str) -> list[int]:
    """カンマ区切りのID文字列を整数リストにする（例: "1,2,3"）"""
    return [int(token.strip()) for token in (raw or "").split(",") if token.strip()]


def _parse_name_list(raw: str) -> list[str]:
    return [token.strip() for token in (raw or "").split(",") if token.strip()]


def _resolver(site_id: str | None) -> ContentResolver:
    return ContentResolver(directories.for_site(site_id), clients, settings.parallel_search)


def _build_content_payload(
    *,
    title: str = "",
    content: str = "",
    status: str = "",
    excerpt: str = "",
    slug: str = "",
    author: int | None = None,
    parent: int | None = None,
    featured_media: int | None = None,
    format: str = "",
    menu_order: int | None = None,
    categories: str = "",
    tags: str = "",
    meta: dict | None = None,
    custom_fields: dict | None = None,
) -> dict:
    """指定された項目だけを送信用の辞書にまとめる"""
    payload: dict[str, Any] = {}
    for key, value in (
        ("title", title),
        ("content", content),
        ("status", status),
        ("excerpt", excerpt),
        ("slug", slug),
        ("format", format),
    ):
        if value:
            payload[key] = value
    for key, value in (
        ("author", author),
        ("parent", parent),
        ("featured_media", featured_media),
        ("menu_order", menu_order),
    ):
        if value is not None:
            payload[key] = value
    if categories:
        payload["categories"] = _parse_id_list(categories)
    if tags:
        payload["tags"] = _parse_id_list(tags)
    if meta:
        payload["meta"] = meta
    # カスタムフィールドはルートレベルに展開する（show_in_rest の登録フィールド）
    if custom_fields:
        payload.update(custom_fields)
    return payload


def _payload_from_update_fields(update_fields: dict) -> dict:
    """渡されたキーはそのまま（空文字や空の辞書も）送信する"""
    payload = {key: value for key, value in update_fields.items() if key != "custom_fields"}
    custom_fields = update_fields.get("custom_fields")
    if custom_fields is not None:
        if not isinstance(custom_fields, dict):
            raise ValueError("custom_fields はオブジェクト（辞書）で指定してください")
        payload.update(custom_fields)
    return payload

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# サイト管理ツール
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@mcp.tool()
async def list_sites() -> str:
    """
    設定済みのWordPressサイトを一覧表示します。
    サイトID・URL・デフォルトサイトがわかります。
    """
    logger.info("list_sites called")
    try:
        all_sites = sites.get_all_sites()
        return _to_json({
            "sites": [site.to_public_dict() for site in all_sites],
            "count": len(all_sites),
            "default_site": sites.get_default_site_id(),
        })
    except Exception as e:
        logger.exception(f"Error in list_sites: {e}")
        return _format_error("サイト一覧の取得", e)


@mcp.tool()
async def get_site(site_id: str = "") -> str:
    """
    サイト設定の詳細を取得します。

    Args:
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"get_site called with site_id={site_id}")
    try:
        return _to_json(sites.get_site(_site(site_id)).to_public_dict())
    except Exception as e:
        logger.exception(f"Error in get_site: {e}")
        return _format_error("サイト情報の取得", e)


@mcp.tool()
async def test_site(site_id: str = "") -> str:
    """
    サイトへの接続をテストします。

    Args:
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"test_site called with site_id={site_id}")
    try:
        site = sites.get_site(_site(site_id))
        result = await clients.test_site(site.id)
    except Exception as e:
        logger.exception(f"Error in test_site: {e}")
        return _format_error("接続テスト", e)

    if result["success"]:
        message = f"Successfully connected to {site.url}"
    else:
        message = f"❌ Failed to connect to {site.url}: {result['error']}"
    return _to_json({
        "site_id": site.id,
        "site_url": site.url,
        "success": result["success"],
        "error": result["error"],
        "message": message,
    })


@mcp.tool()
async def detect_site(text: str) -> str:
    """
    文章中のドメイン・エイリアス・サイトIDからどのサイトの話かを推定します。

    Args:
        text: 依頼文など（例: "blog.example.com の記事を直して"）
    """
    logger.info("detect_site called")
    try:
        detected = sites.detect_site_from_context(text)
        return _to_json({
            "detected_site": detected,
            "default_site": sites.get_default_site_id(),
        })
    except Exception as e:
        logger.exception(f"Error in detect_site: {e}")
        return _format_error("サイトの推定", e)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# コンテンツツール（投稿・固定ページ・カスタム投稿タイプ共通）
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@mcp.tool()
async def list_content(
    content_type: str,
    page: int = 1,
    per_page: int = 10,
    search: str = "",
    slug: str = "",
    status: str = "",
    author: str = "",
    categories: str = "",
    tags: str = "",
    parent: int | None = None,
    orderby: str = "",
    order: str = "",
    after: str = "",
    before: str = "",
    site_id: str = "",
) -> str:
    """
    任意のコンテンツタイプ（post, page, カスタム投稿タイプ）の一覧を取得します。

    Args:
        content_type: コンテンツタイプのスラッグ（例: "post", "page", "product"）
        page: ページ番号
        per_page: 取得件数 (1-100)
        search: タイトル・本文の検索語
        slug: スラッグで絞り込み
        status: ステータス（例: "publish", "draft"）
        author: 投稿者IDのカンマ区切り
        categories: カテゴリーIDのカンマ区切り（投稿のみ）
        tags: タグIDのカンマ区切り（投稿のみ）
        parent: 親ID（階層型のみ）
        orderby: 並び替えの項目
        order: "asc" または "desc"
        after: この日時（ISO8601）より後
        before: この日時（ISO8601）より前
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"list_content called with content_type={content_type}, page={page}, per_page={per_page}")
    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)

        params: dict[str, Any] = {
            "page": max(page, 1),
            "per_page": min(max(per_page, 1), 100),
        }
        for key, value in (
            ("search", search),
            ("slug", slug),
            ("status", status),
            ("orderby", orderby),
            ("order", order),
            ("after", after),
            ("before", before),
        ):
            if value:
                params[key] = value
        for key, value in (("author", author), ("categories", categories), ("tags", tags)):
            if value:
                params[key] = ",".join(str(item) for item in _parse_id_list(value))
        if parent is not None:
            params["parent"] = parent

        client = await clients.get_client(directory.site_id)
        return _to_json(await client.get(endpoint, params))
    except Exception as e:
        logger.exception(f"Error in list_content: {e}")
        return _format_error("コンテンツ一覧の取得", e, "discover_content_types で利用可能なコンテンツタイプを確認してください。")


@mcp.tool()
async def get_content(content_type: str, id: int, site_id: str = "") -> str:
    """
    コンテンツタイプとIDを指定してコンテンツを取得します。

    Args:
        content_type: コンテンツタイプのスラッグ
        id: コンテンツID
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"get_content called with content_type={content_type}, id={id}")
    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)
        client = await clients.get_client(directory.site_id)
        return _to_json(await client.get(f"{endpoint}/{id}"))
    except Exception as e:
        logger.exception(f"Error in get_content: {e}")
        return _format_error("コンテンツの取得", e, "discover_content_types でコンテンツタイプが存在するか確認してください。")


@mcp.tool()
async def create_content(
    content_type: str,
    title: str,
    content: str,
    status: str = "draft",
    excerpt: str = "",
    slug: str = "",
    author: int | None = None,
    parent: int | None = None,
    featured_media: int | None = None,
    format: str = "",
    menu_order: int | None = None,
    categories: str = "",
    tags: str = "",
    meta_json: str = "",
    custom_fields_json: str = "",
    site_id: str = "",
) -> str:
    """
    任意のコンテンツタイプで新規コンテンツを作成します。

    Args:
        content_type: コンテンツタイプのスラッグ
        title: タイトル
        content: 本文（HTML または Gutenberg ブロック）
        status: ステータス（デフォルト: draft）
        excerpt: 抜粋
        slug: スラッグ
        author: 投稿者ID
        parent: 親ID（階層型のみ）
        featured_media: アイキャッチ画像のメディアID
        format: 投稿フォーマット（standard, aside, gallery など）
        menu_order: 並び順（固定ページ）
        categories: カテゴリーIDのカンマ区切り
        tags: タグIDのカンマ区切り
        meta_json: meta に入れる {"キー": "値"} 形式のJSON
        custom_fields_json: ルートレベルに展開するカスタムフィールドのJSON
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"create_content called with content_type={content_type}, title={title}")

    meta, error = _parse_fields_json(meta_json)
    if error:
        return error
    custom_fields, error = _parse_fields_json(custom_fields_json)
    if error:
        return error

    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)
        payload = _build_content_payload(
            title=title,
            content=content,
            status=status,
            excerpt=excerpt,
            slug=slug,
            author=author,
            parent=parent,
            featured_media=featured_media,
            format=format,
            menu_order=menu_order,
            categories=categories,
            tags=tags,
            meta=meta,
            custom_fields=custom_fields,
        )
        client = await clients.get_client(directory.site_id)
        return _to_json(await client.request("POST", endpoint, payload))
    except Exception as e:
        logger.exception(f"Error in create_content: {e}")
        return _format_error("コンテンツの作成", e, "コンテンツタイプが存在しない可能性があります。discover_content_types を実行してください。")


@mcp.tool()
async def update_content(
    content_type: str,
    id: int,
    title: str = "",
    content: str = "",
    status: str = "",
    excerpt: str = "",
    slug: str = "",
    author: int | None = None,
    parent: int | None = None,
    featured_media: int | None = None,
    format: str = "",
    menu_order: int | None = None,
    categories: str = "",
    tags: str = "",
    meta_json: str = "",
    custom_fields_json: str = "",
    site_id: str = "",
) -> str:
    """
    既存のコンテンツを更新します。指定した項目だけが送信されます。

    Args:
        content_type: コンテンツタイプのスラッグ
        id: コンテンツID
        title: タイトル
        content: 本文（HTML または Gutenberg ブロック）
        status: ステータス
        excerpt: 抜粋
        slug: スラッグ
        author: 投稿者ID
        parent: 親ID
        featured_media: アイキャッチ画像のメディアID
        format: 投稿フォーマット
        menu_order: 並び順
        categories: カテゴリーIDのカンマ区切り
        tags: タグIDのカンマ区切り
        meta_json: meta に入れる {"キー": "値"} 形式のJSON
        custom_fields_json: ルートレベルに展開するカスタムフィールドのJSON
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"update_content called with content_type={content_type}, id={id}")

    meta, error = _parse_fields_json(meta_json)
    if error:
        return error
    custom_fields, error = _parse_fields_json(custom_fields_json)
    if error:
        return error

    try:
        payload = _build_content_payload(
            title=title,
            content=content,
            status=status,
            excerpt=excerpt,
            slug=slug,
            author=author,
            parent=parent,
            featured_media=featured_media,
            format=format,
            menu_order=menu_order,
            categories=categories,
            tags=tags,
            meta=meta,
            custom_fields=custom_fields,
        )
        if not payload:
            return "❌ 更新する項目を1つ以上指定してください。"

        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)
        client = await clients.get_client(directory.site_id)
        return _to_json(await client.request("POST", f"{endpoint}/{id}", payload))
    except Exception as e:
        logger.exception(f"Error in update_content: {e}")
        return _format_error("コンテンツの更新", e)


@mcp.tool()
async def delete_content(content_type: str, id: int, force: bool = False, site_id: str = "") -> str:
    """
    コンテンツを削除します。

    Args:
        content_type: コンテンツタイプのスラッグ
        id: コンテンツID
        force: True でゴミ箱を経由せず完全に削除
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"delete_content called with content_type={content_type}, id={id}, force={force}")
    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)
        client = await clients.get_client(directory.site_id)
        return _to_json(await client.request("DELETE", f"{endpoint}/{id}", {"force": bool(force)}))
    except Exception as e:
        logger.exception(f"Error in delete_content: {e}")
        return _format_error("コンテンツの削除", e)


@mcp.tool()
async def discover_content_types(refresh_cache: bool = False, site_id: str = "") -> str:
    """
    サイトで利用できるコンテンツタイプ（組み込み・カスタム）を一覧表示します。

    Args:
        refresh_cache: True でキャッシュを使わず再取得
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"discover_content_types called with refresh_cache={refresh_cache}")
    try:
        directory = directories.for_site(_site(site_id))
        content_types = await directory.get_content_types(force_refresh=refresh_cache)
        return _to_json(summarize_directory(content_types, CONTENT_TYPE_FIELDS))
    except Exception as e:
        logger.exception(f"Error in discover_content_types: {e}")
        return _format_error("コンテンツタイプの取得", e)


@mcp.tool()
async def find_content_by_url(url: str, update_fields_json: str = "", site_id: str = "") -> str:
    """
    URL からコンテンツを探します（コンテンツタイプは自動判定）。
    update_fields_json を指定すると、見つかったコンテンツをそのまま更新します。

    Args:
        url: コンテンツの完全なURL
        update_fields_json: 更新内容のJSON（title, content, status, meta, custom_fields）
        site_id: サイトID（空の場合はURLのドメインから推定、推定できなければデフォルトサイト）

    例:
        update_fields_json: '{"title": "新しいタイトル", "status": "publish"}'
    """
    logger.info(f"find_content_by_url called with url={url}")

    update_fields, error = _parse_fields_json(update_fields_json)
    if error:
        return error
    if update_fields:
        unknown = [key for key in update_fields if key not in ALLOWED_UPDATE_FIELDS]
        if unknown:
            return (
                f"❌ 更新できない項目が含まれています: {', '.join(unknown)}\n"
                f"使用可能: {' / '.join(ALLOWED_UPDATE_FIELDS)}"
            )

    try:
        target_site = _site(site_id) or sites.detect_site_from_context(url)
        resolver = _resolver(target_site)

        slug, path_hints = parse_url(url)
        result = await resolver.find_content_by_url(url)
        if result is None:
            searched = ", ".join(prioritized_types(path_hints))
            return (
                f"❌ No content found with URL: {url}\n"
                f"スラッグ: {slug} / 検索したタイプ: {searched}、および全コンテンツタイプ"
            )

        response: dict[str, Any] = {
            "found": True,
            "site_id": resolver.directory.site_id,
            "content_type": result.content_type,
            "content_id": result.content.get("id"),
            "original_url": url,
        }

        if update_fields:
            payload = _payload_from_update_fields(update_fields)
            endpoint = await resolver.directory.get_content_endpoint(result.content_type)
            client = await clients.get_client(resolver.directory.site_id)
            response["updated"] = True
            response["content"] = await client.request("POST", f"{endpoint}/{result.content.get('id')}", payload)
        else:
            response["content"] = result.content

        return _to_json(response)
    except Exception as e:
        logger.exception(f"Error in find_content_by_url: {e}")
        return _format_error("URLからのコンテンツ検索", e)


@mcp.tool()
async def get_content_by_slug(slug: str, content_types: str = "", site_id: str = "") -> str:
    """
    スラッグで複数のコンテンツタイプを横断検索します。

    Args:
        slug: 検索するスラッグ
        content_types: 検索対象のコンテンツタイプのカンマ区切り（空の場合はすべて）
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"get_content_by_slug called with slug={slug}, content_types={content_types}")
    try:
        resolver = _resolver(_site(site_id))
        candidate_types = _parse_name_list(content_types) or None
        result = await resolver.find_content_across_types(slug, candidate_types)
        if result is None:
            searched = ", ".join(candidate_types) if candidate_types else "全コンテンツタイプ"
            return f"❌ No content found with slug: {slug}（検索したタイプ: {searched}）"

        return _to_json({
            "found": True,
            "site_id": resolver.directory.site_id,
            "content_type": result.content_type,
            "content": result.content,
        })
    except Exception as e:
        logger.exception(f"Error in get_content_by_slug: {e}")
        return _format_error("スラッグでのコンテンツ検索", e)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# タクソノミーツール
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@mcp.tool()
async def discover_taxonomies(refresh_cache: bool = False, site_id: str = "") -> str:
    """
    サイトで利用できるタクソノミー（カテゴリー・タグ・カスタム）を一覧表示します。

    Args:
        refresh_cache: True でキャッシュを使わず再取得
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"discover_taxonomies called with refresh_cache={refresh_cache}")
    try:
        directory = directories.for_site(_site(site_id))
        taxonomies = await directory.get_taxonomies(force_refresh=refresh_cache)
        return _to_json(summarize_directory(taxonomies, TAXONOMY_FIELDS))
    except Exception as e:
        logger.exception(f"Error in discover_taxonomies: {e}")
        return _format_error("タクソノミーの取得", e)


@mcp.tool()
async def list_terms(taxonomy: str, per_page: int = 100, search: str = "", site_id: str = "") -> str:
    """
    指定したタクソノミーのターム一覧を取得します。

    Args:
        taxonomy: タクソノミーのスラッグ（例: "category", "post_tag", "genre"）
        per_page: 取得件数 (1-100)
        search: ターム名の検索語
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"list_terms called with taxonomy={taxonomy}, per_page={per_page}")
    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_taxonomy_endpoint(taxonomy)
        params: dict[str, Any] = {"per_page": min(max(per_page, 1), 100)}
        if search:
            params["search"] = search
        client = await clients.get_client(directory.site_id)
        return _to_json(await client.get(endpoint, params))
    except Exception as e:
        logger.exception(f"Error in list_terms: {e}")
        return _format_error("ターム一覧の取得", e, "discover_taxonomies で利用可能なタクソノミーを確認してください。")


@mcp.tool()
async def create_term(
    taxonomy: str,
    name: str,
    slug: str = "",
    description: str = "",
    parent: int | None = None,
    site_id: str = "",
) -> str:
    """
    指定したタクソノミーに新しいタームを作成します。

    Args:
        taxonomy: タクソノミーのスラッグ
        name: ターム名（必須）
        slug: タームのスラッグ（空の場合は自動生成）
        description: 説明
        parent: 親タームID（階層型のみ）
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"create_term called with taxonomy={taxonomy}, name={name}")

    clean_name = (name or "").strip()
    if not clean_name:
        return "❌ ターム名を指定してください。"

    payload: dict[str, Any] = {"name": clean_name}
    if slug:
        payload["slug"] = slug
    if description:
        payload["description"] = description
    if parent is not None:
        payload["parent"] = parent

    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_taxonomy_endpoint(taxonomy)
        client = await clients.get_client(directory.site_id)
        return _to_json(await client.request("POST", endpoint, payload))
    except Exception as e:
        logger.exception(f"Error in create_term: {e}")
        return _format_error("タームの作成", e)


@mcp.tool()
async def get_content_terms(content_type: str, id: int, taxonomy: str = "", site_id: str = "") -> str:
    """
    コンテンツに設定されているタームIDをタクソノミーごとに取得します。

    Args:
        content_type: コンテンツタイプのスラッグ
        id: コンテンツID
        taxonomy: タクソノミーのスラッグ（空の場合はコンテンツタイプに紐づくすべて）
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"get_content_terms called with content_type={content_type}, id={id}, taxonomy={taxonomy}")
    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)
        client = await clients.get_client(directory.site_id)
        content = await client.get(f"{endpoint}/{id}")

        if taxonomy:
            taxonomy_slugs = [taxonomy]
        else:
            content_types = await directory.get_content_types()
            taxonomy_slugs = list((content_types.get(content_type) or {}).get("taxonomies") or [])

        terms: dict[str, Any] = {}
        for taxonomy_slug in taxonomy_slugs:
            rest_base = await directory.get_taxonomy_endpoint(taxonomy_slug)
            terms[taxonomy_slug] = {
                "rest_base": rest_base,
                "term_ids": content.get(rest_base, []) if isinstance(content, dict) else [],
            }

        return _to_json({
            "content_type": content_type,
            "content_id": id,
            "terms": terms,
        })
    except Exception as e:
        logger.exception(f"Error in get_content_terms: {e}")
        return _format_error("タームの取得", e)


@mcp.tool()
async def assign_terms_to_content(
    content_type: str,
    id: int,
    taxonomy: str,
    term_ids: str,
    site_id: str = "",
) -> str:
    """
    コンテンツにタクソノミーのタームを設定します（既存の設定は置き換え）。

    Args:
        content_type: コンテンツタイプのスラッグ
        id: コンテンツID
        taxonomy: タクソノミーのスラッグ
        term_ids: タームIDのカンマ区切り（例: "1,2,3"）
        site_id: サイトID（空の場合はデフォルトサイト）
    """
    logger.info(f"assign_terms_to_content called with content_type={content_type}, id={id}, taxonomy={taxonomy}")

    try:
        ids = _parse_id_list(term_ids)
    except ValueError:
        return f"❌ タームIDは数値のカンマ区切りで指定してください: {term_ids}"
    if not ids:
        return "❌ タームIDを1つ以上指定してください。"

    try:
        directory = directories.for_site(_site(site_id))
        endpoint = await directory.get_content_endpoint(content_type)
        rest_base = await directory.get_taxonomy_endpoint(taxonomy)
        client = await clients.get_client(directory.site_id)
        updated = await client.request("POST", f"{endpoint}/{id}", {rest_base: ids})
        return _to_json({
            "content_type": content_type,
            "content_id": id,
            "taxonomy": taxonomy,
            "term_ids": updated.get(rest_base, ids) if isinstance(updated, dict) else ids,
        })
    except Exception as e:
        logger.exception(f"Error in assign_terms_to_content: {e}")
        return _format_error("タームの設定", e)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# サーバー起動
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def main():
    log_file = configure_logging(settings)
    logger.info(f"Starting WordPress MCP server (log: {log_file})")

    # サイトが1つもなければ起動できない
    try:
        configured = sites.get_all_sites()
    except ConfigurationError as e:
        logger.error(f"Failed to initialize server: {e}")
        sys.exit(1)

    logger.info(f"Configured sites: {', '.join(site.id for site in configured)}")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
