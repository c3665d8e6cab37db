# settings.py
# WordPress MCPサーバーの設定とログ設定

import logging
import os
import tempfile
from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_DURATION_MS = 3600000  # 1時間
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_CACHE_DIR = os.path.join(tempfile.gettempdir(), 'mcp-wp', '.cache')
DEFAULT_LOG_DIR = os.path.join(tempfile.gettempdir(), 'wordpress-mcp-server')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Settings(BaseSettings):
    """
    環境変数から読み込む設定。

    不正な値は黙ってデフォルト値に置き換える（起動を止めない）。
    WORDPRESS_PARALLEL_SEARCH は "false" のときだけ無効になる。
    """

    cache_duration_ms: int = Field(DEFAULT_CACHE_DURATION_MS, validation_alias='WORDPRESS_CACHE_DURATION')
    parallel_search: bool = Field(True, validation_alias='WORDPRESS_PARALLEL_SEARCH')
    cache_dir: str = Field(DEFAULT_CACHE_DIR, validation_alias='UNIFIED_CONTENT_CACHE_DIR')
    log_dir: str = Field(DEFAULT_LOG_DIR, validation_alias='WORDPRESS_MCP_LOG_DIR')
    request_timeout: float = Field(DEFAULT_REQUEST_TIMEOUT, validation_alias='WORDPRESS_REQUEST_TIMEOUT')

    model_config = SettingsConfigDict(
        frozen=True,
        populate_by_name=True,
        extra='ignore',
    )

    @field_validator('cache_duration_ms', mode='before')
    @classmethod
    def _lenient_duration(cls, value: Any) -> int:
        try:
            parsed = int(str(value).strip())
        except ValueError:
            return DEFAULT_CACHE_DURATION_MS
        return parsed if parsed >= 0 else DEFAULT_CACHE_DURATION_MS

    @field_validator('parallel_search', mode='before')
    @classmethod
    def _only_false_disables(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() != 'false'

    @field_validator('cache_dir', 'log_dir', mode='before')
    @classmethod
    def _absolute_dir(cls, value: Any, info: ValidationInfo) -> str:
        if not value or not str(value).strip():
            return DEFAULT_CACHE_DIR if info.field_name == 'cache_dir' else DEFAULT_LOG_DIR
        return os.path.abspath(str(value).strip())

    @field_validator('request_timeout', mode='before')
    @classmethod
    def _lenient_timeout(cls, value: Any) -> float:
        try:
            parsed = float(str(value).strip())
        except ValueError:
            return DEFAULT_REQUEST_TIMEOUT
        return parsed if parsed > 0 else DEFAULT_REQUEST_TIMEOUT


def load_settings() -> Settings:
    """プロセスの環境変数（load_dotenv 済み）から設定を読み込む"""
    return Settings()


def configure_logging(settings: Settings, level: int = logging.DEBUG) -> str:
    """
    ログファイルと標準エラー出力へのログ設定を行う。
    stdout は MCP の通信に使うので StreamHandler は stderr に出す。

    Returns:
        ログファイルのパス
    """
    os.makedirs(settings.log_dir, exist_ok=True)
    log_file = os.path.join(settings.log_dir, 'debug.log')

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
    # httpx のリクエストログは Authorization を含まないが量が多いので抑える
    logging.getLogger('httpx').setLevel(logging.WARNING)
    return log_file
