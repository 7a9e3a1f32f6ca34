"""
実行設定 — 環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  NODEWEB                    : 対象サイトの URL（デフォルト: https://www.eggg.co.uk）
  RATELOOP_HEADED            : ブラウザ表示モード（true/false, デフォルト: false）
  RATELOOP_REPORTS_DIR       : レポート出力ディレクトリ（デフォルト: reports）
  RATELOOP_MAX_RETRIES       : ページ操作の最大リトライ回数（デフォルト: 3）
  RATELOOP_BASE_DELAY_MS     : リトライ基準遅延（ミリ秒, デフォルト: 1000）
  RATELOOP_NAV_TIMEOUT_MS    : ページ遷移のタイムアウト（ミリ秒, デフォルト: 30000）
  RATELOOP_KEEP_REPORTS_DAYS : 実行前に残すレポートの日数（0 で全削除, デフォルト: 0）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from .core.browser import DEFAULT_USER_AGENT, BrowserOptions
from .core.click_loop import ClickLoopConfig
from .core.retry import RetryPolicy
from .core.session import DEFAULT_WEBSITE_URL, SessionTimings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_WEBSITE_URL = "NODEWEB"
_ENV_HEADED = "RATELOOP_HEADED"
_ENV_REPORTS_DIR = "RATELOOP_REPORTS_DIR"
_ENV_MAX_RETRIES = "RATELOOP_MAX_RETRIES"
_ENV_BASE_DELAY_MS = "RATELOOP_BASE_DELAY_MS"
_ENV_NAV_TIMEOUT_MS = "RATELOOP_NAV_TIMEOUT_MS"
_ENV_KEEP_REPORTS_DAYS = "RATELOOP_KEEP_REPORTS_DAYS"


class ConfigError(ValueError):
    """設定値が不正な場合に送出される。"""


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class RunConfig:
    """1 回の実行の設定。

    Attributes:
        website_url: 対象サイトのベース URL
        headed: ブラウザ表示モード（True=表示, False=ヘッドレス）
        reports_dir: ログ・レポートの出力先
        max_retries: ページ操作の最大リトライ回数
        base_delay_ms: リトライ基準遅延（ミリ秒）
        navigation_timeout_ms: ページ遷移のタイムアウト（ミリ秒）
        keep_reports_days: 実行前のクリーンアップで残す日数（0 で全削除）
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
        user_agent: User-Agent 文字列
        launch_args: Chromium 起動引数
        click_loop: クリックループ設定
    """

    website_url: str = DEFAULT_WEBSITE_URL
    headed: bool = False
    reports_dir: Path = field(default_factory=lambda: Path("reports"))
    max_retries: int = 3
    base_delay_ms: int = 1000
    navigation_timeout_ms: int = 30_000
    keep_reports_days: int = 0
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str = DEFAULT_USER_AGENT
    launch_args: list[str] = field(default_factory=lambda: ["--disable-dev-shm-usage"])
    click_loop: ClickLoopConfig = field(default_factory=ClickLoopConfig)

    def retry_policy(self) -> RetryPolicy:
        """リトライ設定を RetryPolicy として返す。"""
        return RetryPolicy(max_retries=self.max_retries, base_delay_ms=self.base_delay_ms)

    def browser_options(self) -> BrowserOptions:
        """ブラウザ起動設定を返す。"""
        return BrowserOptions(
            headed=self.headed,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            user_agent=self.user_agent,
            launch_args=list(self.launch_args),
        )

    def session_timings(self) -> SessionTimings:
        """セッション内の待機設定を返す。"""
        return SessionTimings(navigation_timeout_ms=self.navigation_timeout_ms)

    def validate(self) -> "RunConfig":
        """値の範囲を検証する。

        Raises:
            ConfigError: 範囲外の値がある場合
        """
        if not self.website_url.startswith(("http://", "https://")):
            raise ConfigError(f"対象サイトの URL が不正です: {self.website_url}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries は 0 以上である必要があります: {self.max_retries}")
        if self.base_delay_ms < 0:
            raise ConfigError(f"base_delay_ms は 0 以上である必要があります: {self.base_delay_ms}")
        if self.navigation_timeout_ms <= 0:
            raise ConfigError(
                f"navigation_timeout_ms は正の値である必要があります: {self.navigation_timeout_ms}"
            )
        if self.keep_reports_days < 0:
            raise ConfigError(
                f"keep_reports_days は 0 以上である必要があります: {self.keep_reports_days}"
            )
        return self


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False

    Returns:
        変換結果
    """
    return value.lower() in ("true", "1", "yes")


def _read_int(environ: Mapping[str, str], key: str, default: int) -> int:
    if key not in environ:
        return default
    try:
        return int(environ[key])
    except ValueError:
        logger.warning("%s の値が不正です: %s", key, environ[key])
        return default


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> RunConfig:
    """環境変数から RunConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。

    Args:
        environ: 参照する環境変数（None で os.environ）

    Returns:
        環境変数から読み込んだ設定
    """
    environ = os.environ if environ is None else environ
    config = RunConfig()

    if environ.get(_ENV_WEBSITE_URL):
        config.website_url = environ[_ENV_WEBSITE_URL]

    if _ENV_HEADED in environ:
        config.headed = _parse_bool(environ[_ENV_HEADED])

    if environ.get(_ENV_REPORTS_DIR):
        config.reports_dir = Path(environ[_ENV_REPORTS_DIR])

    config.max_retries = _read_int(environ, _ENV_MAX_RETRIES, config.max_retries)
    config.base_delay_ms = _read_int(environ, _ENV_BASE_DELAY_MS, config.base_delay_ms)
    config.navigation_timeout_ms = _read_int(
        environ, _ENV_NAV_TIMEOUT_MS, config.navigation_timeout_ms,
    )
    config.keep_reports_days = _read_int(
        environ, _ENV_KEEP_REPORTS_DAYS, config.keep_reports_days,
    )

    logger.debug("設定を読み込みました: %s", config)
    return config


def apply_cli_overrides(
    config: RunConfig,
    *,
    headed: Optional[bool] = None,
    reports_dir: Optional[Path] = None,
    max_retries: Optional[int] = None,
    base_delay_ms: Optional[int] = None,
    website_url: Optional[str] = None,
) -> RunConfig:
    """CLI 引数を RunConfig に適用する。

    None でない引数のみ上書きした新しい設定を返す。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）

    Returns:
        CLI 引数が適用された設定
    """
    overrides = {
        "headed": headed,
        "reports_dir": reports_dir,
        "max_retries": max_retries,
        "base_delay_ms": base_delay_ms,
        "website_url": website_url,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})
