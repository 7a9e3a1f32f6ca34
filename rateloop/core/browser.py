"""
ブラウザ操作インターフェース — セッション実行が依存する能力の定義

セッション実行・クリックループは Playwright に直接依存せず、
ここで定義する Protocol のみを使用する。テストではフェイク実装を渡し、
実際のネットワークやレンダリングエンジンなしで検証できる。

主な構成:
  - PageActions: ページ操作（遷移、クリック、入力、待機、テキスト取得、クローズ）
  - BrowserContextHandle: 分離されたブラウザコンテキスト
  - BrowserHandle: ブラウザプロセス
  - BrowserLauncher: ブラウザの起動（async context manager）
  - Playwright*: 上記 Protocol の Playwright 実装
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, AsyncContextManager, AsyncIterator, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/98.0.4758.102 Safari/537.36"
)


# ---------------------------------------------------------------------------
# 能力インターフェース
# ---------------------------------------------------------------------------

@runtime_checkable
class PageActions(Protocol):
    """1 ページに対する操作の集合。"""

    async def goto(self, url: str, timeout: int) -> None:
        """URL へ遷移する（timeout はミリ秒）。"""
        ...

    async def click(self, selector: str) -> None:
        """セレクタに一致する要素をクリックする。"""
        ...

    async def fill(self, selector: str, value: str) -> None:
        """セレクタに一致する入力欄に値を入力する。"""
        ...

    async def is_present(self, selector: str) -> bool:
        """セレクタに一致する要素が現在 DOM に存在するかを返す。"""
        ...

    async def wait_for(self, selector: str, timeout: int) -> None:
        """要素が現れるまで待機する。タイムアウト時は TimeoutError を送出する。"""
        ...

    async def text_content(self, selector: str) -> Optional[str]:
        """要素のテキスト内容を返す。"""
        ...

    async def sleep(self, ms: int) -> None:
        """指定ミリ秒待機する。"""
        ...

    async def close(self) -> None:
        """ページを閉じる。"""
        ...


@runtime_checkable
class BrowserContextHandle(Protocol):
    """セッションごとに分離されたブラウザコンテキスト。"""

    async def new_page(self) -> PageActions:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class BrowserHandle(Protocol):
    """起動済みブラウザ。全セッションで共有される。"""

    async def new_context(self) -> BrowserContextHandle:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class BrowserLauncher(Protocol):
    """ブラウザの起動を担当する。"""

    def launch(self) -> AsyncContextManager[BrowserHandle]:
        """ブラウザを起動し、BrowserHandle を返す async context manager。"""
        ...


# ---------------------------------------------------------------------------
# Playwright 実装
# ---------------------------------------------------------------------------

@dataclass
class BrowserOptions:
    """ブラウザ起動・コンテキスト生成の設定。

    Attributes:
        headed: ブラウザウィンドウを表示するか
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
        user_agent: User-Agent 文字列
        launch_args: Chromium 起動引数
    """

    headed: bool = False
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str = DEFAULT_USER_AGENT
    launch_args: list[str] = field(default_factory=lambda: ["--disable-dev-shm-usage"])


class PlaywrightPage:
    """Playwright Page を PageActions として扱うアダプタ。"""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def goto(self, url: str, timeout: int) -> None:
        await self._page.goto(url, timeout=timeout)

    async def click(self, selector: str) -> None:
        await self._page.click(selector)

    async def fill(self, selector: str, value: str) -> None:
        await self._page.fill(selector, value)

    async def is_present(self, selector: str) -> bool:
        return await self._page.query_selector(selector) is not None

    async def wait_for(self, selector: str, timeout: int) -> None:
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        try:
            await self._page.wait_for_selector(selector, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            # 呼び出し側は組み込みの TimeoutError のみを扱う
            raise TimeoutError(
                f"要素 '{selector}' が {timeout}ms 以内に現れませんでした"
            ) from exc

    async def text_content(self, selector: str) -> Optional[str]:
        return await self._page.text_content(selector)

    async def sleep(self, ms: int) -> None:
        await self._page.wait_for_timeout(ms)

    async def close(self) -> None:
        await self._page.close()


class PlaywrightContext:
    """Playwright BrowserContext のアダプタ。"""

    def __init__(self, context: BrowserContext, options: BrowserOptions) -> None:
        self._context = context
        self._options = options

    async def new_page(self) -> PageActions:
        page = await self._context.new_page()
        await page.set_viewport_size({
            "width": self._options.viewport_width,
            "height": self._options.viewport_height,
        })
        return PlaywrightPage(page)

    async def close(self) -> None:
        await self._context.close()


class PlaywrightBrowser:
    """Playwright Browser のアダプタ。

    new_context() のたびに viewport と User-Agent を設定した
    新しい BrowserContext を生成する。
    """

    def __init__(self, browser: Browser, options: BrowserOptions) -> None:
        self._browser = browser
        self._options = options
        self._closed = False

    async def new_context(self) -> BrowserContextHandle:
        context = await self._browser.new_context(
            viewport={
                "width": self._options.viewport_width,
                "height": self._options.viewport_height,
            },
            user_agent=self._options.user_agent,
        )
        return PlaywrightContext(context, self._options)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._browser.close()
        logger.info("ブラウザを終了しました")


class PlaywrightLauncher:
    """Chromium を起動する BrowserLauncher 実装。

    使用例::

        launcher = PlaywrightLauncher(BrowserOptions(headed=False))
        async with launcher.launch() as browser:
            context = await browser.new_context()
    """

    def __init__(self, options: Optional[BrowserOptions] = None) -> None:
        self._options = options or BrowserOptions()

    @property
    def options(self) -> BrowserOptions:
        return self._options

    @asynccontextmanager
    async def launch(self) -> AsyncIterator[BrowserHandle]:
        from playwright.async_api import async_playwright

        logger.info("ブラウザを起動しています... (headed=%s)", self._options.headed)
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(
                headless=not self._options.headed,
                args=list(self._options.launch_args),
            )
            handle = PlaywrightBrowser(browser, self._options)
            try:
                yield handle
            finally:
                # 呼び出し側が閉じ忘れた場合の後始末
                await handle.close()
