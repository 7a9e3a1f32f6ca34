"""
テスト共通フィクスチャ — ブラウザ操作のフェイク実装と乱数スタブ

PageActions / BrowserContextHandle / BrowserHandle / BrowserLauncher の
フェイク実装を提供する。実際のブラウザやネットワークは使用しない。
フェイククラスは factory フィクスチャ経由で各テストに渡す。
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable, Iterable, Optional

import pytest

from rateloop.core.click_loop import BUTTON_SELECTORS
from rateloop.credentials import Credential


# ---------------------------------------------------------------------------
# 乱数スタブ
# ---------------------------------------------------------------------------

class MinRandom:
    """常に範囲の下限を返す乱数ソース（待機は最短、候補は先頭）。"""

    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return a


class MaxRandom(MinRandom):
    """常に範囲の上限を返す乱数ソース。"""

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return b


# ---------------------------------------------------------------------------
# フェイク Page
# ---------------------------------------------------------------------------

class FakePage:
    """PageActions のフェイク実装。

    Args:
        missing: is_present() が False を返すセレクタ
        failures: {(操作名, 対象): 失敗回数} 。None を指定すると常に失敗する
        signal_after_clicks: 候補ボタンのクリック回数がこの値以上になると
            終了シグナル要素が現れる（None で現れない）
        signal_text: 終了シグナル要素のテキスト
        click_error: 候補ボタンのクリック時に送出する例外
    """

    def __init__(
        self,
        *,
        missing: Iterable[str] = (),
        failures: Optional[dict] = None,
        signal_after_clicks: Optional[int] = None,
        signal_text: Optional[str] = "Earn more points in 3 hours",
        click_error: Optional[Exception] = None,
    ) -> None:
        self.missing = set(missing)
        self.failures = dict(failures or {})
        self.signal_after_clicks = signal_after_clicks
        self.signal_text = signal_text
        self.click_error = click_error
        self.calls: list[tuple[str, str]] = []
        self.clicks: list[str] = []
        self.fills: list[tuple[str, str]] = []
        self.sleeps: list[int] = []
        self.goto_timeouts: list[int] = []
        self.closed = False

    def count(self, op: str, target: str) -> int:
        """指定操作の呼び出し回数を返す。"""
        return sum(1 for call in self.calls if call == (op, target))

    @property
    def loop_clicks(self) -> int:
        return sum(1 for s in self.clicks if s in BUTTON_SELECTORS)

    def _record(self, op: str, target: str) -> None:
        self.calls.append((op, target))
        key = (op, target)
        if key in self.failures:
            remaining = self.failures[key]
            if remaining is None:
                raise RuntimeError(f"{op} failed: {target}")
            if remaining > 0:
                self.failures[key] = remaining - 1
                raise RuntimeError(f"{op} failed: {target}")

    async def goto(self, url: str, timeout: int) -> None:
        self.goto_timeouts.append(timeout)
        self._record("goto", url)

    async def click(self, selector: str) -> None:
        self._record("click", selector)
        if self.click_error is not None and selector in BUTTON_SELECTORS:
            raise self.click_error
        self.clicks.append(selector)

    async def fill(self, selector: str, value: str) -> None:
        self._record("fill", selector)
        self.fills.append((selector, value))

    async def is_present(self, selector: str) -> bool:
        return selector not in self.missing

    async def wait_for(self, selector: str, timeout: int) -> None:
        if self.signal_after_clicks is not None and self.loop_clicks >= self.signal_after_clicks:
            return
        raise TimeoutError(f"{selector} not visible within {timeout}ms")

    async def text_content(self, selector: str) -> Optional[str]:
        return self.signal_text

    async def sleep(self, ms: int) -> None:
        self.sleeps.append(ms)

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# フェイク Context / Browser / Launcher
# ---------------------------------------------------------------------------

class FakeContext:
    """BrowserContextHandle のフェイク実装。"""

    def __init__(self, page: Optional[FakePage] = None, page_error: Optional[Exception] = None,
                 close_error: Optional[Exception] = None) -> None:
        self.page = page or FakePage()
        self.page_error = page_error
        self.close_error = close_error
        self.closed = False

    async def new_page(self) -> FakePage:
        if self.page_error is not None:
            raise self.page_error
        return self.page

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeBrowser:
    """BrowserHandle のフェイク実装。

    Args:
        context_factory: 呼び出し回数（0 始まり）を受け取り FakeContext を返す関数
        context_error: new_context() で送出する例外
    """

    def __init__(
        self,
        context_factory: Optional[Callable[[int], FakeContext]] = None,
        context_error: Optional[Exception] = None,
    ) -> None:
        self.context_factory = context_factory or (lambda _: FakeContext())
        self.context_error = context_error
        self.contexts: list[FakeContext] = []
        self.closed = False
        self.close_count = 0

    async def new_context(self) -> FakeContext:
        if self.context_error is not None:
            raise self.context_error
        context = self.context_factory(len(self.contexts))
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True
        self.close_count += 1


class FakeLauncher:
    """BrowserLauncher のフェイク実装。"""

    def __init__(self, browser: Optional[FakeBrowser] = None,
                 launch_error: Optional[Exception] = None) -> None:
        self.browser = browser or FakeBrowser()
        self.launch_error = launch_error
        self.launch_count = 0

    @asynccontextmanager
    async def launch(self):
        if self.launch_error is not None:
            raise self.launch_error
        self.launch_count += 1
        yield self.browser


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def make_page() -> Callable[..., FakePage]:
    """FakePage を生成する factory。"""
    return FakePage


@pytest.fixture
def make_context() -> Callable[..., FakeContext]:
    """FakeContext を生成する factory。"""
    return FakeContext


@pytest.fixture
def make_browser() -> Callable[..., FakeBrowser]:
    """FakeBrowser を生成する factory。"""
    return FakeBrowser


@pytest.fixture
def make_launcher() -> Callable[..., FakeLauncher]:
    """FakeLauncher を生成する factory。"""
    return FakeLauncher


@pytest.fixture
def min_random() -> MinRandom:
    """常に下限を返す乱数ソース。"""
    return MinRandom()


@pytest.fixture
def max_random() -> MaxRandom:
    """常に上限を返す乱数ソース。"""
    return MaxRandom()


@pytest.fixture
def recorded_sleeps() -> list[int]:
    """record_sleep フィクスチャが記録した待機時間（ミリ秒）。"""
    return []


@pytest.fixture
def record_sleep(recorded_sleeps: list[int]):
    """実際には待機せず、待機時間のみを記録する sleep 関数。"""

    async def _sleep(ms: int) -> None:
        recorded_sleeps.append(ms)

    return _sleep


@pytest.fixture
def credential() -> Credential:
    """テスト用の認証情報 1 件。"""
    return Credential(identifier="user1", username="alice@example.com", password="s3cret-pw")


@pytest.fixture
def credentials() -> list[Credential]:
    """テスト用の認証情報 4 件（入力順）。"""
    return [
        Credential(identifier=f"user{i}", username=f"user{i}@example.com", password=f"pw{i}")
        for i in range(1, 5)
    ]
