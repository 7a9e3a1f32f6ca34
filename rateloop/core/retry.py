"""
リトライ — 指数バックオフ付きの操作再実行

ページ操作（goto / click / fill）など失敗し得る非同期操作を再実行する。
操作の中身には関与せず、任意の引数なし coroutine 関数をラップする。

主な機能:
  - RetryPolicy: 最大リトライ回数・基準遅延の設定値
  - retry_action(): ポリシーに従った実行と再試行

待機時間は base_delay_ms * 2^attempt（attempt は最初のリトライで 0）。
ジッターは入れない。リトライを使い切った場合は最後の例外をそのまま送出する。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[int], Awaitable[None]]
"""ミリ秒を受け取る非同期スリープ関数の型。"""


# ---------------------------------------------------------------------------
# リトライポリシー
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """リトライ設定。

    Attributes:
        max_retries: 最大リトライ回数（初回実行を含まない。0 で再試行なし）
        base_delay_ms: 最初のリトライ前の待機時間（ミリ秒）
        multiplier: リトライごとの待機時間の倍率
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    multiplier: int = 2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries は 0 以上である必要があります: {self.max_retries}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms は 0 以上である必要があります: {self.base_delay_ms}")

    def delay_for(self, attempt: int) -> int:
        """attempt 回目（0 始まり）のリトライ前の待機時間を返す。"""
        return self.base_delay_ms * self.multiplier ** attempt


async def asyncio_sleep_ms(ms: int) -> None:
    """asyncio.sleep のミリ秒版。"""
    await asyncio.sleep(ms / 1000.0)


# ---------------------------------------------------------------------------
# リトライ実行
# ---------------------------------------------------------------------------

async def retry_action(
    action: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: SleepFunc = asyncio_sleep_ms,
    log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> T:
    """操作を実行し、失敗時は指数バックオフで再試行する。

    Args:
        action: 実行する引数なしの coroutine 関数
        policy: リトライ設定（None でデフォルトの RetryPolicy）
        sleep: 待機関数（ミリ秒）。テストでは記録用のスタブを渡す
        log: ログ出力先（セッション付きアダプタ等）。None でモジュールロガー

    Returns:
        action の戻り値

    Raises:
        Exception: 全リトライが失敗した場合、最後に発生した例外
    """
    policy = policy or RetryPolicy()
    log = log or logger

    attempt = 0
    while True:
        if attempt > 0:
            log.info("リトライ %d/%d 回目...", attempt, policy.max_retries)
        try:
            return await action()
        except Exception as exc:
            if attempt >= policy.max_retries:
                log.error("全てのリトライが失敗しました: %s", exc)
                raise

            delay = policy.delay_for(attempt)
            log.warning("操作に失敗しました。%dms 後に再試行します: %s", delay, exc)
            await sleep(delay)
            attempt += 1
