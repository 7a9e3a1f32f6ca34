"""
クリックループ — ランダムなボタンクリックと終了シグナル検出

ログイン後の評価ページで、2 つの候補ボタンのいずれかをランダムにクリックし、
クールダウン開始を示す文言（"Earn more points in N hours" 等）が
表示されたらループを終了する。

ループは外側 outer_cap 回 × 内側 inner_cap 回の明示的な二重ループで、
シグナルが現れなければ outer_cap * inner_cap 回試行する。

エラー方針:
  - 候補要素が存在しない: 警告ログのみ、ループ継続
  - クリック・検索中の例外: エラーログのみ、ループ継続
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .browser import PageActions
from .randomness import RandomSource, SystemRandomSource
from .run_log import LoggerLike

logger = logging.getLogger(__name__)

BUTTON_SELECTORS: tuple[str, ...] = (
    "#root > div > main > div > div > div > div:nth-child(4) > button:nth-child(1)",
    "#root > div > main > div > div > div > div:nth-child(4) > button:nth-child(2)",
)

COOLDOWN_SELECTOR = "//div[contains(text(), 'Earn more points in')]"

COOLDOWN_PATTERN = re.compile(r"Earn more points in \d+ (hour?s?|minute?s?|second?s?)")


# ---------------------------------------------------------------------------
# 設定・結果データクラス
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClickLoopConfig:
    """クリックループの設定。

    Attributes:
        candidates: クリック候補のセレクタ
        inner_cap: 外側 1 回あたりの内側反復回数
        outer_cap_range: 外側反復回数の抽選範囲（両端含む）
        delay_range_ms: クリック間の待機時間の抽選範囲（ミリ秒、両端含む）
        signal_selector: 終了シグナル要素のセレクタ
        signal_pattern: 終了シグナルと判定するテキストの正規表現
        signal_timeout_ms: クリック後に終了シグナル要素を待つ時間（ミリ秒）
    """

    candidates: tuple[str, ...] = BUTTON_SELECTORS
    inner_cap: int = 10
    outer_cap_range: tuple[int, int] = (26, 33)
    delay_range_ms: tuple[int, int] = (5000, 8000)
    signal_selector: str = COOLDOWN_SELECTOR
    signal_pattern: re.Pattern = COOLDOWN_PATTERN
    signal_timeout_ms: int = 5000


@dataclass
class ClickLoopResult:
    """クリックループの実行結果。

    Attributes:
        signal_found: 終了シグナルを検出して終了したか
        attempts: 実施した反復回数（要素欠落・例外の回も含む）
        clicks: 実際にクリックした回数
        signal_text: 検出したシグナルのテキスト
    """

    signal_found: bool = False
    attempts: int = 0
    clicks: int = 0
    signal_text: Optional[str] = None


# ---------------------------------------------------------------------------
# ClickLoopController 本体
# ---------------------------------------------------------------------------

class ClickLoopController:
    """ランダムクリックと終了シグナル検出を繰り返すコントローラ。

    使用例::

        controller = ClickLoopController(rng=SystemRandomSource())
        outer_cap = controller.draw_outer_cap()
        result = await controller.run(page, outer_cap)
    """

    def __init__(
        self,
        config: Optional[ClickLoopConfig] = None,
        rng: Optional[RandomSource] = None,
        log: Optional[LoggerLike] = None,
    ) -> None:
        self._config = config or ClickLoopConfig()
        self._rng = rng or SystemRandomSource()
        self._log = log or logger

        if not self._config.candidates:
            raise ValueError("クリック候補のセレクタが空です")

    @property
    def config(self) -> ClickLoopConfig:
        return self._config

    def draw_outer_cap(self) -> int:
        """外側反復回数を outer_cap_range から抽選する。"""
        low, high = self._config.outer_cap_range
        return self._rng.randint(low, high)

    async def run(
        self,
        page: PageActions,
        outer_cap: int,
        log: Optional[LoggerLike] = None,
    ) -> ClickLoopResult:
        """クリックループを実行する。

        Args:
            page: 操作対象のページ
            outer_cap: 外側反復回数
            log: ログ出力先（None でコンストラクタ指定のロガー）

        Returns:
            ループの実行結果
        """
        log = log or self._log
        cfg = self._config
        result = ClickLoopResult()

        for outer in range(outer_cap):
            log.info("クリック反復 %d/%d...", outer + 1, outer_cap)

            for _ in range(cfg.inner_cap):
                result.attempts += 1
                if await self._click_once(page, result, log):
                    log.info("終了シグナルを検出したためクリックを終了します")
                    return result

                low, high = cfg.delay_range_ms
                delay = self._rng.randint(low, high)
                log.info("次のクリックまで %.1f 秒待機します...", delay / 1000)
                await page.sleep(delay)

        log.info(
            "上限 %d 回に到達したためクリックを終了します（クリック %d 回）",
            result.attempts, result.clicks,
        )
        return result

    async def _click_once(
        self, page: PageActions, result: ClickLoopResult, log: LoggerLike
    ) -> bool:
        """候補を 1 つ選んでクリックし、終了シグナルの有無を返す。"""
        candidates = self._config.candidates
        selector = candidates[self._rng.randint(0, len(candidates) - 1)]

        try:
            if not await page.is_present(selector):
                log.warning("ボタンが見つかりません: %s", selector)
                return False

            await page.click(selector)
            result.clicks += 1
            log.info("ボタンをクリックしました: %s", selector)

            text = await self._find_signal(page, log)
            if text is not None:
                result.signal_found = True
                result.signal_text = text
                log.info("クールダウン表示を検出しました: \"%s\"", text)
                return True
        except Exception as exc:
            log.error("ボタンのクリック中にエラー: %s", exc)

        return False

    async def _find_signal(self, page: PageActions, log: LoggerLike) -> Optional[str]:
        """終了シグナル要素を待ち、文言がパターンに一致すればそのテキストを返す。"""
        cfg = self._config
        try:
            await page.wait_for(cfg.signal_selector, timeout=cfg.signal_timeout_ms)
        except TimeoutError:
            log.warning("クールダウン表示は見つかりませんでした")
            return None

        text = await page.text_content(cfg.signal_selector)
        if text and cfg.signal_pattern.search(text):
            return text.strip()
        return None
