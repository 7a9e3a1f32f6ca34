"""
セッション実行 — 1 つの認証情報に対する一連のブラウザ操作

サイトを開き、同意・参加・ログインを行い、評価ページへ遷移して
クリックループを実行する。状態は分岐のない直線的な遷移で、
ページに触れる各操作（goto / click / fill）はリトライでラップされる。

リトライを使い切った操作や想定外の例外はトップレベルで捕捉し、
残りの手順を実行せずに False を返す（セッション失敗）。
ログイン後・ループ前のランダム待機は失敗し得ない操作のためリトライしない。
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..credentials import Credential
from .browser import BrowserContextHandle, PageActions
from .click_loop import ClickLoopController
from .randomness import RandomSource, SystemRandomSource
from .retry import RetryPolicy, SleepFunc, asyncio_sleep_ms, retry_action
from .run_log import LoggerLike, session_logger

logger = logging.getLogger(__name__)

DEFAULT_WEBSITE_URL = "https://www.eggg.co.uk"

AGREE_SELECTOR = 'text="AGREE"'
JOIN_SELECTOR = 'text="Join"'
LOGIN_LINK_SELECTOR = 'text="Already a member? Login"'
USERNAME_SELECTOR = 'input[autocomplete="username"]'
PASSWORD_SELECTOR = 'input[autocomplete="current-password"]'
CONTINUE_SELECTOR = 'text="Continue"'


# ---------------------------------------------------------------------------
# セッション状態
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """セッションの進行状態。"""

    START = "start"
    PAGE_OPENED = "page-opened"
    NAVIGATED_HOME = "navigated-home"
    AGREED = "agreed"
    JOINED = "joined"
    LOGIN_FORM_OPENED = "login-form-opened"
    CREDENTIALS_FILLED = "credentials-filled"
    LOGGED_IN = "logged-in"
    POST_LOGIN_WAIT = "post-login-wait"
    NAVIGATED_TO_TARGET = "navigated-to-target-page"
    PRE_LOOP_WAIT = "pre-loop-wait"
    CLICK_LOOP_RUNNING = "click-loop-running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionTimings:
    """セッション内の待機・タイムアウト設定。

    Attributes:
        navigation_timeout_ms: goto のタイムアウト（ミリ秒）
        post_login_wait_s: ログイン後のランダム待機範囲（秒、両端含む）
        pre_loop_wait_s: クリックループ前のランダム待機範囲（秒、両端含む）
    """

    navigation_timeout_ms: int = 30_000
    post_login_wait_s: tuple[int, int] = (1, 10)
    pre_loop_wait_s: tuple[int, int] = (1, 5)


# ---------------------------------------------------------------------------
# SessionRunner 本体
# ---------------------------------------------------------------------------

class SessionRunner:
    """ログインからクリックループまでを実行するランナー。

    1 インスタンスを複数セッションで共有できる。セッションごとの
    最終状態は state_of() で参照する。
    """

    def __init__(
        self,
        website_url: str = DEFAULT_WEBSITE_URL,
        retry_policy: Optional[RetryPolicy] = None,
        timings: Optional[SessionTimings] = None,
        click_loop: Optional[ClickLoopController] = None,
        rng: Optional[RandomSource] = None,
        retry_sleep: SleepFunc = asyncio_sleep_ms,
        log: Optional[LoggerLike] = None,
    ) -> None:
        """SessionRunner を初期化する。

        Args:
            website_url: 対象サイトのベース URL
            retry_policy: ページ操作のリトライ設定
            timings: 待機・タイムアウト設定
            click_loop: クリックループ（None で rng を共有するデフォルト）
            rng: ランダム待機に使用する乱数ソース
            retry_sleep: リトライ間の待機関数（ミリ秒）
            log: ログ出力先
        """
        self._website_url = website_url.rstrip("/")
        self._retry_policy = retry_policy or RetryPolicy()
        self._timings = timings or SessionTimings()
        self._rng = rng or SystemRandomSource()
        self._click_loop = click_loop or ClickLoopController(rng=self._rng)
        self._retry_sleep = retry_sleep
        self._log = log or logger
        self._states: dict[int, SessionState] = {}

    @property
    def website_url(self) -> str:
        return self._website_url

    @property
    def target_url(self) -> str:
        """クリックループを実行する評価ページの URL。"""
        return f"{self._website_url}/rate"

    def state_of(self, session_id: int) -> Optional[SessionState]:
        """セッションの最終（または現在の）状態を返す。"""
        return self._states.get(session_id)

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def run(
        self,
        credential: Credential,
        session_id: int,
        context: BrowserContextHandle,
    ) -> bool:
        """1 セッションを実行し、成功したかどうかを返す。

        Args:
            credential: ログインに使用する認証情報
            session_id: セッション ID（1 始まり）
            context: このセッション専用のブラウザコンテキスト

        Returns:
            全手順が完了した場合 True、途中で失敗した場合 False
        """
        log = session_logger(self._log, session_id)
        self._states[session_id] = SessionState.START

        def advance(state: SessionState) -> None:
            self._states[session_id] = state

        async def retried(action: Callable[[], Awaitable[None]]) -> None:
            await retry_action(
                action, self._retry_policy, sleep=self._retry_sleep, log=log,
            )

        try:
            log.info("%s のセッションを開始します...", credential.username)
            page = await context.new_page()
            advance(SessionState.PAGE_OPENED)

            log.info("%s へ遷移します...", self._website_url)
            await retried(lambda: page.goto(
                self._website_url, timeout=self._timings.navigation_timeout_ms,
            ))
            advance(SessionState.NAVIGATED_HOME)

            log.info('"AGREE" をクリックします...')
            await retried(lambda: page.click(AGREE_SELECTOR))
            advance(SessionState.AGREED)

            log.info('"Join" をクリックします...')
            await retried(lambda: page.click(JOIN_SELECTOR))
            advance(SessionState.JOINED)

            log.info('"Already a member? Login" をクリックします...')
            await retried(lambda: page.click(LOGIN_LINK_SELECTOR))
            advance(SessionState.LOGIN_FORM_OPENED)

            log.info("%s のログインフォームを入力します...", credential.username)
            await retried(lambda: self._fill_login_form(page, credential))
            advance(SessionState.CREDENTIALS_FILLED)

            log.info('"Continue" をクリックします...')
            await retried(lambda: page.click(CONTINUE_SELECTOR))
            advance(SessionState.LOGGED_IN)

            await self._random_wait(page, self._timings.post_login_wait_s, log, "ログイン後")
            advance(SessionState.POST_LOGIN_WAIT)

            log.info("%s へ遷移します...", self.target_url)
            await retried(lambda: page.goto(
                self.target_url, timeout=self._timings.navigation_timeout_ms,
            ))
            advance(SessionState.NAVIGATED_TO_TARGET)

            await self._random_wait(page, self._timings.pre_loop_wait_s, log, "クリック開始前")
            advance(SessionState.PRE_LOOP_WAIT)

            outer_cap = self._click_loop.draw_outer_cap()
            log.info("ボタンのクリックを開始します（%d 回）...", outer_cap)
            advance(SessionState.CLICK_LOOP_RUNNING)
            await self._click_loop.run(page, outer_cap, log=log)

            await page.close()
            advance(SessionState.COMPLETED)
            log.info("%s のセッションが完了しました", credential.username)
            return True

        except Exception as exc:
            log.error(
                "セッションが失敗しました（状態: %s）: %s",
                self._states[session_id].value, exc,
            )
            advance(SessionState.FAILED)
            return False

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    async def _fill_login_form(self, page: PageActions, credential: Credential) -> None:
        await page.fill(USERNAME_SELECTOR, credential.username)
        await page.fill(PASSWORD_SELECTOR, credential.password)

    async def _random_wait(
        self,
        page: PageActions,
        bounds: tuple[int, int],
        log: LoggerLike,
        label: str,
    ) -> None:
        seconds = self._rng.randint(*bounds)
        log.info("%s %d 秒待機します...", label, seconds)
        await page.sleep(seconds * 1000)
