"""
オーケストレータ — 複数セッションの並行実行と結果集計

ブラウザを 1 つ起動し、認証情報ごとに分離された BrowserContext を生成して
SessionRunner を asyncio で並行実行する。

  - セッション ID は並行実行の開始前に入力順で 1 から割り当てる
  - 各タスクは自身の例外を捕捉して失敗として記録し、他のセッションを止めない
  - 結果は完了順に追加される
  - ブラウザは全タスクの完了（gather）後に閉じる
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

from ..credentials import Credential
from .artifacts import utc_now
from .browser import BrowserContextHandle, BrowserHandle, BrowserLauncher
from .run_log import LoggerLike, session_logger

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 結果データクラス
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionResult:
    """1 セッションの実行結果。

    Attributes:
        session_id: セッション ID（1 始まり、入力順）
        username: 使用したユーザー名
        success: セッションが完了したか
    """

    session_id: int
    username: str
    success: bool


@dataclass
class RunResult:
    """1 回の実行全体の結果。

    Attributes:
        results: セッション結果（完了順）
        started_at: 実行開始日時
        finished_at: 実行終了日時
        duration_ms: 実行時間（ミリ秒）
    """

    results: list[SessionResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def fail_count(self) -> int:
        return self.total - self.success_count

    def results_by_id(self) -> list[SessionResult]:
        """セッション ID 順に並べた結果を返す。"""
        return sorted(self.results, key=lambda r: r.session_id)


# ---------------------------------------------------------------------------
# セッションランナー Protocol
# ---------------------------------------------------------------------------

class SessionRunnerLike(Protocol):
    """Orchestrator が呼び出すセッション実行のインターフェース。"""

    async def run(
        self,
        credential: Credential,
        session_id: int,
        context: BrowserContextHandle,
    ) -> bool:
        ...


# ---------------------------------------------------------------------------
# Orchestrator 本体
# ---------------------------------------------------------------------------

class Orchestrator:
    """全認証情報のセッションを並行実行し、結果を集計する。

    使用例::

        orchestrator = Orchestrator(PlaywrightLauncher(options), SessionRunner(url))
        result = await orchestrator.run(credentials)
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        runner: SessionRunnerLike,
        log: Optional[LoggerLike] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._launcher = launcher
        self._runner = runner
        self._log = log or logger
        self._clock = clock

    async def run(
        self,
        credentials: Sequence[Credential],
        started_at: Optional[datetime] = None,
    ) -> RunResult:
        """全セッションを実行し、完了後に集計結果を返す。

        Args:
            credentials: 認証情報（この順でセッション ID を割り当てる）
            started_at: 記録する開始日時（None で現在時刻）。ログファイル名と揃える場合に指定

        Returns:
            実行全体の結果

        Raises:
            Exception: ブラウザの起動に失敗した場合
        """
        result = RunResult(started_at=started_at or self._clock())
        start = time.perf_counter()

        self._log.info("%d セッションで実行を開始します", len(credentials))
        self._log.info("開始時刻: %s", result.started_at.isoformat())

        assignments = list(enumerate(credentials, start=1))

        async with self._launcher.launch() as browser:
            await asyncio.gather(*(
                self._run_session(browser, session_id, credential, result.results)
                for session_id, credential in assignments
            ))
            await browser.close()

        result.finished_at = self._clock()
        result.duration_ms = (time.perf_counter() - start) * 1000

        self._log.info("全セッションが完了しました")
        self._log.info("合計実行時間: %.2f 秒", result.duration_ms / 1000)
        for session in result.results_by_id():
            self._log.info(
                "Session %d (%s): %s",
                session.session_id, session.username,
                "成功" if session.success else "失敗",
            )
        self._log.info("成功 %d / 失敗 %d", result.success_count, result.fail_count)
        return result

    async def _run_session(
        self,
        browser: BrowserHandle,
        session_id: int,
        credential: Credential,
        results: list[SessionResult],
    ) -> None:
        """1 セッションを実行し、結果を results に追加する。"""
        log = session_logger(self._log, session_id)
        context: Optional[BrowserContextHandle] = None

        try:
            context = await browser.new_context()
            success = await self._runner.run(credential, session_id, context)
        except Exception as exc:
            log.error("セッション %d で致命的なエラー: %s", session_id, exc)
            success = False

        if context is not None:
            try:
                await context.close()
            except Exception as exc:
                log.warning("コンテキストの終了に失敗しました: %s", exc)

        results.append(SessionResult(
            session_id=session_id,
            username=credential.username,
            success=bool(success),
        ))
