"""
Orchestrator のユニットテスト

FakeLauncher / FakeBrowser（conftest.py）とスタブの SessionRunner を使用する。

テスト対象:
  - セッション ID の入力順割り当てと集計
  - 完了順に依存しない集計結果
  - 例外を送出したセッションの失敗記録と他セッションへの非影響
  - ブラウザ・コンテキストの後始末
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from rateloop.core.orchestrator import Orchestrator, RunResult, SessionResult


# ---------------------------------------------------------------------------
# ヘルパー: スタブランナー
# ---------------------------------------------------------------------------

class StubRunner:
    """セッション ID ごとに結果を返すスタブ。

    Args:
        outcomes: {session_id: True/False/例外}。未指定の ID は True
        delays: {session_id: 完了までに譲る回数}（完了順の制御用）
    """

    def __init__(self, outcomes=None, delays=None, browser=None) -> None:
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.browser = browser
        self.calls: list[tuple[int, str]] = []
        self.completed: list[int] = []
        self.browser_closed_during_run = False

    async def run(self, credential, session_id, context) -> bool:
        self.calls.append((session_id, credential.username))
        for _ in range(self.delays.get(session_id, 0)):
            await asyncio.sleep(0)
        if self.browser is not None and self.browser.closed:
            self.browser_closed_during_run = True
        self.completed.append(session_id)
        outcome = self.outcomes.get(session_id, True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ===========================================================================
# テスト: RunResult
# ===========================================================================

class TestRunResult:
    """RunResult の集計プロパティのテスト。"""

    def test_empty(self) -> None:
        result = RunResult()
        assert result.total == 0
        assert result.success_count == 0
        assert result.fail_count == 0

    def test_counts_and_ordering(self) -> None:
        result = RunResult(results=[
            SessionResult(3, "c", True),
            SessionResult(1, "a", False),
            SessionResult(2, "b", True),
        ])
        assert result.total == 3
        assert result.success_count == 2
        assert result.fail_count == 1
        assert [r.session_id for r in result.results_by_id()] == [1, 2, 3]


# ===========================================================================
# テスト: 集計
# ===========================================================================

class TestAggregation:
    """並行実行と結果集計のテスト。"""

    async def test_one_failed_session(self, make_launcher, credentials) -> None:
        """セッション 2 のみ失敗した場合、成功 3 / 失敗 1 になること。"""
        runner = StubRunner(outcomes={2: False})
        orchestrator = Orchestrator(make_launcher(), runner)

        result = await orchestrator.run(credentials)

        assert result.success_count == 3
        assert result.fail_count == 1
        assert sorted(r.session_id for r in result.results) == [1, 2, 3, 4]
        failed = [r for r in result.results if not r.success]
        assert failed == [SessionResult(2, "user2@example.com", False)]

    async def test_ids_follow_input_order_regardless_of_completion(
        self, make_launcher, credentials,
    ) -> None:
        """完了順が逆でも ID は入力順で割り当てられること。"""
        runner = StubRunner(delays={1: 30, 2: 20, 3: 10, 4: 0})
        orchestrator = Orchestrator(make_launcher(), runner)

        result = await orchestrator.run(credentials)

        assert runner.completed == [4, 3, 2, 1]
        assert [r.session_id for r in result.results] == [4, 3, 2, 1]
        assert {r.session_id: r.username for r in result.results} == {
            i: f"user{i}@example.com" for i in range(1, 5)
        }

    async def test_sessions_run_concurrently(self, make_launcher, credentials) -> None:
        """全セッションが完了を待たずに開始されること。"""
        started = asyncio.Event()
        seen: list[int] = []

        class WaitingRunner:
            async def run(self, credential, session_id, context) -> bool:
                seen.append(session_id)
                if len(seen) == len(credentials):
                    started.set()
                await asyncio.wait_for(started.wait(), timeout=1)
                return True

        result = await Orchestrator(make_launcher(), WaitingRunner()).run(credentials)
        assert result.success_count == 4

    async def test_idempotent_with_deterministic_runner(self, make_launcher, credentials) -> None:
        """同じ決定的な動作なら 2 回の実行で同じ集計になること。"""
        outcomes = {1: True, 2: False, 3: True, 4: False}

        first = await Orchestrator(make_launcher(), StubRunner(outcomes)).run(credentials)
        second = await Orchestrator(make_launcher(), StubRunner(outcomes)).run(credentials)

        assert first.results_by_id() == second.results_by_id()
        assert (first.success_count, first.fail_count) == (second.success_count, second.fail_count)

    async def test_empty_credentials(self, make_launcher) -> None:
        launcher = make_launcher()
        result = await Orchestrator(launcher, StubRunner()).run([])
        assert result.total == 0
        assert launcher.browser.closed is True

    async def test_timestamps_and_duration(self, make_launcher, credentials) -> None:
        started = datetime(2024, 3, 15, 10, 30, 45)
        result = await Orchestrator(make_launcher(), StubRunner()).run(
            credentials, started_at=started,
        )
        assert result.started_at == started
        assert result.finished_at is not None
        assert result.duration_ms >= 0

    async def test_default_clock_is_utc(self, make_launcher, credentials) -> None:
        result = await Orchestrator(make_launcher(), StubRunner()).run(credentials)
        assert result.started_at.utcoffset() == timedelta(0)
        assert result.finished_at.utcoffset() == timedelta(0)


# ===========================================================================
# テスト: エラー処理
# ===========================================================================

class TestErrorIsolation:
    """セッション単位のエラー隔離のテスト。"""

    async def test_runner_exception_recorded_as_failure(self, make_launcher, credentials) -> None:
        """ランナーが例外を送出しても失敗として記録され、他は継続すること。"""
        runner = StubRunner(outcomes={3: RuntimeError("boom")})
        result = await Orchestrator(make_launcher(), runner).run(credentials)

        assert result.total == 4
        assert result.fail_count == 1
        assert [r.session_id for r in result.results if not r.success] == [3]

    async def test_context_creation_failure(
        self, make_launcher, make_browser, credentials,
    ) -> None:
        browser = make_browser(context_error=RuntimeError("no context"))
        runner = StubRunner()

        result = await Orchestrator(make_launcher(browser), runner).run(credentials)

        assert result.fail_count == 4
        assert runner.calls == []

    async def test_context_close_failure_keeps_result(
        self, make_launcher, make_browser, make_context, credentials,
    ) -> None:
        """コンテキスト終了の失敗はセッション結果に影響しないこと。"""
        browser = make_browser(
            context_factory=lambda i: make_context(close_error=RuntimeError("gone")),
        )
        result = await Orchestrator(make_launcher(browser), StubRunner()).run(credentials)

        assert result.total == 4
        assert result.success_count == 4

    async def test_launch_failure_propagates(self, make_launcher, credentials) -> None:
        launcher = make_launcher(launch_error=RuntimeError("no chromium"))
        with pytest.raises(RuntimeError, match="no chromium"):
            await Orchestrator(launcher, StubRunner()).run(credentials)


# ===========================================================================
# テスト: リソース管理
# ===========================================================================

class TestResourceLifecycle:
    """ブラウザ・コンテキストの生成と後始末のテスト。"""

    async def test_one_context_per_session_and_all_closed(
        self, make_launcher, credentials,
    ) -> None:
        launcher = make_launcher()
        await Orchestrator(launcher, StubRunner(outcomes={2: False})).run(credentials)

        assert launcher.launch_count == 1
        assert len(launcher.browser.contexts) == 4
        assert all(c.closed for c in launcher.browser.contexts)

    async def test_browser_closed_after_all_sessions(
        self, make_launcher, credentials,
    ) -> None:
        """ブラウザは全セッションの完了後にのみ閉じられること。"""
        launcher = make_launcher()
        runner = StubRunner(delays={1: 5, 2: 1, 3: 3, 4: 0}, browser=launcher.browser)

        await Orchestrator(launcher, runner).run(credentials)

        assert runner.browser_closed_during_run is False
        assert launcher.browser.closed is True
