# コアモジュール
# リトライ、ブラウザ操作インターフェース、クリックループ、セッション実行、
# オーケストレータ、実行ログ、レポート生成、成果物管理を提供

from .artifacts import cleanup_reports, format_run_timestamp
from .browser import (
    BrowserContextHandle,
    BrowserHandle,
    BrowserLauncher,
    BrowserOptions,
    PageActions,
    PlaywrightLauncher,
)
from .click_loop import ClickLoopConfig, ClickLoopController, ClickLoopResult
from .orchestrator import Orchestrator, RunResult, SessionResult
from .randomness import RandomSource, SystemRandomSource
from .reporting import Reporter
from .retry import RetryPolicy, retry_action
from .run_log import SessionLogAdapter, run_log
from .session import SessionRunner, SessionState, SessionTimings

__all__ = [
    "BrowserContextHandle",
    "BrowserHandle",
    "BrowserLauncher",
    "BrowserOptions",
    "ClickLoopConfig",
    "ClickLoopController",
    "ClickLoopResult",
    "Orchestrator",
    "PageActions",
    "PlaywrightLauncher",
    "RandomSource",
    "Reporter",
    "RetryPolicy",
    "RunResult",
    "SessionLogAdapter",
    "SessionResult",
    "SessionRunner",
    "SessionState",
    "SessionTimings",
    "SystemRandomSource",
    "cleanup_reports",
    "format_run_timestamp",
    "retry_action",
    "run_log",
]
