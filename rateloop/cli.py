"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

rateloop コマンドとして以下のサブコマンドを提供する:
  - run: 全認証情報でセッションを並行実行し、レポートを出力
  - clean: reports/ 配下の古いログ・レポートを削除
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .config import ConfigError, RunConfig, apply_cli_overrides, load_config_from_env
from .core.artifacts import cleanup_reports, utc_now
from .core.orchestrator import RunResult
from .credentials import Credential, CredentialsError, load_credentials, write_sample_credentials

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "rateloop — 複数アカウントでのログイン・評価クリック自動化ツール\n\n"
        "認証情報は環境変数 CREDENTIALS_JSON または --credentials で指定します。"
    ),
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# コンソールログ
# ---------------------------------------------------------------------------

_LEVEL_COLORS = {
    logging.DEBUG: typer.colors.BRIGHT_BLACK,
    logging.INFO: typer.colors.WHITE,
    logging.WARNING: typer.colors.YELLOW,
    logging.ERROR: typer.colors.RED,
    logging.CRITICAL: typer.colors.RED,
}


class _ConsoleHandler(logging.Handler):
    """ログレベルに応じて色を付け、typer.echo で標準エラーに出力するハンドラ。"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            color = _LEVEL_COLORS.get(record.levelno, typer.colors.WHITE)
            typer.echo(typer.style(self.format(record), fg=color), err=True)
        except Exception:
            self.handleError(record)


def _configure_console_logging(verbose: bool) -> None:
    root = logging.getLogger("rateloop")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if any(isinstance(h, _ConsoleHandler) for h in root.handlers):
        return
    handler = _ConsoleHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    root.addHandler(handler)


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    credentials_file: Optional[Path] = typer.Option(
        None, "--credentials", "-c",
        help="認証情報ファイル（JSON / YAML）。省略時は CREDENTIALS_JSON を使用",
    ),
    headed: Optional[bool] = typer.Option(
        None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: ヘッドレス）",
    ),
    reports_dir: Optional[Path] = typer.Option(
        None, "--reports-dir", "-r", help="ログ・レポートの出力先（デフォルト: reports）",
    ),
    max_retries: Optional[int] = typer.Option(
        None, "--max-retries", help="ページ操作の最大リトライ回数",
    ),
    base_delay_ms: Optional[int] = typer.Option(
        None, "--base-delay-ms", help="リトライ基準遅延（ミリ秒）",
    ),
    url: Optional[str] = typer.Option(
        None, "--url", help="対象サイトの URL（デフォルト: NODEWEB または組み込み値）",
    ),
    keep_reports: bool = typer.Option(
        False, "--keep-reports", help="実行前のレポート削除を行わない",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを表示する"),
) -> None:
    """全認証情報でセッションを並行実行し、レポートを出力する。"""
    _configure_console_logging(verbose)

    try:
        config = apply_cli_overrides(
            load_config_from_env(),
            headed=headed,
            reports_dir=reports_dir,
            max_retries=max_retries,
            base_delay_ms=base_delay_ms,
            website_url=url,
        ).validate()
    except ConfigError as exc:
        typer.echo(f"設定エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    # 指定ファイルがない場合はサンプルを生成して終了
    if credentials_file is not None and not credentials_file.exists():
        write_sample_credentials(credentials_file)
        typer.echo(f"サンプルの認証情報ファイルを作成しました: {credentials_file}", err=True)
        typer.echo("実際の認証情報を記入してから再実行してください。", err=True)
        raise typer.Exit(code=1)

    try:
        credentials = load_credentials(credentials_file)
    except CredentialsError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"認証情報を読み込みました: {len(credentials)} 件")

    try:
        if not keep_reports:
            cleanup_reports(config.reports_dir, config.keep_reports_days)

        from .core.reporting import Reporter
        from .core.run_log import run_log

        started_at = utc_now()
        with run_log(config.reports_dir, started_at) as log_path:
            result = asyncio.run(_run_sessions(config, credentials, started_at))

        reporter = Reporter()
        reporter.generate_json(result, config.reports_dir)
        reporter.generate_summary(result, config.reports_dir)
        html_path = reporter.generate_html(result, config.reports_dir, log_path=log_path)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"セッション: {result.total} (成功={result.success_count}, 失敗={result.fail_count})")
    typer.echo(f"実行時間: {result.duration_ms / 1000:.2f} 秒")
    for session in result.results_by_id():
        mark = "✓" if session.success else "✗"
        typer.echo(f"  {mark} Session {session.session_id} ({session.username})")
    typer.echo(f"レポート: {html_path}")


# ---------------------------------------------------------------------------
# clean コマンド
# ---------------------------------------------------------------------------

@app.command()
def clean(
    reports_dir: Optional[Path] = typer.Option(
        None, "--reports-dir", "-r",
        help="レポートディレクトリ（デフォルト: RATELOOP_REPORTS_DIR または reports）",
    ),
    days: int = typer.Option(
        0, "--days", "-d", min=0, help="この日数より古いファイルを削除（0 で全削除）",
    ),
) -> None:
    """reports/ 配下のログ・レポート・スクリーンショットを削除する。"""
    if reports_dir is None:
        reports_dir = load_config_from_env().reports_dir

    try:
        deleted = cleanup_reports(reports_dir, days)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{deleted} 件のファイルを削除しました: {reports_dir}")


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

async def _run_sessions(
    config: RunConfig,
    credentials: list[Credential],
    started_at: Optional[datetime] = None,
) -> RunResult:
    """設定から Orchestrator を組み立てて全セッションを実行する。

    Args:
        config: 実行設定
        credentials: 認証情報
        started_at: 実行開始日時（ログファイル名と揃えるため）

    Returns:
        実行全体の結果
    """
    from .core.browser import PlaywrightLauncher
    from .core.click_loop import ClickLoopController
    from .core.orchestrator import Orchestrator
    from .core.randomness import SystemRandomSource
    from .core.session import SessionRunner

    rng = SystemRandomSource()
    runner = SessionRunner(
        website_url=config.website_url,
        retry_policy=config.retry_policy(),
        timings=config.session_timings(),
        click_loop=ClickLoopController(config=config.click_loop, rng=rng),
        rng=rng,
    )
    orchestrator = Orchestrator(PlaywrightLauncher(config.browser_options()), runner)
    return await orchestrator.run(credentials, started_at=started_at)
