"""
成果物管理 — レポートディレクトリの準備とクリーンアップ

実行ごとに生成されるログ・サマリー・レポート・スクリーンショットを
reports/ 配下で管理する。

主な機能:
  - utc_now(): 実行時刻（UTC）
  - format_run_timestamp(): ファイル名用のタイムスタンプ文字列
  - ensure_reports_dir(): reports/ と screenshots/ の作成
  - cleanup_reports(): 古い成果物の削除（0 日指定で全削除）
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

SCREENSHOTS_DIRNAME = "screenshots"

# クリーンアップ対象のファイル名接頭辞
_REPORT_PREFIXES = ("log_", "summary_", "report_")

_SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """現在時刻を UTC（タイムゾーン付き）で返す。実行時刻とファイル名はこれを基準にする。"""
    return datetime.now(timezone.utc)


def format_run_timestamp(moment: datetime) -> str:
    """ファイル名に使用できる形式（YYYY-MM-DDTHH-MM-SS）に変換する。"""
    return moment.strftime("%Y-%m-%dT%H-%M-%S")


def ensure_reports_dir(reports_dir: Path) -> Path:
    """reports/ と reports/screenshots/ を作成する。

    Returns:
        スクリーンショットディレクトリのパス
    """
    screenshots_dir = reports_dir / SCREENSHOTS_DIRNAME
    if not screenshots_dir.exists():
        screenshots_dir.mkdir(parents=True, exist_ok=True)
        logger.info("レポートディレクトリを作成しました: %s", reports_dir)
    return screenshots_dir


def _is_report_file(path: Path) -> bool:
    return path.is_file() and (
        path.name.startswith(_REPORT_PREFIXES) or path.suffix == ".html"
    )


def cleanup_reports(
    reports_dir: Path,
    max_age_days: int = 0,
    now: float | None = None,
) -> int:
    """古いログ・レポート・スクリーンショットを削除する。

    max_age_days が 0 の場合は対象ファイルを全て削除する。
    それ以外の場合は更新日時が閾値より古いファイルのみ削除する。

    Args:
        reports_dir: レポートディレクトリ
        max_age_days: 保持日数（0 で全削除）
        now: 現在時刻（UNIX 時間）。テスト用

    Returns:
        削除したファイル数
    """
    if max_age_days < 0:
        raise ValueError(f"max_age_days は 0 以上である必要があります: {max_age_days}")

    screenshots_dir = ensure_reports_dir(reports_dir)
    now = time.time() if now is None else now
    threshold = max_age_days * _SECONDS_PER_DAY

    def _expired(path: Path) -> bool:
        if max_age_days == 0:
            return True
        return now - path.stat().st_mtime > threshold

    screenshots = [p for p in screenshots_dir.iterdir() if p.is_file() and _expired(p)]
    for path in screenshots:
        path.unlink()

    reports = [p for p in reports_dir.iterdir() if _is_report_file(p) and _expired(p)]
    for path in reports:
        path.unlink()

    if max_age_days == 0:
        logger.info(
            "以前のレポートを全て削除しました（スクリーンショット %d 件, レポート %d 件）",
            len(screenshots), len(reports),
        )
    elif screenshots or reports:
        logger.info(
            "%d 日より古いファイルを削除しました（スクリーンショット %d 件, レポート %d 件）",
            max_age_days, len(screenshots), len(reports),
        )

    return len(screenshots) + len(reports)
