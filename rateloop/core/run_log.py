"""
実行ログ — 1 回の実行に紐づくログ出力

プロセス全体で共有するログファイルではなく、Orchestrator の実行単位で
FileHandler を付け外しする。セッション単位のメッセージには
SessionLogAdapter で "[Session N]" プレフィックスを付与する。
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from .artifacts import format_run_timestamp, utc_now

PACKAGE_LOGGER_NAME = "rateloop"

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class SessionLogAdapter(logging.LoggerAdapter):
    """セッション ID をメッセージ先頭に付与する LoggerAdapter。

    session_id が 0 の場合はプレフィックスを付けない（実行全体のログ）。
    """

    def __init__(self, logger: LoggerLike, session_id: int) -> None:
        super().__init__(logger, {"session_id": session_id})
        self.session_id = session_id

    def process(self, msg, kwargs):
        if self.session_id > 0:
            msg = f"[Session {self.session_id}] {msg}"
        kwargs.setdefault("extra", {})["session_id"] = self.session_id
        return msg, kwargs


def session_logger(base: Optional[LoggerLike], session_id: int) -> SessionLogAdapter:
    """base ロガーをセッション用アダプタで包む。

    base が既に SessionLogAdapter の場合は内側のロガーを使い、
    プレフィックスの二重付与を避ける。
    """
    if base is None:
        base = logging.getLogger(PACKAGE_LOGGER_NAME)
    if isinstance(base, SessionLogAdapter):
        base = base.logger
    return SessionLogAdapter(base, session_id)


@contextmanager
def run_log(
    reports_dir: Path,
    started_at: Optional[datetime] = None,
    logger_name: str = PACKAGE_LOGGER_NAME,
) -> Iterator[Path]:
    """実行中だけ log_<timestamp>.txt へのファイル出力を有効にする。

    Args:
        reports_dir: ログファイルの出力先ディレクトリ
        started_at: ファイル名に使用する実行開始時刻（None で現在時刻）
        logger_name: ハンドラを付与するロガー名

    Yields:
        ログファイルのパス
    """
    started_at = started_at or utc_now()
    reports_dir.mkdir(parents=True, exist_ok=True)
    log_path = reports_dir / f"log_{format_run_timestamp(started_at)}.txt"

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.INFO)

    target = logging.getLogger(logger_name)
    previous_level = target.level
    if target.level == logging.NOTSET or target.level > logging.INFO:
        target.setLevel(logging.INFO)
    target.addHandler(handler)
    try:
        yield log_path
    finally:
        target.removeHandler(handler)
        target.setLevel(previous_level)
        handler.close()
