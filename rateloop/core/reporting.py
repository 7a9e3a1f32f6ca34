"""
Reporter — 実行結果レポートの生成

RunResult を受け取り、JSON / HTML / テキストサマリー形式のレポートを生成する。
ファイル名には実行開始時刻のタイムスタンプを付与する。

主な機能:
  - generate_json(): JSON レポート（report_<ts>.json）の生成
  - generate_html(): Jinja2 テンプレートを使用した HTML レポート（report_<ts>.html）の生成
  - generate_summary(): テキストサマリー（summary_<ts>.txt）の生成
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader

from .artifacts import format_run_timestamp, utc_now
from .orchestrator import RunResult

logger = logging.getLogger(__name__)

# テンプレートディレクトリのパス
_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"


class Reporter:
    """実行結果レポートの生成クラス。"""

    # -------------------------------------------------------------------
    # JSON レポート
    # -------------------------------------------------------------------

    def generate_json(self, result: RunResult, output_dir: Path) -> Path:
        """JSON レポートを生成する。

        Args:
            result: 実行結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成されたファイルのパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self._build_report_dict(result)

        output_path = output_dir / f"report_{self._timestamp(result)}.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report_data, f, ensure_ascii=False, indent=2)

        logger.info("JSON レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # HTML レポート
    # -------------------------------------------------------------------

    def generate_html(
        self,
        result: RunResult,
        output_dir: Path,
        log_path: Optional[Path] = None,
    ) -> Path:
        """HTML レポートを生成する。

        Jinja2 テンプレート（templates/report.html.j2）を使用して
        スタンドアロン HTML レポートを生成する。log_path を指定すると
        実行ログの内容をレポート末尾に埋め込む。

        Args:
            result: 実行結果
            output_dir: 出力先ディレクトリ
            log_path: 実行ログファイル

        Returns:
            生成されたファイルのパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self._build_report_dict(result)

        log_content = ""
        if log_path is not None and log_path.exists():
            log_content = log_path.read_text(encoding="utf-8")

        env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            autoescape=True,
        )
        template = env.get_template("report.html.j2")
        html_content = template.render(report=report_data, log_content=log_content)

        output_path = output_dir / f"report_{self._timestamp(result)}.html"
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(html_content)

        logger.info("HTML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # テキストサマリー
    # -------------------------------------------------------------------

    def generate_summary(self, result: RunResult, output_dir: Path) -> Path:
        """テキスト形式のサマリーを生成する。

        Args:
            result: 実行結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成されたファイルのパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        lines = [
            "==== AUTOMATION REPORT SUMMARY ====",
            f"Time: {(result.finished_at or utc_now()).isoformat()}",
            f"Total Sessions: {result.total}",
            f"Successful: {result.success_count}",
            f"Failed: {result.fail_count}",
            f"Run Time: {result.duration_ms / 1000:.2f} seconds",
            "",
            "==== SESSION DETAILS ====",
        ]
        for session in result.results_by_id():
            status = "Success" if session.success else "Failed"
            lines.append(f"Session {session.session_id} ({session.username}): {status}")

        output_path = output_dir / f"summary_{self._timestamp(result)}.txt"
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        logger.info("サマリーを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def _build_report_dict(self, result: RunResult) -> dict[str, Any]:
        """RunResult をレポート用辞書に変換する。"""
        sessions = [
            {
                "id": s.session_id,
                "username": s.username,
                "success": s.success,
                "status": "success" if s.success else "failed",
            }
            for s in result.results_by_id()
        ]
        return {
            "started_at": result.started_at.isoformat() if result.started_at else None,
            "finished_at": result.finished_at.isoformat() if result.finished_at else None,
            "duration_ms": result.duration_ms,
            "sessions": sessions,
            "summary": {
                "total": result.total,
                "success": result.success_count,
                "failed": result.fail_count,
            },
        }

    def _timestamp(self, result: RunResult) -> str:
        return format_run_timestamp(result.started_at or utc_now())
