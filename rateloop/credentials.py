"""
認証情報 — ログインに使用する認証情報の読み込み

環境変数 CREDENTIALS_JSON、または JSON / YAML ファイルから
{識別子: {username, password}} 形式のマッピングを読み込み、
入力順を保った Credential のリストに変換する。

パスワードはログ・レポートに出力しない。
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

ENV_CREDENTIALS = "CREDENTIALS_JSON"

SAMPLE_CREDENTIALS: dict[str, dict[str, str]] = {
    "user1": {"username": "testuser1@example.com", "password": "password1"},
    "user2": {"username": "testuser2@example.com", "password": "password2"},
}


class CredentialsError(ValueError):
    """認証情報が存在しない、または形式が不正な場合に送出される。"""


# ---------------------------------------------------------------------------
# モデル
# ---------------------------------------------------------------------------

class Credential(BaseModel):
    """1 アカウント分の認証情報（不変）。"""

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(..., min_length=1, description="認証情報セットの識別子")
    username: str = Field(..., min_length=1, description="ログインユーザー名")
    password: str = Field(..., repr=False, description="ログインパスワード")


class _CredentialEntry(BaseModel):
    # YAML は引用符なしの数字を int として読み込むため文字列に変換する
    model_config = ConfigDict(coerce_numbers_to_str=True)

    username: str = Field(..., min_length=1)
    password: str


# ---------------------------------------------------------------------------
# 変換
# ---------------------------------------------------------------------------

def parse_credentials(data: Any) -> list[Credential]:
    """{識別子: {username, password}} 形式のマッピングを Credential リストに変換する。

    Args:
        data: デコード済みのマッピング

    Returns:
        入力順の Credential リスト

    Raises:
        CredentialsError: マッピングでない、またはエントリの形式が不正な場合
    """
    if not isinstance(data, Mapping):
        raise CredentialsError(
            "認証情報は {識別子: {username, password}} 形式のオブジェクトである必要があります"
        )

    credentials: list[Credential] = []
    for identifier, entry in data.items():
        try:
            parsed = _CredentialEntry.model_validate(dict(entry) if isinstance(entry, Mapping) else entry)
            credential = Credential(
                identifier=str(identifier),
                username=parsed.username,
                password=parsed.password,
            )
        except PydanticValidationError as exc:
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) or "(root)" for err in exc.errors()
            )
            raise CredentialsError(
                f"認証情報 '{identifier}' の形式が不正です: {fields}"
            ) from exc
        credentials.append(credential)
    return credentials


def load_credentials_from_env(environ: Optional[Mapping[str, str]] = None) -> list[Credential]:
    """環境変数 CREDENTIALS_JSON から認証情報を読み込む。

    環境変数が未設定の場合は空リストを返す。

    Raises:
        CredentialsError: JSON として不正な場合
    """
    environ = os.environ if environ is None else environ
    raw = environ.get(ENV_CREDENTIALS)
    if not raw:
        logger.warning("環境変数 %s が設定されていません", ENV_CREDENTIALS)
        logger.warning(
            "例: export %s='{\"user1\":{\"username\":\"test@example.com\",\"password\":\"pass\"}}'",
            ENV_CREDENTIALS,
        )
        return []

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CredentialsError(f"{ENV_CREDENTIALS} の JSON が不正です: {exc}") from exc

    credentials = parse_credentials(data)
    logger.info("環境変数から認証情報を読み込みました（%d 件）", len(credentials))
    return credentials


def load_credentials_file(path: Path) -> list[Credential]:
    """JSON / YAML ファイルから認証情報を読み込む。

    YAML は JSON の上位互換のため、どちらも ruamel.yaml で読み込む。

    Raises:
        FileNotFoundError: ファイルが存在しない場合
        CredentialsError: 構文または形式が不正な場合
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"認証情報ファイルが見つかりません: {path}")

    yaml = YAML(typ="safe")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.load(f)
    except YAMLError as exc:
        raise CredentialsError(f"認証情報ファイルの構文エラー: {path}: {exc}") from exc

    if data is None:
        return []

    credentials = parse_credentials(data)
    logger.info("%s から認証情報を読み込みました（%d 件）", path, len(credentials))
    return credentials


def write_sample_credentials(path: Path) -> Path:
    """サンプルの認証情報ファイル（JSON）を書き出す。"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(SAMPLE_CREDENTIALS, f, ensure_ascii=False, indent=2)
    logger.info("サンプルの認証情報ファイルを作成しました: %s", path)
    return path


def load_credentials(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> list[Credential]:
    """ファイル指定があればファイルから、なければ環境変数から読み込む。

    Raises:
        FileNotFoundError: 指定ファイルが存在しない場合
        CredentialsError: 形式不正、または 1 件も読み込めなかった場合
    """
    if path is not None:
        credentials = load_credentials_file(path)
    else:
        credentials = load_credentials_from_env(environ)

    if not credentials:
        raise CredentialsError("利用可能な認証情報がありません")
    return credentials
