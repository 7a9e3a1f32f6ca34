"""
乱数ソース — ランダム待機・クリック対象選択の注入ポイント

セッション実行とクリックループは乱数を直接生成せず、
RandomSource を通じて整数を取得する。テストでは固定値を返す実装を渡す。
"""

from __future__ import annotations

import random
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class RandomSource(Protocol):
    """一様乱数整数の供給元。"""

    def randint(self, a: int, b: int) -> int:
        """a 以上 b 以下の整数を返す（両端を含む）。"""
        ...


class SystemRandomSource:
    """random.Random による RandomSource 実装。

    seed を指定すると再現可能な乱数列になる。
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)
