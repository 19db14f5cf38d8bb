"""表示シンクの抽象インターフェース（境界②）。

ティックごとに、カウンター1件につき1つの内訳を受け取る。
前回値との差分計算はシンク側の責務で、計算エンジンは常に全単位を渡す。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from counterboard.analysis.delta import Breakdown


class DisplaySinkInterface(ABC):
    """表示シンク。"""

    @abstractmethod
    def publish(self, counter_id: str, breakdown: Breakdown) -> None:
        """1カウンター分の最新の内訳を受け取る。"""
        ...

    @abstractmethod
    def forget(self, counter_id: str) -> None:
        """削除されたカウンターの表示状態を破棄する。存在しなくてもエラーにしない。"""
        ...
