"""時計の抽象インターフェース。

計算エンジンは壁時計を直接読まない。現在時刻は常にこの境界から注入する。
"""

from abc import ABC, abstractmethod
from datetime import datetime


class ClockInterface(ABC):
    """現在時刻の供給元。"""

    @abstractmethod
    def now(self) -> datetime:
        """現在時刻（offset-naive のローカル壁時計時刻）を返す。"""
        ...
