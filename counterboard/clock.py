"""時計の実装。"""

from datetime import datetime, timedelta

from counterboard.interfaces.clock import ClockInterface


class SystemClock(ClockInterface):
    """ローカル壁時計。"""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(ClockInterface):
    """手動で進める時計（テスト・再計算用）。"""

    def __init__(self, current: datetime):
        self._current = current.replace(tzinfo=None)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = current.replace(tzinfo=None)

    def advance(self, **delta: float) -> datetime:
        """timedelta の引数で時刻を進め、新しい時刻を返す。"""
        self._current += timedelta(**delta)
        return self._current
