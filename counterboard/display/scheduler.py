"""ティックスケジューラ。一定間隔で全カウンターを再計算して表示シンクへ渡す."""

import asyncio
import contextlib
import logging

from counterboard.analysis.engine import CounterEngine
from counterboard.interfaces.display_sink import DisplaySinkInterface

logger = logging.getLogger(__name__)


class TickScheduler:
    """asyncio タスクで tick() を interval 秒ごとに繰り返す.

    カウンターが1件も無いことを確認できたティックでループは自然に終了する。
    tick() が失敗した場合は終了せず、次の間隔で再試行する。
    カウンターの作成・インポート後は ensure_running() で再開する。
    """

    def __init__(
        self,
        engine: CounterEngine,
        sink: DisplaySinkInterface,
        interval: float = 1.0,
    ) -> None:
        self._engine = engine
        self._sink = sink
        self._interval = interval
        self._task: asyncio.Task | None = None
        self._known_ids: set[str] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> int:
        """全カウンターを1回評価して表示シンクへ渡す.

        Returns:
            評価したカウンター数
        """
        snapshot = self._engine.snapshot()
        current_ids = {counter_id for counter_id, _ in snapshot}
        for counter_id in self._known_ids - current_ids:
            self._sink.forget(counter_id)
        self._known_ids = current_ids

        for counter_id, breakdown in snapshot:
            self._sink.publish(counter_id, breakdown)
        return len(snapshot)

    def ensure_running(self) -> bool:
        """実行中でなければバックグラウンドタスクを起動する.

        イベントループ内から呼ぶこと。

        Returns:
            新たに起動した場合 True
        """
        if self.running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("tick scheduler started: interval=%.3fs", self._interval)
        return True

    async def stop(self) -> None:
        """タスクを停止する。停止済みでもエラーにしない."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("tick scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                count = self.tick()
            except Exception:
                logger.exception("tick failed")
            else:
                if count == 0:
                    logger.info("no counters left, tick scheduler idle")
                    return
            await asyncio.sleep(self._interval)
