"""ティックスケジューラのユニットテスト."""

import asyncio
from datetime import datetime
from unittest.mock import MagicMock

from counterboard.analysis.delta import Breakdown
from counterboard.analysis.engine import CounterEngine
from counterboard.display.scheduler import TickScheduler
from counterboard.interfaces.display_sink import DisplaySinkInterface


def _run(coro):
    """async テストを同期的に実行するヘルパー。"""
    return asyncio.run(coro)


def _engine(*snapshots):
    """snapshot() が順に値を返すエンジンのモック."""
    engine = MagicMock(spec=CounterEngine)
    engine.snapshot.side_effect = list(snapshots)
    return engine


class TestTick:
    """1回のティック."""

    def test_publishes_each_counter(self):
        engine = _engine([("a", Breakdown(seconds=1)), ("b", Breakdown(days=2))])
        sink = MagicMock(spec=DisplaySinkInterface)
        scheduler = TickScheduler(engine, sink)

        assert scheduler.tick() == 2
        assert [c.args for c in sink.publish.call_args_list] == [
            ("a", Breakdown(seconds=1)),
            ("b", Breakdown(days=2)),
        ]
        sink.forget.assert_not_called()

    def test_forgets_removed_counters(self):
        """前回あって今回無いカウンターは表示状態を破棄する."""
        engine = _engine(
            [("a", Breakdown()), ("b", Breakdown())],
            [("b", Breakdown(seconds=1))],
        )
        sink = MagicMock(spec=DisplaySinkInterface)
        scheduler = TickScheduler(engine, sink)

        scheduler.tick()
        assert scheduler.tick() == 1
        sink.forget.assert_called_once_with("a")

    def test_empty_tick(self):
        sink = MagicMock(spec=DisplaySinkInterface)
        scheduler = TickScheduler(_engine([]), sink)
        assert scheduler.tick() == 0
        sink.publish.assert_not_called()


class TestLoop:
    """バックグラウンドループ."""

    def test_runs_until_no_counters(self):
        """カウンターが無くなったティックでループが終了する."""

        async def _test():
            engine = _engine(
                [("a", Breakdown(seconds=1))],
                [("a", Breakdown(seconds=2))],
                [],
            )
            sink = MagicMock(spec=DisplaySinkInterface)
            scheduler = TickScheduler(engine, sink, interval=0.001)

            assert scheduler.ensure_running() is True
            assert scheduler.ensure_running() is False
            await asyncio.wait_for(scheduler._task, timeout=1)

            assert not scheduler.running
            assert engine.snapshot.call_count == 3
            sink.forget.assert_called_once_with("a")

        _run(_test())

    def test_restart_after_idle(self):
        async def _test():
            engine = _engine([], [("a", Breakdown())], [])
            scheduler = TickScheduler(engine, MagicMock(spec=DisplaySinkInterface), interval=0.001)

            scheduler.ensure_running()
            await asyncio.wait_for(scheduler._task, timeout=1)
            assert scheduler.ensure_running() is True
            await asyncio.wait_for(scheduler._task, timeout=1)
            assert engine.snapshot.call_count == 3

        _run(_test())

    def test_stop_cancels_running_loop(self):
        async def _test():
            engine = MagicMock(spec=CounterEngine)
            engine.snapshot.return_value = [("a", Breakdown())]
            scheduler = TickScheduler(engine, MagicMock(spec=DisplaySinkInterface), interval=60)

            scheduler.ensure_running()
            await asyncio.sleep(0)
            assert scheduler.running
            await scheduler.stop()
            assert not scheduler.running
            await scheduler.stop()  # 停止済みでもエラーにならない

        _run(_test())

    def test_tick_error_is_logged_and_loop_continues(self, caplog):
        """ティック中の例外はログに残し、ループは止めない."""

        async def _test():
            engine = _engine(
                [("a", Breakdown())],
                RuntimeError("boom"),
                [],
            )
            scheduler = TickScheduler(engine, MagicMock(spec=DisplaySinkInterface), interval=0.001)
            scheduler.ensure_running()
            await asyncio.wait_for(scheduler._task, timeout=1)
            assert engine.snapshot.call_count == 3

        _run(_test())
        assert "tick failed" in caplog.text

    def test_first_tick_error_does_not_idle(self, caplog):
        """最初のティックが失敗しても停止せず、次のティックで再試行する."""

        async def _test():
            engine = _engine(
                RuntimeError("database is locked"),
                [("a", Breakdown())],
                [],
            )
            sink = MagicMock(spec=DisplaySinkInterface)
            scheduler = TickScheduler(engine, sink, interval=0.001)
            scheduler.ensure_running()
            await asyncio.wait_for(scheduler._task, timeout=1)

            assert engine.snapshot.call_count == 3
            sink.publish.assert_called_once_with("a", Breakdown())

        _run(_test())
        assert "tick failed" in caplog.text

    def test_repeated_errors_keep_loop_running(self):
        """失敗が続いている間はループを止めない."""

        async def _test():
            engine = MagicMock(spec=CounterEngine)
            engine.snapshot.side_effect = RuntimeError("database is locked")
            scheduler = TickScheduler(
                engine, MagicMock(spec=DisplaySinkInterface), interval=0.001
            )
            scheduler.ensure_running()
            await asyncio.sleep(0.05)
            assert scheduler.running
            assert engine.snapshot.call_count > 1
            await scheduler.stop()

        _run(_test())

    def test_uses_real_snapshot_shape(self):
        """CounterEngine.snapshot の戻り値の形（id, Breakdown）をそのまま扱う."""
        from counterboard.clock import FixedClock
        from counterboard.interfaces.counter_store import (
            CounterRecord,
            CounterStoreInterface,
            Direction,
        )

        store = MagicMock(spec=CounterStoreInterface)
        store.load_counters.return_value = [
            CounterRecord(
                id="a",
                name="A",
                anchor="2024-01-01T00:00",
                direction=Direction.FORWARD,
                created_at="",
            )
        ]
        engine = CounterEngine(store, FixedClock(datetime(2024, 1, 2)))
        sink = MagicMock(spec=DisplaySinkInterface)
        assert TickScheduler(engine, sink).tick() == 1
        sink.publish.assert_called_once_with("a", Breakdown(days=1))
