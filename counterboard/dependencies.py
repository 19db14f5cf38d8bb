"""DI用ファクトリ関数。

counterboard/ 直下に配置することで、ingestion/ から store/ への
直接依存を避けつつ、FastAPI の Depends() で注入できる。
各コンポーネントはアプリケーション（app.state）が所有し、初回アクセス時に構築する。
"""

from pathlib import Path

from fastapi import FastAPI, Request

from counterboard.analysis.engine import CounterEngine
from counterboard.clock import SystemClock
from counterboard.config import Settings
from counterboard.display.board import BusDisplaySink
from counterboard.display.scheduler import TickScheduler
from counterboard.ingestion.event_bus import EventBus
from counterboard.interfaces.clock import ClockInterface
from counterboard.interfaces.counter_store import CounterStoreInterface


def init_state(
    app: FastAPI,
    settings: Settings,
    store: CounterStoreInterface | None = None,
    clock: ClockInterface | None = None,
) -> None:
    """app.state に設定と注入済みコンポーネントを載せる。未指定のものは遅延構築。"""
    app.state.settings = settings
    app.state.clock = clock or SystemClock()
    app.state.store = store
    app.state.engine = None
    app.state.event_bus = EventBus()
    app.state.sink = None
    app.state.scheduler = None


def store_for(app: FastAPI) -> CounterStoreInterface:
    state = app.state
    if state.store is None:
        from counterboard.store.sqlite import SqliteCounterStore

        db_path = Path(state.settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        state.store = SqliteCounterStore(str(db_path), clock=state.clock)
    return state.store


def engine_for(app: FastAPI) -> CounterEngine:
    state = app.state
    if state.engine is None:
        state.engine = CounterEngine(store_for(app), state.clock)
    return state.engine


def sink_for(app: FastAPI) -> BusDisplaySink:
    state = app.state
    if state.sink is None:
        state.sink = BusDisplaySink(
            state.event_bus, view_mode=engine_for(app).get_view_mode()
        )
    return state.sink


def scheduler_for(app: FastAPI) -> TickScheduler:
    state = app.state
    if state.scheduler is None:
        state.scheduler = TickScheduler(
            engine_for(app),
            sink_for(app),
            interval=state.settings.tick_interval,
        )
    return state.scheduler


# ---------- Depends() 用 ----------


def get_engine(request: Request) -> CounterEngine:
    """アプリケーションが所有する CounterEngine を返す。"""
    return engine_for(request.app)


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_display_sink(request: Request) -> BusDisplaySink:
    return sink_for(request.app)


def get_scheduler(request: Request) -> TickScheduler:
    return scheduler_for(request.app)
