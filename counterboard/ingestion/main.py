"""FastAPIアプリケーション。

カウンター操作API + インポート／エクスポートAPI + ティック配信（SSE）を統合。
"""

from contextlib import asynccontextmanager
from typing import Annotated

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, field_validator

from counterboard.analysis.confirmation import (
    ConfirmationRequest,
    Decision,
    ImportChoice,
)
from counterboard.analysis.delta import Breakdown, breakdown_for
from counterboard.analysis.engine import CounterEngine
from counterboard.config import Settings
from counterboard.dependencies import (
    get_display_sink,
    get_engine,
    get_event_bus,
    get_scheduler,
    init_state,
    scheduler_for,
)
from counterboard.display.board import BusDisplaySink
from counterboard.display.scheduler import TickScheduler
from counterboard.errors import (
    CounterNotFoundError,
    ImportFormatError,
    InvalidCounterInputError,
)
from counterboard.ingestion.event_bus import (
    COUNTERS_CHANGED_EVENT,
    EventBus,
    format_sse,
)
from counterboard.interfaces.clock import ClockInterface
from counterboard.interfaces.counter_store import (
    CounterRecord,
    CounterStoreInterface,
    Direction,
    ViewMode,
)
from counterboard.logging_handler import configure_root

EngineDep = Annotated[CounterEngine, Depends(get_engine)]
BusDep = Annotated[EventBus, Depends(get_event_bus)]
SinkDep = Annotated[BusDisplaySink, Depends(get_display_sink)]
SchedulerDep = Annotated[TickScheduler, Depends(get_scheduler)]

router = APIRouter()


# ---------- Pydantic モデル ----------


class CounterCreateRequest(BaseModel):
    """POST /api/counters のリクエストボディ。"""

    name: str
    anchor: str
    direction: Direction = Direction.FORWARD

    @field_validator("name", "anchor", mode="after")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class CounterUpdateRequest(BaseModel):
    """PUT /api/counters/{id} のリクエストボディ。direction 省略時は現状維持。"""

    name: str
    anchor: str
    direction: Direction | None = None

    @field_validator("name", "anchor", mode="after")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class BreakdownResponse(BaseModel):
    """6単位の内訳。"""

    years: int
    months: int
    days: int
    hours: int
    minutes: int
    seconds: int


class ResetPeriodResponse(BaseModel):
    start_date: str
    end_date: str
    duration_ms: int
    reset_at: str


class CounterResponse(BaseModel):
    """1件のカウンターと現在の内訳。"""

    id: str
    name: str
    anchor: str
    direction: Direction
    created_at: str
    original_start_date: str | None
    reset_history: list[ResetPeriodResponse]
    breakdown: BreakdownResponse


class ConfirmationResponse(BaseModel):
    """確認が必要な操作の確認内容。"""

    action: str
    message: str
    counter_id: str | None = None
    item_count: int | None = None


class ViewModeRequest(BaseModel):
    view_mode: str


# ---------- ヘルパー ----------


def _to_breakdown_response(breakdown: Breakdown) -> BreakdownResponse:
    return BreakdownResponse(**breakdown.as_dict())


def _to_counter_response(record: CounterRecord, breakdown: Breakdown) -> CounterResponse:
    return CounterResponse(
        id=record.id,
        name=record.name,
        anchor=record.anchor,
        direction=record.direction,
        created_at=record.created_at,
        original_start_date=record.original_start_date,
        reset_history=[
            ResetPeriodResponse(
                start_date=p.start_date,
                end_date=p.end_date,
                duration_ms=p.duration_ms,
                reset_at=p.reset_at,
            )
            for p in record.reset_history
        ],
        breakdown=_to_breakdown_response(breakdown),
    )


def _to_confirmation_response(request: ConfirmationRequest) -> ConfirmationResponse:
    return ConfirmationResponse(
        action=request.action,
        message=request.message,
        counter_id=request.counter_id,
        item_count=request.item_count,
    )


def _now_response(engine: CounterEngine, record: CounterRecord) -> CounterResponse:
    return _to_counter_response(record, engine.breakdown(record.id))


# ---------- エンドポイント ----------


@router.get("/api/health")
async def health_check():
    """ヘルスチェック。"""
    return {"status": "ok"}


@router.get("/api/counters")
async def list_counters(request: Request, engine: EngineDep):
    """全カウンターと現在の内訳を取得する。"""
    now = request.app.state.clock.now()
    return {
        "counters": [
            _to_counter_response(r, breakdown_for(r, now))
            for r in engine.list_counters()
        ]
    }


@router.post("/api/counters")
async def create_counter(
    body: CounterCreateRequest,
    engine: EngineDep,
    bus: BusDep,
    scheduler: SchedulerDep,
):
    """カウンターを作成する。入力不正は 400。"""
    record = engine.create_counter(body.name, body.anchor, body.direction)
    bus.publish(COUNTERS_CHANGED_EVENT, {"action": "create", "counter_id": record.id})
    scheduler.ensure_running()
    return _now_response(engine, record)


@router.get("/api/counters/{counter_id}")
async def get_counter(counter_id: str, engine: EngineDep):
    """1件のカウンターを取得する。未登録なら 404。"""
    return _now_response(engine, engine.get_counter(counter_id))


@router.put("/api/counters/{counter_id}")
async def update_counter(
    counter_id: str,
    body: CounterUpdateRequest,
    engine: EngineDep,
    bus: BusDep,
):
    """名前・起点・向きを変更する。"""
    record = engine.edit_counter(counter_id, body.name, body.anchor, body.direction)
    bus.publish(COUNTERS_CHANGED_EVENT, {"action": "edit", "counter_id": counter_id})
    return _now_response(engine, record)


@router.post("/api/counters/{counter_id}/reset")
async def reset_counter(
    counter_id: str,
    engine: EngineDep,
    bus: BusDep,
    confirm: bool = False,
):
    """カウンターをリセットする。confirm=false なら確認内容を返すだけ。"""
    if not confirm:
        return {
            "reset": False,
            "confirmation": _to_confirmation_response(engine.request_reset(counter_id)),
        }
    record = engine.reset_counter(counter_id, Decision.from_flag(confirm))
    bus.publish(COUNTERS_CHANGED_EVENT, {"action": "reset", "counter_id": counter_id})
    return {"reset": True, "counter": _now_response(engine, record)}


@router.delete("/api/counters/{counter_id}")
async def delete_counter(
    counter_id: str,
    engine: EngineDep,
    bus: BusDep,
    sink: SinkDep,
    confirm: bool = False,
):
    """カウンターを削除する。confirm=false なら確認内容を返すだけ。"""
    if not confirm:
        return {
            "deleted": False,
            "confirmation": _to_confirmation_response(engine.request_delete(counter_id)),
        }
    engine.delete_counter(counter_id, Decision.from_flag(confirm))
    sink.forget(counter_id)
    bus.publish(COUNTERS_CHANGED_EVENT, {"action": "delete", "counter_id": counter_id})
    return {"deleted": True}


@router.delete("/api/counters")
async def reset_all(
    engine: EngineDep,
    bus: BusDep,
    scheduler: SchedulerDep,
    confirm: bool = False,
):
    """全カウンターを削除する。confirm=false なら確認内容を返すだけ。"""
    if not confirm:
        return {
            "deleted": 0,
            "confirmation": _to_confirmation_response(engine.request_reset_all()),
        }
    count = engine.reset_all(Decision.from_flag(confirm))
    await scheduler.stop()
    bus.publish(COUNTERS_CHANGED_EVENT, {"action": "reset_all", "counter_id": None})
    return {"deleted": count}


@router.get("/api/export")
async def export_counters(engine: EngineDep):
    """全カウンターを JSON ファイルとしてダウンロードする。"""
    return Response(
        content=engine.export_counters(),
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{engine.export_filename()}"'
        },
    )


@router.post("/api/import")
async def import_counters(
    file: UploadFile,
    engine: EngineDep,
    bus: BusDep,
    scheduler: SchedulerDep,
    choice: ImportChoice | None = None,
):
    """JSON ファイルからカウンターを取り込む。

    choice 省略時は検証のみ行い確認内容を返す。
    replace は置き換え、merge は新しいIDを振って追加、cancel は何もしない。
    """
    content = await file.read()
    try:
        if choice is None:
            return {
                "imported": False,
                "confirmation": _to_confirmation_response(
                    engine.request_import(content)
                ),
            }
        total = engine.import_counters(content, choice)
    except ImportFormatError as ex:
        raise HTTPException(status_code=400, detail=str(ex)) from ex

    if choice is ImportChoice.CANCEL:
        return {"imported": False, "total": total}
    bus.publish(COUNTERS_CHANGED_EVENT, {"action": "import", "counter_id": None})
    scheduler.ensure_running()
    return {"imported": True, "total": total}


@router.get("/api/preferences/view-mode")
async def get_view_mode(engine: EngineDep):
    return {"view_mode": engine.get_view_mode().value}


@router.put("/api/preferences/view-mode")
async def put_view_mode(body: ViewModeRequest, engine: EngineDep, sink: SinkDep):
    """表示モードを保存し、配信中の表示シンクにも反映する。未知の値は flip に丸める。"""
    mode: ViewMode = engine.set_view_mode(body.view_mode)
    sink.view_mode = mode
    return {"view_mode": mode.value}


@router.get("/api/events")
async def stream_events(bus: BusDep):
    """ティック差分とカウンター変更を Server-Sent Events で中継する。"""

    async def _stream():
        async with bus.subscribe() as queue:
            while True:
                message = await queue.get()
                yield format_sse(message)

    return StreamingResponse(_stream(), media_type="text/event-stream")


# ---------- 例外ハンドラ ----------


async def _invalid_input_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _not_found_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ---------- アプリケーション ----------


@asynccontextmanager
async def _lifespan(app: FastAPI):
    scheduler = scheduler_for(app)
    scheduler.ensure_running()
    yield
    await scheduler.stop()


def create_app(
    settings: Settings | None = None,
    store: CounterStoreInterface | None = None,
    clock: ClockInterface | None = None,
) -> FastAPI:
    """アプリケーションを構築する。store / clock は注入可能（テスト用）。"""
    settings = settings or Settings.from_env()
    configure_root(settings.log_level, settings.log_file)

    application = FastAPI(
        title="カウンターボード API",
        version="0.1.0",
        lifespan=_lifespan,
    )
    init_state(application, settings, store=store, clock=clock)
    application.add_exception_handler(InvalidCounterInputError, _invalid_input_handler)
    application.add_exception_handler(CounterNotFoundError, _not_found_handler)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """uvicorn でアプリケーションを起動する。"""
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)
