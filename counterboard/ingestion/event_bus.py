"""インメモリ EventBus。

単一プロセス（uvicorn）前提の軽量 pub/sub。
表示シンクがティックごとの差分を publish し、
SSE エンドポイントが subscribe してフロントへ中継する。
"""

import asyncio
import json
from contextlib import asynccontextmanager

TICK_EVENT = "tick"
COUNTERS_CHANGED_EVENT = "counters-changed"


def format_sse(message: dict) -> str:
    """bus のメッセージを Server-Sent Events の1フレームに整形する。"""
    data = json.dumps(message["data"], ensure_ascii=False)
    return f"event: {message['event']}\ndata: {data}\n\n"


class EventBus:
    """asyncio.Queue ベースのインメモリ pub/sub バス。

    subscriber ごとのキューは maxsize で上限を持ち、
    溢れた場合は最も古いメッセージから捨てる。
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._maxsize = maxsize
        self._subscribers: list[asyncio.Queue[dict]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: str, data: dict | None = None) -> None:
        """全 subscriber にイベントを配信する。"""
        message = {"event": event, "data": data}
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(message)

    @asynccontextmanager
    async def subscribe(self):
        """コンテキスト内で Queue を受け取り、イベントを待ち受ける。"""
        queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(queue)
        try:
            yield queue
        finally:
            self._subscribers.remove(queue)
