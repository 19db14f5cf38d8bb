"""Store層のSQLite実装。

CounterStoreInterfaceに準拠したSQLite実装を提供する。
カウンター一覧は固定キーの下に JSON 文字列として丸ごと保存する。
"""

import json
import logging
import sqlite3

from counterboard.clock import SystemClock
from counterboard.interfaces.clock import ClockInterface
from counterboard.interfaces.counter_store import (
    STORAGE_KEY,
    VIEW_MODE_KEY,
    CounterRecord,
    CounterStoreInterface,
    ViewMode,
    record_from_dict,
    record_to_dict,
)

logger = logging.getLogger(__name__)

# スキーマ定義
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS storage (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL
);
"""


class SqliteCounterStore(CounterStoreInterface):
    """SQLiteによるStore層実装。"""

    def __init__(
        self,
        db_path: str,
        clock: ClockInterface | None = None,
        storage_key: str = STORAGE_KEY,
        view_mode_key: str = VIEW_MODE_KEY,
    ):
        """初期化。

        Args:
            db_path: SQLiteデータベースファイルのパス
            clock: 旧形式レコードの createdAt 補完に使う時計
            storage_key: カウンター一覧の保存キー
            view_mode_key: 表示モードの保存キー
        """
        self._clock = clock or SystemClock()
        self._storage_key = storage_key
        self._view_mode_key = view_mode_key
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def _get(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM storage WHERE key = ?", (key,)
        ).fetchone()
        return None if row is None else row[0]

    def _put(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO storage (key, value)
                VALUES (?, ?)
                ON CONFLICT(key)
                DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def _delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM storage WHERE key = ?", (key,))

    def load_counters(self) -> list[CounterRecord]:
        """カウンター一覧を読み込む。

        壊れたデータはログに残して空リストとして扱う。
        旧形式の補完が発生した場合は補完後の一覧を書き戻す。
        """
        raw = self._get(self._storage_key)
        if raw is None:
            return []

        try:
            payload = json.loads(raw)
            if not isinstance(payload, list):
                raise ValueError(
                    f"stored counters must be a list, got {type(payload).__name__}"
                )
            fallback = self._clock.now().isoformat(timespec="milliseconds")
            records = [record_from_dict(item, fallback) for item in payload]
        except (TypeError, ValueError) as ex:
            logger.error("failed to load counters, starting empty: %s", ex)
            return []

        migrated = [record_to_dict(r) for r in records]
        if migrated != payload:
            logger.info("migrated %d stored counters to the current shape", len(records))
            self._put(self._storage_key, json.dumps(migrated, ensure_ascii=False))
        return records

    def save_counters(self, records: list[CounterRecord]) -> None:
        payload = [record_to_dict(r) for r in records]
        self._put(self._storage_key, json.dumps(payload, ensure_ascii=False))

    def clear_counters(self) -> None:
        self._delete(self._storage_key)

    def load_view_mode(self) -> ViewMode:
        return ViewMode.normalize(self._get(self._view_mode_key))

    def save_view_mode(self, mode: ViewMode) -> None:
        self._put(self._view_mode_key, ViewMode.normalize(mode).value)
