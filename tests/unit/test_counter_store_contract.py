"""Store層の契約テスト。

このテストは CounterStoreInterface の契約を検証する。
どの実装であっても、このテストが通ることを保証する。

使い方:
  1. CounterStoreInterface の実装クラスを作成
  2. fixture `counter_store` で実装インスタンスを返す
  3. 全テストがパスすることを確認
"""

import json
import logging
import sqlite3
from datetime import datetime

import pytest

from counterboard.clock import FixedClock
from counterboard.interfaces.counter_store import (
    STORAGE_KEY,
    VIEW_MODE_KEY,
    CounterRecord,
    CounterStoreInterface,
    Direction,
    ResetPeriod,
    ViewMode,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def counter_store(db_path):
    """Store層の実装インスタンスを返す。"""
    from counterboard.store.sqlite import SqliteCounterStore

    store = SqliteCounterStore(db_path, clock=FixedClock(NOW))
    yield store
    store.close()


def _write_raw(db_path: str, key: str, value: str) -> None:
    """ストアを経由せずに生の値を書き込む。"""
    conn = sqlite3.connect(db_path)
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO storage (key, value) VALUES (?, ?)", (key, value)
        )
    conn.close()


def _read_raw(db_path: str, key: str) -> str | None:
    conn = sqlite3.connect(db_path)
    row = conn.execute("SELECT value FROM storage WHERE key = ?", (key,)).fetchone()
    conn.close()
    return None if row is None else row[0]


def _record(counter_id: str, name: str = "Counter", **kwargs) -> CounterRecord:
    values = dict(
        id=counter_id,
        name=name,
        anchor="2024-01-01T00:00",
        direction=Direction.FORWARD,
        created_at="2024-01-01T00:00:00.000",
        original_start_date="2024-01-01T00:00",
    )
    values.update(kwargs)
    return CounterRecord(**values)


class TestLoadSave:
    """一覧の保存・読み込みの契約テスト。"""

    def test_missing_data_is_empty(self, counter_store: CounterStoreInterface):
        """未保存 → 空リスト。"""
        assert counter_store.load_counters() == []

    def test_save_then_load(self, counter_store: CounterStoreInterface):
        """保存した一覧がそのまま読める（順序も保持）。"""
        records = [
            _record("a", "First"),
            _record(
                "b",
                "Second",
                direction=Direction.REVERSE,
                anchor="2030-01-01T00:00",
                reset_history=[
                    ResetPeriod(
                        start_date="2023-01-01T00:00",
                        end_date="2023-02-01T00:00:00.000",
                        duration_ms=31 * 86_400_000,
                        reset_at="2023-02-01T00:00:00.000",
                    )
                ],
            ),
        ]
        counter_store.save_counters(records)
        assert counter_store.load_counters() == records

    def test_save_replaces_whole_list(self, counter_store: CounterStoreInterface):
        """保存は追記ではなく丸ごと置換。"""
        counter_store.save_counters([_record("a"), _record("b")])
        counter_store.save_counters([_record("c")])
        assert [r.id for r in counter_store.load_counters()] == ["c"]

    def test_non_ascii_name(self, counter_store: CounterStoreInterface):
        counter_store.save_counters([_record("a", "禁煙チャレンジ")])
        assert counter_store.load_counters()[0].name == "禁煙チャレンジ"

    def test_clear(self, counter_store: CounterStoreInterface):
        """clear 後は空リスト。未保存の状態で clear してもエラーにならない。"""
        counter_store.clear_counters()
        counter_store.save_counters([_record("a")])
        counter_store.clear_counters()
        assert counter_store.load_counters() == []

    def test_persists_across_instances(self, db_path, counter_store):
        """同じファイルを開き直しても内容が残る。"""
        from counterboard.store.sqlite import SqliteCounterStore

        counter_store.save_counters([_record("a")])
        counter_store.save_view_mode(ViewMode.BOLDER)

        reopened = SqliteCounterStore(db_path, clock=FixedClock(NOW))
        try:
            assert [r.id for r in reopened.load_counters()] == ["a"]
            assert reopened.load_view_mode() is ViewMode.BOLDER
        finally:
            reopened.close()

    def test_stored_shape(self, db_path, counter_store):
        """固定キーの下に JSON 配列として保存される。"""
        counter_store.save_counters([_record("a")])
        payload = json.loads(_read_raw(db_path, STORAGE_KEY))
        assert payload == [
            {
                "id": "a",
                "name": "Counter",
                "anchorInstant": "2024-01-01T00:00",
                "direction": "forward",
                "createdAt": "2024-01-01T00:00:00.000",
                "resetHistory": [],
                "originalStartDate": "2024-01-01T00:00",
            }
        ]


class TestCorruptData:
    """壊れた保存データの扱い。"""

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            '{"id": "a"}',
            '[{"id": "a", "name": "", "anchorInstant": "2024-01-01T00:00"}]',
            '[{"id": "a", "name": "A"}]',
        ],
    )
    def test_corrupt_data_loads_empty(self, db_path, counter_store, caplog, raw):
        """壊れたデータ → 空リスト + ERROR ログ。例外は伝播しない。"""
        _write_raw(db_path, STORAGE_KEY, raw)
        with caplog.at_level(logging.ERROR, logger="counterboard.store.sqlite"):
            assert counter_store.load_counters() == []
        assert "failed to load counters" in caplog.text

    def test_corrupt_data_is_not_overwritten_on_load(self, db_path, counter_store):
        """読み込みに失敗しても元データは消さない。"""
        _write_raw(db_path, STORAGE_KEY, "{not json")
        counter_store.load_counters()
        assert _read_raw(db_path, STORAGE_KEY) == "{not json"


class TestLegacyMigration:
    """旧形式レコードの補完と書き戻し。"""

    def test_legacy_records_are_completed_and_written_back(self, db_path, counter_store):
        legacy = [{"id": 1700000000000, "name": "Old", "startDate": "2023-01-01T08:00"}]
        _write_raw(db_path, STORAGE_KEY, json.dumps(legacy))

        records = counter_store.load_counters()
        assert records == [
            CounterRecord(
                id="1700000000000",
                name="Old",
                anchor="2023-01-01T08:00",
                direction=Direction.FORWARD,
                created_at="2024-06-01T12:00:00.000",
                reset_history=[],
                original_start_date="2023-01-01T08:00",
            )
        ]

        stored = json.loads(_read_raw(db_path, STORAGE_KEY))
        assert stored[0]["anchorInstant"] == "2023-01-01T08:00"
        assert stored[0]["direction"] == "forward"
        assert stored[0]["createdAt"] == "2024-06-01T12:00:00.000"

    def test_current_shape_is_not_rewritten(self, db_path, counter_store):
        """現行形式のデータは書き戻さない（保存された文字列がそのまま残る）。"""
        counter_store.save_counters([_record("a")])
        before = _read_raw(db_path, STORAGE_KEY)
        counter_store.load_counters()
        assert _read_raw(db_path, STORAGE_KEY) == before


class TestViewMode:
    """表示モード設定の契約テスト。"""

    def test_default_is_flip(self, counter_store: CounterStoreInterface):
        assert counter_store.load_view_mode() is ViewMode.FLIP

    @pytest.mark.parametrize("mode", list(ViewMode))
    def test_save_then_load(self, counter_store: CounterStoreInterface, mode):
        counter_store.save_view_mode(mode)
        assert counter_store.load_view_mode() is mode

    def test_unknown_stored_value_is_flip(self, db_path, counter_store):
        _write_raw(db_path, VIEW_MODE_KEY, "neon")
        assert counter_store.load_view_mode() is ViewMode.FLIP

    def test_independent_of_counters(self, counter_store: CounterStoreInterface):
        """全削除しても表示モードは残る。"""
        counter_store.save_view_mode(ViewMode.CALCULATOR)
        counter_store.save_counters([_record("a")])
        counter_store.clear_counters()
        assert counter_store.load_view_mode() is ViewMode.CALCULATOR
