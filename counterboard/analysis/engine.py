"""カウンターエンジン。レコード操作と内訳計算のオーケストレーター."""

import logging
import uuid
from collections.abc import Callable

from counterboard.analysis import record as record_ops
from counterboard.analysis.confirmation import (
    ConfirmationRequest,
    Decision,
    ImportChoice,
    delete_request,
    import_request,
    reset_all_request,
    reset_request,
)
from counterboard.analysis.delta import Breakdown, breakdown_for
from counterboard.analysis.transfer import (
    export_filename,
    export_records,
    merge_records,
    parse_import,
)
from counterboard.errors import CounterNotFoundError
from counterboard.interfaces.clock import ClockInterface
from counterboard.interfaces.counter_store import (
    CounterRecord,
    CounterStoreInterface,
    Direction,
    ViewMode,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class CounterEngine:
    """カウンターエンジン.

    CounterStore から一覧を読み、変換して丸ごと書き戻す。
    現在時刻は常に注入された Clock から得る。
    """

    def __init__(
        self,
        store: CounterStoreInterface,
        clock: ClockInterface,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._id_factory = id_factory or _new_id

    # ---------- 参照 ----------

    def list_counters(self) -> list[CounterRecord]:
        return self._store.load_counters()

    def get_counter(self, counter_id: str) -> CounterRecord:
        """指定IDのカウンターを返す.

        Raises:
            CounterNotFoundError: 存在しない場合
        """
        return self._find(self._store.load_counters(), counter_id)[1]

    def breakdown(self, counter_id: str) -> Breakdown:
        return breakdown_for(self.get_counter(counter_id), self._clock.now())

    def snapshot(self) -> list[tuple[str, Breakdown]]:
        """全カウンターの現在の内訳を (id, Breakdown) の一覧で返す.

        全件に同じ now を使う。
        """
        now = self._clock.now()
        return [(r.id, breakdown_for(r, now)) for r in self._store.load_counters()]

    # ---------- 作成・編集 ----------

    def create_counter(
        self,
        name: str | None,
        anchor: str | None,
        direction: Direction = Direction.FORWARD,
    ) -> CounterRecord:
        """カウンターを作成して保存する.

        Raises:
            InvalidCounterInputError: 入力が不正な場合（何も保存されない）
        """
        created = record_ops.new_counter(
            self._id_factory(), name, anchor, direction, self._clock.now()
        )
        records = self._store.load_counters()
        records.append(created)
        self._store.save_counters(records)
        logger.info("counter created: id=%s direction=%s", created.id, direction.value)
        return created

    def edit_counter(
        self,
        counter_id: str,
        name: str | None,
        anchor: str | None,
        direction: Direction | None = None,
    ) -> CounterRecord:
        """名前・起点・向きを変更する。direction 省略時は現在の向きを保持."""
        records = self._store.load_counters()
        index, current = self._find(records, counter_id)
        edited = record_ops.edit_counter(
            current,
            name,
            anchor,
            direction or current.direction,
            self._clock.now(),
        )
        records[index] = edited
        self._store.save_counters(records)
        logger.info("counter edited: id=%s", counter_id)
        return edited

    # ---------- 破壊的操作 ----------

    def request_reset(self, counter_id: str) -> ConfirmationRequest:
        counter = self.get_counter(counter_id)
        return reset_request(counter.id, counter.name)

    def reset_counter(
        self, counter_id: str, decision: Decision
    ) -> CounterRecord | None:
        """現在の期間を履歴に移し、起点を現在時刻にする.

        Returns:
            リセット後のレコード。DECLINED の場合は None（何も変更しない）
        """
        records = self._store.load_counters()
        index, current = self._find(records, counter_id)
        if decision is not Decision.CONFIRMED:
            return None
        reset = record_ops.reset_counter(current, self._clock.now())
        records[index] = reset
        self._store.save_counters(records)
        logger.info(
            "counter reset: id=%s closed_period_ms=%d",
            counter_id,
            reset.reset_history[-1].duration_ms,
        )
        return reset

    def request_delete(self, counter_id: str) -> ConfirmationRequest:
        counter = self.get_counter(counter_id)
        return delete_request(counter.id, counter.name)

    def delete_counter(self, counter_id: str, decision: Decision) -> bool:
        """カウンターを完全に削除する。DECLINED の場合は False."""
        records = self._store.load_counters()
        self._find(records, counter_id)
        if decision is not Decision.CONFIRMED:
            return False
        self._store.save_counters([r for r in records if r.id != counter_id])
        logger.info("counter deleted: id=%s", counter_id)
        return True

    def request_reset_all(self) -> ConfirmationRequest:
        return reset_all_request(len(self._store.load_counters()))

    def reset_all(self, decision: Decision) -> int:
        """全カウンターを削除する.

        Returns:
            削除した件数。DECLINED の場合は 0
        """
        if decision is not Decision.CONFIRMED:
            return 0
        count = len(self._store.load_counters())
        self._store.clear_counters()
        logger.info("all counters removed: count=%d", count)
        return count

    # ---------- エクスポート／インポート ----------

    def export_counters(self) -> str:
        return export_records(self._store.load_counters())

    def export_filename(self) -> str:
        return export_filename(self._clock.now().date())

    def request_import(self, text: str | bytes) -> ConfirmationRequest:
        """インポート内容を検証し、確認要求を返す.

        Raises:
            ImportFormatError: 形式が不正な場合
        """
        return import_request(len(self._parse(text)))

    def import_counters(self, text: str | bytes, choice: ImportChoice) -> int:
        """インポートを実行する.

        Returns:
            インポート後の総件数

        Raises:
            ImportFormatError: 形式が不正な場合（何も保存されない）
        """
        imported = self._parse(text)
        existing = self._store.load_counters()
        if choice is ImportChoice.CANCEL:
            return len(existing)
        if choice is ImportChoice.REPLACE:
            records = imported
        else:
            records = merge_records(existing, imported, self._id_factory)
        self._store.save_counters(records)
        logger.info(
            "counters imported: mode=%s imported=%d total=%d",
            choice.value,
            len(imported),
            len(records),
        )
        return len(records)

    # ---------- 表示設定 ----------

    def get_view_mode(self) -> ViewMode:
        return self._store.load_view_mode()

    def set_view_mode(self, value: str | ViewMode) -> ViewMode:
        mode = ViewMode.normalize(value)
        self._store.save_view_mode(mode)
        return mode

    # ---------- 内部 ----------

    def _parse(self, text: str | bytes) -> list[CounterRecord]:
        return parse_import(text, record_ops.format_instant(self._clock.now()))

    @staticmethod
    def _find(
        records: list[CounterRecord], counter_id: str
    ) -> tuple[int, CounterRecord]:
        """一覧から指定IDのレコードと位置を探す."""
        for index, record in enumerate(records):
            if record.id == counter_id:
                return index, record
        raise CounterNotFoundError(counter_id)
