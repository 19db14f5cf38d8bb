"""Store層の抽象インターフェース（境界①）。

Store層はカウンターレコード一覧の永続化を担う。
一覧は固定のストレージキーの下に丸ごと保存・置換される。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

STORAGE_KEY = "counters_app_data"
VIEW_MODE_KEY = "counters_view_mode"


class Direction(str, Enum):
    """カウンターの向き。"""

    FORWARD = "forward"
    REVERSE = "reverse"

    @classmethod
    def parse(cls, value: "str | Direction | None") -> "Direction":
        """文字列から Direction を得る。None は FORWARD 扱い。

        Raises:
            ValueError: 未知の値の場合
        """
        if value is None:
            return cls.FORWARD
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class ViewMode(str, Enum):
    """表示モード（見た目のみの設定）。"""

    FLIP = "flip"
    CALCULATOR = "calculator"
    BOLDER = "bolder"

    @classmethod
    def normalize(cls, value: "str | ViewMode | None") -> "ViewMode":
        """未知の値は FLIP に丸める。"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FLIP


@dataclass(frozen=True)
class ResetPeriod:
    """リセットで閉じられた1期間。

    duration_ms は常に 0 以上。end_date == reset_at。
    """

    start_date: str
    end_date: str
    duration_ms: int
    reset_at: str


@dataclass(frozen=True)
class CounterRecord:
    """カウンターレコード（ドメインモデル）。

    anchor は FORWARD なら起点、REVERSE なら目標の時刻文字列。
    reset_history は追記のみで、並び順がリセットの時系列順。
    """

    id: str
    name: str
    anchor: str
    direction: Direction
    created_at: str
    reset_history: list[ResetPeriod] = field(default_factory=list)
    original_start_date: str | None = None


def record_to_dict(record: CounterRecord) -> dict:
    """CounterRecord → 永続化／エクスポート用の dict。"""
    return {
        "id": record.id,
        "name": record.name,
        "anchorInstant": record.anchor,
        "direction": record.direction.value,
        "createdAt": record.created_at,
        "resetHistory": [
            {
                "startDate": p.start_date,
                "endDate": p.end_date,
                "duration": p.duration_ms,
                "resetAt": p.reset_at,
            }
            for p in record.reset_history
        ],
        "originalStartDate": record.original_start_date or record.anchor,
    }


def record_from_dict(data: dict, fallback_created_at: str) -> CounterRecord:
    """dict → CounterRecord。旧形式のレコードは不足項目を補って読み込む。

    - anchorInstant が無ければ startDate を使う
    - direction / resetHistory / originalStartDate / createdAt は既定値で補完

    Raises:
        ValueError: name や起点時刻が無いなど、レコードとして解釈できない場合
    """
    if not isinstance(data, dict):
        raise ValueError(f"counter record must be an object, got {type(data).__name__}")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("counter record has no name")

    anchor = data.get("anchorInstant") or data.get("startDate")
    if not isinstance(anchor, str) or not anchor.strip():
        raise ValueError(f"counter record {name!r} has no anchor instant")

    if data.get("id") is None:
        raise ValueError(f"counter record {name!r} has no id")

    history = []
    for entry in data.get("resetHistory") or []:
        if not isinstance(entry, dict):
            raise ValueError(f"reset history of {name!r} holds a non-object entry")
        duration = entry.get("duration", entry.get("durationMs", 0))
        end_date = entry.get("endDate") or entry.get("resetAt") or ""
        history.append(
            ResetPeriod(
                start_date=str(entry.get("startDate") or ""),
                end_date=str(end_date),
                duration_ms=max(0, int(duration or 0)),
                reset_at=str(entry.get("resetAt") or end_date),
            )
        )

    return CounterRecord(
        id=str(data["id"]),
        name=name,
        anchor=anchor,
        direction=Direction.parse(data.get("direction")),
        created_at=str(data.get("createdAt") or fallback_created_at),
        reset_history=history,
        original_start_date=data.get("originalStartDate") or anchor,
    )


class CounterStoreInterface(ABC):
    """Store層の抽象インターフェース。

    全ての層はこのインターフェースを介してカウンターにアクセスする。
    SQLiteを直接触るコードが他の層に漏洩してはならない。
    """

    @abstractmethod
    def load_counters(self) -> list[CounterRecord]:
        """保存済みのカウンター一覧を返す。

        データが無い場合、壊れている場合はいずれも空リストを返し、
        呼び出し側に例外を伝播させない。
        """
        ...

    @abstractmethod
    def save_counters(self, records: list[CounterRecord]) -> None:
        """カウンター一覧を丸ごと置き換えて保存する。"""
        ...

    @abstractmethod
    def clear_counters(self) -> None:
        """保存済みのカウンター一覧を削除する。"""
        ...

    @abstractmethod
    def load_view_mode(self) -> ViewMode:
        """表示モードを返す。未保存なら FLIP。"""
        ...

    @abstractmethod
    def save_view_mode(self, mode: ViewMode) -> None:
        """表示モードを保存する。"""
        ...
