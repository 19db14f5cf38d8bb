"""表示シンクの実装。単位ごとの表示状態と差分配信.

各カウンターの各単位（年〜秒）は小さな状態機械を持つ:

    STABLE(value) --値の変化--> TRANSITIONING(from, to) --settle--> STABLE(to)

flip 表示では値の変化を遷移として扱い、calculator / bolder 表示では
遷移を経ずに STABLE へ直接切り替える。
"""

from dataclasses import dataclass
from enum import Enum

from counterboard.analysis.delta import Breakdown
from counterboard.ingestion.event_bus import TICK_EVENT, EventBus
from counterboard.interfaces.counter_store import ViewMode
from counterboard.interfaces.display_sink import DisplaySinkInterface

TIME_UNITS: tuple[tuple[str, int], ...] = (
    ("years", 2),
    ("months", 2),
    ("days", 2),
    ("hours", 2),
    ("minutes", 2),
    ("seconds", 2),
)
"""(単位名, 最小桁数) の表示順."""


def format_unit(value: int, min_digits: int = 2) -> str:
    """ゼロ埋めした表示文字列."""
    return str(value).zfill(min_digits)


class UnitPhase(Enum):
    STABLE = "stable"
    TRANSITIONING = "transitioning"


@dataclass(frozen=True)
class UnitState:
    """1単位の表示状態. TRANSITIONING の間は previous が遷移元."""

    phase: UnitPhase
    value: str
    previous: str | None = None

    @classmethod
    def stable(cls, value: str) -> "UnitState":
        return cls(UnitPhase.STABLE, value)

    @property
    def shown(self) -> str:
        """現在画面に確定表示されている値."""
        if self.phase is UnitPhase.TRANSITIONING:
            return self.previous
        return self.value

    def advance(self, next_value: str, animate: bool) -> "UnitState":
        """新しい値を受け取った後の状態を返す. 目標値が同じなら自身を返す."""
        if next_value == self.value:
            return self
        if not animate:
            return UnitState.stable(next_value)
        return UnitState(UnitPhase.TRANSITIONING, next_value, self.shown)

    def settle(self) -> "UnitState":
        """遷移完了."""
        return UnitState.stable(self.value)


@dataclass(frozen=True)
class UnitChange:
    """1ティックで変化した1単位."""

    unit: str
    value: str
    previous: str
    phase: UnitPhase

    def as_dict(self) -> dict:
        return {
            "unit": self.unit,
            "value": self.value,
            "previous": self.previous,
            "phase": self.phase.value,
        }


class FlipBoard:
    """カウンターごとの単位状態を保持し、ティック間の差分を求める."""

    def __init__(self) -> None:
        self._states: dict[str, dict[str, UnitState]] = {}

    def update(
        self, counter_id: str, breakdown: Breakdown, view_mode: ViewMode
    ) -> list[UnitChange]:
        """内訳を反映し、変化した単位を返す.

        初回は全単位を STABLE で初期化し、変化としては報告しない。
        前回のティックで始まった遷移は、このティックの反映前に完了させる。
        """
        values = breakdown.as_dict()
        formatted = {unit: format_unit(values[unit], digits) for unit, digits in TIME_UNITS}

        states = self._states.get(counter_id)
        if states is None:
            self._states[counter_id] = {
                unit: UnitState.stable(value) for unit, value in formatted.items()
            }
            return []

        animate = view_mode is ViewMode.FLIP
        changes = []
        for unit, _ in TIME_UNITS:
            # 次のティックが届いた時点で前回の遷移は完了している
            current = states[unit].settle()
            states[unit] = current
            after = current.advance(formatted[unit], animate)
            if after is current:
                continue
            states[unit] = after
            changes.append(
                UnitChange(
                    unit=unit,
                    value=after.value,
                    previous=current.shown,
                    phase=after.phase,
                )
            )
        return changes

    def settle(self, counter_id: str, unit: str) -> UnitState | None:
        """遷移完了を通知する. 未知のカウンター・単位なら None."""
        states = self._states.get(counter_id)
        if states is None or unit not in states:
            return None
        states[unit] = states[unit].settle()
        return states[unit]

    def __contains__(self, counter_id: str) -> bool:
        return counter_id in self._states

    def state(self, counter_id: str) -> dict[str, UnitState]:
        return dict(self._states.get(counter_id, {}))

    def forget(self, counter_id: str) -> None:
        self._states.pop(counter_id, None)


class BusDisplaySink(DisplaySinkInterface):
    """FlipBoard で差分を取り、変化した単位だけを EventBus に流す表示シンク.

    view_mode は構築時に一度だけ読み、表示モードの保存時に書き換える。
    """

    def __init__(
        self,
        bus: EventBus,
        view_mode: ViewMode = ViewMode.FLIP,
        board: FlipBoard | None = None,
    ) -> None:
        self._bus = bus
        self.view_mode = view_mode
        self.board = board if board is not None else FlipBoard()

    def publish(self, counter_id: str, breakdown: Breakdown) -> None:
        initial = counter_id not in self.board
        changes = self.board.update(counter_id, breakdown, self.view_mode)
        if not changes and not initial:
            return
        self._bus.publish(
            TICK_EVENT,
            {
                "counter_id": counter_id,
                "initial": initial,
                "breakdown": breakdown.as_dict(),
                "changes": [c.as_dict() for c in changes],
            },
        )

    def forget(self, counter_id: str) -> None:
        self.board.forget(counter_id)
