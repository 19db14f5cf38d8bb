"""暦を考慮した経過時間／残り時間の内訳計算.

2つの時刻から {years, months, days, hours, minutes, seconds} を求める。
年・月は実際の暦で数え（1/15 → 2/15 は月の長さに関係なくちょうど1か月）、
1か月未満の残りだけを固定基数（86400/3600/60）で分解する。

純粋関数のみ。I/O もなく共有状態も持たないため、どのスレッドから何度呼んでもよい。
"""

import calendar
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import ClassVar

from counterboard.interfaces.counter_store import CounterRecord, Direction

logger = logging.getLogger(__name__)

MAX_BORROW_STEPS = 14
"""月の繰り下げ補正ループの上限。実際には高々1回で収束する."""

_SECOND = timedelta(seconds=1)


@dataclass(frozen=True)
class Breakdown:
    """時間幅の6単位内訳。全て 0 以上の整数."""

    years: int = 0
    months: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    ZERO: ClassVar["Breakdown"]

    @property
    def is_zero(self) -> bool:
        return self == Breakdown.ZERO

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


Breakdown.ZERO = Breakdown()


def parse_instant(value: "str | datetime | None") -> datetime | None:
    """時刻文字列（ISO-8601 風）を offset-naive の datetime に変換する.

    "2024-01-31T10:00" のような分精度の値、秒・小数秒付き、末尾 Z や
    +09:00 付きの値を受け付ける。TZ付きの値は壁時計時刻を保持して TZ を除去する。

    Returns:
        解釈できない場合は None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def split_milliseconds(milliseconds: int) -> tuple[int, int, int, int]:
    """1か月未満の残りを (days, hours, minutes, seconds) に分解する.

    秒未満は切り捨て。負値は 0 として扱う。
    """
    total_seconds = max(0, int(milliseconds) // 1000)
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return days, hours, minutes, seconds


def _clamped_anchor(start: datetime, years: int, months: int) -> datetime:
    """start から years 年 months か月後の同日同時刻を返す.

    その月に start の日が無い場合（1/31 → 2月など）は月末日に丸める。
    """
    index = start.year * 12 + (start.month - 1) + years * 12 + months
    year, month0 = divmod(index, 12)
    month = month0 + 1
    last_day = calendar.monthrange(year, month)[1]
    return start.replace(year=year, month=month, day=min(start.day, last_day))


def calendar_delta(start: datetime, end: datetime) -> Breakdown:
    """start から end までの暦上の内訳を計算する.

    end < start の場合は全て 0 を返す（エラーではなく定義済みの結果）。
    """
    if end < start:
        return Breakdown.ZERO

    years = end.year - start.year
    months = end.month - start.month
    if months < 0:
        years -= 1
        months += 12

    for _ in range(MAX_BORROW_STEPS):
        anchor = _clamped_anchor(start, years, months)
        if anchor <= end:
            break
        months -= 1
        if months < 0:
            years -= 1
            months = 11
    else:
        logger.warning(
            "month borrow did not converge: start=%s end=%s", start, end
        )
        return Breakdown.ZERO

    diff_seconds = (end - anchor) // _SECOND
    days, hours, minutes, seconds = split_milliseconds(diff_seconds * 1000)
    return Breakdown(
        years=years,
        months=months,
        days=days,
        hours=hours,
        minutes=minutes,
        seconds=seconds,
    )


def compute_breakdown(
    anchor: "str | datetime | None",
    now: datetime,
    direction: Direction = Direction.FORWARD,
) -> Breakdown:
    """カウンターの内訳を計算する.

    FORWARD は anchor から now までの経過時間、REVERSE は now から anchor
    （目標時刻）までの残り時間。起点が解釈できない場合、目標を過ぎた場合、
    まだ始まっていない場合はいずれも全て 0。例外は送出しない。

    Args:
        anchor: 起点または目標の時刻
        now: 現在時刻（時計から注入する）
        direction: カウンターの向き
    """
    anchor_at = parse_instant(anchor)
    now_at = parse_instant(now)
    if anchor_at is None or now_at is None:
        logger.debug("unparseable instant: anchor=%r now=%r", anchor, now)
        return Breakdown.ZERO

    if direction is Direction.REVERSE:
        return calendar_delta(now_at, anchor_at)
    return calendar_delta(anchor_at, now_at)


def breakdown_for(record: CounterRecord, now: datetime) -> Breakdown:
    """レコードの起点と向きから内訳を計算する."""
    return compute_breakdown(record.anchor, now, record.direction)
