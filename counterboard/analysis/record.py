"""カウンターレコードの純粋な変換（作成・編集・リセット）."""

from dataclasses import replace
from datetime import datetime, timedelta

from counterboard.analysis.delta import parse_instant
from counterboard.errors import InvalidCounterInputError
from counterboard.interfaces.counter_store import (
    CounterRecord,
    Direction,
    ResetPeriod,
)

MINUTE_FORMAT = "%Y-%m-%dT%H:%M"

_MILLISECOND = timedelta(milliseconds=1)


def format_minute(instant: datetime) -> str:
    """分精度の時刻文字列（datetime-local 入力と同じ形）."""
    return instant.strftime(MINUTE_FORMAT)


def format_instant(instant: datetime) -> str:
    """ミリ秒精度の時刻文字列."""
    return instant.replace(tzinfo=None).isoformat(timespec="milliseconds")


def validate_counter_input(
    name: str | None,
    anchor: "str | datetime | None",
    direction: Direction,
    now: datetime,
) -> tuple[str, str]:
    """作成・編集の入力を検証し、(整形済みの名前, 起点文字列) を返す.

    Raises:
        InvalidCounterInputError: 名前が空、日時が無い・解釈できない、
            REVERSE の目標時刻が now より後でない場合
    """
    clean_name = (name or "").strip()
    if not clean_name:
        raise InvalidCounterInputError("Please enter a name for the counter.")

    if anchor is None or (isinstance(anchor, str) and not anchor.strip()):
        raise InvalidCounterInputError("Please enter a date and time.")

    anchor_at = parse_instant(anchor)
    if anchor_at is None:
        raise InvalidCounterInputError(f"Unrecognised date and time: {anchor!r}")

    if direction is Direction.REVERSE and anchor_at <= now:
        raise InvalidCounterInputError(
            "The target date of a countdown must be in the future."
        )

    if isinstance(anchor, datetime):
        return clean_name, format_instant(anchor_at)
    return clean_name, anchor.strip()


def new_counter(
    counter_id: str,
    name: str | None,
    anchor: "str | datetime | None",
    direction: Direction,
    now: datetime,
) -> CounterRecord:
    """新しいカウンターを作る。履歴は空、originalStartDate は起点."""
    clean_name, anchor_text = validate_counter_input(name, anchor, direction, now)
    return CounterRecord(
        id=counter_id,
        name=clean_name,
        anchor=anchor_text,
        direction=direction,
        created_at=format_instant(now),
        reset_history=[],
        original_start_date=anchor_text,
    )


def edit_counter(
    record: CounterRecord,
    name: str | None,
    anchor: "str | datetime | None",
    direction: Direction,
    now: datetime,
) -> CounterRecord:
    """名前・起点・向きを変更する。ID・履歴・作成日時は保持."""
    clean_name, anchor_text = validate_counter_input(name, anchor, direction, now)
    return replace(record, name=clean_name, anchor=anchor_text, direction=direction)


def reset_counter(record: CounterRecord, now: datetime) -> CounterRecord:
    """現在の期間を履歴に閉じ、起点を now（分精度）に置き換える.

    duration は now - 起点 のミリ秒。起点が解釈できない場合や
    未来の場合は 0。
    """
    anchor_at = parse_instant(record.anchor)
    duration_ms = 0
    if anchor_at is not None and anchor_at < now:
        duration_ms = (now - anchor_at) // _MILLISECOND

    reset_at = format_instant(now)
    period = ResetPeriod(
        start_date=record.anchor,
        end_date=reset_at,
        duration_ms=duration_ms,
        reset_at=reset_at,
    )
    return replace(
        record,
        anchor=format_minute(now),
        reset_history=[*record.reset_history, period],
        original_start_date=record.original_start_date or record.anchor,
    )
