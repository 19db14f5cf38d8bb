"""カウンター一覧の JSON エクスポート／インポート."""

import json
from collections.abc import Callable
from dataclasses import replace
from datetime import date

from counterboard.errors import ImportFormatError
from counterboard.interfaces.counter_store import (
    CounterRecord,
    record_from_dict,
    record_to_dict,
)

EXPORT_FILENAME_TEMPLATE = "counters-backup-{day}.json"


def export_records(records: list[CounterRecord]) -> str:
    """人が読める JSON（インデント2）に変換する."""
    return json.dumps(
        [record_to_dict(r) for r in records], indent=2, ensure_ascii=False
    )


def export_filename(day: date) -> str:
    return EXPORT_FILENAME_TEMPLATE.format(day=day.isoformat())


def parse_import(text: str | bytes, fallback_created_at: str) -> list[CounterRecord]:
    """インポートデータを検証してレコード一覧にする.

    トップレベルが配列であることを確認し、各要素は旧形式も含めて補完して読む。

    Raises:
        ImportFormatError: JSON でない、配列でない、要素がレコードとして不正
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as ex:
        raise ImportFormatError(f"import data is not valid JSON: {ex}") from ex

    if not isinstance(payload, list):
        raise ImportFormatError(
            "import data must be an array of counters,"
            f" got {type(payload).__name__}"
        )

    records = []
    for index, item in enumerate(payload):
        try:
            records.append(record_from_dict(item, fallback_created_at))
        except (TypeError, ValueError) as ex:
            raise ImportFormatError(f"counter #{index} is invalid: {ex}") from ex
    return records


def merge_records(
    existing: list[CounterRecord],
    imported: list[CounterRecord],
    id_factory: Callable[[], str],
) -> list[CounterRecord]:
    """既存の後ろに追加する。ID の衝突を避けるため取り込み側は新しい ID に振り直す."""
    return [*existing, *(replace(r, id=id_factory()) for r in imported)]
