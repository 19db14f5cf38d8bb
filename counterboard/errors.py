"""例外定義。"""


class CounterboardError(Exception):
    """Base error."""


class InvalidCounterInputError(CounterboardError, ValueError):
    """名前が空、日時が無い、過去の目標時刻など、ユーザー入力が不正。

    メッセージはそのまま利用者に表示される。
    """


class CounterNotFoundError(CounterboardError, KeyError):
    """指定IDのカウンターが存在しない。"""

    def __init__(self, counter_id: str):
        super().__init__(counter_id)
        self.counter_id = counter_id

    def __str__(self) -> str:
        return f"Counter not found: {self.counter_id}"


class ImportFormatError(CounterboardError, ValueError):
    """インポートされたデータがカウンター一覧として解釈できない。"""
