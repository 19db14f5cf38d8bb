"""破壊的操作の確認要求と確認結果.

確認ダイアログの表示方法は UI 側に任せ、エンジンは判断結果だけを受け取る。
"""

from dataclasses import dataclass
from enum import Enum


class Decision(Enum):
    """確認結果。"""

    CONFIRMED = "confirmed"
    DECLINED = "declined"

    @classmethod
    def from_flag(cls, confirmed: bool) -> "Decision":
        return cls.CONFIRMED if confirmed else cls.DECLINED


class ImportChoice(Enum):
    """インポート時の選択。"""

    CANCEL = "cancel"
    REPLACE = "replace"
    MERGE = "merge"


@dataclass(frozen=True)
class ConfirmationRequest:
    """UI に提示すべき確認内容。"""

    action: str
    message: str
    counter_id: str | None = None
    item_count: int | None = None


def reset_request(counter_id: str, name: str) -> ConfirmationRequest:
    return ConfirmationRequest(
        action="reset",
        message=(
            f"Reset the counter {name!r}? The current date and time becomes"
            " the new start. The running period is moved to the history."
        ),
        counter_id=counter_id,
    )


def delete_request(counter_id: str, name: str) -> ConfirmationRequest:
    return ConfirmationRequest(
        action="delete",
        message=(
            f"Delete the counter {name!r}? This cannot be undone. The counter"
            " and all of its history are removed permanently."
        ),
        counter_id=counter_id,
    )


def reset_all_request(count: int) -> ConfirmationRequest:
    return ConfirmationRequest(
        action="reset_all",
        message=f"Delete ALL {count} counters? This cannot be undone.",
        item_count=count,
    )


def import_request(count: int) -> ConfirmationRequest:
    return ConfirmationRequest(
        action="import",
        message=(
            f"{count} counter(s) will be imported. Replace the existing"
            " counters or add to them?"
        ),
        item_count=count,
    )
